"""
Company theme orchestration.

Tries site CSS, then the favicon, then a name-derived palette. Results are
cached per origin; favicon and logo URLs are captured whenever the home page
could be read.
"""

from __future__ import annotations

from typing import Optional
from urllib.parse import urljoin

import httpx
import structlog
from bs4 import BeautifulSoup

from bouchenator.core.config import FetchConfig, get_settings
from bouchenator.core.models import Theme, ThemeSource
from bouchenator.intelligence.cache import TTLCache
from bouchenator.intelligence.favicon_sampler import find_favicon_url, sample_theme_from_favicon
from bouchenator.intelligence.page_reader import ACCEPT_HTML
from bouchenator.intelligence.style_sampler import sample_theme_from_html
from bouchenator.intelligence.theme import default_theme, is_brand_usable, theme_from_name
from bouchenator.utils.reliability import describe_http_error, track_performance
from bouchenator.utils.text import origin_of

logger = structlog.get_logger(__name__)

LOGO_HINTS = ("logo", "brand", "icon")

_theme_cache: Optional[TTLCache] = None


def get_theme_cache() -> TTLCache:
    """Process-wide theme cache keyed by site origin."""
    global _theme_cache
    if _theme_cache is None:
        _theme_cache = TTLCache("theme", get_settings().evidence.theme_cache_ttl)
    return _theme_cache


def find_logo_url(soup: BeautifulSoup, site_url: str) -> Optional[str]:
    """``og:image`` when its URL looks like a logo."""
    tag = soup.find("meta", attrs={"property": "og:image"}) or soup.find(
        "meta", attrs={"name": "og:image"}
    )
    if tag is None or not tag.get("content"):
        return None
    url = urljoin(site_url, tag["content"])
    return url if any(hint in url.lower() for hint in LOGO_HINTS) else None


class ThemeSampler:
    """Produces a ``Theme`` for a site; never raises."""

    def __init__(self, client: httpx.AsyncClient, cache: Optional[TTLCache] = None,
                 config: Optional[FetchConfig] = None):
        self.client = client
        self.cache = cache if cache is not None else get_theme_cache()
        self.config = config or get_settings().fetch

    def is_cached(self, site_url: Optional[str]) -> bool:
        origin = origin_of(site_url) if site_url else None
        return bool(origin) and self.cache.has(origin)

    def _fallback(self, company_name: Optional[str]) -> Theme:
        return theme_from_name(company_name) if company_name else default_theme()

    async def _fetch_homepage(self, url: str) -> Optional[str]:
        try:
            response = await self.client.get(
                url,
                headers={"User-Agent": self.config.user_agent, "Accept": ACCEPT_HTML},
                timeout=self.config.home_timeout,
                follow_redirects=True,
            )
        except httpx.HTTPError as e:
            logger.debug("theme_homepage_failed", url=url, error=describe_http_error(e))
            return None
        return response.text[:200_000] if response.is_success else None

    @track_performance("get_company_theme")
    async def get_company_theme(self, site_url: Optional[str] = None,
                                company_name: Optional[str] = None) -> Theme:
        base = {"company_name": company_name or None, "radius_px": 12}

        if not site_url:
            theme = self._fallback(company_name)
            return theme.model_copy(update={**base, "note": "No website URL — using name-derived palette"})

        origin = origin_of(site_url)
        if not origin:
            return default_theme().model_copy(update={**base, "note": "Invalid URL"})

        cached = self.cache.get(origin)
        if cached is not None:
            return cached.model_copy(update=base)

        html = await self._fetch_homepage(site_url)
        if html is None:
            theme = self._fallback(company_name).model_copy(
                update={**base, "note": "Could not fetch website — using name-derived palette"}
            )
            self.cache.set(origin, theme)
            return theme

        soup = BeautifulSoup(html, "html.parser")
        branding = {
            **base,
            "favicon_url": find_favicon_url(soup, site_url),
            "logo_url": find_logo_url(soup, site_url),
        }

        try:
            css_theme = await sample_theme_from_html(self.client, html, site_url, self.config)
        except Exception as e:
            logger.warning("theme_css_sampling_failed", url=site_url, error=str(e))
            css_theme, css_note = None, "CSS extraction error"
        else:
            css_note = "CSS colors not brand-usable" if css_theme else "no CSS brand colors found"
        if css_theme is not None and is_brand_usable(css_theme.primary):
            theme = css_theme.model_copy(update=branding)
            self.cache.set(origin, theme)
            return theme

        try:
            fav_theme = await sample_theme_from_favicon(self.client, html, site_url, self.config)
        except Exception as e:
            logger.warning("theme_favicon_sampling_failed", url=site_url, error=str(e))
            fav_theme, fav_note = None, "favicon sampling error"
        else:
            fav_note = "favicon color too gray/unusable" if fav_theme else "favicon sampling returned nothing"
        if fav_theme is not None and fav_theme.source == ThemeSource.FAVICON.value \
                and is_brand_usable(fav_theme.primary):
            theme = fav_theme.model_copy(update=branding)
            self.cache.set(origin, theme)
            return theme

        theme = self._fallback(company_name).model_copy(update={
            **branding,
            "note": f"No brand colors detected ({css_note}; {fav_note}) — using name-derived palette",
        })
        self.cache.set(origin, theme)
        return theme
