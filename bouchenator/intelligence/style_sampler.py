"""Brand colors and font from a site's HTML and first same-origin stylesheets."""

from __future__ import annotations

import re
from typing import List, Optional
from urllib.parse import urljoin

import httpx
import structlog
from bs4 import BeautifulSoup

from bouchenator.core.config import FetchConfig
from bouchenator.core.models import Theme, ThemeSource
from bouchenator.intelligence.favicon_sampler import find_favicon_url
from bouchenator.intelligence.theme import (
    DEFAULT_BG,
    DEFAULT_TEXT,
    derive_accent,
    is_usable_color,
    rgb_to_hex,
)
from bouchenator.utils.text import origin_of

logger = structlog.get_logger(__name__)

_HEX = r"(#[0-9a-fA-F]{3,8})"
_BRAND = r"(?:brand|primary|accent|main)"

COLOR_VAR_PATTERNS = [
    re.compile(rf"--{_BRAND}[-_]?color\s*:\s*{_HEX}", re.IGNORECASE),
    re.compile(rf"--color[-_]?{_BRAND}\s*:\s*{_HEX}", re.IGNORECASE),
    re.compile(rf"--(?:brand|primary|accent)\s*:\s*{_HEX}", re.IGNORECASE),
    re.compile(
        rf"--{_BRAND}[-_]?color\s*:\s*rgb\(\s*(\d+)\s*,\s*(\d+)\s*,\s*(\d+)\s*\)", re.IGNORECASE
    ),
]

FONT_PATTERNS = [
    re.compile(r"--font[-_]?(?:family|sans|primary|brand|body|base)\s*:\s*[\"']?([^;\"'\n}]+)",
               re.IGNORECASE),
    re.compile(r"font-family\s*:\s*[\"']?([^;\"'\n}]+)", re.IGNORECASE),
]

GENERIC_FONT_RE = re.compile(
    r"^(inherit|initial|unset|revert|system-ui|sans-serif|serif|monospace|cursive|fantasy|var\(.*)$",
    re.IGNORECASE,
)

MAX_STYLESHEETS = 2
MAX_CSS_CHARS = 100_000


def extract_brand_colors(css: str) -> List[str]:
    """Usable colors declared on brand-like custom properties, in pattern order."""
    colors = []
    for pattern in COLOR_VAR_PATTERNS:
        for match in pattern.finditer(css):
            if pattern.groups == 1:
                colors.append(match.group(1))
            else:
                colors.append(rgb_to_hex(*(int(g) for g in match.groups())))
    return [c for c in colors if is_usable_color(c)]


def extract_font(css: str) -> Optional[str]:
    """First non-generic font family; only the first match of each pattern is considered."""
    for pattern in FONT_PATTERNS:
        match = pattern.search(css)
        if not match:
            continue
        font = re.sub(r"\s*!important\s*", "", match.group(1).replace('"', "").replace("'", "")).strip()
        if font and not GENERIC_FONT_RE.match(font):
            return font
    return None


async def fetch_first_stylesheet(
    client: httpx.AsyncClient, soup: BeautifulSoup, site_url: str, config: FetchConfig
) -> Optional[str]:
    """Body of the first readable same-origin stylesheet among the first two."""
    origin = origin_of(site_url)
    for link in soup.select('link[rel="stylesheet"]')[:MAX_STYLESHEETS]:
        href = link.get("href")
        if not href or not origin:
            continue
        full_url = urljoin(site_url, href)
        if not full_url.startswith(origin):
            continue
        try:
            response = await client.get(full_url, headers={"User-Agent": config.user_agent},
                                        timeout=config.stylesheet_timeout,
                                        follow_redirects=True)
        except httpx.HTTPError:
            continue
        if response.is_success:
            return response.text[:MAX_CSS_CHARS]
    return None


async def sample_theme_from_html(
    client: httpx.AsyncClient, html: str, site_url: str, config: FetchConfig
) -> Optional[Theme]:
    """
    Theme from ``theme-color`` meta or brand CSS variables.

    Returns a ``site-css`` theme, or None when no usable primary is found.
    """
    soup = BeautifulSoup(html, "html.parser")

    meta = soup.find("meta", attrs={"name": "theme-color"}) or soup.find(
        "meta", attrs={"name": "msapplication-TileColor"}
    )
    theme_color = (meta.get("content") or "").strip() if meta else ""

    css_parts = [tag.get_text() for tag in soup.find_all("style")]
    for tag_name in ("body", "html"):
        tag = soup.find(tag_name)
        if tag is not None and tag.get("style"):
            css_parts.append(tag["style"])
    external = await fetch_first_stylesheet(client, soup, site_url, config)
    if external:
        css_parts.append(external)
    css = "\n".join(css_parts)

    colors = extract_brand_colors(css)
    if theme_color and is_usable_color(theme_color):
        primary = theme_color
    elif colors:
        primary = colors[0]
    else:
        return None

    accent = colors[1] if len(colors) > 1 else derive_accent(primary)
    return Theme(
        primary=primary,
        accent=accent if is_usable_color(accent) else derive_accent(primary),
        bg=DEFAULT_BG,
        text=DEFAULT_TEXT,
        font_family=extract_font(css),
        source=ThemeSource.SITE_CSS,
        note=f"Extracted from {'theme-color meta' if theme_color else 'site CSS variables'}",
        favicon_url=find_favicon_url(soup, site_url),
    )
