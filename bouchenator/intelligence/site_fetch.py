"""
Lightweight site crawl used for press discovery.

``discover_press_urls`` probes newsroom paths and the sitemap;
``fetch_site_data`` reads the home page plus a few linked key and press pages.
Everything here is best-effort and returns empty results on failure.
"""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass, field
from typing import List, Optional

import httpx
import structlog

from bouchenator.core.config import FetchConfig, get_settings
from bouchenator.intelligence.page_reader import ACCEPT_HTML, PageReadResult, parse_html
from bouchenator.utils.reliability import describe_http_error
from bouchenator.utils.text import origin_of

logger = structlog.get_logger(__name__)

SITE_KEY_RE = re.compile(
    r"\b(product|service|solution|pricing|about|features|platform|enterprise)\b", re.IGNORECASE
)
PRESS_RE = re.compile(r"\b(press|newsroom|news|media|announcement|blog|stories)\b", re.IGNORECASE)
PRESS_PATHS = ["/news", "/newsroom", "/press", "/press-releases", "/media", "/blog"]

SITEMAP_LOC_RE = re.compile(r"<loc>([\s\S]*?)</loc>", re.IGNORECASE)

MAX_TEXT_CHARS = 200_000
MAX_SITEMAP_HITS = 20
MAX_PRESS_URLS = 15
MAX_PAGE_HEADINGS = 20


@dataclass
class SiteData:
    url: str
    homepage: Optional[PageReadResult] = None
    key_pages: List[PageReadResult] = field(default_factory=list)
    press_pages: List[PageReadResult] = field(default_factory=list)


class SiteFetcher:
    """Best-effort crawler for press and newsroom pages."""

    def __init__(self, client: httpx.AsyncClient, config: Optional[FetchConfig] = None):
        self.client = client
        self.config = config or get_settings().fetch

    async def fetch_text(self, url: str, timeout: float) -> Optional[str]:
        """Body of a successful GET truncated to 200k chars, or None."""
        try:
            response = await self.client.get(
                url,
                headers={"User-Agent": self.config.user_agent, "Accept": ACCEPT_HTML},
                timeout=timeout,
                follow_redirects=True,
            )
        except httpx.HTTPError as e:
            logger.debug("site_fetch_failed", url=url, error=describe_http_error(e))
            return None
        if not response.is_success:
            return None
        return response.text[:MAX_TEXT_CHARS]

    async def _head_exists(self, url: str) -> bool:
        try:
            response = await self.client.head(
                url,
                headers={"User-Agent": self.config.user_agent},
                timeout=self.config.probe_timeout,
                follow_redirects=True,
            )
        except httpx.HTTPError:
            return False
        return response.is_success

    async def discover_press_urls(self, site_url: str) -> List[str]:
        """Probe common newsroom paths, then mine ``sitemap.xml``; at most 15 URLs."""
        origin = origin_of(site_url)
        if not origin:
            return []

        candidates = [f"{origin}{path}" for path in PRESS_PATHS]
        exists = await asyncio.gather(*(self._head_exists(u) for u in candidates))
        found = [u for u, ok in zip(candidates, exists) if ok]

        sitemap = await self.fetch_text(f"{origin}/sitemap.xml", timeout=self.config.sitemap_timeout)
        if sitemap:
            hits = 0
            for match in SITEMAP_LOC_RE.finditer(sitemap):
                if hits >= MAX_SITEMAP_HITS:
                    break
                loc = match.group(1).strip()
                if PRESS_RE.search(loc):
                    found.append(loc)
                    hits += 1

        urls = list(dict.fromkeys(found))[:MAX_PRESS_URLS]
        logger.debug("press_urls_discovered", url=site_url, count=len(urls))
        return urls

    async def _fetch_parsed(self, url: str, timeout: float) -> Optional[PageReadResult]:
        html = await self.fetch_text(url, timeout)
        if html is None:
            return None
        page = parse_html(html, url)
        page.headings = page.headings[:MAX_PAGE_HEADINGS]
        return page

    async def fetch_site_data(self, url: str) -> SiteData:
        """Home page plus up to 4 key pages and 2 press pages, fetched concurrently."""
        result = SiteData(url=url)
        home = await self._fetch_parsed(url, self.config.home_timeout)
        if home is None:
            return result
        result.homepage = home

        key_urls = [l for l in home.links if SITE_KEY_RE.search(l)][:4]
        press_urls = [l for l in home.links if PRESS_RE.search(l)][:2]

        pages = await asyncio.gather(
            *(self._fetch_parsed(u, self.config.press_page_timeout) for u in key_urls + press_urls)
        )
        result.key_pages = [p for p in pages[: len(key_urls)] if p]
        result.press_pages = [p for p in pages[len(key_urls):] if p]
        return result
