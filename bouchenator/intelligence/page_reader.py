"""
Two-stage page reader.

Stage A is a plain HTTP fetch parsed with BeautifulSoup. Stage B, enabled with
``ENABLE_PLAYWRIGHT``, re-renders thin pages in headless Chromium so
JavaScript-built sites get a second chance. Every attempted URL is recorded as
a ``PageFetchAttempt`` for the job's evidence.
"""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple
from urllib.parse import urljoin

import httpx
import structlog
from bs4 import BeautifulSoup

from bouchenator.core.config import FetchConfig, get_settings
from bouchenator.core.models import FetchStatus, PageFetchAttempt
from bouchenator.utils.reliability import describe_http_error, track_performance
from bouchenator.utils.text import origin_of

logger = structlog.get_logger(__name__)

KEY_PAGE_RE = re.compile(
    r"\b(product|service|solution|pricing|about|features|platform|enterprise|company)\b",
    re.IGNORECASE,
)

COMMON_KEY_PATHS = [
    "/about", "/about-us", "/products", "/services",
    "/features", "/solutions", "/platform", "/pricing",
    "/company", "/who-we-are",
]

MAX_HEADINGS = 25
MAX_NAV_LABELS = 25
MAX_LINKS = 200
MAX_KEY_PAGES = 3
MAX_PLAYWRIGHT_SUBPAGES = 2

THIN_HEADINGS = 2
THIN_TEXT_CHARS = 400
THIN_HOME_TEXT_CHARS = 500

ACCEPT_HTML = "text/html,application/xhtml+xml,*/*;q=0.8"


@dataclass
class PageReadResult:
    """Parsed content of one page, or the reason it could not be read."""

    url: str
    ok: bool = False
    method: str = "fetch"
    status_code: Optional[int] = None
    fail_reason: Optional[str] = None
    fail_status: FetchStatus = FetchStatus.ERROR
    title: Optional[str] = None
    meta_description: Optional[str] = None
    headings: List[str] = field(default_factory=list)
    nav_labels: List[str] = field(default_factory=list)
    links: List[str] = field(default_factory=list)
    text_length: int = 0

    @property
    def is_thin(self) -> bool:
        return not self.ok or (len(self.headings) < THIN_HEADINGS and self.text_length < THIN_TEXT_CHARS)

    def to_attempt(self) -> PageFetchAttempt:
        return PageFetchAttempt(
            url=self.url,
            method=self.method,
            status=FetchStatus.OK if self.ok else self.fail_status,
            http_status=self.status_code,
            headings_count=len(self.headings),
            text_length=self.text_length,
            note=self.fail_reason,
        )


@dataclass
class KeyPagesResult:
    homepage: Optional[PageReadResult]
    key_pages: List[PageReadResult]
    playwright_used: bool
    total_pages: int
    total_headings: int
    attempts: List[PageFetchAttempt]
    thin_content: bool
    thin_note: Optional[str] = None


def _clean(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def _meta_content(soup: BeautifulSoup, **attrs) -> Optional[str]:
    tag = soup.find("meta", attrs=attrs)
    if tag and tag.get("content"):
        value = _clean(tag["content"])
        return value or None
    return None


def _extract_headings(soup: BeautifulSoup) -> List[str]:
    headings: List[str] = []
    seen = set()

    def add(text: str, front: bool = False) -> None:
        t = _clean(text)
        if 2 < len(t) < 200 and t.lower() not in seen and len(headings) < MAX_HEADINGS:
            seen.add(t.lower())
            if front:
                headings.insert(0, t)
            else:
                headings.append(t)

    for tag in soup.find_all(["h1", "h2", "h3", "h4"]):
        add(tag.get_text(" "))
    for tag in soup.find_all(attrs={"role": "heading"}):
        add(tag.get_text(" "))

    if len(headings) < 2:
        og_title = _meta_content(soup, property="og:title")
        if og_title:
            add(og_title, front=True)
    return headings


def _extract_nav_labels(soup: BeautifulSoup) -> List[str]:
    labels: List[str] = []

    def collect(container, limit: int) -> None:
        for a in container.find_all("a"):
            if len(labels) >= limit:
                return
            t = _clean(a.get_text(" "))
            if 1 < len(t) < 50:
                labels.append(t)

    for nav in soup.find_all("nav")[:3]:
        collect(nav, MAX_NAV_LABELS)
    if not labels:
        header = soup.find("header")
        if header is not None:
            collect(header, 20)
    return list(dict.fromkeys(labels))


def _extract_links(soup: BeautifulSoup, base_url: str) -> List[str]:
    links: List[str] = []
    for tag in soup.find_all(href=True):
        href = tag["href"].strip()
        if href.startswith(("#", "javascript:", "mailto:")):
            continue
        if href.startswith("/"):
            href = urljoin(base_url, href)
        if href.startswith("http"):
            links.append(href)
    return list(dict.fromkeys(links))[:MAX_LINKS]


def _body_text_length(soup: BeautifulSoup) -> int:
    body = soup.body or soup
    for tag in body.find_all(["script", "style", "noscript"]):
        tag.decompose()
    return len(_clean(body.get_text(" ")))


def parse_html(html: str, url: str) -> PageReadResult:
    """Parse title, description, headings, nav labels, links and text length."""
    soup = BeautifulSoup(html, "html.parser")
    title_tag = soup.find("title")
    description = (
        _meta_content(soup, name="description")
        or _meta_content(soup, property="og:description")
    )
    result = PageReadResult(
        url=url,
        ok=True,
        title=_clean(title_tag.get_text()) if title_tag else None,
        meta_description=description,
        headings=_extract_headings(soup),
        nav_labels=_extract_nav_labels(soup),
        links=_extract_links(soup, url),
    )
    result.text_length = _body_text_length(soup)
    return result


def classify_status(status_code: int) -> Tuple[FetchStatus, str]:
    """Map a non-2xx status to an attempt status and a human note."""
    if status_code == 403:
        return FetchStatus.BLOCKED, "Blocked (403 Forbidden)"
    if status_code == 401:
        return FetchStatus.BLOCKED, "Blocked (401 Unauthorized)"
    if status_code == 429:
        return FetchStatus.BLOCKED, "Rate limited (429)"
    if status_code in (404, 410):
        return FetchStatus.NOT_FOUND, f"Not found ({status_code})"
    if status_code >= 500:
        return FetchStatus.ERROR, f"Server error ({status_code})"
    return FetchStatus.ERROR, f"HTTP {status_code}"


class PageReader:
    """Reads a site's home page and a few key sub-pages."""

    def __init__(self, client: httpx.AsyncClient, config: Optional[FetchConfig] = None):
        self.client = client
        self.config = config or get_settings().fetch

    @property
    def headers(self) -> dict:
        return {
            "User-Agent": self.config.user_agent,
            "Accept": ACCEPT_HTML,
            "Accept-Language": "en-US,en;q=0.9",
        }

    async def fetch_page(self, url: str, timeout: Optional[float] = None) -> PageReadResult:
        """Stage A: direct fetch. Never raises."""
        timeout = timeout if timeout is not None else self.config.home_timeout
        try:
            response = await self.client.get(url, headers=self.headers, timeout=timeout,
                                             follow_redirects=True)
        except httpx.TimeoutException:
            return PageReadResult(url=url, fail_status=FetchStatus.TIMEOUT,
                                  fail_reason=f"Timeout ({int(timeout * 1000)}ms)")
        except httpx.HTTPError as e:
            return PageReadResult(url=url, fail_status=FetchStatus.ERROR,
                                  fail_reason=describe_http_error(e))

        if not response.is_success:
            status, reason = classify_status(response.status_code)
            return PageReadResult(url=url, status_code=response.status_code,
                                  fail_status=status, fail_reason=reason)

        content_type = response.headers.get("content-type", "")
        if "text/html" not in content_type and "xhtml" not in content_type:
            return PageReadResult(
                url=url,
                status_code=response.status_code,
                fail_status=FetchStatus.EMPTY,
                fail_reason=f"Non-HTML response ({content_type.split(';')[0] or 'unknown'})",
            )

        final_url = str(response.url) or url
        result = parse_html(response.text[: self.config.max_html_chars], final_url)
        result.status_code = response.status_code
        return result

    async def render_page(self, url: str) -> PageReadResult:
        """Stage B: headless render; returns a failed result when disabled or unavailable."""
        empty = PageReadResult(url=url, method="playwright")
        if not self.config.enable_playwright:
            return empty
        try:
            from playwright.async_api import async_playwright
        except ImportError:
            logger.warning("playwright_not_installed", url=url)
            empty.fail_reason = "Playwright not installed"
            return empty

        try:
            async with async_playwright() as pw:
                browser = await pw.chromium.launch(headless=True)
                try:
                    page = await browser.new_page(user_agent=self.config.user_agent)
                    await page.goto(url, wait_until="domcontentloaded",
                                    timeout=int(self.config.playwright_timeout * 1000))
                    await page.wait_for_timeout(2000)
                    html = await page.content()
                finally:
                    await browser.close()
        except Exception as e:
            logger.warning("playwright_render_failed", url=url, error=str(e)[:120])
            empty.fail_reason = f"Render failed: {str(e)[:60]}"
            return empty

        result = parse_html(html[: self.config.max_html_chars], url)
        result.method = "playwright"
        return result

    async def read_page(self, url: str, timeout: Optional[float] = None) -> PageReadResult:
        """Fetch, then fall back to rendering when the fetched page is thin."""
        fetched = await self.fetch_page(url, timeout)
        if not fetched.is_thin or not self.config.enable_playwright:
            return fetched

        rendered = await self.render_page(url)
        if rendered.ok and (not rendered.is_thin or rendered.text_length > fetched.text_length):
            return rendered
        return fetched

    async def _head_ok(self, url: str) -> Tuple[str, bool, int]:
        try:
            response = await self.client.head(
                url,
                headers={"User-Agent": self.config.user_agent, "Accept": ACCEPT_HTML},
                timeout=self.config.probe_timeout,
                follow_redirects=True,
            )
        except httpx.HTTPError:
            return url, False, 0
        return url, response.is_success, response.status_code

    async def probe_common_sub_pages(
        self, site_url: str, max_pages: int
    ) -> Tuple[List[PageReadResult], List[PageFetchAttempt]]:
        """HEAD-probe common paths concurrently, then GET up to ``max_pages`` hits."""
        origin = origin_of(site_url)
        if not origin or max_pages <= 0:
            return [], []

        probes = await asyncio.gather(*(self._head_ok(f"{origin}{path}") for path in COMMON_KEY_PATHS))

        pages: List[PageReadResult] = []
        attempts: List[PageFetchAttempt] = []
        hits = [(url, status) for url, ok, status in probes if ok][:max_pages]
        for url, status in hits:
            result = await self.fetch_page(url, self.config.subpage_timeout)
            attempt = result.to_attempt()
            if not result.ok:
                attempt.status = FetchStatus.EMPTY
                attempt.http_status = result.status_code or status
            attempts.append(attempt)
            if result.ok:
                pages.append(result)

        attempted = {a.url for a in attempts}
        for url, ok, status in probes:
            if ok or url in attempted:
                continue
            if status == 0:
                fetch_status = FetchStatus.TIMEOUT
            else:
                fetch_status = classify_status(status)[0]
            attempts.append(PageFetchAttempt(url=url, status=fetch_status, http_status=status or None))
        return pages, attempts

    @track_performance("read_key_pages")
    async def read_key_pages(self, site_url: str) -> KeyPagesResult:
        """
        Read the home page plus up to 3 key sub-pages.

        Sub-pages come from home page links matching the key-page pattern;
        when fewer than 2 are found, common paths are probed instead.
        """
        attempts: List[PageFetchAttempt] = []
        home = await self.read_page(site_url, self.config.home_timeout)
        playwright_used = home.method == "playwright"
        attempts.append(home.to_attempt())

        key_urls = [l for l in home.links if KEY_PAGE_RE.search(l)][:MAX_KEY_PAGES] if home.ok else []

        fetched = await asyncio.gather(
            *(self.fetch_page(url, self.config.subpage_timeout) for url in key_urls)
        )
        key_pages: List[PageReadResult] = []
        renders = 1 if playwright_used else 0
        for result in fetched:
            attempts.append(result.to_attempt())
            if not result.is_thin:
                key_pages.append(result)
                continue
            if self.config.enable_playwright and renders < MAX_PLAYWRIGHT_SUBPAGES:
                rendered = await self.render_page(result.url)
                if rendered.ok:
                    playwright_used = True
                    renders += 1
                    attempts.append(rendered.to_attempt())
                    key_pages.append(rendered)
                    continue
            if result.ok:
                key_pages.append(result)

        if len(key_pages) < 2:
            needed = MAX_KEY_PAGES - len(key_pages)
            known = {site_url, home.url, *key_urls, *(p.url for p in key_pages)}
            probed, probe_attempts = await self.probe_common_sub_pages(site_url, needed)
            for page in probed:
                if page.url not in known:
                    key_pages.append(page)
                    known.add(page.url)
            seen_attempts = {a.url for a in attempts}
            attempts.extend(a for a in probe_attempts if a.url not in seen_attempts)

        successful = ([home] if home.ok else []) + key_pages
        total_headings = sum(len(p.headings) for p in successful)
        thin_content = total_headings < 3 and (home.text_length < THIN_HOME_TEXT_CHARS if home.ok else True)

        thin_note = None
        if not home.ok:
            thin_note = f"Homepage: {home.fail_reason}" if home.fail_reason else "Homepage returned no content"
            if key_pages:
                thin_note += f" (but {len(key_pages)} sub-page(s) OK)"
        elif thin_content:
            thin_note = (
                "Content appears JS-rendered even after Playwright"
                if self.config.enable_playwright
                else "Content appears JS-rendered; try enabling Playwright (ENABLE_PLAYWRIGHT=true)"
            )

        logger.info(
            "key_pages_read",
            url=site_url,
            pages=len(successful),
            headings=total_headings,
            attempted=len(attempts),
            thin=thin_content,
            playwright=playwright_used,
        )
        return KeyPagesResult(
            homepage=home if home.ok else None,
            key_pages=key_pages,
            playwright_used=playwright_used,
            total_pages=len(successful),
            total_headings=total_headings,
            attempts=attempts,
            thin_content=thin_content,
            thin_note=thin_note,
        )
