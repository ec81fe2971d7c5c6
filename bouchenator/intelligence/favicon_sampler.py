"""
Favicon dominant-color sampler.

Raster icons are decoded with Pillow and bucketed by quantized color;
saturated buckets outrank frequent gray ones. SVG icons are scanned for
fill/stroke hex values instead.
"""

from __future__ import annotations

import io
import re
from typing import Dict, List, Optional, Tuple
from urllib.parse import urljoin

import httpx
import structlog
from bs4 import BeautifulSoup
from PIL import Image, UnidentifiedImageError

from bouchenator.core.config import FetchConfig
from bouchenator.core.models import Theme, ThemeSource
from bouchenator.intelligence.theme import (
    DEFAULT_BG,
    DEFAULT_TEXT,
    RGB,
    derive_accent,
    is_brand_usable,
    is_near_black,
    is_near_white,
    rgb_to_hex,
    rgb_to_hsl,
)
from bouchenator.utils.text import origin_of

logger = structlog.get_logger(__name__)

FAVICON_SELECTORS = [
    'link[rel="icon"][type="image/png"]',
    'link[rel="apple-touch-icon"]',
    'link[rel="icon"][type="image/svg+xml"]',
    'link[rel="shortcut icon"]',
    'link[rel="icon"]',
]

SVG_HEX_RE = re.compile(r"(?:fill|stroke|stop-color|color)\s*[:=]\s*[\"']?(#[0-9a-fA-F]{3,8})\b",
                        re.IGNORECASE)


def find_favicon_url(soup: BeautifulSoup, site_url: str) -> str:
    """Declared icon URL in preference order, else ``/favicon.ico`` on the origin."""
    for selector in FAVICON_SELECTORS:
        tag = soup.select_one(selector)
        if tag is not None and tag.get("href"):
            return urljoin(site_url, tag["href"])
    origin = origin_of(site_url)
    return f"{origin}/favicon.ico" if origin else f"{site_url.rstrip('/')}/favicon.ico"


def _quantize(v: int) -> int:
    return round(v / 24) * 24


def _bucket_mean(bucket: List[int]) -> RGB:
    count, r, g, b = bucket
    return round(r / count), round(g / count), round(b / count)


def _bucket_score(bucket: List[int]) -> float:
    sat = rgb_to_hsl(*_bucket_mean(bucket))[1]
    return bucket[0] * (1 + sat * 3)


def extract_dominant_color(data: bytes) -> Optional[RGB]:
    """
    Brand-like dominant color of a raster image.

    Transparent, near-white and near-black pixels are ignored. Returns the
    best-scoring brand-usable bucket, else the best bucket, else None.
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            image = img.convert("RGBA")
    except (UnidentifiedImageError, OSError, ValueError) as e:
        logger.debug("favicon_decode_failed", error=str(e))
        return None

    width, height = image.size
    if width < 1 or height < 1:
        return None
    step = max(1, min(width, height) // 32)
    pixels = image.load()

    buckets: Dict[Tuple[int, int, int], List[int]] = {}
    for y in range(0, height, step):
        for x in range(0, width, step):
            r, g, b, a = pixels[x, y]
            if a < 128 or is_near_white(r, g, b) or is_near_black(r, g, b):
                continue
            bucket = buckets.setdefault((_quantize(r), _quantize(g), _quantize(b)), [0, 0, 0, 0])
            bucket[0] += 1
            bucket[1] += r
            bucket[2] += g
            bucket[3] += b

    if not buckets:
        return None

    ranked = sorted(buckets.values(), key=_bucket_score, reverse=True)
    for bucket in ranked:
        rgb = _bucket_mean(bucket)
        if is_brand_usable(rgb_to_hex(*rgb)):
            return rgb
    return _bucket_mean(ranked[0])


def extract_color_from_svg(svg_text: str) -> Optional[str]:
    for match in SVG_HEX_RE.finditer(svg_text):
        if is_brand_usable(match.group(1)):
            return match.group(1)
    return None


def _favicon_theme(primary: str, note: str, favicon_url: str) -> Theme:
    return Theme(
        primary=primary,
        accent=derive_accent(primary),
        bg=DEFAULT_BG,
        text=DEFAULT_TEXT,
        source=ThemeSource.FAVICON,
        note=note,
        favicon_url=favicon_url,
    )


async def sample_theme_from_favicon(
    client: httpx.AsyncClient, html: str, site_url: str, config: FetchConfig
) -> Optional[Theme]:
    """Theme from the site's favicon, or None when no brand-usable color is found."""
    favicon_url = find_favicon_url(BeautifulSoup(html, "html.parser"), site_url)
    try:
        response = await client.get(favicon_url, headers={"User-Agent": config.user_agent},
                                    timeout=config.favicon_timeout, follow_redirects=True)
    except httpx.HTTPError as e:
        logger.debug("favicon_fetch_failed", url=favicon_url, error=type(e).__name__)
        return None
    if not response.is_success:
        return None

    content_type = response.headers.get("content-type", "")
    if "svg" in content_type or favicon_url.endswith(".svg"):
        color = extract_color_from_svg(response.text)
        return _favicon_theme(color, "Extracted color from SVG favicon", favicon_url) if color else None

    if "html" in content_type or len(response.content) < 10:
        return None

    dominant = extract_dominant_color(response.content)
    if dominant is None:
        return None
    primary = rgb_to_hex(*dominant)
    if not is_brand_usable(primary):
        return None
    return _favicon_theme(primary, "Sampled dominant color from favicon", favicon_url)
