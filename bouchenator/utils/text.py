"""URL, naming and hashing helpers shared across the pipeline."""

from __future__ import annotations

import re
from typing import Optional
from urllib.parse import urlparse

import tldextract

# Offline extractor: uses the bundled public-suffix snapshot, never the network.
_EXTRACT = tldextract.TLDExtract(suffix_list_urls=())

_BARE_DOMAIN_RE = re.compile(r"^[a-z0-9][-a-z0-9]*\.[a-z]{2,}", re.IGNORECASE)


def is_url(text: str) -> bool:
    """True for ``http(s)://`` inputs and bare domains such as ``acme.io``."""
    t = text.strip().lower()
    return t.startswith("http://") or t.startswith("https://") or bool(_BARE_DOMAIN_RE.match(t))


def normalize_url(text: str) -> str:
    """Add a scheme and collapse an empty path to ``/``."""
    url = text.strip()
    if not url.startswith("http://") and not url.startswith("https://"):
        url = f"https://{url}"
    parsed = urlparse(url)
    if not parsed.netloc:
        return url
    if parsed.path in ("", "/") and not parsed.query:
        return f"{parsed.scheme}://{parsed.netloc}/"
    return url


def extract_domain_name(url: str) -> str:
    """Hostname without a leading ``www.``."""
    parsed = urlparse(url if url.startswith("http") else f"https://{url}")
    host = parsed.hostname or url
    return re.sub(r"^www\.", "", host)


def domain_from_url(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    host = urlparse(url).hostname
    return re.sub(r"^www\.", "", host) if host else None


def origin_of(url: str) -> Optional[str]:
    """``scheme://host[:port]`` of ``url``, or None when it has no host."""
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        return None
    return f"{parsed.scheme}://{parsed.netloc}"


def domain_to_name(domain: str) -> str:
    """Turn ``acme-labs.io`` into ``Acme Labs``."""
    ext = _EXTRACT(domain)
    label = ext.domain or re.sub(r"\.\w+$", "", domain)
    words = re.sub(r"[-_]", " ", label).split()
    return " ".join(w[:1].upper() + w[1:] for w in words)


def slugify(text: str, max_length: int = 40) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
    return slug[:max_length]


def string_hash(text: str) -> int:
    """
    Deterministic, platform-independent string hash.

    ``h = 31 * h + ord(c)`` for every character, wrapped to a signed 32-bit
    integer after each step; the absolute value is returned. Python's builtin
    ``hash`` is salted per process and must not be used for anything that has
    to be reproducible.
    """
    h = 0
    for ch in text:
        h = (31 * h + ord(ch)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return abs(h)
