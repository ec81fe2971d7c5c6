"""
Product Hunt GraphQL client.

Keyword mode queries up to three topics and collects at most 12 distinct
products; when that yields fewer than 6 the trending feed is merged in.
Responses are cached in memory for 10 minutes. Public methods never raise.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import httpx
import structlog

from bouchenator.core.config import get_settings
from bouchenator.core.models import PHInspiration
from bouchenator.intelligence.cache import TTLCache

logger = structlog.get_logger(__name__)

_POST_FIELDS = """
      node {
        name
        tagline
        url
        topics { edges { node { name } } }
      }"""

TRENDING_QUERY = "{ posts(order: RANKING, first: 12) { edges {%s } } }" % _POST_FIELDS

TOPIC_QUERY = (
    "query($topic: String!) { posts(order: RANKING, first: 6, topic: $topic) { edges {%s } } }"
    % _POST_FIELDS
)

MAX_PRODUCTS = 12
MIN_KEYWORD_PRODUCTS = 6
MAX_TOPIC_QUERIES = 3
TRENDING_KEY = "__trending__"

_ph_cache: Optional[TTLCache] = None


def get_product_hunt_cache() -> TTLCache:
    global _ph_cache
    if _ph_cache is None:
        _ph_cache = TTLCache("product_hunt", get_settings().evidence.product_hunt_cache_ttl)
    return _ph_cache


@dataclass
class PHFetchResult:
    """Products plus how they were obtained."""

    products: List[PHInspiration] = field(default_factory=list)
    mode_used: str = "trending"
    keywords: List[str] = field(default_factory=list)
    from_cache: bool = False
    error: Optional[str] = None


def parse_posts(payload: Dict[str, Any]) -> List[PHInspiration]:
    edges = (((payload or {}).get("data") or {}).get("posts") or {}).get("edges") or []
    products = []
    for edge in edges:
        node = edge.get("node") or {}
        if not node.get("name"):
            continue
        products.append(
            PHInspiration(
                name=node["name"],
                tagline=node.get("tagline") or "",
                url=node.get("url"),
                topics=[t["node"]["name"] for t in (node.get("topics") or {}).get("edges") or []
                        if (t.get("node") or {}).get("name")],
            )
        )
    return products


def dedup_products(products: List[PHInspiration]) -> List[PHInspiration]:
    seen = set()
    unique = []
    for product in products:
        key = product.name.lower()
        if key not in seen:
            seen.add(key)
            unique.append(product)
    return unique


class ProductHuntClient:
    def __init__(self, client: httpx.AsyncClient, token: Optional[str] = None,
                 cache: Optional[TTLCache] = None):
        config = get_settings().evidence
        self.client = client
        self.token = token if token is not None else config.product_hunt_token
        self.api_url = config.product_hunt_api_url
        self.timeout = config.product_hunt_timeout
        self.cache = cache if cache is not None else get_product_hunt_cache()

    @property
    def configured(self) -> bool:
        return bool(self.token)

    async def _call(self, query: str,
                    variables: Optional[Dict[str, Any]] = None) -> Tuple[List[PHInspiration], Optional[str]]:
        """Parsed posts and the failure reason, if any."""
        body: Dict[str, Any] = {"query": query}
        if variables:
            body["variables"] = variables
        try:
            response = await self.client.post(
                self.api_url,
                json=body,
                headers={"Authorization": f"Bearer {self.token}", "Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            logger.warning("product_hunt_call_failed", error=type(e).__name__)
            return [], type(e).__name__
        if not response.is_success:
            logger.warning("product_hunt_call_failed", status=response.status_code)
            return [], f"HTTP {response.status_code}"
        try:
            return parse_posts(response.json()), None
        except ValueError:
            return [], "invalid JSON"

    async def _trending(self) -> Tuple[List[PHInspiration], Optional[str]]:
        cached = self.cache.get(TRENDING_KEY)
        if cached is not None:
            return cached, None
        posts, error = await self._call(TRENDING_QUERY)
        if posts:
            self.cache.set(TRENDING_KEY, posts)
        return posts, error

    async def fetch_trending(self) -> List[PHInspiration]:
        """Top-ranked posts, cached; empty without a token."""
        if not self.configured:
            return []
        posts, _ = await self._trending()
        return posts

    async def fetch_by_keywords(self, keywords: List[str]) -> PHFetchResult:
        """Topic search on the top three keywords with trending backfill."""
        search_keywords = keywords[:MAX_TOPIC_QUERIES]
        if not self.configured:
            return PHFetchResult(keywords=search_keywords)

        error: Optional[str] = None
        collected: List[PHInspiration] = []
        all_cached = True
        for keyword in search_keywords:
            key = f"topic:{keyword.lower()}"
            results = self.cache.get(key)
            if results is None:
                all_cached = False
                results, call_error = await self._call(TOPIC_QUERY, {"topic": keyword})
                error = call_error or error
                if results:
                    self.cache.set(key, results)
            collected.extend(results)
            if len(dedup_products(collected)) >= MAX_PRODUCTS:
                break
        collected = dedup_products(collected)[:MAX_PRODUCTS]

        if len(collected) >= MIN_KEYWORD_PRODUCTS:
            return PHFetchResult(products=collected, mode_used="keyword", keywords=search_keywords,
                                 from_cache=all_cached and bool(search_keywords))

        trending_cached = self.cache.has(TRENDING_KEY)
        trending, trending_error = await self._trending()
        error = trending_error or error
        products = dedup_products(collected + trending)[:MAX_PRODUCTS] if trending else collected
        result = PHFetchResult(
            products=products,
            mode_used="keyword" if collected else "trending",
            keywords=search_keywords,
            from_cache=trending_cached and all_cached,
            error=error if not products else None,
        )
        logger.debug("product_hunt_fetched", mode=result.mode_used, products=len(products),
                     keywords=search_keywords)
        return result
