"""
TTL caches for external evidence.

Theme results are cached per site origin and Product Hunt responses per
query, both in process memory with LRU eviction.
"""

import time
from typing import Any, Callable, Dict, Optional, Tuple

import structlog

logger = structlog.get_logger(__name__)


class CacheStats:
    """Track cache hit/miss counters."""

    def __init__(self):
        self.hits = 0
        self.misses = 0
        self.evictions = 0


class TTLCache:
    """
    In-memory cache with per-entry expiry.

    Args:
        name: Label used in log events
        default_ttl: Default TTL in seconds
        max_size: Maximum number of entries before LRU eviction
        clock: Monotonic time source, overridable in tests
    """

    def __init__(
        self,
        name: str,
        default_ttl: int,
        max_size: int = 500,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.default_ttl = default_ttl
        self.max_size = max_size
        self._clock = clock
        self._cache: Dict[str, Tuple[Any, float]] = {}
        self._access_times: Dict[str, float] = {}
        self.stats = CacheStats()

    def _expire(self, key: str) -> None:
        self._cache.pop(key, None)
        self._access_times.pop(key, None)
        self.stats.evictions += 1

    def has(self, key: str) -> bool:
        """True when a live entry exists; does not count as a hit."""
        entry = self._cache.get(key)
        if entry is None:
            return False
        if self._clock() >= entry[1]:
            self._expire(key)
            return False
        return True

    def get(self, key: str) -> Optional[Any]:
        """Cached value, or None if missing or expired."""
        if self.has(key):
            self._access_times[key] = self._clock()
            self.stats.hits += 1
            logger.debug("cache_hit", cache=self.name, key=key)
            return self._cache[key][0]
        self.stats.misses += 1
        return None

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        if key not in self._cache and len(self._cache) >= self.max_size:
            self._evict_lru()
        now = self._clock()
        self._cache[key] = (value, now + (ttl or self.default_ttl))
        self._access_times[key] = now

    def _evict_lru(self) -> None:
        if not self._access_times:
            return
        lru_key = min(self._access_times, key=self._access_times.get)
        self._expire(lru_key)
        logger.debug("cache_evicted", cache=self.name, key=lru_key)

    def __len__(self) -> int:
        return len(self._cache)
