"""
Local memory cache for menu builder data.

Provides an in-memory LRU cache with per-entry TTL. The menu loader
uses it as a read-through cache so a previously opened menu can be
shown immediately while fresh data is fetched.
"""

import time
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional
from collections import OrderedDict

logger = logging.getLogger(__name__)


class LRUCache:
    """Asyncio-safe LRU (Least Recently Used) cache with expiry."""

    def __init__(
        self,
        max_size: int = 100,
        ttl_seconds: int = 300,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self.cache: "OrderedDict[str, tuple[Any, float]]" = OrderedDict()
        self.lock = asyncio.Lock()
        self.stats = {
            "hits": 0,
            "misses": 0,
            "evictions": 0,
            "expirations": 0,
            "loads": 0,
        }

    async def get(self, key: str) -> Optional[Any]:
        """Get value from cache."""
        async with self.lock:
            return self._get_unlocked(key)

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """Set value in cache."""
        async with self.lock:
            self._set_unlocked(key, value, ttl)

    async def get_or_load(
        self,
        key: str,
        loader: Callable[[], Awaitable[Any]],
        ttl: Optional[int] = None,
    ) -> Any:
        """
        Read-through lookup.

        Returns the cached value when present, otherwise awaits ``loader``
        and caches its result. Loader errors propagate and nothing is
        cached. ``None`` results are not cached.
        """
        cached = await self.get(key)
        if cached is not None:
            return cached

        value = await loader()
        self.stats["loads"] += 1
        if value is not None:
            await self.set(key, value, ttl)
        return value

    async def delete(self, key: str) -> bool:
        """Delete key from cache."""
        async with self.lock:
            if key in self.cache:
                del self.cache[key]
                return True
            return False

    async def clear(self) -> None:
        """Clear all cache entries."""
        async with self.lock:
            self.cache.clear()

    async def size(self) -> int:
        """Get current cache size."""
        async with self.lock:
            return len(self.cache)

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        total_requests = self.stats["hits"] + self.stats["misses"]
        hit_rate = (
            (self.stats["hits"] / total_requests * 100)
            if total_requests > 0
            else 0
        )

        return {
            **self.stats,
            "size": len(self.cache),
            "max_size": self.max_size,
            "hit_rate": f"{hit_rate:.2f}%",
        }

    def _get_unlocked(self, key: str) -> Optional[Any]:
        if key not in self.cache:
            self.stats["misses"] += 1
            return None

        value, expiry_time = self.cache[key]

        # Check if expired
        if self.clock() > expiry_time:
            del self.cache[key]
            self.stats["expirations"] += 1
            self.stats["misses"] += 1
            return None

        # Move to end (most recently used)
        self.cache.move_to_end(key)
        self.stats["hits"] += 1
        return value

    def _set_unlocked(self, key: str, value: Any, ttl: Optional[int]) -> None:
        ttl = ttl or self.ttl_seconds
        expiry_time = self.clock() + ttl

        if key in self.cache:
            del self.cache[key]

        # Remove oldest items if at capacity
        while len(self.cache) >= self.max_size:
            oldest_key = next(iter(self.cache))
            del self.cache[oldest_key]
            self.stats["evictions"] += 1
            logger.debug(f"Evicted cache entry {oldest_key}")

        self.cache[key] = (value, expiry_time)
        self.cache.move_to_end(key)


__all__ = ["LRUCache"]
