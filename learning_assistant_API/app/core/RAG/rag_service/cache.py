"""
Response cache for the learning assistant.

Successful provider replies are memoized for a short TTL, keyed by a hash of
everything that determines the prompt.
"""

import hashlib
import json
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from loguru import logger


@dataclass
class CacheEntry:
    """A single cache entry with its absolute expiry time."""
    value: Any
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


def make_cache_key(fields: Dict[str, Any]) -> str:
    """
    Hash the prompt-determining fields into a cache key.

    Serialization is stable (sorted keys, compact separators), so the same
    fields always produce the same key.
    """
    stable = json.dumps(fields, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(stable.encode("utf-8")).hexdigest()


class ResponseCache:
    """
    Thread-safe, bounded TTL cache with insertion-order eviction.

    When an insert pushes the cache over ``max_size``, the entry that was
    inserted first is evicted. Reads never reorder entries and overwriting a
    key keeps its original position, so this is deliberately not an LRU.
    Expired entries are removed lazily, on the read that finds them.
    """

    def __init__(
        self,
        max_size: int = 200,
        ttl: float = 300.0,
        clock: Optional[Callable[[], float]] = None
    ):
        """
        Initialize the cache.

        Args:
            max_size: Maximum number of entries
            ttl: Time to live in seconds
            clock: Monotonic time source, injectable for tests
        """
        self.max_size = max_size
        self.ttl = ttl
        self._clock = clock or time.monotonic
        self._cache: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def get(self, key: str) -> Optional[Any]:
        """
        Get an item from the cache.

        Returns:
            Cached value or None if not found/expired
        """
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                self._misses += 1
                return None

            if entry.is_expired(self._clock()):
                del self._cache[key]
                self._misses += 1
                logger.debug(f"Expired cache entry: {key[:12]}")
                return None

            self._hits += 1
            return entry.value

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            # OrderedDict keeps an existing key's slot on reassignment
            self._cache[key] = CacheEntry(value=value, expires_at=self._clock() + self.ttl)

            if len(self._cache) > self.max_size:
                oldest_key, _ = self._cache.popitem(last=False)
                self._evictions += 1
                logger.debug(f"Evicted cache entry: {oldest_key[:12]}")

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._cache

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)

    def clear(self) -> None:
        """Clear all items from the cache."""
        with self._lock:
            self._cache.clear()
            self._hits = 0
            self._misses = 0
            self._evictions = 0
            logger.info("Response cache cleared")

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        with self._lock:
            total_requests = self._hits + self._misses
            hit_rate = self._hits / total_requests if total_requests > 0 else 0

            return {
                "size": len(self._cache),
                "max_size": self.max_size,
                "ttl_seconds": self.ttl,
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "hit_rate": hit_rate,
            }
