"""
TTLCache - Size-bounded in-memory cache with per-entry expiry.

Features:
- LRU eviction once ``max_size`` entries are stored
- TTL (Time To Live) for cache entries, overridable per entry
- Expired entries are never returned and are dropped on access
"""

import hashlib
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Generic, TypeVar

from loguru import logger

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    """A single cache entry with metadata."""

    data: T
    timestamp: datetime
    ttl: timedelta

    def is_expired(self, now: datetime) -> bool:
        """Check if entry is past its TTL."""
        return now >= self.timestamp + self.ttl


class TTLCache:
    """
    In-memory cache with TTL and LRU eviction.

    All operations are synchronous: there is no suspension point between a
    lookup and the matching write, so no lock is needed under asyncio.

    Usage:
        cache = TTLCache(max_size=100, default_ttl=timedelta(minutes=5))

        value = cache.get("my_key")
        if value is None:
            value = await fetch_data()
            cache.set("my_key", value)
    """

    def __init__(
        self,
        max_size: int = 100,
        default_ttl: timedelta = timedelta(minutes=5),
        clock: Callable[[], datetime] = datetime.now,
        debug: bool = False,
    ):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self._memory: OrderedDict[str, CacheEntry[Any]] = OrderedDict()
        self._max_size = max_size
        self._default_ttl = default_ttl
        self._clock = clock
        self._debug = debug
        self._stats = CacheStats()

    @staticmethod
    def generate_key(prefix: str, params: dict[str, Any] | None = None) -> str:
        """Generate a deterministic cache key from a prefix and params."""
        if params:
            sorted_params = "&".join(f"{k}={v}" for k, v in sorted(params.items()))
            full_key = f"{prefix}?{sorted_params}"
        else:
            full_key = prefix

        # Hash long keys
        if len(full_key) > 200:
            hash_val = hashlib.md5(full_key.encode()).hexdigest()[:16]
            return f"{prefix[:40]}#{hash_val}"

        return full_key

    def get(self, key: str) -> Any | None:
        """
        Get value from cache.

        Returns the stored value, or None on miss or expiry.
        """
        entry = self._memory.get(key)
        if entry is None:
            self._stats.misses += 1
            self._log(f"MISS: {key[:50]}...")
            return None

        if entry.is_expired(self._clock()):
            del self._memory[key]
            self._stats.misses += 1
            self._log(f"EXPIRED: {key[:50]}...")
            return None

        self._memory.move_to_end(key)
        self._stats.hits += 1
        self._log(f"HIT: {key[:50]}...")
        return entry.data

    def has(self, key: str) -> bool:
        """Check for a present, unexpired entry without touching stats."""
        entry = self._memory.get(key)
        if entry is None:
            return False
        if entry.is_expired(self._clock()):
            del self._memory[key]
            return False
        return True

    def set(self, key: str, data: Any, ttl: timedelta | None = None) -> None:
        """
        Set value in cache.

        Args:
            key: Cache key
            data: Data to cache
            ttl: Time to live (uses default if not specified)
        """
        ttl = self._default_ttl if ttl is None else ttl

        if key in self._memory:
            self._memory.move_to_end(key)
        elif len(self._memory) >= self._max_size:
            self._evict_oldest()

        self._memory[key] = CacheEntry(data=data, timestamp=self._clock(), ttl=ttl)
        self._log(f"SET: {key[:50]}... (TTL: {ttl.total_seconds()}s)")

    def delete(self, key: str) -> bool:
        """Delete a specific key from cache."""
        if key in self._memory:
            del self._memory[key]
            self._log(f"DELETE: {key[:50]}...")
            return True
        return False

    def invalidate(self, pattern: str) -> int:
        """
        Invalidate all keys matching a pattern.

        Args:
            pattern: Substring to match in keys

        Returns:
            Number of entries invalidated
        """
        keys_to_delete = [k for k in self._memory if pattern in k]
        for key in keys_to_delete:
            del self._memory[key]

        if keys_to_delete:
            self._log(f"INVALIDATE: {len(keys_to_delete)} entries matching '{pattern}'")

        return len(keys_to_delete)

    def clear(self) -> None:
        """Clear all cache entries."""
        count = len(self._memory)
        self._memory.clear()
        self._log(f"CLEAR: {count} entries removed")

    def cleanup_expired(self) -> int:
        """Remove all expired entries. Returns count of removed entries."""
        now = self._clock()
        expired_keys = [k for k, v in self._memory.items() if v.is_expired(now)]
        for key in expired_keys:
            del self._memory[key]

        if expired_keys:
            self._log(f"CLEANUP: {len(expired_keys)} expired entries removed")

        return len(expired_keys)

    def _evict_oldest(self) -> None:
        """Evict the least recently used entry."""
        if not self._memory:
            return

        oldest_key, _ = self._memory.popitem(last=False)
        self._stats.evictions += 1
        self._log(f"EVICT: {oldest_key[:50]}...")

    def __len__(self) -> int:
        return len(self._memory)

    def get_stats(self) -> "CacheStats":
        """Get cache statistics."""
        self._stats.size = len(self._memory)
        self._stats.max_size = self._max_size
        return self._stats

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[TTLCache] {message}")


@dataclass
class CacheStats:
    """Cache statistics."""

    hits: int = 0
    misses: int = 0
    evictions: int = 0
    size: int = 0
    max_size: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate."""
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "size": self.size,
            "max_size": self.max_size,
            "hit_rate": f"{self.hit_rate:.2%}",
        }
