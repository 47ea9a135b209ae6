"""Base cache interface and in-memory implementation."""

import asyncio
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

K = TypeVar("K")  # Key type
V = TypeVar("V")  # Value type


@dataclass
class CacheEntry(Generic[V]):
    """Cache entry with value and absolute expiry time."""

    key: str
    value: V
    expires_at: float

    # Hey future me, expiry is an ABSOLUTE timestamp (created + ttl) computed at set() time.
    # The clock is passed in so tests can fast-forward 30 days without sleeping.
    def is_expired(self, now: float) -> bool:
        """Check if cache entry is expired."""
        return now >= self.expires_at


class BaseCache(ABC, Generic[K, V]):
    """Base cache interface for all cache implementations."""

    @abstractmethod
    async def get(self, key: K) -> V | None:
        """Get value from cache.

        Args:
            key: Cache key

        Returns:
            Cached value if found and not expired, None otherwise
        """
        pass

    @abstractmethod
    async def set(self, key: K, value: V, ttl_seconds: int = 3600) -> None:
        """Set value in cache.

        Args:
            key: Cache key
            value: Value to cache
            ttl_seconds: Time to live in seconds
        """
        pass

    @abstractmethod
    async def delete(self, key: K) -> bool:
        """Delete value from cache.

        Returns:
            True if deleted, False if not found
        """
        pass

    @abstractmethod
    async def clear(self) -> None:
        """Clear all entries from cache."""
        pass


class InMemoryCache(BaseCache[str, Any]):
    """In-memory cache implementation using a dictionary.

    Cache loss (restart) is fine here - the only consequence is a slower next call.
    """

    # Listen up future me, this is IN-MEMORY ONLY! Server restart = all cache lost. The _lock is
    # CRITICAL for async safety - always use "async with self._lock" before touching self._cache!
    # max_entries bounds memory: when full we drop expired entries first, then the oldest insert.
    def __init__(
        self,
        max_entries: int = 10_000,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize in-memory cache."""
        self._cache: dict[str, CacheEntry[Any]] = {}
        self._lock = asyncio.Lock()
        self._max_entries = max_entries
        self._clock = clock

    # Yo, get() evicts on read: an expired entry is deleted and reported as a miss.
    async def get(self, key: str) -> Any | None:
        """Get value from cache."""
        async with self._lock:
            entry = self._cache.get(key)
            if not entry:
                return None

            if entry.is_expired(self._clock()):
                del self._cache[key]
                return None

            return entry.value

    async def set(self, key: str, value: Any, ttl_seconds: int = 3600) -> None:
        """Set value in cache (always overwrites)."""
        async with self._lock:
            if key not in self._cache and len(self._cache) >= self._max_entries:
                self._evict_locked()
            self._cache[key] = CacheEntry(
                key=key,
                value=value,
                expires_at=self._clock() + ttl_seconds,
            )

    def _evict_locked(self) -> None:
        now = self._clock()
        expired = [k for k, entry in self._cache.items() if entry.is_expired(now)]
        for k in expired:
            del self._cache[k]
        if len(self._cache) >= self._max_entries:
            # dicts keep insertion order - first key is the oldest write
            oldest = next(iter(self._cache))
            del self._cache[oldest]

    async def delete(self, key: str) -> bool:
        """Delete value from cache."""
        async with self._lock:
            if key in self._cache:
                del self._cache[key]
                return True
            return False

    async def clear(self) -> None:
        """Clear all entries from cache."""
        async with self._lock:
            self._cache.clear()

    async def cleanup_expired(self) -> int:
        """Remove expired entries from cache.

        Returns:
            Number of entries removed
        """
        async with self._lock:
            now = self._clock()
            expired_keys = [
                key for key, entry in self._cache.items() if entry.is_expired(now)
            ]
            for key in expired_keys:
                del self._cache[key]
            return len(expired_keys)

    def get_stats(self) -> dict[str, Any]:
        """Get cache statistics (unlocked, for monitoring only)."""
        now = self._clock()
        total_entries = len(self._cache)
        expired_entries = sum(
            1 for entry in self._cache.values() if entry.is_expired(now)
        )

        return {
            "total_entries": total_entries,
            "active_entries": total_entries - expired_entries,
            "expired_entries": expired_entries,
        }
