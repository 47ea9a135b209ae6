"""Provider result cache - cache-aside layer in front of every provider call.

Hey future me - this wraps a BaseCache and makes it SAFE for provider clients:

1. get()/set() NEVER raise. A broken backend (corrupt entry, Redis down, whatever comes
   next) degrades to "always miss" and a warning in the logs. Cache loss must never be
   user-visible beyond a slower next call!
2. cached(key, ttl, loader) is the cache-aside helper: check → call provider on miss →
   write through. None results are NOT stored, so "not found" is asked again next time.
3. TTL classes live here so the clients don't invent their own numbers.

Key layout: "<provider>:<operation>:<args>", e.g.
    discogs:search:pink floyd:20
    discogs:barcode:5099902987613
    musicbrainz:artist:radiohead
    coverartarchive:coverart:<mbid>
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from sidea.application.cache.base_cache import BaseCache, InMemoryCache

T = TypeVar("T")

logger = logging.getLogger(__name__)

DAY = 60 * 60 * 24

# Catalogue (Discogs) search and lookups
CATALOGUE_TTL = 7 * DAY
# Open metadata (MusicBrainz) search results
OPEN_METADATA_TTL = 30 * DAY
# Image location lookups (Cover Art Archive front cover URLs)
IMAGE_LOCATION_TTL = 30 * DAY


@dataclass
class ProviderCacheStats:
    """Hit/miss counters for monitoring."""

    hits: int = 0
    misses: int = 0
    errors: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return (self.hits / total) * 100


def make_key(provider: str, operation: str, *args: Any) -> str:
    """Build a namespaced cache key."""
    parts = [provider, operation, *(str(arg).strip().lower() for arg in args)]
    return ":".join(parts)


class ProviderCache:
    """Failure-absorbing cache shared by all provider clients."""

    def __init__(self, backend: BaseCache[str, Any] | None = None) -> None:
        self._backend: BaseCache[str, Any] = backend or InMemoryCache()
        self.stats = ProviderCacheStats()

    async def get(self, key: str) -> Any | None:
        """Return the cached value or None (miss, expired, or backend failure)."""
        try:
            value = await self._backend.get(key)
        except Exception as e:
            self.stats.errors += 1
            logger.warning(f"Cache get error for {key}: {e}")
            return None

        if value is None:
            self.stats.misses += 1
        else:
            self.stats.hits += 1
        return value

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        """Store a value; failures are logged and ignored."""
        try:
            await self._backend.set(key, value, ttl_seconds)
        except Exception as e:
            self.stats.errors += 1
            logger.warning(f"Cache set error for {key}: {e}")

    async def invalidate(self, key: str) -> None:
        """Drop a key; failures are logged and ignored."""
        try:
            await self._backend.delete(key)
        except Exception as e:
            self.stats.errors += 1
            logger.warning(f"Cache delete error for {key}: {e}")

    # Hey future me, the loader runs OUTSIDE any cache lock - a miss never waits longer than
    # the provider call itself. Two concurrent misses for the same key both hit the provider;
    # that's acceptable, the throttle keeps them polite.
    async def cached(
        self,
        key: str,
        ttl_seconds: int,
        loader: Callable[[], Awaitable[T]],
    ) -> T:
        """Cache-aside: return the cached value or load, store and return it."""
        hit = await self.get(key)
        if hit is not None:
            return hit  # type: ignore[no-any-return]

        value = await loader()
        if value is not None:
            await self.set(key, value, ttl_seconds)
        return value

    def get_stats(self) -> dict[str, Any]:
        return {
            "hits": self.stats.hits,
            "misses": self.stats.misses,
            "errors": self.stats.errors,
            "hit_rate": self.stats.hit_rate,
        }
