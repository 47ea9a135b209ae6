"""Caching layer - Cache implementations for reducing provider calls."""

from sidea.application.cache.base_cache import BaseCache, CacheEntry, InMemoryCache
from sidea.application.cache.provider_cache import (
    CATALOGUE_TTL,
    IMAGE_LOCATION_TTL,
    OPEN_METADATA_TTL,
    ProviderCache,
    make_key,
)

__all__ = [
    "BaseCache",
    "CATALOGUE_TTL",
    "CacheEntry",
    "IMAGE_LOCATION_TTL",
    "InMemoryCache",
    "OPEN_METADATA_TTL",
    "ProviderCache",
    "make_key",
]
