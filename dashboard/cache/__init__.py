"""Cache stores and the TTL cache layer."""

from dashboard.cache.layer import CacheLayer, scope_fingerprint
from dashboard.cache.stores import (
    CacheEntry,
    CacheStore,
    DatabaseCacheStore,
    FallbackCacheStore,
    FileCacheStore,
    build_cache_store,
    sanitize_key,
)

__all__ = [
    "CacheLayer",
    "scope_fingerprint",
    "CacheEntry",
    "CacheStore",
    "DatabaseCacheStore",
    "FallbackCacheStore",
    "FileCacheStore",
    "build_cache_store",
    "sanitize_key",
]
