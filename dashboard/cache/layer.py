"""TTL cache wrapper around a keyed store."""

from __future__ import annotations

import hashlib
import logging
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Iterable, Optional

from dashboard.cache.stores import CacheEntry, CacheStore, utcnow
from dashboard.config.logging import sanitize_log_extra

logger = logging.getLogger(__name__)


def scope_fingerprint(names: Iterable[str]) -> str:
    """Short content hash of a set of scoping names (order-insensitive)."""
    joined = "\n".join(sorted(names))
    return hashlib.sha1(joined.encode("utf-8")).hexdigest()[:12]


class CacheLayer:
    """Read-through cache with TTL expiry and force refresh."""

    def __init__(self, store: CacheStore, *, clock: Callable[[], datetime] = utcnow) -> None:
        self._store = store
        self._clock = clock

    async def read(self, key: str) -> Any:
        """Return the cached value for *key*, or None on miss or expiry."""
        entry = await self._store.read(key)
        if entry is None or entry.is_expired(self._clock()):
            return None
        return entry.payload

    async def write(self, key: str, value: Any, ttl_seconds: Optional[float]) -> None:
        """Store *value*. A falsy ttl means the entry never expires."""
        now = self._clock()
        entry = CacheEntry(
            key=key,
            payload=value,
            stored_at=now,
            expires_at=now + timedelta(seconds=ttl_seconds) if ttl_seconds else None,
        )
        try:
            await self._store.write(entry)
        except Exception as exc:
            logger.warning(
                "Cache write failed",
                extra=sanitize_log_extra(cache_key=key, error=str(exc)),
            )

    async def with_cache(
        self,
        key: str,
        ttl_seconds: Optional[float],
        producer: Callable[[], Awaitable[Any]],
        *,
        force: bool = False,
    ) -> Any:
        if not force:
            cached = await self.read(key)
            if cached is not None:
                logger.debug("Cache hit", extra=sanitize_log_extra(cache_key=key))
                return cached

        value = await producer()
        await self.write(key, value, ttl_seconds)
        return value
