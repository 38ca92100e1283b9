"""Keyed cache stores: local JSON files, a SQL table, and a fallback pair."""

from __future__ import annotations

import asyncio
import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Optional

from dateutil.parser import isoparse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from dashboard.config.database import build_session_factory
from dashboard.config.logging import sanitize_log_extra
from dashboard.config.settings import Settings
from dashboard.models.cache_entry import CacheRecord

logger = logging.getLogger(__name__)

_UNSAFE_KEY_CHARS = re.compile(r"[^a-z0-9_-]", re.IGNORECASE)


def sanitize_key(key: str) -> str:
    """Map an arbitrary cache key onto a filesystem and column safe token."""
    return _UNSAFE_KEY_CHARS.sub("_", key).lower()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class CacheEntry:
    """Serialized payload plus its storage window."""

    key: str
    payload: Any
    stored_at: datetime
    expires_at: Optional[datetime] = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now > self.expires_at


class CacheStore(ABC):
    """Keyed read/write interface the cache layer depends on."""

    @abstractmethod
    async def read(self, key: str) -> Optional[CacheEntry]:
        """Return the stored entry for *key*, or None when absent."""

    @abstractmethod
    async def write(self, entry: CacheEntry) -> None:
        """Store *entry*, replacing any previous value for its key."""


class FileCacheStore(CacheStore):
    """One JSON document per sanitized key under *directory*.

    Any read failure (missing file, unreadable file, corrupt JSON) is a miss.
    """

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory)

    def path_for(self, key: str) -> Path:
        return self._directory / f"{sanitize_key(key)}.json"

    async def read(self, key: str) -> Optional[CacheEntry]:
        return await asyncio.to_thread(self._read_sync, key)

    async def write(self, entry: CacheEntry) -> None:
        await asyncio.to_thread(self._write_sync, entry)

    def _read_sync(self, key: str) -> Optional[CacheEntry]:
        path = self.path_for(key)
        if not path.exists():
            return None
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
            expires_raw = raw.get("expiresAt")
            return CacheEntry(
                key=key,
                payload=raw.get("data"),
                stored_at=isoparse(raw["storedAt"]),
                expires_at=isoparse(expires_raw) if expires_raw else None,
            )
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as exc:
            logger.debug(
                "Ignoring unreadable cache file",
                extra=sanitize_log_extra(cache_key=key, path=str(path), error=str(exc)),
            )
            return None

    def _write_sync(self, entry: CacheEntry) -> None:
        self._directory.mkdir(parents=True, exist_ok=True)
        document = {
            "storedAt": entry.stored_at.isoformat(),
            "expiresAt": entry.expires_at.isoformat() if entry.expires_at else None,
            "data": entry.payload,
        }
        self.path_for(entry.key).write_text(json.dumps(document, indent=2), encoding="utf-8")


class DatabaseCacheStore(CacheStore):
    """Durable store backed by the `cache_entries` table."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    async def read(self, key: str) -> Optional[CacheEntry]:
        return await asyncio.to_thread(self._read_sync, key)

    async def write(self, entry: CacheEntry) -> None:
        await asyncio.to_thread(self._write_sync, entry)

    def _read_sync(self, key: str) -> Optional[CacheEntry]:
        with self._session_factory() as session:
            record = session.get(CacheRecord, sanitize_key(key))
            if record is None:
                return None
            return CacheEntry(
                key=key,
                payload=json.loads(record.payload),
                stored_at=_as_utc(record.stored_at),
                expires_at=_as_utc(record.expires_at) if record.expires_at else None,
            )

    def _write_sync(self, entry: CacheEntry) -> None:
        with self._session_factory() as session:
            try:
                session.merge(
                    CacheRecord(
                        key=sanitize_key(entry.key),
                        payload=json.dumps(entry.payload),
                        stored_at=entry.stored_at,
                        expires_at=entry.expires_at,
                    )
                )
                session.commit()
            except Exception:
                session.rollback()
                raise


class FallbackCacheStore(CacheStore):
    """Reads *primary* then *fallback*; writes both.

    Primary failures degrade silently to the fallback. Fallback write
    failures are best-effort and only logged.
    """

    def __init__(
        self,
        primary: CacheStore,
        fallback: CacheStore,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._primary = primary
        self._fallback = fallback
        self._clock = clock

    async def read(self, key: str) -> Optional[CacheEntry]:
        try:
            entry = await self._primary.read(key)
        except Exception as exc:
            logger.warning(
                "Durable cache read failed, using local cache",
                extra=sanitize_log_extra(cache_key=key, error=str(exc)),
            )
            entry = None

        if entry is not None and not entry.is_expired(self._clock()):
            return entry
        return await self._fallback.read(key)

    async def write(self, entry: CacheEntry) -> None:
        try:
            await self._primary.write(entry)
        except Exception as exc:
            logger.warning(
                "Durable cache write failed",
                extra=sanitize_log_extra(cache_key=entry.key, error=str(exc)),
            )

        try:
            await self._fallback.write(entry)
        except Exception as exc:
            logger.warning(
                "Local cache write failed",
                extra=sanitize_log_extra(cache_key=entry.key, error=str(exc)),
            )


def build_cache_store(settings: Settings, *, session_factory: Optional[sessionmaker] = None) -> CacheStore:
    """Compose the configured store: database plus file fallback, or file only."""

    file_store = FileCacheStore(settings.CACHE_DIR)
    if session_factory is None and not settings.DATABASE_URL:
        return file_store

    factory = session_factory
    if factory is None:
        try:
            factory = build_session_factory(str(settings.DATABASE_URL))
        except (SQLAlchemyError, ImportError) as exc:
            logger.warning(
                "Database cache unavailable, using local file cache only",
                extra=sanitize_log_extra(database_url=str(settings.DATABASE_URL), error=str(exc)),
            )
            return file_store

    logger.info("Using database cache with local file fallback")
    return FallbackCacheStore(DatabaseCacheStore(factory), file_store)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
