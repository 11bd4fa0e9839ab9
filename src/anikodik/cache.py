"""Freshness cache for anime detail records.

Detail lookups are expensive (they carry the full season/episode tree), so
results are kept in the local store under ``anime_cache_<id>``. Each entry
records when it was written; freshness is decided at read time against the
cache's TTL, so changing the TTL applies to entries already on disk.

Stored value (JSON string):
    {
        "cached_at": "2025-01-25T10:00:00+00:00",
        "data": { ...Anime.model_dump(mode="json")... }
    }
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from anikodik.storage import KeyValueStore, PersistenceError

logger = logging.getLogger(__name__)

# Detail records are refetched once a day
DETAIL_TTL_HOURS = 24

DETAIL_KEY_PREFIX = "anime_cache_"


@dataclass
class CacheEntry:
    """A cached value together with its freshness."""

    value: dict[str, Any]
    cached_at: datetime
    is_fresh: bool

    @property
    def age(self) -> timedelta:
        """Time elapsed since the entry was written."""
        return datetime.now(UTC) - self.cached_at


@dataclass
class CacheStats:
    """Statistics about the cache."""

    total_entries: int
    fresh_entries: int
    expired_entries: int
    oldest_entry: datetime | None
    newest_entry: datetime | None


class DetailCache:
    """TTL cache over a key/value store.

    ``lookup`` reports hits together with their freshness; ``get`` only
    returns fresh values and discards stale ones, so callers refetch.
    A cache without a store is a permanent miss.
    """

    def __init__(
        self,
        store: KeyValueStore | None,
        ttl_hours: float = DETAIL_TTL_HOURS,
        key_prefix: str = DETAIL_KEY_PREFIX,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the cache.

        Args:
            store: Backing store, or None when no persistence is available.
            ttl_hours: Freshness window in hours.
            key_prefix: Prefix for store keys.
            clock: Returns the current (aware) time. Defaults to UTC now.
        """
        self.store = store
        self.ttl = timedelta(hours=ttl_hours)
        self.key_prefix = key_prefix
        self._clock = clock or (lambda: datetime.now(UTC))

    def _make_key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    def _decode(self, raw: str) -> tuple[dict[str, Any], datetime] | None:
        try:
            payload = json.loads(raw)
            cached_at = datetime.fromisoformat(payload["cached_at"])
            data = payload["data"]
        except (ValueError, KeyError, TypeError):
            return None
        if not isinstance(data, dict):
            return None
        if cached_at.tzinfo is None:
            cached_at = cached_at.replace(tzinfo=UTC)
        return data, cached_at

    def lookup(self, key: str) -> CacheEntry | None:
        """Look up an entry regardless of freshness.

        Args:
            key: Cache key (anime ID).

        Returns:
            CacheEntry with its freshness flag, or None on a miss. Unreadable
            entries are removed and count as a miss.
        """
        if self.store is None:
            return None

        store_key = self._make_key(key)
        raw = self._safe_get(store_key)
        if raw is None:
            return None

        decoded = self._decode(raw)
        if decoded is None:
            logger.debug("Dropping unreadable cache entry %s", store_key)
            self._safe_delete(store_key)
            return None

        data, cached_at = decoded
        is_fresh = self._clock() - cached_at < self.ttl
        return CacheEntry(value=data, cached_at=cached_at, is_fresh=is_fresh)

    def get(self, key: str) -> dict[str, Any] | None:
        """Get a cached value if it exists and is still fresh.

        Stale entries are deleted so the next write starts clean.
        """
        entry = self.lookup(key)
        if entry is None:
            return None
        if not entry.is_fresh:
            self._safe_delete(self._make_key(key))
            return None
        return entry.value

    def put(self, key: str, value: dict[str, Any]) -> None:
        """Store a value stamped with the current time."""
        if self.store is None:
            return
        payload = {"cached_at": self._clock().isoformat(), "data": value}
        try:
            self.store.set(self._make_key(key), json.dumps(payload, ensure_ascii=False))
        except PersistenceError as e:
            logger.warning("Could not write detail cache entry %s: %s", key, e)

    def delete(self, key: str) -> bool:
        """Delete a specific cache entry.

        Returns:
            True if entry was deleted, False if it didn't exist.
        """
        if self.store is None:
            return False
        return self._safe_delete(self._make_key(key))

    def _safe_delete(self, store_key: str) -> bool:
        try:
            return self.store.delete(store_key) if self.store is not None else False
        except PersistenceError as e:
            logger.warning("Could not delete cache entry %s: %s", store_key, e)
            return False

    def _safe_get(self, store_key: str) -> str | None:
        try:
            return self.store.get(store_key) if self.store is not None else None
        except PersistenceError as e:
            logger.warning("Could not read cache entry %s: %s", store_key, e)
            return None

    def _own_keys(self) -> list[str]:
        if self.store is None:
            return []
        try:
            keys = self.store.keys()
        except PersistenceError as e:
            logger.warning("Detail cache unavailable: %s", e)
            return []
        return [k for k in keys if k.startswith(self.key_prefix)]

    def clear(self) -> int:
        """Clear all cache entries.

        Returns:
            Number of entries deleted.
        """
        keys = self._own_keys()
        for store_key in keys:
            self._safe_delete(store_key)
        return len(keys)

    def cleanup_expired(self) -> int:
        """Remove all stale or unreadable entries.

        Returns:
            Number of entries removed.
        """
        removed = 0
        now = self._clock()
        for store_key in self._own_keys():
            try:
                raw = self.store.get(store_key) if self.store is not None else None
            except PersistenceError as e:
                logger.warning("Skipping unreadable cache entry %s: %s", store_key, e)
                continue
            decoded = self._decode(raw) if raw is not None else None
            if decoded is None or now - decoded[1] >= self.ttl:
                if self._safe_delete(store_key):
                    removed += 1
        return removed

    def stats(self) -> CacheStats:
        """Get cache statistics."""
        total = fresh = 0
        oldest: datetime | None = None
        newest: datetime | None = None

        for store_key in self._own_keys():
            entry = self.lookup(store_key[len(self.key_prefix) :])
            if entry is None:
                continue
            total += 1
            if entry.is_fresh:
                fresh += 1
            if oldest is None or entry.cached_at < oldest:
                oldest = entry.cached_at
            if newest is None or entry.cached_at > newest:
                newest = entry.cached_at

        return CacheStats(
            total_entries=total,
            fresh_entries=fresh,
            expired_entries=total - fresh,
            oldest_entry=oldest,
            newest_entry=newest,
        )
