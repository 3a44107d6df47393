"""TTL-bounded cache of hourly forecast samples on top of a KeyValueStore.

Entries are keyed by location, school type and caution level, so changing any
of the three simply lands on a different key. Expiry is logical: an old entry
reads as absent and is overwritten by the next successful fetch. Storage
failures degrade to "always miss" and "not cached".
"""

from __future__ import annotations

import time
from typing import Callable, Optional

from pydantic import ValidationError

from snowday.domain import CacheEntry, CautionLevel, SchoolType
from snowday.errors import StorageUnavailable
from snowday.kv_store import KeyValueStore
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="forecast_cache")

DEFAULT_TTL_SECONDS = 3600


def _now_epoch_ms() -> int:
    return int(time.time() * 1000)


def cache_key(location: str, school_type: SchoolType, caution: CautionLevel) -> str:
    """Deterministic key for a (location, school type, caution level) triple."""
    return f"weather_{location.strip()}_{SchoolType(school_type).value}_{CautionLevel(caution).value}"


class ForecastCache:
    """Read-through helper for CacheEntry values with a freshness TTL."""

    def __init__(
        self,
        store: KeyValueStore,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], int] = _now_epoch_ms,
    ) -> None:
        self.store = store
        self.ttl_ms = ttl_seconds * 1000
        self._clock = clock

    def now_epoch_ms(self) -> int:
        return self._clock()

    def get(self, key: str) -> Optional[CacheEntry]:
        """Return a fresh entry, or None when missing, stale, corrupt or unreachable."""
        try:
            raw = self.store.get(key)
        except StorageUnavailable as exc:
            logger.warning("Cache read degraded to miss", extra={"key": key, "error": str(exc)})
            return None
        if raw is None:
            logger.debug("Cache miss", extra={"key": key})
            return None
        try:
            entry = CacheEntry.model_validate(raw)
        except ValidationError:
            logger.warning("Discarding malformed cache entry", extra={"key": key})
            return None
        if not entry.is_fresh(self._clock(), self.ttl_ms):
            logger.debug("Cache entry expired", extra={"key": key, "fetched_at": entry.fetched_at_epoch_ms})
            return None
        logger.debug("Cache hit", extra={"key": key})
        return entry

    def put(self, key: str, entry: CacheEntry) -> bool:
        """Persist an entry; returns False when the store is unavailable."""
        try:
            self.store.put(key, entry.model_dump(mode="json"))
        except StorageUnavailable as exc:
            logger.warning("Cache write skipped", extra={"key": key, "error": str(exc)})
            return False
        return True
