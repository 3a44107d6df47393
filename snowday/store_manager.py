"""Pick the persisted key-value backend shared by the cache and the vote store."""

import redis

from snowday.config import settings
from snowday.kv_store import InMemoryKeyValueStore, KeyValueStore, RedisKeyValueStore
from utils.logging_utils import get_tagged_logger, mask_url

logger = get_tagged_logger(__name__, tag="store_manager")


def _init_store() -> KeyValueStore:
    """Use Redis when configured and reachable, otherwise an in-memory store."""
    if settings.store_redis_url:
        masked = mask_url(settings.store_redis_url)
        try:
            client = redis.Redis.from_url(settings.store_redis_url)
            client.ping()
            logger.info("Using RedisKeyValueStore", extra={"redis_url": masked})
            return RedisKeyValueStore(client, prefix=settings.store_prefix)
        except redis.RedisError as exc:
            logger.warning(
                "Falling back to InMemoryKeyValueStore (Redis unavailable)",
                extra={"redis_url": masked, "error": str(exc)},
            )
    return InMemoryKeyValueStore()


_store: KeyValueStore | None = None


def get_store() -> KeyValueStore:
    """Return the process-wide store, creating it on first use."""
    global _store
    if _store is None:
        _store = _init_store()
    return _store


def use_in_memory_store_for_tests() -> InMemoryKeyValueStore:
    """Swap in a fresh in-memory store for isolation and determinism."""
    global _store
    store = InMemoryKeyValueStore()
    _store = store
    return store
