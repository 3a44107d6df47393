"""Redis-backed key-value store with JSON-encoded values."""

import json
from typing import Any, Optional

from snowday.errors import StorageUnavailable
from snowday.kv_store.base import KeyValueStore
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="kv_store/redis")


class RedisKeyValueStore(KeyValueStore):
    """Stores JSON values under ``prefix + key`` in Redis.

    Any client error is logged and re-raised as StorageUnavailable. A value
    that cannot be decoded is treated as absent.
    """

    def __init__(self, client, prefix: str = "snowday:") -> None:
        """Initialize with a Redis client and a key prefix."""
        logger.debug("Initializing RedisKeyValueStore")
        self.client = client
        self.prefix = prefix

    def _key(self, key: str) -> str:
        """Return the namespaced Redis key."""
        return f"{self.prefix}{key}"

    def get(self, key: str) -> Optional[Any]:
        try:
            raw = self.client.get(self._key(key))
        except Exception as exc:
            logger.error("Failed to read key from Redis: %s", exc, extra={"key": key})
            raise StorageUnavailable() from exc
        if raw is None:
            return None
        try:
            if isinstance(raw, bytes):
                raw = raw.decode("utf-8")
            return json.loads(raw)
        except (UnicodeDecodeError, ValueError) as exc:
            logger.warning("Ignoring undecodable value in Redis: %s", exc, extra={"key": key})
            return None

    def put(self, key: str, value: Any) -> None:
        try:
            payload = json.dumps(value).encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Value for {key!r} is not JSON serializable") from exc
        try:
            self.client.set(self._key(key), payload)
        except Exception as exc:
            logger.error("Failed to write key to Redis: %s", exc, extra={"key": key})
            raise StorageUnavailable() from exc

    def delete(self, key: str) -> None:
        try:
            self.client.delete(self._key(key))
        except Exception as exc:
            logger.error("Failed to delete key from Redis: %s", exc, extra={"key": key})
            raise StorageUnavailable() from exc

    def clear(self) -> None:
        """Best-effort clear of every key under the configured prefix."""
        try:
            for key in self.client.scan_iter(f"{self.prefix}*"):
                self.client.delete(key)
        except Exception as exc:
            logger.error("Failed to clear keys from Redis: %s", exc)
            raise StorageUnavailable() from exc
