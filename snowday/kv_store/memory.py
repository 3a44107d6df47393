"""In-memory key-value store, intended for development and tests."""

import copy
import threading
from typing import Any, Optional

from snowday.kv_store.base import KeyValueStore
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="kv_store/in_memory")


class InMemoryKeyValueStore(KeyValueStore):
    """Thread-safe dict-backed store. Values are deep-copied in and out."""

    def __init__(self) -> None:
        logger.debug("Initializing InMemoryKeyValueStore")
        self._data: dict[str, Any] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            if key not in self._data:
                return None
            return copy.deepcopy(self._data[key])

    def put(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = copy.deepcopy(value)

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def keys(self) -> list[str]:
        """Snapshot of the stored keys (test helper)."""
        with self._lock:
            return list(self._data)
