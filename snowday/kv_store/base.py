"""Shared protocol for persisted key-value backends."""

from typing import Any, Optional, Protocol


class KeyValueStore(Protocol):
    """String keys, JSON-compatible values, per-key atomicity only.

    Backends raise StorageUnavailable when the underlying store cannot be
    reached; callers decide how to degrade.
    """

    def get(self, key: str) -> Optional[Any]:
        """Return the stored value, or None if the key is absent."""

    def put(self, key: str, value: Any) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""

    def delete(self, key: str) -> None:
        """Remove ``key`` without raising if it is absent."""

    def clear(self) -> None:
        """Remove every key owned by this store."""
