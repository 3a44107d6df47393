"""Persisted key-value backends for the forecast cache and vote tally."""

from .base import KeyValueStore
from .memory import InMemoryKeyValueStore
from .redis import RedisKeyValueStore

__all__ = [
    "KeyValueStore",
    "InMemoryKeyValueStore",
    "RedisKeyValueStore",
]
