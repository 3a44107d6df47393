"""Per-session orchestrators held in memory with a sliding TTL.

Orchestrators own locks and in-flight cancellation signals, so they live in
this process only. The cache and vote tallies they use sit in the shared
KeyValueStore and survive restarts when Redis is configured.
"""

import threading
import time
import uuid
from typing import Optional

from snowday.config import Settings, settings
from snowday.data_sources import build_forecast_client, build_geocoder
from snowday.forecast_cache import ForecastCache
from snowday.kv_store import KeyValueStore
from snowday.orchestrator import SnowDayOrchestrator
from snowday.store_manager import get_store
from snowday.vote_store import VoteStore
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="session_manager")


def build_orchestrator(cfg: Settings | None = None, store: KeyValueStore | None = None) -> SnowDayOrchestrator:
    """Wire a fresh orchestrator to the configured adapters and shared store."""
    cfg = cfg or settings
    store = store or get_store()
    return SnowDayOrchestrator(
        geocoder=build_geocoder(cfg),
        forecast_client=build_forecast_client(cfg),
        cache=ForecastCache(store, ttl_seconds=cfg.cache_ttl_seconds),
        votes=VoteStore(store, client_id=cfg.client_id),
        fetch_timeout_ms=cfg.forecast_timeout_ms,
        window_hours=cfg.headline_window_hours,
    )


class SessionRegistry:
    """Thread-safe, TTL-aware map of session id -> orchestrator."""

    def __init__(self, ttl_seconds: int = 3600) -> None:
        self.ttl = ttl_seconds
        self._sessions: dict[str, dict] = {}
        self._lock = threading.Lock()

    def create(self, orchestrator: SnowDayOrchestrator) -> str:
        with self._lock:
            sid = str(uuid.uuid4())
            self._sessions[sid] = {"orchestrator": orchestrator, "exp": time.monotonic() + self.ttl}
            return sid

    def get(self, session_id: str) -> Optional[SnowDayOrchestrator]:
        """Return the orchestrator, refreshing its TTL, or None if missing/expired."""
        with self._lock:
            data = self._sessions.get(session_id)
            if not data:
                return None
            now = time.monotonic()
            if data["exp"] < now:
                self._sessions.pop(session_id, None)
                return None
            data["exp"] = now + self.ttl
            return data["orchestrator"]

    def delete(self, session_id: str) -> None:
        with self._lock:
            entry = self._sessions.pop(session_id, None)
        if entry:
            entry["orchestrator"].cancel()

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()


_registry = SessionRegistry(ttl_seconds=settings.session_ttl_seconds)


def use_fresh_registry_for_tests(ttl_seconds: int = 3600) -> SessionRegistry:
    """Replace the registry for tests to ensure isolation."""
    global _registry
    _registry = SessionRegistry(ttl_seconds=ttl_seconds)
    return _registry


def create_session(orchestrator: SnowDayOrchestrator | None = None) -> tuple[str, SnowDayOrchestrator]:
    """Register a new session and return (session_id, orchestrator)."""
    orchestrator = orchestrator or build_orchestrator()
    sid = _registry.create(orchestrator)
    logger.info("Created session", extra={"session_id": sid})
    return sid, orchestrator


def get_session(session_id: str) -> Optional[SnowDayOrchestrator]:
    return _registry.get(session_id)


def delete_session(session_id: str) -> None:
    _registry.delete(session_id)


def clear_sessions() -> None:
    _registry.clear()
