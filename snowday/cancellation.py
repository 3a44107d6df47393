"""Deadline-bound execution of blocking network calls.

``requests`` has no notion of a total deadline: its ``timeout`` only bounds
connect and per-read waits. Blocking calls therefore run on a daemon worker
thread while the caller waits on the result, the deadline, or an explicit
``cancel()``, whichever comes first. An abandoned worker is left to finish on
its own; its result is discarded.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, TypeVar

from snowday.errors import ForecastTimeout
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="cancellation")

T = TypeVar("T")

_POLL_INTERVAL_SECONDS = 0.025


class CancellationSignal:
    """Deadline plus a manual cancel switch shared between caller and worker."""

    def __init__(self, cancel_after_ms: int | None = None, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._cancelled = threading.Event()
        self.reason: str | None = None
        self.deadline: float | None = None
        if cancel_after_ms is not None:
            self.deadline = clock() + cancel_after_ms / 1000.0

    def ensure_deadline(self, cancel_after_ms: int) -> None:
        """Tighten the deadline to at most ``cancel_after_ms`` from now."""
        candidate = self._clock() + cancel_after_ms / 1000.0
        if self.deadline is None or candidate < self.deadline:
            self.deadline = candidate

    def cancel(self, reason: str = "cancelled") -> None:
        """Abort whatever is waiting on this signal."""
        if not self._cancelled.is_set():
            self.reason = reason
            self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def expired(self) -> bool:
        return self.deadline is not None and self._clock() >= self.deadline

    def remaining_seconds(self) -> float | None:
        """Seconds until the deadline (never negative), or None when unbounded."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - self._clock())

    def raise_if_done(self) -> None:
        """Raise ForecastTimeout if the signal was cancelled or its deadline passed."""
        if self.cancelled:
            raise ForecastTimeout()
        if self.expired:
            self.cancel("deadline")
            raise ForecastTimeout()


def call_with_deadline(func: Callable[[], T], signal: CancellationSignal, *, name: str = "request") -> T:
    """
    Run ``func`` on a worker thread and return its result, or raise
    ForecastTimeout as soon as ``signal`` is cancelled or expires.

    Exceptions raised by ``func`` are re-raised in the caller's thread.
    """
    signal.raise_if_done()

    done = threading.Event()
    outcome: dict = {}

    def _worker() -> None:
        try:
            outcome["result"] = func()
        except BaseException as exc:  # re-raised in the waiting thread
            outcome["error"] = exc
        finally:
            done.set()

    worker = threading.Thread(target=_worker, name=f"snowday-{name}", daemon=True)
    worker.start()

    while not done.is_set():
        if signal.cancelled or signal.expired:
            logger.warning(
                "Abandoning in-flight call",
                extra={"call": name, "reason": signal.reason or "deadline"},
            )
            signal.cancel(signal.reason or "deadline")
            raise ForecastTimeout()
        remaining = signal.remaining_seconds()
        wait_for = _POLL_INTERVAL_SECONDS if remaining is None else min(_POLL_INTERVAL_SECONDS, remaining)
        done.wait(wait_for)

    if "error" in outcome:
        raise outcome["error"]
    return outcome["result"]
