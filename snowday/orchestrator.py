"""Sequence cache, geocoder, forecast, projection and votes for one session.

States: IDLE -> REQUESTING -> SUCCESS | FAILED. A failure switches the session
into manual mode so the user can type weather values instead; ``reset`` returns
to IDLE from anywhere. Only input errors are raised to the caller; everything
that happens after validation ends in a SUCCESS or FAILED outcome.
"""

from __future__ import annotations

import threading
from datetime import date, timedelta
from typing import Callable, List, Mapping, Optional, Tuple

from snowday.cancellation import CancellationSignal, call_with_deadline
from snowday.data_sources.base import ForecastClient, Geocoder
from snowday.domain import (
    AlgorithmWeights,
    AutomaticForecast,
    CacheEntry,
    CalculationOutcome,
    CalculationState,
    CautionLevel,
    DataOrigin,
    DEFAULT_WEIGHTS,
    ManualOverride,
    PRESET_SCENARIOS,
    RequestMode,
    SchoolType,
    TrendProjection,
    VoteChoice,
    VoteResult,
    WeatherSample,
)
from snowday.errors import (
    CalculationInProgress,
    ForecastTimeout,
    ForecastUnavailable,
    MissingInput,
    SnowDayError,
)
from snowday.forecast_cache import ForecastCache, cache_key
from snowday.scoring_engine import describe_probability
from snowday.trend_projector import HOURS_PER_PROJECTION, DEFAULT_WINDOW_HOURS, project
from snowday.vote_store import VoteStore
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="orchestrator")

DEFAULT_FETCH_TIMEOUT_MS = 8000
MANUAL_FALLBACK_HINT = "You can enter weather data manually."


def format_forecast_label(day: date) -> str:
    """Label a date like "Tuesday, January 14"."""
    return f"{day:%A}, {day:%B} {day.day}"


def build_share_summary(label: str, probability: int, message: str) -> str:
    return f"Snow Day Prediction for {label}: {probability}% chance. Recommendation: {message}"


def failure_message(exc: BaseException) -> str:
    """User-facing text for a failed calculation."""
    if isinstance(exc, ForecastTimeout):
        return exc.user_message
    cause = exc.user_message if isinstance(exc, SnowDayError) else "An unknown error occurred"
    return f"{cause.rstrip('.')}. {MANUAL_FALLBACK_HINT}"


class SnowDayOrchestrator:
    """Holds one session's inputs and drives a calculation through its states."""

    def __init__(
        self,
        geocoder: Geocoder,
        forecast_client: ForecastClient,
        cache: ForecastCache,
        votes: VoteStore,
        *,
        fetch_timeout_ms: int = DEFAULT_FETCH_TIMEOUT_MS,
        window_hours: int = DEFAULT_WINDOW_HOURS,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.geocoder = geocoder
        self.forecast_client = forecast_client
        self.cache = cache
        self.votes = votes
        self.fetch_timeout_ms = fetch_timeout_ms
        self.window_hours = window_hours
        self._today = today

        self._lock = threading.Lock()
        self._signal: Optional[CancellationSignal] = None
        self._generation = 0
        self._apply_defaults()

    def _apply_defaults(self) -> None:
        self.state = CalculationState.IDLE
        self.location: str = ""
        self.school_type = SchoolType.PUBLIC
        self.caution = CautionLevel.STANDARD
        self.weights: AlgorithmWeights = DEFAULT_WEIGHTS
        self.manual_mode = False
        self.manual_sample = WeatherSample()
        self.last_outcome = CalculationOutcome(state=CalculationState.IDLE)

    def _transition(self, new_state: CalculationState) -> None:
        if new_state != self.state:
            logger.info("State transition", extra={"from": self.state.value, "to": new_state.value})
        self.state = new_state

    # -------------------------
    # Editable inputs
    # -------------------------

    def update_weights(self, overrides: Mapping[str, float] | None) -> AlgorithmWeights:
        """Derive a new weights value from the current draft; later calculations use it."""
        self.weights = self.weights.with_overrides(overrides)
        return self.weights

    def reset_weights(self) -> AlgorithmWeights:
        self.weights = DEFAULT_WEIGHTS
        return self.weights

    @staticmethod
    def _scenario_sample(name: str) -> WeatherSample:
        try:
            return PRESET_SCENARIOS[name]
        except KeyError:
            raise MissingInput(f"Unknown scenario '{name}'") from None

    def use_scenario(self, name: str) -> WeatherSample:
        """Switch to manual mode with a preset scenario sample."""
        sample = self._scenario_sample(name)
        self.manual_mode = True
        self.manual_sample = sample
        return sample

    def request_mode(self) -> RequestMode:
        """Build the request mode from the current inputs, or raise MissingInput."""
        if self.manual_mode:
            return ManualOverride(sample=self.manual_sample)
        if not self.location.strip():
            raise MissingInput()
        return AutomaticForecast(location=self.location.strip())

    # -------------------------
    # Calculation
    # -------------------------

    def calculate(
        self,
        location: str | None = None,
        *,
        school_type: SchoolType | None = None,
        caution: CautionLevel | None = None,
        manual_mode: bool | None = None,
        manual_sample: WeatherSample | None = None,
        weights: Mapping[str, float] | None = None,
        scenario: str | None = None,
    ) -> CalculationOutcome:
        """
        Run one calculate action. Arguments left as None keep the session's
        current value; ``weights`` are overrides on the current draft and
        ``scenario`` selects a preset manual sample.

        CalculationInProgress, InvalidWeights and an unknown scenario are
        rejected before any input changes. MissingInput for an absent
        location leaves the state unchanged. Every other failure becomes a
        FAILED outcome.
        """
        if not self._lock.acquire(blocking=False):
            raise CalculationInProgress()
        try:
            new_weights = self.weights.with_overrides(weights)
            if scenario:
                self._scenario_sample(scenario)
            self.weights = new_weights
            if scenario:
                self.use_scenario(scenario)
            if location is not None:
                self.location = location
            if school_type is not None:
                self.school_type = SchoolType(school_type)
            if caution is not None:
                self.caution = CautionLevel(caution)
            if manual_sample is not None:
                self.manual_sample = manual_sample
            if manual_mode is not None:
                self.manual_mode = manual_mode

            mode = self.request_mode()

            generation = self._generation
            signal = CancellationSignal()
            self._signal = signal
            self._transition(CalculationState.REQUESTING)
            school_type, caution, weights = self.school_type, self.caution, self.weights

            try:
                samples, origin = self._collect_samples(mode, school_type, caution, signal)
                projection = project(samples, school_type, caution, weights, window_hours=self.window_hours)
                outcome = self._success_outcome(mode, origin, projection)
                final_state = CalculationState.SUCCESS
            except SnowDayError as exc:
                logger.warning(
                    "Calculation failed",
                    extra={"error_type": type(exc).__name__, "error": str(exc)},
                )
                outcome = self._failure_outcome(exc)
                final_state = CalculationState.FAILED
            except Exception as exc:
                logger.exception("Unexpected error during calculation")
                outcome = self._failure_outcome(exc)
                final_state = CalculationState.FAILED

            if generation != self._generation:
                # a reset happened while this calculation was in flight
                logger.info("Discarding result of a calculation interrupted by reset")
                return self.last_outcome

            if final_state == CalculationState.FAILED:
                self.manual_mode = True
            self.last_outcome = outcome
            self._transition(final_state)
            return outcome
        finally:
            self._signal = None
            self._lock.release()

    def _collect_samples(
        self,
        mode: RequestMode,
        school_type: SchoolType,
        caution: CautionLevel,
        signal: CancellationSignal,
    ) -> Tuple[List[WeatherSample], DataOrigin]:
        if isinstance(mode, ManualOverride):
            logger.info("Using manual override sample", extra={"sample": mode.sample.model_dump()})
            return mode.replicate(HOURS_PER_PROJECTION), DataOrigin.MANUAL

        key = cache_key(mode.location, school_type, caution)
        entry = self.cache.get(key)
        if entry is not None and len(entry.samples) == HOURS_PER_PROJECTION:
            logger.info("Using cached forecast", extra={"key": key})
            return list(entry.samples), DataOrigin.CACHE

        # one deadline covers geocoding and the forecast fetch
        signal.ensure_deadline(self.fetch_timeout_ms)
        coords = call_with_deadline(lambda: self.geocoder.resolve(mode.location), signal, name="geocoder")

        samples = call_with_deadline(
            lambda: self.forecast_client.fetch_hourly(
                coords.latitude, coords.longitude, self.fetch_timeout_ms, signal
            ),
            signal,
            name="forecast",
        )
        if len(samples) != HOURS_PER_PROJECTION:
            raise ForecastUnavailable(f"Expected {HOURS_PER_PROJECTION} hourly samples, got {len(samples)}")

        self.cache.put(key, CacheEntry(samples=samples, fetched_at_epoch_ms=self.cache.now_epoch_ms()))
        return samples, DataOrigin.NETWORK

    def _success_outcome(
        self, mode: RequestMode, origin: DataOrigin, projection: TrendProjection
    ) -> CalculationOutcome:
        label = format_forecast_label(self._today() + timedelta(days=1))
        tier = describe_probability(projection.headline)

        location = mode.location if isinstance(mode, AutomaticForecast) else None
        tally = None
        has_voted = False
        if location:
            tally = self.votes.get_tally(location)
            has_voted = self.votes.has_voted(location)

        logger.info(
            "Calculation succeeded",
            extra={"headline": projection.headline, "origin": origin.value, "location": location},
        )
        return CalculationOutcome(
            state=CalculationState.SUCCESS,
            manual_mode=self.manual_mode,
            origin=origin,
            location=location,
            hourly=projection.hourly,
            headline=projection.headline,
            contributions=projection.contributions,
            headline_basis=projection.headline_basis,
            forecast_label=label,
            tier=tier,
            share_summary=build_share_summary(label, projection.headline, tier.message),
            tally=tally,
            has_voted=has_voted,
        )

    def _failure_outcome(self, exc: BaseException) -> CalculationOutcome:
        return CalculationOutcome(
            state=CalculationState.FAILED,
            manual_mode=True,
            location=self.location.strip() or None,
            error=failure_message(exc),
        )

    # -------------------------
    # Other user actions
    # -------------------------

    def cancel(self) -> bool:
        """Abort the in-flight fetch, if any. Returns True when something was cancelled."""
        signal = self._signal
        if signal is None:
            return False
        signal.cancel("user")
        return True

    def reset(self) -> CalculationOutcome:
        """Cancel any in-flight work and restore every input to its default."""
        self._generation += 1
        self.cancel()
        self._apply_defaults()
        logger.info("Session reset")
        return self.last_outcome

    def vote(self, choice: VoteChoice) -> VoteResult:
        """Record a community vote for the location of the last successful forecast."""
        outcome = self.last_outcome
        if outcome.state != CalculationState.SUCCESS or not outcome.location:
            raise MissingInput("Calculate a forecast for a ZIP code before voting")
        result = self.votes.vote(outcome.location, choice)
        self.last_outcome = outcome.model_copy(update={"tally": result.tally, "has_voted": True})
        return result
