"""Domain vocabulary and strict schemas for snow-day closure predictions.

This module is the contract shared by the scoring engine, the trend projector,
the stores and the HTTP layer: enums, weights, samples and result payloads.
No scoring logic lives here.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, List, Literal, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from snowday.errors import InvalidWeights


class _StrictBaseModel(BaseModel):
    """Base model with strict extra handling."""

    model_config = ConfigDict(extra="forbid")


class _FrozenModel(BaseModel):
    """Immutable value object; NaN/inf are rejected on construction."""

    model_config = ConfigDict(extra="forbid", frozen=True, allow_inf_nan=False)


class SchoolType(str, Enum):
    """Kind of institution the prediction is for."""
    PUBLIC = "Public"
    PRIVATE = "Private"
    UNIVERSITY = "University"


class CautionLevel(str, Enum):
    """How readily a district historically closes for weather."""
    STANDARD = "Standard"
    CAUTIOUS = "Cautious"
    RESISTANT = "Resistant"


class VoteChoice(str, Enum):
    """Community prediction options."""
    CLOSES = "closes"
    OPENS = "opens"


class CalculationState(str, Enum):
    """Orchestrator lifecycle states."""
    IDLE = "idle"
    REQUESTING = "requesting"
    SUCCESS = "success"
    FAILED = "failed"


class DataOrigin(str, Enum):
    """Where the 24 hourly samples of a calculation came from."""
    NETWORK = "network"
    CACHE = "cache"
    MANUAL = "manual"


class ResultLevel(str, Enum):
    """Recommendation tier for a headline probability."""
    NO_SCHOOL = "no_school"
    POSSIBLE_CLOSURE = "possible_closure"
    DELAY_LIKELY = "delay_likely"
    LOW = "low"


class WeatherSample(_FrozenModel):
    """One hour of weather in the units the scoring engine expects."""
    snowfall_cm: float = 0.0
    temperature_c: float = 0.0
    precipitation_probability_pct: float = 0.0
    wind_speed_kmh: float = 0.0


class Coordinates(_FrozenModel):
    """Resolved position for a postal code."""
    latitude: float
    longitude: float
    place_name: str | None = None


class AlgorithmWeights(_FrozenModel):
    """Coefficients of the additive closure score.

    Instances are immutable; callers keep an editable draft by deriving new
    values with ``with_overrides``.
    """
    snowfall_multiplier: float = 8.0
    snowfall_max: float = 50.0
    temp_below_zero: float = 15.0
    temp_below_two: float = 10.0
    temp_below_five: float = 5.0
    temp_above_five_penalty: float = -10.0
    precip_multiplier: float = 0.2
    wind_above_25: float = 5.0
    wind_above_40: float = 10.0
    public_school_bonus: float = 5.0
    university_penalty: float = -5.0
    district_cautious_bonus: float = 10.0
    district_resistant_penalty: float = -10.0

    def with_overrides(self, overrides: Mapping[str, float] | None) -> "AlgorithmWeights":
        """Return a new weights value with ``overrides`` applied.

        Raises InvalidWeights for unknown coefficient names or non-finite values.
        """
        if not overrides:
            return self
        unknown = sorted(set(overrides) - set(type(self).model_fields))
        if unknown:
            raise InvalidWeights(f"Unknown weight(s): {', '.join(unknown)}")
        try:
            return type(self).model_validate({**self.model_dump(), **overrides})
        except ValidationError as exc:
            fields = sorted({str(err["loc"][0]) for err in exc.errors() if err.get("loc")})
            raise InvalidWeights(f"Weights must be finite numbers: {', '.join(fields)}") from exc


DEFAULT_WEIGHTS = AlgorithmWeights()


class FactorContributions(_StrictBaseModel):
    """Per-factor partial scores; their sum is the raw, unclamped score."""
    snowfall: float = 0.0
    temperature: float = 0.0
    precipitation: float = 0.0
    wind: float = 0.0
    school_type: float = 0.0
    district_caution: float = 0.0

    @property
    def total(self) -> float:
        return (
            self.snowfall
            + self.temperature
            + self.precipitation
            + self.wind
            + self.school_type
            + self.district_caution
        )


class ScoreResult(_StrictBaseModel):
    """Clamped, rounded probability plus the breakdown that produced it."""
    probability: int = Field(ge=0, le=100)
    contributions: FactorContributions


class TrendProjection(_StrictBaseModel):
    """Hourly scores and the headline derived from the near-term window.

    ``headline`` is the riskiest hour inside the window, while
    ``contributions`` come from scoring ``headline_basis`` (the window's
    field-wise average). The two can disagree.
    """
    hourly: List[int]
    headline: int = Field(ge=0, le=100)
    headline_hour: int = Field(ge=0)
    headline_basis: WeatherSample
    contributions: FactorContributions


class CacheEntry(_StrictBaseModel):
    """Forecast samples with the wall-clock time (epoch ms) they were fetched."""
    samples: List[WeatherSample]
    fetched_at_epoch_ms: int

    def is_fresh(self, now_epoch_ms: int, ttl_ms: int) -> bool:
        return now_epoch_ms - self.fetched_at_epoch_ms < ttl_ms


class CommunityVote(_StrictBaseModel):
    """Running closes/opens tally for one location."""
    closes: int = Field(default=0, ge=0)
    opens: int = Field(default=0, ge=0)

    @property
    def total(self) -> int:
        return self.closes + self.opens

    @property
    def close_percent(self) -> int:
        if self.total == 0:
            return 0
        return round(self.closes / self.total * 100)

    @property
    def open_percent(self) -> int:
        if self.total == 0:
            return 0
        return 100 - self.close_percent

    def incremented(self, choice: VoteChoice) -> "CommunityVote":
        """Return a copy with one more vote for ``choice``."""
        if choice == VoteChoice.CLOSES:
            return CommunityVote(closes=self.closes + 1, opens=self.opens)
        return CommunityVote(closes=self.closes, opens=self.opens + 1)


class VoteResult(_StrictBaseModel):
    """Outcome of a vote attempt."""
    tally: CommunityVote
    accepted: bool
    persisted: bool


class AutomaticForecast(_FrozenModel):
    """Fetch a live forecast for a postal code."""
    kind: Literal["automatic"] = "automatic"
    location: str


class ManualOverride(_FrozenModel):
    """Use one user-supplied sample for every hour."""
    kind: Literal["manual"] = "manual"
    sample: WeatherSample

    def replicate(self, hours: int = 24) -> List[WeatherSample]:
        return [self.sample] * hours


RequestMode = Union[AutomaticForecast, ManualOverride]


class ResultTier(_StrictBaseModel):
    """Recommendation attached to a headline probability."""
    level: ResultLevel
    message: str


class CalculationOutcome(_StrictBaseModel):
    """Everything the presentation layer needs after a calculate action."""
    state: CalculationState
    manual_mode: bool = False
    origin: DataOrigin | None = None
    location: str | None = None
    hourly: List[int] = Field(default_factory=list)
    headline: int | None = None
    contributions: FactorContributions | None = None
    headline_basis: WeatherSample | None = None
    forecast_label: str | None = None
    tier: ResultTier | None = None
    share_summary: str | None = None
    tally: CommunityVote | None = None
    has_voted: bool = False
    error: str | None = None


PRESET_SCENARIOS: Dict[str, WeatherSample] = {
    "heavy_snowstorm": WeatherSample(
        snowfall_cm=8, temperature_c=-5, precipitation_probability_pct=60, wind_speed_kmh=30
    ),
    "moderate_snow": WeatherSample(
        snowfall_cm=4, temperature_c=0, precipitation_probability_pct=40, wind_speed_kmh=20
    ),
    "light_flurries": WeatherSample(
        snowfall_cm=1, temperature_c=3, precipitation_probability_pct=20, wind_speed_kmh=15
    ),
    "extreme_cold": WeatherSample(
        snowfall_cm=0, temperature_c=-15, precipitation_probability_pct=10, wind_speed_kmh=10
    ),
    "blizzard": WeatherSample(
        snowfall_cm=10, temperature_c=-10, precipitation_probability_pct=80, wind_speed_kmh=50
    ),
}
