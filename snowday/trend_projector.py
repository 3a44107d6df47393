"""Run the scoring engine across a 24-hour forecast and pick the headline.

The headline is the riskiest hour within the decision window (the first
``window_hours`` hours), because districts decide before the school day starts
and one bad hour outweighs a calm average. The factor breakdown, however, is
computed from the window's field-wise average sample, so the breakdown shown
next to the headline may not add up to it. That divergence is kept on purpose
so projections stay comparable with earlier results.
"""

from __future__ import annotations

from typing import Sequence

from snowday.domain import (
    AlgorithmWeights,
    CautionLevel,
    DEFAULT_WEIGHTS,
    SchoolType,
    TrendProjection,
    WeatherSample,
)
from snowday.scoring_engine import score
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="trend_projector")

HOURS_PER_PROJECTION = 24
DEFAULT_WINDOW_HOURS = 12


def _mean(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return sum(values) / len(values)


def average_sample(samples: Sequence[WeatherSample], start: int = 0, end: int | None = None) -> WeatherSample:
    """Average every field of ``samples[start:end]``; an empty slice averages to zeros."""
    window = list(samples[start:end])
    return WeatherSample(
        snowfall_cm=_mean([s.snowfall_cm for s in window]),
        temperature_c=_mean([s.temperature_c for s in window]),
        precipitation_probability_pct=_mean([s.precipitation_probability_pct for s in window]),
        wind_speed_kmh=_mean([s.wind_speed_kmh for s in window]),
    )


def project(
    samples: Sequence[WeatherSample],
    school_type: SchoolType,
    caution: CautionLevel,
    weights: AlgorithmWeights = DEFAULT_WEIGHTS,
    *,
    window_hours: int = DEFAULT_WINDOW_HOURS,
) -> TrendProjection:
    """Score each hourly sample and derive the headline from the near-term window."""
    if len(samples) != HOURS_PER_PROJECTION:
        raise ValueError(f"expected {HOURS_PER_PROJECTION} hourly samples, got {len(samples)}")
    if not 1 <= window_hours <= HOURS_PER_PROJECTION:
        raise ValueError(f"window_hours must be between 1 and {HOURS_PER_PROJECTION}")

    hourly = [score(sample, school_type, caution, weights).probability for sample in samples]

    window = hourly[:window_hours]
    headline = max(window)
    headline_hour = window.index(headline)

    basis = average_sample(samples, 0, window_hours)
    basis_result = score(basis, school_type, caution, weights)

    logger.debug(
        "Projected hourly trend",
        extra={
            "headline": headline,
            "headline_hour": headline_hour,
            "basis_probability": basis_result.probability,
            "window_hours": window_hours,
        },
    )

    return TrendProjection(
        hourly=hourly,
        headline=headline,
        headline_hour=headline_hour,
        headline_basis=basis,
        contributions=basis_result.contributions,
    )
