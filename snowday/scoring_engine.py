"""Deterministic closure-probability scoring for a single weather sample.

Six independent terms are summed into a raw score which is then clamped to
0-100 and rounded. The per-factor contributions are returned untouched so the
caller can show why a score came out the way it did.
"""

from __future__ import annotations

from snowday.domain import (
    AlgorithmWeights,
    CautionLevel,
    DEFAULT_WEIGHTS,
    FactorContributions,
    ResultLevel,
    ResultTier,
    SchoolType,
    ScoreResult,
    WeatherSample,
)


def _clamp_probability(raw: float) -> float:
    """Clamp a raw score to the 0-100 range."""
    return max(0.0, min(100.0, raw))


def _round_half_up(value: float) -> int:
    """Round x.5 upward; the builtin round() would send 86.5 to 86."""
    return int(value + 0.5)


def _snowfall_term(snowfall_cm: float, weights: AlgorithmWeights) -> float:
    return min(snowfall_cm * weights.snowfall_multiplier, weights.snowfall_max)


def _temperature_term(temperature_c: float, weights: AlgorithmWeights) -> float:
    if temperature_c < 0:
        return weights.temp_below_zero
    if temperature_c < 2:
        return weights.temp_below_two
    if temperature_c < 5:
        return weights.temp_below_five
    # mild weather actively argues against a closure
    return weights.temp_above_five_penalty


def _precipitation_term(probability_pct: float, weights: AlgorithmWeights) -> float:
    return probability_pct * weights.precip_multiplier


def _wind_term(wind_kmh: float, weights: AlgorithmWeights) -> float:
    score = 0.0
    if wind_kmh > 25:
        score += weights.wind_above_25
    if wind_kmh > 40:
        score += weights.wind_above_40
    return score


def _school_type_term(school_type: SchoolType, weights: AlgorithmWeights) -> float:
    if school_type == SchoolType.PUBLIC:
        return weights.public_school_bonus
    if school_type == SchoolType.UNIVERSITY:
        return weights.university_penalty
    return 0.0


def _caution_term(caution: CautionLevel, weights: AlgorithmWeights) -> float:
    if caution == CautionLevel.CAUTIOUS:
        return weights.district_cautious_bonus
    if caution == CautionLevel.RESISTANT:
        return weights.district_resistant_penalty
    return 0.0


def score(
    sample: WeatherSample,
    school_type: SchoolType,
    caution: CautionLevel,
    weights: AlgorithmWeights = DEFAULT_WEIGHTS,
) -> ScoreResult:
    """Pure function: map one sample plus configuration to a ScoreResult."""
    contributions = FactorContributions(
        snowfall=_snowfall_term(sample.snowfall_cm, weights),
        temperature=_temperature_term(sample.temperature_c, weights),
        precipitation=_precipitation_term(sample.precipitation_probability_pct, weights),
        wind=_wind_term(sample.wind_speed_kmh, weights),
        school_type=_school_type_term(SchoolType(school_type), weights),
        district_caution=_caution_term(CautionLevel(caution), weights),
    )
    probability = _round_half_up(_clamp_probability(contributions.total))
    return ScoreResult(probability=probability, contributions=contributions)


def describe_probability(probability: int) -> ResultTier:
    """Translate a headline probability into a recommendation tier."""
    if probability >= 87:
        return ResultTier(level=ResultLevel.NO_SCHOOL, message="No School or Possible Early Dismissal.")
    if probability >= 75:
        return ResultTier(level=ResultLevel.POSSIBLE_CLOSURE, message="Possibility of No School.")
    if probability >= 55:
        return ResultTier(level=ResultLevel.DELAY_LIKELY, message="Delay Likely.")
    return ResultTier(level=ResultLevel.LOW, message="Little to no chance of anything, but possible.")
