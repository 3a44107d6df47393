"""Fetch the next 24 hours of snow-relevant weather from the Open-Meteo API."""
from __future__ import annotations

from typing import List, Optional

import requests
from retry_requests import retry

from snowday.cancellation import CancellationSignal, call_with_deadline
from snowday.config import settings
from snowday.domain import WeatherSample
from snowday.errors import ForecastTimeout, ForecastUnavailable
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="open_meteo_client")

session = retry(
    requests.Session(),
    retries=settings.forecast_retries,
    backoff_factor=settings.forecast_backoff_factor,
)

HOURS = 24
DEFAULT_CANCEL_AFTER_MS = 8000

HOURLY_VARS = [
    "temperature_2m",
    "snowfall",
    "precipitation_probability",
    "wind_speed_10m",
]

# snowfall is scaled by 1/10 and m/s wind by 3.6 when building samples
SNOWFALL_DIVISOR = 10.0
WIND_MS_TO_KMH = 3.6

EXPECTED_HOURLY_UNITS = {
    "temperature_2m": "°C",
    "snowfall": "cm",
    "precipitation_probability": "%",
    "wind_speed_10m": "m/s",
}

ALLOWED_HOURLY_UNIT_SYNONYMS = {
    "temperature_2m": {"°C", "C"},
    "snowfall": {"cm"},
    "precipitation_probability": {"%", "percent"},
    "wind_speed_10m": {"m/s", "ms"},
}


def _warn_on_unexpected_units(units: dict, *, context: str):
    """Log a warning if Open-Meteo returns units we did not request."""
    if not units:
        return
    for field, expected in EXPECTED_HOURLY_UNITS.items():
        actual = units.get(field)
        if actual and actual != expected and actual not in ALLOWED_HOURLY_UNIT_SYNONYMS.get(field, set()):
            logger.warning(
                "Unexpected Open-Meteo unit",
                extra={"context": context, "field": field, "unit": actual, "expected": expected},
            )


def _value_at(series: list, index: int) -> float:
    """Missing hourly values count as zero."""
    value = series[index]
    return float(value) if value is not None else 0.0


def parse_hourly(data: dict) -> List[WeatherSample]:
    """Convert an Open-Meteo hourly payload into 24 WeatherSample objects."""
    hourly = data.get("hourly") if isinstance(data, dict) else None
    if not isinstance(hourly, dict):
        raise ForecastUnavailable("Malformed weather data received from API")

    missing = [name for name in HOURLY_VARS if not isinstance(hourly.get(name), list)]
    if missing:
        logger.warning("Forecast payload missing fields", extra={"missing": missing})
        raise ForecastUnavailable(f"Malformed weather data received from API (missing {', '.join(missing)})")

    short = [name for name in HOURLY_VARS if len(hourly[name]) < HOURS]
    if short:
        logger.warning("Forecast payload too short", extra={"fields": short})
        raise ForecastUnavailable("Malformed weather data received from API (fewer than 24 hours)")

    _warn_on_unexpected_units(data.get("hourly_units") or {}, context="snow_hourly")

    temperature = hourly["temperature_2m"]
    snowfall = hourly["snowfall"]
    precip_prob = hourly["precipitation_probability"]
    wind = hourly["wind_speed_10m"]

    try:
        return [
            WeatherSample(
                snowfall_cm=_value_at(snowfall, i) / SNOWFALL_DIVISOR,
                temperature_c=_value_at(temperature, i),
                precipitation_probability_pct=_value_at(precip_prob, i),
                wind_speed_kmh=_value_at(wind, i) * WIND_MS_TO_KMH,
            )
            for i in range(HOURS)
        ]
    except (TypeError, ValueError) as exc:
        raise ForecastUnavailable("Malformed weather data received from API") from exc


def fetch_hourly(
    latitude: float,
    longitude: float,
    cancel_after_ms: int = DEFAULT_CANCEL_AFTER_MS,
    signal: Optional[CancellationSignal] = None,
    *,
    base_url: str | None = None,
    forecast_days: int | None = None,
) -> List[WeatherSample]:
    """
    Fetch 24 hourly samples (hour 0 = current hour) for the coordinates.

    Raises ForecastTimeout if nothing arrives within ``cancel_after_ms`` or
    the signal is cancelled, ForecastUnavailable on HTTP or payload errors.
    """
    if signal is None:
        signal = CancellationSignal(cancel_after_ms)
    else:
        signal.ensure_deadline(cancel_after_ms)

    params = {
        "latitude": latitude,
        "longitude": longitude,
        "hourly": ",".join(HOURLY_VARS),
        "forecast_days": forecast_days or settings.forecast_days,
        "timezone": "auto",
        "temperature_unit": "celsius",
        "wind_speed_unit": "ms",
    }
    url = base_url or settings.forecast_base_url

    logger.info(
        "Fetching hourly forecast",
        extra={"latitude": latitude, "longitude": longitude, "cancel_after_ms": cancel_after_ms},
    )

    def _get():
        return session.get(url, params=params, timeout=signal.remaining_seconds())

    try:
        resp = call_with_deadline(_get, signal, name="open_meteo")
        resp.raise_for_status()
        data = resp.json()
    except ForecastTimeout:
        logger.warning("Forecast request timed out", extra={"cancel_after_ms": cancel_after_ms})
        raise
    except requests.Timeout as exc:
        logger.warning("Forecast request timed out in transport", extra={"error": str(exc)})
        raise ForecastTimeout() from exc
    except requests.RequestException as exc:
        logger.warning("Forecast request failed", extra={"error": str(exc)})
        raise ForecastUnavailable() from exc
    except ValueError as exc:
        logger.warning("Forecast response was not JSON", extra={"error": str(exc)})
        raise ForecastUnavailable("Malformed weather data received from API") from exc

    samples = parse_hourly(data)
    logger.debug("Parsed hourly forecast", extra={"samples": len(samples)})
    return samples
