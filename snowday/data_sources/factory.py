"""Factory helpers for choosing the geocoder and forecast backends at startup."""

from __future__ import annotations

from functools import partial

from snowday import config
from snowday.data_sources.base import CallableForecastClient, CallableGeocoder, ForecastClient, Geocoder
from snowday.data_sources.geocoder import resolve_postal_code
from snowday.data_sources.open_meteo_client import fetch_hourly
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="data_sources/factory")


def build_geocoder(settings: config.Settings | None = None) -> Geocoder:
    """Instantiate the Zippopotam geocoder for the configured country."""
    settings = settings or config.settings
    logger.info(
        "Using Zippopotam geocoder",
        extra={"base_url": settings.geocoder_base_url, "country": settings.geocoder_country},
    )
    return CallableGeocoder(
        partial(
            resolve_postal_code,
            base_url=settings.geocoder_base_url,
            country=settings.geocoder_country,
            timeout=settings.geocoder_timeout_seconds,
        )
    )


def build_forecast_client(settings: config.Settings | None = None) -> ForecastClient:
    """Instantiate the Open-Meteo forecast client."""
    settings = settings or config.settings
    logger.info("Using Open-Meteo forecast client", extra={"base_url": settings.forecast_base_url})
    return CallableForecastClient(
        partial(
            fetch_hourly,
            base_url=settings.forecast_base_url,
            forecast_days=settings.forecast_days,
        )
    )
