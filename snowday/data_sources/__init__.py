"""Network adapters for geocoding and hourly forecasts."""

from .base import CallableForecastClient, CallableGeocoder, ForecastClient, Geocoder
from .factory import build_forecast_client, build_geocoder
from .geocoder import resolve_postal_code
from .open_meteo_client import fetch_hourly, parse_hourly

__all__ = [
    "build_forecast_client",
    "build_geocoder",
    "CallableForecastClient",
    "CallableGeocoder",
    "ForecastClient",
    "Geocoder",
    "fetch_hourly",
    "parse_hourly",
    "resolve_postal_code",
]
