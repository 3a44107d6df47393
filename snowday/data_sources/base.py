"""Interfaces for the geocoding and forecast adapters."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol

from snowday.cancellation import CancellationSignal
from snowday.domain import Coordinates, WeatherSample


class Geocoder(Protocol):
    """Anything that can turn a postal code into coordinates."""

    def resolve(self, postal_code: str) -> Coordinates:
        """Return coordinates or raise LocationNotFound."""
        ...


class ForecastClient(Protocol):
    """Anything that can provide 24 hourly weather samples for a coordinate."""

    def fetch_hourly(
        self,
        latitude: float,
        longitude: float,
        cancel_after_ms: int,
        signal: Optional[CancellationSignal] = None,
    ) -> List[WeatherSample]:
        """Return 24 samples or raise ForecastUnavailable / ForecastTimeout."""
        ...


@dataclass
class CallableGeocoder(Geocoder):
    """Wrap a resolve callable so backends can be swapped or stubbed."""

    resolver: Callable[..., Coordinates]

    def resolve(self, postal_code: str) -> Coordinates:
        return self.resolver(postal_code)


@dataclass
class CallableForecastClient(ForecastClient):
    """Wrap a fetch callable so backends can be swapped or stubbed."""

    fetcher: Callable[..., List[WeatherSample]]

    def fetch_hourly(self, latitude, longitude, cancel_after_ms, signal=None) -> List[WeatherSample]:
        return self.fetcher(latitude, longitude, cancel_after_ms, signal)
