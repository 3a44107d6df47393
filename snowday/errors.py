"""Error taxonomy for the closure-probability engine.

Only ``MissingInput`` (and the caller errors ``InvalidWeights`` /
``CalculationInProgress``) escape the orchestrator. Network-origin errors are
turned into a failed outcome with manual mode offered; storage errors are
absorbed by the cache and vote store.
"""

from __future__ import annotations


class SnowDayError(Exception):
    """Base class for every error raised by this package."""

    default_message = "An unknown error occurred."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)

    @property
    def user_message(self) -> str:
        """Human-readable cause suitable for display."""
        return str(self)


class MissingInput(SnowDayError):
    """Neither a location nor a manual sample was supplied."""
    default_message = "Please enter a ZIP code."


class InvalidWeights(SnowDayError):
    """A weight override names an unknown coefficient or is not a finite number."""
    default_message = "Algorithm weights must be finite numbers."


class CalculationInProgress(SnowDayError):
    """A calculation is already running for this session."""
    default_message = "A calculation is already in progress."


class LocationNotFound(SnowDayError):
    """The geocoder could not resolve the postal code."""
    default_message = "Could not find location for the provided ZIP code."


class ForecastUnavailable(SnowDayError):
    """The forecast endpoint failed or returned a malformed payload."""
    default_message = "Could not fetch weather data."


class ForecastTimeout(SnowDayError):
    """No forecast response arrived before the deadline, or the fetch was cancelled."""
    default_message = "The weather data request timed out. Please try again."


class StorageUnavailable(SnowDayError):
    """The persisted key-value store could not be reached."""
    default_message = "Storage is unavailable."
