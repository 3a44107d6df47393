"""Resolve postal codes to coordinates through the Zippopotam.us API."""
from __future__ import annotations

import requests
from retry_requests import retry

from snowday.config import settings
from snowday.domain import Coordinates
from snowday.errors import ForecastTimeout, ForecastUnavailable, LocationNotFound, MissingInput
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="geocoder")

session = retry(requests.Session(), retries=1, backoff_factor=0.2)


def _place_from_payload(data) -> dict:
    """Return the first place record, or raise LocationNotFound."""
    places = data.get("places") if isinstance(data, dict) else None
    if not places or not isinstance(places, list) or not isinstance(places[0], dict):
        raise LocationNotFound()
    return places[0]


def resolve_postal_code(
    postal_code: str,
    *,
    base_url: str | None = None,
    country: str | None = None,
    timeout: float | None = None,
) -> Coordinates:
    """Look up latitude/longitude for a postal code; no caching happens here."""
    code = (postal_code or "").strip()
    if not code:
        raise MissingInput()

    url = f"{base_url or settings.geocoder_base_url}/{country or settings.geocoder_country}/{code}"
    logger.info("Resolving postal code", extra={"postal_code": code})

    try:
        resp = session.get(url, timeout=timeout or settings.geocoder_timeout_seconds)
    except requests.Timeout as exc:
        logger.warning("Geocoder timed out", extra={"postal_code": code, "error": str(exc)})
        raise ForecastTimeout() from exc
    except requests.RequestException as exc:
        logger.warning("Geocoder request failed", extra={"postal_code": code, "error": str(exc)})
        raise ForecastUnavailable("Could not reach the location service") from exc

    if resp.status_code == 404:
        raise LocationNotFound("Invalid ZIP code. Please try again")
    try:
        resp.raise_for_status()
        data = resp.json()
    except requests.HTTPError as exc:
        logger.warning("Geocoder returned an error status", extra={"status": resp.status_code})
        raise ForecastUnavailable("Could not reach the location service") from exc
    except ValueError as exc:
        raise LocationNotFound() from exc

    place = _place_from_payload(data)
    try:
        coords = Coordinates(
            latitude=float(place["latitude"]),
            longitude=float(place["longitude"]),
            place_name=", ".join(
                part for part in (place.get("place name"), place.get("state abbreviation")) if part
            ) or None,
        )
    except (KeyError, TypeError, ValueError) as exc:
        logger.warning("Geocoder place record malformed", extra={"postal_code": code})
        raise LocationNotFound() from exc

    logger.debug("Resolved postal code", extra={"postal_code": code, "place": coords.place_name})
    return coords
