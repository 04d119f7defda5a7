"""Place search (Open-Meteo) and reverse geocoding (Nominatim)."""

from typing import Any

import httpx

from rpi_hub.config import Settings, get_settings
from rpi_hub.net import BoundedFetcher, FetchError
from rpi_hub.sources._coords import validate_coordinates
from rpi_hub.sources._responses import (
    ApiResponse, UpstreamError, error_response, success, validation_error,
)

OPEN_METEO_GEOCODING_URL = "https://geocoding-api.open-meteo.com/v1/search"
NOMINATIM_REVERSE_URL = "https://nominatim.openstreetmap.org/reverse"

MAX_QUERY_LENGTH = 100
MAX_SEARCH_RESULTS = 10

_RESULT_FIELDS = ("name", "latitude", "longitude", "country", "admin1", "admin2", "timezone")


async def search_locations(
    query: str | None,
    *,
    settings: Settings | None = None,
    fetcher: BoundedFetcher | None = None,
) -> ApiResponse:
    """Look up places by name. Returns ``{"results": [...]}``."""
    if not query or not query.strip():
        return validation_error("Missing query parameter")
    if len(query) > MAX_QUERY_LENGTH:
        return validation_error(f"Query too long (max {MAX_QUERY_LENGTH} characters)")

    settings = settings or get_settings()
    fetcher = fetcher or BoundedFetcher(settings.fetch)
    url = httpx.URL(OPEN_METEO_GEOCODING_URL, params={
        "name": query,
        "count": MAX_SEARCH_RESULTS,
        "language": "en",
        "format": "json",
        "timezone": "auto",
    })

    try:
        response = await fetcher.fetch(str(url), max_bytes=settings.weather_max_bytes)
        if not response.ok:
            raise UpstreamError(f"geocoding returned HTTP {response.status}")

        data = response.json()
        raw_results = data.get("results") or []
        results = [
            {key: result.get(key) for key in _RESULT_FIELDS}
            for result in raw_results
        ]
        return success({"results": results})
    except (FetchError, UpstreamError, AttributeError, TypeError) as e:
        return error_response("Failed to fetch geocoding data", e)


def _display_name(city: str | None, state: str | None, country: str | None) -> str:
    parts: list[str] = []
    if city:
        parts.append(city)
    if state and state != city:
        parts.append(state)
    if country:
        parts.append(country)
    return ", ".join(parts)


def _first(address: dict[str, Any], *keys: str) -> str | None:
    for key in keys:
        if address.get(key):
            return address[key]
    return None


async def reverse_geocode(
    lat: str | float | None,
    lon: str | float | None,
    *,
    settings: Settings | None = None,
    fetcher: BoundedFetcher | None = None,
) -> ApiResponse:
    """Resolve coordinates to ``{city, state, country, displayName}``.

    Nominatim requires an identifying User-Agent, which the fetcher sends.
    """
    check = validate_coordinates(lat, lon)
    if not check.valid:
        return validation_error(check.error)

    settings = settings or get_settings()
    fetcher = fetcher or BoundedFetcher(settings.fetch)
    url = httpx.URL(NOMINATIM_REVERSE_URL, params={
        "lat": check.lat,
        "lon": check.lon,
        "format": "json",
        "zoom": 10,
        "addressdetails": 1,
    })

    try:
        response = await fetcher.fetch(str(url), max_bytes=settings.weather_max_bytes)
        if not response.ok:
            raise UpstreamError(f"Nominatim returned HTTP {response.status}")

        data = response.json()
        address = data.get("address") or {}
        city = _first(address, "city", "town", "village", "municipality", "county")
        state = _first(address, "state", "region")
        country = address.get("country")

        display_name = _display_name(city, state, country) or data.get("display_name")
        return success({
            "city": city,
            "state": state,
            "country": country,
            "displayName": display_name or "Unknown Location",
        })
    except (FetchError, UpstreamError, AttributeError, TypeError) as e:
        return error_response("Failed to fetch reverse geocoding data", e)
