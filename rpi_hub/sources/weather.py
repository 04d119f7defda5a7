"""Current conditions from Open-Meteo (no API key required)."""

import httpx

from rpi_hub.config import Settings, get_settings
from rpi_hub.net import BoundedFetcher, FetchError
from rpi_hub.sources._coords import validate_coordinates
from rpi_hub.sources._responses import (
    ApiResponse, UpstreamError, error_response, success, validation_error,
)

OPEN_METEO_FORECAST_URL = "https://api.open-meteo.com/v1/forecast"

# WMO weather interpretation codes
WEATHER_CODES: dict[int, str] = {
    0: "Clear sky",
    1: "Mainly clear",
    2: "Partly cloudy",
    3: "Overcast",
    45: "Fog",
    48: "Fog",
    51: "Drizzle",
    53: "Drizzle",
    55: "Drizzle",
    61: "Rain",
    63: "Rain",
    65: "Heavy rain",
    71: "Snow",
    73: "Snow",
    75: "Heavy snow",
    77: "Snow grains",
    80: "Rain showers",
    81: "Rain showers",
    82: "Violent rain showers",
    85: "Snow showers",
    86: "Heavy snow showers",
    95: "Thunderstorm",
    96: "Thunderstorm",
    99: "Thunderstorm",
}

_FAILED = "Failed to fetch weather data"


def describe_weather_code(code: int) -> str:
    return WEATHER_CODES.get(code, "Unknown")


def build_forecast_url(lat: float, lon: float) -> str:
    url = httpx.URL(OPEN_METEO_FORECAST_URL, params={
        "latitude": lat,
        "longitude": lon,
        "current": "temperature_2m,relative_humidity_2m,weather_code,wind_speed_10m",
        "timezone": "auto",
    })
    return str(url)


async def get_weather(
    lat: str | float | None,
    lon: str | float | None,
    *,
    settings: Settings | None = None,
    fetcher: BoundedFetcher | None = None,
) -> ApiResponse:
    """Current temperature, humidity, wind and description for a location."""
    check = validate_coordinates(lat, lon)
    if not check.valid:
        return validation_error(check.error)

    settings = settings or get_settings()
    fetcher = fetcher or BoundedFetcher(settings.fetch)

    try:
        response = await fetcher.fetch(
            build_forecast_url(check.lat, check.lon),
            max_bytes=settings.weather_max_bytes,
        )
        if not response.ok:
            raise UpstreamError(f"Open-Meteo returned HTTP {response.status}")

        current = response.json()["current"]
        code = int(current["weather_code"])
        return success({
            "temperature": round(current["temperature_2m"]),
            "humidity": current["relative_humidity_2m"],
            "windSpeed": current["wind_speed_10m"],
            "description": describe_weather_code(code),
            "weatherCode": code,
        })
    except (FetchError, UpstreamError, KeyError, TypeError, ValueError) as e:
        return error_response(_FAILED, e)
