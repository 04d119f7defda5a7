"""Data-source handlers behind the dashboard widgets."""

from rpi_hub.sources._responses import ApiResponse
from rpi_hub.sources.calendar import get_calendar_events
from rpi_hub.sources.config import get_config
from rpi_hub.sources.geocoding import reverse_geocode, search_locations
from rpi_hub.sources.rss import get_rss_items
from rpi_hub.sources.weather import get_weather

__all__ = [
    "ApiResponse",
    "get_calendar_events",
    "get_config",
    "get_rss_items",
    "get_weather",
    "reverse_geocode",
    "search_locations",
]
