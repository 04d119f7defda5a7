"""The merged kiosk configuration, as served to the dashboard."""

from rpi_hub.config import Settings, get_settings
from rpi_hub.sources._responses import ApiResponse, success

# Server-side fetch limits stay private
_CLIENT_EXCLUDE = {"fetch", "weather_max_bytes", "calendar_max_bytes", "rss_max_bytes", "theme"}


def get_config(settings: Settings | None = None) -> ApiResponse:
    settings = settings or get_settings()
    return success(settings.model_dump(by_alias=True, exclude=_CLIENT_EXCLUDE, exclude_none=True))
