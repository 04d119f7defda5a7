import os
import json
from pathlib import Path
from typing import Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

APP_NAME = "rpi-hub"

# Ports that stay blocked even above the privileged range. The low ones are
# already covered by the <1024 rule but are listed so the deny-list reads
# as a complete inventory of sensitive services.
_DEFAULT_BLOCKED_PORTS: list[int] = [
    21, 22, 23, 25, 110, 143,
    3306,   # MySQL
    3389,   # RDP
    5432,   # PostgreSQL
    5900,   # VNC
    6379,   # Redis
    8080,   # common HTTP alt / admin panels
    27017,  # MongoDB
]

# XDG Paths - Explicit XDG resolution so ~/.config/ is used even on macOS
CONFIG_DIR = Path(os.getenv("XDG_CONFIG_HOME", Path.home() / ".config")) / APP_NAME
DATA_DIR = Path(os.getenv("XDG_DATA_HOME", Path.home() / ".local" / "share")) / APP_NAME
SETTINGS_FILE = CONFIG_DIR / "settings.json"

# Kiosk config written by the settings screen, read from the working directory
KIOSK_CONFIG_NAME = "config.json"

MIB = 1024 * 1024


def _ensure_dirs() -> None:
    """Create config and data directories (idempotent)."""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    DATA_DIR.mkdir(parents=True, exist_ok=True)


class _KioskModel(BaseModel):
    """camelCase keys in config.json, snake_case in Python."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


TimeoutScope = Literal["per_hop", "total"]


class FetchPolicy(_KioskModel):
    """Limits for outbound fetches, shared by the URL validator and fetcher."""
    timeout_seconds: float = Field(default=10.0, gt=0)
    max_response_bytes: int = Field(default=10 * MIB, ge=1)
    max_redirects: int = Field(default=5, ge=0, le=20)
    user_agent: str = Field(default="rpi-hub/1.0")
    blocked_ports: list[int] = Field(default_factory=lambda: list(_DEFAULT_BLOCKED_PORTS))
    # Bind the client socket to 0.0.0.0 so only IPv4 routes are attempted
    force_ipv4: bool = Field(default=True)
    # Resolve DNS names before each hop and reject private answers
    resolve_hostnames: bool = Field(default=False)
    # "per_hop": every redirect hop gets a fresh budget; "total": one deadline
    timeout_scope: TimeoutScope = Field(default="per_hop")

    @field_validator("blocked_ports", mode="before")
    @classmethod
    def _parse_ports(cls, v: str | list[int]) -> list[int]:
        if isinstance(v, str):
            return [int(s) for s in v.split(",") if s.strip()]
        return v


class WeatherLocation(_KioskModel):
    lat: float = Field(default=40.7128, ge=-90, le=90)
    lon: float = Field(default=-74.0060, ge=-180, le=180)
    city: str = Field(default="New York")


class RefreshIntervals(_KioskModel):
    """Widget refresh intervals, in minutes."""
    weather: int = Field(default=30, ge=1)
    calendar: int = Field(default=15, ge=1)
    rss: int = Field(default=15, ge=1)


class DisplayLimits(_KioskModel):
    calendar_events: int = Field(default=5, ge=1)
    rss_items: int = Field(default=7, ge=1)


class Settings(_KioskModel):
    # Kiosk
    time_server: Optional[str] = Field(default=None)
    timezone: str = Field(default="America/New_York")
    date_format: str = Field(default="EEEE, MMMM dd, yyyy")
    weather_location: WeatherLocation = Field(default_factory=WeatherLocation)
    calendar_url: Optional[str] = Field(default=None)
    rss_feeds: list[str] = Field(
        default_factory=lambda: ["https://news.google.com/rss?hl=en&gl=US&ceid=US:en"]
    )
    refresh_intervals: RefreshIntervals = Field(default_factory=RefreshIntervals)
    display_limits: DisplayLimits = Field(default_factory=DisplayLimits)

    # Behavior
    theme: str = Field(default="light")

    # Per-source response caps
    weather_max_bytes: int = Field(default=1 * MIB, ge=1)
    calendar_max_bytes: int = Field(default=5 * MIB, ge=1)
    rss_max_bytes: int = Field(default=5 * MIB, ge=1)

    # Outbound fetch limits
    fetch: FetchPolicy = Field(default_factory=FetchPolicy)

    @field_validator("rss_feeds", mode="before")
    @classmethod
    def _parse_feeds(cls, v: str | list[str]) -> list[str]:
        if isinstance(v, str):
            return [s.strip() for s in v.split(",") if s.strip()]
        return v

    @field_validator("calendar_url")
    @classmethod
    def _blank_calendar_is_none(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            return None
        return v

    @model_validator(mode='before')
    @classmethod
    def fill_from_env(cls, data: dict) -> dict:
        """Env vars override all file-based values (highest precedence layer)."""
        env_map = {
            "calendar_url": "RPI_HUB_CALENDAR_URL",
            "rss_feeds": "RPI_HUB_RSS_FEEDS",
            "timezone": "RPI_HUB_TIMEZONE",
            "theme": "RPI_HUB_THEME",
            "weather_max_bytes": "RPI_HUB_WEATHER_MAX_BYTES",
            "calendar_max_bytes": "RPI_HUB_CALENDAR_MAX_BYTES",
            "rss_max_bytes": "RPI_HUB_RSS_MAX_BYTES",
        }
        fetch_env_map = {
            "timeout_seconds": "RPI_HUB_FETCH_TIMEOUT_SECONDS",
            "max_response_bytes": "RPI_HUB_FETCH_MAX_BYTES",
            "max_redirects": "RPI_HUB_FETCH_MAX_REDIRECTS",
            "user_agent": "RPI_HUB_FETCH_USER_AGENT",
            "blocked_ports": "RPI_HUB_FETCH_BLOCKED_PORTS",
            "force_ipv4": "RPI_HUB_FETCH_FORCE_IPV4",
            "resolve_hostnames": "RPI_HUB_FETCH_RESOLVE_HOSTNAMES",
            "timeout_scope": "RPI_HUB_FETCH_TIMEOUT_SCOPE",
        }

        # Written under the camelCase alias, which pydantic prefers when
        # both spellings are present in the input.
        for field, env_var in env_map.items():
            val = os.getenv(env_var)
            if val:
                data.pop(field, None)
                data[to_camel(field)] = val

        fetch_overrides = {
            field: os.getenv(env_var)
            for field, env_var in fetch_env_map.items()
            if os.getenv(env_var)
        }
        if fetch_overrides:
            fetch_data = data.get("fetch", {})
            if isinstance(fetch_data, FetchPolicy):
                fetch_data = fetch_data.model_dump(by_alias=True)
            elif not isinstance(fetch_data, dict):
                fetch_data = {}
            fetch_data = dict(fetch_data)
            for field, val in fetch_overrides.items():
                fetch_data.pop(field, None)
                fetch_data[to_camel(field)] = val
            data["fetch"] = fetch_data
        return data


def find_kiosk_config() -> Path | None:
    """Return config.json in cwd if it exists, else None."""
    candidate = Path.cwd() / KIOSK_CONFIG_NAME
    return candidate if candidate.is_file() else None


def load_config() -> Settings:
    data: dict = {}

    # Layer 1: User config (~/.config/rpi-hub/settings.json)
    if SETTINGS_FILE.exists():
        with open(SETTINGS_FILE, "r") as f:
            try:
                data = json.load(f)
            except Exception as e:
                print(f"Error loading settings.json: {e}. Using defaults.")

    # Layer 2: Kiosk config (<cwd>/config.json), shallow merge. Nested
    # objects fall back to their own field defaults for missing keys.
    kiosk_config = find_kiosk_config()
    if kiosk_config is not None:
        with open(kiosk_config, "r") as f:
            try:
                data |= json.load(f)
            except Exception as e:
                print(f"Error loading kiosk config {kiosk_config}: {e}. Skipping.")

    # Layer 3: Env vars (handled by fill_from_env model_validator)
    return Settings.model_validate(data)


# Lazy settings singleton: directories created on first access, not at import time.
_settings: Settings | None = None


def get_settings() -> Settings:
    """Return the global Settings instance, creating it on first call."""
    global _settings
    if _settings is None:
        _ensure_dirs()
        _settings = load_config()
    return _settings


def __getattr__(name: str):
    """Lazy module attribute so ``from rpi_hub.config import settings`` works without import-time side effects."""
    if name == "settings":
        return get_settings()
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
