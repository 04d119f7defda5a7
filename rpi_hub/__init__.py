"""Kiosk dashboard backend: weather, calendar and news behind a safe outbound fetcher."""

__version__ = "0.1.0"
