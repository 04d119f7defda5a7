"""Upcoming events from the configured iCalendar (.ics) URL."""

import logging
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from icalendar import Calendar

from rpi_hub.config import Settings, get_settings
from rpi_hub.net import BoundedFetcher, FetchError
from rpi_hub.sources._responses import (
    ApiResponse, UpstreamError, check_verdict, error_response, success,
)

logger = logging.getLogger(__name__)

CALENDAR_DAYS_AHEAD = 30

_FAILED = "Failed to fetch calendar data"


def _kiosk_tz(name: str) -> tzinfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r, using UTC", name)
        return timezone.utc


def _as_datetime(value: date, tz: tzinfo) -> datetime:
    """Floating times and all-day dates are interpreted in the kiosk timezone."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=tz)
    return datetime.combine(value, time.min, tzinfo=tz)


def _event_end(component, start: date, is_all_day: bool) -> date:
    dtend = component.get("DTEND")
    if dtend is not None:
        return dtend.dt
    duration = component.get("DURATION")
    if duration is not None:
        return start + duration.dt
    return start + timedelta(days=1) if is_all_day else start


def parse_events(ical_text: str, *, now: datetime, tz: tzinfo) -> list[dict[str, Any]]:
    """Events that have not ended and start within CALENDAR_DAYS_AHEAD, by start time.

    All-day events use ``YYYY-MM-DD`` strings; timed events use ISO 8601.
    Recurrence rules are not expanded.
    """
    calendar = Calendar.from_ical(ical_text)
    horizon = now + timedelta(days=CALENDAR_DAYS_AHEAD)

    upcoming: list[tuple[datetime, dict[str, Any]]] = []
    for component in calendar.walk("VEVENT"):
        dtstart = component.get("DTSTART")
        if dtstart is None:
            continue
        start = dtstart.dt
        is_all_day = not isinstance(start, datetime)
        end = _event_end(component, start, is_all_day)

        start_at = _as_datetime(start, tz)
        end_at = _as_datetime(end, tz)
        if end_at < now or start_at > horizon:
            continue

        upcoming.append((start_at, {
            "title": str(component.get("SUMMARY", "")),
            "start": start.isoformat() if is_all_day else start_at.isoformat(),
            "end": end.isoformat() if is_all_day else end_at.isoformat(),
            "description": str(component.get("DESCRIPTION", "")),
            "location": str(component.get("LOCATION", "")),
            "isAllDay": is_all_day,
        }))

    upcoming.sort(key=lambda pair: pair[0])
    return [event for _, event in upcoming]


async def get_calendar_events(
    settings: Settings | None = None,
    *,
    fetcher: BoundedFetcher | None = None,
    now: datetime | None = None,
) -> ApiResponse:
    """Fetch and filter the configured calendar. Returns ``{"events": [...]}``."""
    settings = settings or get_settings()
    calendar_url = (settings.calendar_url or "").strip()
    if not calendar_url:
        return success({"events": []})

    fetcher = fetcher or BoundedFetcher(settings.fetch)
    rejected = check_verdict(fetcher.validator.validate(calendar_url))
    if rejected is not None:
        logger.info("Calendar URL rejected: %s", rejected.body["error"])
        return rejected

    tz = _kiosk_tz(settings.timezone)
    now = now or datetime.now(tz)

    try:
        response = await fetcher.fetch(calendar_url, max_bytes=settings.calendar_max_bytes)
        if not response.ok:
            raise UpstreamError(f"calendar returned HTTP {response.status}")
        events = parse_events(response.text(), now=now, tz=tz)
    except (FetchError, UpstreamError, ValueError, TypeError) as e:
        return error_response(_FAILED, e)

    return success({"events": events})
