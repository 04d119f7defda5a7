"""Functional tests for terminal display helpers."""

import httpx
from rich.console import Console
from rich.theme import Theme

from rpi_hub import display
from rpi_hub.net import FetchResult, validate_url
from rpi_hub.telemetry import SpanRecord


def _recording_console() -> Console:
    return Console(
        record=True, force_terminal=False, color_system=None, width=120,
        theme=Theme(display._THEMES["light"]),
    )


def test_display_verdict_allowed(monkeypatch):
    recording_console = _recording_console()
    monkeypatch.setattr(display, "console", recording_console)

    display.display_verdict("https://example.com/", validate_url("https://example.com/"))

    assert "allowed https://example.com/" in recording_console.export_text()


def test_display_verdict_rejected_shows_reason(monkeypatch):
    recording_console = _recording_console()
    monkeypatch.setattr(display, "console", recording_console)

    display.display_verdict("http://localhost/", validate_url("http://localhost/"))

    text = recording_console.export_text()
    assert "rejected http://localhost/" in text
    assert "disallowed_host: localhost URLs are not allowed" in text


def test_display_fetch_result_body_is_not_markup(monkeypatch):
    recording_console = _recording_console()
    monkeypatch.setattr(display, "console", recording_console)
    result = FetchResult(
        url="https://example.com/",
        status=200,
        status_text="OK",
        headers=httpx.Headers({"Content-Type": "text/plain"}),
        body="[bold]not styled[/bold]",
        size=23,
        redirects=2,
    )

    display.display_fetch_result(result, show_body=True)

    text = recording_console.export_text()
    assert "HTTP 200 OK https://example.com/" in text
    assert "23 bytes, text/plain, 2 redirect(s)" in text
    assert "[bold]not styled[/bold]" in text


def test_display_items_respects_limit(monkeypatch):
    recording_console = _recording_console()
    monkeypatch.setattr(display, "console", recording_console)
    items = [{"title": f"Story {i}", "link": "", "source": "Wire"} for i in range(5)]

    display.display_items(items, limit=2)

    text = recording_console.export_text()
    assert "Story 1" in text
    assert "Story 2" not in text


def test_display_spans_empty(monkeypatch):
    recording_console = _recording_console()
    monkeypatch.setattr(display, "console", recording_console)

    display.display_spans([])

    assert "No traces found yet" in recording_console.export_text()


def test_display_spans_shows_error_kind(monkeypatch):
    recording_console = _recording_console()
    monkeypatch.setattr(display, "console", recording_console)
    span = SpanRecord(
        name="rpi_hub.fetch",
        trace_id="0" * 32,
        start_time=1_772_366_400_000_000_000,
        duration_ms=12.4,
        status_code="ERROR",
        attributes={"url.full": "https://example.com/", "fetch.error": "request_timeout"},
    )

    display.display_spans([span])

    text = recording_console.export_text()
    assert "request_timeout" in text
    assert "rpi_hub.fetch" in text
