"""Functional tests for fetch spans and the SQLite trace log."""

import httpx
import pytest
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor

from rpi_hub.config import FetchPolicy
from rpi_hub.net import BoundedFetcher, RedirectTargetRejected
from rpi_hub.telemetry import SQLiteSpanExporter, recent_spans


@pytest.fixture
def trace_db(tmp_path, monkeypatch):
    """Route fetch spans into a fresh SQLite file."""
    db_path = tmp_path / "traces.db"
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(SQLiteSpanExporter(db_path)))
    monkeypatch.setattr("rpi_hub.net.fetch.tracer", provider.get_tracer("rpi_hub.net.fetch"))
    yield db_path
    provider.shutdown()


def _fetcher(handler) -> BoundedFetcher:
    return BoundedFetcher(FetchPolicy(), transport=httpx.MockTransport(handler))


def test_recent_spans_without_db(tmp_path):
    assert recent_spans(db_path=tmp_path / "missing.db") == []


@pytest.mark.asyncio
async def test_fetch_and_hop_spans_recorded(trace_db):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/old":
            return httpx.Response(301, headers={"Location": "/new"})
        return httpx.Response(200, text="hello")

    await _fetcher(handler).fetch("https://example.com/old")

    spans = recent_spans(db_path=trace_db)
    by_name: dict[str, list] = {}
    for span in spans:
        by_name.setdefault(span.name, []).append(span)

    assert len(by_name["rpi_hub.fetch.hop"]) == 2
    [root] = by_name["rpi_hub.fetch"]
    assert root.attributes["url.full"] == "https://example.com/old"
    assert root.attributes["http.response.status_code"] == 200
    assert root.attributes["fetch.redirects"] == 1
    assert root.attributes["fetch.bytes"] == 5
    assert all(span.trace_id == root.trace_id for span in spans)

    hops = sorted(by_name["rpi_hub.fetch.hop"], key=lambda span: span.attributes["fetch.hop"])
    assert hops[0].attributes["http.response.status_code"] == 301
    assert hops[1].attributes["url.full"] == "https://example.com/new"


@pytest.mark.asyncio
async def test_failed_fetch_records_error_kind(trace_db):
    fetcher = _fetcher(lambda request: httpx.Response(302, headers={"Location": "http://10.0.0.1/"}))

    with pytest.raises(RedirectTargetRejected):
        await fetcher.fetch("https://example.com/")

    [root] = [span for span in recent_spans(db_path=trace_db) if span.name == "rpi_hub.fetch"]
    assert root.attributes["fetch.error"] == "redirect_target_rejected"
    assert root.status_code == "ERROR"


def test_recent_spans_limit(trace_db):
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(SQLiteSpanExporter(trace_db)))
    tracer = provider.get_tracer("test")
    for i in range(5):
        with tracer.start_as_current_span(f"span-{i}"):
            pass

    spans = recent_spans(limit=3, db_path=trace_db)
    assert [span.name for span in spans] == ["span-4", "span-3", "span-2"]
