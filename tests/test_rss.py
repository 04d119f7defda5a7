"""Tests for the RSS/Atom headline handler."""

from datetime import datetime, timedelta, timezone

import httpx
import pytest

from rpi_hub.config import FetchPolicy, Settings
from rpi_hub.net import BoundedFetcher
from rpi_hub.sources import get_rss_items
from rpi_hub.sources._responses import UpstreamError
from rpi_hub.sources.rss import MAX_ITEMS_TOTAL, parse_feed

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _rss(title: str, items: list[tuple[str, datetime | None]]) -> str:
    entries = []
    for item_title, published in items:
        pub = f"<pubDate>{published.strftime('%a, %d %b %Y %H:%M:%S +0000')}</pubDate>" if published else ""
        entries.append(
            f"<item><title>{item_title}</title>"
            f"<link>https://news.example.com/{item_title.replace(' ', '-')}</link>{pub}</item>"
        )
    return (
        '<?xml version="1.0"?><rss version="2.0"><channel>'
        f"<title>{title}</title>{''.join(entries)}</channel></rss>"
    )


ATOM_FEED = """<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Atom Weekly</title>
  <entry>
    <title>Atom story</title>
    <link href="https://atom.example.org/story"/>
    <updated>2026-03-01T10:30:00Z</updated>
  </entry>
</feed>
"""


def _fetcher(handler) -> BoundedFetcher:
    return BoundedFetcher(FetchPolicy(), transport=httpx.MockTransport(handler))


def _hours_ago(hours: int) -> datetime:
    return NOW - timedelta(hours=hours)


def test_parse_rss_feed():
    items = parse_feed(_rss("Local News", [("Road closed", _hours_ago(2))]), now=NOW)

    [(published, item)] = items
    assert published == _hours_ago(2)
    assert item["title"] == "Road closed"
    assert item["link"] == "https://news.example.com/Road-closed"
    assert item["source"] == "Local News"
    assert item["pubDate"] == "Sun, 01 Mar 2026 10:00:00 +0000"


def test_parse_atom_feed():
    [(published, item)] = parse_feed(ATOM_FEED, now=NOW)
    assert item["source"] == "Atom Weekly"
    assert item["link"] == "https://atom.example.org/story"
    assert published == datetime(2026, 3, 1, 10, 30, tzinfo=timezone.utc)


def test_undated_items_use_now():
    [(published, item)] = parse_feed(_rss("Undated", [("Mystery", None)]), now=NOW)
    assert published == NOW
    assert item["pubDate"] == NOW.isoformat()


def test_per_feed_item_limit():
    items = parse_feed(_rss("Busy", [(f"Story {i}", _hours_ago(i)) for i in range(15)]), now=NOW)
    assert len(items) == 10


def test_unparseable_feed_raises():
    with pytest.raises(UpstreamError):
        parse_feed("this is not xml <<<", now=NOW)


@pytest.mark.asyncio
async def test_feeds_merged_newest_first():
    feeds = {
        "a.example.com": _rss("Feed A", [("A old", _hours_ago(5)), ("A new", _hours_ago(1))]),
        "b.example.com": _rss("Feed B", [("B mid", _hours_ago(3))]),
    }

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text=feeds[request.url.host])

    settings = Settings(rss_feeds=["https://a.example.com/rss", "https://b.example.com/rss"])
    response = await get_rss_items(settings, fetcher=_fetcher(handler), now=NOW)

    assert response.status == 200
    assert [item["title"] for item in response.body["items"]] == ["A new", "B mid", "A old"]
    assert response.body["items"][1]["source"] == "Feed B"


@pytest.mark.asyncio
async def test_total_item_limit():
    feeds = {
        host: _rss(host, [(f"{host} {i}", _hours_ago(i)) for i in range(15)])
        for host in ("a.example.com", "b.example.com", "c.example.com")
    }
    settings = Settings(rss_feeds=[f"https://{host}/rss" for host in feeds])
    fetcher = _fetcher(lambda request: httpx.Response(200, text=feeds[request.url.host]))

    response = await get_rss_items(settings, fetcher=fetcher, now=NOW)

    assert len(response.body["items"]) == MAX_ITEMS_TOTAL


@pytest.mark.asyncio
async def test_bad_feeds_skipped(caplog):
    """Rejected and failing feeds are logged and skipped while the rest load."""
    requested: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requested.append(request.url.host)
        if request.url.host == "down.example.com":
            return httpx.Response(502)
        return httpx.Response(200, text=_rss("Good", [("Still here", _hours_ago(1))]))

    settings = Settings(rss_feeds=[
        "http://127.0.0.1:9000/rss",
        "https://down.example.com/rss",
        "https://good.example.com/rss",
        "  ",
    ])
    response = await get_rss_items(settings, fetcher=_fetcher(handler), now=NOW)

    assert response.status == 200
    assert [item["title"] for item in response.body["items"]] == ["Still here"]
    assert sorted(requested) == ["down.example.com", "good.example.com"]
    assert "Invalid RSS feed URL http://127.0.0.1:9000/rss" in caplog.text
    assert "Failed to fetch RSS feed https://down.example.com/rss" in caplog.text


@pytest.mark.asyncio
async def test_all_feeds_failing_is_500():
    settings = Settings(rss_feeds=["http://localhost/rss", "https://down.example.com/rss"])
    fetcher = _fetcher(lambda request: httpx.Response(500))

    response = await get_rss_items(settings, fetcher=fetcher, now=NOW)

    assert response.status == 500
    assert response.body == {"error": "All RSS feeds failed to load"}


@pytest.mark.asyncio
async def test_oversized_feed_skipped():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "huge.example.com":
            return httpx.Response(200, content=b"<rss>" + b" " * 4096 + b"</rss>")
        return httpx.Response(200, text=_rss("Small", [("Tiny", _hours_ago(1))]))

    settings = Settings(
        rss_feeds=["https://huge.example.com/rss", "https://small.example.com/rss"],
        rss_max_bytes=2048,
    )
    response = await get_rss_items(settings, fetcher=_fetcher(handler), now=NOW)

    assert [item["title"] for item in response.body["items"]] == ["Tiny"]


@pytest.mark.asyncio
async def test_no_feeds_configured():
    settings = Settings(rss_feeds=[])
    response = await get_rss_items(settings, fetcher=_fetcher(lambda request: httpx.Response(500)))
    assert response.body == {"items": []}


@pytest.mark.asyncio
async def test_malformed_redirect_feed_skipped():
    """A feed answering with an unparseable Location does not sink the others."""
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "bad.example.com":
            return httpx.Response(302, headers={"Location": "http://[evil.com/x"})
        return httpx.Response(200, text=_rss("Good", [("Survivor", _hours_ago(1))]))

    settings = Settings(rss_feeds=["https://good.example.com/rss", "https://bad.example.com/rss"])
    response = await get_rss_items(settings, fetcher=_fetcher(handler), now=NOW)

    assert response.status == 200
    assert [item["title"] for item in response.body["items"]] == ["Survivor"]
