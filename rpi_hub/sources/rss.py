"""Headlines merged from the configured RSS/Atom feeds."""

import asyncio
import io
import logging
from datetime import datetime, timezone
from typing import Any

import feedparser

from rpi_hub.config import Settings, get_settings
from rpi_hub.net import BoundedFetcher, FetchError
from rpi_hub.sources._responses import ApiResponse, UpstreamError, error_response, success

logger = logging.getLogger(__name__)

MAX_ITEMS_PER_FEED = 10
MAX_ITEMS_TOTAL = 20

_Item = tuple[datetime, dict[str, Any]]


def _published_at(entry, fallback: datetime) -> datetime:
    parsed = entry.get("published_parsed") or entry.get("updated_parsed")
    if not parsed:
        return fallback
    return datetime(*parsed[:6], tzinfo=timezone.utc)


def parse_feed(xml_text: str, *, now: datetime) -> list[_Item]:
    """Up to MAX_ITEMS_PER_FEED items of one feed, each with its sort timestamp."""
    # A stream keeps feedparser from treating the body as a URL or file path
    parsed = feedparser.parse(io.BytesIO(xml_text.encode("utf-8")))
    if parsed.bozo and not parsed.entries:
        raise UpstreamError(f"unparseable feed: {parsed.get('bozo_exception')}")

    source = parsed.feed.get("title") or "Unknown"
    items: list[_Item] = []
    for entry in parsed.entries[:MAX_ITEMS_PER_FEED]:
        published = _published_at(entry, now)
        items.append((published, {
            "title": entry.get("title", ""),
            "link": entry.get("link", ""),
            "pubDate": entry.get("published") or entry.get("updated") or published.isoformat(),
            "source": source,
        }))
    return items


async def _load_feed(
    url: str, fetcher: BoundedFetcher, max_bytes: int, now: datetime,
) -> list[_Item] | None:
    """Items of one feed, or None when it was rejected or failed."""
    verdict = fetcher.validator.validate(url)
    if not verdict.valid:
        logger.error("Invalid RSS feed URL %s: %s", url, verdict.reason)
        return None

    try:
        response = await fetcher.fetch(url, max_bytes=max_bytes)
        if not response.ok:
            raise UpstreamError(f"feed returned HTTP {response.status}")
        return parse_feed(response.text(), now=now)
    except (FetchError, UpstreamError) as e:
        logger.error("Failed to fetch RSS feed %s: %s", url, e)
        return None


async def get_rss_items(
    settings: Settings | None = None,
    *,
    fetcher: BoundedFetcher | None = None,
    now: datetime | None = None,
) -> ApiResponse:
    """Newest items across all feeds. Returns ``{"items": [...]}``.

    Invalid or failing feeds are skipped; the call fails only when every
    feed fails.
    """
    settings = settings or get_settings()
    urls = [url.strip() for url in settings.rss_feeds if url.strip()]
    if not urls:
        return success({"items": []})

    fetcher = fetcher or BoundedFetcher(settings.fetch)
    now = now or datetime.now(timezone.utc)

    results = await asyncio.gather(*(
        _load_feed(url, fetcher, settings.rss_max_bytes, now) for url in urls
    ))
    loaded = [items for items in results if items is not None]
    logger.debug("RSS feeds loaded: %d ok, %d failed", len(loaded), len(urls) - len(loaded))
    if not loaded:
        return error_response("All RSS feeds failed to load")

    merged = [item for items in loaded for item in items]
    merged.sort(key=lambda pair: pair[0], reverse=True)
    return success({"items": [item for _, item in merged[:MAX_ITEMS_TOTAL]]})
