"""Fetch trace log: OpenTelemetry spans persisted to a local SQLite file."""

import json
import logging
import sqlite3
import time
from dataclasses import dataclass
from pathlib import Path

from opentelemetry.sdk.trace import ReadableSpan
from opentelemetry.sdk.trace.export import SpanExporter, SpanExportResult

from rpi_hub.config import DATA_DIR

logger = logging.getLogger(__name__)

DB_PATH = DATA_DIR / "rpi-hub.db"

# WAL concurrency settings
_BUSY_TIMEOUT_MS = 5000
_EXPORT_MAX_RETRIES = 3
_EXPORT_RETRY_BASE_SECONDS = 0.1


class SQLiteSpanExporter(SpanExporter):
    def __init__(self, db_path: str | Path = DB_PATH):
        self.db_path = str(db_path)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        """Open a connection with WAL mode and busy_timeout for concurrent access."""
        conn = sqlite3.connect(self.db_path)
        conn.execute(f"PRAGMA busy_timeout = {_BUSY_TIMEOUT_MS}")
        conn.execute("PRAGMA journal_mode = WAL")
        return conn

    def _init_db(self):
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS spans (
                    id TEXT PRIMARY KEY,
                    trace_id TEXT NOT NULL,
                    parent_id TEXT,
                    name TEXT NOT NULL,
                    start_time INTEGER NOT NULL,
                    end_time INTEGER,
                    duration_ms REAL,
                    status_code TEXT,
                    status_description TEXT,
                    attributes TEXT
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_spans_trace ON spans(trace_id)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_spans_start ON spans(start_time DESC)")

    def export(self, spans: list[ReadableSpan]) -> SpanExportResult:
        rows = []
        for span in spans:
            span_id = format(span.context.span_id, '016x')
            trace_id = format(span.context.trace_id, '032x')
            parent_id = format(span.parent.span_id, '016x') if span.parent else None

            duration_ms = None
            if span.end_time and span.start_time:
                duration_ms = (span.end_time - span.start_time) / 1_000_000

            status_code = "UNSET"
            status_description = None
            if span.status:
                status_code = span.status.status_code.name
                status_description = span.status.description

            rows.append((
                span_id,
                trace_id,
                parent_id,
                span.name,
                span.start_time,
                span.end_time,
                duration_ms,
                status_code,
                status_description,
                json.dumps(dict(span.attributes) if span.attributes else {}),
            ))

        # Retry with exponential backoff for transient lock contention
        for attempt in range(_EXPORT_MAX_RETRIES):
            try:
                with self._connect() as conn:
                    conn.executemany(
                        "INSERT OR REPLACE INTO spans VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                        rows,
                    )
                return SpanExportResult.SUCCESS
            except sqlite3.OperationalError as exc:
                if "locked" in str(exc) and attempt < _EXPORT_MAX_RETRIES - 1:
                    delay = _EXPORT_RETRY_BASE_SECONDS * (2 ** attempt)
                    logger.warning("telemetry export retry %d/%d after lock: %s", attempt + 1, _EXPORT_MAX_RETRIES, exc)
                    time.sleep(delay)
                else:
                    logger.error("telemetry export failed: %s", exc)
                    return SpanExportResult.FAILURE
        return SpanExportResult.FAILURE

    def shutdown(self):
        pass


@dataclass(frozen=True)
class SpanRecord:
    name: str
    trace_id: str
    start_time: int
    duration_ms: float | None
    status_code: str
    attributes: dict


def recent_spans(limit: int = 20, db_path: str | Path = DB_PATH) -> list[SpanRecord]:
    """Most recent spans first. Empty when nothing has been traced yet."""
    if not Path(db_path).exists():
        return []
    with sqlite3.connect(str(db_path)) as conn:
        rows = conn.execute(
            "SELECT name, trace_id, start_time, duration_ms, status_code, attributes "
            "FROM spans ORDER BY start_time DESC LIMIT ?",
            (limit,),
        ).fetchall()
    return [
        SpanRecord(
            name=name,
            trace_id=trace_id,
            start_time=start_time,
            duration_ms=duration_ms,
            status_code=status_code,
            attributes=json.loads(attributes or "{}"),
        )
        for name, trace_id, start_time, duration_ms, status_code, attributes in rows
    ]
