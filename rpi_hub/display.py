"""Themed terminal display: themed console and display helpers."""

from datetime import datetime, timezone
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.theme import Theme

from rpi_hub.net import FetchResult, UrlVerdict
from rpi_hub.telemetry import SpanRecord

# -- Theme palettes (keyed by theme name) ------------------------------------

_THEMES: dict[str, dict[str, str]] = {
    "dark":  {"info": "cyan", "accent": "bold cyan", "error": "bold red", "success": "green", "warning": "orange3", "hint": "dim"},
    "light": {"info": "blue", "accent": "bold blue", "error": "bold red", "success": "green", "warning": "orange3", "hint": "dim"},
}

# -- Console (single instance, themed) --------------------------------------

console = Console(theme=Theme(_THEMES["light"]))

# -- Indicators ------------------------------------------------------------

BULLET  = "▸"
SUCCESS = "✦"
ERROR   = "✖"
INFO    = "◈"

# -- Theme switching -------------------------------------------------------


def set_theme(name: str) -> None:
    """Switch the console theme at runtime (e.g. from --theme flag)."""
    console.push_theme(Theme(_THEMES.get(name, _THEMES["light"])))


# -- Display helpers -------------------------------------------------------


def display_error(message: str, hint: str | None = None) -> None:
    """Red-bordered panel with optional recovery hint."""
    body = f"[bold red]{ERROR} {message}[/bold red]"
    if hint:
        body += f"\n[dim]{hint}[/dim]"
    console.print(Panel(body, border_style="red", title="Error", title_align="left"))


def display_info(message: str) -> None:
    """Themed info message."""
    console.print(f"[info]{INFO} {message}[/info]")


def display_verdict(url: str, verdict: UrlVerdict) -> None:
    if verdict.valid:
        console.print(f"[success]{SUCCESS} allowed[/success] {url}")
        return
    kind = verdict.rejection.value if verdict.rejection else "rejected"
    console.print(f"[error]{ERROR} rejected[/error] {url}")
    console.print(f"  [hint]{kind}: {verdict.reason}[/hint]")


def display_fetch_result(result: FetchResult, *, show_body: bool = False) -> None:
    style = "success" if result.ok else "warning"
    console.print(f"[{style}]{BULLET} HTTP {result.status} {result.status_text}[/{style}] {result.url}")
    content_type = result.header("content-type") or "unknown"
    console.print(
        f"  [hint]{result.size} bytes, {content_type}, {result.redirects} redirect(s)[/hint]"
    )
    if show_body:
        console.print(result.text(), markup=False, highlight=False)


def display_weather(data: dict[str, Any], city: str | None = None) -> None:
    title = f"Weather — {city}" if city else "Weather"
    body = (
        f"[accent]{data['temperature']}°C[/accent]  {data['description']}\n"
        f"[hint]humidity {data['humidity']}%  wind {data['windSpeed']} km/h[/hint]"
    )
    console.print(Panel(body, title=title, title_align="left"))


def display_events(events: list[dict[str, Any]], limit: int | None = None) -> None:
    if not events:
        display_info("No upcoming events.")
        return
    table = Table(title="Upcoming events", title_justify="left")
    table.add_column("Start", style="info", no_wrap=True)
    table.add_column("Title")
    table.add_column("Location", style="hint")
    for event in events[:limit]:
        start = event["start"] + (" (all day)" if event["isAllDay"] else "")
        table.add_row(start, event["title"], event["location"])
    console.print(table)


def display_items(items: list[dict[str, Any]], limit: int | None = None) -> None:
    if not items:
        display_info("No headlines.")
        return
    for item in items[:limit]:
        console.print(f"[accent]{BULLET}[/accent] {item['title']} [hint]— {item['source']}[/hint]")
        if item["link"]:
            console.print(f"  [hint]{item['link']}[/hint]")


def display_locations(results: list[dict[str, Any]]) -> None:
    if not results:
        display_info("No matching places.")
        return
    table = Table(title_justify="left")
    table.add_column("Name")
    table.add_column("Region", style="hint")
    table.add_column("Country")
    table.add_column("Lat, Lon", style="info", no_wrap=True)
    for r in results:
        region = ", ".join(part for part in (r.get("admin1"), r.get("admin2")) if part)
        table.add_row(r["name"], region, r.get("country") or "", f"{r['latitude']}, {r['longitude']}")
    console.print(table)


def display_spans(spans: list[SpanRecord]) -> None:
    if not spans:
        console.print("[warning]No traces found yet. Run a command with --trace first.[/warning]")
        return
    table = Table(title="Recent fetch spans", title_justify="left")
    table.add_column("Time", style="hint", no_wrap=True)
    table.add_column("Span")
    table.add_column("URL")
    table.add_column("Status", no_wrap=True)
    table.add_column("ms", justify="right")
    for span in spans:
        started = datetime.fromtimestamp(span.start_time / 1e9, tz=timezone.utc)
        status = str(span.attributes.get("http.response.status_code", ""))
        error = span.attributes.get("fetch.error")
        if error:
            status = f"[error]{error}[/error]"
        duration = f"{span.duration_ms:.0f}" if span.duration_ms is not None else ""
        table.add_row(
            started.strftime("%H:%M:%S"), span.name, span.attributes.get("url.full", ""), status, duration,
        )
    console.print(table)
