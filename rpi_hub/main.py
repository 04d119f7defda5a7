import asyncio
import json
import logging

import typer
from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from rich.logging import RichHandler

from rpi_hub import __version__
from rpi_hub.config import get_settings
from rpi_hub.display import (
    console, display_error, display_events, display_fetch_result, display_items,
    display_locations, display_spans, display_verdict, display_weather, set_theme,
)
from rpi_hub.net import BoundedFetcher, FetchError, InvalidJsonBody, UrlRejected
from rpi_hub.sources import (
    ApiResponse, get_calendar_events, get_config, get_rss_items, get_weather,
    reverse_geocode, search_locations,
)
from rpi_hub.telemetry import SQLiteSpanExporter, recent_spans

app = typer.Typer(
    help="rpi-hub - kiosk dashboard data sources behind a safe outbound fetcher",
    context_settings={"help_option_names": ["--help", "-h"]},
    no_args_is_help=True,
)


def _setup_tracing() -> None:
    """Persist spans to the local SQLite trace log."""
    resource = Resource.create({
        "service.name": "rpi-hub",
        "service.version": __version__,
    })
    tracer_provider = TracerProvider(resource=resource)
    tracer_provider.add_span_processor(SimpleSpanProcessor(SQLiteSpanExporter()))
    trace.set_tracer_provider(tracer_provider)


def _exit_on_error(response: ApiResponse) -> None:
    if not response.ok:
        display_error(response.body.get("error", f"HTTP {response.status}"))
        raise typer.Exit(code=1)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log fetch activity"),
    trace_fetches: bool = typer.Option(False, "--trace", help="Record fetch spans to the trace log"),
    theme: str = typer.Option(None, "--theme", "-t", help="Color theme: dark or light"),
):
    """Kiosk dashboard backend."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )
    set_theme(theme or get_settings().theme)
    if trace_fetches:
        _setup_tracing()


@app.command("check-url")
def check_url(url: str = typer.Argument(..., help="URL to classify")):
    """Report whether a URL would be allowed as a calendar or feed source."""
    fetcher = BoundedFetcher(get_settings().fetch)
    verdict = fetcher.validator.validate(url)
    display_verdict(url, verdict)
    if not verdict.valid:
        raise typer.Exit(code=1)


@app.command()
def fetch(
    url: str = typer.Argument(..., help="URL to fetch"),
    timeout: float = typer.Option(None, "--timeout", help="Timeout in seconds"),
    max_bytes: int = typer.Option(None, "--max-bytes", help="Maximum response size in bytes"),
    as_json: bool = typer.Option(False, "--json", help="Parse and pretty-print the body as JSON"),
    show_body: bool = typer.Option(False, "--body", "-b", help="Print the response body"),
):
    """Fetch a URL through the bounded fetcher."""
    fetcher = BoundedFetcher(get_settings().fetch)
    try:
        result = asyncio.run(fetcher.fetch(url, timeout_seconds=timeout, max_bytes=max_bytes))
    except UrlRejected as e:
        display_verdict(url, e.verdict)
        raise typer.Exit(code=1)
    except FetchError as e:
        display_error(str(e), hint=e.kind.value)
        raise typer.Exit(code=1)

    display_fetch_result(result, show_body=show_body and not as_json)
    if as_json:
        try:
            console.print_json(json.dumps(result.json()))
        except InvalidJsonBody as e:
            display_error(str(e))
            raise typer.Exit(code=1)
    if not result.ok:
        raise typer.Exit(code=1)


@app.command()
def weather(
    lat: float = typer.Option(None, "--lat", help="Latitude (defaults to configured location)"),
    lon: float = typer.Option(None, "--lon", help="Longitude (defaults to configured location)"),
):
    """Show current weather."""
    settings = get_settings()
    city = None
    if lat is None or lon is None:
        lat, lon = settings.weather_location.lat, settings.weather_location.lon
        city = settings.weather_location.city
    response = asyncio.run(get_weather(lat, lon, settings=settings))
    _exit_on_error(response)
    display_weather(response.body, city)


@app.command()
def geocode(query: str = typer.Argument(..., help="Place name")):
    """Search for a place by name."""
    response = asyncio.run(search_locations(query, settings=get_settings()))
    _exit_on_error(response)
    display_locations(response.body["results"])


@app.command("reverse-geocode")
def reverse_geocode_cmd(
    lat: float = typer.Argument(..., help="Latitude"),
    lon: float = typer.Argument(..., help="Longitude"),
):
    """Resolve coordinates to a place name."""
    response = asyncio.run(reverse_geocode(lat, lon, settings=get_settings()))
    _exit_on_error(response)
    console.print(response.body["displayName"])


@app.command()
def calendar():
    """List upcoming events from the configured calendar URL."""
    settings = get_settings()
    response = asyncio.run(get_calendar_events(settings))
    _exit_on_error(response)
    display_events(response.body["events"], settings.display_limits.calendar_events)


@app.command()
def rss():
    """List the newest headlines across configured feeds."""
    settings = get_settings()
    response = asyncio.run(get_rss_items(settings))
    _exit_on_error(response)
    display_items(response.body["items"], settings.display_limits.rss_items)


@app.command()
def config():
    """Print the merged kiosk configuration."""
    console.print_json(json.dumps(get_config(get_settings()).body))


@app.command()
def traces(last: int = typer.Option(20, "--last", "-l", help="Number of spans to show")):
    """Show recent fetch spans from the trace log."""
    display_spans(recent_spans(last))


if __name__ == "__main__":
    app()
