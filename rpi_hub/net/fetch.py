"""Bounded HTTP fetch: wall-clock timeout, body size cap, validated redirects.

Redirects are followed manually so that every target goes through the
same URL validation as the original URL before any request is sent to it.
"""

import asyncio
import json
import logging
import socket
from contextlib import nullcontext
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urljoin, urlsplit

import httpx
from opentelemetry import trace

from rpi_hub.config import FetchPolicy
from rpi_hub.net._errors import (
    FetchError,
    InvalidJsonBody,
    RedirectTargetRejected,
    RequestTimeout,
    ResponseTooLarge,
    TooManyRedirects,
    TransportError,
    UrlRejected,
    from_httpx_error,
)
from rpi_hub.net._url_safety import (
    INVALID_FORMAT,
    UrlRejection,
    UrlValidator,
    UrlVerdict,
    is_allowed_ip,
    parse_ip_literal,
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

_DEFAULT_PORTS = {"http": 80, "https": 443}
_RESOLVES_PRIVATE = UrlVerdict.reject(
    UrlRejection.DISALLOWED_HOST, "hostname resolves to a restricted address"
)


@dataclass(frozen=True)
class FetchResult:
    """A completed response whose whole body fit within the size cap."""

    url: str
    status: int
    status_text: str
    headers: httpx.Headers = field(repr=False)
    body: str = field(repr=False)
    size: int = 0
    redirects: int = 0

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def header(self, name: str) -> str | None:
        """Case-insensitive header lookup; None when absent."""
        return self.headers.get(name)

    def text(self) -> str:
        return self.body

    def json(self) -> Any:
        """Parse the body as JSON on every call.

        Raises InvalidJsonBody when the body is not JSON, regardless of
        the fetch itself having succeeded.
        """
        try:
            return json.loads(self.body)
        except json.JSONDecodeError as e:
            raise InvalidJsonBody(self.url) from e


@dataclass(frozen=True)
class _Redirect:
    location: str


async def _resolve(hostname: str, port: int, family: int) -> list[str]:
    """Resolve *hostname* to address strings using the running loop's resolver."""
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(hostname, port, family=family, type=socket.SOCK_STREAM)
    return [info[4][0] for info in infos]


def _declared_length(response: httpx.Response) -> int | None:
    raw = response.headers.get("content-length")
    if raw is None:
        return None
    try:
        return int(raw.strip())
    except ValueError:
        return None


async def _read_capped(response: httpx.Response, url: str, max_bytes: int) -> bytes:
    """Read the body, aborting as soon as more than *max_bytes* arrive.

    Counts decoded bytes, so a compressed body is also bounded after
    decompression.
    """
    chunks: list[bytes] = []
    total = 0
    async for chunk in response.aiter_bytes():
        total += len(chunk)
        if total > max_bytes:
            raise ResponseTooLarge(url, max_bytes)
        chunks.append(chunk)
    return b"".join(chunks)


class BoundedFetcher:
    """GET remote resources with strict time, size and redirect bounds.

    Each call to :meth:`fetch` owns its client, buffer and counters, so
    one fetcher can serve concurrent calls. *transport* replaces the
    IPv4-pinned default transport and is mainly for tests.
    """

    def __init__(
        self,
        policy: FetchPolicy | None = None,
        *,
        validator: UrlValidator | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.policy = policy or FetchPolicy()
        self.validator = validator or UrlValidator(self.policy)
        self._transport = transport

    def _build_client(self, timeout_seconds: float) -> httpx.AsyncClient:
        transport = self._transport
        if transport is None:
            # Binding to 0.0.0.0 restricts connection attempts to IPv4
            local_address = "0.0.0.0" if self.policy.force_ipv4 else None
            transport = httpx.AsyncHTTPTransport(local_address=local_address)
        return httpx.AsyncClient(
            transport=transport,
            timeout=httpx.Timeout(timeout_seconds),
            follow_redirects=False,
            headers={"User-Agent": self.policy.user_agent},
        )

    async def fetch(
        self,
        url: str,
        *,
        timeout_seconds: float | None = None,
        max_bytes: int | None = None,
    ) -> FetchResult:
        """Fetch *url*, following at most ``policy.max_redirects`` validated redirects.

        Raises a FetchError subclass on any violation; a partial body is
        never returned.
        """
        if timeout_seconds is None:
            timeout_seconds = self.policy.timeout_seconds
        if max_bytes is None:
            max_bytes = self.policy.max_response_bytes

        with tracer.start_as_current_span("rpi_hub.fetch") as span:
            span.set_attribute("url.full", url)
            span.set_attribute("fetch.timeout_seconds", timeout_seconds)
            span.set_attribute("fetch.max_bytes", max_bytes)
            try:
                verdict = await self._vet(url)
                if not verdict.valid:
                    logger.warning("Refusing to fetch %s: %s", url, verdict.reason)
                    raise UrlRejected(url, verdict)

                async with self._build_client(timeout_seconds) as client:
                    if self.policy.timeout_scope == "total":
                        try:
                            async with asyncio.timeout(timeout_seconds):
                                result = await self._follow(client, url, timeout_seconds, max_bytes)
                        except TimeoutError as e:
                            raise RequestTimeout(url, timeout_seconds) from e
                    else:
                        result = await self._follow(client, url, timeout_seconds, max_bytes)
            except FetchError as e:
                span.set_attribute("fetch.error", e.kind.value)
                raise

            span.set_attribute("http.response.status_code", result.status)
            span.set_attribute("fetch.redirects", result.redirects)
            span.set_attribute("fetch.bytes", result.size)
            return result

    async def _vet(self, url: str) -> UrlVerdict:
        """Validate *url* and, when enabled, the addresses its hostname resolves to."""
        verdict = self.validator.validate(url)
        if not verdict.valid or not self.policy.resolve_hostnames:
            return verdict

        parts = urlsplit(url)
        hostname = parts.hostname or ""
        if parse_ip_literal(hostname) is not None:
            return verdict

        family = socket.AF_INET if self.policy.force_ipv4 else socket.AF_UNSPEC
        port = parts.port or _DEFAULT_PORTS[parts.scheme]
        try:
            addresses = await _resolve(hostname, port, family)
        except OSError as e:
            raise TransportError(f"DNS resolution failed for {hostname}: {e}", url=url) from e

        for address in addresses:
            ip = parse_ip_literal(address)
            if ip is None or not is_allowed_ip(ip):
                logger.warning("%s resolves to restricted address %s", hostname, address)
                return _RESOLVES_PRIVATE
        return verdict

    async def _follow(
        self,
        client: httpx.AsyncClient,
        url: str,
        timeout_seconds: float,
        max_bytes: int,
    ) -> FetchResult:
        current = url
        redirect_count = 0
        while True:
            outcome = await self._fetch_hop(
                client, current, timeout_seconds, max_bytes, redirect_count,
            )
            if isinstance(outcome, FetchResult):
                return outcome

            target = outcome.location
            verdict = await self._vet(target)
            if not verdict.valid:
                logger.warning(
                    "Redirect from %s to %s rejected: %s", current, target, verdict.reason,
                )
                raise RedirectTargetRejected(current, target, verdict)

            redirect_count += 1
            if redirect_count > self.policy.max_redirects:
                raise TooManyRedirects(url, self.policy.max_redirects)

            logger.debug("Following redirect %d: %s -> %s", redirect_count, current, target)
            current = target

    async def _fetch_hop(
        self,
        client: httpx.AsyncClient,
        url: str,
        timeout_seconds: float,
        max_bytes: int,
        hop: int,
    ) -> FetchResult | _Redirect:
        if self.policy.timeout_scope == "per_hop":
            deadline = asyncio.timeout(timeout_seconds)
        else:
            deadline = nullcontext()

        with tracer.start_as_current_span("rpi_hub.fetch.hop") as span:
            span.set_attribute("url.full", url)
            span.set_attribute("fetch.hop", hop)
            try:
                async with deadline:
                    return await self._request(client, url, max_bytes, hop, span)
            except TimeoutError as e:
                raise RequestTimeout(url, timeout_seconds) from e
            except httpx.InvalidURL as e:
                raise TransportError(f"Invalid request URL {url!r}: {e}", url=url) from e
            except httpx.HTTPError as e:
                raise from_httpx_error(e, url=url, timeout_seconds=timeout_seconds) from e

    async def _request(
        self,
        client: httpx.AsyncClient,
        url: str,
        max_bytes: int,
        hop: int,
        span: trace.Span,
    ) -> FetchResult | _Redirect:
        async with client.stream("GET", url) as response:
            span.set_attribute("http.response.status_code", response.status_code)

            declared = _declared_length(response)
            if declared is not None and declared > max_bytes:
                raise ResponseTooLarge(url, max_bytes, declared)

            location = response.headers.get("location")
            if 300 <= response.status_code < 400 and location:
                try:
                    return _Redirect(urljoin(url, location))
                except ValueError as e:
                    logger.warning("Redirect from %s has malformed Location %r", url, location)
                    raise RedirectTargetRejected(url, location, INVALID_FORMAT) from e

            content = await _read_capped(response, url, max_bytes)

        span.set_attribute("fetch.bytes", len(content))
        return FetchResult(
            url=url,
            status=response.status_code,
            status_text=response.reason_phrase,
            headers=response.headers,
            body=content.decode("utf-8", errors="replace"),
            size=len(content),
            redirects=hop,
        )


async def fetch_bounded(
    url: str,
    timeout_seconds: float | None = None,
    max_bytes: int | None = None,
    *,
    policy: FetchPolicy | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FetchResult:
    """One-off bounded fetch with a fresh :class:`BoundedFetcher`."""
    fetcher = BoundedFetcher(policy, transport=transport)
    return await fetcher.fetch(url, timeout_seconds=timeout_seconds, max_bytes=max_bytes)
