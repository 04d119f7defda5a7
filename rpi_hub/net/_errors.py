"""Typed failures raised by the bounded fetcher.

Every failure carries a ``kind`` so callers can log the specific cause
server-side while showing end users a generic upstream-failure message.
Messages may include the URL; they are meant for logs, not for clients.
"""

import enum

import httpx

from rpi_hub.net._url_safety import UrlVerdict


# ---------------------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------------------


class FetchErrorKind(enum.Enum):
    URL_REJECTED             = "url_rejected"              # initial URL failed validation
    TOO_MANY_REDIRECTS       = "too_many_redirects"
    REDIRECT_TARGET_REJECTED = "redirect_target_rejected"
    RESPONSE_TOO_LARGE       = "response_too_large"
    REQUEST_TIMEOUT          = "request_timeout"
    TRANSPORT_ERROR          = "transport_error"           # refused, DNS, reset, protocol
    INVALID_JSON_BODY        = "invalid_json_body"


class FetchError(Exception):
    """Base class for every failure of a bounded fetch."""

    kind: FetchErrorKind

    def __init__(self, message: str, *, url: str | None = None):
        super().__init__(message)
        self.url = url


class UrlRejected(FetchError):
    kind = FetchErrorKind.URL_REJECTED

    def __init__(self, url: str, verdict: UrlVerdict):
        super().__init__(f"URL rejected: {verdict.reason}", url=url)
        self.verdict = verdict


class TooManyRedirects(FetchError):
    kind = FetchErrorKind.TOO_MANY_REDIRECTS

    def __init__(self, url: str, max_redirects: int):
        super().__init__(f"Too many redirects (max {max_redirects})", url=url)
        self.max_redirects = max_redirects


class RedirectTargetRejected(FetchError):
    kind = FetchErrorKind.REDIRECT_TARGET_REJECTED

    def __init__(self, url: str, target: str, verdict: UrlVerdict):
        super().__init__(f"Redirect to {target} rejected: {verdict.reason}", url=url)
        self.target = target
        self.verdict = verdict


class ResponseTooLarge(FetchError):
    kind = FetchErrorKind.RESPONSE_TOO_LARGE

    def __init__(self, url: str, max_bytes: int, declared: int | None = None):
        detail = f"declared {declared} bytes" if declared is not None else "body exceeded limit"
        super().__init__(
            f"Response size exceeds maximum allowed ({max_bytes} bytes; {detail})", url=url,
        )
        self.max_bytes = max_bytes
        self.declared = declared


class RequestTimeout(FetchError):
    kind = FetchErrorKind.REQUEST_TIMEOUT

    def __init__(self, url: str, timeout_seconds: float):
        super().__init__(f"Request timeout after {timeout_seconds:g}s", url=url)
        self.timeout_seconds = timeout_seconds


class TransportError(FetchError):
    kind = FetchErrorKind.TRANSPORT_ERROR


class InvalidJsonBody(FetchError):
    kind = FetchErrorKind.INVALID_JSON_BODY

    def __init__(self, url: str | None = None):
        super().__init__("Invalid JSON response", url=url)


def from_httpx_error(
    error: httpx.HTTPError, *, url: str, timeout_seconds: float,
) -> FetchError:
    """Map an httpx exception onto the fetch error taxonomy."""
    if isinstance(error, httpx.TimeoutException):
        return RequestTimeout(url, timeout_seconds)
    if isinstance(error, httpx.RequestError):
        return TransportError(f"Network error while contacting {url}: {error}", url=url)
    return TransportError(f"Transport error for {url}: {error}", url=url)
