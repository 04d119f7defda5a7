"""Outbound-fetch safety layer: URL validation and bounded fetching."""

from rpi_hub.net._errors import (
    FetchError,
    FetchErrorKind,
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
    UrlRejection,
    UrlValidator,
    UrlVerdict,
    is_allowed_ip,
    validate_url,
)
from rpi_hub.net.fetch import BoundedFetcher, FetchResult, fetch_bounded

__all__ = [
    "BoundedFetcher",
    "FetchError",
    "FetchErrorKind",
    "FetchResult",
    "InvalidJsonBody",
    "RedirectTargetRejected",
    "RequestTimeout",
    "ResponseTooLarge",
    "TooManyRedirects",
    "TransportError",
    "UrlRejected",
    "UrlRejection",
    "UrlValidator",
    "UrlVerdict",
    "fetch_bounded",
    "from_httpx_error",
    "is_allowed_ip",
    "validate_url",
]
