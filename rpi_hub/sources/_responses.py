"""JSON-style responses returned by the data-source handlers.

Client-visible messages are generic; the specific failure is logged
server-side only.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from rpi_hub.net import FetchError, UrlVerdict

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ApiResponse:
    status: int
    body: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class UpstreamError(Exception):
    """The upstream answered, but not with something we can use."""


def success(data: dict[str, Any]) -> ApiResponse:
    return ApiResponse(200, data)


def validation_error(message: str) -> ApiResponse:
    """400 response; *message* is shown to the user verbatim."""
    return ApiResponse(400, {"error": message})


def error_response(message: str, error: Exception | None = None, status: int = 500) -> ApiResponse:
    """Generic failure response, logging the underlying cause when given."""
    if error is not None:
        if isinstance(error, FetchError):
            logger.error("%s [%s]: %s", message, error.kind.value, error)
        else:
            logger.error("%s: %s", message, error)
    return ApiResponse(status, {"error": message})


def check_verdict(verdict: UrlVerdict) -> ApiResponse | None:
    """Return a 400 response for a rejected URL, None when it is valid."""
    if not verdict.valid:
        return validation_error(verdict.reason or "Validation failed")
    return None
