"""Relay outcome contracts — FetchSuccess, FetchFailure, FailureKind, RelayError.

The upstream fetcher never raises for an expected failure; it returns a
``FetchOutcome`` (``FetchSuccess | FetchFailure``) which the response relay
turns into the HTTP response. Validation steps that run before the fetch
(origin gate, URL validator) raise ``RelayError`` wrapping the same
``FetchFailure`` type, so every failure path ends in one response builder.

Status mapping (one place, ``FetchFailure.status_code``):

  ==================  ==========================
  kind                status
  ==================  ==========================
  MISSING_PARAMETER   400
  MALFORMED_URL       400
  UNSUPPORTED_SCHEME  400
  NOT_AN_IMAGE        400
  FORBIDDEN           403
  PAYLOAD_TOO_LARGE   413
  UPSTREAM_ERROR      upstream status (echoed)
  UPSTREAM_TIMEOUT    500
  FETCH_FAILED        500
  ==================  ==========================
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union


class FailureKind(str, Enum):
    """Every way a relay request can fail."""

    MISSING_PARAMETER = "missing_parameter"
    MALFORMED_URL = "malformed_url"
    UNSUPPORTED_SCHEME = "unsupported_scheme"
    FORBIDDEN = "forbidden"
    UPSTREAM_ERROR = "upstream_error"
    NOT_AN_IMAGE = "not_an_image"
    PAYLOAD_TOO_LARGE = "payload_too_large"
    UPSTREAM_TIMEOUT = "upstream_timeout"
    FETCH_FAILED = "fetch_failed"


class ForbiddenReason(str, Enum):
    """Why the origin gate rejected a request."""

    NO_ORIGIN = "no-origin"
    INVALID_ORIGIN = "invalid-origin"
    ORIGIN_NOT_ALLOWED = "origin-not-allowed"


_STATUS_BY_KIND: dict[FailureKind, int] = {
    FailureKind.MISSING_PARAMETER: 400,
    FailureKind.MALFORMED_URL: 400,
    FailureKind.UNSUPPORTED_SCHEME: 400,
    FailureKind.NOT_AN_IMAGE: 400,
    FailureKind.FORBIDDEN: 403,
    FailureKind.PAYLOAD_TOO_LARGE: 413,
    FailureKind.UPSTREAM_TIMEOUT: 500,
    FailureKind.FETCH_FAILED: 500,
}

# Client-facing message for transport failures; the detail stays in the logs.
INTERNAL_ERROR_MESSAGE = "Internal server error"


@dataclass(frozen=True)
class FetchSuccess:
    """An image fetched within budget.

    Fields:
        status:       Upstream status code (any 2xx).
        content_type: Content-Type to relay (upstream value, or the default).
        body:         Complete image bytes (len(body) <= configured maximum).
    """

    status: int
    content_type: str
    body: bytes


@dataclass(frozen=True)
class FetchFailure:
    """A failed relay request.

    Fields:
        kind:            Failure category (drives the HTTP status).
        message:         Client-facing error string (the JSON ``error`` field).
        detail:          Operator-facing detail for logs. Never sent to clients.
        upstream_status: Upstream status code for UPSTREAM_ERROR, else None.
        reason:          ForbiddenReason for FORBIDDEN, else None.
    """

    kind: FailureKind
    message: str
    detail: Optional[str] = None
    upstream_status: Optional[int] = None
    reason: Optional[ForbiddenReason] = None

    @property
    def status_code(self) -> int:
        if self.kind is FailureKind.UPSTREAM_ERROR and self.upstream_status is not None:
            return self.upstream_status
        return _STATUS_BY_KIND.get(self.kind, 500)


FetchOutcome = Union[FetchSuccess, FetchFailure]


class RelayError(Exception):
    """Raised by pre-fetch pipeline stages to short-circuit the request.

    Converted to a JSON error response (with CORS headers) by the exception
    handler registered in ``create_app()``.
    """

    def __init__(self, failure: FetchFailure) -> None:
        super().__init__(failure.detail or failure.message)
        self.failure = failure
