"""Target URL validation for imgrelay.

Restricts relay targets to absolute ``http``/``https`` URLs. The scheme check is
the relay's defense against ``file:``, ``data:``, ``ftp:`` and other
protocol-smuggling targets, so it runs before the host check: ``file:///etc/passwd``
is reported as an unsupported scheme, not as a malformed URL.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import httpx

from imgrelay.constants import ALLOWED_URL_SCHEMES
from imgrelay.cors.allowlist import origin_of
from imgrelay.models.outcome import FailureKind, FetchFailure, RelayError


@dataclass(frozen=True)
class ValidatedUrl:
    """A relay target that passed validation.

    url:    the full target URL, as supplied
    origin: the target's own origin (sent upstream as ``Referer``)
    """

    url: str
    origin: str


def _reject(kind: FailureKind, message: str, detail: str) -> RelayError:
    return RelayError(FetchFailure(kind=kind, message=message, detail=detail))


def validate_target_url(raw: Optional[str]) -> ValidatedUrl:
    """Validate the ``url`` query parameter.

    Raises:
        RelayError: MISSING_PARAMETER, MALFORMED_URL or UNSUPPORTED_SCHEME.
    """
    if raw is None or not raw.strip():
        raise _reject(
            FailureKind.MISSING_PARAMETER,
            "Image URL is required",
            "url query parameter is missing or empty",
        )

    raw = raw.strip()
    try:
        url = httpx.URL(raw)
    except httpx.InvalidURL as exc:
        raise _reject(FailureKind.MALFORMED_URL, "Invalid URL format", str(exc))

    if not url.scheme:
        raise _reject(FailureKind.MALFORMED_URL, "Invalid URL format", "URL is not absolute")

    if url.scheme not in ALLOWED_URL_SCHEMES:
        raise _reject(
            FailureKind.UNSUPPORTED_SCHEME,
            "Only HTTP and HTTPS URLs are allowed",
            f"scheme {url.scheme!r} is not allowed",
        )

    if not url.host:
        raise _reject(FailureKind.MALFORMED_URL, "Invalid URL format", "URL has no host")

    return ValidatedUrl(url=raw, origin=origin_of(raw))
