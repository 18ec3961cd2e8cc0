"""Origin gate for imgrelay.

Rejects relay requests that do not come from an allowed origin, before any
URL validation or upstream work happens.

The origin is taken from ``Origin``, falling back to ``Referer``. Both are
client-supplied headers: a non-browser client can set them to anything. The
gate exists so that browsers (which do set them truthfully) only hand the
relayed images to pages on allowed origins; it is not authentication.

  no Origin/Referer            → 403 "Access denied"
  value not an absolute URL    → 403 "Invalid origin format"
  origin not in the allowlist  → 403 "Access denied: Origin not allowed"
"""

from __future__ import annotations

from typing import Optional

from fastapi import Request

from imgrelay.cors.allowlist import OriginAllowlist, origin_of
from imgrelay.cors.headers import declared_origin
from imgrelay.models.outcome import FailureKind, FetchFailure, ForbiddenReason, RelayError


def _forbidden(reason: ForbiddenReason, message: str, detail: str) -> RelayError:
    return RelayError(
        FetchFailure(
            kind=FailureKind.FORBIDDEN,
            message=message,
            detail=detail,
            reason=reason,
        )
    )


def check_origin(declared: Optional[str], allowlist: OriginAllowlist) -> str:
    """Return the normalized origin if it is allowed.

    Raises:
        RelayError: FORBIDDEN with the matching ForbiddenReason.
    """
    if not declared:
        raise _forbidden(
            ForbiddenReason.NO_ORIGIN,
            "Access denied",
            "request carried neither Origin nor Referer",
        )

    try:
        origin = origin_of(declared)
    except ValueError as exc:
        raise _forbidden(ForbiddenReason.INVALID_ORIGIN, "Invalid origin format", str(exc))

    if not allowlist.is_allowed(origin):
        raise _forbidden(
            ForbiddenReason.ORIGIN_NOT_ALLOWED,
            "Access denied: Origin not allowed",
            f"origin {origin} is not in the allowlist",
        )

    return origin


async def require_allowed_origin(request: Request) -> str:
    """FastAPI dependency: the relay route only runs for allowed origins."""
    # Rejections are logged once, by the RelayError handler in create_app().
    return check_origin(declared_origin(request.headers), request.app.state.allowlist)
