"""CORS header composition for imgrelay.

Decides the ``Access-Control-Allow-*`` headers attached to every response the
relay produces: preflight, image, and error responses alike.

The ``Access-Control-Allow-Origin`` value is chosen as follows:

  1. If the allowlist is non-empty and the request's declared origin parses to
     an allowed origin, echo that origin.
  2. Otherwise, the first configured origin (if any are configured).
  3. Otherwise, ``*``.

The fallback in 2/3 is only a header value. It keeps rejected requests' JSON
error bodies readable in the page's console; it never grants access. Access
is decided by the origin gate alone (``imgrelay.cors.gate``).
"""

from __future__ import annotations

from typing import Mapping, Optional

from imgrelay.constants import CORS_ALLOW_HEADERS, CORS_ALLOW_METHODS, CORS_WILDCARD
from imgrelay.cors.allowlist import OriginAllowlist, origin_of


def declared_origin(headers: Mapping[str, str]) -> Optional[str]:
    """Return the request's ``Origin`` header, falling back to ``Referer``.

    An empty ``Origin`` counts as absent. Returns None when neither is set.
    """
    return headers.get("origin") or headers.get("referer") or None


def compose_allow_origin(declared: Optional[str], allowlist: OriginAllowlist) -> str:
    """Choose the ``Access-Control-Allow-Origin`` value for a response."""
    fallback = allowlist.first or CORS_WILDCARD

    if declared and allowlist:
        try:
            origin = origin_of(declared)
        except ValueError:
            return fallback
        if allowlist.is_allowed(origin):
            return origin

    return fallback


def build_cors_headers(declared: Optional[str], allowlist: OriginAllowlist) -> dict[str, str]:
    """Build the full CORS header set for a response.

    ``Vary: Origin`` is included because the allowed-origin value depends on
    the request and image responses are publicly cacheable.
    """
    return {
        "Access-Control-Allow-Origin": compose_allow_origin(declared, allowlist),
        "Access-Control-Allow-Methods": CORS_ALLOW_METHODS,
        "Access-Control-Allow-Headers": CORS_ALLOW_HEADERS,
        "Vary": "Origin",
    }
