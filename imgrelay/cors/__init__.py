"""Origin allowlist, CORS header composition and the origin gate.

Public API:
    OriginAllowlist     — immutable set of allowed origins
    origin_of           — normalize any absolute URL to its origin
    build_cors_headers  — Access-Control-Allow-* headers for a response
    check_origin        — raise RelayError unless the declared origin is allowed
"""
from imgrelay.cors.allowlist import OriginAllowlist, origin_of, parse_origins
from imgrelay.cors.gate import check_origin, require_allowed_origin
from imgrelay.cors.headers import build_cors_headers, compose_allow_origin, declared_origin

__all__ = [
    "OriginAllowlist",
    "build_cors_headers",
    "check_origin",
    "compose_allow_origin",
    "declared_origin",
    "origin_of",
    "parse_origins",
    "require_allowed_origin",
]
