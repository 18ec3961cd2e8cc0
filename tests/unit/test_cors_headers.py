"""Unit tests for imgrelay.cors.headers — the CORS header composer.

Access-Control-Allow-Origin selection:
  1. declared origin parses to an allowed origin → echo it (normalized)
  2. otherwise → first configured origin
  3. no origins configured → "*"
"""

from __future__ import annotations

from starlette.datastructures import Headers

from imgrelay.cors.allowlist import OriginAllowlist
from imgrelay.cors.headers import build_cors_headers, compose_allow_origin, declared_origin

ALLOWED = "https://app.example.com"
SECOND = "http://localhost:5173"


def _allowlist() -> OriginAllowlist:
    return OriginAllowlist.from_config([ALLOWED, SECOND])


class TestDeclaredOrigin:
    def test_origin_header_preferred(self) -> None:
        headers = Headers({"origin": SECOND, "referer": f"{ALLOWED}/page"})
        assert declared_origin(headers) == SECOND

    def test_referer_fallback(self) -> None:
        headers = Headers({"referer": f"{ALLOWED}/page"})
        assert declared_origin(headers) == f"{ALLOWED}/page"

    def test_empty_origin_falls_back_to_referer(self) -> None:
        headers = Headers({"origin": "", "referer": f"{ALLOWED}/page"})
        assert declared_origin(headers) == f"{ALLOWED}/page"

    def test_neither_header(self) -> None:
        assert declared_origin(Headers({})) is None

    def test_case_insensitive_lookup(self) -> None:
        headers = Headers(raw=[(b"Origin", ALLOWED.encode())])
        assert declared_origin(headers) == ALLOWED


class TestComposeAllowOrigin:
    def test_allowed_origin_echoed(self) -> None:
        assert compose_allow_origin(SECOND, _allowlist()) == SECOND

    def test_allowed_referer_echoed_as_origin(self) -> None:
        assert compose_allow_origin(f"{SECOND}/gallery?id=4", _allowlist()) == SECOND

    def test_disallowed_origin_falls_back_to_first(self) -> None:
        assert compose_allow_origin("https://evil.example.com", _allowlist()) == ALLOWED

    def test_unparseable_origin_falls_back_to_first(self) -> None:
        assert compose_allow_origin("null", _allowlist()) == ALLOWED

    def test_missing_origin_falls_back_to_first(self) -> None:
        assert compose_allow_origin(None, _allowlist()) == ALLOWED

    def test_empty_allowlist_gives_wildcard(self) -> None:
        assert compose_allow_origin(ALLOWED, OriginAllowlist()) == "*"

    def test_empty_allowlist_no_origin_gives_wildcard(self) -> None:
        assert compose_allow_origin(None, OriginAllowlist()) == "*"


class TestBuildCorsHeaders:
    def test_full_header_set(self) -> None:
        headers = build_cors_headers(ALLOWED, _allowlist())
        assert headers == {
            "Access-Control-Allow-Origin": ALLOWED,
            "Access-Control-Allow-Methods": "GET",
            "Access-Control-Allow-Headers": "Content-Type",
            "Vary": "Origin",
        }

    def test_methods_and_headers_fixed_for_rejected_origin(self) -> None:
        headers = build_cors_headers("https://evil.example.com", _allowlist())
        assert headers["Access-Control-Allow-Methods"] == "GET"
        assert headers["Access-Control-Allow-Headers"] == "Content-Type"
        assert headers["Access-Control-Allow-Origin"] == ALLOWED

    def test_returns_fresh_dict(self) -> None:
        first = build_cors_headers(ALLOWED, _allowlist())
        first["X-Extra"] = "1"
        assert "X-Extra" not in build_cors_headers(ALLOWED, _allowlist())
