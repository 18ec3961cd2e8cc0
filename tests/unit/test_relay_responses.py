"""Unit tests for imgrelay.models — failure status mapping and response builders.

  FetchFailure.status_code:
    400 for parameter, URL and content-type failures; 403 forbidden;
    413 too large; upstream status echoed; 500 for timeouts and transport errors
  build_image_response():  200, bytes, Content-Type, Content-Length, Cache-Control, CORS
  build_error_response():  {"error": message} only, CORS headers, detail never exposed
  build_relay_response():  dispatch on outcome type
"""

from __future__ import annotations

import json

import pytest

from imgrelay.models.outcome import FailureKind, FetchFailure, FetchSuccess, RelayError
from imgrelay.models.responses import (
    build_error_response,
    build_image_response,
    build_relay_response,
)

CORS = {
    "Access-Control-Allow-Origin": "https://app.example.com",
    "Access-Control-Allow-Methods": "GET",
    "Access-Control-Allow-Headers": "Content-Type",
    "Vary": "Origin",
}
GIF_BYTES = b"GIF89a\x01\x00\x01\x00\x00\x00\x00;"


# ─── Status mapping ───────────────────────────────────────────────────────────


class TestStatusMapping:
    @pytest.mark.parametrize(
        "kind, status",
        [
            (FailureKind.MISSING_PARAMETER, 400),
            (FailureKind.MALFORMED_URL, 400),
            (FailureKind.UNSUPPORTED_SCHEME, 400),
            (FailureKind.NOT_AN_IMAGE, 400),
            (FailureKind.FORBIDDEN, 403),
            (FailureKind.PAYLOAD_TOO_LARGE, 413),
            (FailureKind.UPSTREAM_TIMEOUT, 500),
            (FailureKind.FETCH_FAILED, 500),
        ],
    )
    def test_kind_to_status(self, kind: FailureKind, status: int) -> None:
        assert FetchFailure(kind=kind, message="x").status_code == status

    def test_upstream_status_echoed(self) -> None:
        failure = FetchFailure(kind=FailureKind.UPSTREAM_ERROR, message="x", upstream_status=451)
        assert failure.status_code == 451

    def test_upstream_error_without_status_is_500(self) -> None:
        assert FetchFailure(kind=FailureKind.UPSTREAM_ERROR, message="x").status_code == 500

    def test_relay_error_carries_failure(self) -> None:
        failure = FetchFailure(kind=FailureKind.FORBIDDEN, message="Access denied", detail="d")
        error = RelayError(failure)
        assert error.failure is failure
        assert str(error) == "d"


# ─── Builders ─────────────────────────────────────────────────────────────────


class TestImageResponse:
    def test_image_response(self) -> None:
        response = build_image_response(
            FetchSuccess(status=200, content_type="image/gif", body=GIF_BYTES), CORS
        )
        assert response.status_code == 200
        assert response.body == GIF_BYTES
        assert response.headers["content-type"] == "image/gif"
        assert response.headers["content-length"] == str(len(GIF_BYTES))
        assert response.headers["cache-control"] == "public, max-age=3600"
        for name, value in CORS.items():
            assert response.headers[name] == value

    def test_upstream_2xx_normalized_to_200(self) -> None:
        response = build_image_response(
            FetchSuccess(status=203, content_type="image/gif", body=GIF_BYTES), CORS
        )
        assert response.status_code == 200

    def test_cors_dict_not_mutated(self) -> None:
        cors = dict(CORS)
        build_image_response(FetchSuccess(status=200, content_type="image/gif", body=b""), cors)
        assert cors == CORS


class TestErrorResponse:
    def test_error_body_is_message_only(self) -> None:
        failure = FetchFailure(
            kind=FailureKind.FETCH_FAILED,
            message="Internal server error",
            detail="ConnectError: [Errno 111] Connection refused",
        )
        response = build_error_response(failure, CORS)
        assert response.status_code == 500
        assert json.loads(response.body) == {"error": "Internal server error"}
        assert b"Errno" not in response.body
        assert response.headers["access-control-allow-origin"] == CORS["Access-Control-Allow-Origin"]

    def test_dispatch(self) -> None:
        ok = build_relay_response(FetchSuccess(status=200, content_type="image/png", body=b"x"), CORS)
        failed = build_relay_response(
            FetchFailure(kind=FailureKind.NOT_AN_IMAGE, message="URL does not point to a valid image"),
            CORS,
        )
        assert ok.status_code == 200
        assert failed.status_code == 400
        assert json.loads(failed.body) == {"error": "URL does not point to a valid image"}
