"""Image and error HTTP response builders for imgrelay.

Two factories, one per outcome:

  build_image_response():
      HTTP 200 with the relayed bytes, the upstream Content-Type, an exact
      Content-Length, ``Cache-Control: public, max-age=3600`` and CORS headers.

  build_error_response():
      ``{"error": "<message>"}`` with the status mapped from the failure kind
      (see ``FetchFailure.status_code``) and CORS headers.

Every response the relay emits carries CORS headers, errors included, so a
failure shows up to the calling page's script as an HTTP error with a readable
message instead of an opaque network error.
"""

from __future__ import annotations

from fastapi.responses import JSONResponse, Response

from imgrelay.constants import IMAGE_CACHE_CONTROL
from imgrelay.models.outcome import FetchFailure, FetchOutcome, FetchSuccess


def build_image_response(result: FetchSuccess, cors_headers: dict[str, str]) -> Response:
    """Build the HTTP 200 response carrying the relayed image."""
    headers = dict(cors_headers)
    headers["Cache-Control"] = IMAGE_CACHE_CONTROL
    # Response sets Content-Length from the body; media_type sets Content-Type.
    return Response(
        content=result.body,
        status_code=200,
        headers=headers,
        media_type=result.content_type,
    )


def build_error_response(failure: FetchFailure, cors_headers: dict[str, str]) -> JSONResponse:
    """Build the JSON error response for a failed relay request.

    Only ``failure.message`` reaches the client; ``failure.detail`` is for logs.
    """
    return JSONResponse(
        status_code=failure.status_code,
        content={"error": failure.message},
        headers=dict(cors_headers),
    )


def build_relay_response(outcome: FetchOutcome, cors_headers: dict[str, str]) -> Response:
    """Dispatch on the fetch outcome."""
    if isinstance(outcome, FetchSuccess):
        return build_image_response(outcome, cors_headers)
    return build_error_response(outcome, cors_headers)
