"""Relay request handler for imgrelay.

Routes:
  OPTIONS /           — CORS preflight; always 204 with CORS headers
  GET     /?url=<url> — relay the image at <url>

Pipeline for ``GET /`` (each stage short-circuits on failure):

  1. require_ready           (router dependency, registered in create_app)
  2. require_allowed_origin  origin gate → 403, upstream never contacted
  3. validate_target_url     → 400, upstream never contacted
  4. fetch_image             bounded fetch, type and size enforced while streaming
  5. build_relay_response    image (200) or JSON error, CORS headers on both

Stages 2 and 3 raise ``RelayError``; the handler registered in ``create_app()``
turns it into the JSON error response. Stage 4 returns a ``FetchOutcome``.

The preflight is deliberately not origin-gated: the browser must be able to read
it to decide whether to send the real request.
"""

from __future__ import annotations

from typing import Optional

import httpx
from fastapi import APIRouter, Depends, Query, Request, Response

from imgrelay.config import Config
from imgrelay.cors.allowlist import OriginAllowlist
from imgrelay.cors.gate import require_allowed_origin
from imgrelay.cors.headers import build_cors_headers, declared_origin
from imgrelay.models.outcome import (
    INTERNAL_ERROR_MESSAGE,
    FailureKind,
    FetchFailure,
    FetchSuccess,
)
from imgrelay.models.responses import build_relay_response
from imgrelay.proxy.fetcher import fetch_image
from imgrelay.proxy.url import validate_target_url
from imgrelay.utils.logger import get_logger

logger = get_logger(__name__)

# ─── Routers ──────────────────────────────────────────────────────────────────

# preflight_router is registered without the readiness dependency.
preflight_router = APIRouter(tags=["cors"])
router = APIRouter(tags=["proxy"])


def _allowlist(request: Request) -> OriginAllowlist:
    # Empty until the lifespan has run; the composer then answers "*".
    return getattr(request.app.state, "allowlist", None) or OriginAllowlist()


# ─── Preflight ────────────────────────────────────────────────────────────────


@preflight_router.options("/")
async def preflight(request: Request) -> Response:
    """CORS preflight — 204, empty body, CORS headers. Never gated."""
    headers = build_cors_headers(declared_origin(request.headers), _allowlist(request))
    return Response(status_code=204, headers=headers)


# ─── Relay ────────────────────────────────────────────────────────────────────


@router.get("/")
async def relay_image(
    request: Request,
    url: Optional[str] = Query(default=None, description="Absolute http(s) image URL"),
    origin: str = Depends(require_allowed_origin),
) -> Response:
    """Fetch the image at ``url`` and re-serve it with CORS headers.

    Args:
        request: Incoming request.
        url:     Target image URL (percent-encoded in the query string).
        origin:  Allowed, normalized client origin (from the origin gate).

    Returns:
        200 with the image bytes, or a JSON error (see FetchFailure.status_code).
    """
    config: Config = request.app.state.config
    http_client: httpx.AsyncClient = request.app.state.http_client
    cors_headers = build_cors_headers(origin, _allowlist(request))

    target = validate_target_url(url)

    try:
        outcome = await fetch_image(
            http_client,
            target,
            timeout_s=config.fetch.timeout_s,
            max_bytes=config.fetch.max_file_size,
            require_content_type=config.fetch.require_content_type,
        )
    except Exception as exc:  # noqa: BLE001
        logger.error(
            "relay_unhandled_error",
            url=target.url,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        outcome = FetchFailure(
            kind=FailureKind.FETCH_FAILED,
            message=INTERNAL_ERROR_MESSAGE,
            detail=f"{type(exc).__name__}: {exc}",
        )

    if isinstance(outcome, FetchSuccess):
        logger.info(
            "image_relayed",
            origin=origin,
            url=target.url,
            content_type=outcome.content_type,
            bytes=len(outcome.body),
        )
    else:
        logger.info(
            "relay_failed",
            origin=origin,
            url=target.url,
            kind=outcome.kind.value,
            status_code=outcome.status_code,
            detail=outcome.detail,
        )

    return build_relay_response(outcome, cors_headers)


def request_cors_headers(request: Request) -> dict[str, str]:
    """CORS headers for any response to ``request``.

    Used by the exception handlers in create_app() so that rejections raised
    before the handler body runs (origin gate, URL validation, readiness) carry
    the same CORS headers as everything else.
    """
    return build_cors_headers(declared_origin(request.headers), _allowlist(request))
