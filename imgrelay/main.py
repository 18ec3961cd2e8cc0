"""imgrelay FastAPI application factory + lifespan lifecycle.

This module implements:
  - create_app() — testable application factory
  - lifespan     — @asynccontextmanager startup/shutdown sequence
  - app = create_app() — module-level instance for uvicorn

Startup sequence:
  1. load_config()          → app.state.config (unless injected via create_app)
  2. OriginAllowlist        → app.state.allowlist (read-only from here on)
  3. create_http_client()   → app.state.http_client
  4. app.state.ready = True

Shutdown (reverse):
  app.state.ready = False → close HTTP client

Run with the hardened defaults from imgrelay/run.py:
  python -m imgrelay.run
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import httpx
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from imgrelay import __version__
from imgrelay.config import Config, load_config
from imgrelay.cors.allowlist import OriginAllowlist
from imgrelay.cors.headers import declared_origin
from imgrelay.health import router as health_router
from imgrelay.models.outcome import RelayError
from imgrelay.models.responses import build_error_response
from imgrelay.proxy.engine import preflight_router, request_cors_headers, router as engine_router
from imgrelay.proxy.fetcher import create_http_client
from imgrelay.proxy.middleware import RequestContextMiddleware
from imgrelay.utils.logger import configure_logging, get_logger

# ─── Logging Setup ────────────────────────────────────────────────────────────
# Configure logging at module import time (before any other imports that may log).
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO" if not DEBUG else "DEBUG")
JSON_LOGS = os.getenv("JSON_LOGS", "true").lower() == "true"

configure_logging(log_level=LOG_LEVEL, json_output=JSON_LOGS)
logger = get_logger(__name__)


# ─── Dependencies ─────────────────────────────────────────────────────────────


async def require_ready(request: Request) -> None:
    """FastAPI dependency: raises HTTP 503 if app.state.ready is not True."""
    if not getattr(request.app.state, "ready", False):
        raise HTTPException(status_code=503, detail="imgrelay is starting up")


# ─── Lifespan ─────────────────────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan — startup and shutdown sequence."""
    logger.info("imgrelay starting up...", version=__version__)

    # ── Step 1: Configuration ─────────────────────────────────────────────────
    # load_config() raises SystemExit on an invalid config, before ready=True.
    config: Optional[Config] = getattr(app.state, "config", None)
    if config is None:
        config = load_config()
        app.state.config = config

    # ── Step 2: Allowlist ─────────────────────────────────────────────────────
    # Origins are normalized by the config layer; the set is frozen here.
    app.state.allowlist = OriginAllowlist(origins=config.cors.allowed_origins)

    # ── Step 3: Shared HTTP client ────────────────────────────────────────────
    # NEVER instantiated per-request.
    http_client: httpx.AsyncClient = create_http_client(config)
    app.state.http_client = http_client
    logger.info(
        "HTTP client created",
        max_connections=config.server.limit_concurrency,
        timeout_ms=config.fetch.timeout_ms,
        max_redirects=config.fetch.max_redirects,
    )

    # ── Step 4: Ready ─────────────────────────────────────────────────────────
    app.state.ready = True
    base = f"http://localhost:{config.server.port}"
    logger.info(
        "Image proxy server running",
        port=config.server.port,
        health=f"{base}/health",
        proxy=f"{base}/?url=<image_url>",
    )

    yield

    logger.info("imgrelay shutting down...")
    app.state.ready = False

    try:
        await http_client.aclose()
        logger.info("HTTP client closed")
    except Exception as exc:  # noqa: BLE001
        logger.warning("HTTP client close error (non-fatal)", error=str(exc))

    logger.info("imgrelay shutdown complete")


# ─── Application Factory ──────────────────────────────────────────────────────


def create_app(config: Optional[Config] = None) -> FastAPI:
    """Create and configure the imgrelay FastAPI application.

    Args:
        config: Pre-built configuration. When omitted, the lifespan calls
                load_config() at startup. Tests pass one in directly.

    Returns:
        Configured FastAPI application with lifespan, routers, and middleware.
    """
    # Swagger UI / ReDoc only with DEBUG=true
    _debug = os.getenv("DEBUG", "false").lower() == "true"

    application = FastAPI(
        title="imgrelay",
        description="Origin-gated image relay with CORS headers",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if _debug else None,
        redoc_url="/redoc" if _debug else None,
        openapi_url="/openapi.json" if _debug else None,
    )

    # Requests arriving before startup completes get 503 from require_ready.
    application.state.ready = False
    if config is not None:
        application.state.config = config

    application.add_middleware(RequestContextMiddleware)

    # health_router:    /health (never gated)
    application.include_router(health_router)
    # preflight_router: OPTIONS / (never gated)
    application.include_router(preflight_router)
    # engine_router:    GET /?url=...: readiness gate, then the origin gate
    application.include_router(engine_router, dependencies=[Depends(require_ready)])

    # ── Exception handlers ────────────────────────────────────────────────────
    # Every error leaves with CORS headers so the calling page can read it.
    # Unhandled exceptions are answered by RequestContextMiddleware.

    @application.exception_handler(RelayError)
    async def relay_error_handler(request: Request, exc: RelayError) -> Response:
        failure = exc.failure
        logger.warning(
            "request_rejected",
            kind=failure.kind.value,
            reason=failure.reason.value if failure.reason else None,
            status_code=failure.status_code,
            detail=failure.detail,
            declared_origin=declared_origin(request.headers),
            path=str(request.url.path),
        )
        return build_error_response(failure, request_cors_headers(request))

    @application.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> Response:
        logger.warning(
            "HTTP exception",
            status_code=exc.status_code,
            detail=exc.detail,
            path=str(request.url.path),
        )
        headers = request_cors_headers(request)
        # e.g. Allow on 405
        headers.update(exc.headers or {})
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=headers,
        )

    return application


# ─── Module-Level App (for uvicorn) ───────────────────────────────────────────

app = create_app()
