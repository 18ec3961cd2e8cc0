"""Request context middleware for imgrelay.

Assigns every incoming request a ULID request id and binds it to the logging
context, so all log lines produced while serving the request carry
``request_id``. The id is echoed to the client as ``X-Request-ID`` and one
``request_completed`` access line is logged per request.

Exceptions no handler claimed are answered here rather than by Starlette's
ServerErrorMiddleware, which sits outside this middleware: the 500 then still
carries ``X-Request-ID`` and CORS headers, and its log line the request id.
"""

from __future__ import annotations

import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from imgrelay.constants import REQUEST_ID_HEADER
from imgrelay.models.outcome import INTERNAL_ERROR_MESSAGE, FailureKind, FetchFailure
from imgrelay.models.responses import build_error_response
from imgrelay.proxy.engine import request_cors_headers
from imgrelay.utils.logger import clear_request_id, get_logger, set_request_id
from imgrelay.utils.ulid import generate_ulid

logger = get_logger(__name__)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Starlette middleware binding a request id to logs and the response.

    Registration (in create_app() in imgrelay/main.py):
        application.add_middleware(RequestContextMiddleware)
    """

    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[override]
        request_id = generate_ulid()
        set_request_id(request_id)
        start = time.perf_counter()
        try:
            try:
                response = await call_next(request)
            except Exception as exc:  # noqa: BLE001
                response = _internal_error(request, exc)
            response.headers[REQUEST_ID_HEADER] = request_id
            logger.info(
                "request_completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
            )
            return response
        finally:
            clear_request_id()


def _internal_error(request: Request, exc: Exception) -> Response:
    logger.error(
        "unhandled_exception",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
        exc_info=exc,
    )
    failure = FetchFailure(
        kind=FailureKind.FETCH_FAILED,
        message=INTERNAL_ERROR_MESSAGE,
        detail=f"{type(exc).__name__}: {exc}",
    )
    return build_error_response(failure, request_cors_headers(request))
