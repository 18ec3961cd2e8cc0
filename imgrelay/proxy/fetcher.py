"""Upstream image fetcher for imgrelay.

Downloads the target image with a hard deadline and enforces the relay's
content rules while the response arrives:

  - Absolute deadline: the whole fetch (connect, headers, body) runs under
    ``asyncio.wait_for``. On expiry the task is cancelled and the streamed
    response is closed, releasing the connection immediately.
  - Status: any non-2xx upstream status is reported with that status.
  - Content type: checked as soon as headers arrive, before any body byte is
    read. A missing header is treated as ``image/jpeg`` unless
    ``require_content_type`` is set.
  - Size: a declared Content-Length over budget is rejected before reading;
    otherwise bytes are counted as they arrive and the transfer is aborted the
    moment the count crosses ``max_bytes``. Peak memory per request is bounded
    by the budget, never by the upstream's size.

``fetch_image()`` never raises for an expected failure — it returns a
``FetchFailure``. No retries: a failed fetch is reported once.

The shared ``httpx.AsyncClient`` is created once at lifespan startup
(``create_http_client``) and stored in ``app.state.http_client``.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import httpx

from imgrelay.config import Config
from imgrelay.constants import (
    DEFAULT_IMAGE_CONTENT_TYPE,
    IMAGE_CONTENT_TYPE_PREFIX,
    POOL_KEEPALIVE_EXPIRY,
    UPSTREAM_REQUEST_HEADERS,
)
from imgrelay.models.outcome import (
    INTERNAL_ERROR_MESSAGE,
    FailureKind,
    FetchFailure,
    FetchOutcome,
    FetchSuccess,
)
from imgrelay.proxy.url import ValidatedUrl
from imgrelay.utils.logger import PerformanceLogger, get_logger, get_relay_logger

logger = get_logger(__name__)

_MIB = 1024 * 1024

NOT_AN_IMAGE_MESSAGE = "URL does not point to a valid image"


# ─── httpx.AsyncClient factory ────────────────────────────────────────────────


def create_http_client(config: Config) -> httpx.AsyncClient:
    """Create the shared httpx.AsyncClient used for every upstream fetch.

    Pool size matches ``server.limit_concurrency`` so every admitted request
    has a pooled connection available. Redirects are followed, as a browser
    would, up to ``fetch.max_redirects`` hops.
    """
    limit = config.server.limit_concurrency
    return httpx.AsyncClient(
        limits=httpx.Limits(
            max_connections=limit,
            max_keepalive_connections=limit,
            keepalive_expiry=POOL_KEEPALIVE_EXPIRY,
        ),
        timeout=httpx.Timeout(config.fetch.timeout_s),
        follow_redirects=True,
        max_redirects=config.fetch.max_redirects,
    )


def build_upstream_headers(target: ValidatedUrl) -> dict[str, str]:
    """Browser-like request headers for ``target``.

    ``Referer`` is the target's own origin, not the client's: image hosts with
    hot-link protection accept same-site referers.
    """
    headers = dict(UPSTREAM_REQUEST_HEADERS)
    headers["Referer"] = target.origin
    return headers


def size_limit_message(max_bytes: int) -> str:
    # Half-up rounding to whole MiB
    return f"Image file size exceeds {int(max_bytes / _MIB + 0.5)}MB limit"


# ─── Fetch ────────────────────────────────────────────────────────────────────


async def fetch_image(
    client: httpx.AsyncClient,
    target: ValidatedUrl,
    *,
    timeout_s: float,
    max_bytes: int,
    require_content_type: bool = False,
) -> FetchOutcome:
    """Fetch ``target`` and return a FetchSuccess or FetchFailure.

    Args:
        client:               Shared httpx.AsyncClient.
        target:               Validated http(s) target.
        timeout_s:            Absolute deadline for the whole fetch.
        max_bytes:            Byte budget for the image body.
        require_content_type: Treat a missing Content-Type as not-an-image.
    """
    with PerformanceLogger("upstream_fetch", logger, slow_ms=timeout_s * 500, url=target.url):
        try:
            return await asyncio.wait_for(
                _fetch(client, target, max_bytes, require_content_type),
                timeout=timeout_s,
            )
        except asyncio.TimeoutError:
            return _transport_failure(
                FailureKind.UPSTREAM_TIMEOUT,
                target,
                f"fetch exceeded the {timeout_s:g}s deadline",
            )


async def _fetch(
    client: httpx.AsyncClient,
    target: ValidatedUrl,
    max_bytes: int,
    require_content_type: bool,
) -> FetchOutcome:
    request = client.build_request("GET", target.url, headers=build_upstream_headers(target))

    try:
        response = await client.send(request, stream=True)
    except httpx.TimeoutException as exc:
        return _transport_failure(FailureKind.UPSTREAM_TIMEOUT, target, _describe(exc))
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        # ConnectError (DNS, refused), TLS errors, RemoteProtocolError,
        # TooManyRedirects, UnsupportedProtocol (redirect to a non-http scheme)
        return _transport_failure(FailureKind.FETCH_FAILED, target, _describe(exc))

    try:
        return await _read_image(response, target, max_bytes, require_content_type)
    except httpx.TimeoutException as exc:
        return _transport_failure(FailureKind.UPSTREAM_TIMEOUT, target, _describe(exc))
    except httpx.HTTPError as exc:
        return _transport_failure(FailureKind.FETCH_FAILED, target, _describe(exc))
    finally:
        # Runs on cancellation too: the deadline never leaks the socket.
        await response.aclose()


async def _read_image(
    response: httpx.Response,
    target: ValidatedUrl,
    max_bytes: int,
    require_content_type: bool,
) -> FetchOutcome:
    status = response.status_code

    if not response.is_success:
        reason = response.reason_phrase
        logger.warning(
            "upstream_error_status",
            url=target.url,
            status_code=status,
            reason=reason,
        )
        return FetchFailure(
            kind=FailureKind.UPSTREAM_ERROR,
            message=f"Failed to fetch image: {status} {reason}".rstrip(),
            detail=f"upstream returned {status}",
            upstream_status=status,
        )

    # ── Content type, decided before any body byte is read ──────────────────
    content_type: Optional[str] = response.headers.get("content-type")
    if not content_type:
        if require_content_type:
            return _not_an_image(target, None)
        content_type = DEFAULT_IMAGE_CONTENT_TYPE
    if not content_type.strip().lower().startswith(IMAGE_CONTENT_TYPE_PREFIX):
        return _not_an_image(target, content_type)

    # ── Declared size fast path ──────────────────────────────────────────────
    # Content-Length counts encoded bytes; only trust it for identity bodies.
    declared_size = _declared_length(response)
    if declared_size is not None and declared_size > max_bytes:
        return _too_large(target, max_bytes, declared_size, declared=True)

    # ── Incremental read with a running byte budget ──────────────────────────
    chunks: list[bytes] = []
    received = 0
    async for chunk in response.aiter_bytes():
        received += len(chunk)
        if received > max_bytes:
            return _too_large(target, max_bytes, received, declared=False)
        chunks.append(chunk)

    body = b"".join(chunks)
    logger.info(
        "image_fetched",
        url=target.url,
        final_url=str(response.url),
        status_code=status,
        content_type=content_type,
        bytes=len(body),
    )
    return FetchSuccess(status=status, content_type=content_type, body=body)


# ─── Helpers ──────────────────────────────────────────────────────────────────


def _declared_length(response: httpx.Response) -> Optional[int]:
    encoding = response.headers.get("content-encoding", "identity").strip().lower()
    if encoding not in ("", "identity"):
        return None
    value = response.headers.get("content-length")
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _describe(exc: Exception) -> str:
    text = str(exc)
    return f"{type(exc).__name__}: {text}" if text else type(exc).__name__


def _transport_failure(kind: FailureKind, target: ValidatedUrl, detail: str) -> FetchFailure:
    logger.warning(
        "upstream_fetch_failed",
        kind=kind.value,
        url=target.url,
        error=detail,
    )
    return FetchFailure(kind=kind, message=INTERNAL_ERROR_MESSAGE, detail=detail)


def _not_an_image(target: ValidatedUrl, content_type: Optional[str]) -> FetchFailure:
    detail = f"None image type: {content_type}"
    get_relay_logger(__name__).warning(
        "upstream_not_an_image",
        url=target.url,
        error_details=detail,
    )
    return FetchFailure(kind=FailureKind.NOT_AN_IMAGE, message=NOT_AN_IMAGE_MESSAGE, detail=detail)


def _too_large(target: ValidatedUrl, max_bytes: int, size: int, declared: bool) -> FetchFailure:
    if declared:
        detail = f"Image file size exceeds {max_bytes} bytes limit: {size} bytes declared"
    else:
        detail = f"Image file size exceeds {max_bytes} bytes limit: aborted after {size} bytes"
    get_relay_logger(__name__).warning(
        "upstream_payload_too_large",
        url=target.url,
        error_details=detail,
    )
    return FetchFailure(
        kind=FailureKind.PAYLOAD_TOO_LARGE,
        message=size_limit_message(max_bytes),
        detail=detail,
    )
