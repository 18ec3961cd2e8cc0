"""Shared constants for imgrelay.

All size limits, timeouts and fixed header values used across modules are
defined here. No magic numbers in other modules — import from here.
"""

# ─── Fetch limits ─────────────────────────────────────────────────────────────

# Default maximum size of a relayed image. Upstream bodies larger than this are
# rejected with HTTP 413; the transfer is aborted as soon as the running byte
# count crosses the limit, so peak memory per request is bounded by this value.
DEFAULT_MAX_FILE_SIZE: int = 10 * 1024 * 1024  # 10 MiB

# Default absolute deadline for one upstream fetch (connect + headers + body).
DEFAULT_REQUEST_TIMEOUT_MS: int = 30_000  # 30 seconds

# Redirect hops followed before the fetch is reported as failed.
DEFAULT_MAX_REDIRECTS: int = 5

# Content type assumed when the upstream omits the Content-Type header.
DEFAULT_IMAGE_CONTENT_TYPE: str = "image/jpeg"

# Only values starting with this prefix are relayed.
IMAGE_CONTENT_TYPE_PREFIX: str = "image/"

# Schemes a target URL may use.
ALLOWED_URL_SCHEMES: frozenset[str] = frozenset({"http", "https"})

# ─── Outgoing request headers ─────────────────────────────────────────────────

# Sent on every upstream fetch so that image hosts treat the relay like a
# regular browser. Referer is added per request (the target's own origin).
UPSTREAM_REQUEST_HEADERS: dict[str, str] = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
    ),
    "Accept": "image/webp,image/apng,image/*,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
}

# ─── Response headers ─────────────────────────────────────────────────────────

# Browser cache lifetime for relayed images.
IMAGE_CACHE_CONTROL: str = "public, max-age=3600"

CORS_ALLOW_METHODS: str = "GET"
CORS_ALLOW_HEADERS: str = "Content-Type"

# Access-Control-Allow-Origin value when no origins are configured at all.
CORS_WILDCARD: str = "*"

REQUEST_ID_HEADER: str = "X-Request-ID"

# ─── Connection pool / server sizing ──────────────────────────────────────────

# Pool size matches the default uvicorn --limit-concurrency so that every
# admitted request has a pooled upstream connection available.
DEFAULT_LIMIT_CONCURRENCY: int = 100
POOL_KEEPALIVE_EXPIRY: float = 30.0  # seconds

# Tag attached to fetch-rejection log lines.
LOG_CONTEXT: str = "image-proxy"
