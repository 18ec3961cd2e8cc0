"""Programmatic uvicorn entry point for imgrelay.

Reads host, port and the concurrency ceiling from the loaded config and starts
uvicorn with hardened defaults:

  --limit-concurrency N    Max concurrent connections (server.limit_concurrency,
                           default 100); HTTP 503 when exceeded
  --backlog 50             OS connection queue depth
  --timeout-keep-alive 5   Reduces the Slow Loris attack window

Usage:
    python -m imgrelay.run     # reads .imgrelay/config.yaml, .env, environment
    imgrelay                   # via pyproject.toml [project.scripts]
"""

from __future__ import annotations

import uvicorn

from imgrelay.config import load_config
from imgrelay.main import LOG_LEVEL, create_app

# OS-level TCP connection backlog queue size.
UVICORN_BACKLOG: int = 50

# HTTP keep-alive timeout in seconds.
UVICORN_TIMEOUT_KEEP_ALIVE: int = 5


def main() -> None:
    """Start the relay with hardened uvicorn defaults.

    Raises:
        SystemExit: Propagated from load_config() on config errors.
    """
    config = load_config()

    # The app object (not an import string) so the lifespan reuses this config
    # instead of loading it a second time.
    uvicorn.run(
        create_app(config=config),
        host=config.server.host,
        port=config.server.port,
        limit_concurrency=config.server.limit_concurrency,
        backlog=UVICORN_BACKLOG,
        timeout_keep_alive=UVICORN_TIMEOUT_KEEP_ALIVE,
        log_level=LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
