"""Config loading for imgrelay.

Reads ``.imgrelay/config.yaml`` (or ``~/.imgrelay/config.yaml``), then applies
environment variable overrides. The result is a frozen ``Config`` built once at
startup and injected into the app via ``app.state.config`` — request handlers
never read the environment.

Config search order:
  1. ``config_path`` argument (if provided — for testing or explicit override)
  2. IMGRELAY_CONFIG environment variable (if set)
  3. ``.imgrelay/config.yaml`` (working directory — for development)
  4. ``~/.imgrelay/config.yaml`` (home directory — for production deployments)

If no config file is found, defaults are used (not an error). A ``.env`` file in
the working directory is loaded into the environment first (existing variables
win over ``.env`` values).

Environment variable overrides (take precedence over the file):
  PORT             — server.port
  HOST             — server.host
  ALLOWED_ORIGINS  — cors.allowed_origins, comma-separated
  MAX_FILE_SIZE    — fetch.max_file_size, bytes
  REQUEST_TIMEOUT  — fetch.timeout_ms, milliseconds

Any invalid value writes a ``CONFIG ERROR`` line to stderr and raises
SystemExit(1): the relay refuses to start rather than run with a config it
cannot interpret.
"""

from __future__ import annotations

import dataclasses
import os
import sys
from dataclasses import dataclass, field
from typing import Any, Optional

import yaml
from dotenv import load_dotenv

from imgrelay.constants import (
    DEFAULT_LIMIT_CONCURRENCY,
    DEFAULT_MAX_FILE_SIZE,
    DEFAULT_MAX_REDIRECTS,
    DEFAULT_REQUEST_TIMEOUT_MS,
)
from imgrelay.cors.allowlist import parse_origins
from imgrelay.utils.logger import get_logger

logger = get_logger(__name__)

# ─── Version constants ────────────────────────────────────────────────────────

SUPPORTED_CONFIG_VERSION = 1

SUPPORTED_VERSIONS: frozenset[int] = frozenset({1})

# Default config search paths (IMGRELAY_CONFIG env var prepended at runtime)
DEFAULT_CONFIG_PATHS = [
    ".imgrelay/config.yaml",
    os.path.expanduser("~/.imgrelay/config.yaml"),
]


# ─── Dataclasses ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ServerConfig:
    """Listener configuration (consumed by imgrelay.run)."""

    host: str = "0.0.0.0"
    port: int = 3000
    limit_concurrency: int = DEFAULT_LIMIT_CONCURRENCY


@dataclass(frozen=True)
class CorsConfig:
    """Allowed origins, normalized to ``scheme://host[:port]``.

    Empty means every relay request is rejected with 403.
    """

    allowed_origins: tuple[str, ...] = ()


@dataclass(frozen=True)
class FetchConfig:
    """Upstream fetch limits.

    max_file_size:        byte budget for one image
    timeout_ms:           absolute deadline for one fetch
    require_content_type: reject upstream responses without Content-Type
                          (default: assume image/jpeg)
    max_redirects:        redirect hops followed before giving up
    """

    max_file_size: int = DEFAULT_MAX_FILE_SIZE
    timeout_ms: int = DEFAULT_REQUEST_TIMEOUT_MS
    require_content_type: bool = False
    max_redirects: int = DEFAULT_MAX_REDIRECTS

    @property
    def timeout_s(self) -> float:
        return self.timeout_ms / 1000.0


@dataclass(frozen=True)
class Config:
    """Root configuration object. All fields have safe defaults."""

    version: int = SUPPORTED_CONFIG_VERSION
    server: ServerConfig = field(default_factory=ServerConfig)
    cors: CorsConfig = field(default_factory=CorsConfig)
    fetch: FetchConfig = field(default_factory=FetchConfig)
    path: Optional[str] = None  # Path to the loaded config file, if any

    @classmethod
    def defaults(cls) -> "Config":
        """Return a fully-default Config (no file required)."""
        return cls()

    @classmethod
    def from_dict(cls, raw: dict, path: Optional[str] = None) -> "Config":
        """Construct Config from a parsed YAML dict.

        Merges user-supplied values onto defaults; unknown keys are ignored.

        Raises:
            SystemExit(1): On an invalid value in any section.
        """
        server_raw = _section(raw, "server")
        server = ServerConfig(
            host=str(server_raw.get("host", ServerConfig.host)),
            port=_positive_int(server_raw.get("port", ServerConfig.port), "server.port"),
            limit_concurrency=_positive_int(
                server_raw.get("limit_concurrency", DEFAULT_LIMIT_CONCURRENCY),
                "server.limit_concurrency",
            ),
        )

        cors_raw = _section(raw, "cors")
        cors = CorsConfig(
            allowed_origins=_origins(cors_raw.get("allowed_origins"), "cors.allowed_origins"),
        )

        fetch_raw = _section(raw, "fetch")
        fetch = FetchConfig(
            max_file_size=_positive_int(
                fetch_raw.get("max_file_size", DEFAULT_MAX_FILE_SIZE), "fetch.max_file_size"
            ),
            timeout_ms=_positive_int(
                fetch_raw.get("timeout_ms", DEFAULT_REQUEST_TIMEOUT_MS), "fetch.timeout_ms"
            ),
            require_content_type=_bool(
                fetch_raw.get("require_content_type", False), "fetch.require_content_type"
            ),
            max_redirects=_non_negative_int(
                fetch_raw.get("max_redirects", DEFAULT_MAX_REDIRECTS), "fetch.max_redirects"
            ),
        )

        return cls(
            version=raw.get("version", SUPPORTED_CONFIG_VERSION),
            server=server,
            cors=cors,
            fetch=fetch,
            path=path,
        )


# ─── Value parsing ────────────────────────────────────────────────────────────


def _config_error(msg: str) -> SystemExit:
    print(f"CONFIG ERROR: {msg}", file=sys.stderr)
    return SystemExit(1)


def _section(raw: dict, name: str) -> dict:
    value = raw.get(name) or {}
    if not isinstance(value, dict):
        raise _config_error(f"'{name}' must be a mapping, got {type(value).__name__}.")
    return value


def _positive_int(value: Any, name: str) -> int:
    parsed = _non_negative_int(value, name)
    if parsed == 0:
        raise _config_error(f"{name} must be a positive integer, got {value!r}.")
    return parsed


def _bool(value: Any, name: str) -> bool:
    # YAML true/false only; a quoted "false" is a string and would read as truthy
    if not isinstance(value, bool):
        raise _config_error(f"{name} must be true or false, got {value!r}.")
    return value


def _non_negative_int(value: Any, name: str) -> int:
    # bool is an int subclass; "true" is never a meaningful size
    if isinstance(value, bool):
        raise _config_error(f"{name} must be an integer, got {value!r}.")
    try:
        parsed = int(str(value).strip())
    except ValueError:
        raise _config_error(f"{name} is not a valid integer: {value!r}")
    if parsed < 0:
        raise _config_error(f"{name} must not be negative, got {value!r}.")
    return parsed


def _origins(value: Any, name: str) -> tuple[str, ...]:
    if value is not None and not isinstance(value, (str, list, tuple)):
        raise _config_error(
            f"{name} must be a list or a comma-separated string, got {type(value).__name__}."
        )
    try:
        return parse_origins(value)
    except ValueError as exc:
        raise _config_error(
            f"{name} contains an invalid origin ({exc}). "
            "Origins look like 'https://app.example.com' or 'http://localhost:5173'."
        )


# ─── Config loading ───────────────────────────────────────────────────────────


def load_config(config_path: Optional[str] = None) -> Config:
    """Load and validate imgrelay configuration.

    Returns:
        Config with file values merged onto defaults and env overrides applied.

    Raises:
        SystemExit(1): On YAML parse error, missing ``version`` field, unsupported
                       version, or any invalid value (file or environment).
    """
    load_dotenv(override=False)

    search_paths: list[str] = []
    if config_path:
        search_paths.append(config_path)
    env_config = os.environ.get("IMGRELAY_CONFIG")
    if env_config:
        search_paths.append(env_config)
    search_paths.extend(DEFAULT_CONFIG_PATHS)

    found_path: Optional[str] = None
    for candidate in search_paths:
        expanded = os.path.expanduser(candidate)
        if os.path.isfile(expanded):
            found_path = expanded
            break

    if found_path is None:
        logger.info("No config file found — using defaults", searched=search_paths)
        config = _apply_env_overrides(Config.defaults())
        _log_loaded(config)
        return config

    logger.info("Loading config", path=found_path)

    try:
        with open(found_path) as fh:
            raw = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        raise _config_error(
            f"Failed to parse {found_path}: {exc}\n"
            "imgrelay refuses to start with an invalid config. "
            "Check the YAML syntax and try again."
        )
    except OSError as exc:
        raise _config_error(f"Could not read {found_path}: {exc}")

    if not isinstance(raw, dict):
        if raw is None:
            raise _config_error(
                f"{found_path} is missing the required 'version' field.\n"
                "Add 'version: 1' to the top of your config file."
            )
        raise _config_error(
            f"{found_path} is not a valid YAML mapping.\n"
            "The config file must be a YAML dictionary at the top level."
        )

    version = raw.get("version")
    if version is None:
        raise _config_error(
            f"{found_path} is missing the required 'version' field.\n"
            "Add 'version: 1' to the top of your config file."
        )
    if version not in SUPPORTED_VERSIONS:
        raise _config_error(
            f"Unsupported config version: {version}. "
            f"Supported versions: {sorted(SUPPORTED_VERSIONS)}."
        )

    config = _apply_env_overrides(Config.from_dict(raw, path=found_path))
    _log_loaded(config)
    return config


def _apply_env_overrides(config: Config) -> Config:
    """Return a copy of ``config`` with environment variable overrides applied.

    Raises:
        SystemExit(1): If a numeric variable is not a valid positive integer, or
                       ALLOWED_ORIGINS contains an invalid origin.
    """
    server = config.server
    env_port = os.environ.get("PORT")
    if env_port is not None:
        server = dataclasses.replace(server, port=_positive_int(env_port, "PORT"))
    env_host = os.environ.get("HOST")
    if env_host:
        server = dataclasses.replace(server, host=env_host.strip())

    cors = config.cors
    env_origins = os.environ.get("ALLOWED_ORIGINS")
    if env_origins is not None:
        cors = CorsConfig(allowed_origins=_origins(env_origins, "ALLOWED_ORIGINS"))

    fetch = config.fetch
    env_max_size = os.environ.get("MAX_FILE_SIZE")
    if env_max_size is not None:
        fetch = dataclasses.replace(
            fetch, max_file_size=_positive_int(env_max_size, "MAX_FILE_SIZE")
        )
    env_timeout = os.environ.get("REQUEST_TIMEOUT")
    if env_timeout is not None:
        fetch = dataclasses.replace(fetch, timeout_ms=_positive_int(env_timeout, "REQUEST_TIMEOUT"))

    return dataclasses.replace(config, server=server, cors=cors, fetch=fetch)


def _log_loaded(config: Config) -> None:
    if not config.cors.allowed_origins:
        logger.warning(
            "No allowed origins configured — every relay request will be rejected with 403. "
            "Set ALLOWED_ORIGINS or cors.allowed_origins."
        )
    logger.info(
        "Config loaded",
        path=config.path,
        allowed_origins=list(config.cors.allowed_origins),
        max_file_size=config.fetch.max_file_size,
        timeout_ms=config.fetch.timeout_ms,
    )
