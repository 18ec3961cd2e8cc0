"""Structured logging for imgrelay.

structlog, configured once at import and again by ``imgrelay.main`` from the
``LOG_LEVEL`` / ``JSON_LOGS`` environment. Per-request fields live in
structlog's contextvars, so every line logged while a request is in flight
carries its ``request_id`` without threading it through call signatures.

Loggers:
  get_logger()        — plain module logger
  get_relay_logger()  — bound with ``log_context`` and ``build_version``; used
                        for relay rejections that operators search for
"""

import logging
import sys
import time
from typing import Any, Optional

import structlog
from structlog.types import EventDict, Processor

from imgrelay import __version__
from imgrelay.constants import LOG_CONTEXT


def add_timestamp(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    """Add a unix timestamp to log entries."""
    event_dict["timestamp"] = time.time()
    return event_dict


def configure_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    """Configure structlog for the relay.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL. Unknown values fall
                   back to INFO.
        json_output: JSON lines when True, coloured console output otherwise.
    """
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_timestamp,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=True),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = "imgrelay") -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def get_relay_logger(name: str = "imgrelay") -> structlog.stdlib.BoundLogger:
    """Logger whose every event carries ``log_context`` and ``build_version``."""
    return get_logger(name).bind(log_context=LOG_CONTEXT, build_version=__version__)


# ─── Request context ──────────────────────────────────────────────────────────


def set_request_id(request_id: str) -> None:
    """Bind ``request_id`` to every log line for the rest of this request."""
    structlog.contextvars.bind_contextvars(request_id=request_id)


def get_request_id() -> Optional[str]:
    return structlog.contextvars.get_contextvars().get("request_id")


def clear_request_id() -> None:
    structlog.contextvars.unbind_contextvars("request_id")


# ─── Timing ───────────────────────────────────────────────────────────────────


class PerformanceLogger:
    """Context manager logging how long an operation took.

    Logs ``<operation>_completed`` at DEBUG, or at WARNING once the duration
    passes ``slow_ms``; ``<operation>_failed`` at ERROR if the block raises.
    Extra keyword arguments are added to the event (e.g. the target URL).
    """

    def __init__(
        self,
        operation: str,
        logger: Optional[structlog.stdlib.BoundLogger] = None,
        slow_ms: float = 1000.0,
        **fields: Any,
    ):
        self.operation = operation
        self.logger = logger or get_logger()
        self.slow_ms = slow_ms
        self.fields = fields
        self.start_time: float = 0

    def __enter__(self) -> "PerformanceLogger":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        duration_ms = round((time.perf_counter() - self.start_time) * 1000, 2)

        if exc_type is not None:
            self.logger.error(
                f"{self.operation}_failed",
                duration_ms=duration_ms,
                error=str(exc_val),
                **self.fields,
            )
            return

        slow = duration_ms > self.slow_ms
        log_method = self.logger.warning if slow else self.logger.debug
        log_method(
            f"{self.operation}_completed",
            duration_ms=duration_ms,
            slow=slow,
            **self.fields,
        )


# Defaults until imgrelay.main reconfigures from the environment.
configure_logging()
