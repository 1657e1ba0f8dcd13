"""
Structured logging for rendershim.

Configures structlog once at startup and hands out bound loggers. The shim
emits one event per invocation state transition, so a single render can be
followed by its ``invocation_id``.

Architecture:
    ::

        configure_logging(level="INFO", json_format=None, service="rendershim")
            ↓
        structlog processor chain:
          1. TimeStamper (iso)
          2. merge_contextvars   (document_type bound by the facade)
          3. add_log_level
          4. add_service_metadata
          5. JSONRenderer (non-tty) or ConsoleRenderer (tty)

Examples:
    >>> from rendershim.logging import configure_logging, get_logger
    >>> configure_logging(level="DEBUG")
    >>> logger = get_logger(__name__)
    >>> logger.info("invocation_started", binary="/usr/bin/wkhtmltopdf")

Tags:
    logging, structlog, observability, rendershim

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Mapping
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

_SERVICE_NAME = "rendershim"

LOG_LEVELS: dict[str, int] = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def _add_service_metadata(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add service-level metadata to all logs."""
    event_dict.setdefault("service", _SERVICE_NAME)
    return event_dict


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    service: str = "rendershim",
    add_timestamp: bool = True,
) -> None:
    """Configure structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: True for JSON, False for console, None for auto (JSON if not tty)
        service: Service name to include in logs
        add_timestamp: Include ISO timestamp in logs

    Raises:
        ValueError: *level* is not one of ``LOG_LEVELS``
    """
    numeric_level = LOG_LEVELS.get(level.upper())
    if numeric_level is None:
        raise ValueError(f"Unknown log level {level!r}, expected one of {', '.join(LOG_LEVELS)}")

    global _SERVICE_NAME
    _SERVICE_NAME = service

    if json_format is None:
        json_format = not sys.stderr.isatty()

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        _add_service_metadata,
    ]

    if add_timestamp:
        shared_processors.insert(0, structlog.processors.TimeStamper(fmt="iso"))

    if json_format:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    # Logs go to stderr; stdout may carry the rendered document.
    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=numeric_level,
    )


def get_logger(name: str | None = None) -> Any:
    """Get a structured logger (usually ``get_logger(__name__)``)."""
    if name:
        return structlog.get_logger(name, logger_name=name)
    return structlog.get_logger()


def bind_context(**kwargs: Any) -> None:
    """Bind context to include in all subsequent logs."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Remove specific keys from logging context."""
    structlog.contextvars.unbind_contextvars(*keys)


class LogContext:
    """Context manager for scoped logging context.

    Example:
        with LogContext(document_type="pdf"):
            logger.info("invocation_started")
    """

    def __init__(self, **kwargs: Any):
        self._context = kwargs
        self._tokens: list[Mapping[str, Any]] = []

    def __enter__(self) -> LogContext:
        self._tokens.append(structlog.contextvars.bind_contextvars(**self._context))
        return self

    def __exit__(self, *args) -> None:
        # Restores whatever an enclosing context had bound.
        structlog.contextvars.reset_contextvars(**self._tokens.pop())

    async def __aenter__(self) -> LogContext:
        return self.__enter__()

    async def __aexit__(self, *args) -> None:
        self.__exit__(*args)


__all__ = [
    "LOG_LEVELS",
    "configure_logging",
    "get_logger",
    "bind_context",
    "unbind_context",
    "LogContext",
]
