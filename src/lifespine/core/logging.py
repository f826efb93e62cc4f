"""
Lifespine Logging - Structured logging for the lifecycle framework.

Every module logs through structlog with snake-case event names and
key/value fields, so a dispatch can be followed across recursive
dependency creation:

    log.debug("dispatch.handler_call", object_type="server", lifecycle_event="create_e")

Manifesto:
    - **Structures:** Key/value events, JSON in production
    - **Correlates:** object_type/operation bound once per Core call
    - **Flexes:** Console output for development, JSON for log shipping

Architecture:
    ::

        configure_logging(level="INFO", json_format=None, service="lifespine")
            ↓
        structlog processor chain:
          1. merge_contextvars      (LogContext / bind_context)
          2. add_log_level
          3. TimeStamper(iso)
          4. add_service_metadata
          5. JSONRenderer | ConsoleRenderer

Examples:
    >>> from lifespine.core.logging import configure_logging, get_logger
    >>> configure_logging(level="DEBUG", json_format=False)
    >>> log = get_logger(__name__)
    >>> with LogContext(operation="create", object_type="server"):
    ...     log.info("dispatch.created")

Tags:
    logging, structlog, observability, json-logging, lifespine

Doc-Types:
    - API Reference
    - Configuration Documentation
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from lifespine.core.settings import get_settings


# Store service name for metadata
_SERVICE_NAME = "lifespine"


def _add_service_metadata(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add service-level metadata to all logs."""
    event_dict.setdefault("service.name", _SERVICE_NAME)
    return event_dict


def configure_logging(
    level: str | None = None,
    json_format: bool | None = None,
    service: str = "lifespine",
    add_timestamp: bool = True,
) -> None:
    """Configure structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR), overrides LIFESPINE_LOG_LEVEL
        json_format: True for JSON, False for console, overrides LIFESPINE_LOG_JSON.
            None in both places means auto (JSON if not tty)
        service: Service name to include in logs
        add_timestamp: Include ISO timestamp in logs
    """
    global _SERVICE_NAME
    _SERVICE_NAME = service

    settings = get_settings()
    level = level or settings.log_level
    if json_format is None:
        json_format = settings.log_json
    if json_format is None:
        json_format = not sys.stdout.isatty()

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
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
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> Any:
    """Get a structured logger.

    Args:
        name: Logger name (usually __name__)
    """
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind context to include in all subsequent logs."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Remove specific keys from logging context."""
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    """Clear all bound context."""
    structlog.contextvars.clear_contextvars()


class LogContext:
    """Context manager for scoped logging context.

    Nesting is safe: on exit the previous values of the keys are restored
    rather than dropped, so an inner Core call made from a process handler
    does not erase the outer call's context.

    Example:
        with LogContext(operation="create", object_type="server"):
            logger.info("dispatch.started")
    """

    def __init__(self, **kwargs: Any):
        self._context = kwargs
        self._tokens: Any = None

    def __enter__(self) -> "LogContext":
        self._tokens = structlog.contextvars.bind_contextvars(**self._context)
        return self

    def __exit__(self, *args: Any) -> None:
        if self._tokens is not None:
            structlog.contextvars.reset_contextvars(**self._tokens)
            self._tokens = None


__all__ = [
    "configure_logging",
    "get_logger",
    "bind_context",
    "unbind_context",
    "clear_context",
    "LogContext",
]
