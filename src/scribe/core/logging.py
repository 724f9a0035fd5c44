"""
Structured logging for scribe.

Every component logs through structlog so that lifecycle and failure events
(``node.initialized``, ``pipeline.failed``, ``graph.run_failed``, ...) come
out as key/value records that can be filtered by component name or id.

Configuration Flow:
    ::

        ScribeSettings (SCRIBE_LOG_LEVEL, SCRIBE_LOG_FORMAT, SCRIBE_DEBUG)
            │  configure_logging_from_settings()   (Scribe(configure_logs=True))
            ▼
        configure_logging(level, json_format, service="scribe")
            │
            ▼
        structlog processor chain:
          1. TimeStamper (iso)
          2. merge_contextvars  (run_id bound by LogContext)
          3. add_log_level / add_logger_name
          4. add_service_metadata
          5. JSONRenderer (non-tty) or ConsoleRenderer (tty)

Examples:
    >>> from scribe.core.logging import configure_logging_from_settings, get_logger
    >>> configure_logging_from_settings(ScribeSettings(debug=True))
    >>> logger = get_logger(__name__)
    >>> logger.debug("node.queued", node="fetch", queue_size=3)

    Scoped run context:

    >>> async with LogContext(run_id="abc123"):
    ...     await pipeline.run_for(ctx)

Tags:
    logging, structlog, observability, scribe-core
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from scribe.core.settings import ScribeSettings, get_settings

# Store service name for metadata
_SERVICE_NAME = "scribe"


def _add_service_metadata(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add service-level metadata to all logs."""
    event_dict.setdefault("service", _SERVICE_NAME)
    return event_dict


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    service: str = "scribe",
    add_timestamp: bool = True,
) -> None:
    """Configure structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: True for JSON, False for console, None for auto (JSON if not tty)
        service: Service name to include in logs
        add_timestamp: Include ISO timestamp in logs
    """
    global _SERVICE_NAME
    _SERVICE_NAME = service

    if json_format is None:
        json_format = not sys.stdout.isatty()

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
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
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper()),
    )


def configure_logging_from_settings(settings: ScribeSettings | None = None) -> None:
    """Apply ``log_level`` and ``log_format`` from :class:`ScribeSettings`.

    ``debug`` forces DEBUG so that hook dispatch lines are emitted.
    """
    settings = settings or get_settings()
    level = "DEBUG" if settings.debug else settings.log_level
    configure_logging(level=level, json_format=settings.log_format == "json")


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


class LogContext:
    """Context manager for scoped logging context.

    Example:
        with LogContext(run_id="abc123"):
            logger.info("pipeline.started")
        # Context cleared here
    """

    def __init__(self, **kwargs: Any):
        self._context = kwargs

    def __enter__(self) -> LogContext:
        bind_context(**self._context)
        return self

    def __exit__(self, *args) -> None:
        unbind_context(*self._context.keys())

    async def __aenter__(self) -> LogContext:
        bind_context(**self._context)
        return self

    async def __aexit__(self, *args) -> None:
        unbind_context(*self._context.keys())


__all__ = [
    "configure_logging",
    "get_logger",
    "bind_context",
    "unbind_context",
    "configure_logging_from_settings",
    "LogContext",
]
