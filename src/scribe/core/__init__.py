"""Scribe Core -- ambient primitives shared by every engine component.

Architecture::

    errors.py      Structured error hierarchy (ScribeError, AggregateError, ...)
    logging.py     structlog configuration + LogContext
    settings.py    ScribeSettings (pydantic-settings, SCRIBE_* env vars)
    events.py      Event model + per-component EventEmitter
"""

from scribe.core.errors import (
    AggregateError,
    ConfigError,
    ErrorContext,
    ErrorKind,
    LifecycleError,
    PreconditionError,
    ScribeError,
    WorkflowTypeError,
    error_kind,
    is_precondition,
)
from scribe.core.events import ERROR_EVENT, Event, EventEmitter, EventHandler
from scribe.core.logging import (
    LogContext,
    configure_logging,
    configure_logging_from_settings,
    get_logger,
)
from scribe.core.settings import ScribeSettings, get_settings, reset_settings

__all__ = [
    "AggregateError",
    "ConfigError",
    "ErrorContext",
    "ErrorKind",
    "LifecycleError",
    "PreconditionError",
    "ScribeError",
    "WorkflowTypeError",
    "error_kind",
    "is_precondition",
    "ERROR_EVENT",
    "Event",
    "EventEmitter",
    "EventHandler",
    "LogContext",
    "configure_logging",
    "configure_logging_from_settings",
    "get_logger",
    "ScribeSettings",
    "get_settings",
    "reset_settings",
]
