"""
Structured error types for the scribe engine.

Every failure raised by a pipeline, graph, node, edge or output is a
``ScribeError``.  Two families matter to callers:

- **Precondition violations** (``PreconditionError``): the call was made
  against a component in the wrong state (not initialized, corrupted,
  already flushed, foreign edge, ...).  They are raised immediately and are
  never retried.
- **Aggregate failures** (``AggregateError``): one or more independent
  operations failed.  Concurrent work is always settled before inspection,
  so the error carries *every* cause, not just the first one.

Initialization and destruction failures use ``LifecycleError``, an aggregate
that additionally marks the node as corrupted.

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────┐
        │                       ScribeError                         │
        │             (kind, context, cause, message)               │
        ├──────────────────────────────────────────────────────────┤
        │  PreconditionError   AggregateError     ConfigError       │
        │  (PRECONDITION)      (AGGREGATE)        (CONFIG)          │
        │                          │                                │
        │                      LifecycleError     WorkflowTypeError │
        │                      (LIFECYCLE)        (WORKFLOW)        │
        └──────────────────────────────────────────────────────────┘

Examples:
    >>> err = AggregateError("Failed to run graph", [ValueError("a"), ValueError("b")])
    >>> len(err.errors)
    2
    >>> err.kind
    <ErrorKind.AGGREGATE: 'AGGREGATE'>

Tags:
    error-handling, aggregate-error, preconditions, scribe-core

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Standard error kinds used for classification and logging."""

    PRECONDITION = "PRECONDITION"  # wrong state for the requested call
    AGGREGATE = "AGGREGATE"        # one or more sub-operations failed
    LIFECYCLE = "LIFECYCLE"        # init/destroy failed, node corrupted
    CONFIG = "CONFIG"              # bad hook mapping or settings
    WORKFLOW = "WORKFLOW"          # value is not a dispatchable workflow

    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Attributes:
        component: Component class name (``Node``, ``Graph``, ...)
        component_id: Unique id of the component
        operation: Hook/operation that was running (``run_for``, ``push``, ...)
        node: Name of the node involved, if any
        edge: Id of the edge involved, if any
        metadata: Additional key-value pairs
    """

    component: str | None = None
    component_id: str | None = None
    operation: str | None = None
    node: str | None = None
    edge: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["component", "component_id", "operation", "node", "edge"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class ScribeError(Exception):
    """
    Base exception for all scribe errors.

    Subclasses set ``default_kind`` so callers can branch on ``error.kind``
    instead of parsing messages.
    """

    default_kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        kind: ErrorKind | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.kind = kind or self.default_kind
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> ScribeError:
        """
        Add context to this error (fluent API).

        Usage:
            raise PreconditionError("Cannot run corrupted node").with_context(
                component="Node", node="fetch"
            )
        """
        for key, value in kwargs.items():
            if key != "metadata" and hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "kind": self.kind.value,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, kind={self.kind.value})"


# =============================================================================
# PRECONDITIONS
# =============================================================================


class PreconditionError(ScribeError):
    """The component is not in a state that allows the requested call."""

    default_kind = ErrorKind.PRECONDITION


# =============================================================================
# AGGREGATES
# =============================================================================


class AggregateError(ScribeError):
    """
    Wraps a list of underlying failures plus a stage-level message.

    ``errors`` keeps every cause in the order the operations were started.
    The first cause is also chained as ``__cause__`` so tracebacks show it.

    Example:
        >>> err = AggregateError("Pipeline failed", [RuntimeError("boom")])
        >>> str(err)
        'Pipeline failed'
        >>> err.errors
        [RuntimeError('boom')]
    """

    default_kind = ErrorKind.AGGREGATE

    def __init__(
        self,
        message: str,
        errors: Iterable[BaseException] = (),
        *,
        kind: ErrorKind | None = None,
        context: ErrorContext | None = None,
    ):
        self.errors: list[BaseException] = list(errors)
        super().__init__(
            message,
            kind=kind,
            context=context,
            cause=self.errors[0] if self.errors else None,
        )

    def flatten(self) -> list[BaseException]:
        """Return the leaf causes, unwrapping nested aggregates."""
        leaves: list[BaseException] = []
        for error in self.errors:
            if isinstance(error, AggregateError):
                leaves.extend(error.flatten())
            else:
                leaves.append(error)
        return leaves

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["errors"] = [
            e.to_dict() if isinstance(e, ScribeError) else {"error_type": type(e).__name__, "message": str(e)}
            for e in self.errors
        ]
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, errors={len(self.errors)})"


class LifecycleError(AggregateError):
    """Initialization or destruction failed; the node is now corrupted."""

    default_kind = ErrorKind.LIFECYCLE


# =============================================================================
# CONFIGURATION / WORKFLOW SHAPE
# =============================================================================


class ConfigError(ScribeError):
    """Invalid hook mapping or settings."""

    default_kind = ErrorKind.CONFIG


class WorkflowTypeError(ScribeError, TypeError):
    """The value cannot be dispatched as a task, pipeline or graph."""

    default_kind = ErrorKind.WORKFLOW


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def error_kind(error: BaseException) -> ErrorKind:
    """Get the kind of an error."""
    if isinstance(error, ScribeError):
        return error.kind
    return ErrorKind.UNKNOWN


def is_precondition(error: BaseException) -> bool:
    """Check whether an error is a precondition violation."""
    return error_kind(error) == ErrorKind.PRECONDITION


__all__ = [
    "ErrorKind",
    "ErrorContext",
    "ScribeError",
    "PreconditionError",
    "AggregateError",
    "LifecycleError",
    "ConfigError",
    "WorkflowTypeError",
    "error_kind",
    "is_precondition",
]
