"""Component notifications.

Why This Module Exists
----------------------
Pipelines, graphs and nodes report what happens to them (a node finished
initializing, a drain batch failed, a listener blew up) without knowing who
is watching.  Each component owns an ``EventEmitter``; collaborators
subscribe with ``add_listener(name, handler)``.  The engine only ever emits.

Delivery is awaited by the emitting component: handlers run concurrently,
every handler is settled, and failures are turned into a follow-up
``"error"`` event instead of escaping into the engine.

Usage::

    async def on_error(event: Event) -> None:
        print(event.error.errors)

    node.add_listener("error", on_error)
    node.add_listener("node.*", on_lifecycle)   # wildcard patterns
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from scribe.core.errors import AggregateError
from scribe.core.logging import get_logger

__all__ = [
    "ERROR_EVENT",
    "Event",
    "EventHandler",
    "EventEmitter",
]

logger = get_logger(__name__)

#: Reserved event name for failure notifications.
ERROR_EVENT = "error"


# ── Event Model ──────────────────────────────────────────────────────────


@dataclass
class Event:
    """A notification emitted by a component.

    Attributes:
        event_type: Dot-separated type (``error``, ``node.initialized``, ...)
        source: Name of the emitting component
        payload: Event-specific data
        error: Aggregate error for ``error`` notifications
        timestamp: When the event occurred (UTC)
        event_id: Unique event identifier
    """

    event_type: str
    source: str
    payload: dict[str, Any] = field(default_factory=dict)
    error: AggregateError | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def message(self) -> str:
        if self.error is not None:
            return self.error.message
        return self.payload.get("message", "")

    def matches(self, pattern: str) -> bool:
        """Check if event type matches a pattern (supports wildcards).

        Examples:
            - ``node.*`` matches ``node.initialized``
            - ``*`` matches everything
            - ``error`` matches exactly ``error``
        """
        if pattern == "*":
            return True
        if pattern.endswith(".*"):
            prefix = pattern[:-2]
            return self.event_type.startswith(prefix + ".")
        return self.event_type == pattern


# ── Type Aliases ─────────────────────────────────────────────────────────

EventHandler = Callable[[Event], Awaitable[None]]


# ── Emitter ──────────────────────────────────────────────────────────────


class EventEmitter:
    """Per-component listener registry.

    Listeners are kept per pattern in registration order.  The same handler
    may be registered under several patterns; it is called once per matching
    pattern.
    """

    def __init__(self, source: str) -> None:
        self.source = source
        self._listeners: dict[str, list[EventHandler]] = {}

    def add_listener(self, name: str, handler: EventHandler) -> None:
        self._listeners.setdefault(name, []).append(handler)

    def remove_listener(self, name: str, handler: EventHandler) -> bool:
        """Remove one registration of ``handler``; returns whether one existed."""
        handlers = self._listeners.get(name)
        if not handlers or handler not in handlers:
            return False
        handlers.remove(handler)
        if not handlers:
            del self._listeners[name]
        return True

    def listener_count(self, name: str | None = None) -> int:
        if name is not None:
            return len(self._listeners.get(name, []))
        return sum(len(h) for h in self._listeners.values())

    def _matching(self, event: Event) -> list[EventHandler]:
        handlers: list[EventHandler] = []
        for pattern, registered in self._listeners.items():
            if event.matches(pattern):
                handlers.extend(registered)
        return handlers

    async def emit(self, event: Event) -> None:
        """Deliver ``event`` to every matching listener and wait for all of them."""
        handlers = self._matching(event)
        if not handlers:
            return

        results = await asyncio.gather(
            *[handler(event) for handler in handlers],
            return_exceptions=True,
        )
        failures = [r for r in results if isinstance(r, BaseException)]
        if not failures:
            return

        logger.warning(
            "event.listener_failed",
            source=self.source,
            event_type=event.event_type,
            failures=len(failures),
        )
        # A failing error listener is only logged; re-emitting would recurse.
        if event.event_type != ERROR_EVENT:
            await self.emit(
                Event(
                    event_type=ERROR_EVENT,
                    source=self.source,
                    error=AggregateError("One or more listeners failed", failures),
                )
            )
