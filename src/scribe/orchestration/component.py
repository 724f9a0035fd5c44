"""Component base shared by pipelines, graphs, nodes, edges and the factory.

A component carries identity (id, name, version, tags, metadata), a mapping
from hook name to workflow (``ops``), and a notification surface.  The
engine code of each subclass never calls user logic directly; it calls
``self.op(hook, op_ctx, commit)`` and lets the hook workflow decide when the
commit step runs.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from typing import Any, ClassVar

from scribe.core.errors import AggregateError, ConfigError
from scribe.core.events import ERROR_EVENT, Event, EventEmitter, EventHandler
from scribe.core.logging import get_logger
from scribe.core.settings import get_settings
from scribe.orchestration.workflow import Tail, Workflow, noop_task, run_workflow, workflow_kind

logger = get_logger(__name__)


class Component:
    """Identity, hooks and notifications."""

    #: Hook names this component runs; every one defaults to ``noop_task``.
    HOOKS: ClassVar[tuple[str, ...]] = ()

    def __init__(
        self,
        *,
        name: str | None = None,
        version: str | None = None,
        tags: list[str] | None = None,
        metadata: Mapping[str, Any] | None = None,
        ops: Mapping[str, Workflow] | None = None,
    ) -> None:
        self.id = str(uuid.uuid4())
        self.name = name if name is not None else str(uuid.uuid4())
        self.version = version
        self.tags = list(tags or [])
        self.metadata = dict(metadata or {})
        self.ops: dict[str, Workflow] = self._resolve_ops(ops)
        self._events = EventEmitter(self.name)
        self._log = logger.bind(component=type(self).__name__, component_name=self.name)

    @classmethod
    def default_ops(cls) -> dict[str, Workflow]:
        return {hook: noop_task for hook in cls.HOOKS}

    def _resolve_ops(self, ops: Mapping[str, Workflow] | None) -> dict[str, Workflow]:
        ops = dict(ops or {})
        unknown = sorted(set(ops) - set(self.HOOKS))
        if unknown:
            raise ConfigError(
                f"Unknown operation(s) for {type(self).__name__}: {', '.join(unknown)}"
            ).with_context(component=type(self).__name__)
        for workflow in ops.values():
            workflow_kind(workflow)
        return {**self.default_ops(), **ops}

    def _identity(self, overrides: Mapping[str, Any]) -> dict[str, Any]:
        """Constructor kwargs that copy this component's identity fields."""
        return {
            "name": overrides.get("name", self.name),
            "version": overrides.get("version", self.version),
            "tags": overrides.get("tags", self.tags),
            "metadata": overrides.get("metadata", self.metadata),
        }

    # ── Hooks ────────────────────────────────────────────────────────────

    async def op(self, name: str, op_ctx: Any, tail: Tail | None = None) -> None:
        """Run the ``name`` hook with ``op_ctx``; ``tail`` is the commit step."""
        workflow = self.ops.get(name)
        if workflow is None:
            raise ConfigError(f"Op {name} not found").with_context(
                component=type(self).__name__, component_id=self.id, operation=name
            )
        if get_settings().debug:
            self._log.debug(
                "component.op",
                op=name,
                workflow=getattr(workflow, "__name__", repr(workflow)),
                op_ctx=type(op_ctx).__name__,
            )
        await run_workflow(workflow, op_ctx, tail)

    # ── Notifications ────────────────────────────────────────────────────

    def add_listener(self, name: str, handler: EventHandler) -> None:
        self._events.add_listener(name, handler)

    def remove_listener(self, name: str, handler: EventHandler) -> bool:
        return self._events.remove_listener(name, handler)

    async def emit(
        self,
        event_type: str,
        *,
        error: AggregateError | None = None,
        **payload: Any,
    ) -> None:
        await self._events.emit(
            Event(event_type=event_type, source=self.name, payload=payload, error=error)
        )

    async def report(self, error: AggregateError) -> None:
        """Log ``error`` and notify ``error`` listeners."""
        self._log.warning(
            "component.error",
            error=error.message,
            causes=len(error.errors),
            component_id=self.id,
        )
        await self.emit(ERROR_EVENT, error=error)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, id={self.id!r})"


__all__ = ["Component"]
