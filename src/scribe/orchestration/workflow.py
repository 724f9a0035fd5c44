"""Workflow dispatcher — the task-composition protocol.

WHY
───
Tasks, pipelines and graphs are consumed uniformly: anything that accepts a
workflow (a pipeline slot, a lifecycle hook) can be handed any of the three.
``run_workflow`` is the single place that knows how each variant runs.

ARCHITECTURE
────────────
::

    run_workflow(workflow, ctx, tail=None)
      ├── TASK      → await task(ctx, next)        next() → tail(ctx) or no-op
      ├── PIPELINE  → await pipeline.run_for(ctx, tail)
      └── GRAPH     → await graph.run_for(ctx); then tail(ctx) once

    Forward pass  = task code before ``await next()``
    Backward pass = task code after ``await next()`` returns

The variant is an explicit discriminant (``WorkflowKind``) read from the
``kind`` attribute of pipelines and graphs; a bare async callable is a task.
Nothing is inferred from method names.

Example::

    async def timed(ctx, next):
        ctx["started"] = True       # forward pass
        await next()
        ctx["finished"] = True      # backward pass

    await run_workflow(timed, {})
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar

from scribe.core.errors import WorkflowTypeError

Next = Callable[[], Awaitable[None]]
"""Continuation handed to a task: runs the rest of the workflow."""

Tail = Callable[[Any], Awaitable[None]]
"""Terminal continuation invoked with the context once a workflow is done."""

TaskFn = Callable[[Any, Next], Awaitable[None]]


class WorkflowKind(str, Enum):
    """Discriminant of the workflow union."""

    TASK = "task"
    PIPELINE = "pipeline"
    GRAPH = "graph"


@dataclass(frozen=True)
class Task:
    """Named wrapper around a task function.

    Plain async functions are already tasks; wrap one only to give it a name
    that shows up in logs and ``repr``.
    """

    fn: TaskFn
    name: str = ""

    kind: ClassVar[WorkflowKind] = WorkflowKind.TASK

    def __call__(self, ctx: Any, next: Next) -> Awaitable[None]:
        return self.fn(ctx, next)


Workflow = Any  # TaskFn | Task | Pipeline | Graph


def workflow_kind(workflow: Workflow) -> WorkflowKind:
    """Return the variant of ``workflow`` or raise :class:`WorkflowTypeError`."""
    kind = getattr(workflow, "kind", None)
    if isinstance(kind, WorkflowKind):
        return kind
    if callable(workflow):
        return WorkflowKind.TASK
    raise WorkflowTypeError(
        f"Not a workflow: {workflow!r} (expected a task, pipeline or graph)"
    )


def is_task(workflow: Workflow) -> bool:
    return workflow_kind(workflow) is WorkflowKind.TASK


def is_pipeline(workflow: Workflow) -> bool:
    return workflow_kind(workflow) is WorkflowKind.PIPELINE


def is_graph(workflow: Workflow) -> bool:
    return workflow_kind(workflow) is WorkflowKind.GRAPH


async def _resolved() -> None:
    return None


async def noop_task(ctx: Any, next: Next) -> None:
    """Pass-through task; the default for every lifecycle hook."""
    await next()


async def run_workflow(workflow: Workflow, ctx: Any, tail: Tail | None = None) -> None:
    """Run ``workflow`` for ``ctx``, then ``tail`` if the workflow lets it.

    Failures propagate unchanged; the dispatcher adds no wrapping.
    """
    kind = workflow_kind(workflow)

    if kind is WorkflowKind.TASK:
        if tail is None:
            await workflow(ctx, _resolved)
            return

        async def next() -> None:
            await tail(ctx)

        await workflow(ctx, next)

    elif kind is WorkflowKind.PIPELINE:
        await workflow.run_for(ctx, tail)

    else:
        # Graphs fan out; there is no forward/backward pass to thread the tail through.
        await workflow.run_for(ctx)
        if tail is not None:
            await tail(ctx)


async def duplicate_workflow(workflow: Workflow, deep: bool = False) -> Workflow:
    """Duplicate a pipeline or graph; tasks are immutable and returned as-is."""
    if workflow_kind(workflow) is WorkflowKind.TASK:
        return workflow
    return await workflow.duplicate(deep=deep)


__all__ = [
    "Next",
    "Tail",
    "TaskFn",
    "Task",
    "Workflow",
    "WorkflowKind",
    "workflow_kind",
    "is_task",
    "is_pipeline",
    "is_graph",
    "noop_task",
    "run_workflow",
    "duplicate_workflow",
]
