"""Pipeline — ordered workflows run through chained continuations.

WHY
───
Middleware-style composition: each workflow receives ``next``; code before
``await next()`` is the forward pass, code after it is the backward pass.
The backward pass unwinds in exact reverse order because every ``next`` is
nested inside the previous workflow's call.

ARCHITECTURE
────────────
::

    Pipeline([a, b, c]).run_for(ctx, tail)

    a ──fwd──► b ──fwd──► c ──fwd──► tail(ctx)
    a ◄──bwd── b ◄──bwd── c ◄────────┘

    push(*workflows)  ─ append-only, each item committed independently
    run_for(ctx, tail) ─ walks a snapshot; later pushes don't affect this run

A workflow that never calls ``next`` halts the rest of the chain and the
tail.  That is allowed and is not an error.

Example::

    async def count(ctx, next):
        ctx["n"] += 1
        await next()
        ctx["n"] += 1

    pipeline = Pipeline(workflows=[count, count])
    await pipeline.run_for({"n": 0})
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Iterator
from typing import Any, ClassVar

from scribe.core.errors import AggregateError, PreconditionError
from scribe.orchestration.component import Component
from scribe.orchestration.ops import PipelineRunOp, PushOp
from scribe.orchestration.workflow import (
    Tail,
    Workflow,
    WorkflowKind,
    duplicate_workflow,
    run_workflow,
    workflow_kind,
)


class Pipeline(Component):
    """An ordered sequence of workflows."""

    kind: ClassVar[WorkflowKind] = WorkflowKind.PIPELINE
    HOOKS: ClassVar[tuple[str, ...]] = ("push", "run_for")

    def __init__(self, *, workflows: list[Workflow] | None = None, **options: Any) -> None:
        super().__init__(**options)
        self._workflows: list[Workflow] = list(workflows or [])
        for workflow in self._workflows:
            workflow_kind(workflow)

    @property
    def workflows(self) -> tuple[Workflow, ...]:
        return tuple(self._workflows)

    def __iter__(self) -> Iterator[Workflow]:
        return iter(tuple(self._workflows))

    def __len__(self) -> int:
        return len(self._workflows)

    # ── Building ─────────────────────────────────────────────────────────

    async def push(self, *workflows: Workflow) -> None:
        """Append workflows to the end of the pipeline.

        Each workflow runs the ``push`` hook on its own and the hooks run
        concurrently.  Committed workflows are appended once every hook has
        settled, in argument order, so a slow hook cannot reorder the list.
        A committed workflow is kept even when its hook or a sibling fails.

        Raises:
            PreconditionError: No workflows were given.
            AggregateError: "All pushes failed" or "Some pushes failed".
        """
        if not workflows:
            raise PreconditionError("No workflows provided").with_context(
                component="Pipeline", component_id=self.id, operation="push"
            )
        for workflow in workflows:
            workflow_kind(workflow)

        staged: list[Workflow | None] = [None] * len(workflows)

        async def push_one(index: int, workflow: Workflow) -> None:
            async def commit(op: PushOp) -> None:
                if op.push and op.pushed:
                    raise PreconditionError(
                        "Workflow has already been pushed. If this is intentional, "
                        "then set `push` to `False` in the operation context."
                    )
                if op.push:
                    staged[index] = op.workflow
                    op.pushed = True

            await self.op("push", PushOp(workflow=workflow), commit)

        results = await asyncio.gather(
            *[push_one(i, workflow) for i, workflow in enumerate(workflows)],
            return_exceptions=True,
        )
        self._workflows.extend(w for w in staged if w is not None)
        failures = [r for r in results if isinstance(r, BaseException)]
        if failures:
            message = "All pushes failed" if len(failures) == len(results) else "Some pushes failed"
            error = AggregateError(message, failures)
            await self.report(error)
            raise error

        self._log.debug("pipeline.pushed", count=len(workflows), size=len(self._workflows))

    # ── Execution ────────────────────────────────────────────────────────

    async def run_for(self, ctx: Any, tail: Tail | None = None) -> None:
        """Run every workflow for ``ctx`` in order, then ``tail``.

        Raises:
            AggregateError: "Pipeline failed", wrapping whatever failed.
        """
        op = PipelineRunOp(ctx=ctx, workflows=list(self._workflows))

        async def commit(op: PipelineRunOp) -> None:
            if op.run and op.ran:
                raise PreconditionError(
                    "Pipeline has already been run. If this is intentional, "
                    "then set `run` to `False` in the `run_for` operation context."
                )
            if not op.run:
                return

            remaining = deque(op.workflows)

            async def advance(_: Any = None) -> None:
                if remaining:
                    await run_workflow(remaining.popleft(), op.ctx, advance)
                elif tail is not None:
                    await tail(op.ctx)

            op.ran = True
            await advance()

        self._log.debug("pipeline.run_started", workflows=len(op.workflows))
        try:
            await self.op("run_for", op, commit)
        except Exception as exc:
            error = AggregateError("Pipeline failed", [exc])
            self._log.error("pipeline.failed", error=str(exc), error_type=type(exc).__name__)
            await self.report(error)
            raise error from exc
        self._log.debug("pipeline.run_completed", ran=op.ran)

    # ── Duplication ──────────────────────────────────────────────────────

    async def duplicate(self, *, deep: bool = False, **overrides: Any) -> Pipeline:
        """Copy identity, hooks and workflows into a new pipeline.

        Shallow copies share workflow references; deep copies duplicate nested
        pipelines and graphs.  Tasks are always shared.
        """
        if deep:
            workflows = [await duplicate_workflow(w, deep=True) for w in self._workflows]
            ops = {name: await duplicate_workflow(w, deep=True) for name, w in self.ops.items()}
        else:
            workflows = list(self._workflows)
            ops = dict(self.ops)
        ops.update(overrides.get("ops", {}))

        return Pipeline(
            **self._identity(overrides),
            ops=ops,
            workflows=overrides.get("workflows", workflows),
        )


__all__ = ["Pipeline"]
