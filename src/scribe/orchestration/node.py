"""Node — a graph vertex with a queue, a drain loop and a lifecycle.

WHY
───
Producers must never block on a slow consumer.  ``read`` only enqueues and
returns; a single drain loop per node consumes the queue in FIFO batches of
at most ``concurrency`` contexts.  That loop is the node's admission control.

ARCHITECTURE
────────────
::

    Node(...)                 UNINITIALIZED
      └── await initialize()  ─► INITIALIZED ──destroy()──► DESTROYED
                 │ hook fails                     │ hook fails
                 ▼                                ▼
              CORRUPTED ◄─────────────────────────┘   (sticky)

    read(edge|None, ctx) ─► queue ─► drain loop ─► run_for(ctx) ─► run hook
                                      (batches of                     │
                                       concurrency)                   ▼
                                                            Output.flush()
                                                                      │
    write(edge, ctx) ◄────────────────────────────────────────────────┘
      └── edge.write(ctx) ─► target.read(edge, ctx)

Only init and destroy failures corrupt a node.  A failing run is reported
and raised, and the drain loop moves on to the next batch.

Example::

    async def double(op: RunOp, next) -> None:
        op.ctx["value"] *= 2
        await next()

    node = await Node.create(name="double", ops={"run": double}, concurrency=4)
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar

from scribe.core.errors import AggregateError, ConfigError, LifecycleError, PreconditionError
from scribe.orchestration.component import Component
from scribe.orchestration.ops import (
    AddEdgeOp,
    DestroyOp,
    IncomingOp,
    InitOp,
    OutgoingOp,
    RemoveEdgeOp,
    RunForOp,
    RunOp,
)
from scribe.orchestration.output import Output
from scribe.orchestration.workflow import duplicate_workflow

if TYPE_CHECKING:
    from scribe.orchestration.edge import Edge
    from scribe.orchestration.graph import Graph


class NodeState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    CORRUPTED = "corrupted"
    DESTROYED = "destroyed"


@dataclass(frozen=True)
class QueuedContext:
    """A queued context and the edge it arrived on (None for graph entry)."""

    ctx: Any
    edge: Edge | None = None


class NodeAPI:
    """Handle passed to node hooks.

    Gives hook workflows the owning node plus a small registry for values
    the ``init`` hook prepares and the ``run`` hook consumes.
    """

    def __init__(self, node: Node) -> None:
        self.node = node
        self._registry: dict[str, Any] = {}

    def set(self, name: str, value: Any) -> None:
        self._registry[name] = value

    def get(self, name: str, default: Any = None) -> Any:
        return self._registry.get(name, default)

    def has(self, name: str) -> bool:
        return name in self._registry

    def delete(self, name: str) -> bool:
        return self._registry.pop(name, _MISSING) is not _MISSING

    def __contains__(self, name: object) -> bool:
        return name in self._registry

    def __repr__(self) -> str:
        return f"NodeAPI(node={self.node.name!r}, keys={sorted(self._registry)})"


_MISSING = object()


class Node(Component):
    """Graph vertex.  Build with :meth:`create` or construct and ``initialize``."""

    HOOKS: ClassVar[tuple[str, ...]] = (
        "init",
        "destroy",
        "add_edge",
        "remove_edge",
        "incoming",
        "outgoing",
        "run_for",
        "run",
    )

    def __init__(
        self,
        *,
        concurrency: int | None = None,
        auto_flush: bool = True,
        **options: Any,
    ) -> None:
        super().__init__(**options)
        if concurrency is not None and concurrency < 1:
            raise ConfigError(
                f"Node concurrency must be a positive integer or None, got {concurrency}"
            ).with_context(component="Node", node=self.name)

        self.concurrency = concurrency
        self.auto_flush = auto_flush
        self.graph: Graph | None = None
        self.api = NodeAPI(self)

        self._state = NodeState.UNINITIALIZED
        self._edges: dict[Edge, None] = {}
        self._queue: deque[QueuedContext] = deque()
        self._looping = False
        self._idle = asyncio.Event()
        self._idle.set()
        self._drain_task: asyncio.Task[None] | None = None

    @classmethod
    async def create(cls, **options: Any) -> Node:
        """Construct and initialize a node in one step."""
        node = cls(**options)
        await node.initialize()
        return node

    # ── State ────────────────────────────────────────────────────────────

    @property
    def state(self) -> NodeState:
        return self._state

    @property
    def initialized(self) -> bool:
        return self._state is NodeState.INITIALIZED

    @property
    def corrupted(self) -> bool:
        return self._state is NodeState.CORRUPTED

    @property
    def destroyed(self) -> bool:
        return self._state is NodeState.DESTROYED

    @property
    def looping(self) -> bool:
        return self._looping

    @property
    def queue_size(self) -> int:
        return len(self._queue)

    def _require_ready(self, verb: str) -> None:
        if self._state is NodeState.CORRUPTED:
            raise PreconditionError(f"Cannot {verb} corrupted node").with_context(
                component="Node", component_id=self.id, node=self.name
            )
        if self._state is not NodeState.INITIALIZED:
            raise PreconditionError(f"Cannot {verb} uninitialized node").with_context(
                component="Node", component_id=self.id, node=self.name
            )

    # ── Edges ────────────────────────────────────────────────────────────

    @property
    def edges(self) -> tuple[Edge, ...]:
        return tuple(self._edges)

    @property
    def incoming_edges(self) -> tuple[Edge, ...]:
        return tuple(e for e in self._edges if e.target is self)

    @property
    def outgoing_edges(self) -> tuple[Edge, ...]:
        return tuple(e for e in self._edges if e.source is self)

    def get_edges(self, predicate: Callable[[Edge], bool] | None = None) -> tuple[Edge, ...]:
        if predicate is None:
            return self.edges
        return tuple(e for e in self._edges if predicate(e))

    def has_edge(self, edge: Edge) -> bool:
        return edge in self._edges

    def discard_edge(self, edge: Edge) -> bool:
        """Drop ``edge`` without running hooks or state checks.

        Used by the graph to detach edges from a node that is destroyed or
        corrupted and so can no longer run its ``remove_edge`` hook.
        """
        return self._edges.pop(edge, _MISSING) is not _MISSING

    def restore_edge(self, edge: Edge) -> None:
        self._require_incident(edge)
        self._edges[edge] = None

    def _require_incident(self, edge: Edge) -> None:
        if edge.source is not self and edge.target is not self:
            raise PreconditionError("Edge does not belong to this node").with_context(
                component="Node", node=self.name, edge=edge.id
            )

    async def add_edge(self, edge: Edge) -> None:
        """Register ``edge`` in this node's edge set.

        Raises:
            PreconditionError: Node not ready, or ``edge`` is not incident.
            AggregateError: "Failed to add edge to node".
        """
        self._require_ready("add edge to")
        self._require_incident(edge)

        async def commit(op: AddEdgeOp) -> None:
            if op.add and (op.added or op.edge in self._edges):
                raise PreconditionError(
                    "Edge has already been added. If this is intentional, "
                    "then set `add` to `False` in the operation context."
                )
            if op.add:
                self._edges[op.edge] = None
                op.added = True

        try:
            await self.op("add_edge", AddEdgeOp(edge=edge), commit)
        except Exception as exc:
            error = AggregateError("Failed to add edge to node", [exc])
            await self.report(error)
            raise error from exc

    async def remove_edge(self, edge: Edge) -> None:
        """Drop ``edge`` from this node's edge set.

        Raises:
            PreconditionError: Node not ready.
            AggregateError: "Failed to remove edge from node".
        """
        self._require_ready("remove edge from")

        async def commit(op: RemoveEdgeOp) -> None:
            if op.remove and (op.removed or op.edge not in self._edges):
                raise PreconditionError(
                    "Edge has already been removed. If this is intentional, "
                    "then set `remove` to `False` in the operation context."
                )
            if op.remove:
                del self._edges[op.edge]
                op.removed = True

        try:
            await self.op("remove_edge", RemoveEdgeOp(edge=edge), commit)
        except Exception as exc:
            error = AggregateError("Failed to remove edge from node", [exc])
            await self.report(error)
            raise error from exc

    # ── Ingress / egress ─────────────────────────────────────────────────

    async def read(self, edge: Edge | None, ctx: Any) -> None:
        """Queue ``ctx`` for a run and start the drain loop if it is idle.

        ``edge`` is the edge the context arrived on, or None at a graph entry.
        Returns once the context is queued; it does not wait for the run.
        """
        self._require_ready("read from")
        if edge is not None and edge.target is not self:
            raise PreconditionError("Edge does not belong to this node").with_context(
                component="Node", node=self.name, edge=edge.id
            )

        async def commit(op: IncomingOp) -> None:
            if op.queue and op.queued:
                raise PreconditionError(
                    "Context has already been queued. If this is intentional, "
                    "then set `queue` to `False` in the operation context."
                )
            if not op.queue:
                return
            self._queue.append(QueuedContext(op.ctx, op.edge))
            op.queued = True
            if not self._looping:
                self._start_drain()

        await self.op("incoming", IncomingOp(ctx=ctx, edge=edge, api=self.api), commit)

    async def write(self, edge: Edge, ctx: Any) -> None:
        """Send ``ctx`` across one of this node's outgoing edges."""
        self._require_ready("write to")
        if edge.source is not self:
            raise PreconditionError("Edge does not belong to this node").with_context(
                component="Node", node=self.name, edge=edge.id
            )

        async def commit(op: OutgoingOp) -> None:
            if op.send and op.sent:
                raise PreconditionError(
                    "Context has already been sent. If this is intentional, "
                    "then set `send` to `False` in the operation context."
                )
            if not op.send:
                return
            op.sent = True
            await op.edge.write(op.ctx)

        await self.op("outgoing", OutgoingOp(ctx=ctx, edge=edge, api=self.api), commit)

    async def process(self, edge: Edge | None, ctx: Any) -> None:
        """Route ``ctx`` to :meth:`read` or :meth:`write` depending on ``edge``."""
        if edge is None or edge.target is self:
            await self.read(edge, ctx)
        elif edge.source is self:
            await self.write(edge, ctx)
        else:
            raise PreconditionError("Edge does not belong to this node").with_context(
                component="Node", node=self.name, edge=edge.id
            )

    # ── Execution ────────────────────────────────────────────────────────

    async def run_for(self, ctx: Any) -> None:
        """Run this node once for ``ctx`` and flush the resulting output.

        Raises:
            PreconditionError: Node not ready.
            AggregateError: "Failed to run node for context".
        """
        self._require_ready("run")

        async def commit(op: RunForOp) -> None:
            if op.run and op.ran:
                raise PreconditionError(
                    "Node has already been run for this context. If this is intentional, "
                    "then set `run` to `False` in the operation context."
                )
            if not op.run:
                return
            op.ran = True

            output = Output(self, auto_flush=self.auto_flush)
            await self.op("run", RunOp(api=self.api, ctx=op.ctx, output=output))

            if output.auto_flush and not output.flushed and output.size > 0:
                try:
                    await output.flush(op.ctx)
                except Exception as exc:
                    raise AggregateError("Failed to flush output", [exc]) from exc

        try:
            await self.op("run_for", RunForOp(ctx=ctx), commit)
        except Exception as exc:
            error = AggregateError("Failed to run node for context", [exc])
            self._log.warning("node.run_failed", error=str(exc), error_type=type(exc).__name__)
            await self.report(error)
            raise error from exc

    def _start_drain(self) -> None:
        if self._looping:
            raise PreconditionError("Node is already looping").with_context(
                component="Node", node=self.name
            )
        self._looping = True
        self._idle.clear()
        self._drain_task = asyncio.create_task(self._drain(), name=f"scribe-drain-{self.name}")
        self._drain_task.add_done_callback(self._on_drain_done)

    def _on_drain_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            self._log.debug("node.drain_cancelled")
            return
        exc = task.exception()
        if exc is not None:
            self._log.error("node.drain_crashed", error=str(exc), error_type=type(exc).__name__)

    async def _drain(self) -> None:
        try:
            while self._queue:
                size = len(self._queue) if self.concurrency is None else self.concurrency
                batch = [self._queue.popleft() for _ in range(min(size, len(self._queue)))]
                self._log.debug("node.batch_started", size=len(batch), pending=len(self._queue))

                results = await asyncio.gather(
                    *[self.run_for(item.ctx) for item in batch],
                    return_exceptions=True,
                )
                failures = [r for r in results if isinstance(r, BaseException)]
                if failures:
                    await self.report(
                        AggregateError("Failed to run node for context(s)", failures)
                    )
        finally:
            self._looping = False
            self._drain_task = None
            self._idle.set()

    async def join(self) -> None:
        """Wait until the queue is empty and the drain loop has stopped."""
        await self._idle.wait()

    # ── Lifecycle ────────────────────────────────────────────────────────

    async def initialize(self) -> None:
        """Run the ``init`` hook and mark the node initialized.

        Raises:
            PreconditionError: Node already initialized, corrupted or destroyed.
            LifecycleError: "Failed to initialize node"; the node is corrupted.
        """
        if self._state is NodeState.CORRUPTED:
            raise PreconditionError("Node is corrupted").with_context(node=self.name)
        if self._state is NodeState.INITIALIZED:
            raise PreconditionError("Node is already initialized").with_context(node=self.name)
        if self._state is NodeState.DESTROYED:
            raise PreconditionError("Node has been destroyed").with_context(node=self.name)

        async def commit(op: InitOp) -> None:
            if op.initialize and op.initialized:
                raise PreconditionError(
                    "Node has already been initialized. If this is intentional, "
                    "then set `initialize` to `False` in the operation context."
                )
            if op.initialize:
                self._state = NodeState.INITIALIZED
                op.initialized = True

        op = InitOp(api=self.api)
        try:
            await self.op("init", op, commit)
        except Exception as exc:
            self._state = NodeState.CORRUPTED
            error = LifecycleError("Failed to initialize node", [exc])
            self._log.error("node.initialization_error", error=str(exc))
            await self.emit("node.initialization_error", error=error)
            raise error from exc

        if not op.initialized:
            self._log.debug("node.initialization_skipped")
            return
        self._log.debug("node.initialized", concurrency=self.concurrency)
        await self.emit("node.initialized")

    async def destroy(self) -> None:
        """Run the ``destroy`` hook; a destroyed node rejects every operation.

        Raises:
            PreconditionError: "Node is corrupted" / "Node is not initialized".
            LifecycleError: "Failed to destroy node"; the node is corrupted.
        """
        if self._state is NodeState.CORRUPTED:
            raise PreconditionError("Node is corrupted").with_context(node=self.name)
        if self._state is not NodeState.INITIALIZED:
            raise PreconditionError("Node is not initialized").with_context(node=self.name)

        async def commit(op: DestroyOp) -> None:
            if op.destroy and op.destroyed:
                raise PreconditionError(
                    "Node has already been destroyed. If this is intentional, "
                    "then set `destroy` to `False` in the operation context."
                )
            if op.destroy:
                self._state = NodeState.DESTROYED
                op.destroyed = True

        op = DestroyOp(api=self.api)
        try:
            await self.op("destroy", op, commit)
        except Exception as exc:
            self._state = NodeState.CORRUPTED
            error = LifecycleError("Failed to destroy node", [exc])
            await self.report(error)
            raise error from exc

        if op.destroyed:
            self._log.debug("node.destroyed")
            await self.emit("node.destroyed")

    # ── Duplication ──────────────────────────────────────────────────────

    async def duplicate(self, *, deep: bool = False, **overrides: Any) -> Node:
        """Return an initialized copy of this node without any edges."""
        if deep:
            ops = {name: await duplicate_workflow(w, deep=True) for name, w in self.ops.items()}
        else:
            ops = dict(self.ops)
        ops.update(overrides.get("ops", {}))

        return await type(self).create(
            **self._identity(overrides),
            ops=ops,
            concurrency=overrides.get("concurrency", self.concurrency),
            auto_flush=overrides.get("auto_flush", self.auto_flush),
        )

    def __iter__(self) -> Iterator[Edge]:
        return iter(tuple(self._edges))

    def __repr__(self) -> str:
        return f"Node(name={self.name!r}, state={self._state.value}, edges={len(self._edges)})"


__all__ = ["Node", "NodeAPI", "NodeState", "QueuedContext"]
