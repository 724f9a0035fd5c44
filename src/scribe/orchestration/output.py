"""Per-run outbound routing decision of a node."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from scribe.core.errors import AggregateError, PreconditionError

if TYPE_CHECKING:
    from scribe.orchestration.edge import Edge
    from scribe.orchestration.node import Node


class Output:
    """Set of outgoing edges a node run chose to write to.

    A fresh ``Output`` is handed to every run of a node.  The run queues
    edges; the node flushes them once the run returns (unless the run turned
    ``auto_flush`` off or flushed by hand).  A flush happens at most once.

    Example::

        async def route(op: RunOp, next) -> None:
            for edge in op.api.node.outgoing_edges:
                if edge.target.name == op.ctx["route"]:
                    op.output.queue(edge)
            await next()
    """

    def __init__(self, node: Node, *, auto_flush: bool = True) -> None:
        self.node = node
        self.auto_flush = auto_flush
        self._edges: list[Edge] = []
        self._flushed = False

    @property
    def edges(self) -> tuple[Edge, ...]:
        return tuple(self._edges)

    @property
    def size(self) -> int:
        return len(self._edges)

    @property
    def flushed(self) -> bool:
        return self._flushed

    def queue(self, edge: Edge) -> None:
        """Add ``edge`` to the set written on flush.

        Raises:
            PreconditionError: Already flushed, edge already queued, or the
                edge is not an outgoing edge of this node.
        """
        if self._flushed:
            raise PreconditionError("Queue has already been flushed.")
        if edge in self._edges:
            raise PreconditionError("Edge has already been queued.")
        if edge.source is not self.node:
            raise PreconditionError("Edge does not belong to this node.").with_context(
                node=self.node.name, edge=edge.id
            )
        self._edges.append(edge)

    def remove(self, edge: Edge) -> bool:
        if self._flushed:
            raise PreconditionError("Queue has already been flushed.")
        if edge not in self._edges:
            return False
        self._edges.remove(edge)
        return True

    async def flush(self, ctx: Any) -> None:
        """Write ``ctx`` to every queued edge concurrently.

        Raises:
            PreconditionError: Already flushed.
            AggregateError: "One or more edges failed to process".
        """
        if self._flushed:
            raise PreconditionError("Queue has already been flushed.")
        # Edges that succeed stay written even when siblings fail.
        self._flushed = True

        edges = list(self._edges)
        results = await asyncio.gather(
            *[self.node.write(edge, ctx) for edge in edges],
            return_exceptions=True,
        )
        failures = [r for r in results if isinstance(r, BaseException)]
        if failures:
            error = AggregateError("One or more edges failed to process", failures)
            error.with_context(component="Output", node=self.node.name, operation="flush")
            await self.node.report(error)
            raise error

    def __repr__(self) -> str:
        return f"Output(node={self.node.name!r}, size={self.size}, flushed={self._flushed})"


__all__ = ["Output"]
