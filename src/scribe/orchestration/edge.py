"""Directed connection between two nodes of a graph."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, ClassVar

from scribe.core.errors import AggregateError, PreconditionError
from scribe.orchestration.component import Component
from scribe.orchestration.ops import EdgeWriteOp

if TYPE_CHECKING:
    from scribe.orchestration.node import Node


class Edge(Component):
    """Carries a context from ``source`` to ``target``.

    Edges are created by :meth:`Graph.add_edge`, which also registers them
    with both endpoints.  Endpoints never change after construction.
    """

    HOOKS: ClassVar[tuple[str, ...]] = ("write",)

    def __init__(self, source: Node, target: Node, **options: Any) -> None:
        super().__init__(**options)
        self._source = source
        self._target = target

    @property
    def source(self) -> Node:
        return self._source

    @property
    def target(self) -> Node:
        return self._target

    async def write(self, ctx: Any) -> None:
        """Deliver ``ctx`` to the target node through the ``write`` hook.

        Raises:
            AggregateError: "Failed to write to edge".
        """

        async def commit(op: EdgeWriteOp) -> None:
            if op.write and op.written:
                raise PreconditionError(
                    "Edge has already been written. If this is intentional, "
                    "then set `write` to `False` in the operation context."
                )
            if not op.write:
                return
            op.written = True
            await op.edge.target.read(op.edge, op.ctx)

        try:
            await self.op("write", EdgeWriteOp(ctx=ctx, edge=self), commit)
        except Exception as exc:
            self._log.debug(
                "edge.write_failed",
                source=self._source.name,
                target=self._target.name,
                error=str(exc),
            )
            raise AggregateError("Failed to write to edge", [exc]).with_context(
                component="Edge", component_id=self.id, operation="write", edge=self.id
            ) from exc

    def __repr__(self) -> str:
        return f"Edge({self._source.name!r} -> {self._target.name!r}, id={self.id!r})"


__all__ = ["Edge"]
