"""Graph — a set of nodes and the directed edges between them.

Entry nodes are derived from the topology on every run: a node is an entry
when no edge targets it.  There is no separate "start node" marker.

Acyclicity is not checked.  A graph whose every node sits on a cycle has no
entry nodes and is rejected at run time; a cycle reachable from an entry
node will loop for as long as its nodes keep writing.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Iterator, Mapping
from typing import Any, ClassVar

from scribe.core.errors import AggregateError, PreconditionError
from scribe.orchestration.component import Component
from scribe.orchestration.edge import Edge
from scribe.orchestration.node import Node
from scribe.orchestration.ops import (
    AddGraphEdgeOp,
    AddNodeOp,
    GraphRunOp,
    RemoveGraphEdgeOp,
    RemoveNodeOp,
)
from scribe.orchestration.workflow import Workflow, WorkflowKind, duplicate_workflow


class Graph(Component):
    """Directed graph of nodes, usable anywhere a workflow is accepted."""

    kind: ClassVar[WorkflowKind] = WorkflowKind.GRAPH
    HOOKS: ClassVar[tuple[str, ...]] = (
        "add_node",
        "remove_node",
        "add_edge",
        "remove_edge",
        "run_for",
    )

    def __init__(self, *, wait: bool = False, **options: Any) -> None:
        super().__init__(**options)
        self.wait = wait
        self._nodes: dict[Node, None] = {}
        self._edges: dict[Edge, None] = {}

    @property
    def nodes(self) -> tuple[Node, ...]:
        return tuple(self._nodes)

    @property
    def edges(self) -> tuple[Edge, ...]:
        return tuple(self._edges)

    def __iter__(self) -> Iterator[Node]:
        return iter(tuple(self._nodes))

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, item: object) -> bool:
        return item in self._nodes or item in self._edges

    def entry_nodes(self) -> list[Node]:
        targets = {id(edge.target) for edge in self._edges}
        return [node for node in self._nodes if id(node) not in targets]

    # ── Nodes ────────────────────────────────────────────────────────────

    async def add_node(self, node: Node) -> None:
        """Make ``node`` a member of this graph.

        Raises:
            AggregateError: "Failed to add node to graph".
        """

        async def commit(op: AddNodeOp) -> None:
            if op.add and (op.added or op.node in self._nodes):
                raise PreconditionError(
                    "Node has already been added. If this is intentional, "
                    "then set `add` to `False` in the operation context."
                )
            if not op.add:
                return
            if op.node.graph is not None and op.node.graph is not self:
                raise PreconditionError("Node already belongs to another graph").with_context(
                    node=op.node.name
                )
            op.node.graph = self
            self._nodes[op.node] = None
            op.added = True

        try:
            await self.op("add_node", AddNodeOp(node=node), commit)
        except Exception as exc:
            error = AggregateError("Failed to add node to graph", [exc])
            await self.report(error)
            raise error from exc
        self._log.debug("graph.node_added", node=node.name, nodes=len(self._nodes))

    async def add_nodes(self, nodes: Iterable[Node]) -> None:
        for node in nodes:
            await self.add_node(node)

    async def remove_node(self, node: Node) -> None:
        """Remove ``node`` and every edge incident to it.

        Raises:
            AggregateError: "Failed to remove node from graph".
        """

        async def commit(op: RemoveNodeOp) -> None:
            if op.remove and (op.removed or op.node not in self._nodes):
                raise PreconditionError(
                    "Node has already been removed. If this is intentional, "
                    "then set `remove` to `False` in the operation context."
                )
            if not op.remove:
                return
            for edge in op.node.edges:
                if edge in self._edges:
                    await self.remove_edge(edge)
            op.node.graph = None
            del self._nodes[op.node]
            op.removed = True

        try:
            await self.op("remove_node", RemoveNodeOp(node=node), commit)
        except Exception as exc:
            error = AggregateError("Failed to remove node from graph", [exc])
            await self.report(error)
            raise error from exc
        self._log.debug("graph.node_removed", node=node.name, nodes=len(self._nodes))

    # ── Edges ────────────────────────────────────────────────────────────

    async def add_edge(
        self,
        source: Node,
        target: Node,
        ops: Mapping[str, Workflow] | None = None,
        **options: Any,
    ) -> Edge | None:
        """Connect ``source`` to ``target`` and return the new edge.

        Returns None when the ``add_edge`` hook opted out of the commit.

        The edge is registered with the source, the target and the graph;
        when the target registration fails the source registration is undone.

        Raises:
            PreconditionError: An endpoint is not a member, or
                ``source is target``.
            AggregateError: "Failed to add edge to graph".
        """
        for node in (source, target):
            if node not in self._nodes:
                raise PreconditionError("Node is not a member of this graph").with_context(
                    component="Graph", component_id=self.id, node=node.name
                )
        if source is target:
            raise PreconditionError("Cannot connect a node to itself").with_context(
                component="Graph", node=source.name
            )

        async def commit(op: AddGraphEdgeOp) -> None:
            if op.add and op.added:
                raise PreconditionError(
                    "Edge has already been added. If this is intentional, "
                    "then set `add` to `False` in the operation context."
                )
            if not op.add:
                return
            edge = Edge(op.source, op.target, ops=op.ops, **options)
            await op.source.add_edge(edge)
            try:
                await op.target.add_edge(edge)
            except Exception:
                await op.source.remove_edge(edge)
                raise
            self._edges[edge] = None
            op.edge = edge
            op.added = True

        op = AddGraphEdgeOp(source=source, target=target, ops=dict(ops or {}))
        try:
            await self.op("add_edge", op, commit)
        except Exception as exc:
            error = AggregateError("Failed to add edge to graph", [exc])
            await self.report(error)
            raise error from exc

        if op.edge is None:
            return None
        self._log.debug("graph.edge_added", source=source.name, target=target.name)
        return op.edge

    async def remove_edge(self, edge: Edge) -> None:
        """Disconnect ``edge`` from both endpoints and the graph.

        When the target refuses the removal the source registration is
        restored.  Endpoints that are destroyed or corrupted are detached
        without running their ``remove_edge`` hook.

        Raises:
            AggregateError: "Failed to remove edge from graph".
        """

        async def commit(op: RemoveGraphEdgeOp) -> None:
            if op.remove and (op.removed or op.edge not in self._edges):
                raise PreconditionError(
                    "Edge has already been removed. If this is intentional, "
                    "then set `remove` to `False` in the operation context."
                )
            if not op.remove:
                return
            source, target = op.edge.source, op.edge.target
            await _unlink(source, op.edge)
            try:
                await _unlink(target, op.edge)
            except Exception:
                if source.initialized:
                    await source.add_edge(op.edge)
                else:
                    source.restore_edge(op.edge)
                raise
            del self._edges[op.edge]
            op.removed = True

        try:
            await self.op("remove_edge", RemoveGraphEdgeOp(edge=edge), commit)
        except Exception as exc:
            error = AggregateError("Failed to remove edge from graph", [exc])
            await self.report(error)
            raise error from exc

    # ── Execution ────────────────────────────────────────────────────────

    async def run_for(self, ctx: Any) -> None:
        """Feed ``ctx`` to every entry node concurrently.

        Raises:
            PreconditionError: "Graph has no input nodes".
            AggregateError: "Failed to run graph", carrying every cause.
        """
        targets = self.entry_nodes()
        if not targets:
            raise PreconditionError("Graph has no input nodes").with_context(
                component="Graph", component_id=self.id, operation="run_for"
            )

        async def commit(op: GraphRunOp) -> None:
            if op.run and op.ran:
                raise PreconditionError(
                    "Graph has already been run. If this is intentional, "
                    "then set `run` to `False` in the `run_for` operation context."
                )
            if not op.run:
                return
            op.ran = True
            results = await asyncio.gather(
                *[node.read(None, op.ctx) for node in op.targets],
                return_exceptions=True,
            )
            op.failures.extend(r for r in results if isinstance(r, BaseException))

        op = GraphRunOp(ctx=ctx, targets=targets)
        self._log.debug("graph.run_started", entries=len(targets), nodes=len(self._nodes))
        try:
            await self.op("run_for", op, commit)
        except Exception as exc:
            op.failures.append(exc)

        if op.failures:
            error = AggregateError("Failed to run graph", op.failures)
            self._log.error("graph.run_failed", failures=len(op.failures))
            await self.report(error)
            raise error

        if self.wait:
            await self.join()

    async def join(self) -> None:
        """Wait until no node of this graph has a running drain loop."""
        while any(node.looping for node in self._nodes):
            await asyncio.gather(*[node.join() for node in self._nodes])

    # ── Duplication ──────────────────────────────────────────────────────

    async def duplicate(self, *, deep: bool = False, **overrides: Any) -> Graph:
        """Copy this graph.

        A shallow copy lists the same node and edge objects (their ``graph``
        back-reference keeps pointing here).  A deep copy duplicates every
        node and rebuilds each edge between the corresponding copies.
        """
        if deep:
            ops = {name: await duplicate_workflow(w, deep=True) for name, w in self.ops.items()}
        else:
            ops = dict(self.ops)
        ops.update(overrides.get("ops", {}))

        graph = Graph(**self._identity(overrides), ops=ops, wait=overrides.get("wait", self.wait))

        if not deep:
            graph._nodes = dict(self._nodes)
            graph._edges = dict(self._edges)
            return graph

        mapping: dict[Node, Node] = {}
        for node in self._nodes:
            copy = await node.duplicate(deep=True)
            mapping[node] = copy
            await graph.add_node(copy)
        for edge in self._edges:
            edge_ops = {name: await duplicate_workflow(w, deep=True) for name, w in edge.ops.items()}
            await graph.add_edge(
                mapping[edge.source],
                mapping[edge.target],
                ops=edge_ops,
                name=edge.name,
                version=edge.version,
                tags=edge.tags,
                metadata=edge.metadata,
            )
        return graph

    def __repr__(self) -> str:
        return f"Graph(name={self.name!r}, nodes={len(self._nodes)}, edges={len(self._edges)})"


async def _unlink(node: Node, edge: Edge) -> None:
    if node.initialized:
        await node.remove_edge(edge)
    else:
        node.discard_edge(edge)


__all__ = ["Graph"]
