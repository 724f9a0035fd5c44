"""Tests for Graph — membership, topology, runs and duplication."""

from __future__ import annotations

import pytest

from scribe.core.errors import AggregateError, PreconditionError
from scribe.core.events import ERROR_EVENT
from scribe.orchestration.graph import Graph
from scribe.orchestration.node import Node
from scribe.orchestration.ops import AddEdgeOp, GraphRunOp, RemoveEdgeOp, RunOp


# ── Helpers ──────────────────────────────────────────────────────────────


def _forward(seen: list):
    """Run hook that records the node name and forwards to every outgoing edge."""

    async def run(op: RunOp, next):
        seen.append(op.api.node.name)
        for edge in op.api.node.outgoing_edges:
            op.output.queue(edge)
        await next()

    return run


async def _chain(*names: str, seen: list | None = None, wait: bool = True) -> Graph:
    ops = {"run": _forward(seen)} if seen is not None else {}
    graph = Graph(wait=wait)
    nodes = [await Node.create(name=n, ops=ops) for n in names]
    await graph.add_nodes(nodes)
    for source, target in zip(nodes, nodes[1:]):
        await graph.add_edge(source, target)
    return graph


def _by_name(graph: Graph, name: str) -> Node:
    return next(n for n in graph if n.name == name)


# ── Membership ───────────────────────────────────────────────────────────


class TestNodes:
    @pytest.mark.asyncio
    async def test_add_node_sets_back_reference(self):
        graph = Graph()
        node = await Node.create()
        await graph.add_node(node)
        assert node.graph is graph
        assert node in graph
        assert len(graph) == 1

    @pytest.mark.asyncio
    async def test_add_node_twice(self):
        graph = Graph()
        node = await Node.create()
        await graph.add_node(node)
        with pytest.raises(AggregateError, match="Failed to add node to graph"):
            await graph.add_node(node)

    @pytest.mark.asyncio
    async def test_node_owned_by_other_graph(self):
        node = await Node.create()
        await Graph().add_node(node)
        with pytest.raises(AggregateError, match="Failed to add node to graph") as exc_info:
            await Graph().add_node(node)
        assert "another graph" in str(exc_info.value.errors[0])

    @pytest.mark.asyncio
    async def test_remove_node_cascades_edges(self):
        graph = await _chain("a", "b", "c")
        b = _by_name(graph, "b")
        a, c = _by_name(graph, "a"), _by_name(graph, "c")

        await graph.remove_node(b)

        assert b not in graph
        assert b.graph is None
        assert b.edges == ()
        assert graph.edges == ()
        assert a.edges == ()
        assert c.edges == ()

    @pytest.mark.asyncio
    async def test_remove_destroyed_node(self):
        graph = await _chain("a", "b", "c")
        a, b, c = (_by_name(graph, n) for n in "abc")
        await b.destroy()

        await graph.remove_node(b)

        assert b not in graph
        assert graph.edges == ()
        assert a.edges == ()
        assert c.edges == ()
        assert [n.name for n in graph.entry_nodes()] == ["a", "c"]

    @pytest.mark.asyncio
    async def test_remove_absent_node(self):
        with pytest.raises(AggregateError, match="Failed to remove node from graph"):
            await Graph().remove_node(await Node.create())


class TestEdges:
    @pytest.mark.asyncio
    async def test_add_edge_registers_everywhere(self):
        graph = Graph()
        a, b = await Node.create(), await Node.create()
        await graph.add_nodes([a, b])
        edge = await graph.add_edge(a, b)
        assert edge in graph
        assert a.outgoing_edges == (edge,)
        assert b.incoming_edges == (edge,)

    @pytest.mark.asyncio
    async def test_endpoints_must_be_members(self):
        graph = Graph()
        a, b = await Node.create(), await Node.create()
        await graph.add_node(a)
        with pytest.raises(PreconditionError, match="not a member"):
            await graph.add_edge(a, b)

    @pytest.mark.asyncio
    async def test_self_loop_rejected(self):
        graph = Graph()
        a = await Node.create()
        await graph.add_node(a)
        with pytest.raises(PreconditionError, match="Cannot connect a node to itself"):
            await graph.add_edge(a, a)

    @pytest.mark.asyncio
    async def test_add_edge_rolls_back_source_on_target_failure(self):
        async def reject(op: AddEdgeOp, next):
            raise ValueError("target refuses")

        graph = Graph()
        a = await Node.create()
        b = await Node.create(ops={"add_edge": reject})
        await graph.add_nodes([a, b])

        with pytest.raises(AggregateError, match="Failed to add edge to graph"):
            await graph.add_edge(a, b)
        assert a.edges == ()
        assert graph.edges == ()

    @pytest.mark.asyncio
    async def test_remove_edge_restores_source_on_target_failure(self):
        async def refuse(op: RemoveEdgeOp, next):
            raise ValueError("target refuses")

        graph = Graph()
        a = await Node.create()
        b = await Node.create(ops={"remove_edge": refuse})
        await graph.add_nodes([a, b])
        edge = await graph.add_edge(a, b)

        with pytest.raises(AggregateError, match="Failed to remove edge from graph"):
            await graph.remove_edge(edge)
        assert a.has_edge(edge)
        assert b.has_edge(edge)
        assert edge in graph.edges

    @pytest.mark.asyncio
    async def test_edge_ops_are_applied(self):
        graph = Graph()
        a, b = await Node.create(), await Node.create()
        await graph.add_nodes([a, b])

        async def audit(op, next):
            await next()

        edge = await graph.add_edge(a, b, ops={"write": audit})
        assert edge.ops["write"] is audit

    @pytest.mark.asyncio
    async def test_remove_edge(self):
        graph = await _chain("a", "b")
        (edge,) = graph.edges
        await graph.remove_edge(edge)
        assert graph.edges == ()
        assert edge.source.edges == ()
        assert edge.target.edges == ()
        with pytest.raises(AggregateError, match="Failed to remove edge from graph"):
            await graph.remove_edge(edge)


# ── Runs ─────────────────────────────────────────────────────────────────


class TestRunFor:
    @pytest.mark.asyncio
    async def test_entry_nodes(self):
        graph = await _chain("a", "b", "c")
        assert [n.name for n in graph.entry_nodes()] == ["a"]

    @pytest.mark.asyncio
    async def test_empty_graph_has_no_input_nodes(self):
        with pytest.raises(PreconditionError, match="Graph has no input nodes"):
            await Graph().run_for({})

    @pytest.mark.asyncio
    async def test_cycle_only_graph_has_no_input_nodes(self):
        graph = await _chain("a", "b")
        a, b = _by_name(graph, "a"), _by_name(graph, "b")
        await graph.add_edge(b, a)
        with pytest.raises(PreconditionError, match="Graph has no input nodes"):
            await graph.run_for({})

    @pytest.mark.asyncio
    async def test_chain_runs_in_order(self):
        seen: list[str] = []
        graph = await _chain("a", "b", "c", seen=seen)
        await graph.run_for({})
        assert seen == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_diamond_fan_in(self):
        seen: list[str] = []
        run = _forward(seen)
        graph = Graph(wait=True)
        a, b, c, d = [await Node.create(name=n, ops={"run": run}) for n in "abcd"]
        await graph.add_nodes([a, b, c, d])
        await graph.add_edge(a, b)
        await graph.add_edge(a, c)
        await graph.add_edge(b, d)
        await graph.add_edge(c, d)

        await graph.run_for({})
        assert seen[0] == "a"
        assert sorted(seen[1:3]) == ["b", "c"]
        assert seen.count("d") == 2

    @pytest.mark.asyncio
    async def test_context_shared_by_reference(self):
        async def mark(op: RunOp, next):
            op.ctx.append(op.api.node.name)
            for edge in op.api.node.outgoing_edges:
                op.output.queue(edge)
            await next()

        graph = Graph(wait=True)
        a, b = await Node.create(name="a", ops={"run": mark}), await Node.create(name="b", ops={"run": mark})
        await graph.add_nodes([a, b])
        await graph.add_edge(a, b)

        ctx: list[str] = []
        await graph.run_for(ctx)
        assert ctx == ["a", "b"]

    @pytest.mark.asyncio
    async def test_aggregate_error_carries_every_cause(self):
        graph = Graph()
        nodes = [await Node.create(name=f"n{i}") for i in range(3)]
        await graph.add_nodes(nodes)
        for node in nodes:
            await node.destroy()

        errors = []

        async def on_error(event):
            errors.append(event.error)

        graph.add_listener(ERROR_EVENT, on_error)

        with pytest.raises(AggregateError, match="Failed to run graph") as exc_info:
            await graph.run_for({})
        assert len(exc_info.value.errors) == 3
        assert errors == [exc_info.value]

    @pytest.mark.asyncio
    async def test_run_hook_can_narrow_targets(self):
        seen: list[str] = []
        run = _forward(seen)
        graph = Graph(wait=True)
        a, b = await Node.create(name="a", ops={"run": run}), await Node.create(name="b", ops={"run": run})
        await graph.add_nodes([a, b])

        async def only_b(op: GraphRunOp, next):
            op.targets = [n for n in op.targets if n.name == "b"]
            await next()

        graph.ops["run_for"] = only_b
        await graph.run_for({})
        assert seen == ["b"]

    @pytest.mark.asyncio
    async def test_run_twice_in_one_dispatch_is_error(self):
        seen: list[str] = []
        graph = await _chain("a", seen=seen)

        async def twice(op: GraphRunOp, next):
            await next()
            await next()

        graph.ops["run_for"] = twice
        with pytest.raises(AggregateError, match="Failed to run graph") as exc_info:
            await graph.run_for({})
        await graph.join()

        assert isinstance(exc_info.value.errors[0], PreconditionError)
        assert seen == ["a"]

    @pytest.mark.asyncio
    async def test_without_wait_join_settles(self):
        seen: list[str] = []
        graph = await _chain("a", "b", seen=seen, wait=False)
        await graph.run_for({})
        await graph.join()
        assert seen == ["a", "b"]


# ── Duplicate ────────────────────────────────────────────────────────────


class TestDuplicate:
    @pytest.mark.asyncio
    async def test_shallow_shares_identity(self):
        graph = await _chain("a", "b")
        copy = await graph.duplicate()
        assert copy.id != graph.id
        assert copy.nodes == graph.nodes
        assert copy.edges == graph.edges
        assert all(n.graph is graph for n in copy)

    @pytest.mark.asyncio
    async def test_deep_preserves_topology(self):
        seen: list[str] = []
        graph = await _chain("a", "b", "c", seen=seen)
        copy = await graph.duplicate(deep=True)

        assert set(copy.nodes).isdisjoint(graph.nodes)
        assert set(copy.edges).isdisjoint(graph.edges)
        assert [n.name for n in copy.nodes] == ["a", "b", "c"]
        pairs = sorted((e.source.name, e.target.name) for e in copy.edges)
        assert pairs == [("a", "b"), ("b", "c")]
        assert all(n.graph is copy for n in copy)
        for edge in copy.edges:
            assert edge.source in copy and edge.target in copy

        await copy.run_for({})
        assert seen == ["a", "b", "c"]
