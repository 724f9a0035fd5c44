"""Tests for Output — queueing rules and one-shot flush."""

from __future__ import annotations

import pytest

from scribe.core.errors import AggregateError, PreconditionError
from scribe.core.events import ERROR_EVENT
from scribe.orchestration.graph import Graph
from scribe.orchestration.node import Node
from scribe.orchestration.output import Output


# ── Helpers ──────────────────────────────────────────────────────────────


async def _fan_out(count: int, target_ops=None):
    graph = Graph()
    source = await Node.create(name="source")
    targets = [await Node.create(name=f"t{i}", ops=target_ops or {}) for i in range(count)]
    await graph.add_nodes([source, *targets])
    edges = [await graph.add_edge(source, t) for t in targets]
    return graph, source, targets, edges


# ── Queue ────────────────────────────────────────────────────────────────


class TestQueue:
    @pytest.mark.asyncio
    async def test_queue_and_remove(self):
        _, source, _, edges = await _fan_out(2)
        output = Output(source)
        output.queue(edges[0])
        output.queue(edges[1])
        assert output.size == 2
        assert output.edges == tuple(edges)
        assert output.remove(edges[0]) is True
        assert output.remove(edges[0]) is False
        assert output.size == 1

    @pytest.mark.asyncio
    async def test_duplicate_rejected(self):
        _, source, _, edges = await _fan_out(1)
        output = Output(source)
        output.queue(edges[0])
        with pytest.raises(PreconditionError, match="Edge has already been queued."):
            output.queue(edges[0])

    @pytest.mark.asyncio
    async def test_foreign_edge_rejected(self):
        _, _, targets, edges = await _fan_out(1)
        output = Output(targets[0])
        with pytest.raises(PreconditionError, match="Edge does not belong to this node."):
            output.queue(edges[0])

    @pytest.mark.asyncio
    async def test_queue_after_flush_rejected(self):
        _, source, _, edges = await _fan_out(1)
        output = Output(source)
        await output.flush({})
        with pytest.raises(PreconditionError, match="Queue has already been flushed."):
            output.queue(edges[0])


# ── Flush ────────────────────────────────────────────────────────────────


class TestFlush:
    @pytest.mark.asyncio
    async def test_flush_writes_every_edge(self):
        seen = []

        async def run(op, next):
            seen.append(op.api.node.name)
            await next()

        graph, source, _, edges = await _fan_out(3, target_ops={"run": run})
        output = Output(source)
        for edge in edges:
            output.queue(edge)
        await output.flush({})
        await graph.join()

        assert output.flushed
        assert sorted(seen) == ["t0", "t1", "t2"]

    @pytest.mark.asyncio
    async def test_second_flush_rejected(self):
        _, source, _, _ = await _fan_out(1)
        output = Output(source)
        await output.flush({})
        with pytest.raises(PreconditionError, match="Queue has already been flushed."):
            await output.flush({})

    @pytest.mark.asyncio
    async def test_partial_failure_is_aggregated_and_not_rolled_back(self):
        seen = []

        async def run(op, next):
            seen.append(op.api.node.name)
            await next()

        graph, source, targets, edges = await _fan_out(3, target_ops={"run": run})
        await targets[1].destroy()

        reported = []

        async def on_error(event):
            reported.append(event.error.message)

        source.add_listener(ERROR_EVENT, on_error)

        output = Output(source)
        for edge in edges:
            output.queue(edge)
        with pytest.raises(AggregateError, match="One or more edges failed to process") as exc_info:
            await output.flush({})
        await graph.join()

        assert len(exc_info.value.errors) == 1
        assert output.flushed
        assert sorted(seen) == ["t0", "t2"]
        assert "One or more edges failed to process" in reported
