"""Tests for the Scribe factory and registry."""

from __future__ import annotations

import pytest
import structlog

from scribe.core.errors import ConfigError
from scribe.core.settings import ScribeSettings
from scribe.orchestration.graph import Graph
from scribe.orchestration.node import Node
from scribe.orchestration.ops import CreateOp
from scribe.orchestration.pipeline import Pipeline
from scribe.orchestration.scribe import Scribe


# ── Helpers ──────────────────────────────────────────────────────────────


async def _increment(ctx, next):
    ctx["n"] += 1
    await next()


# ── Factories ────────────────────────────────────────────────────────────


class TestFactories:
    @pytest.mark.asyncio
    async def test_create_pipeline(self):
        scribe = Scribe()
        pipeline = await scribe.create_pipeline(name="p", workflows=[_increment])
        assert isinstance(pipeline, Pipeline)
        assert pipeline.workflows == (_increment,)
        assert pipeline in list(scribe)

    @pytest.mark.asyncio
    async def test_create_node_is_initialized_with_settings_default(self):
        scribe = Scribe(settings=ScribeSettings(default_node_concurrency=3))
        node = await scribe.create_node(name="n")
        assert node.initialized
        assert node.concurrency == 3
        assert scribe.nodes == [node]

    @pytest.mark.asyncio
    async def test_explicit_concurrency_wins(self):
        scribe = Scribe(settings=ScribeSettings(default_node_concurrency=3))
        node = await scribe.create_node(concurrency=1)
        assert node.concurrency == 1

    @pytest.mark.asyncio
    async def test_create_graph_wait_default(self, monkeypatch):
        monkeypatch.setenv("SCRIBE_GRAPH_WAIT_FOR_COMPLETION", "true")
        graph = await Scribe().create_graph()
        assert isinstance(graph, Graph)
        assert graph.wait is True

    @pytest.mark.asyncio
    async def test_hook_can_supply_component(self):
        prebuilt = Pipeline(name="prebuilt")

        async def supply(op: CreateOp, next):
            op.component = prebuilt
            await next()

        scribe = Scribe(ops={"create_pipeline": supply})
        assert await scribe.create_pipeline() is prebuilt

    @pytest.mark.asyncio
    async def test_hook_that_blocks_creation(self):
        async def block(op: CreateOp, next):
            pass

        scribe = Scribe(ops={"create_node": block})
        with pytest.raises(ConfigError, match="produced no component"):
            await scribe.create_node()


# ── Registry ─────────────────────────────────────────────────────────────


class TestRegistry:
    @pytest.mark.asyncio
    async def test_find_has_remove(self):
        scribe = Scribe()
        a = await scribe.create_node(name="a", tags=["io"])
        b = await scribe.create_node(name="b")
        p = Pipeline(name="p")
        scribe.use(p, p)

        assert len(scribe) == 3
        assert scribe.find(lambda c: "io" in c.tags) == [a]
        assert scribe.find_one(lambda c: c.name == "b") is b
        assert scribe.find_one(lambda c: c.name == "zzz") is None
        assert scribe.has(lambda c: isinstance(c, Pipeline))

        assert scribe.remove(lambda c: isinstance(c, Node)) == 2
        assert list(scribe) == [p]


# ── Run ──────────────────────────────────────────────────────────────────


class TestRun:
    @pytest.mark.asyncio
    async def test_run_binds_run_id(self):
        bound = {}

        async def capture(ctx, next):
            bound.update(structlog.contextvars.get_contextvars())
            await next()

        scribe = Scribe()
        ctx = {"n": 0}
        run_id = await scribe.run(Pipeline(workflows=[capture, _increment]), ctx, run_id="r-1")

        assert run_id == "r-1"
        assert bound["run_id"] == "r-1"
        assert ctx["n"] == 1
        assert "run_id" not in structlog.contextvars.get_contextvars()

    @pytest.mark.asyncio
    async def test_run_generates_id_and_propagates_failure(self):
        async def boom(ctx, next):
            raise RuntimeError("boom")

        scribe = Scribe()
        assert await scribe.run(_increment, {"n": 0})
        with pytest.raises(RuntimeError, match="boom"):
            await scribe.run(boom, {})
