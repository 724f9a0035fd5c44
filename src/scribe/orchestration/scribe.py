"""Scribe — factory and registry for pipelines, graphs and nodes.

The factory fills in engine defaults from :class:`ScribeSettings` and keeps
every component it creates (or is handed via :meth:`Scribe.use`) so callers
can look them up later by predicate.

Example::

    scribe = Scribe()
    fetch = await scribe.create_node(name="fetch", ops={"run": fetch_run})
    store = await scribe.create_node(name="store", ops={"run": store_run})
    graph = await scribe.create_graph(name="etl", wait=True)
    await graph.add_nodes([fetch, store])
    await graph.add_edge(fetch, store)

    await scribe.run(graph, {"url": "https://example.com"})
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, Iterator
from typing import Any, ClassVar

from scribe.core.errors import ConfigError
from scribe.core.logging import LogContext, configure_logging_from_settings
from scribe.core.settings import ScribeSettings, get_settings
from scribe.orchestration.component import Component
from scribe.orchestration.graph import Graph
from scribe.orchestration.node import Node
from scribe.orchestration.ops import CreateOp
from scribe.orchestration.pipeline import Pipeline
from scribe.orchestration.workflow import Tail, Workflow, run_workflow

Predicate = Callable[[Any], bool]


class Scribe(Component):
    """Creates components with engine defaults and tracks them.

    ``configure_logs=True`` applies the logging fields of ``settings``
    (level, format, debug) to structlog when the factory is built.
    """

    HOOKS: ClassVar[tuple[str, ...]] = ("create_pipeline", "create_graph", "create_node")

    def __init__(
        self,
        *,
        settings: ScribeSettings | None = None,
        configure_logs: bool = False,
        **options: Any,
    ) -> None:
        super().__init__(**options)
        self.settings = settings or get_settings()
        if configure_logs:
            configure_logging_from_settings(self.settings)
        self._components: list[Component] = []

    # ── Factories ────────────────────────────────────────────────────────

    async def _create(self, hook: str, options: dict[str, Any], build: Callable) -> Any:
        async def commit(op: CreateOp) -> None:
            if op.component is None:
                op.component = await build(**op.options)

        op = CreateOp(options=options)
        await self.op(hook, op, commit)
        if op.component is None:
            raise ConfigError(f"{hook} produced no component").with_context(
                component="Scribe", operation=hook
            )
        self.use(op.component)
        self._log.debug(
            "scribe.created",
            hook=hook,
            created=type(op.component).__name__,
            name=getattr(op.component, "name", None),
        )
        return op.component

    async def create_pipeline(self, **options: Any) -> Pipeline:
        async def build(**kwargs: Any) -> Pipeline:
            return Pipeline(**kwargs)

        return await self._create("create_pipeline", options, build)

    async def create_graph(self, **options: Any) -> Graph:
        options.setdefault("wait", self.settings.graph_wait_for_completion)

        async def build(**kwargs: Any) -> Graph:
            return Graph(**kwargs)

        return await self._create("create_graph", options, build)

    async def create_node(self, **options: Any) -> Node:
        """Create and initialize a node; concurrency defaults from settings."""
        options.setdefault("concurrency", self.settings.default_node_concurrency)
        return await self._create("create_node", options, Node.create)

    # ── Registry ─────────────────────────────────────────────────────────

    def use(self, *items: Component) -> None:
        for item in items:
            if item not in self._components:
                self._components.append(item)

    def find(self, predicate: Predicate) -> list[Component]:
        return [c for c in self._components if predicate(c)]

    def find_one(self, predicate: Predicate) -> Component | None:
        return next((c for c in self._components if predicate(c)), None)

    def has(self, predicate: Predicate) -> bool:
        return any(predicate(c) for c in self._components)

    def remove(self, predicate: Predicate) -> int:
        """Drop every matching component; returns how many were removed."""
        kept = [c for c in self._components if not predicate(c)]
        removed = len(self._components) - len(kept)
        self._components = kept
        return removed

    @property
    def nodes(self) -> list[Node]:
        return [c for c in self._components if isinstance(c, Node)]

    def __iter__(self) -> Iterator[Component]:
        return iter(list(self._components))

    def __len__(self) -> int:
        return len(self._components)

    # ── Execution ────────────────────────────────────────────────────────

    async def run(
        self,
        workflow: Workflow,
        ctx: Any,
        tail: Tail | None = None,
        *,
        run_id: str | None = None,
    ) -> str:
        """Dispatch ``workflow`` for ``ctx`` with ``run_id`` bound in every log line.

        Returns the run id.
        """
        run_id = run_id or str(uuid.uuid4())
        async with LogContext(run_id=run_id):
            self._log.info("scribe.run_started", workflow=repr(workflow))
            try:
                await run_workflow(workflow, ctx, tail)
            except Exception as exc:
                self._log.error("scribe.run_failed", error=str(exc), error_type=type(exc).__name__)
                raise
            self._log.info("scribe.run_completed")
        return run_id


__all__ = ["Scribe"]
