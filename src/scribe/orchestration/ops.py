"""Hook operation contexts.

Every lifecycle point of a component (push, run, add edge, read, write,
init, destroy, ...) runs a user-substitutable workflow.  The workflow
receives one of the dataclasses below as its context and the component's
own commit step as its continuation::

    async def audit_push(op: PushOp, next) -> None:
        if getattr(op.workflow, "name", "") == "legacy":
            op.push = False          # opt out: the commit becomes a no-op
        await next()
        logger.info("pipeline.pushed", committed=op.pushed)

Intent flags (``push``, ``add``, ``queue``, ...) default to ``True``; a hook
sets one to ``False`` to skip the commit.  Result flags (``pushed``,
``added``, ``queued``, ...) are set by the commit step.  Calling ``next``
twice with the intent flag still set is an error.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from scribe.orchestration.edge import Edge
    from scribe.orchestration.node import Node, NodeAPI
    from scribe.orchestration.output import Output


# ── Pipeline ─────────────────────────────────────────────────────────────


@dataclass
class PushOp:
    workflow: Any
    push: bool = True
    pushed: bool = False


@dataclass
class PipelineRunOp:
    """Context of the pipeline ``run_for`` hook.

    ``workflows`` is the snapshot this run will walk; a hook may filter or
    reorder it before calling ``next``.
    """

    ctx: Any
    workflows: list[Any] = field(default_factory=list)
    run: bool = True
    ran: bool = False


# ── Edge ─────────────────────────────────────────────────────────────────


@dataclass
class EdgeWriteOp:
    ctx: Any
    edge: Edge
    write: bool = True
    written: bool = False


# ── Node ─────────────────────────────────────────────────────────────────


@dataclass
class AddEdgeOp:
    edge: Edge
    add: bool = True
    added: bool = False


@dataclass
class RemoveEdgeOp:
    edge: Edge
    remove: bool = True
    removed: bool = False


@dataclass
class IncomingOp:
    """Context of the node ``incoming`` hook; ``edge`` is None for graph entry."""

    ctx: Any
    edge: Edge | None
    api: NodeAPI
    queue: bool = True
    queued: bool = False


@dataclass
class OutgoingOp:
    ctx: Any
    edge: Edge
    api: NodeAPI
    send: bool = True
    sent: bool = False


@dataclass
class RunForOp:
    ctx: Any
    run: bool = True
    ran: bool = False


@dataclass
class RunOp:
    """Context handed to a node's run logic."""

    api: NodeAPI
    ctx: Any
    output: Output


@dataclass
class InitOp:
    api: NodeAPI
    initialize: bool = True
    initialized: bool = False


@dataclass
class DestroyOp:
    api: NodeAPI
    destroy: bool = True
    destroyed: bool = False


# ── Graph ────────────────────────────────────────────────────────────────


@dataclass
class AddNodeOp:
    node: Node
    add: bool = True
    added: bool = False


@dataclass
class RemoveNodeOp:
    node: Node
    remove: bool = True
    removed: bool = False


@dataclass
class AddGraphEdgeOp:
    """Context of the graph ``add_edge`` hook.

    ``ops`` becomes the new edge's hook mapping; ``edge`` is filled in by the
    commit step.
    """

    source: Node
    target: Node
    ops: dict[str, Any] = field(default_factory=dict)
    add: bool = True
    added: bool = False
    edge: Edge | None = None


@dataclass
class RemoveGraphEdgeOp:
    edge: Edge
    remove: bool = True
    removed: bool = False


@dataclass
class GraphRunOp:
    ctx: Any
    targets: list[Node] = field(default_factory=list)
    failures: list[BaseException] = field(default_factory=list)
    run: bool = True
    ran: bool = False


# ── Scribe ───────────────────────────────────────────────────────────────


@dataclass
class CreateOp:
    """Context of the ``create_*`` hooks; a hook may supply ``component`` itself."""

    options: dict[str, Any] = field(default_factory=dict)
    component: Any = None


__all__ = [
    "PushOp",
    "PipelineRunOp",
    "EdgeWriteOp",
    "AddEdgeOp",
    "RemoveEdgeOp",
    "IncomingOp",
    "OutgoingOp",
    "RunForOp",
    "RunOp",
    "InitOp",
    "DestroyOp",
    "AddNodeOp",
    "RemoveNodeOp",
    "AddGraphEdgeOp",
    "RemoveGraphEdgeOp",
    "GraphRunOp",
    "CreateOp",
]
