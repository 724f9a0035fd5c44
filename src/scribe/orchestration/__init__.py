"""
Scribe Orchestration — middleware pipelines and DAG execution.

WHY
───
Two ways of composing async work share one protocol.  A pipeline runs
workflows in order, each wrapping the rest of the chain (forward pass
before ``await next()``, backward pass after).  A graph fans a context out
across nodes whose queues and drain loops bound how much work each node
takes on at once.  Either can be nested wherever a workflow is accepted.

ARCHITECTURE
────────────
::

    run_workflow(workflow, ctx, tail)
      ├── task      (ctx, next) coroutine function
      ├── Pipeline  ordered workflows, chained continuations
      └── Graph     nodes + edges, entry nodes derived from topology
            └── Node  queue ─► drain loop ─► run hook ─► Output ─► Edge ─► Node

    Component  ─ identity, lifecycle hooks (ops), listeners
    Scribe     ─ factory + registry with settings-driven defaults

MODULE MAP (recommended reading order)
──────────────────────────────────────
1. workflow.py    ─ WorkflowKind, run_workflow, noop_task
2. ops.py         ─ hook operation contexts
3. component.py   ─ Component base
4. pipeline.py    ─ Pipeline
5. output.py      ─ per-run egress queue
6. edge.py        ─ Edge
7. node.py        ─ Node, NodeAPI, NodeState
8. graph.py       ─ Graph
9. scribe.py      ─ Scribe factory / registry
"""

from scribe.orchestration.component import Component
from scribe.orchestration.edge import Edge
from scribe.orchestration.graph import Graph
from scribe.orchestration.node import Node, NodeAPI, NodeState, QueuedContext
from scribe.orchestration.ops import (
    AddEdgeOp,
    AddGraphEdgeOp,
    AddNodeOp,
    CreateOp,
    DestroyOp,
    EdgeWriteOp,
    GraphRunOp,
    IncomingOp,
    InitOp,
    OutgoingOp,
    PipelineRunOp,
    PushOp,
    RemoveEdgeOp,
    RemoveGraphEdgeOp,
    RemoveNodeOp,
    RunForOp,
    RunOp,
)
from scribe.orchestration.output import Output
from scribe.orchestration.pipeline import Pipeline
from scribe.orchestration.scribe import Scribe
from scribe.orchestration.workflow import (
    Next,
    Tail,
    Task,
    Workflow,
    WorkflowKind,
    duplicate_workflow,
    is_graph,
    is_pipeline,
    is_task,
    noop_task,
    run_workflow,
    workflow_kind,
)

__all__ = [
    # Dispatcher
    "Next",
    "Tail",
    "Task",
    "Workflow",
    "WorkflowKind",
    "duplicate_workflow",
    "is_graph",
    "is_pipeline",
    "is_task",
    "noop_task",
    "run_workflow",
    "workflow_kind",
    # Components
    "Component",
    "Pipeline",
    "Edge",
    "Output",
    "Node",
    "NodeAPI",
    "NodeState",
    "QueuedContext",
    "Graph",
    "Scribe",
    # Hook contexts
    "AddEdgeOp",
    "AddGraphEdgeOp",
    "AddNodeOp",
    "CreateOp",
    "DestroyOp",
    "EdgeWriteOp",
    "GraphRunOp",
    "IncomingOp",
    "InitOp",
    "OutgoingOp",
    "PipelineRunOp",
    "PushOp",
    "RemoveEdgeOp",
    "RemoveGraphEdgeOp",
    "RemoveNodeOp",
    "RunForOp",
    "RunOp",
]
