"""
Scribe - async workflow engine.

Middleware-style pipelines and bounded-concurrency DAG execution sharing
one task-composition protocol.

- scribe.core: errors, logging, settings, events
- scribe.orchestration: dispatcher, Pipeline, Node, Edge, Graph, Scribe
"""

__version__ = "0.1.0"

from scribe.core import (  # noqa: F401
    AggregateError,
    ConfigError,
    LifecycleError,
    PreconditionError,
    ScribeError,
    ScribeSettings,
    configure_logging,
    get_logger,
    get_settings,
)
from scribe.orchestration import (  # noqa: F401
    Graph,
    Node,
    NodeState,
    Pipeline,
    Scribe,
    Task,
    WorkflowKind,
    run_workflow,
)
