"""
Core module - Graph model, scheduling and workflow execution.

This module provides the fundamental building blocks for Node Banana:
- Graph: Nodes, edges, groups and the graph store
- Node Types: Node kinds and their data payloads
- Connections / Inputs / Scheduler: Validation, input resolution, planning
- Execution: The run controller
- Workflow: Save/load of graph snapshots
"""

from node_banana.core.errors import (
    BlockedError,
    ConnectionRejected,
    CycleError,
    MissingInputError,
    MissingUpstreamError,
    NodeBusyError,
    RunInProgressError,
    UnknownNodeError,
    ValidationError,
    WorkflowError,
)

from node_banana.core.node_types import (
    HandleType,
    NodeData,
    NodeKind,
    NodeStatus,
    default_data,
)

from node_banana.core.graph import (
    Edge,
    EdgeData,
    GraphStore,
    Group,
    Node,
    Point2D,
)

from node_banana.core.connections import can_connect, check_connection
from node_banana.core.inputs import ResolvedInputs, resolve_inputs
from node_banana.core.scheduler import (
    ExecutionPlan,
    blocked,
    next_ready_batch,
    plan,
    regenerate_closure,
)

from node_banana.core.history import GenerationHistory, HistoryRecord
from node_banana.core.settings import EngineSettings, load_settings, save_settings

from node_banana.core.execution import (
    ExecutionContext,
    RunController,
    RunProgress,
    RunResult,
    RunState,
    RunStatus,
)

from node_banana.core.workflow import load_workflow, save_workflow


__all__ = [
    # errors.py
    "BlockedError",
    "ConnectionRejected",
    "CycleError",
    "MissingInputError",
    "MissingUpstreamError",
    "NodeBusyError",
    "RunInProgressError",
    "UnknownNodeError",
    "ValidationError",
    "WorkflowError",
    # node_types.py
    "HandleType",
    "NodeData",
    "NodeKind",
    "NodeStatus",
    "default_data",
    # graph.py
    "Edge",
    "EdgeData",
    "GraphStore",
    "Group",
    "Node",
    "Point2D",
    # connections.py / inputs.py / scheduler.py
    "can_connect",
    "check_connection",
    "ResolvedInputs",
    "resolve_inputs",
    "ExecutionPlan",
    "blocked",
    "next_ready_batch",
    "plan",
    "regenerate_closure",
    # history.py / settings.py
    "GenerationHistory",
    "HistoryRecord",
    "EngineSettings",
    "load_settings",
    "save_settings",
    # execution.py
    "ExecutionContext",
    "RunController",
    "RunProgress",
    "RunResult",
    "RunState",
    "RunStatus",
    # workflow.py
    "load_workflow",
    "save_workflow",
]
