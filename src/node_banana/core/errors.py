"""
Workflow Errors - Exception hierarchy for the workflow engine.

Validation errors are raised synchronously and never reach the scheduler.
Provider failures live in ``node_banana.providers.base`` and are recorded on
the failing node instead of unwinding the run.
"""

from __future__ import annotations


class WorkflowError(Exception):
    """Base exception for workflow engine errors."""
    pass


class ValidationError(WorkflowError):
    """A graph edit or run request was rejected."""
    pass


class UnknownNodeError(ValidationError):
    """A node or edge id does not exist in the store."""
    pass


class ConnectionRejected(ValidationError):
    """A proposed edge violates the connection rules."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class CycleError(ValidationError):
    """The data-dependency edges contain a directed cycle."""

    def __init__(self, node_ids: set[str] | frozenset[str]):
        self.node_ids = frozenset(node_ids)
        super().__init__(
            f"Workflow contains a cycle through: {', '.join(sorted(self.node_ids))}"
        )


class MissingInputError(ValidationError):
    """A node lacks an input it requires before the run may start."""

    def __init__(self, node_id: str, missing: str):
        self.node_id = node_id
        self.missing = missing
        super().__init__(f"Node {node_id} is missing its {missing} input")


class MissingUpstreamError(ValidationError):
    """A regenerate request found a direct dependency without output."""

    def __init__(self, node_id: str, upstream_ids: list[str]):
        self.node_id = node_id
        self.upstream_ids = upstream_ids
        super().__init__(
            f"Cannot regenerate {node_id}: missing upstream input from "
            f"{', '.join(upstream_ids)}"
        )


class NodeBusyError(ValidationError):
    """A structural edit targeted a node that is currently loading."""

    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Node {node_id} is running and cannot be changed")


class RunInProgressError(ValidationError):
    """A run was requested while another run is active."""
    pass


class BlockedError(WorkflowError):
    """A node could not run because a dependency never resolved."""

    def __init__(self, node_id: str, reason: str):
        self.node_id = node_id
        self.reason = reason
        super().__init__(f"Node {node_id} skipped: {reason}")
