"""
Dependency Scheduler - Decide which nodes may run and when.

The dependency relation is built only from ``image`` and ``text`` edges;
reference edges are advisory and never gate execution. Planning uses Kahn's
algorithm, layered into batches of mutually independent nodes. During a run
the controller asks ``next_ready_batch`` for whatever became runnable after
each completion, and ``blocked`` explains every node that never ran.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Iterable, Mapping

from node_banana.core.errors import (
    CycleError,
    MissingInputError,
    MissingUpstreamError,
    ValidationError,
)
from node_banana.core.inputs import resolve_inputs
from node_banana.core.node_types import SOURCE_KINDS

if TYPE_CHECKING:
    from node_banana.core.graph import GraphStore

logger = logging.getLogger(__name__)

# Reasons reported for nodes that did not run
UPSTREAM_FAILED = "upstream failed"
MISSING_UPSTREAM_OUTPUT = "missing upstream output"
MISSING_INPUT = "missing input"
PAUSED = "paused"


@dataclass(frozen=True)
class ExecutionPlan:
    """
    Ordered ready batches for one run.

    Attributes:
        batches: Node-id sets with no dependency among their members
        dependencies: Direct data dependencies of every runnable node
        presatisfied: Nodes treated as already resolved (sources and
            locked nodes that hold output)
        locked: Members of locked groups, excluded from execution
        paused: Nodes held back by an edge with ``hasPause`` set
        revision: Store revision the plan was computed from
        full: False for single-node regenerate plans
    """
    batches: tuple[frozenset[str], ...]
    dependencies: Mapping[str, frozenset[str]]
    presatisfied: frozenset[str] = frozenset()
    locked: frozenset[str] = frozenset()
    paused: frozenset[str] = frozenset()
    revision: int = 0
    full: bool = True
    _order: tuple[str, ...] = field(default=(), repr=False)

    @property
    def nodes(self) -> frozenset[str]:
        """All nodes the plan may execute."""
        return frozenset(self.dependencies)

    @property
    def order(self) -> list[str]:
        """A total order consistent with edge direction."""
        return list(self._order)

    def is_stale(self, store: GraphStore) -> bool:
        return store.revision != self.revision


def build_dependencies(store: GraphStore) -> dict[str, set[str]]:
    """Map every node to the nodes it reads data from."""
    dependencies: dict[str, set[str]] = {node_id: set() for node_id in store.nodes}
    for edge in store.edges:
        if edge.is_data:
            dependencies[edge.target].add(edge.source)
    return dependencies


def topological_layers(dependencies: Mapping[str, set[str]]) -> list[list[str]]:
    """
    Group nodes into layers so that each node comes after its dependencies.

    Raises:
        CycleError: If some nodes can never be ordered.
    """
    remaining = {node_id: set(deps) for node_id, deps in dependencies.items()}
    dependents: dict[str, list[str]] = {node_id: [] for node_id in dependencies}
    for node_id, deps in dependencies.items():
        for dep in deps:
            dependents[dep].append(node_id)

    layers: list[list[str]] = []
    current = sorted(node_id for node_id, deps in remaining.items() if not deps)
    placed = 0
    while current:
        layers.append(current)
        placed += len(current)
        following: set[str] = set()
        for node_id in current:
            for dependent in dependents[node_id]:
                remaining[dependent].discard(node_id)
                if not remaining[dependent]:
                    following.add(dependent)
        current = sorted(following)

    if placed != len(dependencies):
        placed_ids = {node_id for layer in layers for node_id in layer}
        raise CycleError(set(dependencies) - placed_ids)
    return layers


def plan(store: GraphStore) -> ExecutionPlan:
    """
    Compute the execution plan for a full run.

    Raises:
        CycleError: If the data edges contain a directed cycle.
    """
    dependencies = build_dependencies(store)
    layers = topological_layers(dependencies)

    locked: set[str] = set()
    presatisfied: set[str] = set()
    runnable: set[str] = set()
    for node_id, node in store.nodes.items():
        if node.kind in SOURCE_KINDS:
            presatisfied.add(node_id)
        elif store.is_locked(node_id):
            locked.add(node_id)
            if node.data.has_output():
                presatisfied.add(node_id)
        else:
            runnable.add(node_id)

    paused = {
        edge.target for edge in store.edges
        if edge.is_data and edge.data.has_pause and edge.target in runnable
    }

    batches = []
    order = []
    for layer in layers:
        batch = [node_id for node_id in layer if node_id in runnable]
        if batch:
            batches.append(frozenset(batch))
            order.extend(batch)

    logger.debug(
        "Planned %d batches for %d nodes (%d locked, %d paused)",
        len(batches), len(runnable), len(locked), len(paused),
    )
    return ExecutionPlan(
        batches=tuple(batches),
        dependencies={node_id: frozenset(dependencies[node_id]) for node_id in runnable},
        presatisfied=frozenset(presatisfied),
        locked=frozenset(locked),
        paused=frozenset(paused),
        revision=store.revision,
        _order=tuple(order),
    )


def next_ready_batch(
    plan: ExecutionPlan,
    completed: Iterable[str],
    started: Iterable[str] = (),
) -> set[str]:
    """
    Nodes whose dependencies are all satisfied and that have not started.

    Args:
        plan: The current execution plan
        completed: Nodes that finished successfully
        started: Nodes already submitted, failed or skipped
    """
    completed = set(completed)
    started = set(started)
    satisfied = plan.presatisfied | completed
    return {
        node_id
        for node_id, deps in plan.dependencies.items()
        if node_id not in completed
        and node_id not in started
        and node_id not in plan.paused
        and deps <= satisfied
    }


def blocked(
    plan: ExecutionPlan,
    completed: Iterable[str],
    failed: Iterable[str],
) -> dict[str, str]:
    """
    Explain why each residual node could not run.

    ``failed`` holds nodes that errored or were already skipped; their
    dependents are reported as ``upstream failed``.
    """
    completed = set(completed)
    failed = set(failed)
    satisfied = plan.presatisfied | completed
    reasons: dict[str, str] = {}

    for node_id in plan.order:
        if node_id in completed or node_id in failed:
            continue
        if node_id in plan.paused:
            reasons[node_id] = PAUSED
            continue

        reason = MISSING_UPSTREAM_OUTPUT
        for dep in plan.dependencies[node_id]:
            if dep in satisfied:
                continue
            if dep in failed or reasons.get(dep) == UPSTREAM_FAILED:
                reason = UPSTREAM_FAILED
                break
            if reasons.get(dep) == PAUSED:
                reason = PAUSED
        reasons[node_id] = reason

    return reasons


def refresh_plan(store: GraphStore, previous: ExecutionPlan) -> ExecutionPlan:
    """
    Bring a plan up to date after the graph changed during a run.

    Full runs are re-planned over the current graph, so removed nodes drop
    out and new wiring is honoured. A regenerate plan keeps its single node
    while that node exists.
    """
    if not previous.full:
        return _restrict(previous, set(store.nodes), store.revision)
    try:
        return plan(store)
    except CycleError as e:
        logger.warning("Keeping previous plan, graph now has a cycle: %s", e)
        return _restrict(previous, set(store.nodes), store.revision)


def _restrict(previous: ExecutionPlan, existing: set[str], revision: int) -> ExecutionPlan:
    dependencies = {
        node_id: deps & existing
        for node_id, deps in previous.dependencies.items()
        if node_id in existing
    }
    return replace(
        previous,
        batches=tuple(
            batch & existing for batch in previous.batches if batch & existing
        ),
        dependencies=dependencies,
        presatisfied=previous.presatisfied & existing,
        locked=previous.locked & existing,
        paused=previous.paused & existing,
        revision=revision,
        _order=tuple(n for n in previous.order if n in existing),
    )


def regenerate_closure(store: GraphStore, node_id: str) -> ExecutionPlan:
    """
    Plan a single-node re-run.

    The node's direct dependencies must already hold output; nothing
    upstream is re-executed.

    Raises:
        ValidationError: If the node cannot run at all.
        MissingUpstreamError: If a direct dependency has no output.
        MissingInputError: If a required input is not connected.
    """
    node = store.require_node(node_id)
    if not node.data.executable:
        raise ValidationError(f"{node.kind.value} nodes do not execute")
    if store.is_locked(node_id):
        raise ValidationError(f"Node {node_id} is in a locked group")

    missing_upstream = sorted({
        edge.source
        for edge in store.incoming_edges(node_id)
        if edge.is_data
        and store.require_node(edge.source).data.output_for(edge.source_handle) is None
    })
    if missing_upstream:
        raise MissingUpstreamError(node_id, missing_upstream)

    missing = resolve_inputs(store, node_id).missing_for(node.data.requirements())
    if missing:
        raise MissingInputError(node_id, missing[0])

    return ExecutionPlan(
        batches=(frozenset({node_id}),),
        dependencies={node_id: frozenset()},
        revision=store.revision,
        full=False,
        _order=(node_id,),
    )
