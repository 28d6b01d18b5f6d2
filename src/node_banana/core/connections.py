"""
Connection Validator - Decide whether a proposed edge is legal.

Rules are checked in order and the first failing rule wins:
1. Source and target handles must carry the same type
2. A node cannot connect to itself
3. The source must expose the handle and the target must accept it
4. The edge must not close a cycle over data edges

Nothing here mutates the graph, so the UI can call ``can_connect`` freely to
highlight valid drop targets.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from node_banana.core.errors import ConnectionRejected
from node_banana.core.node_types import HandleType

if TYPE_CHECKING:
    from node_banana.core.graph import GraphStore


def check_connection(
    store: GraphStore,
    source: str,
    source_handle: HandleType,
    target: str,
    target_handle: HandleType,
) -> None:
    """
    Validate a proposed edge.

    Raises:
        ConnectionRejected: With the reason of the first rule that failed.
    """
    if source_handle is not target_handle:
        raise ConnectionRejected(
            f"Type mismatch: {source_handle.value} cannot connect to {target_handle.value}"
        )

    if source == target:
        raise ConnectionRejected(f"Node {source} cannot connect to itself")

    source_node = store.get_node(source)
    target_node = store.get_node(target)
    if source_node is None or target_node is None:
        missing = source if source_node is None else target
        raise ConnectionRejected(f"Unknown node: {missing}")

    if source_handle.is_data:
        if source_handle not in source_node.data.source_handles:
            raise ConnectionRejected(
                f"{source_node.kind.value} has no {source_handle.value} output"
            )
        if target_handle not in target_node.data.target_handles:
            raise ConnectionRejected(
                f"{target_node.kind.value} has no {target_handle.value} input"
            )

        if _reaches(store, start=target, goal=source):
            raise ConnectionRejected(
                f"Connecting {source} to {target} would create a cycle"
            )


def can_connect(
    store: GraphStore,
    source: str,
    source_handle: HandleType | str,
    target: str,
    target_handle: HandleType | str,
) -> bool:
    """Check whether an edge could be created, without side effects."""
    try:
        check_connection(
            store, source, HandleType(source_handle), target, HandleType(target_handle)
        )
    except (ConnectionRejected, ValueError):
        return False
    return True


def _reaches(store: GraphStore, start: str, goal: str) -> bool:
    """Depth-first reachability over existing data edges."""
    adjacency: dict[str, list[str]] = {}
    for edge in store.edges:
        if edge.is_data:
            adjacency.setdefault(edge.source, []).append(edge.target)

    visited: set[str] = set()
    to_visit = [start]
    while to_visit:
        current = to_visit.pop()
        if current == goal:
            return True
        if current in visited:
            continue
        visited.add(current)
        to_visit.extend(adjacency.get(current, ()))
    return False
