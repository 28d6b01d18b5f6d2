"""
Graph Store - Canonical node, edge and group collections.

This module defines the fundamental building blocks:
- Node: A single processing unit with a typed data payload
- Edge: A typed link from a node's source handle to another node's target handle
- Group: A set of nodes that can be locked out of execution
- GraphStore: The complete graph and its mutation API

The store enforces the structural invariants (unique ids, existing endpoints,
no self-loops or cycles, one group per node) and performs no I/O.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

from node_banana.core.errors import NodeBusyError, UnknownNodeError, ValidationError
from node_banana.core.node_types import (
    HandleType,
    NodeData,
    NodeKind,
    NodeStatus,
    data_from_dict,
    default_data,
)


@dataclass
class Point2D:
    """2D point for node positioning on the canvas."""
    x: float = 0.0
    y: float = 0.0


@dataclass
class EdgeData:
    """Presentation and flow-control data attached to an edge."""
    offset_x: float = 0.0
    offset_y: float = 0.0
    has_pause: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "offsetX": self.offset_x,
            "offsetY": self.offset_y,
            "hasPause": self.has_pause,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> EdgeData:
        data = data or {}
        return cls(
            offset_x=data.get("offsetX", 0.0),
            offset_y=data.get("offsetY", 0.0),
            has_pause=data.get("hasPause", False),
        )


@dataclass
class Node:
    """
    A single node in the workflow graph.

    The payload in ``data`` is mutated in place by the run controller;
    a node object is never replaced while it lives in the store.
    """
    id: str
    kind: NodeKind
    data: NodeData
    position: Point2D = field(default_factory=Point2D)
    group_id: str | None = None

    @property
    def status(self) -> NodeStatus | None:
        """Execution status, or None for pure data nodes."""
        return getattr(self.data, "status", None)

    @property
    def is_loading(self) -> bool:
        return self.status is NodeStatus.LOADING

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "type": self.kind.value,
            "position": {"x": self.position.x, "y": self.position.y},
            "data": self.data.to_dict(),
        }
        if self.group_id is not None:
            result["groupId"] = self.group_id
        return result


@dataclass
class Edge:
    """
    A directed, type-homogeneous link between two nodes.

    ``seq`` records creation order; it decides fan-in ordering for image
    handles and the active contributor for text handles.
    """
    id: str
    source: str
    source_handle: HandleType
    target: str
    target_handle: HandleType
    data: EdgeData = field(default_factory=EdgeData)
    seq: int = 0

    @property
    def is_data(self) -> bool:
        return self.source_handle.is_data

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "source": self.source,
            "sourceHandle": self.source_handle.value,
            "target": self.target,
            "targetHandle": self.target_handle.value,
            "data": self.data.to_dict(),
        }


@dataclass
class Group:
    """A user-designated cluster of nodes."""
    id: str
    member_node_ids: set[str] = field(default_factory=set)
    locked: bool = False
    name: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "memberNodeIds": sorted(self.member_node_ids),
            "locked": self.locked,
        }


class GraphStore:
    """
    The complete workflow graph.

    Every mutation bumps ``revision`` so derived structures such as an
    execution plan can tell when they are stale.
    """

    def __init__(self, name: str = "Untitled"):
        self.name: str = name
        self._nodes: dict[str, Node] = {}
        self._edges: list[Edge] = []
        self._groups: dict[str, Group] = {}
        self._edge_seq = itertools.count(1)
        self._kind_counters: dict[NodeKind, int] = {}
        self.revision: int = 0

    def _touch(self) -> None:
        self.revision += 1

    # --- Node operations ---

    @property
    def nodes(self) -> dict[str, Node]:
        """Get all nodes (read-only view)."""
        return self._nodes.copy()

    def get_node(self, node_id: str) -> Node | None:
        return self._nodes.get(node_id)

    def require_node(self, node_id: str) -> Node:
        node = self._nodes.get(node_id)
        if node is None:
            raise UnknownNodeError(f"Unknown node: {node_id}")
        return node

    def _next_node_id(self, kind: NodeKind) -> str:
        counter = self._kind_counters.get(kind, 0)
        while True:
            counter += 1
            candidate = f"{kind.value}-{counter}"
            if candidate not in self._nodes:
                self._kind_counters[kind] = counter
                return candidate

    def add_node(
        self,
        kind: NodeKind,
        data: NodeData | None = None,
        position: Point2D | None = None,
        node_id: str | None = None,
    ) -> Node:
        """
        Add a node to the graph.

        Ids default to ``<type>-<n>``; an explicit id must not be in use.
        """
        if data is not None and data.kind is not kind:
            raise ValidationError(
                f"Payload for {data.kind.value} does not match node type {kind.value}"
            )
        if node_id is None:
            node_id = self._next_node_id(kind)
        elif node_id in self._nodes:
            raise ValidationError(f"Node id already in use: {node_id}")

        node = Node(
            id=node_id,
            kind=kind,
            data=data if data is not None else default_data(kind),
            position=position or Point2D(),
        )
        self._nodes[node_id] = node
        self._touch()
        return node

    def update_node_data(self, node_id: str, **changes: Any) -> Node:
        """
        Update payload fields of a node in place.

        Field names are the payload's attribute names (``output_image``,
        ``prompt`` ...). Unknown names are rejected.
        """
        node = self.require_node(node_id)
        for name, value in changes.items():
            if name == "extra" or not hasattr(node.data, name):
                raise ValidationError(
                    f"{node.kind.value} has no data field named {name!r}"
                )
            setattr(node.data, name, value)
        self._touch()
        return node

    def move_node(self, node_id: str, position: Point2D) -> None:
        self.require_node(node_id).position = position

    def rename_node(self, node_id: str, new_id: str) -> Node:
        """Change a node id, rewriting its edges and group membership."""
        node = self.require_node(node_id)
        self._guard_structural(node_id)
        if new_id == node_id:
            return node
        if new_id in self._nodes:
            raise ValidationError(f"Node id already in use: {new_id}")

        del self._nodes[node_id]
        node.id = new_id
        self._nodes[new_id] = node
        for edge in self._edges:
            if edge.source == node_id:
                edge.source = new_id
            if edge.target == node_id:
                edge.target = new_id
        if node.group_id is not None:
            members = self._groups[node.group_id].member_node_ids
            members.discard(node_id)
            members.add(new_id)
        self._touch()
        return node

    def remove_node(self, node_id: str) -> Node:
        """
        Remove a node and all its connections.

        Returns the removed node.
        """
        node = self.require_node(node_id)
        self._guard_structural(node_id)
        for edge in self.outgoing_edges(node_id):
            self._guard_structural(edge.target)
        del self._nodes[node_id]
        self._edges = [
            edge for edge in self._edges
            if edge.source != node_id and edge.target != node_id
        ]
        if node.group_id is not None:
            group = self._groups.get(node.group_id)
            if group:
                group.member_node_ids.discard(node_id)
            node.group_id = None
        self._touch()
        return node

    def _guard_structural(self, node_id: str) -> None:
        node = self._nodes.get(node_id)
        if node is not None and node.is_loading:
            raise NodeBusyError(node_id)

    # --- Edge operations ---

    @property
    def edges(self) -> list[Edge]:
        """Get all edges in creation order (read-only copy)."""
        return self._edges.copy()

    def get_edge(self, edge_id: str) -> Edge | None:
        for edge in self._edges:
            if edge.id == edge_id:
                return edge
        return None

    def connect(
        self,
        source: str,
        source_handle: HandleType | str,
        target: str,
        target_handle: HandleType | str,
        data: EdgeData | None = None,
        edge_id: str | None = None,
    ) -> Edge:
        """
        Create an edge after validating it.

        Raises:
            ConnectionRejected: If the edge breaks a connection rule.
            NodeBusyError: If the target node is currently running.
        """
        from node_banana.core.connections import check_connection

        source_handle = HandleType(source_handle)
        target_handle = HandleType(target_handle)
        check_connection(self, source, source_handle, target, target_handle)
        self._guard_structural(target)

        if edge_id is None:
            edge_id = f"edge-{source}-{source_handle.value}-{target}-{target_handle.value}"
            if self.get_edge(edge_id) is not None:
                edge_id = f"{edge_id}-{uuid4().hex[:8]}"
        elif self.get_edge(edge_id) is not None:
            raise ValidationError(f"Edge id already in use: {edge_id}")

        edge = Edge(
            id=edge_id,
            source=source,
            source_handle=source_handle,
            target=target,
            target_handle=target_handle,
            data=data or EdgeData(),
            seq=next(self._edge_seq),
        )
        self._edges.append(edge)
        self._touch()
        return edge

    def disconnect(self, edge_id: str) -> Edge:
        """Remove an edge by id."""
        edge = self.get_edge(edge_id)
        if edge is None:
            raise UnknownNodeError(f"Unknown edge: {edge_id}")
        self._guard_structural(edge.target)
        self._edges.remove(edge)
        self._touch()
        return edge

    def update_edge_data(self, edge_id: str, **changes: Any) -> Edge:
        edge = self.get_edge(edge_id)
        if edge is None:
            raise UnknownNodeError(f"Unknown edge: {edge_id}")
        for name, value in changes.items():
            if not hasattr(edge.data, name):
                raise ValidationError(f"Edge has no data field named {name!r}")
            setattr(edge.data, name, value)
        self._touch()
        return edge

    def incoming_edges(
        self, node_id: str, handle: HandleType | None = None
    ) -> list[Edge]:
        """Edges targeting a node, in creation order."""
        return [
            edge for edge in self._edges
            if edge.target == node_id
            and (handle is None or edge.target_handle is handle)
        ]

    def outgoing_edges(self, node_id: str) -> list[Edge]:
        return [edge for edge in self._edges if edge.source == node_id]

    # --- Graph analysis ---

    def get_upstream_nodes(self, node_id: str) -> set[str]:
        """Get all nodes this node depends on through data edges."""
        upstream: set[str] = set()
        to_visit = [node_id]
        while to_visit:
            current = to_visit.pop()
            for edge in self._edges:
                if edge.target == current and edge.is_data and edge.source not in upstream:
                    upstream.add(edge.source)
                    to_visit.append(edge.source)
        return upstream

    def get_downstream_nodes(self, node_id: str) -> set[str]:
        """Get all nodes that depend on this node through data edges."""
        downstream: set[str] = set()
        to_visit = [node_id]
        while to_visit:
            current = to_visit.pop()
            for edge in self._edges:
                if edge.source == current and edge.is_data and edge.target not in downstream:
                    downstream.add(edge.target)
                    to_visit.append(edge.target)
        return downstream

    def nodes_of_kind(self, kind: NodeKind) -> list[Node]:
        return [node for node in self._nodes.values() if node.kind is kind]

    # --- Group operations ---

    @property
    def groups(self) -> dict[str, Group]:
        """Get all groups (read-only copy)."""
        return self._groups.copy()

    def get_group(self, group_id: str) -> Group | None:
        return self._groups.get(group_id)

    def add_group(
        self,
        node_ids: list[str] | set[str] | None = None,
        locked: bool = False,
        name: str = "",
        group_id: str | None = None,
    ) -> Group:
        """Create a group. A node may only belong to one group."""
        group_id = group_id or f"group-{uuid4().hex[:8]}"
        if group_id in self._groups:
            raise ValidationError(f"Group id already in use: {group_id}")
        group = Group(id=group_id, locked=locked, name=name)
        self._groups[group_id] = group
        for node_id in node_ids or ():
            self.add_to_group(group_id, node_id)
        self._touch()
        return group

    def add_to_group(self, group_id: str, node_id: str) -> None:
        group = self._groups.get(group_id)
        if group is None:
            raise UnknownNodeError(f"Unknown group: {group_id}")
        node = self.require_node(node_id)
        if node.group_id is not None and node.group_id != group_id:
            raise ValidationError(
                f"Node {node_id} already belongs to group {node.group_id}"
            )
        node.group_id = group_id
        group.member_node_ids.add(node_id)
        self._touch()

    def remove_from_group(self, node_id: str) -> None:
        node = self.require_node(node_id)
        if node.group_id is None:
            return
        group = self._groups.get(node.group_id)
        if group:
            group.member_node_ids.discard(node_id)
        node.group_id = None
        self._touch()

    def set_group_locked(self, group_id: str, locked: bool) -> Group:
        group = self._groups.get(group_id)
        if group is None:
            raise UnknownNodeError(f"Unknown group: {group_id}")
        group.locked = locked
        self._touch()
        return group

    def remove_group(self, group_id: str) -> Group | None:
        """Remove a group (does not remove the nodes)."""
        group = self._groups.pop(group_id, None)
        if group:
            for node_id in group.member_node_ids:
                node = self._nodes.get(node_id)
                if node:
                    node.group_id = None
            self._touch()
        return group

    def is_locked(self, node_id: str) -> bool:
        """Check whether a node sits in a locked group."""
        node = self._nodes.get(node_id)
        if node is None or node.group_id is None:
            return False
        group = self._groups.get(node.group_id)
        return bool(group and group.locked)

    # --- Serialization ---

    def to_dict(self) -> dict[str, Any]:
        """Serializable snapshot of nodes, edges and groups."""
        return {
            "version": 1,
            "name": self.name,
            "nodes": [node.to_dict() for node in self._nodes.values()],
            "edges": [edge.to_dict() for edge in self._edges],
            "groups": [group.to_dict() for group in self._groups.values()],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GraphStore:
        """
        Rebuild a store from a snapshot.

        Edges are re-validated on the way in; the list order of the snapshot
        becomes the edge creation order.
        """
        store = cls(name=data.get("name", "Untitled"))

        for node_data in data.get("nodes", []):
            kind = NodeKind(node_data["type"])
            position = node_data.get("position") or {}
            store.add_node(
                kind,
                data=data_from_dict(kind, node_data.get("data") or {}),
                position=Point2D(position.get("x", 0.0), position.get("y", 0.0)),
                node_id=node_data["id"],
            )

        for edge_data in data.get("edges", []):
            store.connect(
                edge_data["source"],
                edge_data.get("sourceHandle") or "image",
                edge_data["target"],
                edge_data.get("targetHandle") or "image",
                data=EdgeData.from_dict(edge_data.get("data")),
                edge_id=edge_data.get("id"),
            )

        for group_data in data.get("groups", []):
            store.add_group(
                node_ids=group_data.get("memberNodeIds", []),
                locked=group_data.get("locked", False),
                name=group_data.get("name", ""),
                group_id=group_data["id"],
            )

        return store

    # --- Utility ---

    def clear(self) -> None:
        """Remove all nodes, edges and groups."""
        self._nodes.clear()
        self._edges.clear()
        self._groups.clear()
        self._touch()

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._nodes
