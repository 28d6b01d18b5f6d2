"""
Input Resolver - Materialize the inputs of a node from its upstream outputs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from node_banana.core.node_types import HandleType, InputRequirements

if TYPE_CHECKING:
    from node_banana.core.graph import GraphStore


@dataclass
class ResolvedInputs:
    """Images in edge-creation order and at most one text value."""
    images: list[str] = field(default_factory=list)
    text: str | None = None

    def missing_for(self, requirements: InputRequirements) -> list[str]:
        """Names of required inputs that did not resolve."""
        missing = []
        if requirements.needs_text and self.text is None:
            missing.append("text")
        if requirements.needs_image and not self.images:
            missing.append("image")
        return missing


def resolve_inputs(store: GraphStore, node_id: str) -> ResolvedInputs:
    """
    Collect the inputs currently available to a node.

    Every incoming image edge contributes its source's image, skipping
    sources that have not produced one yet. Of the incoming text edges only
    the most recently connected one is read.
    """
    store.require_node(node_id)
    resolved = ResolvedInputs()
    text_edge = None

    for edge in sorted(store.incoming_edges(node_id), key=lambda e: e.seq):
        source = store.get_node(edge.source)
        if source is None:
            continue
        if edge.target_handle is HandleType.IMAGE:
            image = source.data.produces_image()
            if image is not None:
                resolved.images.append(image)
        elif edge.target_handle is HandleType.TEXT:
            text_edge = edge

    if text_edge is not None:
        resolved.text = store.require_node(text_edge.source).data.produces_text()

    return resolved
