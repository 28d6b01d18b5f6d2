"""
Annotation Node - Pass an input image through the annotation layer.

Drawing happens outside the engine; the executor only keeps the node's
source image in sync with its upstream and forwards it when nothing has been
drawn yet.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from node_banana.core.execution import ExecutionContext
    from node_banana.core.inputs import ResolvedInputs
    from node_banana.core.node_types import AnnotationData


async def annotation_executor(
    data: AnnotationData,
    inputs: ResolvedInputs,
    context: ExecutionContext,
) -> dict[str, Any]:
    """Take the first input image as the source; keep a rendered drawing."""
    source_image = inputs.images[0] if inputs.images else None
    updates: dict[str, Any] = {"source_image": source_image}
    if not (data.annotations and data.output_image):
        updates["output_image"] = source_image
    return updates
