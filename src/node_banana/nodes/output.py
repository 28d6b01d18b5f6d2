"""
Output Node - Terminal node that displays the final image.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from node_banana.core.execution import ExecutionContext
    from node_banana.core.inputs import ResolvedInputs
    from node_banana.core.node_types import OutputData


async def output_executor(
    data: OutputData,
    inputs: ResolvedInputs,
    context: ExecutionContext,
) -> dict[str, Any]:
    """Pass the first input image through for display."""
    return {"image": inputs.images[0] if inputs.images else None}
