"""
Nodes package - Executors for every executable node kind.

Each executor has the signature::

    async def executor(data, inputs, context) -> dict[str, Any]

and returns the payload fields to update. Executors never write to the graph
store themselves; the run controller applies the returned updates. Source
kinds (``imageInput``, ``prompt``) have no executor.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable

from node_banana.core.node_types import NodeKind
from node_banana.nodes.annotation import annotation_executor
from node_banana.nodes.generation import llm_generate_executor, nano_banana_executor
from node_banana.nodes.output import output_executor

Executor = Callable[..., Awaitable[dict[str, Any]]]

EXECUTORS: dict[NodeKind, Executor] = {
    NodeKind.ANNOTATION: annotation_executor,
    NodeKind.NANO_BANANA: nano_banana_executor,
    NodeKind.LLM_GENERATE: llm_generate_executor,
    NodeKind.OUTPUT: output_executor,
}


def get_executor(kind: NodeKind) -> Executor:
    """Get the executor for a node kind."""
    try:
        return EXECUTORS[kind]
    except KeyError:
        raise ValueError(f"{kind.value} nodes do not execute") from None


__all__ = [
    "EXECUTORS",
    "Executor",
    "get_executor",
    "annotation_executor",
    "nano_banana_executor",
    "llm_generate_executor",
    "output_executor",
]
