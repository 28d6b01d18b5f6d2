"""
Generation Nodes - Nodes that call a provider to produce images or text.

Both executors look the node's model up in the provider registry, forward the
resolved inputs together with the node settings, and bound the call with the
configured timeout. A failed result is raised as ``GenerationError`` so the
run controller records it on the node.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from node_banana.providers.base import GenerationError, ModelConfig

if TYPE_CHECKING:
    from node_banana.core.execution import ExecutionContext
    from node_banana.core.inputs import ResolvedInputs
    from node_banana.core.node_types import LLMGenerateData, NanoBananaData

logger = logging.getLogger(__name__)

# Provider names stored on llmGenerate nodes -> registry provider ids
LLM_PROVIDER_IDS = {"google": "gemini", "openai": "openai"}


async def nano_banana_executor(
    data: NanoBananaData,
    inputs: ResolvedInputs,
    context: ExecutionContext,
) -> dict[str, Any]:
    """Generate an image from the input images and prompt."""
    card, provider = context.providers.image_provider_for(data.model)
    config = ModelConfig(
        model=card,
        aspect_ratio=data.aspect_ratio,
        resolution=data.resolution,
        use_google_search=data.use_google_search,
        extra={
            name: value
            for name, value in (
                ("size", data.size),
                ("gpt_image_size", data.gpt_image_size),
                ("gpt_image_quality", data.gpt_image_quality),
            )
            if value
        },
    )
    images = list(inputs.images)
    prompt = inputs.text or ""

    logger.debug("Generating with %s from %d image(s)", card.id, len(images))
    result = await context.bounded(
        provider.generate_image(images, prompt, config),
        context.settings.image_timeout,
    )
    if not result.success or not result.image:
        raise GenerationError(result.error or "Image generation failed")

    return {
        "input_images": images,
        "input_prompt": prompt,
        "output_image": result.image,
    }


async def llm_generate_executor(
    data: LLMGenerateData,
    inputs: ResolvedInputs,
    context: ExecutionContext,
) -> dict[str, Any]:
    """Generate text from the prompt and any input images."""
    card, provider = context.providers.text_provider_for(data.model)
    if data.provider and LLM_PROVIDER_IDS.get(data.provider, data.provider) != card.provider:
        raise GenerationError(
            f"Model {card.id} is served by {card.provider}, not {data.provider}"
        )
    config = ModelConfig(
        model=card,
        temperature=data.temperature,
        max_tokens=data.max_tokens,
    )
    images = list(inputs.images)
    prompt = inputs.text or ""

    result = await context.bounded(
        provider.generate_text(prompt, images, config),
        context.settings.text_timeout,
    )
    if not result.success or result.text is None:
        raise GenerationError(result.error or "LLM generation failed")

    return {
        "input_prompt": prompt,
        "input_images": images,
        "output_text": result.text,
    }
