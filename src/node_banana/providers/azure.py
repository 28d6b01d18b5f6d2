"""
Azure AI Foundry Provider - FLUX.2 Pro and GPT Image deployments.

Both models are text-to-image only; input images are ignored. Endpoints are
deployment specific and come from the provider config (``extra``) or the
``AZURE_FLUX_ENDPOINT`` / ``AZURE_GPT_IMAGE_ENDPOINT`` environment variables.
"""

from __future__ import annotations

import logging
from typing import Any

import aiohttp

from node_banana.core.images import to_data_url
from node_banana.providers.base import (
    GenerationError,
    GenerationResult,
    ImageProvider,
    ModelConfig,
)

logger = logging.getLogger(__name__)

# Aspect ratio -> nearest supported size
FLUX_SIZES = {
    "1:1": "1024x1024",
    "4:3": "1024x768",
    "3:4": "768x1024",
    "3:2": "1536x1024",
    "2:3": "1024x1536",
    "16:9": "1536x1024",
    "9:16": "1024x1536",
}

GPT_IMAGE_SIZES = {
    "1:1": "1024x1024",
    "3:2": "1536x1024",
    "2:3": "1024x1536",
    "16:9": "1536x1024",
    "9:16": "1024x1536",
}


class AzureProvider(ImageProvider):
    """Azure-hosted image generation deployments."""

    id = "azure"
    name = "Azure AI Foundry"

    async def _generate_image(
        self,
        images: list[str],
        prompt: str,
        config: ModelConfig,
    ) -> GenerationResult:
        if not prompt:
            raise GenerationError("A prompt is required")

        if config.model.id == "azure-gpt-image":
            endpoint = self.config.extra.get("gpt_image_endpoint")
            size = config.extra.get("gpt_image_size") or GPT_IMAGE_SIZES.get(
                config.aspect_ratio or "", "1024x1024"
            )
            body: dict[str, Any] = {
                "prompt": prompt,
                "size": size,
                "quality": config.extra.get("gpt_image_quality") or "medium",
                "output_compression": 100,
                "output_format": "png",
                "n": 1,
                "model": config.model.api_model,
            }
            headers = {
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self.api_key}",
            }
        else:
            endpoint = self.config.extra.get("flux_endpoint")
            size = config.extra.get("size") or FLUX_SIZES.get(
                config.aspect_ratio or "", "1024x1024"
            )
            body = {
                "prompt": prompt,
                "size": size,
                "n": 1,
                "model": config.model.api_model,
            }
            headers = {"Content-Type": "application/json", "api-key": self.api_key}

        if not endpoint:
            raise GenerationError(f"No Azure endpoint configured for {config.model.id}")

        logger.info("Calling Azure %s (%s)", config.model.api_model, size)
        data = await self._post(endpoint, body, headers)
        image = await self._extract_image(data)
        return GenerationResult(success=True, image=image, model_id=config.model.id)

    async def _extract_image(self, data: dict) -> str:
        items = data.get("data") or []
        if items and items[0].get("b64_json"):
            return to_data_url(items[0]["b64_json"])
        if items and items[0].get("url"):
            return await self._fetch_image(items[0]["url"])
        raise GenerationError("No image data in Azure response")

    async def _post(self, url: str, body: dict, headers: dict[str, str]) -> dict:
        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(url, json=body, headers=headers) as resp:
                    return await self._read_response(resp)
        except aiohttp.ClientError as e:
            raise GenerationError(f"Azure request failed: {e}") from e

    async def _fetch_image(self, url: str) -> str:
        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(url) as resp:
                    if resp.status >= 400:
                        raise GenerationError(f"Failed to download image ({resp.status})")
                    raw = await resp.read()
                    return to_data_url(raw, resp.content_type or "image/png")
        except aiohttp.ClientError as e:
            raise GenerationError(f"Azure image download failed: {e}") from e
