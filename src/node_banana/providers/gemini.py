"""
Google Gemini Provider - Nano Banana image models and Gemini text models.

Supports:
- Nano Banana (gemini-2.5-flash-image): Image generation and editing
- Nano Banana Pro (gemini-3-pro-image-preview): Adds 1K/2K/4K output and
  Google Search grounding
- Gemini 2.5 Flash / 3 Flash / 3 Pro: Multimodal text generation

API Reference: https://ai.google.dev/gemini-api/docs/image-generation
"""

from __future__ import annotations

import logging
from typing import Any

import aiohttp

from node_banana.core.images import split_data_url, to_data_url, to_png_data_url
from node_banana.providers.base import (
    GenerationError,
    GenerationResult,
    ImageProvider,
    ModelConfig,
    TextProvider,
    TextResult,
)

logger = logging.getLogger(__name__)

SUPPORTED_MIME_TYPES = {"image/png", "image/jpeg", "image/webp", "image/heic", "image/heif"}


class GeminiProvider(ImageProvider, TextProvider):
    """
    Google Gemini provider.

    Both image and text generation go through ``:generateContent``.
    """

    id = "gemini"
    name = "Google Gemini"
    base_url = "https://generativelanguage.googleapis.com/v1beta"

    async def _generate_image(
        self,
        images: list[str],
        prompt: str,
        config: ModelConfig,
    ) -> GenerationResult:
        """Generate/edit images via :generateContent."""
        if config.model.requires_reference_image and (not images or not prompt):
            raise GenerationError("At least one image and prompt are required")

        url = f"{self.base_url}/models/{config.model.api_model}:generateContent"

        parts: list[dict[str, Any]] = [{"text": prompt}]
        parts.extend(self._inline_part(image) for image in images)

        generation_config: dict[str, Any] = {"responseModalities": ["IMAGE", "TEXT"]}
        image_config: dict[str, Any] = {}
        if config.aspect_ratio:
            image_config["aspectRatio"] = config.aspect_ratio
        if config.resolution and config.supports("resolution"):
            image_config["imageSize"] = config.resolution
        if image_config:
            generation_config["imageConfig"] = image_config

        body: dict[str, Any] = {
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": generation_config,
        }
        if config.use_google_search and config.supports("use_google_search"):
            body["tools"] = [{"googleSearch": {}}]

        logger.info(
            "Calling %s with %d image(s), prompt length %d",
            config.model.api_model, len(images), len(prompt),
        )
        data = await self._post(url, body)
        return self._parse_image_response(data, config)

    async def _generate_text(
        self,
        prompt: str,
        images: list[str],
        config: ModelConfig,
    ) -> TextResult:
        """Generate text via :generateContent."""
        url = f"{self.base_url}/models/{config.model.api_model}:generateContent"

        parts: list[dict[str, Any]] = [self._inline_part(image) for image in images]
        parts.append({"text": prompt})

        body = {
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": {
                "temperature": config.temperature,
                "maxOutputTokens": config.max_tokens,
            },
        }
        data = await self._post(url, body)

        texts = [
            part["text"]
            for candidate in data.get("candidates", [])
            for part in candidate.get("content", {}).get("parts", [])
            if "text" in part
        ]
        if not texts:
            raise GenerationError("No text in Gemini response")
        return TextResult(success=True, text="".join(texts), model_id=config.model.id)

    def _parse_image_response(self, data: dict, config: ModelConfig) -> GenerationResult:
        """Take the first image part; keep any text part as commentary."""
        candidates = data.get("candidates") or []
        if not candidates:
            raise GenerationError("No response from AI model")

        image = None
        text = None
        for part in candidates[0].get("content", {}).get("parts", []):
            if "inlineData" in part and image is None:
                inline = part["inlineData"]
                image = to_data_url(inline["data"], inline.get("mimeType", "image/png"))
            elif "text" in part and text is None:
                text = part["text"]

        if image is None:
            reason = candidates[0].get("finishReason")
            raise GenerationError(
                f"No image in response{f' (finish reason: {reason})' if reason else ''}"
            )
        return GenerationResult(success=True, image=image, text=text, model_id=config.model.id)

    def _inline_part(self, image: str) -> dict[str, Any]:
        mime_type, _ = split_data_url(image)
        if mime_type not in SUPPORTED_MIME_TYPES:
            image = to_png_data_url(image)
        mime_type, data = split_data_url(image)
        return {"inlineData": {"mimeType": mime_type, "data": data}}

    async def _post(self, url: str, body: dict) -> dict:
        """Make POST request with JSON body and API key in query string."""
        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    url,
                    params={"key": self.api_key},
                    json=body,
                    headers={"Content-Type": "application/json"},
                ) as resp:
                    return await self._read_response(resp)
        except aiohttp.ClientError as e:
            raise GenerationError(f"Google API request failed: {e}") from e
