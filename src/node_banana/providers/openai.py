"""
OpenAI Provider - GPT-4.1 text models.

API Reference: https://platform.openai.com/docs/api-reference/chat
"""

from __future__ import annotations

from typing import Any

import aiohttp

from node_banana.providers.base import (
    GenerationError,
    ModelConfig,
    TextProvider,
    TextResult,
)


class OpenAIProvider(TextProvider):
    """OpenAI chat completions provider for LLM nodes."""

    id = "openai"
    name = "OpenAI"
    base_url = "https://api.openai.com/v1"

    async def _generate_text(
        self,
        prompt: str,
        images: list[str],
        config: ModelConfig,
    ) -> TextResult:
        url = f"{self.base_url}/chat/completions"

        if images:
            content: Any = [{"type": "text", "text": prompt}]
            content.extend(
                {"type": "image_url", "image_url": {"url": image}} for image in images
            )
        else:
            content = prompt

        body = {
            "model": config.model.api_model,
            "messages": [{"role": "user", "content": content}],
            "temperature": config.temperature,
            "max_tokens": config.max_tokens,
        }
        data = await self._post(url, body)

        choices = data.get("choices") or []
        text = choices[0].get("message", {}).get("content") if choices else None
        if not text:
            raise GenerationError("No text in OpenAI response")
        return TextResult(success=True, text=text, model_id=config.model.id)

    async def _post(self, url: str, body: dict) -> dict:
        """Make POST request with JSON body."""
        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(url, json=body, headers=self.get_headers()) as resp:
                    return await self._read_response(resp)
        except aiohttp.ClientError as e:
            raise GenerationError(f"OpenAI request failed: {e}") from e
