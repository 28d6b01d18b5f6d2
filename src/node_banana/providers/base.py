"""
Provider Base - Abstract clients and model card definitions.

This module provides the foundation for all generation providers:
- ModelCard: What a model is and what it needs
- ModelConfig: Per-node settings passed with each call
- ImageProvider / TextProvider: The interface the engine calls
- GenerationResult / TextResult: Uniform ``{success, value | error}`` results

Concrete providers raise ``ProviderError`` subclasses from their private
``_generate_*`` methods; the public methods fold those into a failed result
so the engine treats every backing service the same way.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ModelKind(Enum):
    """What a model produces."""
    IMAGE = "image"
    TEXT = "text"


@dataclass
class ModelCard:
    """
    Specification of a model exposed to nodes.

    Attributes:
        id: Identifier stored on nodes (e.g. "nano-banana-pro")
        provider: Provider ID this model belongs to (e.g. "gemini")
        name: Human-readable display name
        kind: Whether the model generates images or text
        api_model: Identifier sent to the provider API
        requires_reference_image: Refuse to run without an input image
        max_reference_images: Max input images the API accepts (0 = no limit)
        params: Names of node settings the model understands
    """
    id: str
    provider: str
    name: str
    kind: ModelKind = ModelKind.IMAGE
    api_model: str = ""
    description: str = ""
    requires_reference_image: bool = False
    max_reference_images: int = 0
    params: set[str] = field(default_factory=set)

    def __post_init__(self) -> None:
        if not self.api_model:
            self.api_model = self.id


@dataclass
class ModelConfig:
    """Settings a node passes along with its inputs."""
    model: ModelCard
    aspect_ratio: str | None = None
    resolution: str | None = None
    use_google_search: bool = False
    temperature: float = 0.7
    max_tokens: int = 1024
    extra: dict[str, Any] = field(default_factory=dict)

    def supports(self, param: str) -> bool:
        return param in self.model.params


@dataclass
class GenerationResult:
    """Result from image generation."""
    success: bool
    image: str | None = None
    error: str | None = None
    model_id: str = ""
    text: str | None = None  # Some image models reply with text too

    @classmethod
    def failed(cls, error: str, model_id: str = "") -> GenerationResult:
        return cls(success=False, error=error, model_id=model_id)


@dataclass
class TextResult:
    """Result from text generation."""
    success: bool
    text: str | None = None
    error: str | None = None
    model_id: str = ""

    @classmethod
    def failed(cls, error: str, model_id: str = "") -> TextResult:
        return cls(success=False, error=error, model_id=model_id)


@dataclass
class ProviderConfig:
    """Configuration for a provider."""
    api_key: str = ""
    enabled: bool = True
    base_url: str | None = None  # Override default URL
    extra: dict[str, Any] = field(default_factory=dict)


class ProviderError(Exception):
    """Base exception for provider errors."""
    pass


class AuthenticationError(ProviderError):
    """API key invalid or missing."""
    pass


class RateLimitError(ProviderError):
    """Rate limit exceeded."""
    retry_after: float | None = None


class GenerationError(ProviderError):
    """Error during generation."""
    pass


class ProviderTimeoutError(ProviderError):
    """The provider did not answer in time."""
    pass


class Provider(ABC):
    """
    Common base for provider clients.

    Each provider handles communication with a specific API.
    """

    # Provider identification
    id: str = ""
    name: str = ""
    base_url: str = ""

    def __init__(self, config: ProviderConfig | None = None):
        self.config = config or ProviderConfig()
        if self.config.base_url:
            self.base_url = self.config.base_url

    @property
    def api_key(self) -> str:
        return self.config.api_key

    @property
    def is_configured(self) -> bool:
        """Check if provider has necessary configuration."""
        return bool(self.config.api_key) and self.config.enabled

    def get_headers(self) -> dict[str, str]:
        """Get default headers for API requests."""
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def _check_error(self, status: int, data: dict) -> None:
        """Map HTTP failures onto provider errors."""
        if status in (401, 403):
            raise AuthenticationError(f"Invalid {self.name} API key")
        elif status == 429:
            error = RateLimitError(f"{self.name} rate limit exceeded")
            error.retry_after = 60
            raise error
        elif status >= 400:
            error_info = data.get("error", {}) if isinstance(data, dict) else {}
            if isinstance(error_info, dict):
                error_msg = error_info.get("message", f"HTTP {status}")
            else:
                error_msg = str(error_info)
            raise GenerationError(f"{self.name} error: {error_msg}")

    async def _read_response(self, resp: Any) -> dict:
        """
        Decode a JSON response and map HTTP failures.

        Gateways answer some failures with HTML pages; those are mapped by
        status code like any other error body.
        """
        try:
            data = await resp.json(content_type=None)
        except ValueError:
            data = None
        if not isinstance(data, dict):
            self._check_error(resp.status, {})
            raise GenerationError(
                f"{self.name} returned an unreadable response (HTTP {resp.status})"
            )
        self._check_error(resp.status, data)
        return data


class ImageProvider(Provider):
    """Provider that turns images and a prompt into a new image."""

    async def generate_image(
        self,
        images: list[str],
        prompt: str,
        config: ModelConfig,
    ) -> GenerationResult:
        """
        Generate an image.

        Args:
            images: Input images as data URLs, in edge order
            prompt: Text prompt
            config: Model and node settings

        Returns:
            GenerationResult; ``success`` is False when the provider failed
        """
        if not self.is_configured:
            return GenerationResult.failed(
                f"{self.name} is not configured (missing API key)", config.model.id
            )
        try:
            return await self._generate_image(images, prompt, config)
        except ProviderError as e:
            return GenerationResult.failed(str(e), config.model.id)

    @abstractmethod
    async def _generate_image(
        self,
        images: list[str],
        prompt: str,
        config: ModelConfig,
    ) -> GenerationResult:
        """
        Call the backing API.

        Raises:
            AuthenticationError: Invalid API key
            RateLimitError: Rate limit exceeded
            GenerationError: Generation failed
        """
        ...


class TextProvider(Provider):
    """Provider that answers a prompt (and optional images) with text."""

    async def generate_text(
        self,
        prompt: str,
        images: list[str] | None,
        config: ModelConfig,
    ) -> TextResult:
        """
        Generate text.

        Returns:
            TextResult; ``success`` is False when the provider failed
        """
        if not self.is_configured:
            return TextResult.failed(
                f"{self.name} is not configured (missing API key)", config.model.id
            )
        try:
            return await self._generate_text(prompt, images or [], config)
        except ProviderError as e:
            return TextResult.failed(str(e), config.model.id)

    @abstractmethod
    async def _generate_text(
        self,
        prompt: str,
        images: list[str],
        config: ModelConfig,
    ) -> TextResult:
        ...
