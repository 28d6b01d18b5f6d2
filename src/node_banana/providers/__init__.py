"""
Generation Providers.

This package provides integrations with the services nodes call:
- Google Gemini: Nano Banana image models, Gemini text models
- OpenAI: GPT-4.1 text models
- Azure AI Foundry: FLUX.2 Pro and GPT Image deployments

Usage:
    from node_banana.providers import ProviderRegistry

    registry = ProviderRegistry.from_environment()
    card, provider = registry.image_provider_for("nano-banana-pro")
"""

from node_banana.providers.base import (
    AuthenticationError,
    GenerationError,
    GenerationResult,
    ImageProvider,
    ModelCard,
    ModelConfig,
    ModelKind,
    Provider,
    ProviderConfig,
    ProviderError,
    ProviderTimeoutError,
    RateLimitError,
    TextProvider,
    TextResult,
)
from node_banana.providers.registry import (
    BUILTIN_MODEL_CARDS,
    ProviderRegistry,
)
from node_banana.providers.azure import AzureProvider
from node_banana.providers.gemini import GeminiProvider
from node_banana.providers.openai import OpenAIProvider


__all__ = [
    # Base classes
    "Provider",
    "ImageProvider",
    "TextProvider",
    "ModelCard",
    "ModelConfig",
    "ModelKind",
    "ProviderConfig",
    "GenerationResult",
    "TextResult",
    # Exceptions
    "ProviderError",
    "AuthenticationError",
    "RateLimitError",
    "GenerationError",
    "ProviderTimeoutError",
    # Registry
    "ProviderRegistry",
    "BUILTIN_MODEL_CARDS",
    # Providers
    "GeminiProvider",
    "OpenAIProvider",
    "AzureProvider",
]
