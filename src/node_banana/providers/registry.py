"""
Provider Registry - Providers, model cards and provider configuration.

This module manages:
- Registration of provider implementations
- Built-in model cards for the models nodes can select
- Provider configuration loading/saving (JSON file plus environment keys)

A registry is an ordinary object handed to the run controller, so tests can
install stub providers without touching any global state.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Mapping

from node_banana.providers.azure import AzureProvider
from node_banana.providers.base import (
    GenerationError,
    ImageProvider,
    ModelCard,
    ModelKind,
    Provider,
    ProviderConfig,
    TextProvider,
)
from node_banana.providers.gemini import GeminiProvider
from node_banana.providers.openai import OpenAIProvider

logger = logging.getLogger(__name__)


# ============================================================================
# Built-in Model Cards
# ============================================================================

BUILTIN_MODEL_CARDS: dict[str, ModelCard] = {
    # -------------------------------------------------------------------------
    # Image models
    # -------------------------------------------------------------------------
    "nano-banana": ModelCard(
        id="nano-banana",
        provider="gemini",
        name="Nano Banana",
        kind=ModelKind.IMAGE,
        api_model="gemini-2.5-flash-image",
        description="Fast Gemini image generation and editing",
        requires_reference_image=True,
        params={"aspect_ratio"},
    ),
    "nano-banana-pro": ModelCard(
        id="nano-banana-pro",
        provider="gemini",
        name="Nano Banana Pro",
        kind=ModelKind.IMAGE,
        api_model="gemini-3-pro-image-preview",
        description="High quality Gemini image model with 1K/2K/4K output",
        requires_reference_image=True,
        params={"aspect_ratio", "resolution", "use_google_search"},
    ),
    "azure-flux-pro": ModelCard(
        id="azure-flux-pro",
        provider="azure",
        name="Azure FLUX.2 Pro",
        kind=ModelKind.IMAGE,
        api_model="FLUX.2-pro",
        params={"aspect_ratio", "size"},
    ),
    "azure-gpt-image": ModelCard(
        id="azure-gpt-image",
        provider="azure",
        name="Azure GPT Image",
        kind=ModelKind.IMAGE,
        api_model="gpt-image-1.5",
        params={"aspect_ratio", "gpt_image_size", "gpt_image_quality"},
    ),
    # -------------------------------------------------------------------------
    # Text models
    # -------------------------------------------------------------------------
    "gemini-2.5-flash": ModelCard(
        id="gemini-2.5-flash",
        provider="gemini",
        name="Gemini 2.5 Flash",
        kind=ModelKind.TEXT,
    ),
    "gemini-3-flash-preview": ModelCard(
        id="gemini-3-flash-preview",
        provider="gemini",
        name="Gemini 3 Flash",
        kind=ModelKind.TEXT,
    ),
    "gemini-3-pro-preview": ModelCard(
        id="gemini-3-pro-preview",
        provider="gemini",
        name="Gemini 3 Pro",
        kind=ModelKind.TEXT,
    ),
    "gpt-4.1-mini": ModelCard(
        id="gpt-4.1-mini",
        provider="openai",
        name="GPT-4.1 Mini",
        kind=ModelKind.TEXT,
    ),
    "gpt-4.1-nano": ModelCard(
        id="gpt-4.1-nano",
        provider="openai",
        name="GPT-4.1 Nano",
        kind=ModelKind.TEXT,
    ),
}

PROVIDER_CLASSES: dict[str, type[Provider]] = {
    GeminiProvider.id: GeminiProvider,
    OpenAIProvider.id: OpenAIProvider,
    AzureProvider.id: AzureProvider,
}

# Environment variables read by ``load_environment``
ENV_API_KEYS = {
    "gemini": "GEMINI_API_KEY",
    "openai": "OPENAI_API_KEY",
    "azure": "AZURE_API_KEY",
}
ENV_EXTRA = {
    "azure": {
        "flux_endpoint": "AZURE_FLUX_ENDPOINT",
        "gpt_image_endpoint": "AZURE_GPT_IMAGE_ENDPOINT",
    },
}

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "node_banana" / "providers.json"


class ProviderRegistry:
    """
    Registry for providers and model cards.

    Provider instances are created lazily from their configuration and
    cached until the configuration changes.
    """

    def __init__(self) -> None:
        self._provider_classes: dict[str, type[Provider]] = dict(PROVIDER_CLASSES)
        self._configs: dict[str, ProviderConfig] = {}
        self._provider_instances: dict[str, Provider] = {}
        self._model_cards: dict[str, ModelCard] = dict(BUILTIN_MODEL_CARDS)
        self._config_path: Path | None = None

    @classmethod
    def from_environment(
        cls,
        config_path: Path | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> ProviderRegistry:
        """Build a registry from the config file, then environment keys."""
        registry = cls()
        registry.load_config(config_path)
        registry.load_environment(environ)
        return registry

    # -------------------------------------------------------------------------
    # Providers
    # -------------------------------------------------------------------------

    def register_provider(self, provider_class: type[Provider]) -> None:
        """Register a provider class."""
        self._provider_classes[provider_class.id] = provider_class
        self._provider_instances.pop(provider_class.id, None)

    def set_provider(self, provider_id: str, provider: Provider) -> None:
        """Install a ready-made provider instance."""
        self._provider_instances[provider_id] = provider

    def get_provider(self, provider_id: str) -> Provider | None:
        """Get (or create) the provider instance for an ID."""
        if provider_id in self._provider_instances:
            return self._provider_instances[provider_id]

        provider_class = self._provider_classes.get(provider_id)
        if provider_class is None:
            return None
        provider = provider_class(self.get_config(provider_id))
        self._provider_instances[provider_id] = provider
        return provider

    def list_providers(self) -> list[str]:
        return sorted(set(self._provider_classes) | set(self._provider_instances))

    def list_configured_providers(self) -> list[str]:
        """Providers that have the configuration they need."""
        return [
            pid for pid in self.list_providers()
            if (provider := self.get_provider(pid)) is not None and provider.is_configured
        ]

    def image_provider_for(self, model_id: str) -> tuple[ModelCard, ImageProvider]:
        """
        Resolve the model card and image provider for a model ID.

        Raises:
            GenerationError: If the model or its provider is unusable.
        """
        card = self._require_model(model_id, ModelKind.IMAGE)
        provider = self.get_provider(card.provider)
        if not isinstance(provider, ImageProvider):
            raise GenerationError(f"Provider {card.provider} cannot generate images")
        return card, provider

    def text_provider_for(self, model_id: str) -> tuple[ModelCard, TextProvider]:
        """Resolve the model card and text provider for a model ID."""
        card = self._require_model(model_id, ModelKind.TEXT)
        provider = self.get_provider(card.provider)
        if not isinstance(provider, TextProvider):
            raise GenerationError(f"Provider {card.provider} cannot generate text")
        return card, provider

    def _require_model(self, model_id: str, kind: ModelKind) -> ModelCard:
        card = self._model_cards.get(model_id)
        if card is None:
            raise GenerationError(f"Unknown model: {model_id}")
        if card.kind is not kind:
            raise GenerationError(f"Model {model_id} does not generate {kind.value}")
        return card

    # -------------------------------------------------------------------------
    # Model Cards
    # -------------------------------------------------------------------------

    def register_model(self, card: ModelCard) -> None:
        """Register a model card."""
        self._model_cards[card.id] = card

    def get_model(self, model_id: str) -> ModelCard | None:
        """Get a model card by ID."""
        return self._model_cards.get(model_id)

    def list_models(self, kind: ModelKind | None = None) -> list[ModelCard]:
        """List all model cards, optionally filtered by kind."""
        return [
            card for card in self._model_cards.values()
            if kind is None or card.kind is kind
        ]

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------

    def set_config(self, provider_id: str, config: ProviderConfig) -> None:
        """Set configuration for a provider."""
        self._configs[provider_id] = config
        # Invalidate cached instance
        self._provider_instances.pop(provider_id, None)

    def get_config(self, provider_id: str) -> ProviderConfig:
        """Get configuration for a provider."""
        return self._configs.get(provider_id, ProviderConfig())

    def load_environment(self, environ: Mapping[str, str] | None = None) -> None:
        """Fill in API keys and endpoints the config file left empty."""
        environ = os.environ if environ is None else environ
        for provider_id, env_name in ENV_API_KEYS.items():
            config = self.get_config(provider_id)
            changed = False
            if not config.api_key and environ.get(env_name):
                config.api_key = environ[env_name]
                changed = True
            for key, extra_env in ENV_EXTRA.get(provider_id, {}).items():
                if key not in config.extra and environ.get(extra_env):
                    config.extra[key] = environ[extra_env]
                    changed = True
            if changed:
                self.set_config(provider_id, config)

    def load_config(self, path: Path | None = None) -> None:
        """Load provider configurations from file."""
        if path is None:
            path = DEFAULT_CONFIG_PATH

        self._config_path = path

        if not path.exists():
            return

        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Failed to load provider config %s: %s", path, e)
            return

        for provider_id, cfg_data in data.get("providers", {}).items():
            self.set_config(provider_id, ProviderConfig(
                api_key=cfg_data.get("api_key", ""),
                enabled=cfg_data.get("enabled", True),
                base_url=cfg_data.get("base_url"),
                extra=cfg_data.get("extra", {}),
            ))

        for card_data in data.get("custom_models", []):
            self.register_model(ModelCard(
                id=card_data["id"],
                provider=card_data["provider"],
                name=card_data.get("name", card_data["id"]),
                kind=ModelKind(card_data.get("kind", "image")),
                api_model=card_data.get("api_model", ""),
                description=card_data.get("description", ""),
                requires_reference_image=card_data.get("requires_reference_image", False),
                params=set(card_data.get("params", [])),
            ))

    def save_config(self, path: Path | None = None) -> None:
        """Save provider configurations to file."""
        if path is None:
            path = self._config_path or DEFAULT_CONFIG_PATH

        path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "providers": {
                pid: {
                    "api_key": cfg.api_key,
                    "enabled": cfg.enabled,
                    "base_url": cfg.base_url,
                    "extra": cfg.extra,
                }
                for pid, cfg in self._configs.items()
            },
            "custom_models": [
                {
                    "id": card.id,
                    "provider": card.provider,
                    "name": card.name,
                    "kind": card.kind.value,
                    "api_model": card.api_model,
                    "description": card.description,
                    "requires_reference_image": card.requires_reference_image,
                    "params": sorted(card.params),
                }
                for card in self._model_cards.values()
                if card.id not in BUILTIN_MODEL_CARDS  # Only save custom models
            ],
        }

        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
