"""
Tests for provider adapters and the provider registry.

HTTP calls are replaced by patching each adapter's ``_post``.
"""

import asyncio
import base64
import json
from io import BytesIO

import pytest
from PIL import Image

from node_banana.core.images import to_data_url
from node_banana.providers.azure import AzureProvider
from node_banana.providers.base import (
    AuthenticationError,
    GenerationError,
    ModelCard,
    ModelConfig,
    ModelKind,
    ProviderConfig,
    RateLimitError,
)
from node_banana.providers.gemini import GeminiProvider
from node_banana.providers.openai import OpenAIProvider
from node_banana.providers.registry import BUILTIN_MODEL_CARDS, ProviderRegistry

PNG = "data:image/png;base64,UE5H"


def fake_post(provider, response):
    """Replace ``provider._post`` and record request bodies."""
    calls = []

    async def _post(url, body, *args):
        calls.append({"url": url, "body": body, "args": args})
        return response

    provider._post = _post
    return calls


class TestErrorMapping:

    @pytest.mark.parametrize("status,error", [
        (401, AuthenticationError),
        (403, AuthenticationError),
        (429, RateLimitError),
        (500, GenerationError),
    ])
    def test_status_codes(self, status, error):
        with pytest.raises(error):
            GeminiProvider()._check_error(status, {"error": {"message": "nope"}})

    def test_message_from_body(self):
        with pytest.raises(GenerationError, match="quota gone"):
            OpenAIProvider()._check_error(400, {"error": {"message": "quota gone"}})

    def test_ok_status(self):
        GeminiProvider()._check_error(200, {})


class FakeResponse:
    """Stands in for an aiohttp response."""

    def __init__(self, status, body):
        self.status = status
        self.body = body

    async def json(self, content_type="application/json"):
        return json.loads(self.body)


class TestReadResponse:

    def test_json_body(self):
        data = asyncio.run(GeminiProvider()._read_response(FakeResponse(200, '{"ok": 1}')))
        assert data == {"ok": 1}

    def test_html_gateway_error(self):
        resp = FakeResponse(502, "<html><body>Bad Gateway</body></html>")
        with pytest.raises(GenerationError, match="HTTP 502"):
            asyncio.run(OpenAIProvider()._read_response(resp))

    def test_html_auth_error(self):
        resp = FakeResponse(401, "<html>Unauthorized</html>")
        with pytest.raises(AuthenticationError):
            asyncio.run(AzureProvider()._read_response(resp))

    def test_unreadable_success_body(self):
        with pytest.raises(GenerationError, match="unreadable response"):
            asyncio.run(GeminiProvider()._read_response(FakeResponse(200, "not json")))

    def test_json_error_without_message(self):
        with pytest.raises(GenerationError, match="HTTP 500"):
            asyncio.run(GeminiProvider()._read_response(FakeResponse(500, "{}")))


class TestGemini:

    def make(self):
        return GeminiProvider(ProviderConfig(api_key="key"))

    def test_image_request_and_response(self):
        provider = self.make()
        calls = fake_post(provider, {
            "candidates": [{"content": {"parts": [
                {"text": "Here you go"},
                {"inlineData": {"mimeType": "image/png", "data": "T1VU"}},
            ]}}],
        })
        config = ModelConfig(
            model=BUILTIN_MODEL_CARDS["nano-banana-pro"],
            aspect_ratio="16:9",
            resolution="2K",
            use_google_search=True,
        )

        result = asyncio.run(provider.generate_image([PNG], "add hat", config))

        assert result.success
        assert result.image == "data:image/png;base64,T1VU"
        assert result.text == "Here you go"
        body = calls[0]["body"]
        assert calls[0]["url"].endswith("/models/gemini-3-pro-image-preview:generateContent")
        assert body["contents"][0]["parts"] == [
            {"text": "add hat"},
            {"inlineData": {"mimeType": "image/png", "data": "UE5H"}},
        ]
        assert body["generationConfig"]["imageConfig"] == {
            "aspectRatio": "16:9", "imageSize": "2K",
        }
        assert body["tools"] == [{"googleSearch": {}}]

    def test_flash_image_ignores_pro_settings(self):
        provider = self.make()
        calls = fake_post(provider, {"candidates": [{"content": {"parts": [
            {"inlineData": {"data": "T1VU"}},
        ]}}]})
        config = ModelConfig(
            model=BUILTIN_MODEL_CARDS["nano-banana"],
            aspect_ratio="1:1",
            resolution="4K",
            use_google_search=True,
        )

        asyncio.run(provider.generate_image([PNG], "hat", config))

        body = calls[0]["body"]
        assert body["generationConfig"]["imageConfig"] == {"aspectRatio": "1:1"}
        assert "tools" not in body

    def test_requires_input_image(self):
        provider = self.make()
        calls = fake_post(provider, {})
        config = ModelConfig(model=BUILTIN_MODEL_CARDS["nano-banana"])

        result = asyncio.run(provider.generate_image([], "hat", config))

        assert not result.success
        assert "image and prompt are required" in result.error
        assert calls == []

    def test_no_image_in_response(self):
        provider = self.make()
        fake_post(provider, {"candidates": [{"finishReason": "SAFETY", "content": {"parts": []}}]})
        config = ModelConfig(model=BUILTIN_MODEL_CARDS["nano-banana"])

        result = asyncio.run(provider.generate_image([PNG], "hat", config))

        assert result.error == "No image in response (finish reason: SAFETY)"

    def test_unsupported_mime_converted(self):
        buf = BytesIO()
        Image.new("RGB", (2, 2)).save(buf, format="GIF")
        gif = to_data_url(buf.getvalue(), "image/gif")

        part = self.make()._inline_part(gif)

        assert part["inlineData"]["mimeType"] == "image/png"
        raw = base64.b64decode(part["inlineData"]["data"])
        assert Image.open(BytesIO(raw)).format == "PNG"

    def test_text(self):
        provider = self.make()
        calls = fake_post(provider, {"candidates": [{"content": {"parts": [
            {"text": "a cat "}, {"text": "in a hat"},
        ]}}]})
        config = ModelConfig(
            model=BUILTIN_MODEL_CARDS["gemini-2.5-flash"], temperature=0.2, max_tokens=64
        )

        result = asyncio.run(provider.generate_text("describe", [PNG], config))

        assert result.text == "a cat in a hat"
        body = calls[0]["body"]
        assert body["generationConfig"] == {"temperature": 0.2, "maxOutputTokens": 64}
        assert body["contents"][0]["parts"][-1] == {"text": "describe"}

    def test_not_configured(self):
        config = ModelConfig(model=BUILTIN_MODEL_CARDS["nano-banana"])
        result = asyncio.run(GeminiProvider().generate_image([PNG], "hat", config))
        assert not result.success
        assert "not configured" in result.error


class TestOpenAI:

    def test_text_with_images(self):
        provider = OpenAIProvider(ProviderConfig(api_key="key"))
        calls = fake_post(provider, {"choices": [{"message": {"content": "hello"}}]})
        config = ModelConfig(model=BUILTIN_MODEL_CARDS["gpt-4.1-mini"])

        result = asyncio.run(provider.generate_text("hi", [PNG], config))

        assert result.text == "hello"
        body = calls[0]["body"]
        assert body["model"] == "gpt-4.1-mini"
        assert body["messages"][0]["content"] == [
            {"type": "text", "text": "hi"},
            {"type": "image_url", "image_url": {"url": PNG}},
        ]

    def test_plain_text(self):
        provider = OpenAIProvider(ProviderConfig(api_key="key"))
        calls = fake_post(provider, {"choices": [{"message": {"content": "ok"}}]})
        config = ModelConfig(model=BUILTIN_MODEL_CARDS["gpt-4.1-nano"])

        asyncio.run(provider.generate_text("hi", None, config))

        assert calls[0]["body"]["messages"][0]["content"] == "hi"

    def test_empty_choices(self):
        provider = OpenAIProvider(ProviderConfig(api_key="key"))
        fake_post(provider, {"choices": []})
        config = ModelConfig(model=BUILTIN_MODEL_CARDS["gpt-4.1-nano"])

        result = asyncio.run(provider.generate_text("hi", [], config))

        assert result.error == "No text in OpenAI response"


class TestAzure:

    def make(self, **extra):
        return AzureProvider(ProviderConfig(api_key="key", extra=extra))

    def test_flux(self):
        provider = self.make(flux_endpoint="https://flux.example/generate")
        calls = fake_post(provider, {"data": [{"b64_json": "RkxVWA=="}]})
        config = ModelConfig(model=BUILTIN_MODEL_CARDS["azure-flux-pro"], aspect_ratio="3:4")

        result = asyncio.run(provider.generate_image([], "a lake", config))

        assert result.image == "data:image/png;base64,RkxVWA=="
        url, body, args = calls[0]["url"], calls[0]["body"], calls[0]["args"]
        assert url == "https://flux.example/generate"
        assert body["size"] == "768x1024"
        assert body["model"] == "FLUX.2-pro"
        assert args[0]["api-key"] == "key"

    def test_gpt_image(self):
        provider = self.make(gpt_image_endpoint="https://gpt.example/images")
        calls = fake_post(provider, {"data": [{"b64_json": "R1BU"}]})
        config = ModelConfig(model=BUILTIN_MODEL_CARDS["azure-gpt-image"], aspect_ratio="16:9")

        asyncio.run(provider.generate_image([], "a lake", config))

        body, headers = calls[0]["body"], calls[0]["args"][0]
        assert body["size"] == "1536x1024"
        assert body["output_format"] == "png"
        assert headers["Authorization"] == "Bearer key"

    def test_missing_endpoint(self):
        config = ModelConfig(model=BUILTIN_MODEL_CARDS["azure-flux-pro"])
        result = asyncio.run(self.make().generate_image([], "a lake", config))
        assert "No Azure endpoint" in result.error

    def test_missing_prompt(self):
        provider = self.make(flux_endpoint="https://flux.example/generate")
        config = ModelConfig(model=BUILTIN_MODEL_CARDS["azure-flux-pro"])
        result = asyncio.run(provider.generate_image([], "", config))
        assert result.error == "A prompt is required"


class TestRegistry:

    def test_builtin_models(self):
        registry = ProviderRegistry()
        image_ids = {card.id for card in registry.list_models(ModelKind.IMAGE)}
        text_ids = {card.id for card in registry.list_models(ModelKind.TEXT)}
        assert image_ids == {"nano-banana", "nano-banana-pro", "azure-flux-pro", "azure-gpt-image"}
        assert text_ids == {
            "gemini-2.5-flash", "gemini-3-flash-preview", "gemini-3-pro-preview",
            "gpt-4.1-mini", "gpt-4.1-nano",
        }

    def test_gemini_image_models_need_reference(self):
        assert BUILTIN_MODEL_CARDS["nano-banana"].requires_reference_image
        assert BUILTIN_MODEL_CARDS["nano-banana-pro"].api_model == "gemini-3-pro-image-preview"

    def test_provider_lookup(self):
        registry = ProviderRegistry()
        card, provider = registry.image_provider_for("nano-banana")
        assert card.id == "nano-banana"
        assert isinstance(provider, GeminiProvider)
        _, text_provider = registry.text_provider_for("gpt-4.1-mini")
        assert isinstance(text_provider, OpenAIProvider)

    def test_wrong_model_kind(self):
        with pytest.raises(GenerationError):
            ProviderRegistry().image_provider_for("gemini-2.5-flash")

    def test_provider_without_text_support(self):
        registry = ProviderRegistry()
        registry.register_model(ModelCard(
            id="azure-text", provider="azure", name="Azure text", kind=ModelKind.TEXT,
        ))
        with pytest.raises(GenerationError, match="cannot generate text"):
            registry.text_provider_for("azure-text")

    def test_environment_fallback(self):
        registry = ProviderRegistry()
        registry.set_config("openai", ProviderConfig(api_key="from-file"))
        registry.load_environment({
            "GEMINI_API_KEY": "g-key",
            "OPENAI_API_KEY": "o-key",
            "AZURE_FLUX_ENDPOINT": "https://flux.example",
        })

        assert registry.get_config("gemini").api_key == "g-key"
        assert registry.get_config("openai").api_key == "from-file"
        assert registry.get_config("azure").extra == {"flux_endpoint": "https://flux.example"}
        assert registry.get_provider("gemini").is_configured
        assert "gemini" in registry.list_configured_providers()
        assert "azure" not in registry.list_configured_providers()

    def test_set_config_replaces_instance(self):
        registry = ProviderRegistry()
        before = registry.get_provider("gemini")
        registry.set_config("gemini", ProviderConfig(api_key="k"))
        assert registry.get_provider("gemini") is not before

    def test_config_round_trip(self, tmp_path):
        path = tmp_path / "providers.json"
        registry = ProviderRegistry()
        registry.set_config("gemini", ProviderConfig(api_key="k", extra={"region": "eu"}))
        registry.register_model(ModelCard(
            id="my-flux", provider="azure", name="My FLUX", api_model="FLUX.1-dev",
            params={"aspect_ratio"},
        ))
        registry.save_config(path)

        data = json.loads(path.read_text())
        assert [m["id"] for m in data["custom_models"]] == ["my-flux"]

        restored = ProviderRegistry.from_environment(path, environ={})
        assert restored.get_config("gemini").extra == {"region": "eu"}
        assert restored.get_model("my-flux").params == {"aspect_ratio"}

    def test_missing_config_file(self, tmp_path):
        registry = ProviderRegistry.from_environment(tmp_path / "none.json", environ={})
        assert registry.list_configured_providers() == []

    def test_corrupt_config_file(self, tmp_path):
        path = tmp_path / "providers.json"
        path.write_text("{")
        registry = ProviderRegistry()
        registry.load_config(path)
        assert registry.get_config("gemini").api_key == ""

