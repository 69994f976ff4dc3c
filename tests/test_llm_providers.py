"""
Tests for the slide LLM providers and the provider gateway.

HTTP and SDK calls are mocked; no provider is contacted.
"""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from pitchdeck_backend.config import settings
from pitchdeck_backend.exceptions import LLMProviderUnavailable, LLMResponseParseError
from pitchdeck_backend.llm_providers import (
    AIProviderGateway,
    GroqProvider,
    MockLLMProvider,
    OllamaProvider,
    OpenAIProvider,
    SlideContentProvider,
    build_default_providers,
    build_slide_prompt,
    get_provider_order,
    parse_slide_content,
)


class RecordingProvider(SlideContentProvider):
    """Test double that returns a fixed result or raises."""

    def __init__(self, name, result=None, error=None):
        self.name = name
        self.model = f"{name}-model"
        self.result = result
        self.error = error
        self.calls = 0

    async def generate_slide_content(self, slide_type, prompt_context, options=None):
        self.calls += 1
        if self.error:
            raise self.error
        return self.result


SLIDE = {"title": "Acme Market", "content": "• TAM $4B", "speaker_notes": "Notes"}


# =============================================================================
# Prompt Building & Parsing
# =============================================================================

class TestPromptBuilding:

    def test_company_facts_and_guidance(self):
        prompt = build_slide_prompt("market", {"company_name": "Acme", "industry": "fintech"})

        assert "Create a market slide for a pitch deck." in prompt
        assert "TAM/SAM/SOM" in prompt
        assert "- Company: Acme" in prompt
        assert "- Industry: fintech" in prompt
        assert "User Preferences" not in prompt

    def test_personalization_block(self):
        prompt = build_slide_prompt("go_to_market", {
            "user_preferences": {"tone": "professional", "structure": "bullet_points"},
            "personalization_prompt": "\nUse a professional tone throughout.",
        })

        assert "Create a go to market slide" in prompt
        assert 'User Preferences: {"tone": "professional", "structure": "bullet_points"}' in prompt
        assert "Personalization:\nUse a professional tone throughout." in prompt

    def test_regeneration_feedback(self):
        prompt = build_slide_prompt("team", {"user_feedback": "Mention our advisors"})

        assert "User Feedback: Mention our advisors" in prompt
        assert "Please improve the content based on this feedback." in prompt


class TestResponseParsing:

    def test_plain_json(self):
        assert parse_slide_content("groq", json.dumps(SLIDE)) == SLIDE

    def test_fenced_json(self):
        response = f"Here is your slide:\n```json\n{json.dumps(SLIDE)}\n```\nEnjoy!"
        assert parse_slide_content("groq", response)["title"] == "Acme Market"

    def test_json_in_prose(self):
        response = f"Sure! {json.dumps({'title': 'Only title'})} Hope that helps."
        parsed = parse_slide_content("openai", response)
        assert parsed == {"title": "Only title", "content": "", "speaker_notes": ""}

    @pytest.mark.parametrize("response", ["not json at all", '{"unrelated": 1}', ""])
    def test_unparseable(self, response):
        with pytest.raises(LLMResponseParseError):
            parse_slide_content("local", response)


# =============================================================================
# Providers
# =============================================================================

class TestOpenAIProviders:

    def test_missing_keys(self):
        with patch.object(settings, "openai_api_key", None), patch.object(settings, "groq_api_key", None):
            with pytest.raises(LLMProviderUnavailable):
                OpenAIProvider()
            with pytest.raises(LLMProviderUnavailable):
                GroqProvider()

    def test_groq_uses_compatible_endpoint(self):
        provider = GroqProvider(api_key="gsk-test")

        assert provider.name == "groq"
        assert provider.model == settings.groq_model
        assert str(provider.client.base_url).startswith(settings.groq_base_url)

    @pytest.mark.asyncio
    async def test_generate_slide_content(self):
        provider = OpenAIProvider(api_key="sk-test", model="gpt-4o-mini")
        completion = MagicMock()
        completion.choices = [MagicMock(message=MagicMock(content=json.dumps(SLIDE)))]
        completion.usage = None
        provider.client = MagicMock()
        provider.client.chat.completions.create = AsyncMock(return_value=completion)

        result = await provider.generate_slide_content(
            "market", {"company_name": "Acme"}, {"temperature": 0.2, "max_tokens": 300}
        )

        assert result == SLIDE
        kwargs = provider.client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["temperature"] == 0.2
        assert kwargs["max_tokens"] == 300
        assert kwargs["messages"][0]["role"] == "system"
        assert "- Company: Acme" in kwargs["messages"][1]["content"]


class TestOllamaProvider:

    def _mock_client(self, mock_client_class, content=None, error=None):
        mock_client = AsyncMock()
        mock_client.__aenter__.return_value = mock_client
        mock_client.__aexit__.return_value = None

        if error is not None:
            mock_client.post.side_effect = error
        else:
            mock_post_response = MagicMock()
            mock_post_response.status_code = 200
            mock_post_response.json.return_value = {"message": {"content": content}}
            mock_post_response.raise_for_status = MagicMock()
            mock_client.post.return_value = mock_post_response

        mock_client_class.return_value = mock_client
        return mock_client

    def test_initialization(self):
        provider = OllamaProvider(base_url="http://custom:8080/", model="llama3.1:70b")
        assert provider.base_url == "http://custom:8080"
        assert provider.model == "llama3.1:70b"
        assert provider.name == "local"

    @pytest.mark.asyncio
    async def test_generate_slide_content(self):
        provider = OllamaProvider(base_url="http://localhost:11434", model="llama3.1")

        with patch("httpx.AsyncClient") as mock_client_class:
            mock_client = self._mock_client(mock_client_class, content=json.dumps(SLIDE))
            result = await provider.generate_slide_content("market", {"company_name": "Acme"})

        assert result == SLIDE
        url = mock_client.post.call_args.args[0]
        payload = mock_client.post.call_args.kwargs["json"]
        assert url == "http://localhost:11434/api/chat"
        assert payload["model"] == "llama3.1"
        assert payload["format"] == "json"
        assert payload["stream"] is False

    @pytest.mark.asyncio
    async def test_timeout(self):
        provider = OllamaProvider()

        with patch("httpx.AsyncClient") as mock_client_class:
            self._mock_client(mock_client_class, error=httpx.ReadTimeout("slow"))
            with pytest.raises(LLMProviderUnavailable):
                await provider.generate_slide_content("market", {})


class TestMockProvider:

    @pytest.mark.asyncio
    async def test_remembers_prompt_context(self):
        provider = MockLLMProvider()

        result = await provider.generate_slide_content("funding_ask", {"company_name": "Acme"})

        assert result["title"] == "Acme Funding Ask"
        assert provider.calls == 1
        assert provider.last_prompt_context == {"company_name": "Acme"}


# =============================================================================
# Gateway
# =============================================================================

class TestProviderOrder:

    @pytest.mark.parametrize("model,expected", [
        (None, ["groq", "openai", "local"]),
        ("groq-llama", ["groq", "openai", "local"]),
        ("gpt-4o", ["groq", "openai", "local"]),
        ("local", ["local", "groq", "openai"]),
        ("llama3.1-8b", ["local", "groq", "openai"]),
    ])
    def test_order(self, model, expected):
        assert get_provider_order(model) == expected

    def test_mock_setting_uses_mock_for_every_slot(self):
        providers = build_default_providers()

        assert set(providers) == {"groq", "openai", "local"}
        assert all(isinstance(p, MockLLMProvider) for p in providers.values())


class TestGateway:

    @pytest.mark.asyncio
    async def test_first_provider_wins(self):
        groq = RecordingProvider("groq", result=SLIDE)
        openai = RecordingProvider("openai", result=SLIDE)
        gateway = AIProviderGateway({"groq": groq, "openai": openai})

        result = await gateway.generate_slide_content("market", {})

        assert result.success
        assert result.provider == "groq"
        assert result.model == "groq-model"
        assert result.content == SLIDE
        assert openai.calls == 0

    @pytest.mark.asyncio
    async def test_falls_back_on_failure_and_empty_result(self):
        groq = RecordingProvider("groq", error=LLMProviderUnavailable("groq", "rate limited"))
        openai = RecordingProvider("openai", result={})
        local = RecordingProvider("local", result=SLIDE)
        gateway = AIProviderGateway({"groq": groq, "openai": openai, "local": local})

        result = await gateway.generate_slide_content("market", {})

        assert result.provider == "local"
        assert groq.calls == openai.calls == local.calls == 1

    @pytest.mark.asyncio
    async def test_local_model_tries_ollama_first(self):
        groq = RecordingProvider("groq", result=SLIDE)
        local = RecordingProvider("local", result=SLIDE)
        gateway = AIProviderGateway({"groq": groq, "local": local})

        result = await gateway.generate_slide_content("market", {}, {"model": "llama3.1"})

        assert result.provider == "local"
        assert groq.calls == 0

    @pytest.mark.asyncio
    async def test_unconfigured_providers_are_skipped(self):
        gateway = AIProviderGateway({"openai": RecordingProvider("openai", result=SLIDE)})

        result = await gateway.generate_slide_content("market", {})

        assert result.provider == "openai"

    @pytest.mark.asyncio
    async def test_all_providers_fail(self):
        gateway = AIProviderGateway({
            "groq": RecordingProvider("groq", error=RuntimeError("down")),
            "openai": RecordingProvider("openai", error=LLMResponseParseError("openai", "garbage")),
        })

        result = await gateway.generate_slide_content("market", {})

        assert not result.success
        assert result.error == "All AI providers failed"
        assert result.provider == "none"
        assert result.model == "none"
        assert result.content is None
