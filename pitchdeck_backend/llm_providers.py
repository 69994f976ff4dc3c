"""
LLM provider interface and gateway for slide generation.

Providers turn a prompt context into slide content (title, content,
speaker_notes). The gateway tries providers in a fallback order and never
raises: callers get a GenerationResult either way.
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx
from openai import AsyncOpenAI
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from .config import settings
from .exceptions import LLMProviderUnavailable, LLMResponseParseError
from .models import GenerationResult

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an expert pitch deck consultant who writes clear, investor-ready slides. "
    "Return only valid JSON with the keys: title, content, speaker_notes."
)

SLIDE_GUIDANCE = {
    "cover": "Company name, a one-line value proposition and a memorable tagline.",
    "problem": "Current situation, the pain points it causes and their impact or cost.",
    "solution": "How the product solves the problem and why now.",
    "market": "TAM/SAM/SOM in dollars and the market growth rate.",
    "product": "Key features, how it works and what makes it defensible.",
    "business_model": "How the company makes money, pricing and unit economics.",
    "go_to_market": "Target customers, acquisition channels and sales strategy.",
    "competition": "Competitive landscape and clear differentiation.",
    "team": "Key team members, relevant experience and advisors.",
    "financials": "3-5 year revenue projections, key assumptions and path to profitability.",
    "traction": "Key metrics and growth over time, customers and milestones.",
    "funding_ask": "Funding amount, use of funds, milestones and investor returns.",
}


def build_slide_prompt(slide_type: str, prompt_context: Dict[str, Any]) -> str:
    """
    Render the generation prompt for one slide.

    Includes the personalization block (user_preferences and
    personalization_prompt) when the context carries one, and regeneration
    feedback when present.
    """
    guidance = SLIDE_GUIDANCE.get(slide_type, "Clear, concise content for this slide.")
    lines = [f"Create a {slide_type.replace('_', ' ')} slide for a pitch deck.", f"Focus: {guidance}"]

    for key, label in (("company_name", "Company"), ("industry", "Industry"), ("target_market", "Target market")):
        if prompt_context.get(key):
            lines.append(f"- {label}: {prompt_context[key]}")

    if prompt_context.get("previous_content"):
        lines.append(f"\nCurrent slide content:\n{prompt_context['previous_content']}")

    prompt = "\n".join(lines)

    if prompt_context.get("user_preferences"):
        prompt += f"\n\nUser Preferences: {json.dumps(prompt_context['user_preferences'])}"
    if prompt_context.get("personalization_prompt"):
        prompt += f"\nPersonalization:{prompt_context['personalization_prompt']}"

    if prompt_context.get("user_feedback"):
        prompt += f"\n\nUser Feedback: {prompt_context['user_feedback']}"
        prompt += "\nPlease improve the content based on this feedback."

    return prompt


def parse_slide_content(provider: str, response: str) -> Dict[str, Any]:
    """
    Extract the slide JSON object from a model response.

    Models sometimes wrap JSON in code fences or prose; the first parseable
    object is used.

    Raises:
        LLMResponseParseError: no JSON object with a title or content was found
    """
    candidates = [response]
    for pattern in (r"```json\s*([\s\S]*?)\s*```", r"```\s*([\s\S]*?)\s*```", r"(\{[\s\S]*\})"):
        match = re.search(pattern, response or "")
        if match:
            candidates.append(match.group(1))

    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except (json.JSONDecodeError, TypeError):
            continue
        if isinstance(data, dict) and ("title" in data or "content" in data):
            return {
                "title": str(data.get("title", "")),
                "content": data.get("content", ""),
                "speaker_notes": str(data.get("speaker_notes", "")),
            }

    raise LLMResponseParseError(provider, response or "")


class SlideContentProvider(ABC):
    """Abstract base class for slide generation providers."""

    name: str = "base"
    model: str = "unknown"

    @abstractmethod
    async def generate_slide_content(
        self,
        slide_type: str,
        prompt_context: Dict[str, Any],
        options: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Generate content for one slide.

        Args:
            slide_type: Slide type (problem, market, ...)
            prompt_context: Company facts plus optional personalization block
            options: Provider options (temperature, max_tokens)

        Returns:
            Dict with title, content, speaker_notes

        Raises:
            LLMError: provider unavailable or response unusable
        """
        pass


class OpenAIProvider(SlideContentProvider):
    """OpenAI chat-completions implementation of the slide provider."""

    name = "openai"

    def __init__(self, api_key: str = None, model: str = None, base_url: str = None, max_tokens: int = None):
        """
        Initialize OpenAI provider.

        Args:
            api_key: API key (defaults to settings.openai_api_key)
            model: Model name (defaults to settings.openai_model)
            base_url: Alternative OpenAI-compatible endpoint
            max_tokens: Completion token cap (defaults to settings.llm_max_tokens)
        """
        self.api_key = api_key or settings.openai_api_key
        if not self.api_key:
            raise LLMProviderUnavailable(self.name, "API key not configured")

        self.client = AsyncOpenAI(
            api_key=self.api_key,
            base_url=base_url,
            timeout=settings.llm_timeout_seconds,
            max_retries=0  # Retries are handled by tenacity
        )
        self.model = model or settings.openai_model
        self.max_tokens = max_tokens or settings.llm_max_tokens

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type((Exception,)),
        reraise=True
    )
    async def _call_chat(self, messages: List[Dict], temperature: float, max_tokens: int) -> str:
        logger.info(f"Calling {self.name} with model: {self.model}")

        response = await self.client.chat.completions.create(
            model=self.model,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
        )
        content = response.choices[0].message.content

        if getattr(response, "usage", None):
            logger.info(
                f"{self.name} usage: model={self.model}, "
                f"tokens={response.usage.prompt_tokens}+{response.usage.completion_tokens}"
            )
        return content or ""

    async def generate_slide_content(
        self,
        slide_type: str,
        prompt_context: Dict[str, Any],
        options: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        options = options or {}
        response = await self._call_chat(
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_slide_prompt(slide_type, prompt_context)},
            ],
            temperature=options.get("temperature", 0.7),
            max_tokens=options.get("max_tokens", self.max_tokens),
        )
        logger.debug(f"{self.name} raw response: {response[:200]}")
        return parse_slide_content(self.name, response)


class GroqProvider(OpenAIProvider):
    """Groq via its OpenAI-compatible endpoint."""

    name = "groq"

    def __init__(self, api_key: str = None, model: str = None, base_url: str = None, max_tokens: int = None):
        api_key = api_key or settings.groq_api_key
        if not api_key:
            raise LLMProviderUnavailable(self.name, "API key not configured")
        super().__init__(
            api_key=api_key,
            model=model or settings.groq_model,
            base_url=base_url or settings.groq_base_url,
            max_tokens=max_tokens,
        )


class OllamaProvider(SlideContentProvider):
    """
    Ollama implementation for self-hosted models.

    Setup:
        1. Install Ollama: https://ollama.ai/download
        2. Pull a model: ollama pull llama3.1
        3. Run Ollama server: ollama serve
        4. Set OLLAMA_BASE_URL (default: http://localhost:11434)
    """

    name = "local"

    def __init__(self, base_url: str = None, model: str = None, timeout: int = None):
        self.base_url = (base_url or settings.ollama_base_url).rstrip("/")
        self.model = model or settings.ollama_model
        self.timeout = timeout or settings.llm_timeout_seconds

        logger.info(f"Initialized OllamaProvider with base_url={self.base_url}, model={self.model}")

    async def _call_ollama(self, messages: List[Dict], temperature: float = 0.7) -> str:
        """Call Ollama API with chat format."""
        url = f"{self.base_url}/api/chat"
        payload = {
            "model": self.model,
            "messages": messages,
            "stream": False,
            "format": "json",
            "options": {"temperature": temperature},
        }

        logger.info(f"Calling Ollama model: {self.model}")

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(url, json=payload)
                response.raise_for_status()

                content = response.json().get("message", {}).get("content", "")
                logger.info(f"Ollama response length: {len(content)} chars")
                return content

        except httpx.TimeoutException as e:
            logger.error(f"Ollama request timed out after {self.timeout}s")
            raise LLMProviderUnavailable(self.name, "timeout") from e
        except httpx.HTTPStatusError as e:
            logger.error(f"Ollama HTTP error: {e.response.status_code}")
            raise LLMProviderUnavailable(self.name, f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error(f"Ollama call failed: {e}")
            raise LLMProviderUnavailable(self.name, str(e)) from e

    async def generate_slide_content(
        self,
        slide_type: str,
        prompt_context: Dict[str, Any],
        options: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        options = options or {}
        response = await self._call_ollama(
            [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_slide_prompt(slide_type, prompt_context)},
            ],
            temperature=options.get("temperature", 0.7),
        )
        return parse_slide_content(self.name, response)


class MockLLMProvider(SlideContentProvider):
    """
    Mock provider for testing.

    Returns canned slide content without making API calls and remembers the
    last prompt context it was given.
    """

    name = "mock"
    model = "mock-model"

    def __init__(self):
        self.last_prompt_context: Optional[Dict[str, Any]] = None
        self.calls = 0

    async def generate_slide_content(
        self,
        slide_type: str,
        prompt_context: Dict[str, Any],
        options: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        self.calls += 1
        self.last_prompt_context = dict(prompt_context)
        company = prompt_context.get("company_name") or "Test Company"
        return {
            "title": f"{company} {slide_type.replace('_', ' ').title()}",
            "content": "• Mock point one\n• Mock point two",
            "speaker_notes": "Mock speaker notes",
        }


def get_provider_order(model_choice: Optional[str]) -> List[str]:
    """
    Fallback order for a model choice.

    Local models (local, llama3.1-*) try Ollama first; groq-* models and
    anything else use groq -> openai -> local.
    """
    choice = model_choice or "groq"
    if choice == "local" or choice.startswith("llama3.1"):
        return ["local", "groq", "openai"]
    return ["groq", "openai", "local"]


def build_default_providers() -> Dict[str, SlideContentProvider]:
    """Instantiate every provider that is configured; unconfigured ones are skipped."""
    if settings.llm_provider == "mock":
        mock = MockLLMProvider()
        return {"groq": mock, "openai": mock, "local": mock}

    providers: Dict[str, SlideContentProvider] = {}
    for name, factory in (("groq", GroqProvider), ("openai", OpenAIProvider), ("local", OllamaProvider)):
        try:
            providers[name] = factory()
        except LLMProviderUnavailable as e:
            logger.info(f"Skipping provider: {e}")
    return providers


class AIProviderGateway:
    """
    Tries slide providers in fallback order until one succeeds.

    Args:
        providers: Mapping of provider name (groq, openai, local) to provider
    """

    def __init__(self, providers: Optional[Dict[str, SlideContentProvider]] = None):
        self.providers = providers if providers is not None else build_default_providers()

    async def generate_slide_content(
        self,
        slide_type: str,
        prompt_context: Dict[str, Any],
        options: Optional[Dict[str, Any]] = None
    ) -> GenerationResult:
        options = options or {}

        for provider_name in get_provider_order(options.get("model")):
            provider = self.providers.get(provider_name)
            if provider is None:
                logger.warning(f"Provider {provider_name} not configured")
                continue

            try:
                logger.info(f"Attempting slide generation with {provider_name}")
                content = await provider.generate_slide_content(slide_type, prompt_context, options)
            except Exception as e:
                logger.warning(f"Provider {provider_name} failed: {e}")
                continue

            if not content:
                logger.warning(f"Provider {provider_name} returned empty result")
                continue

            return GenerationResult(
                success=True,
                content=content,
                provider=provider_name,
                model=getattr(provider, "model", "unknown"),
            )

        return GenerationResult(success=False, error="All AI providers failed", provider="none", model="none")
