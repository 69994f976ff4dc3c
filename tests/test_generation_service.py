"""
Tests for personalized slide generation.

The gateway is backed by the mock provider; learned preferences come from
the in-memory learning store.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from pitchdeck_backend.generation_service import SlideGenerationService
from pitchdeck_backend.llm_providers import AIProviderGateway, MockLLMProvider
from pitchdeck_backend.models import GenerationContent

USER = "user-1"
PROJECT = "proj-1"
DECK = "deck-1"


@pytest.fixture
def mock_provider():
    return MockLLMProvider()


@pytest.fixture
def generation_service(mock_provider, engine, tracker):
    gateway = AIProviderGateway({"groq": mock_provider, "openai": mock_provider, "local": mock_provider})
    return SlideGenerationService(gateway, engine, tracker)


async def _generation_events(event_repo):
    return [e for e in await event_repo.get_recent_events(USER) if e.event_type == "ai_generation"]


class TestGenerateSlide:

    @pytest.mark.asyncio
    async def test_generates_with_default_personalization(self, generation_service, mock_provider):
        result = await generation_service.generate_slide(
            USER, PROJECT, "market", prompt_context={"company_name": "Acme", "industry": "fintech"}, deck_id=DECK
        )

        assert result.success
        assert result.provider == "groq"
        assert result.model == "mock-model"
        assert result.content["title"] == "Acme Market"

        context = mock_provider.last_prompt_context
        assert context["slide_type"] == "market"
        assert context["user_preferences"] == {
            "tone": "professional",
            "structure": "mixed",
            "detail_level": "moderate",
            "data_emphasis": "moderate",
        }
        assert context["personalization_prompt"] == "\nUse a professional tone throughout."
        assert "user_feedback" not in context

    @pytest.mark.asyncio
    async def test_generation_is_tracked(self, generation_service, event_repo):
        await generation_service.generate_slide(
            USER, PROJECT, "team", prompt_context={"industry": "health"}, deck_id=DECK, slide_id="slide-9"
        )

        events = await _generation_events(event_repo)
        assert len(events) == 1
        event = events[0]
        assert isinstance(event.content, GenerationContent)
        assert event.slide_id == "slide-9"
        assert event.learning_scope == "deck"
        assert event.content.slide_type == "team"
        assert event.content.industry == "health"
        assert event.content.regeneration is False
        assert event.content.provider == "groq"
        assert event.content.model_used == "mock-model"
        assert event.content.success is True
        assert event.content.enhancement_confidence == pytest.approx(0.1)

    @pytest.mark.asyncio
    async def test_regeneration_with_feedback(self, generation_service, mock_provider, event_repo):
        await generation_service.generate_slide(
            USER, PROJECT, "problem", deck_id=DECK, slide_id="slide-1", user_feedback="Make it punchier"
        )

        assert mock_provider.last_prompt_context["user_feedback"] == "Make it punchier"
        event = (await _generation_events(event_repo))[0]
        assert event.content.regeneration is True
        assert event.content.user_feedback == "Make it punchier"

    @pytest.mark.asyncio
    async def test_learned_preferences_reach_the_prompt(self, generation_service, tracker, mock_provider):
        for i in range(3):
            await tracker.track_slide_edit(
                USER, PROJECT, DECK, f"slide-{i}",
                "A long first draft of the slide with far too many words in it", "• Short point",
                slide_type="problem",
            )

        await generation_service.generate_slide(USER, PROJECT, "solution", deck_id=DECK)

        context = mock_provider.last_prompt_context
        assert context["user_preferences"]["detail_level"] == "concise"
        assert "Keep content concise and focused on key points." in context["personalization_prompt"]

    @pytest.mark.asyncio
    async def test_personalization_failure_still_generates(self, mock_provider, tracker, event_repo):
        engine = MagicMock()
        engine.enhance_prompt_with_context = AsyncMock(side_effect=RuntimeError("analyzer down"))
        gateway = AIProviderGateway({"groq": mock_provider})
        service = SlideGenerationService(gateway, engine, tracker)

        result = await service.generate_slide(USER, PROJECT, "market")

        assert result.success
        assert "user_preferences" not in mock_provider.last_prompt_context
        event = (await _generation_events(event_repo))[0]
        assert event.content.enhancement_confidence is None
        assert event.learning_scope == "project"

    @pytest.mark.asyncio
    async def test_failed_generation_is_tracked(self, engine, tracker, event_repo):
        failing = MagicMock()
        failing.generate_slide_content = AsyncMock(side_effect=RuntimeError("quota"))
        service = SlideGenerationService(AIProviderGateway({"groq": failing}), engine, tracker)

        result = await service.generate_slide(USER, PROJECT, "market", options={"model": "groq-llama"})

        assert not result.success
        assert result.error == "All AI providers failed"
        event = (await _generation_events(event_repo))[0]
        assert event.content.success is False
        assert event.content.provider == "none"
