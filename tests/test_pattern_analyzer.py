"""
Tests for the Pattern Analyzer.

Covers:
- Pattern data merging and majority votes
- Pattern scope selection
- Incremental reinforcement (one row per key, confidence capped at 1.0)
- Behaviour profiles derived from recent events
- Pattern-based suggestions for slide content
"""

from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from pitchdeck_backend.exceptions import PersistenceError
from pitchdeck_backend.models import (
    ChatContent,
    ContextEvent,
    EditContent,
    FeedbackContent,
    GenerationContent,
    UserInputContent,
    dump_event_content,
)
from pitchdeck_backend.pattern_analyzer import (
    PatternAnalyzer,
    merge_pattern_data,
    pattern_scope,
    pick_majority,
)

T0 = datetime(2025, 1, 15, 9, 0, 0)


def _event(content, learning_scope="deck", deck_id="deck-1", project_id="proj-1", event_id="evt-1"):
    return ContextEvent(
        id=event_id,
        user_id="user-1",
        project_id=project_id,
        deck_id=deck_id,
        slide_id="slide-1",
        learning_scope=learning_scope,
        content=content,
        created_at=T0,
    )


async def _store(event_repo, content, deck_id="deck-1", learning_scope="deck"):
    return await event_repo.add_event(
        user_id="user-1",
        project_id="proj-1",
        deck_id=deck_id,
        slide_id="slide-1",
        event_type=content.event_type,
        content=dump_event_content(content),
        learning_scope=learning_scope,
        created_at=T0,
    )


# =============================================================================
# Pure Helpers
# =============================================================================

class TestMergePatternData:

    def test_numbers_are_averaged(self):
        merged = merge_pattern_data({"length_change": -40}, {"length_change": -60})
        assert merged["length_change"] == -50

    def test_lists_are_unioned_in_order(self):
        merged = merge_pattern_data({"industry_focus": ["fintech"]}, {"industry_focus": ["health", "fintech"]})
        assert merged["industry_focus"] == ["fintech", "health"]

    def test_booleans_are_replaced_not_averaged(self):
        merged = merge_pattern_data({"added_bullets": True}, {"added_bullets": False})
        assert merged["added_bullets"] is False

    def test_existing_keys_are_kept(self):
        merged = merge_pattern_data({"tone": "professional"}, {"aspect": "length"})
        assert merged == {"tone": "professional", "aspect": "length"}


class TestPickMajority:

    def test_highest_count_wins(self):
        assert pick_majority({"formal": 1, "technical": 3}, "formal") == "technical"

    def test_ties_go_to_first_key(self):
        assert pick_majority({"bullet_points": 2, "paragraphs": 2}, "mixed") == "bullet_points"

    def test_no_votes_returns_default(self):
        assert pick_majority({"bullet_points": 0, "paragraphs": 0}, "mixed") == "mixed"


class TestPatternScope:

    def test_deck_scope_uses_deck_id(self):
        assert pattern_scope(_event(EditContent())) == ("deck", "deck-1")

    def test_project_scope_uses_project_id(self):
        assert pattern_scope(_event(EditContent(), learning_scope="project")) == ("project", "proj-1")

    def test_missing_id_falls_back_to_global(self):
        assert pattern_scope(_event(EditContent(), deck_id=None)) == ("global", None)

    def test_global_scope(self):
        assert pattern_scope(_event(EditContent(), learning_scope="global")) == ("global", None)


# =============================================================================
# Reinforcement
# =============================================================================

class TestReinforcement:

    @pytest.mark.asyncio
    async def test_upsert_keeps_one_row_per_key(self, analyzer, pattern_repo):
        await analyzer.upsert_pattern("user-1", "content_preference", "deck", "deck-1", {"length_change": -20}, 0.1)
        second = await analyzer.upsert_pattern(
            "user-1", "content_preference", "deck", "deck-1", {"length_change": -40}, 0.1
        )

        patterns = await pattern_repo.get_user_patterns("user-1")
        assert len(patterns) == 1
        assert second.confidence_score == pytest.approx(0.2)
        assert second.pattern_data["length_change"] == -30

    @pytest.mark.asyncio
    async def test_new_pattern_confidence_floor(self, analyzer):
        pattern = await analyzer.upsert_pattern("user-1", "style_preference", "global", None, {"tone": "neutral"}, 0.05)
        assert pattern.confidence_score == pytest.approx(0.1)

    @pytest.mark.asyncio
    async def test_confidence_never_exceeds_one(self, analyzer):
        for _ in range(8):
            pattern = await analyzer.upsert_pattern(
                "user-1", "correction_pattern", "deck", "deck-1", {"aspect": "length"}, 0.2
            )
            assert 0.0 <= pattern.confidence_score <= 1.0
        assert pattern.confidence_score == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_same_type_in_different_scopes_is_separate(self, analyzer, pattern_repo):
        await analyzer.upsert_pattern("user-1", "content_preference", "deck", "deck-1", {}, 0.1)
        await analyzer.upsert_pattern("user-1", "content_preference", "deck", "deck-2", {}, 0.1)
        await analyzer.upsert_pattern("user-1", "content_preference", "global", None, {}, 0.1)
        await analyzer.upsert_pattern("user-1", "content_preference", "global", None, {}, 0.1)

        assert len(await pattern_repo.get_user_patterns("user-1")) == 3

    @pytest.mark.asyncio
    async def test_edit_reinforces_content_preference(self, analyzer, event_repo, pattern_repo):
        event = await _store(event_repo, EditContent(
            before="long text", after="short", length_change=-4, added_bullets=True
        ))

        await analyzer.update_learning_patterns("user-1", event)

        pattern = await pattern_repo.find_pattern("user-1", "content_preference", "deck", "deck-1")
        assert pattern.confidence_score == pytest.approx(0.1)
        assert pattern.pattern_data["length_change"] == -4
        assert pattern.pattern_data["added_bullets"] is True
        assert pattern.pattern_data["edit_type"] == "content_modification"

    @pytest.mark.asyncio
    async def test_feedback_reinforces_correction_pattern(self, analyzer, event_repo, pattern_repo):
        event = await _store(event_repo, FeedbackContent(
            feedback_type="negative", aspect="length", suggestion="Too wordy"
        ))

        await analyzer.update_learning_patterns("user-1", event)

        pattern = await pattern_repo.find_pattern("user-1", "correction_pattern", "deck", "deck-1")
        assert pattern.confidence_score == pytest.approx(0.2)
        assert pattern.pattern_data["suggestion"] == "Too wordy"

    @pytest.mark.asyncio
    async def test_input_reinforces_style_preference(self, analyzer, event_repo, pattern_repo):
        event = await _store(
            event_repo, UserInputContent(input_length=120, tone="analytical", industry="fintech"),
            deck_id=None, learning_scope="global",
        )

        await analyzer.update_learning_patterns("user-1", event)

        pattern = await pattern_repo.find_pattern("user-1", "style_preference", "global", None)
        assert pattern.pattern_data["tone"] == "analytical"
        assert pattern.pattern_data["industry"] == "fintech"

    @pytest.mark.asyncio
    async def test_chat_preferences_are_stored_snake_case(self, analyzer, event_repo, pattern_repo):
        event = await _store(event_repo, ChatContent(
            user_message="Make it shorter",
            content_preferences={"preferredLength": "concise"},
            style_preferences={"tonePreference": "persuasive"},
        ))

        await analyzer.update_learning_patterns("user-1", event)

        content = await pattern_repo.find_pattern("user-1", "content_preference", "deck", "deck-1")
        style = await pattern_repo.find_pattern("user-1", "style_preference", "deck", "deck-1")
        assert content.pattern_data == {"preferred_length": "concise"}
        assert style.pattern_data == {"tone_preference": "persuasive"}
        assert content.confidence_score == pytest.approx(0.1)

    @pytest.mark.asyncio
    async def test_chat_without_preferences_learns_nothing(self, analyzer, event_repo, pattern_repo):
        event = await _store(event_repo, ChatContent(user_message="hello"))
        await analyzer.update_learning_patterns("user-1", event)
        assert await pattern_repo.get_user_patterns("user-1") == []

    @pytest.mark.asyncio
    async def test_generation_learns_nothing(self, analyzer, event_repo, pattern_repo):
        event = await _store(event_repo, GenerationContent(model_used="mock-model"))
        await analyzer.update_learning_patterns("user-1", event)
        assert await pattern_repo.get_user_patterns("user-1") == []

    @pytest.mark.asyncio
    async def test_store_failure_is_swallowed(self, event_repo):
        patterns = MagicMock()
        patterns.find_pattern = AsyncMock(side_effect=PersistenceError("find_pattern", "db down"))
        analyzer = PatternAnalyzer(event_repo, patterns)

        await analyzer.update_learning_patterns("user-1", _event(EditContent(length_change=-5)))

        patterns.find_pattern.assert_awaited_once()


# =============================================================================
# Behaviour Profiles
# =============================================================================

class TestBehaviorProfile:

    def test_no_events_gives_default_profile(self, analyzer):
        profile = analyzer.build_profile([])

        assert profile.content_preferences.preferred_length is None
        assert profile.content_preferences.writing_style == "formal"
        assert profile.content_preferences.data_usage == "moderate"
        assert profile.content_preferences.structure_preference == "mixed"
        assert profile.style_preferences.tone_preference == "professional"
        assert profile.correction_patterns.common_edits == []

    def test_shortening_edits_with_bullets(self, analyzer):
        events = [
            _event(EditContent(length_change=-50, added_bullets=True), event_id=f"e{i}")
            for i in range(3)
        ]

        profile = analyzer.build_profile(events)

        assert profile.content_preferences.preferred_length == "concise"
        assert profile.content_preferences.structure_preference == "bullet_points"
        assert profile.correction_patterns.common_edits == ["content_modification"]

    def test_zero_net_length_change_is_detailed(self, analyzer):
        events = [_event(EditContent(length_change=20)), _event(EditContent(length_change=-20))]
        assert analyzer.build_profile(events).content_preferences.preferred_length == "detailed"

    @pytest.mark.parametrize("with_numbers,expected", [(3, "heavy"), (2, "heavy"), (1, "moderate"), (0, "minimal")])
    def test_data_usage_ratio(self, analyzer, with_numbers, expected):
        events = [_event(EditContent(added_numbers=i < with_numbers)) for i in range(3)]
        assert analyzer.build_profile(events).content_preferences.data_usage == expected

    def test_moderate_data_usage(self, analyzer):
        events = [_event(EditContent(added_metrics=i < 2)) for i in range(5)]
        assert analyzer.build_profile(events).content_preferences.data_usage == "moderate"

    def test_writing_style_majority(self, analyzer):
        events = [
            _event(EditContent(technical_terms=True)),
            _event(EditContent(technical_terms=True)),
            _event(EditContent(formal_language=True)),
        ]
        assert analyzer.build_profile(events).content_preferences.writing_style == "technical"

    def test_feedback_patterns(self, analyzer):
        events = [
            _event(FeedbackContent(feedback_type="positive", aspect="tone")),
            _event(FeedbackContent(feedback_type="positive", aspect="tone")),
            _event(FeedbackContent(feedback_type="negative", suggestion="Add charts")),
            _event(FeedbackContent(feedback_type="negative", suggestion="Add charts")),
            _event(FeedbackContent(feedback_type="negative", suggestion="Once only")),
        ]

        corrections = analyzer.build_profile(events).correction_patterns

        assert corrections.frequent_feedback == ["tone"]
        assert corrections.rejected_suggestions == ["Add charts"]

    def test_style_preferences(self, analyzer):
        events = [
            _event(UserInputContent(tone="analytical", industry="fintech", slide_type="market")),
            _event(UserInputContent(tone="analytical", industry="fintech", slide_type="market")),
            _event(FeedbackContent(tone="persuasive", industry="health", slide_type="team")),
        ]

        style = analyzer.build_profile(events).style_preferences

        assert style.tone_preference == "analytical"
        assert style.industry_focus == ["fintech"]
        assert style.slide_type_expertise == ["market"]

    @pytest.mark.asyncio
    async def test_analyze_user_behavior_reads_scoped_events(self, analyzer, event_repo):
        for _ in range(3):
            await _store(event_repo, EditContent(length_change=-50, added_bullets=True), deck_id="deck-1")
        await _store(event_repo, EditContent(length_change=500), deck_id="deck-2")

        profile = await analyzer.analyze_user_behavior("user-1", "deck", "deck-1")

        assert profile.content_preferences.preferred_length == "concise"
        assert profile.content_preferences.structure_preference == "bullet_points"

    @pytest.mark.asyncio
    async def test_analyze_user_behavior_failure_gives_default(self, pattern_repo):
        events = MagicMock()
        events.get_recent_events = AsyncMock(side_effect=PersistenceError("get_recent_events", "db down"))
        analyzer = PatternAnalyzer(events, pattern_repo)

        profile = await analyzer.analyze_user_behavior("user-1")

        assert profile.content_preferences.preferred_length is None
        assert profile.style_preferences.tone_preference == "professional"


# =============================================================================
# Pattern-Based Suggestions
# =============================================================================

class TestContextualRecommendations:

    @pytest.mark.asyncio
    async def test_content_and_structure_suggestions(self, analyzer, pattern_repo):
        await pattern_repo.create_pattern(
            "user-1", "content_preference", "deck", "deck-1",
            {"length_change": -50, "added_bullets": True, "added_numbers": True}, 0.5
        )
        content = " ".join(["word"] * 120)

        result = await analyzer.get_contextual_recommendations("user-1", "solution", content, "deck", "deck-1")

        assert "Consider making this content more concise based on your preferences" in result.content_suggestions
        assert "You typically include more data points - consider adding specific metrics" in result.content_suggestions
        assert result.structure_suggestions == ["You usually prefer bullet points for better readability"]
        assert result.patterns_considered == 1
        assert result.confidence_score == pytest.approx(0.5)
        assert result.content_analysis.word_count == 120

    @pytest.mark.asyncio
    async def test_patterns_at_threshold_are_ignored(self, analyzer, pattern_repo):
        await pattern_repo.create_pattern(
            "user-1", "correction_pattern", "deck", "deck-1",
            {"feedback_type": "negative", "aspect": "length", "suggestion": "Shorter"}, 0.3
        )

        result = await analyzer.get_contextual_recommendations("user-1", "problem", "text", "deck", "deck-1")

        assert result.patterns_considered == 0
        assert result.correction_suggestions == []
        assert result.confidence_score == 0.0

    @pytest.mark.asyncio
    async def test_style_and_correction_suggestions_include_global(self, analyzer, pattern_repo):
        await pattern_repo.create_pattern(
            "user-1", "style_preference", "global", None, {"tone": "professional", "industry": "healthcare"}, 0.6
        )
        await pattern_repo.create_pattern(
            "user-1", "correction_pattern", "deck", "deck-1",
            {"feedback_type": "negative", "aspect": "length", "suggestion": "Too long"}, 0.4
        )

        funding = await analyzer.get_contextual_recommendations("user-1", "funding_ask", "", "deck", "deck-1")
        problem = await analyzer.get_contextual_recommendations("user-1", "problem", "", "deck", "deck-1")

        assert funding.style_suggestions == ["Maintain professional tone for investor appeal"]
        assert funding.correction_suggestions == ["Address earlier feedback on length: Too long"]
        assert problem.style_suggestions == ["Consider healthcare-specific pain points based on your focus"]
        assert funding.patterns_considered == 2

    @pytest.mark.asyncio
    async def test_other_deck_patterns_are_excluded(self, analyzer, pattern_repo):
        await pattern_repo.create_pattern(
            "user-1", "correction_pattern", "deck", "deck-2", {"feedback_type": "positive", "aspect": "tone"}, 0.9
        )

        result = await analyzer.get_contextual_recommendations("user-1", "team", "", "deck", "deck-1")

        assert result.patterns_considered == 0

    @pytest.mark.asyncio
    async def test_positive_feedback_suggestion(self, analyzer, pattern_repo):
        await pattern_repo.create_pattern(
            "user-1", "correction_pattern", "global", None, {"feedback_type": "positive", "aspect": "tone"}, 0.9
        )

        result = await analyzer.get_contextual_recommendations("user-1", "team", "", "global")

        assert result.correction_suggestions == ["Keep the tone approach that received positive feedback"]
