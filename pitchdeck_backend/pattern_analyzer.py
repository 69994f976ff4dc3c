"""
Pattern Analyzer for the Pitch Deck learning layer.

Turns tracked events into confidence-scored preference patterns and derives
behaviour profiles from recent history.

Learning is heuristic and incremental:
1. Each event type reinforces one pattern type in the event's scope
   (edits -> content, feedback -> corrections, input -> style, chat -> both
   when the chat carried explicit preferences).
2. Reinforcement merges the new signals into the stored pattern data and
   raises its confidence by a fixed increment, capped at 1.0.
3. Profiles are recomputed on demand from the newest events; they are never
   stored.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic.alias_generators import to_snake

from .constants import (
    CHAT_CONFIDENCE_INCREMENT,
    CONCISE_SUGGESTION_WORD_LIMIT,
    DEFAULT_DATA_USAGE,
    DEFAULT_STRUCTURE_PREFERENCE,
    DEFAULT_TONE_PREFERENCE,
    DEFAULT_WRITING_STYLE,
    EDIT_CONFIDENCE_INCREMENT,
    FEEDBACK_CONFIDENCE_INCREMENT,
    HEAVY_DATA_RATIO,
    INPUT_CONFIDENCE_INCREMENT,
    MIN_NEW_PATTERN_CONFIDENCE,
    MODERATE_DATA_RATIO,
)
from .content_signals import analyze_content, get_frequent_items
from .models import (
    ChatContent,
    ContentAnalysis,
    ContentPreferences,
    ContextEvent,
    CorrectionPatterns,
    EditContent,
    FeedbackContent,
    LearningPatternRecord,
    PatternRecommendations,
    StylePreferences,
    UserBehaviorProfile,
    UserInputContent,
)
from .repository_interface import EventRepository, PatternRepository

logger = logging.getLogger(__name__)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def merge_pattern_data(existing: Dict[str, Any], new_data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Fold new signals into stored pattern data.

    Numbers on both sides are averaged, lists are unioned keeping first-seen
    order, anything else is replaced by the new value. Keys only present in
    the existing data are kept.
    """
    merged = dict(existing or {})
    for key, value in new_data.items():
        old = merged.get(key)
        if _is_number(value) and _is_number(old):
            merged[key] = (old + value) / 2
        elif isinstance(value, list) and isinstance(old, list):
            union = list(old)
            for item in value:
                if item not in union:
                    union.append(item)
            merged[key] = union
        else:
            merged[key] = value
    return merged


def pick_majority(counts: Dict[str, int], default: str) -> str:
    """Key with the highest count; ties go to the earliest key, all-zero to the default."""
    best_key, best_count = default, 0
    for key, count in counts.items():
        if count > best_count:
            best_key, best_count = key, count
    return best_key


def pattern_scope(event: ContextEvent) -> Tuple[str, Optional[str]]:
    """(scope_type, scope_id) a pattern learned from this event belongs to."""
    if event.learning_scope == "deck" and event.deck_id:
        return "deck", event.deck_id
    if event.learning_scope == "project" and event.project_id:
        return "project", event.project_id
    return "global", None


def _snake_keys(data: Dict[str, Any]) -> Dict[str, Any]:
    return {to_snake(key): value for key, value in data.items()}


def _unique(items: Iterable[str]) -> List[str]:
    seen = []
    for item in items:
        if item not in seen:
            seen.append(item)
    return seen


class PatternAnalyzer:
    """
    Learns preference patterns from events and summarizes them into profiles.

    All public methods are failure-tolerant: store errors are logged and a
    neutral result (no update, default profile, empty suggestions) is returned.
    """

    def __init__(
        self,
        event_repository: EventRepository,
        pattern_repository: PatternRepository,
        recent_event_limit: int = 100,
        min_pattern_confidence: float = 0.3
    ):
        self.events = event_repository
        self.patterns = pattern_repository
        self.recent_event_limit = recent_event_limit
        self.min_pattern_confidence = min_pattern_confidence

    # ==========================================================================
    # Pattern Learning
    # ==========================================================================

    async def update_learning_patterns(self, user_id: str, event: ContextEvent) -> None:
        """Reinforce the pattern(s) this event is evidence for."""
        logger.debug(f"Updating learning patterns for {event.event_type} event {event.id}")

        scope_type, scope_id = pattern_scope(event)
        content = event.content

        try:
            if isinstance(content, EditContent):
                await self.upsert_pattern(
                    user_id, "content_preference", scope_type, scope_id,
                    self._edit_signals(content), EDIT_CONFIDENCE_INCREMENT
                )
            elif isinstance(content, FeedbackContent):
                await self.upsert_pattern(
                    user_id, "correction_pattern", scope_type, scope_id,
                    self._feedback_signals(content), FEEDBACK_CONFIDENCE_INCREMENT
                )
            elif isinstance(content, UserInputContent):
                await self.upsert_pattern(
                    user_id, "style_preference", scope_type, scope_id,
                    self._input_signals(content), INPUT_CONFIDENCE_INCREMENT
                )
            elif isinstance(content, ChatContent):
                if content.content_preferences:
                    await self.upsert_pattern(
                        user_id, "content_preference", scope_type, scope_id,
                        _snake_keys(content.content_preferences), CHAT_CONFIDENCE_INCREMENT
                    )
                if content.style_preferences:
                    await self.upsert_pattern(
                        user_id, "style_preference", scope_type, scope_id,
                        _snake_keys(content.style_preferences), CHAT_CONFIDENCE_INCREMENT
                    )
            # ai_generation events carry no preference signal
        except Exception as e:
            logger.error(f"Failed to update learning patterns for user {user_id}: {e}", exc_info=True)

    async def upsert_pattern(
        self,
        user_id: str,
        pattern_type: str,
        scope_type: str,
        scope_id: Optional[str],
        data: Dict[str, Any],
        increment: float
    ) -> LearningPatternRecord:
        """
        Reinforce the pattern for this key, creating it on first sight.

        Concurrent reinforcements of the same row are last-writer-wins.
        """
        existing = await self.patterns.find_pattern(user_id, pattern_type, scope_type, scope_id)

        if existing:
            merged = merge_pattern_data(existing.pattern_data, data)
            confidence = min(1.0, existing.confidence_score + increment)
            updated = await self.patterns.update_pattern(existing.id, merged, confidence)
            if updated is not None:
                return updated

        confidence = min(1.0, max(MIN_NEW_PATTERN_CONFIDENCE, increment))
        logger.info(f"New {pattern_type} pattern for user {user_id} ({scope_type}:{scope_id})")
        return await self.patterns.create_pattern(
            user_id, pattern_type, scope_type, scope_id, data, confidence
        )

    @staticmethod
    def _edit_signals(content: EditContent) -> Dict[str, Any]:
        return {
            "edit_type": content.edit_type or "content_modification",
            "length_change": content.length_change,
            "added_bullets": content.added_bullets,
            "added_numbers": content.added_numbers,
            "tone_change": content.tone_change,
        }

    @staticmethod
    def _feedback_signals(content: FeedbackContent) -> Dict[str, Any]:
        return {
            "feedback_type": content.feedback_type,
            "aspect": content.aspect or "general",
            "suggestion": content.suggestion or "",
            "sentiment": content.sentiment,
        }

    @staticmethod
    def _input_signals(content: UserInputContent) -> Dict[str, Any]:
        return {
            "input_length": content.input_length,
            "complexity": content.complexity,
            "tone": content.tone or "neutral",
            "industry": content.industry,
        }

    # ==========================================================================
    # Behaviour Profiles
    # ==========================================================================

    async def analyze_user_behavior(
        self,
        user_id: str,
        scope_type: str = "global",
        scope_id: Optional[str] = None
    ) -> UserBehaviorProfile:
        """Profile from the newest events in scope; the default profile on failure."""
        try:
            events = await self.events.get_recent_events(
                user_id, scope_type, scope_id, limit=self.recent_event_limit
            )
        except Exception as e:
            logger.error(f"Failed to analyze behavior for user {user_id}: {e}", exc_info=True)
            return UserBehaviorProfile()

        logger.debug(f"Analyzing {len(events)} events for user {user_id} ({scope_type}:{scope_id})")
        return self.build_profile(events)

    def build_profile(self, events: List[ContextEvent]) -> UserBehaviorProfile:
        edits = [e.content for e in events if isinstance(e.content, EditContent)]
        feedback = [e.content for e in events if isinstance(e.content, FeedbackContent)]

        return UserBehaviorProfile(
            content_preferences=self._content_preferences(edits),
            correction_patterns=CorrectionPatterns(
                common_edits=get_frequent_items(c.edit_type for c in edits),
                frequent_feedback=get_frequent_items(f.aspect for f in feedback if f.feedback_type == "positive"),
                rejected_suggestions=get_frequent_items(f.suggestion for f in feedback if f.feedback_type == "negative"),
            ),
            style_preferences=self._style_preferences(events),
        )

    def _content_preferences(self, edits: List[EditContent]) -> ContentPreferences:
        preferred_length = None
        if edits:
            total_length_change = sum(c.length_change for c in edits)
            preferred_length = "concise" if total_length_change < 0 else "detailed"

        structure = pick_majority({
            "bullet_points": sum(1 for c in edits if c.added_bullets),
            "paragraphs": sum(1 for c in edits if c.added_paragraphs),
            "mixed": sum(1 for c in edits if c.mixed_format),
        }, DEFAULT_STRUCTURE_PREFERENCE)

        writing_style = pick_majority({
            "formal": sum(1 for c in edits if c.formal_language),
            "conversational": sum(1 for c in edits if c.conversational_tone),
            "technical": sum(1 for c in edits if c.technical_terms),
        }, DEFAULT_WRITING_STYLE)

        return ContentPreferences(
            preferred_length=preferred_length,
            writing_style=writing_style,
            data_usage=self._infer_data_usage(edits),
            structure_preference=structure,
        )

    @staticmethod
    def _infer_data_usage(edits: List[EditContent]) -> str:
        if not edits:
            return DEFAULT_DATA_USAGE

        ratio = sum(1 for c in edits if c.added_numbers or c.added_metrics) / len(edits)
        if ratio > HEAVY_DATA_RATIO:
            return "heavy"
        if ratio > MODERATE_DATA_RATIO:
            return "moderate"
        return "minimal"

    @staticmethod
    def _style_preferences(events: List[ContextEvent]) -> StylePreferences:
        tones = {"professional": 0, "persuasive": 0, "analytical": 0}
        for event in events:
            if event.content.tone in tones:
                tones[event.content.tone] += 1

        return StylePreferences(
            tone_preference=pick_majority(tones, DEFAULT_TONE_PREFERENCE),
            industry_focus=get_frequent_items(e.content.industry for e in events),
            slide_type_expertise=get_frequent_items(e.content.slide_type for e in events),
        )

    # ==========================================================================
    # Pattern-Based Suggestions
    # ==========================================================================

    async def get_contextual_recommendations(
        self,
        user_id: str,
        slide_type: str,
        content: str,
        scope_type: str = "deck",
        scope_id: Optional[str] = None
    ) -> PatternRecommendations:
        """
        Suggestions for one piece of content from the user's confident patterns.

        Considers patterns above the confidence floor in the scope plus the
        user's global patterns (only global ones when no scope_id is given).
        """
        analysis = analyze_content(content)

        try:
            patterns = await self.patterns.get_scoped_patterns(
                user_id, scope_type, scope_id, min_confidence=self.min_pattern_confidence
            )
        except Exception as e:
            logger.error(f"Failed to load patterns for user {user_id}: {e}", exc_info=True)
            return PatternRecommendations(content_analysis=analysis)

        content_suggestions = []
        structure_suggestions = []
        style_suggestions = []
        correction_suggestions = []

        for pattern in patterns:
            data = pattern.pattern_data or {}
            if pattern.pattern_type == "content_preference":
                content_suggestions.extend(self._content_suggestions(data, analysis))
                structure_suggestions.extend(self._structure_suggestions(data, analysis))
            elif pattern.pattern_type == "style_preference":
                style_suggestions.extend(self._style_suggestions(data, slide_type))
            elif pattern.pattern_type == "correction_pattern":
                correction_suggestions.extend(self._correction_suggestions(data))

        confidence = 0.0
        if patterns:
            confidence = min(1.0, sum(p.confidence_score for p in patterns) / len(patterns))

        return PatternRecommendations(
            content_suggestions=_unique(content_suggestions),
            structure_suggestions=_unique(structure_suggestions),
            style_suggestions=_unique(style_suggestions),
            correction_suggestions=_unique(correction_suggestions),
            confidence_score=confidence,
            patterns_considered=len(patterns),
            content_analysis=analysis,
        )

    @staticmethod
    def _content_suggestions(data: Dict[str, Any], analysis: ContentAnalysis) -> List[str]:
        suggestions = []

        length_change = data.get("length_change")
        prefers_concise = data.get("preferred_length") == "concise" or (
            _is_number(length_change) and length_change < 0
        )
        if prefers_concise and analysis.word_count > CONCISE_SUGGESTION_WORD_LIMIT:
            suggestions.append("Consider making this content more concise based on your preferences")

        prefers_data = data.get("data_usage") == "heavy" or data.get("added_numbers") is True
        if prefers_data and not analysis.has_numbers:
            suggestions.append("You typically include more data points - consider adding specific metrics")

        return suggestions

    @staticmethod
    def _structure_suggestions(data: Dict[str, Any], analysis: ContentAnalysis) -> List[str]:
        prefers_bullets = data.get("structure_preference") == "bullet_points" or data.get("added_bullets") is True
        if prefers_bullets and not analysis.has_bullets:
            return ["You usually prefer bullet points for better readability"]
        return []

    @staticmethod
    def _style_suggestions(data: Dict[str, Any], slide_type: str) -> List[str]:
        suggestions = []

        tone = data.get("tone_preference") or data.get("tone")
        if tone == "professional" and slide_type == "funding_ask":
            suggestions.append("Maintain professional tone for investor appeal")

        industries = data.get("industry_focus")
        if not isinstance(industries, list):
            industries = [data.get("industry")]
        industries = [i for i in industries if isinstance(i, str) and i]
        if industries and slide_type == "problem":
            suggestions.append(f"Consider {industries[0]}-specific pain points based on your focus")

        return suggestions

    @staticmethod
    def _correction_suggestions(data: Dict[str, Any]) -> List[str]:
        aspect = data.get("aspect") or "general"
        if data.get("feedback_type") == "negative" and data.get("suggestion"):
            return [f"Address earlier feedback on {aspect}: {data['suggestion']}"]
        if data.get("feedback_type") == "positive":
            return [f"Keep the {aspect} approach that received positive feedback"]
        return []
