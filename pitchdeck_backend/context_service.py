"""
Context Service - facade over the learning layer used by the HTTP routers.

Routes generic event recording through the context tracker, exposes the
pattern store for inspection and manual tuning, and assembles deck-level
context summaries.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from .constants import (
    DEFAULT_MANUAL_PATTERN_CONFIDENCE,
    LEARNING_SCOPES,
    SUMMARY_MAX_SLIDES,
    SUMMARY_RECENT_ACTIVITY,
    SUMMARY_RECOMMENDATIONS_PER_SLIDE,
)
from .context_tracker import ContextTracker
from .exceptions import InvalidScopeError, SessionNotFoundError
from .models import (
    ContentRecommendation,
    ContextEvent,
    LearningPatternRecord,
    PromptEnhancement,
    SessionContext,
    SlideSnapshot,
    UserAction,
    parse_event_content,
)
from .pattern_analyzer import PatternAnalyzer
from .recommendation_engine import RecommendationEngine
from .repository_interface import PatternRepository

logger = logging.getLogger(__name__)

# Edit volume above which the summary suggests leaning on generation instead
HEAVY_EDITING_EVENTS = 5
STRONG_PATTERN_CONFIDENCE = 0.8


def _clamp_confidence(value: float) -> float:
    return max(0.0, min(1.0, value))


class ContextService:
    """
    Entry point for the context endpoints.

    Project, deck and slide ownership is verified upstream by the CRUD
    service; here ids are taken as given.
    """

    def __init__(
        self,
        tracker: ContextTracker,
        analyzer: PatternAnalyzer,
        engine: RecommendationEngine,
        pattern_repository: PatternRepository
    ):
        self.tracker = tracker
        self.analyzer = analyzer
        self.engine = engine
        self.patterns = pattern_repository

    # =============================================================================
    # Events
    # =============================================================================

    async def record_event(
        self,
        user_id: str,
        project_id: str,
        event_type: str,
        content: Optional[Dict[str, Any]] = None,
        deck_id: Optional[str] = None,
        slide_id: Optional[str] = None,
        learning_scope: Optional[str] = None
    ) -> Optional[ContextEvent]:
        """
        Record a client-reported event.

        The payload is parsed into its typed form (malformed fields fall back
        to defaults) and tracked like any other action, so it is persisted once
        and reinforces patterns once.

        Raises:
            InvalidEventTypeError: event_type is unknown
            InvalidScopeError: learning_scope is given but unknown
        """
        logger.info(f"Recording event: {event_type} for user {user_id}")

        if learning_scope is not None and learning_scope not in LEARNING_SCOPES:
            raise InvalidScopeError(learning_scope)

        action = UserAction(
            user_id=user_id,
            project_id=project_id,
            deck_id=deck_id,
            slide_id=slide_id,
            content=parse_event_content(event_type, content),
            timestamp=self.tracker.clock(),
        )
        return await self.tracker.track_user_action(action, learning_scope)

    # =============================================================================
    # Learning Patterns
    # =============================================================================

    async def get_user_learning_patterns(self, user_id: str) -> List[LearningPatternRecord]:
        return await self.patterns.get_user_patterns(user_id)

    async def get_project_learning_patterns(self, project_id: str, user_id: str) -> List[LearningPatternRecord]:
        """Project-scoped patterns together with the user's global ones."""
        return await self.patterns.get_scoped_patterns(user_id, "project", project_id)

    async def update_project_learning_pattern(
        self,
        project_id: str,
        user_id: str,
        pattern_data: Dict[str, Any],
        confidence_score: Optional[float] = None,
        pattern_type: str = "content_preference"
    ) -> LearningPatternRecord:
        """
        Manually set a project-level pattern.

        Existing data is shallow-merged with the new keys; a given confidence
        replaces the stored one. New patterns start at 0.5 unless a
        confidence is given.
        """
        if confidence_score is not None:
            confidence_score = _clamp_confidence(confidence_score)

        existing = await self.patterns.find_pattern(user_id, pattern_type, "project", project_id)
        if existing:
            updated = await self.patterns.update_pattern(
                existing.id,
                {**existing.pattern_data, **pattern_data},
                existing.confidence_score if confidence_score is None else confidence_score,
            )
            if updated is not None:
                logger.info(f"Updated {pattern_type} pattern for project {project_id}")
                return updated

        logger.info(f"Created {pattern_type} pattern for project {project_id}")
        return await self.patterns.create_pattern(
            user_id,
            pattern_type,
            "project",
            project_id,
            dict(pattern_data),
            DEFAULT_MANUAL_PATTERN_CONFIDENCE if confidence_score is None else confidence_score,
        )

    # =============================================================================
    # Recommendations
    # =============================================================================

    async def get_slide_recommendations(
        self,
        user_id: str,
        slide_type: str,
        content: str,
        deck_context: Optional[Dict[str, Any]] = None,
        scope_type: str = "deck",
        scope_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """Ranked recommendations plus the raw pattern-based suggestions for one slide."""
        if scope_type not in LEARNING_SCOPES:
            raise InvalidScopeError(scope_type, scope_id)

        recommendations = await self.engine.generate_contextual_recommendations(
            user_id, slide_type, content, deck_context, scope_type, scope_id
        )
        pattern_insights = await self.analyzer.get_contextual_recommendations(
            user_id, slide_type, content, scope_type, scope_id
        )
        return {
            "recommendations": recommendations,
            "pattern_insights": pattern_insights,
        }

    async def get_prompt_enhancement(
        self,
        user_id: str,
        prompt_context: Dict[str, Any],
        scope_type: str = "deck",
        scope_id: Optional[str] = None
    ) -> PromptEnhancement:
        if scope_type not in LEARNING_SCOPES:
            raise InvalidScopeError(scope_type, scope_id)
        return await self.engine.enhance_prompt_with_context(user_id, prompt_context, scope_type, scope_id)

    async def track_recommendation_satisfaction(
        self,
        user_id: str,
        recommendation_id: str,
        action: str,
        feedback: Optional[str] = None
    ) -> None:
        await self.engine.track_user_satisfaction(user_id, recommendation_id, action, feedback)

    # =============================================================================
    # Sessions
    # =============================================================================

    def start_session(self, user_id: str) -> str:
        """Open a session with a server-generated id."""
        return self.tracker.start_session(user_id)

    async def end_session(self, user_id: str, session_id: str) -> None:
        """
        Raises:
            SessionNotFoundError: no such active session for this user
        """
        session = await self.tracker.get_session_context(user_id, session_id)
        if session is None or not await self.tracker.end_session(session_id):
            raise SessionNotFoundError(session_id)

    async def get_current_session(self, user_id: str, session_id: Optional[str] = None) -> Optional[SessionContext]:
        return await self.tracker.get_session_context(user_id, session_id)

    # =============================================================================
    # Deck Context Summary
    # =============================================================================

    async def get_deck_context_summary(
        self,
        deck_id: str,
        user_id: str,
        project_id: Optional[str] = None,
        slides: Sequence[SlideSnapshot] = (),
        deck_context: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Everything the editor needs to show about a deck's learning state.

        Args:
            deck_id: Deck being viewed
            user_id: Current user
            project_id: Owning project, for project-level patterns
            slides: Slides supplied by the CRUD service (first five get recommendations)
            deck_context: Deck facts such as industry

        Returns:
            Dict with behavior_profile, recent_activity, session_info,
            learning_patterns, activity_breakdown, insights, recommendations
            and last_activity
        """
        logger.info(f"Getting context summary for deck {deck_id}")

        behavior_profile = await self.analyzer.analyze_user_behavior(user_id, "deck", deck_id)
        recent_activity = await self.tracker.get_recent_activity(user_id, 24)
        session = await self.tracker.get_session_context(user_id)

        if project_id:
            patterns = await self.get_project_learning_patterns(project_id, user_id)
        else:
            patterns = await self.patterns.get_scoped_patterns(user_id, "global")

        session_info = None
        if session:
            session_info = {
                "session_id": session.session_id,
                "duration_seconds": (self.tracker.clock() - session.start_time).total_seconds(),
                "actions_count": len(session.actions),
                "current_focus": dict(session.current_focus),
            }

        return {
            "behavior_profile": behavior_profile.model_dump(),
            "recent_activity": [e.model_dump(mode="json") for e in recent_activity[:SUMMARY_RECENT_ACTIVITY]],
            "session_info": session_info,
            "learning_patterns": [
                {
                    "type": p.pattern_type,
                    "confidence": p.confidence_score,
                    "scope": p.scope_type,
                    "last_reinforced": p.last_reinforced.isoformat(),
                }
                for p in patterns
            ],
            "activity_breakdown": self._activity_breakdown(recent_activity),
            "insights": self._insights(recent_activity, patterns),
            "recommendations": await self._slide_recommendations(deck_id, user_id, slides, deck_context),
            "last_activity": recent_activity[0].created_at.isoformat() if recent_activity else None,
        }

    async def _slide_recommendations(
        self,
        deck_id: str,
        user_id: str,
        slides: Sequence[SlideSnapshot],
        deck_context: Optional[Dict[str, Any]]
    ) -> List[Dict[str, Any]]:
        results = []
        for slide in list(slides)[:SUMMARY_MAX_SLIDES]:
            recommendations: List[ContentRecommendation] = await self.engine.generate_contextual_recommendations(
                user_id, slide.slide_type, slide.content, deck_context, "deck", deck_id
            )
            results.append({
                "slide_id": slide.id,
                "slide_title": slide.title,
                "recommendations": [
                    r.model_dump() for r in recommendations[:SUMMARY_RECOMMENDATIONS_PER_SLIDE]
                ],
            })
        return results

    @staticmethod
    def _activity_breakdown(events: List[ContextEvent]) -> List[Dict[str, Any]]:
        counts: Dict[str, int] = {}
        for event in events:
            counts[event.event_type] = counts.get(event.event_type, 0) + 1
        return [{"type": t, "frequency": n} for t, n in counts.items()]

    @staticmethod
    def _insights(events: List[ContextEvent], patterns: List[LearningPatternRecord]) -> List[str]:
        insights = []
        if sum(1 for e in events if e.event_type == "user_edit") > HEAVY_EDITING_EVENTS:
            insights.append("Consider using AI suggestions to reduce manual editing")
        if any(p.confidence_score > STRONG_PATTERN_CONFIDENCE for p in patterns):
            insights.append("Strong user preferences detected - AI can be more personalized")
        return insights
