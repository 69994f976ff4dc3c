"""
Recommendation Engine for the Pitch Deck learning layer.

Combines a user's behaviour profile with fixed slide heuristics to produce:
- ranked, actionable recommendations for a slide being edited
- a personalization overlay (prompt addendum + adaptations) for generation
"""

import logging
from typing import Any, Dict, List, Optional

from .constants import (
    CONCISE_WORD_LIMIT,
    DEFAULT_DATA_USAGE,
    DEFAULT_DETAIL_LEVEL,
    DEFAULT_STRUCTURE_PREFERENCE,
    DEFAULT_TONE_PREFERENCE,
    DETAILED_WORD_MINIMUM,
    MIN_PERSONALIZATION_CONFIDENCE,
    PERSONALIZATION_FACTOR_WEIGHT,
    PRIORITY_RANK,
    SLIDE_DATA_REQUIREMENTS,
)
from .content_signals import (
    has_bullet_points,
    has_data_points,
    has_data_type,
    has_structured_problem_format,
)
from .models import (
    ContentRecommendation,
    PromptAdaptations,
    PromptEnhancement,
    UserBehaviorProfile,
)
from .pattern_analyzer import PatternAnalyzer

logger = logging.getLogger(__name__)


def rank_recommendations(
    recommendations: List[ContentRecommendation],
    limit: int = 8
) -> List[ContentRecommendation]:
    """Highest priority first, then highest confidence; keeps the first `limit`."""
    ranked = sorted(
        recommendations,
        key=lambda r: (-PRIORITY_RANK.get(r.priority, 0), -r.confidence)
    )
    return ranked[:limit]


def calculate_personalization_confidence(profile: UserBehaviorProfile) -> float:
    """0.25 for each dimension where the user deviates from the defaults; 0.1 with no deviation."""
    content = profile.content_preferences
    factors = [
        content.preferred_length is not None and content.preferred_length != "detailed",
        content.structure_preference != DEFAULT_STRUCTURE_PREFERENCE,
        profile.style_preferences.tone_preference != DEFAULT_TONE_PREFERENCE,
        content.data_usage != DEFAULT_DATA_USAGE,
    ]
    deviations = sum(1 for f in factors if f)
    if not deviations:
        return MIN_PERSONALIZATION_CONFIDENCE
    return min(1.0, deviations * PERSONALIZATION_FACTOR_WEIGHT)


class RecommendationEngine:
    """
    Produces slide recommendations and prompt personalization from learned behaviour.
    """

    def __init__(self, pattern_analyzer: PatternAnalyzer, max_recommendations: int = 8):
        self.analyzer = pattern_analyzer
        self.max_recommendations = max_recommendations

    async def generate_contextual_recommendations(
        self,
        user_id: str,
        slide_type: str,
        content: str,
        deck_context: Optional[Dict[str, Any]] = None,
        scope_type: str = "deck",
        scope_id: Optional[str] = None
    ) -> List[ContentRecommendation]:
        """
        Ranked recommendations for one slide.

        Args:
            user_id: User whose profile to use
            slide_type: Slide type (problem, market, funding_ask, ...)
            content: Current slide text
            deck_context: Deck facts, e.g. {"industry": "healthcare"}
            scope_type: Scope of the behaviour profile
            scope_id: Deck or project id for the scope

        Returns:
            Up to max_recommendations items; [] on failure
        """
        logger.info(f"Generating recommendations for {slide_type} slide")
        content = content or ""

        try:
            profile = await self.analyzer.analyze_user_behavior(user_id, scope_type, scope_id)

            candidates = []
            candidates.extend(self._content_recommendations(profile, content))
            candidates.extend(self._structure_recommendations(profile, content, slide_type))
            candidates.extend(self._style_recommendations(profile, slide_type, deck_context or {}))
            candidates.extend(self._data_recommendations(content, slide_type))

            return rank_recommendations(candidates, self.max_recommendations)
        except Exception as e:
            logger.error(f"Failed to generate recommendations for user {user_id}: {e}", exc_info=True)
            return []

    async def enhance_prompt_with_context(
        self,
        user_id: str,
        base_prompt_context: Optional[Dict[str, Any]] = None,
        scope_type: str = "deck",
        scope_id: Optional[str] = None
    ) -> PromptEnhancement:
        """Personalization overlay for a generation request; the neutral overlay on failure."""
        slide_type = (base_prompt_context or {}).get("slide_type", "slide")
        logger.info(f"Enhancing prompt with user context for {slide_type}")

        try:
            profile = await self.analyzer.analyze_user_behavior(user_id, scope_type, scope_id)
            return self.build_enhanced_prompt(profile)
        except Exception as e:
            logger.error(f"Failed to enhance prompt for user {user_id}: {e}", exc_info=True)
            return PromptEnhancement()

    async def track_user_satisfaction(
        self,
        user_id: str,
        recommendation_id: str,
        action: str,
        feedback: Optional[str] = None
    ) -> None:
        # Logged only; satisfaction does not feed back into learning yet
        logger.info(f"User {user_id} {action} recommendation {recommendation_id}")
        if feedback:
            logger.debug(f"Recommendation {recommendation_id} feedback: {feedback}")

    # ==========================================================================
    # Candidate Recommendations
    # ==========================================================================

    @staticmethod
    def _content_recommendations(profile: UserBehaviorProfile, content: str) -> List[ContentRecommendation]:
        recommendations = []
        word_count = len(content.split())
        preferred_length = profile.content_preferences.preferred_length

        if preferred_length == "concise" and word_count > CONCISE_WORD_LIMIT:
            recommendations.append(ContentRecommendation(
                type="content",
                priority="high",
                suggestion="Consider condensing this content to match your preference for concise slides",
                reasoning="Your editing history shows a preference for shorter, more focused content",
                confidence=0.8,
            ))
        elif preferred_length == "detailed" and word_count < DETAILED_WORD_MINIMUM:
            recommendations.append(ContentRecommendation(
                type="content",
                priority="medium",
                suggestion="You might want to add more detail to this slide based on your typical style",
                reasoning="Your previous slides tend to be more comprehensive",
                confidence=0.7,
            ))

        if profile.content_preferences.data_usage == "heavy" and not has_data_points(content):
            recommendations.append(ContentRecommendation(
                type="data",
                priority="high",
                suggestion="Consider adding specific metrics, percentages, or data points",
                reasoning="You typically include substantial data to support your points",
                confidence=0.85,
            ))

        return recommendations

    @staticmethod
    def _structure_recommendations(
        profile: UserBehaviorProfile,
        content: str,
        slide_type: str
    ) -> List[ContentRecommendation]:
        recommendations = []

        if profile.content_preferences.structure_preference == "bullet_points" and not has_bullet_points(content):
            recommendations.append(ContentRecommendation(
                type="structure",
                priority="medium",
                suggestion="Consider formatting this content as bullet points for better readability",
                reasoning="You consistently prefer bullet point formatting in your slides",
                confidence=0.75,
            ))

        if slide_type == "problem" and not has_structured_problem_format(content):
            recommendations.append(ContentRecommendation(
                type="structure",
                priority="high",
                suggestion="Structure this as: Current situation → Pain points → Impact/Cost",
                reasoning="Problem slides are most effective with clear problem-impact structure",
                confidence=0.9,
            ))

        return recommendations

    @staticmethod
    def _style_recommendations(
        profile: UserBehaviorProfile,
        slide_type: str,
        deck_context: Dict[str, Any]
    ) -> List[ContentRecommendation]:
        recommendations = []

        if profile.style_preferences.tone_preference == "professional" and slide_type == "funding_ask":
            recommendations.append(ContentRecommendation(
                type="style",
                priority="high",
                suggestion="Maintain formal, professional language for investor credibility",
                reasoning="Your style preference aligns with investor expectations",
                confidence=0.9,
            ))

        industry = deck_context.get("industry")
        if industry and industry in profile.style_preferences.industry_focus:
            recommendations.append(ContentRecommendation(
                type="style",
                priority="medium",
                suggestion=f"Leverage your {industry} expertise with industry-specific terminology",
                reasoning=f"You have demonstrated expertise in {industry}",
                confidence=0.8,
            ))

        return recommendations

    @staticmethod
    def _data_recommendations(content: str, slide_type: str) -> List[ContentRecommendation]:
        return [
            ContentRecommendation(
                type="data",
                priority=requirement["priority"],
                suggestion=requirement["suggestion"],
                reasoning=requirement["reasoning"],
                confidence=0.85,
            )
            for requirement in SLIDE_DATA_REQUIREMENTS.get(slide_type, [])
            if not has_data_type(content, requirement["type"])
        ]

    # ==========================================================================
    # Prompt Personalization
    # ==========================================================================

    @staticmethod
    def build_enhanced_prompt(profile: UserBehaviorProfile) -> PromptEnhancement:
        content = profile.content_preferences
        style = profile.style_preferences
        personalizations = []
        instructions = []

        if style.tone_preference:
            personalizations.append(f"Tone: {style.tone_preference}")
            instructions.append(f"Use a {style.tone_preference} tone throughout.")

        if content.structure_preference == "bullet_points":
            personalizations.append("Structure: Bullet points preferred")
            instructions.append("Format content using clear bullet points for readability.")

        if content.preferred_length == "concise":
            personalizations.append("Length: Concise content preferred")
            instructions.append("Keep content concise and focused on key points.")
        elif content.preferred_length == "detailed":
            personalizations.append("Length: Detailed content preferred")
            instructions.append("Provide comprehensive details and thorough explanations.")

        if content.data_usage == "heavy":
            personalizations.append("Data: Heavy use of metrics and statistics")
            instructions.append("Include specific data points, metrics, and quantifiable information.")

        return PromptEnhancement(
            enhanced_prompt="".join(f"\n{line}" for line in instructions),
            personalizations=personalizations,
            confidence_score=calculate_personalization_confidence(profile),
            adaptations=PromptAdaptations(
                tone=style.tone_preference or DEFAULT_TONE_PREFERENCE,
                structure=content.structure_preference or DEFAULT_STRUCTURE_PREFERENCE,
                detail_level=content.preferred_length or DEFAULT_DETAIL_LEVEL,
                data_emphasis=content.data_usage or DEFAULT_DATA_USAGE,
            ),
        )
