"""
Slide generation with personalization.

Wraps the AI provider gateway: the prompt context is enhanced with the
user's learned preferences before generation, and every generation is
tracked as an ai_generation event. Persisting the generated slide is the
CRUD service's job.
"""

import logging
from typing import Any, Dict, Optional

from .context_tracker import ContextTracker
from .llm_providers import AIProviderGateway
from .models import GenerationContent, GenerationResult, PromptEnhancement, UserAction
from .recommendation_engine import RecommendationEngine

logger = logging.getLogger(__name__)


class SlideGenerationService:
    """Personalized slide generation and regeneration."""

    def __init__(self, gateway: AIProviderGateway, engine: RecommendationEngine, tracker: ContextTracker):
        self.gateway = gateway
        self.engine = engine
        self.tracker = tracker

    async def generate_slide(
        self,
        user_id: str,
        project_id: str,
        slide_type: str,
        prompt_context: Optional[Dict[str, Any]] = None,
        deck_id: Optional[str] = None,
        slide_id: Optional[str] = None,
        user_feedback: Optional[str] = None,
        options: Optional[Dict[str, Any]] = None
    ) -> GenerationResult:
        """
        Generate (or regenerate, when user_feedback is given) one slide.

        Args:
            user_id: Requesting user
            project_id: Owning project
            slide_type: Slide type to generate
            prompt_context: Company facts (company_name, industry, target_market, previous_content)
            deck_id: Deck being edited; narrows personalization to the deck
            slide_id: Slide being regenerated
            user_feedback: Feedback to address on regeneration
            options: Gateway options (model, temperature, max_tokens)

        Returns:
            GenerationResult from the gateway
        """
        context = dict(prompt_context or {})
        context["slide_type"] = slide_type
        if user_feedback:
            context["user_feedback"] = user_feedback

        enhancement = await self._personalize(user_id, project_id, deck_id, context)
        if enhancement is not None:
            context["user_preferences"] = enhancement.adaptations.model_dump()
            context["personalization_prompt"] = enhancement.enhanced_prompt

        result = await self.gateway.generate_slide_content(slide_type, context, options)
        if result.success:
            logger.info(f"Generated {slide_type} slide with {result.provider} ({result.model})")
        else:
            logger.warning(f"Slide generation failed for {slide_type}: {result.error}")

        await self.tracker.track_user_action(UserAction(
            user_id=user_id,
            project_id=project_id,
            deck_id=deck_id,
            slide_id=slide_id,
            content=GenerationContent(
                slide_type=slide_type,
                industry=context.get("industry"),
                regeneration=bool(user_feedback),
                user_feedback=user_feedback,
                model_used=result.model,
                provider=result.provider,
                success=result.success,
                enhancement_confidence=enhancement.confidence_score if enhancement else None,
            ),
            timestamp=self.tracker.clock(),
        ))

        return result

    async def _personalize(
        self,
        user_id: str,
        project_id: str,
        deck_id: Optional[str],
        context: Dict[str, Any]
    ) -> Optional[PromptEnhancement]:
        scope_type, scope_id = ("deck", deck_id) if deck_id else ("project", project_id)
        try:
            return await self.engine.enhance_prompt_with_context(user_id, context, scope_type, scope_id)
        except Exception as e:
            logger.error(f"Personalization failed, generating without it: {e}", exc_info=True)
            return None
