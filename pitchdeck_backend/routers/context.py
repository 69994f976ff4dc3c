"""
Context Router for the learning layer.

Endpoints:
- POST /context/events - Record a client-reported event
- GET /context/learning-patterns - All patterns of the current user
- GET /context/learning-patterns/project/{project_id} - Project + global patterns
- POST /context/learning-patterns/project/{project_id} - Manually set a project pattern
- POST /context/context-summary/deck/{deck_id} - Deck learning summary
- POST /context/recommendations - Ranked recommendations for a slide
- POST /context/prompt-enhancement - Personalization overlay for generation
- POST /context/recommendations/{recommendation_id}/satisfaction - Accept/reject a recommendation
- POST /context/track/edit, /track/feedback, /track/chat - Specialized trackers
- GET /context/session/current - Current tracking session
- POST /context/session/start, /session/end - Explicit session control
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from ..context_service import ContextService
from ..dependencies import get_context_service, get_current_user
from ..models import (
    ContextEvent,
    EventType,
    FeedbackType,
    PatternType,
    SatisfactionAction,
    SlideSnapshot,
    User,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/context",
    tags=["context"],
    responses={401: {"description": "Unauthorized"}},
)


# =============================================================================
# Request Models
# =============================================================================

class RecordEventRequest(BaseModel):
    """A client-reported event; content keys may be camelCase or snake_case."""
    project_id: str
    deck_id: Optional[str] = None
    slide_id: Optional[str] = None
    event_type: EventType
    content: Dict[str, Any] = Field(default_factory=dict)
    learning_scope: Optional[str] = None


class UpdatePatternRequest(BaseModel):
    pattern_data: Dict[str, Any]
    confidence_score: Optional[float] = None
    pattern_type: PatternType = "content_preference"


class DeckSummaryRequest(BaseModel):
    """Deck facts the CRUD service passes along with a summary request."""
    project_id: Optional[str] = None
    slides: List[SlideSnapshot] = Field(default_factory=list)
    deck_context: Optional[Dict[str, Any]] = None


class RecommendationsRequest(BaseModel):
    slide_type: str
    content: str = ""
    deck_context: Optional[Dict[str, Any]] = None
    scope_type: str = "deck"
    scope_id: Optional[str] = None


class PromptEnhancementRequest(BaseModel):
    prompt_context: Dict[str, Any] = Field(default_factory=dict)
    scope_type: str = "deck"
    scope_id: Optional[str] = None


class SatisfactionRequest(BaseModel):
    action: SatisfactionAction
    feedback: Optional[str] = None


class TrackEditRequest(BaseModel):
    project_id: str
    deck_id: Optional[str] = None
    slide_id: Optional[str] = None
    before: str
    after: str
    edit_type: str = "content_modification"
    time_spent: float = 0.0
    slide_type: Optional[str] = None


class TrackFeedbackRequest(BaseModel):
    project_id: str
    deck_id: Optional[str] = None
    slide_id: Optional[str] = None
    feedback_type: FeedbackType
    aspect: str = "general"
    suggestion: Optional[str] = None
    rating: Optional[float] = None
    slide_type: Optional[str] = None


class TrackChatRequest(BaseModel):
    project_id: str
    deck_id: Optional[str] = None
    slide_id: Optional[str] = None
    user_message: str
    ai_response: str
    satisfaction: Optional[float] = None
    follow_up_action: Optional[str] = None
    content_preferences: Optional[Dict[str, Any]] = None
    style_preferences: Optional[Dict[str, Any]] = None


class SessionEndRequest(BaseModel):
    session_id: str


def _event_response(event: Optional[ContextEvent]) -> Dict[str, Any]:
    if event is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Event could not be recorded",
        )
    return event.model_dump(mode="json")


# =============================================================================
# Event Recording Endpoints
# =============================================================================

@router.post("/events", status_code=status.HTTP_201_CREATED)
async def record_event(
    request: RecordEventRequest,
    current_user: User = Depends(get_current_user),
    service: ContextService = Depends(get_context_service)
):
    """
    Record a user event and learn from it.

    Args:
        request: Event details
        current_user: Authenticated user
        service: Context service

    Returns:
        The stored event
    """
    event = await service.record_event(
        user_id=current_user.uid,
        project_id=request.project_id,
        event_type=request.event_type,
        content=request.content,
        deck_id=request.deck_id,
        slide_id=request.slide_id,
        learning_scope=request.learning_scope,
    )
    return _event_response(event)


@router.post("/track/edit", status_code=status.HTTP_201_CREATED)
async def track_edit(
    request: TrackEditRequest,
    current_user: User = Depends(get_current_user),
    service: ContextService = Depends(get_context_service)
):
    """Track a slide edit; length, bullet, number and tone signals are derived server-side."""
    event = await service.tracker.track_slide_edit(
        user_id=current_user.uid,
        project_id=request.project_id,
        deck_id=request.deck_id,
        slide_id=request.slide_id,
        before=request.before,
        after=request.after,
        edit_type=request.edit_type,
        time_spent=request.time_spent,
        slide_type=request.slide_type,
    )
    return _event_response(event)


@router.post("/track/feedback", status_code=status.HTTP_201_CREATED)
async def track_feedback(
    request: TrackFeedbackRequest,
    current_user: User = Depends(get_current_user),
    service: ContextService = Depends(get_context_service)
):
    event = await service.tracker.track_feedback(
        user_id=current_user.uid,
        project_id=request.project_id,
        deck_id=request.deck_id,
        slide_id=request.slide_id,
        feedback_type=request.feedback_type,
        aspect=request.aspect,
        suggestion=request.suggestion,
        rating=request.rating,
        slide_type=request.slide_type,
    )
    return _event_response(event)


@router.post("/track/chat", status_code=status.HTTP_201_CREATED)
async def track_chat(
    request: TrackChatRequest,
    current_user: User = Depends(get_current_user),
    service: ContextService = Depends(get_context_service)
):
    event = await service.tracker.track_chat_interaction(
        user_id=current_user.uid,
        project_id=request.project_id,
        deck_id=request.deck_id,
        slide_id=request.slide_id,
        user_message=request.user_message,
        ai_response=request.ai_response,
        satisfaction=request.satisfaction,
        follow_up_action=request.follow_up_action,
        content_preferences=request.content_preferences,
        style_preferences=request.style_preferences,
    )
    return _event_response(event)


# =============================================================================
# Learning Pattern Endpoints
# =============================================================================

@router.get("/learning-patterns")
async def get_learning_patterns(
    current_user: User = Depends(get_current_user),
    service: ContextService = Depends(get_context_service)
):
    """All learned patterns of the current user, most confident first."""
    patterns = await service.get_user_learning_patterns(current_user.uid)
    return {"patterns": [p.model_dump(mode="json") for p in patterns]}


@router.get("/learning-patterns/project/{project_id}")
async def get_project_learning_patterns(
    project_id: str,
    current_user: User = Depends(get_current_user),
    service: ContextService = Depends(get_context_service)
):
    patterns = await service.get_project_learning_patterns(project_id, current_user.uid)
    return {"project_id": project_id, "patterns": [p.model_dump(mode="json") for p in patterns]}


@router.post("/learning-patterns/project/{project_id}")
async def update_project_learning_pattern(
    project_id: str,
    request: UpdatePatternRequest,
    current_user: User = Depends(get_current_user),
    service: ContextService = Depends(get_context_service)
):
    """
    Manually set a project-level pattern.

    Args:
        project_id: Project to tune
        request: Pattern data to merge and optional confidence
        current_user: Authenticated user
        service: Context service

    Returns:
        The stored pattern
    """
    pattern = await service.update_project_learning_pattern(
        project_id=project_id,
        user_id=current_user.uid,
        pattern_data=request.pattern_data,
        confidence_score=request.confidence_score,
        pattern_type=request.pattern_type,
    )
    logger.info(f"User {current_user.uid} updated {request.pattern_type} pattern for project {project_id}")
    return pattern.model_dump(mode="json")


# =============================================================================
# Recommendation Endpoints
# =============================================================================

@router.post("/context-summary/deck/{deck_id}")
async def get_deck_context_summary(
    deck_id: str,
    request: DeckSummaryRequest,
    current_user: User = Depends(get_current_user),
    service: ContextService = Depends(get_context_service)
):
    return await service.get_deck_context_summary(
        deck_id=deck_id,
        user_id=current_user.uid,
        project_id=request.project_id,
        slides=request.slides,
        deck_context=request.deck_context,
    )


@router.post("/recommendations")
async def get_recommendations(
    request: RecommendationsRequest,
    current_user: User = Depends(get_current_user),
    service: ContextService = Depends(get_context_service)
):
    result = await service.get_slide_recommendations(
        user_id=current_user.uid,
        slide_type=request.slide_type,
        content=request.content,
        deck_context=request.deck_context,
        scope_type=request.scope_type,
        scope_id=request.scope_id,
    )
    return {
        "recommendations": [r.model_dump() for r in result["recommendations"]],
        "pattern_insights": result["pattern_insights"].model_dump(),
    }


@router.post("/prompt-enhancement")
async def get_prompt_enhancement(
    request: PromptEnhancementRequest,
    current_user: User = Depends(get_current_user),
    service: ContextService = Depends(get_context_service)
):
    enhancement = await service.get_prompt_enhancement(
        user_id=current_user.uid,
        prompt_context=request.prompt_context,
        scope_type=request.scope_type,
        scope_id=request.scope_id,
    )
    return enhancement.model_dump()


@router.post("/recommendations/{recommendation_id}/satisfaction")
async def track_recommendation_satisfaction(
    recommendation_id: str,
    request: SatisfactionRequest,
    current_user: User = Depends(get_current_user),
    service: ContextService = Depends(get_context_service)
):
    await service.track_recommendation_satisfaction(
        current_user.uid, recommendation_id, request.action, request.feedback
    )
    return {"recommendation_id": recommendation_id, "action": request.action, "recorded": True}


# =============================================================================
# Session Endpoints
# =============================================================================

@router.get("/session/current")
async def get_current_session(
    session_id: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    service: ContextService = Depends(get_context_service)
):
    session = await service.get_current_session(current_user.uid, session_id)
    return {"session": session.to_dict() if session else None}


@router.post("/session/start", status_code=status.HTTP_201_CREATED)
async def start_session(
    current_user: User = Depends(get_current_user),
    service: ContextService = Depends(get_context_service)
):
    session_id = service.start_session(current_user.uid)
    return {"session_id": session_id}


@router.post("/session/end")
async def end_session(
    request: SessionEndRequest,
    current_user: User = Depends(get_current_user),
    service: ContextService = Depends(get_context_service)
):
    """End a session and record its summary. 404 if it is unknown or already expired."""
    await service.end_session(current_user.uid, request.session_id)
    return {"session_id": request.session_id, "ended": True}
