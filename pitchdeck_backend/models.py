"""
Data models and schemas for the Pitch Deck learning layer.

Three groups:
- Typed event payloads: one model per event type, combined into the
  EventContent tagged union (discriminated by ``event_type``).
- Store snapshots returned by the repositories (ContextEvent, LearningPatternRecord).
- Derived results: behaviour profiles, recommendations, prompt enhancements.

Payload models accept both camelCase (as sent by the web client) and
snake_case keys; they are stored snake_case.
"""

import logging
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, computed_field
from pydantic.alias_generators import to_camel

from .exceptions import InvalidEventTypeError

logger = logging.getLogger(__name__)

EventType = Literal["user_input", "ai_generation", "user_edit", "feedback", "chatbot_interaction"]
LearningScope = Literal["deck", "project", "global"]
PatternType = Literal["content_preference", "style_preference", "correction_pattern"]
Priority = Literal["high", "medium", "low"]
FeedbackType = Literal["positive", "negative", "neutral"]
SatisfactionAction = Literal["accepted", "rejected", "modified"]


# =============================================================================
# Event Payloads (tagged union)
# =============================================================================

class PayloadModel(BaseModel):
    """Base for client-supplied payloads: camelCase or snake_case keys, unknown keys dropped."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class EventContentBase(PayloadModel):
    """Fields any event may carry; read by the style analysis."""
    slide_type: Optional[str] = None
    industry: Optional[str] = None
    tone: Optional[str] = None


class EditContent(EventContentBase):
    """A user edit of slide text, enriched with before/after signals."""
    event_type: Literal["user_edit"] = "user_edit"
    before: str = ""
    after: str = ""
    edit_type: str = "content_modification"
    time_spent: float = 0.0
    length_change: float = 0.0
    added_bullets: bool = False
    added_numbers: bool = False
    tone_change: Optional[str] = None
    added_paragraphs: bool = False
    mixed_format: bool = False
    formal_language: bool = False
    conversational_tone: bool = False
    technical_terms: bool = False
    added_metrics: bool = False


class FeedbackContent(EventContentBase):
    """Explicit feedback on generated content."""
    event_type: Literal["feedback"] = "feedback"
    feedback_type: FeedbackType = "neutral"
    aspect: str = "general"
    suggestion: str = ""
    rating: Optional[float] = None
    sentiment: FeedbackType = "neutral"


class FocusAreas(PayloadModel):
    primary_focus: Optional[str] = None
    distribution: Dict[str, int] = Field(default_factory=dict)
    breadth: int = 0


class SessionSummary(PayloadModel):
    """Synthesized when a tracking session ends or expires."""
    duration_seconds: float = 0.0
    action_counts: Dict[str, int] = Field(default_factory=dict)
    focus_areas: FocusAreas = Field(default_factory=FocusAreas)
    productivity: float = 0.0


class UserInputContent(EventContentBase):
    """Free-form input (wizard answers, prompts) and session summaries."""
    event_type: Literal["user_input"] = "user_input"
    input_length: int = 0
    complexity: float = 0.0
    session_summary: Optional[SessionSummary] = None


class ChatContent(EventContentBase):
    """A chatbot exchange, optionally carrying explicit preference signals."""
    event_type: Literal["chatbot_interaction"] = "chatbot_interaction"
    user_message: str = ""
    ai_response: str = ""
    satisfaction: Optional[float] = None
    follow_up_action: Optional[str] = None
    request_type: str = "general"
    message_length: int = 0
    response_length: int = 0
    content_preferences: Optional[Dict[str, Any]] = None
    style_preferences: Optional[Dict[str, Any]] = None


class GenerationContent(EventContentBase):
    """An AI generation or regeneration request."""
    event_type: Literal["ai_generation"] = "ai_generation"
    regeneration: bool = False
    user_feedback: Optional[str] = None
    model_used: Optional[str] = None
    provider: Optional[str] = None
    success: Optional[bool] = None
    enhancement_confidence: Optional[float] = None


EventContent = Annotated[
    Union[EditContent, FeedbackContent, UserInputContent, ChatContent, GenerationContent],
    Field(discriminator="event_type"),
]

CONTENT_MODELS = {
    "user_edit": EditContent,
    "feedback": FeedbackContent,
    "user_input": UserInputContent,
    "chatbot_interaction": ChatContent,
    "ai_generation": GenerationContent,
}


def parse_event_content(event_type: str, payload: Any) -> EventContent:
    """
    Build the typed payload for an event type.

    Malformed fields are dropped and fall back to their neutral defaults
    instead of rejecting the whole event.
    """
    model = CONTENT_MODELS.get(event_type)
    if model is None:
        raise InvalidEventTypeError(event_type)

    data = dict(payload) if isinstance(payload, Mapping) else {}
    data.pop("event_type", None)
    data.pop("eventType", None)

    try:
        return model.model_validate(data)
    except ValidationError as e:
        bad_keys = {err["loc"][0] for err in e.errors() if err.get("loc")}
        logger.warning(f"Defaulting malformed {event_type} fields: {sorted(map(str, bad_keys))}")
        return model.model_validate({k: v for k, v in data.items() if k not in bad_keys})


def dump_event_content(content: EventContent) -> Dict[str, Any]:
    """Storage form of a payload (snake_case, no tag, no empty optionals)."""
    return content.model_dump(mode="json", exclude={"event_type"}, exclude_none=True)


# =============================================================================
# Tracked Actions & Sessions
# =============================================================================

class UserAction(BaseModel):
    """One user action as seen by the context tracker."""
    user_id: str
    project_id: str
    deck_id: Optional[str] = None
    slide_id: Optional[str] = None
    content: EventContent
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    session_id: Optional[str] = None

    @computed_field
    @property
    def event_type(self) -> str:
        return self.content.event_type


@dataclass
class SessionContext:
    """In-memory state of a user's tracking session."""
    session_id: str
    user_id: str
    start_time: datetime
    last_activity: datetime
    actions: List[UserAction] = field(default_factory=list)
    current_focus: Dict[str, Optional[str]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "user_id": self.user_id,
            "start_time": self.start_time.isoformat(),
            "last_activity": self.last_activity.isoformat(),
            "actions_count": len(self.actions),
            "recent_actions": [
                {"event_type": a.event_type, "deck_id": a.deck_id, "slide_id": a.slide_id,
                 "timestamp": a.timestamp.isoformat()}
                for a in self.actions[-10:]
            ],
            "current_focus": dict(self.current_focus),
        }


# =============================================================================
# Store Snapshots
# =============================================================================

class ContextEvent(BaseModel):
    """Detached copy of a persisted event with its typed payload."""
    id: str
    user_id: str
    project_id: str
    deck_id: Optional[str] = None
    slide_id: Optional[str] = None
    learning_scope: LearningScope
    content: EventContent
    created_at: datetime

    @computed_field
    @property
    def event_type(self) -> str:
        return self.content.event_type

    @classmethod
    def from_row(cls, row) -> "ContextEvent":
        return cls(
            id=row.id,
            user_id=row.user_id,
            project_id=row.project_id,
            deck_id=row.deck_id,
            slide_id=row.slide_id,
            learning_scope=row.learning_scope,
            content=parse_event_content(row.event_type, row.content),
            created_at=row.created_at,
        )


class LearningPatternRecord(BaseModel):
    """Detached copy of a learned pattern row."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    scope_type: LearningScope
    scope_id: Optional[str] = None
    pattern_type: PatternType
    pattern_data: Dict[str, Any] = Field(default_factory=dict)
    confidence_score: float
    last_reinforced: datetime
    created_at: datetime


# =============================================================================
# Behaviour Profile
# =============================================================================

class ContentPreferences(BaseModel):
    # None means no edit history to learn from
    preferred_length: Optional[Literal["concise", "detailed", "comprehensive"]] = None
    writing_style: Literal["formal", "conversational", "technical"] = "formal"
    data_usage: Literal["minimal", "moderate", "heavy"] = "moderate"
    structure_preference: Literal["bullet_points", "paragraphs", "mixed"] = "mixed"


class CorrectionPatterns(BaseModel):
    common_edits: List[str] = Field(default_factory=list)
    frequent_feedback: List[str] = Field(default_factory=list)
    rejected_suggestions: List[str] = Field(default_factory=list)


class StylePreferences(BaseModel):
    tone_preference: Literal["professional", "persuasive", "analytical"] = "professional"
    industry_focus: List[str] = Field(default_factory=list)
    slide_type_expertise: List[str] = Field(default_factory=list)


class UserBehaviorProfile(BaseModel):
    """On-demand summary of a user's inferred preferences. Defaults mean 'no signal'."""
    content_preferences: ContentPreferences = Field(default_factory=ContentPreferences)
    correction_patterns: CorrectionPatterns = Field(default_factory=CorrectionPatterns)
    style_preferences: StylePreferences = Field(default_factory=StylePreferences)


# =============================================================================
# Recommendations & Prompt Enhancement
# =============================================================================

class ContentAnalysis(BaseModel):
    length: int = 0
    word_count: int = 0
    has_bullets: bool = False
    has_numbers: bool = False
    has_percentages: bool = False
    has_currency: bool = False
    sentence_count: int = 0
    complexity: float = 0.0


class PatternRecommendations(BaseModel):
    """Suggestions derived directly from stored patterns for one piece of content."""
    content_suggestions: List[str] = Field(default_factory=list)
    structure_suggestions: List[str] = Field(default_factory=list)
    style_suggestions: List[str] = Field(default_factory=list)
    correction_suggestions: List[str] = Field(default_factory=list)
    confidence_score: float = 0.0
    patterns_considered: int = 0
    content_analysis: ContentAnalysis = Field(default_factory=ContentAnalysis)


class ContentRecommendation(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    type: Literal["content", "structure", "style", "data"]
    priority: Priority
    suggestion: str
    reasoning: str
    confidence: float
    actionable: bool = True


class PromptAdaptations(BaseModel):
    tone: str = "professional"
    structure: str = "mixed"
    detail_level: str = "moderate"
    data_emphasis: str = "moderate"


class PromptEnhancement(BaseModel):
    """Personalization overlay handed to the AI provider gateway."""
    enhanced_prompt: str = ""
    personalizations: List[str] = Field(default_factory=list)
    confidence_score: float = 0.1
    adaptations: PromptAdaptations = Field(default_factory=PromptAdaptations)


class SlideSnapshot(PayloadModel):
    """Slide data supplied by the CRUD layer when asking for deck-level recommendations."""
    id: str
    title: str = ""
    slide_type: str = "cover"
    content: str = ""


# =============================================================================
# AI Generation
# =============================================================================

class GenerationResult(BaseModel):
    success: bool
    content: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    provider: str = "none"
    model: str = "none"


# =============================================================================
# Authentication Models
# =============================================================================

class User(BaseModel):
    """Identity established by the external identity provider."""
    uid: str
    email: Optional[str] = None
