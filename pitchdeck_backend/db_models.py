"""
SQLAlchemy database models for the learning layer.

Maps the event store and pattern store to relational tables.
Separate from Pydantic models (models.py) which handle API validation
and the typed event payloads.

Projects, decks and slides live in the CRUD service's schema; their ids are
stored here as plain strings without foreign keys.
"""

import uuid
from datetime import datetime

from sqlalchemy import Column, String, Float, DateTime, JSON, Index, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _new_id() -> str:
    return str(uuid.uuid4())


class DBContextEvent(Base):
    """
    Append-only record of a tracked user action.

    Rows are written once by the context tracker and never updated; retention
    is handled outside this service.
    """
    __tablename__ = "context_events"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(255), nullable=False, index=True)
    project_id = Column(String(36), nullable=False, index=True)
    deck_id = Column(String(36), nullable=True, index=True)
    slide_id = Column(String(36), nullable=True)

    event_type = Column(String(50), nullable=False)  # user_input, ai_generation, user_edit, feedback, chatbot_interaction
    content = Column(JSON, nullable=False, default=dict)  # Payload shape depends on event_type
    learning_scope = Column(String(20), nullable=False, default="deck")  # deck, project, global

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    __table_args__ = (
        Index('idx_context_event_user_created', 'user_id', 'created_at'),
        Index('idx_context_event_deck_created', 'deck_id', 'created_at'),
        Index('idx_context_event_project_created', 'project_id', 'created_at'),
        CheckConstraint(
            "event_type IN ('user_input', 'ai_generation', 'user_edit', 'feedback', 'chatbot_interaction')",
            name='ck_context_event_type'
        ),
        CheckConstraint("learning_scope IN ('deck', 'project', 'global')", name='ck_context_event_scope'),
    )

    def __repr__(self):
        return f"<DBContextEvent(id={self.id}, type='{self.event_type}', user='{self.user_id}', scope='{self.learning_scope}')>"


class DBLearningPattern(Base):
    """
    Learned per-user preference for one scope.

    Pattern types:
    - content_preference: length, bullets, numbers (from edits and chat)
    - style_preference: tone, industry, input complexity (from input and chat)
    - correction_pattern: feedback aspects and rejected suggestions

    One row per (user, scope_type, scope_id, pattern_type); corroborating events
    merge into pattern_data and raise confidence_score up to 1.0.
    """
    __tablename__ = "learning_patterns"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(255), nullable=False, index=True)
    scope_type = Column(String(20), nullable=False)  # deck, project, global
    scope_id = Column(String(36), nullable=True)  # deck_id, project_id, or NULL for global
    pattern_type = Column(String(50), nullable=False, index=True)

    pattern_data = Column(JSON, nullable=False, default=dict)
    confidence_score = Column(Float, nullable=False, default=0.5, index=True)

    last_reinforced = Column(DateTime, default=datetime.utcnow, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint('user_id', 'scope_type', 'scope_id', 'pattern_type', name='uq_learning_pattern_scope'),
        Index('idx_learning_pattern_user_scope', 'user_id', 'scope_type', 'scope_id'),
        CheckConstraint("scope_type IN ('deck', 'project', 'global')", name='ck_learning_pattern_scope'),
        CheckConstraint(
            "pattern_type IN ('content_preference', 'style_preference', 'correction_pattern')",
            name='ck_learning_pattern_type'
        ),
        CheckConstraint('confidence_score >= 0.0 AND confidence_score <= 1.0', name='ck_learning_pattern_confidence'),
    )

    def __repr__(self):
        return (
            f"<DBLearningPattern(user='{self.user_id}', type='{self.pattern_type}', "
            f"scope={self.scope_type}:{self.scope_id}, confidence={self.confidence_score:.2f})>"
        )
