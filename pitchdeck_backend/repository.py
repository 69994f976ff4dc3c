"""
SQLAlchemy implementations of the learning-layer repositories.

Each call opens its own short-lived session through get_db_context, so store
operations are independent and non-transactional with respect to each other.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import or_, and_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from .constants import LEARNING_SCOPES
from .database import get_db_context
from .db_models import DBContextEvent, DBLearningPattern
from .exceptions import InvalidScopeError, PersistenceError
from .models import ContextEvent, LearningPatternRecord
from .repository_interface import EventRepository, PatternRepository

logger = logging.getLogger(__name__)


def _check_scope(scope_type: str, scope_id: Optional[str]) -> None:
    if scope_type not in LEARNING_SCOPES:
        raise InvalidScopeError(scope_type, scope_id)


class SQLAlchemyEventRepository(EventRepository):
    """Event store backed by the context_events table."""

    def __init__(self, session_factory: sessionmaker = None):
        self._session_factory = session_factory

    async def add_event(
        self,
        user_id: str,
        project_id: str,
        deck_id: Optional[str],
        slide_id: Optional[str],
        event_type: str,
        content: Dict[str, Any],
        learning_scope: str,
        created_at: Optional[datetime] = None
    ) -> ContextEvent:
        try:
            with get_db_context(self._session_factory) as db:
                row = DBContextEvent(
                    user_id=user_id,
                    project_id=project_id,
                    deck_id=deck_id,
                    slide_id=slide_id,
                    event_type=event_type,
                    content=content,
                    learning_scope=learning_scope,
                    created_at=created_at or datetime.utcnow(),
                )
                db.add(row)
                db.flush()
                return ContextEvent.from_row(row)
        except SQLAlchemyError as e:
            logger.error(f"Failed to store {event_type} event for user {user_id}: {e}")
            raise PersistenceError("add_event", str(e)) from e

    async def get_recent_events(
        self,
        user_id: str,
        scope_type: str = "global",
        scope_id: Optional[str] = None,
        limit: int = 100
    ) -> List[ContextEvent]:
        _check_scope(scope_type, scope_id)
        try:
            with get_db_context(self._session_factory) as db:
                query = db.query(DBContextEvent).filter(DBContextEvent.user_id == user_id)

                if scope_type == "deck" and scope_id:
                    query = query.filter(DBContextEvent.deck_id == scope_id)
                elif scope_type == "project" and scope_id:
                    query = query.filter(DBContextEvent.project_id == scope_id)

                rows = query.order_by(DBContextEvent.created_at.desc()).limit(limit).all()
                return [ContextEvent.from_row(row) for row in rows]
        except SQLAlchemyError as e:
            raise PersistenceError("get_recent_events", str(e)) from e

    async def get_events_since(
        self,
        user_id: str,
        since: datetime,
        limit: int = 100
    ) -> List[ContextEvent]:
        try:
            with get_db_context(self._session_factory) as db:
                rows = db.query(DBContextEvent).filter(
                    DBContextEvent.user_id == user_id,
                    DBContextEvent.created_at >= since
                ).order_by(DBContextEvent.created_at.desc()).limit(limit).all()
                return [ContextEvent.from_row(row) for row in rows]
        except SQLAlchemyError as e:
            raise PersistenceError("get_events_since", str(e)) from e


class SQLAlchemyPatternRepository(PatternRepository):
    """Pattern store backed by the learning_patterns table."""

    def __init__(self, session_factory: sessionmaker = None):
        self._session_factory = session_factory

    async def find_pattern(
        self,
        user_id: str,
        pattern_type: str,
        scope_type: str,
        scope_id: Optional[str]
    ) -> Optional[LearningPatternRecord]:
        _check_scope(scope_type, scope_id)
        try:
            with get_db_context(self._session_factory) as db:
                query = db.query(DBLearningPattern).filter(
                    DBLearningPattern.user_id == user_id,
                    DBLearningPattern.pattern_type == pattern_type,
                    DBLearningPattern.scope_type == scope_type,
                )
                if scope_id is None:
                    query = query.filter(DBLearningPattern.scope_id.is_(None))
                else:
                    query = query.filter(DBLearningPattern.scope_id == scope_id)

                row = query.first()
                return LearningPatternRecord.model_validate(row) if row else None
        except SQLAlchemyError as e:
            raise PersistenceError("find_pattern", str(e)) from e

    async def create_pattern(
        self,
        user_id: str,
        pattern_type: str,
        scope_type: str,
        scope_id: Optional[str],
        pattern_data: Dict[str, Any],
        confidence_score: float
    ) -> LearningPatternRecord:
        _check_scope(scope_type, scope_id)
        try:
            with get_db_context(self._session_factory) as db:
                now = datetime.utcnow()
                row = DBLearningPattern(
                    user_id=user_id,
                    pattern_type=pattern_type,
                    scope_type=scope_type,
                    scope_id=scope_id,
                    pattern_data=pattern_data,
                    confidence_score=confidence_score,
                    last_reinforced=now,
                    created_at=now,
                )
                db.add(row)
                db.flush()
                logger.debug(f"Created pattern: {row}")
                return LearningPatternRecord.model_validate(row)
        except SQLAlchemyError as e:
            logger.error(f"Failed to create {pattern_type} pattern for user {user_id}: {e}")
            raise PersistenceError("create_pattern", str(e)) from e

    async def update_pattern(
        self,
        pattern_id: str,
        pattern_data: Dict[str, Any],
        confidence_score: float,
        last_reinforced: Optional[datetime] = None
    ) -> Optional[LearningPatternRecord]:
        try:
            with get_db_context(self._session_factory) as db:
                row = db.query(DBLearningPattern).filter_by(id=pattern_id).first()
                if not row:
                    return None

                # Reassign so the JSON column is flagged dirty
                row.pattern_data = dict(pattern_data)
                row.confidence_score = confidence_score
                row.last_reinforced = last_reinforced or datetime.utcnow()
                db.flush()
                return LearningPatternRecord.model_validate(row)
        except SQLAlchemyError as e:
            logger.error(f"Failed to update pattern {pattern_id}: {e}")
            raise PersistenceError("update_pattern", str(e)) from e

    async def get_user_patterns(self, user_id: str) -> List[LearningPatternRecord]:
        try:
            with get_db_context(self._session_factory) as db:
                rows = db.query(DBLearningPattern).filter(
                    DBLearningPattern.user_id == user_id
                ).order_by(
                    DBLearningPattern.confidence_score.desc(),
                    DBLearningPattern.last_reinforced.desc()
                ).all()
                return [LearningPatternRecord.model_validate(row) for row in rows]
        except SQLAlchemyError as e:
            raise PersistenceError("get_user_patterns", str(e)) from e

    async def get_scoped_patterns(
        self,
        user_id: str,
        scope_type: str,
        scope_id: Optional[str] = None,
        min_confidence: Optional[float] = None,
        include_global: bool = True
    ) -> List[LearningPatternRecord]:
        _check_scope(scope_type, scope_id)
        try:
            with get_db_context(self._session_factory) as db:
                query = db.query(DBLearningPattern).filter(DBLearningPattern.user_id == user_id)

                if min_confidence is not None:
                    query = query.filter(DBLearningPattern.confidence_score > min_confidence)

                global_clause = DBLearningPattern.scope_type == "global"
                if scope_type != "global" and scope_id:
                    scoped_clause = and_(
                        DBLearningPattern.scope_type == scope_type,
                        DBLearningPattern.scope_id == scope_id,
                    )
                    query = query.filter(or_(scoped_clause, global_clause) if include_global else scoped_clause)
                else:
                    query = query.filter(global_clause)

                rows = query.order_by(
                    DBLearningPattern.confidence_score.desc(),
                    DBLearningPattern.last_reinforced.desc()
                ).all()
                return [LearningPatternRecord.model_validate(row) for row in rows]
        except SQLAlchemyError as e:
            raise PersistenceError("get_scoped_patterns", str(e)) from e
