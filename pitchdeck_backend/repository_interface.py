"""
Abstract Repository Interfaces for the learning layer.

Defines the contract for the event store and the pattern store. The context
tracker, pattern analyzer and context service depend only on these
interfaces; repository.py provides the SQLAlchemy implementations.

Implementations return detached snapshots (pydantic models), never live ORM
rows, and raise PersistenceError when the backing store fails.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from .models import ContextEvent, LearningPatternRecord


class EventRepository(ABC):
    """
    Append-only store of tracked user actions.
    """

    @abstractmethod
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
        """
        Persist a new event.

        Args:
            user_id: Owner of the action
            project_id: Project the action belongs to
            deck_id: Deck id or None
            slide_id: Slide id or None
            event_type: user_input, ai_generation, user_edit, feedback or chatbot_interaction
            content: Serialized payload (snake_case keys)
            learning_scope: deck, project or global
            created_at: Action timestamp (defaults to now)

        Returns:
            The stored event
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        user_id: str,
        scope_type: str = "global",
        scope_id: Optional[str] = None,
        limit: int = 100
    ) -> List[ContextEvent]:
        """
        Newest-first events of a user, narrowed by scope.

        deck narrows to deck_id == scope_id, project to project_id == scope_id;
        global (or a scope without an id) covers all of the user's events.

        Raises:
            InvalidScopeError: scope_type is not a known scope
        """
        pass

    @abstractmethod
    async def get_events_since(
        self,
        user_id: str,
        since: datetime,
        limit: int = 100
    ) -> List[ContextEvent]:
        """Newest-first events of a user created at or after `since`."""
        pass


class PatternRepository(ABC):
    """
    Store of learned patterns, one row per (user, scope_type, scope_id, pattern_type).
    """

    @abstractmethod
    async def find_pattern(
        self,
        user_id: str,
        pattern_type: str,
        scope_type: str,
        scope_id: Optional[str]
    ) -> Optional[LearningPatternRecord]:
        """Get the pattern for this exact key (scope_id None matches NULL), or None."""
        pass

    @abstractmethod
    async def create_pattern(
        self,
        user_id: str,
        pattern_type: str,
        scope_type: str,
        scope_id: Optional[str],
        pattern_data: Dict[str, Any],
        confidence_score: float
    ) -> LearningPatternRecord:
        """Insert a new pattern row."""
        pass

    @abstractmethod
    async def update_pattern(
        self,
        pattern_id: str,
        pattern_data: Dict[str, Any],
        confidence_score: float,
        last_reinforced: Optional[datetime] = None
    ) -> Optional[LearningPatternRecord]:
        """
        Overwrite data and confidence of an existing pattern.

        Returns:
            Updated pattern, or None if the id does not exist
        """
        pass

    @abstractmethod
    async def get_user_patterns(self, user_id: str) -> List[LearningPatternRecord]:
        """All patterns of a user, confidence desc then last_reinforced desc."""
        pass

    @abstractmethod
    async def get_scoped_patterns(
        self,
        user_id: str,
        scope_type: str,
        scope_id: Optional[str] = None,
        min_confidence: Optional[float] = None,
        include_global: bool = True
    ) -> List[LearningPatternRecord]:
        """
        Patterns of one scope, optionally together with the user's global patterns.

        Without a scope_id only global patterns are returned. min_confidence is
        an exclusive lower bound. Ordered confidence desc then last_reinforced desc.

        Raises:
            InvalidScopeError: scope_type is not a known scope
        """
        pass
