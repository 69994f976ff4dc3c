"""
Context Tracker for the Pitch Deck learning layer.

Records every user action as an event, keeps short-lived per-user sessions,
and hands each event to the pattern analyzer.

Sessions:
- A user gets a session on their first action (or an explicit start).
- After 30 minutes without activity the session expires. Expiry is noticed
  lazily when the user is next seen and by the periodic SessionSweeper.
- When a session ends or expires a summary event is written exactly once.

Tracking never raises: failures are logged and the caller gets None.
"""

import asyncio
import logging
import uuid
from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from .constants import PRODUCTIVITY_NORMALIZER, PRODUCTIVITY_WEIGHTS
from .content_signals import (
    analyze_sentiment,
    classify_request,
    derive_learning_scope,
    detect_bullet_addition,
    detect_number_addition,
    detect_tone_change,
    has_data_points,
)
from .exceptions import SessionConflictError
from .models import (
    ChatContent,
    ContextEvent,
    EditContent,
    FeedbackContent,
    FocusAreas,
    SessionContext,
    SessionSummary,
    UserAction,
    UserInputContent,
    dump_event_content,
)
from .pattern_analyzer import PatternAnalyzer
from .repository_interface import EventRepository
from .session_store import InMemorySessionStore, SessionStore

logger = logging.getLogger(__name__)


def build_session_summary(session: SessionContext) -> SessionSummary:
    """Duration, action mix, slide-type focus and productivity of a session."""
    action_counts = Counter(action.event_type for action in session.actions)

    slide_types = [a.content.slide_type for a in session.actions if a.content.slide_type]
    distribution = dict(Counter(slide_types))
    primary_focus = None
    if distribution:
        top = max(distribution.values())
        primary_focus = next(t for t in slide_types if distribution[t] == top)

    score = sum(PRODUCTIVITY_WEIGHTS.get(a.event_type, 0.0) for a in session.actions)

    return SessionSummary(
        duration_seconds=(session.last_activity - session.start_time).total_seconds(),
        action_counts=dict(action_counts),
        focus_areas=FocusAreas(
            primary_focus=primary_focus,
            distribution=distribution,
            breadth=len(distribution),
        ),
        productivity=min(1.0, score / PRODUCTIVITY_NORMALIZER),
    )


class ContextTracker:
    """
    Entry point for recording user actions.

    Args:
        event_repository: Event store
        pattern_analyzer: Receives every persisted event
        session_store: Session map (in-memory by default)
        clock: Returns the current UTC time; injectable for tests
        recent_event_limit: Cap on events returned by get_recent_activity
    """

    def __init__(
        self,
        event_repository: EventRepository,
        pattern_analyzer: PatternAnalyzer,
        session_store: Optional[SessionStore] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
        recent_event_limit: int = 100
    ):
        self.events = event_repository
        self.analyzer = pattern_analyzer
        self.sessions = session_store if session_store is not None else InMemorySessionStore()
        self.clock = clock
        self.recent_event_limit = recent_event_limit

    # ==========================================================================
    # Action Tracking
    # ==========================================================================

    async def track_user_action(
        self,
        action: UserAction,
        learning_scope: Optional[str] = None
    ) -> Optional[ContextEvent]:
        """
        Record one action: update the session, persist the event, learn from it.

        Args:
            action: The user action
            learning_scope: Explicit scope; derived from slide/deck ids when omitted

        Returns:
            The persisted event, or None if tracking failed
        """
        try:
            await self._update_session_context(action)
            event = await self._create_context_event(action, learning_scope)
            await self.analyzer.update_learning_patterns(action.user_id, event)
            self._process_real_time_learning(action, event)
            return event
        except Exception as e:
            logger.error(f"Failed to track {action.event_type} for user {action.user_id}: {e}", exc_info=True)
            return None

    async def track_slide_edit(
        self,
        user_id: str,
        project_id: str,
        deck_id: Optional[str],
        slide_id: Optional[str],
        before: str,
        after: str,
        edit_type: str = "content_modification",
        time_spent: float = 0.0,
        slide_type: Optional[str] = None
    ) -> Optional[ContextEvent]:
        """Track an edit, deriving length, bullet, number and tone signals from the two versions."""
        content = EditContent(
            before=before,
            after=after,
            edit_type=edit_type,
            time_spent=time_spent,
            slide_type=slide_type,
            length_change=len(after) - len(before),
            added_bullets=detect_bullet_addition(before, after),
            added_numbers=detect_number_addition(before, after),
            added_metrics=has_data_points(after) and not has_data_points(before),
            tone_change=detect_tone_change(before, after),
        )
        return await self.track_user_action(UserAction(
            user_id=user_id, project_id=project_id, deck_id=deck_id, slide_id=slide_id,
            content=content, timestamp=self.clock(),
        ))

    async def track_feedback(
        self,
        user_id: str,
        project_id: str,
        deck_id: Optional[str],
        slide_id: Optional[str],
        feedback_type: str,
        aspect: str,
        suggestion: Optional[str] = None,
        rating: Optional[float] = None,
        slide_type: Optional[str] = None
    ) -> Optional[ContextEvent]:
        content = FeedbackContent(
            feedback_type=feedback_type,
            aspect=aspect or "general",
            suggestion=suggestion or "",
            rating=rating,
            sentiment=analyze_sentiment(suggestion or ""),
            slide_type=slide_type,
        )
        return await self.track_user_action(UserAction(
            user_id=user_id, project_id=project_id, deck_id=deck_id, slide_id=slide_id,
            content=content, timestamp=self.clock(),
        ))

    async def track_chat_interaction(
        self,
        user_id: str,
        project_id: str,
        deck_id: Optional[str],
        slide_id: Optional[str],
        user_message: str,
        ai_response: str,
        satisfaction: Optional[float] = None,
        follow_up_action: Optional[str] = None,
        content_preferences: Optional[Dict[str, Any]] = None,
        style_preferences: Optional[Dict[str, Any]] = None
    ) -> Optional[ContextEvent]:
        content = ChatContent(
            user_message=user_message,
            ai_response=ai_response,
            satisfaction=satisfaction,
            follow_up_action=follow_up_action,
            request_type=classify_request(user_message),
            message_length=len(user_message),
            response_length=len(ai_response),
            content_preferences=content_preferences,
            style_preferences=style_preferences,
        )
        return await self.track_user_action(UserAction(
            user_id=user_id, project_id=project_id, deck_id=deck_id, slide_id=slide_id,
            content=content, timestamp=self.clock(),
        ))

    async def get_recent_activity(self, user_id: str, hours: int = 24) -> List[ContextEvent]:
        """Events of the last `hours`, newest first."""
        since = self.clock() - timedelta(hours=hours)
        return await self.events.get_events_since(user_id, since, limit=self.recent_event_limit)

    # ==========================================================================
    # Sessions
    # ==========================================================================

    def start_session(self, user_id: str, session_id: Optional[str] = None) -> str:
        """
        Open a new session for the user.

        Raises:
            SessionConflictError: session_id is already in use
        """
        now = self.clock()
        session = SessionContext(
            session_id=session_id or f"session_{uuid.uuid4().hex}",
            user_id=user_id,
            start_time=now,
            last_activity=now,
        )
        if not self.sessions.put(session):
            raise SessionConflictError(session.session_id)
        logger.info(f"Started session {session.session_id} for user {user_id}")
        return session.session_id

    async def end_session(self, session_id: str) -> bool:
        """
        End a session and record its summary.

        Returns:
            False if the session was unknown or already ended
        """
        session = self.sessions.remove(session_id)
        if session is None:
            return False

        await self._record_session_summary(session)
        logger.info(f"Ended session {session_id}")
        return True

    async def get_session_context(
        self,
        user_id: str,
        session_id: Optional[str] = None
    ) -> Optional[SessionContext]:
        """
        The named session, else the user's active one.

        A stale session found here is expired on the spot (summary recorded)
        and None is returned.
        """
        now = self.clock()

        if session_id:
            session = self.sessions.get(session_id)
            if session is None or session.user_id != user_id:
                return None
            if self.sessions.is_expired(session, now):
                if self.sessions.remove(session_id) is not None:
                    await self._record_session_summary(session)
                return None
            return session

        await self._expire_sessions(now, user_id)
        return self.sessions.find_active_for_user(user_id, now)

    async def sweep_inactive_sessions(self) -> int:
        """Expire every stale session. Returns how many were expired."""
        return await self._expire_sessions(self.clock())

    async def _expire_sessions(self, now: datetime, user_id: Optional[str] = None) -> int:
        expired = self.sessions.pop_expired(now, user_id=user_id)
        for session in expired:
            logger.debug(f"Cleaned up inactive session: {session.session_id}")
            await self._record_session_summary(session)
        return len(expired)

    async def _update_session_context(self, action: UserAction) -> SessionContext:
        now = self.clock()
        await self._expire_sessions(now, action.user_id)

        session = None
        if action.session_id:
            session = self.sessions.get(action.session_id)
            if session is not None and (
                session.user_id != action.user_id or self.sessions.is_expired(session, now)
            ):
                session = None
        if session is None:
            session = self.sessions.find_active_for_user(action.user_id, now)
        if session is None:
            session = self.sessions.get(self.start_session(action.user_id))

        action.session_id = session.session_id
        return self.sessions.record_action(session.session_id, action, now) or session

    async def _record_session_summary(self, session: SessionContext) -> Optional[ContextEvent]:
        """Persist the end-of-session summary. Never touches the session map."""
        project_id = session.current_focus.get("project_id")
        if not project_id:
            logger.debug(f"Session {session.session_id} had no actions; no summary recorded")
            return None

        deck_id = session.current_focus.get("deck_id")
        content = UserInputContent(session_summary=build_session_summary(session))

        try:
            event = await self.events.add_event(
                user_id=session.user_id,
                project_id=project_id,
                deck_id=deck_id,
                slide_id=None,
                event_type=content.event_type,
                content=dump_event_content(content),
                learning_scope=derive_learning_scope(None, deck_id),
                created_at=self.clock(),
            )
            await self.analyzer.update_learning_patterns(session.user_id, event)
            return event
        except Exception as e:
            logger.error(f"Failed to record summary for session {session.session_id}: {e}", exc_info=True)
            return None

    # ==========================================================================
    # Persistence & Refinement
    # ==========================================================================

    async def _create_context_event(self, action: UserAction, learning_scope: Optional[str]) -> ContextEvent:
        return await self.events.add_event(
            user_id=action.user_id,
            project_id=action.project_id,
            deck_id=action.deck_id,
            slide_id=action.slide_id,
            event_type=action.event_type,
            content=dump_event_content(action.content),
            learning_scope=learning_scope or derive_learning_scope(action.slide_id, action.deck_id),
            created_at=action.timestamp,
        )

    def _process_real_time_learning(self, action: UserAction, event: ContextEvent) -> None:
        # Hook for immediate refinement on edits and feedback; patterns are
        # already reinforced by the analyzer.
        if isinstance(action.content, (EditContent, FeedbackContent)):
            logger.debug(f"Real-time refinement hook for {action.event_type} event {event.id}")


class SessionSweeper:
    """
    Background task that periodically expires inactive sessions.

    Owned by the application lifespan: start() on startup, stop() on shutdown.
    """

    def __init__(self, tracker: ContextTracker, interval_seconds: float = 300):
        self.tracker = tracker
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Schedule the sweep loop on the running event loop."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="session-sweeper")
        logger.info(f"Session sweeper started (every {self.interval_seconds}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Session sweeper stopped")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                expired = await self.tracker.sweep_inactive_sessions()
                if expired:
                    logger.info(f"Session sweep expired {expired} session(s)")
            except Exception as e:
                logger.error(f"Session sweep failed: {e}", exc_info=True)
