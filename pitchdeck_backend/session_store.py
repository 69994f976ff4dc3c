"""
Session storage for the context tracker.

Sessions are ephemeral: they live in process memory only and are lost on
restart. The store owns the session map; every read-modify-write happens
under its lock so request handlers and the background sweep never observe a
half-updated session.

Callers pass `now` explicitly; the store itself has no clock.
"""

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from .models import SessionContext, UserAction

logger = logging.getLogger(__name__)


class SessionStore(ABC):
    """Contract for keeping tracking sessions between requests."""

    @abstractmethod
    def get(self, session_id: str) -> Optional[SessionContext]:
        pass

    @abstractmethod
    def put(self, session: SessionContext) -> bool:
        """Store a new session. Returns False, storing nothing, if the id is already taken."""
        pass

    @abstractmethod
    def remove(self, session_id: str) -> Optional[SessionContext]:
        """Remove and return a session; None if it was already gone."""
        pass

    @abstractmethod
    def find_active_for_user(self, user_id: str, now: datetime) -> Optional[SessionContext]:
        """The user's most recently active session that has not expired."""
        pass

    @abstractmethod
    def record_action(self, session_id: str, action: UserAction, now: datetime) -> Optional[SessionContext]:
        """
        Append an action to a session and move its focus.

        Returns:
            The updated session, or None if the session no longer exists
        """
        pass

    @abstractmethod
    def pop_expired(self, now: datetime, user_id: Optional[str] = None) -> List[SessionContext]:
        """Remove and return every expired session (optionally only one user's)."""
        pass

    @abstractmethod
    def is_expired(self, session: SessionContext, now: datetime) -> bool:
        pass


class InMemorySessionStore(SessionStore):
    """
    Dict-backed session store guarded by a re-entrant lock.

    Removal is atomic: whoever gets a session back from remove() or
    pop_expired() is the only caller that sees it go, so end-of-session work
    runs exactly once.
    """

    def __init__(self, timeout: timedelta = timedelta(minutes=30), max_actions: int = 50):
        self.timeout = timeout
        self.max_actions = max_actions
        self._sessions: Dict[str, SessionContext] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def is_expired(self, session: SessionContext, now: datetime) -> bool:
        return now - session.last_activity >= self.timeout

    def get(self, session_id: str) -> Optional[SessionContext]:
        with self._lock:
            return self._sessions.get(session_id)

    def put(self, session: SessionContext) -> bool:
        with self._lock:
            if session.session_id in self._sessions:
                return False
            self._sessions[session.session_id] = session
            return True

    def remove(self, session_id: str) -> Optional[SessionContext]:
        with self._lock:
            return self._sessions.pop(session_id, None)

    def find_active_for_user(self, user_id: str, now: datetime) -> Optional[SessionContext]:
        with self._lock:
            candidates = [
                s for s in self._sessions.values()
                if s.user_id == user_id and not self.is_expired(s, now)
            ]
            if not candidates:
                return None
            return max(candidates, key=lambda s: s.last_activity)

    def record_action(self, session_id: str, action: UserAction, now: datetime) -> Optional[SessionContext]:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return None

            session.last_activity = now
            session.actions.append(action)
            if len(session.actions) > self.max_actions:
                del session.actions[:-self.max_actions]
            session.current_focus = {
                "project_id": action.project_id,
                "deck_id": action.deck_id,
                "slide_id": action.slide_id,
            }
            return session

    def pop_expired(self, now: datetime, user_id: Optional[str] = None) -> List[SessionContext]:
        with self._lock:
            expired_ids = [
                sid for sid, s in self._sessions.items()
                if self.is_expired(s, now) and (user_id is None or s.user_id == user_id)
            ]
            expired = [self._sessions.pop(sid) for sid in expired_ids]

        if expired:
            logger.debug(f"Expired {len(expired)} inactive session(s)")
        return expired
