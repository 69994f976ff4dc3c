"""
Shared fixtures for the learning-layer tests.

Each test gets its own in-memory SQLite database and a controllable clock.
"""

import os

os.environ.setdefault("TESTING", "true")
os.environ.setdefault("PITCHDECK_SECRET_KEY", "test-secret-key-for-testing-only")
os.environ.setdefault("LLM_PROVIDER", "mock")
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime, timedelta

import pytest

from pitchdeck_backend.context_service import ContextService
from pitchdeck_backend.context_tracker import ContextTracker
from pitchdeck_backend.database import create_db_engine, create_session_factory, init_db
from pitchdeck_backend.pattern_analyzer import PatternAnalyzer
from pitchdeck_backend.recommendation_engine import RecommendationEngine
from pitchdeck_backend.repository import SQLAlchemyEventRepository, SQLAlchemyPatternRepository
from pitchdeck_backend.session_store import InMemorySessionStore


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = datetime(2025, 1, 15, 9, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def session_factory():
    """Fresh in-memory database per test."""
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture
def event_repo(session_factory):
    return SQLAlchemyEventRepository(session_factory)


@pytest.fixture
def pattern_repo(session_factory):
    return SQLAlchemyPatternRepository(session_factory)


@pytest.fixture
def session_store():
    return InMemorySessionStore(timeout=timedelta(minutes=30), max_actions=50)


@pytest.fixture
def analyzer(event_repo, pattern_repo):
    return PatternAnalyzer(event_repo, pattern_repo)


@pytest.fixture
def tracker(event_repo, analyzer, session_store, clock):
    return ContextTracker(event_repo, analyzer, session_store=session_store, clock=clock)


@pytest.fixture
def engine(analyzer):
    return RecommendationEngine(analyzer)


@pytest.fixture
def service(tracker, analyzer, engine, pattern_repo):
    return ContextService(tracker, analyzer, engine, pattern_repo)
