"""
Shared Dependencies for the Pitch Deck backend.

Provides:
- Authentication dependency (get_current_user)
- Learning-layer service instances (one per process)
- Service getters for FastAPI dependency injection (overridable in tests)
"""

import logging
from datetime import timedelta
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError

from .auth import decode_access_token
from .config import settings
from .context_service import ContextService
from .context_tracker import ContextTracker, SessionSweeper
from .generation_service import SlideGenerationService
from .llm_providers import AIProviderGateway
from .models import User
from .pattern_analyzer import PatternAnalyzer
from .recommendation_engine import RecommendationEngine
from .repository import SQLAlchemyEventRepository, SQLAlchemyPatternRepository
from .session_store import InMemorySessionStore

logger = logging.getLogger(__name__)

# =============================================================================
# OAuth2 Scheme
# =============================================================================

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token")

# =============================================================================
# Service Instances
# =============================================================================

session_store = InMemorySessionStore(
    timeout=timedelta(minutes=settings.session_timeout_minutes),
    max_actions=settings.max_session_actions,
)
event_repository = SQLAlchemyEventRepository()
pattern_repository = SQLAlchemyPatternRepository()

pattern_analyzer = PatternAnalyzer(
    event_repository,
    pattern_repository,
    recent_event_limit=settings.recent_event_limit,
    min_pattern_confidence=settings.min_pattern_confidence,
)
context_tracker = ContextTracker(
    event_repository,
    pattern_analyzer,
    session_store=session_store,
    recent_event_limit=settings.recent_event_limit,
)
recommendation_engine = RecommendationEngine(
    pattern_analyzer,
    max_recommendations=settings.max_recommendations,
)
context_service = ContextService(context_tracker, pattern_analyzer, recommendation_engine, pattern_repository)

session_sweeper = SessionSweeper(context_tracker, interval_seconds=settings.session_sweep_interval_seconds)

# Provider clients are created on first use
_generation_service: Optional[SlideGenerationService] = None

# =============================================================================
# Authentication Dependency
# =============================================================================

async def get_current_user(token: str = Depends(oauth2_scheme)) -> User:
    """
    Get current user from the identity provider's bearer token.

    Args:
        token: JWT from Authorization header

    Returns:
        User with the token subject as uid

    Raises:
        HTTPException: If token is invalid or has no subject
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = decode_access_token(token)
    except JWTError as e:
        logger.debug(f"Rejected bearer token: {e}")
        raise credentials_exception

    uid = payload.get("sub")
    if not uid:
        raise credentials_exception

    return User(uid=uid, email=payload.get("email"))

# =============================================================================
# Service Dependencies
# =============================================================================

def get_context_service() -> ContextService:
    return context_service


def get_generation_service() -> SlideGenerationService:
    global _generation_service
    if _generation_service is None:
        _generation_service = SlideGenerationService(AIProviderGateway(), recommendation_engine, context_tracker)
        logger.info(f"Slide generation ready with providers: {list(_generation_service.gateway.providers)}")
    return _generation_service
