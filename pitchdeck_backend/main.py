"""
FastAPI backend for the Pitch Deck learning layer.

Tracks what users do to their decks, learns their content and style
preferences, and serves personalized recommendations and prompt overlays.

This main file handles app initialization and router mounting.
All endpoints are organized in the routers/ directory.
"""

import uuid
import logging
from pathlib import Path
from datetime import datetime
from contextlib import asynccontextmanager

from dotenv import load_dotenv

# Load environment variables
env_paths = [
    Path(__file__).parent.parent / '.env',
    Path(__file__).parent / '.env',
]
for env_path in env_paths:
    if env_path.exists():
        load_dotenv(env_path)
        break

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

# Import routers
from .routers import context, generation

# Import dependencies and shared state
from . import dependencies
from .database import init_db, check_database_health
from .exceptions import (
    InvalidEventTypeError,
    InvalidScopeError,
    PersistenceError,
    SessionNotFoundError,
)
from .config import settings

# =============================================================================
# Configuration
# =============================================================================

# Logging setup (configurable via environment variable)
LOG_LEVEL = settings.log_level
logging.basicConfig(level=getattr(logging, LOG_LEVEL, logging.INFO))
logger = logging.getLogger(__name__)

# =============================================================================
# Lifespan Event Handler
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan event handler for FastAPI application.
    Creates tables and runs the inactive-session sweep while the app is up.
    """
    init_db()
    logger.info("Database initialized")

    dependencies.session_sweeper.start()

    yield  # Application runs here

    await dependencies.session_sweeper.stop()
    expired = await dependencies.context_tracker.sweep_inactive_sessions()
    logger.info(f"Application shutting down ({expired} stale sessions summarized)")

# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="Pitch Deck Learning Layer",
    description="Context tracking, preference learning and personalized slide recommendations",
    version="1.0.0",
    lifespan=lifespan
)

# =============================================================================
# Exception Handlers
# =============================================================================

async def custom_rate_limit_handler(request: Request, exc: RateLimitExceeded):
    """Rate limit exceeded, with a Retry-After header."""
    retry_after = 60
    detail = str(exc.detail)
    if "hour" in detail.lower():
        retry_after = 3600
    elif "second" in detail.lower():
        retry_after = 1

    return JSONResponse(
        status_code=429,
        content={
            "detail": detail,
            "error": "rate_limit_exceeded",
            "retry_after_seconds": retry_after,
        },
        headers={"Retry-After": str(retry_after)}
    )


async def bad_request_handler(request: Request, exc: Exception):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


async def session_not_found_handler(request: Request, exc: SessionNotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


async def persistence_error_handler(request: Request, exc: PersistenceError):
    logger.error(f"Storage failure on {request.url.path}: {exc}")
    return JSONResponse(status_code=503, content={"detail": "Learning store unavailable"})


app.state.limiter = generation.limiter
app.add_exception_handler(RateLimitExceeded, custom_rate_limit_handler)
app.add_exception_handler(InvalidScopeError, bad_request_handler)
app.add_exception_handler(InvalidEventTypeError, bad_request_handler)
app.add_exception_handler(SessionNotFoundError, session_not_found_handler)
app.add_exception_handler(PersistenceError, persistence_error_handler)

if settings.testing:
    logger.info("Rate limiting disabled (test mode)")

# CORS
origins = settings.cors_origins

# Warn if using wildcard CORS in production
if origins == ['*'] and settings.is_production:
    logger.warning(
        "SECURITY WARNING: CORS is set to allow ALL origins (*). "
        "Set PITCHDECK_ALLOWED_ORIGINS to specific domains."
    )

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Request ID middleware
@app.middleware("http")
async def add_request_id(request: Request, call_next):
    """
    Add unique request ID to each request for tracing.
    """
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id

    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id

    return response

# =============================================================================
# Mount Routers
# =============================================================================

# Event tracking, patterns, recommendations and sessions
app.include_router(context.router)

# Personalized slide generation
app.include_router(generation.router)

# =============================================================================
# Health Check Endpoint
# =============================================================================

@app.get("/health", tags=["health"])
async def health_check():
    """
    Health check endpoint.

    Returns database connectivity, the number of open tracking sessions and
    which LLM providers have credentials.
    """
    health_data = {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "statistics": {
            "active_sessions": len(dependencies.session_store),
        },
        "dependencies": {
            "database": check_database_health(),
            "llm_provider": settings.llm_provider,
            "openai_configured": bool(settings.openai_api_key),
            "groq_configured": bool(settings.groq_api_key),
            "session_sweeper_running": dependencies.session_sweeper.running,
        },
    }

    if not health_data["dependencies"]["database"].get("database_connected", False):
        health_data["status"] = "degraded"

    return health_data
