"""
Slide Generation Router.

Endpoints:
- POST /generation/slide - Generate or regenerate a slide with personalization
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from slowapi import Limiter
from slowapi.util import get_remote_address

from ..config import settings
from ..dependencies import get_current_user, get_generation_service
from ..generation_service import SlideGenerationService
from ..models import User

# Initialize logger
logger = logging.getLogger(__name__)

# Rate limiter (disabled in test mode)
limiter = Limiter(key_func=get_remote_address, enabled=not settings.testing)

router = APIRouter(
    prefix="/generation",
    tags=["generation"],
    responses={401: {"description": "Unauthorized"}},
)


class SlideGenerationRequest(BaseModel):
    project_id: str
    slide_type: str
    deck_id: Optional[str] = None
    slide_id: Optional[str] = None
    prompt_context: Dict[str, Any] = Field(default_factory=dict)
    user_feedback: Optional[str] = None
    model: Optional[str] = None
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: Optional[int] = Field(default=None, ge=1)


@router.post("/slide")
@limiter.limit("10/minute")
async def generate_slide(
    req: SlideGenerationRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    service: SlideGenerationService = Depends(get_generation_service)
):
    """
    Generate slide content personalized with the user's learned preferences.

    Rate limited to 10 requests per minute.

    Args:
        req: Slide type, company context and model options
        request: FastAPI request (for rate limiting)
        current_user: Authenticated user
        service: Slide generation service

    Returns:
        Generation result; success is false when every provider failed
    """
    options: Dict[str, Any] = {"temperature": req.temperature}
    if req.model:
        options["model"] = req.model
    if req.max_tokens:
        options["max_tokens"] = req.max_tokens

    result = await service.generate_slide(
        user_id=current_user.uid,
        project_id=req.project_id,
        slide_type=req.slide_type,
        prompt_context=req.prompt_context,
        deck_id=req.deck_id,
        slide_id=req.slide_id,
        user_feedback=req.user_feedback,
        options=options,
    )
    return result.model_dump()
