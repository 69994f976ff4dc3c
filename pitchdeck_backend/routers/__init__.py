"""
API Routers for the Pitch Deck backend.

Each router handles a specific domain:
- context: Event recording, learned patterns, recommendations and sessions
- generation: Personalized slide generation
"""

from . import (
    context,
    generation,
)

__all__ = [
    "context",
    "generation",
]
