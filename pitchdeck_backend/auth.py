"""
Bearer token handling.

Tokens are issued by the external identity provider and signed with the
shared PITCHDECK_SECRET_KEY; this service only verifies them. The user id is
the token's `sub` claim.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from jose import jwt

from .config import settings


def decode_access_token(token: str) -> Dict[str, Any]:
    """
    Verify a bearer token and return its claims.

    The audience is checked only when PITCHDECK_TOKEN_AUDIENCE is set.

    Raises:
        JWTError: signature, expiry or audience check failed
    """
    return jwt.decode(
        token,
        settings.secret_key,
        algorithms=[settings.jwt_algorithm],
        audience=settings.token_audience,
        options={"verify_aud": bool(settings.token_audience)},
    )


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Mint a token the way the identity provider does (local development and tests).
    """
    to_encode = data.copy()
    to_encode["exp"] = datetime.utcnow() + (expires_delta or timedelta(hours=1))
    if settings.token_audience:
        to_encode.setdefault("aud", settings.token_audience)
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.jwt_algorithm)
