"""
Bearer token verification.

Tokens are issued by the separate auth service; this API only verifies the
signature and maps the ``sub``/``role`` claims onto an Actor.
"""

import logging
from typing import Annotated, Any
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from database.models import Role
from engine.actors import Actor
from shared.config import get_settings

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def verify_token(token: str) -> dict[str, Any]:
    """Verify JWT signature and expiry and return its claims."""
    settings = get_settings()
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


def actor_from_claims(claims: dict[str, Any]) -> Actor:
    try:
        return Actor(id=UUID(str(claims["sub"])), role=Role(str(claims["role"]).upper()))
    except (KeyError, ValueError) as e:
        logger.warning(f"Token with unusable claims rejected: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token claims",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


async def get_current_actor(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)] = None,
) -> Actor:
    """Dependency resolving the authenticated caller."""
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return actor_from_claims(verify_token(credentials.credentials))


CurrentActor = Annotated[Actor, Depends(get_current_actor)]
