"""
Request dependencies for FastAPI.

Identity resolution for HTTP and websocket callers, plus accessors for the
process-wide realtime components held on ``app.state``.
"""

from typing import Optional
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from backend.app.core.exceptions import AuthenticationError, InsufficientPermissionsError
from backend.app.core.jwt import decode_access_token
from backend.app.db.session import get_db
from backend.app.models.user import User

# HTTP Bearer security scheme
security = HTTPBearer()
optional_security = HTTPBearer(auto_error=False)


async def resolve_token(token: Optional[str], db: AsyncSession) -> dict:
    """
    Turn a bearer token into the caller's identity payload.

    The user must still exist and be active; the role stored on the user
    replaces whatever role the token claims.

    Raises:
        AuthenticationError: Bad token or unknown user
        InsufficientPermissionsError: Inactive user
    """
    claims = decode_access_token(token) if token else None
    if claims is None:
        raise AuthenticationError()

    user = await db.get(User, claims["user_id"])
    if not user:
        raise AuthenticationError("User not found")
    if not user.is_active:
        raise InsufficientPermissionsError("User account is inactive")

    claims["role"] = user.role.value
    return claims


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> dict:
    """Identity of an authenticated caller."""
    return await resolve_token(credentials.credentials, db)


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(optional_security),
    db: AsyncSession = Depends(get_db)
) -> Optional[dict]:
    """Like get_current_user, but anonymous callers get None instead of a 401."""
    if credentials is None:
        return None
    return await resolve_token(credentials.credentials, db)


def get_hub(request: Request):
    return request.app.state.hub


def get_position_store(request: Request):
    return request.app.state.position_store
