"""
JWT token utilities.

Accounts and logins live outside the tracker. It only needs the caller's
identity from a bearer token: ``user_id`` (required), ``sub`` and ``role``.
The same token authenticates HTTP requests and websocket connections.
Issuing is kept for the seed script and the tests.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, Optional
from jose import JWTError, jwt
from backend.app.core.config import settings


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Sign ``data`` as an access token.

    Example payload:
        {"sub": "driver01", "user_id": 12, "role": "DRIVER", "exp": 1234567890}
    """
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    return jwt.encode({**data, "exp": expire}, settings.secret_key, algorithm=settings.algorithm)


def token_for_user(user, expires_delta: Optional[timedelta] = None) -> str:
    """Access token for a User row."""
    return create_access_token(
        data={"sub": user.username, "user_id": user.id, "role": user.role.value},
        expires_delta=expires_delta
    )


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Verify signature and expiry.

    Returns:
        The claims, or None if the token is invalid or carries no user_id
    """
    try:
        claims = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None

    if not claims.get("user_id"):
        return None
    return claims
