"""
Bearer tokens.

The identity provider issues tokens; the ledger only reads the caller's
user id out of them. ``issue_token`` exists for the debug route and tests.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from payup.app.core.config import settings


def issue_token(user_id: int, username: str, ttl: Optional[timedelta] = None) -> str:
    expires_at = datetime.now(timezone.utc) + (ttl or timedelta(minutes=settings.access_token_expire_minutes))
    claims = {"sub": username, "user_id": user_id, "exp": expires_at}
    return jwt.encode(claims, settings.secret_key, algorithm=settings.algorithm)


def user_id_from_token(token: str) -> Optional[int]:
    """Caller's user id, or None when the token is invalid, expired or carries no id."""
    try:
        claims = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None
    user_id = claims.get("user_id")
    if not isinstance(user_id, int):
        return None
    return user_id
