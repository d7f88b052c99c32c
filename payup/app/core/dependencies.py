"""
Authentication and ledger dependencies for FastAPI.

Identity is established here, once per request, and handed to the
ledger explicitly through LedgerContext.
"""

from typing import Optional
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from payup.app.core.exceptions import AuthenticationError
from payup.app.core.jwt import user_id_from_token
from payup.app.db.session import get_db
from payup.app.models.user import User
from payup.app.services.context import LedgerContext
from payup.app.services.notification_service import Notifier, get_notifier

# A missing header is reported as our own 401 body, not FastAPI's 403
bearer = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    db: AsyncSession = Depends(get_db)
) -> User:
    """Resolve the bearer token to an active user, or raise AuthenticationError."""
    if credentials is None:
        raise AuthenticationError("Not authenticated")

    user_id = user_id_from_token(credentials.credentials)
    if user_id is None:
        raise AuthenticationError("Could not validate credentials")

    user = await db.get(User, user_id)
    if user is None or not user.is_active:
        raise AuthenticationError("User not found or inactive")
    return user


async def get_ledger_context(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
) -> LedgerContext:
    """Request-scoped context passed to every ledger service call."""
    return LedgerContext(db=db, actor=current_user, notifier=notifier)
