"""
Notification Service.

Ledger mutations tell counterparts what happened through in-app
notifications. Delivery runs after the ledger transaction has committed,
in its own session, and is fire-and-forget: a failure is logged and
dropped and never reaches the caller of the ledger operation.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List, Sequence, Set

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy import select, update

from payup.app.db.session import AsyncSessionLocal
from payup.app.models.notification import Notification, NotificationType
from payup.app.models.user import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notice:
    """One message for one recipient."""
    recipient_id: int
    recipient_email: Optional[str]
    type: NotificationType
    title: str
    message: str
    payload: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def to(cls, user: User, type: NotificationType, title: str, message: str, **payload) -> "Notice":
        return cls(
            recipient_id=user.id,
            recipient_email=user.email,
            type=type,
            title=title,
            message=message,
            payload={key: str(value) if value is not None else None for key, value in payload.items()},
        )


class NotificationService:
    """A user's inbox: storing notices and reading them back."""

    @staticmethod
    def store(db: AsyncSession, notice: Notice) -> Notification:
        notification = Notification(
            user_id=notice.recipient_id,
            recipient_email=notice.recipient_email,
            type=notice.type,
            title=notice.title,
            message=notice.message,
            metadata_payload=notice.payload,
        )
        db.add(notification)
        return notification

    @staticmethod
    async def list_for_user(db: AsyncSession, user_id: int, unread_only: bool = False, limit: int = 50) -> List[Notification]:
        """Newest first."""
        query = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            query = query.where(Notification.is_read.is_(False))
        query = query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit)
        return list((await db.execute(query)).scalars().all())

    @staticmethod
    async def _mark(db: AsyncSession, user_id: int, *criteria) -> int:
        stmt = (
            update(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False), *criteria)
            .values(is_read=True, read_at=datetime.now(timezone.utc))
        )
        return (await db.execute(stmt)).rowcount

    @staticmethod
    async def mark_read(db: AsyncSession, notification_id: int, user_id: int) -> bool:
        """
        Mark one of the user's notifications read.

        False when the notification does not exist or belongs to someone
        else; marking an already read one again counts as success.
        """
        owned = await db.scalar(
            select(Notification.id).where(Notification.id == notification_id, Notification.user_id == user_id)
        )
        if owned is None:
            return False
        await NotificationService._mark(db, user_id, Notification.id == notification_id)
        return True

    @staticmethod
    async def mark_all_read(db: AsyncSession, user_id: int) -> int:
        """Number of notifications that flipped to read."""
        return await NotificationService._mark(db, user_id)


class Notifier:
    """
    Delivers notices outside the ledger transaction.
    
    dispatch() schedules delivery on the running loop and returns
    immediately; deliver() does the work and swallows its own failures.
    """
    
    def __init__(self, session_factory: async_sessionmaker = AsyncSessionLocal):
        self.session_factory = session_factory
        self._pending: Set[asyncio.Task] = set()
    
    def dispatch(self, notices: Sequence[Notice]) -> None:
        if not notices:
            return
        try:
            task = asyncio.get_running_loop().create_task(self.deliver(list(notices)))
        except RuntimeError:
            logger.warning("No running event loop; dropped %d notification(s)", len(notices))
            return
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
    
    async def deliver(self, notices: List[Notice]) -> int:
        """Persist notices in a fresh session. Returns how many were stored."""
        try:
            async with self.session_factory() as session:
                for notice in notices:
                    NotificationService.store(session, notice)
                await session.commit()
        except Exception:
            logger.exception("Notification delivery failed for %d notice(s)", len(notices))
            return 0
        return len(notices)
    
    async def drain(self) -> None:
        """Wait for scheduled deliveries; used on shutdown and in tests."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


notifier = Notifier()


def get_notifier() -> Notifier:
    """FastAPI dependency returning the process-wide notifier."""
    return notifier
