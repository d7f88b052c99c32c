"""
The caller's notification inbox.
"""

from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from payup.app.core.dependencies import get_current_user
from payup.app.core.exceptions import ResourceNotFoundError
from payup.app.db.session import get_db
from payup.app.models.user import User
from payup.app.schemas.notification import NotificationResponse
from payup.app.services.notification_service import NotificationService

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("", response_model=List[NotificationResponse])
async def list_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await NotificationService.list_for_user(db, current_user.id, unread_only=unread_only, limit=limit)


# Declared before /{notification_id}/read so "read-all" is not taken for an id
@router.patch("/read-all")
async def mark_all_read(current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    count = await NotificationService.mark_all_read(db, current_user.id)
    await db.commit()
    return {"status": "success", "count": count}


@router.patch("/{notification_id}/read")
async def mark_read(
    notification_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not await NotificationService.mark_read(db, notification_id, current_user.id):
        raise ResourceNotFoundError("Notification", notification_id)
    await db.commit()
    return {"status": "success"}
