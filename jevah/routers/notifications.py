from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from jevah.database import get_db
from jevah.dependencies import PaginationParams, get_current_user
from jevah.models import User
from jevah.schemas import NotificationPreferencesUpdate
from jevah.services import notification_service

router = APIRouter(prefix="/api/v1/notifications", tags=["notifications"])


@router.get("")
async def list_notifications(
    type: str | None = Query(None, max_length=30),
    unread_only: bool = False,
    pagination: PaginationParams = Depends(),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await notification_service.list_notifications(
        db, user, pagination.page, pagination.page_size, type, unread_only
    )


@router.patch("/read-all")
async def mark_all_read(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return {"updated": await notification_service.mark_all_read(db, user)}


@router.get("/stats")
async def notification_stats(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await notification_service.get_stats(db, user)


@router.get("/preferences")
async def get_preferences(user: User = Depends(get_current_user)):
    return notification_service.get_preferences(user)


@router.put("/preferences")
async def update_preferences(
    data: NotificationPreferencesUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await notification_service.update_preferences(db, user, data.preferences)


@router.patch("/{notification_id}/read")
async def mark_read(
    notification_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await notification_service.mark_read(db, user, notification_id)
