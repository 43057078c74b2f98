from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from jevah.database import get_db
from jevah.dependencies import PaginationParams, require_admin
from jevah.models import User
from jevah.schemas import BanRequest, ModerationUpdate, PaginatedResponse, RoleUpdate
from jevah.services import admin_service

router = APIRouter(prefix="/api/v1/admin", tags=["admin"])


@router.post("/users/{user_id}/ban")
async def ban_user(
    user_id: int,
    data: BanRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await admin_service.ban_user(db, admin, user_id, data)


@router.post("/users/{user_id}/unban")
async def unban_user(
    user_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await admin_service.unban_user(db, admin, user_id)


@router.patch("/users/{user_id}/role")
async def update_role(
    user_id: int,
    data: RoleUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await admin_service.update_role(db, admin, user_id, data.role)


@router.get("/moderation", response_model=PaginatedResponse)
async def moderation_queue(
    status: str | None = Query(None, pattern="^(pending|approved|rejected|under_review)$"),
    pagination: PaginationParams = Depends(),
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await admin_service.get_moderation_queue(db, pagination.page, pagination.page_size, status)


@router.patch("/moderation/{media_id}")
async def moderate_media(
    media_id: int,
    data: ModerationUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await admin_service.moderate_media(db, admin, media_id, data.status, data.admin_notes)


@router.get("/activity", response_model=PaginatedResponse)
async def admin_activity(
    admin_id: int | None = None,
    pagination: PaginationParams = Depends(),
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await admin_service.get_activity(db, pagination.page, pagination.page_size, admin_id)


@router.get("/analytics")
async def analytics(_: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return await admin_service.get_analytics(db)
