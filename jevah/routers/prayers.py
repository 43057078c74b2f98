from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from jevah.database import get_db
from jevah.dependencies import PaginationParams, get_current_user, get_optional_user
from jevah.models import User
from jevah.schemas import PaginatedResponse, PrayerCommentCreate, PrayerCreate, PrayerUpdate
from jevah.services import prayer_service

router = APIRouter(prefix="/api/v1/prayers", tags=["prayers"])


@router.post("", status_code=201)
async def create_prayer(
    data: PrayerCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await prayer_service.create_prayer(db, user, data)


@router.get("", response_model=PaginatedResponse)
async def list_prayers(
    pagination: PaginationParams = Depends(),
    viewer: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    return await prayer_service.get_prayers(db, viewer, pagination.page, pagination.page_size)


@router.get("/{prayer_id}")
async def get_prayer(
    prayer_id: int,
    viewer: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    return await prayer_service.get_prayer(db, prayer_id, viewer)


@router.put("/{prayer_id}")
async def update_prayer(
    prayer_id: int,
    data: PrayerUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await prayer_service.update_prayer(db, user, prayer_id, data)


@router.delete("/{prayer_id}", status_code=204)
async def delete_prayer(
    prayer_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await prayer_service.delete_prayer(db, user, prayer_id)


@router.post("/{prayer_id}/like")
async def like_prayer(
    prayer_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await prayer_service.toggle_like(db, user, prayer_id)


@router.get("/{prayer_id}/comments", response_model=PaginatedResponse)
async def list_comments(
    prayer_id: int,
    pagination: PaginationParams = Depends(),
    viewer: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    return await prayer_service.get_comments(db, prayer_id, viewer, pagination.page, pagination.page_size)


@router.post("/{prayer_id}/comments", status_code=201)
async def add_comment(
    prayer_id: int,
    data: PrayerCommentCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await prayer_service.add_comment(db, user, prayer_id, data.content, data.parent_comment_id)
