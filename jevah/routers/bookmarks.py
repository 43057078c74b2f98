from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from jevah.database import get_db
from jevah.dependencies import PaginationParams, get_current_user, get_optional_user
from jevah.models import User
from jevah.schemas import BulkBookmarkRequest, PaginatedResponse
from jevah.services import bookmark_service

router = APIRouter(prefix="/api/v1/bookmarks", tags=["bookmarks"])


@router.get("", response_model=PaginatedResponse)
async def list_bookmarks(
    pagination: PaginationParams = Depends(),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await bookmark_service.get_user_bookmarks(db, user, pagination.page, pagination.page_size)


@router.post("/bulk")
async def bulk_bookmarks(
    data: BulkBookmarkRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await bookmark_service.bulk_bookmark(db, user, data.media_ids, data.action)


@router.post("/{media_id}/toggle")
async def toggle_bookmark(
    media_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await bookmark_service.toggle_bookmark(db, user, media_id)


@router.get("/{media_id}/status")
async def bookmark_status(
    media_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await bookmark_service.get_status(db, user, media_id)


@router.get("/{media_id}/stats")
async def bookmark_stats(
    media_id: int,
    viewer: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    return await bookmark_service.get_media_stats(db, media_id, viewer)
