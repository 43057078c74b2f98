from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from jevah.database import get_db
from jevah.dependencies import PaginationParams, get_current_user, get_optional_user, require_admin
from jevah.models import User
from jevah.schemas import ForumCreate, ForumPostCreate, ForumPostUpdate, PaginatedResponse
from jevah.services import forum_service

router = APIRouter(prefix="/api/v1/forums", tags=["forums"])


@router.post("", status_code=201)
async def create_forum(
    data: ForumCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await forum_service.create_forum(db, admin, data)


@router.get("", response_model=PaginatedResponse)
async def list_forums(pagination: PaginationParams = Depends(), db: AsyncSession = Depends(get_db)):
    return await forum_service.get_forums(db, pagination.page, pagination.page_size)


@router.put("/posts/{post_id}")
async def update_post(
    post_id: int,
    data: ForumPostUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await forum_service.update_post(db, user, post_id, data)


@router.delete("/posts/{post_id}", status_code=204)
async def delete_post(
    post_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await forum_service.delete_post(db, user, post_id)


@router.post("/posts/{post_id}/like")
async def like_post(
    post_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await forum_service.toggle_like(db, user, post_id)


@router.get("/{forum_id}")
async def get_forum(forum_id: int, db: AsyncSession = Depends(get_db)):
    return await forum_service.get_forum(db, forum_id)


@router.post("/{forum_id}/posts", status_code=201)
async def create_post(
    forum_id: int,
    data: ForumPostCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await forum_service.create_post(db, user, forum_id, data)


@router.get("/{forum_id}/posts", response_model=PaginatedResponse)
async def list_posts(
    forum_id: int,
    pagination: PaginationParams = Depends(),
    viewer: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    return await forum_service.get_posts(
        db, forum_id, viewer, pagination.page, pagination.page_size, pagination.sort_by, pagination.sort_order
    )
