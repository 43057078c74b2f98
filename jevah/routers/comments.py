from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from jevah.database import get_db
from jevah.dependencies import PaginationParams, get_current_user, get_optional_user, require_moderator
from jevah.models import User
from jevah.schemas import CommentCreate, CommentHide, CommentUpdate, PaginatedResponse
from jevah.services import comment_service

router = APIRouter(prefix="/api/v1/comments", tags=["comments"])


@router.post("", status_code=201)
async def add_comment(
    data: CommentCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await comment_service.add_comment(
        db, user, data.content_type, data.content_id, data.content, data.parent_comment_id
    )


@router.get("", response_model=PaginatedResponse)
async def list_comments(
    content_type: str = Query(..., pattern="^(media|devotional|ebook|podcast|prayer|forum_post)$"),
    content_id: int = Query(...),
    pagination: PaginationParams = Depends(),
    viewer: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    if content_type in ("devotional", "ebook", "podcast"):
        content_type = "media"
    return await comment_service.get_comments(
        db, content_type, content_id, viewer, pagination.page, pagination.page_size
    )


@router.put("/{comment_id}")
async def update_comment(
    comment_id: int,
    data: CommentUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await comment_service.update_comment(db, user, comment_id, data.content)


@router.delete("/{comment_id}", status_code=204)
async def delete_comment(
    comment_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await comment_service.delete_comment(db, user, comment_id)


@router.post("/{comment_id}/like")
async def like_comment(
    comment_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await comment_service.toggle_like(db, user, comment_id)


@router.post("/{comment_id}/hide")
async def hide_comment(
    comment_id: int,
    data: CommentHide,
    moderator: User = Depends(require_moderator),
    db: AsyncSession = Depends(get_db),
):
    return await comment_service.hide_comment(db, moderator, comment_id, data.reason)
