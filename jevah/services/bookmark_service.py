"""
Bookmark service: users saving media for later.

``bookmark_count`` is not stored on ``Media``; it is counted from the
bookmark rows on each read.
"""
import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from jevah.errors import NotFoundError
from jevah.models import Bookmark, Media, User, isoformat
from jevah.schemas import PaginatedResponse
from jevah.services import notification_service
from jevah.services.media_service import (
    get_media_or_404,
    get_visible_media_or_404,
    is_visible_to,
    media_to_dict,
)
from jevah.services.pagination import build_page, count_rows
from jevah.services.user_service import user_summary

logger = logging.getLogger(__name__)


async def _bookmark_count(db: AsyncSession, media_id: int) -> int:
    q = select(func.count()).select_from(Bookmark).where(Bookmark.media_id == media_id)
    return (await db.execute(q)).scalar_one()


async def _find(db: AsyncSession, user_id: int, media_id: int) -> Bookmark | None:
    q = select(Bookmark).where(Bookmark.user_id == user_id, Bookmark.media_id == media_id)
    return (await db.execute(q)).scalar_one_or_none()


async def _add(db: AsyncSession, user: User, media: Media) -> None:
    db.add(Bookmark(user_id=user.id, media_id=media.id))
    await db.flush()
    if media.uploaded_by and media.uploaded_by != user.id:
        await notification_service.notify(
            db,
            media.uploaded_by,
            "bookmark",
            "Someone saved your content",
            f"{user.username} saved \"{media.title}\"",
            metadata={"media_id": media.id, "actor_id": user.id},
            priority="low",
            related_id=media.id,
        )


async def _get_bookmarkable(db: AsyncSession, user: User, media_id: int) -> tuple[Media, Bookmark | None]:
    """
    Media the user may bookmark, plus their existing bookmark.  Unpublished
    media is missing for everyone but its uploader and admins, except that
    an existing bookmark on it can still be read and removed.
    """
    media = await get_media_or_404(db, media_id)
    existing = await _find(db, user.id, media.id)
    if existing is None and not is_visible_to(media, user):
        raise NotFoundError("Media not found")
    return media, existing


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def toggle_bookmark(db: AsyncSession, user: User, media_id: int) -> dict:
    media, existing = await _get_bookmarkable(db, user, media_id)
    if existing is not None:
        await db.delete(existing)
        await db.flush()
        bookmarked = False
    else:
        await _add(db, user, media)
        bookmarked = True
    return {"bookmarked": bookmarked, "bookmark_count": await _bookmark_count(db, media.id)}


async def get_status(db: AsyncSession, user: User, media_id: int) -> dict:
    media, existing = await _get_bookmarkable(db, user, media_id)
    return {
        "bookmarked": existing is not None,
        "bookmark_count": await _bookmark_count(db, media.id),
    }


async def get_user_bookmarks(
    db: AsyncSession, user: User, page: int = 1, page_size: int = 20
) -> PaginatedResponse:
    q = select(Bookmark).where(Bookmark.user_id == user.id)
    total = await count_rows(db, q)
    rows = (
        await db.execute(
            q.options(joinedload(Bookmark.media))
            .order_by(Bookmark.created_at.desc(), Bookmark.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
    ).unique().scalars().all()

    items = []
    for bookmark in rows:
        data = media_to_dict(bookmark.media)
        data["bookmarked_at"] = isoformat(bookmark.created_at)
        items.append(data)
    return build_page(items, total, page, page_size)


async def get_media_stats(db: AsyncSession, media_id: int, viewer: User | None = None) -> dict:
    media = await get_visible_media_or_404(db, media_id, viewer)
    recent = (
        await db.execute(
            select(Bookmark)
            .where(Bookmark.media_id == media.id)
            .options(joinedload(Bookmark.user))
            .order_by(Bookmark.created_at.desc(), Bookmark.id.desc())
            .limit(10)
        )
    ).unique().scalars().all()
    return {
        "media_id": media.id,
        "total_bookmarks": await _bookmark_count(db, media.id),
        "recent_bookmarks": [
            {"user": user_summary(b.user), "bookmarked_at": isoformat(b.created_at)} for b in recent
        ],
    }


async def bulk_bookmark(db: AsyncSession, user: User, media_ids: list[int], action: str) -> dict:
    """
    Add or remove many bookmarks.  Each id succeeds or fails on its own;
    a missing media item never aborts the batch.
    """
    results = []
    for media_id in dict.fromkeys(media_ids):
        try:
            media, existing = await _get_bookmarkable(db, user, media_id)
        except NotFoundError as exc:
            results.append({"media_id": media_id, "success": False, "error": exc.message})
            continue

        if action == "add" and existing is None:
            await _add(db, user, media)
        elif action == "remove" and existing is not None:
            await db.delete(existing)
            await db.flush()
        results.append({"media_id": media_id, "success": True, "error": None})

    success = sum(1 for r in results if r["success"])
    logger.info("Bulk %s bookmarks for user %d: %d ok, %d failed", action, user.id, success, len(results) - success)
    return {"success": success, "failed": len(results) - success, "results": results}
