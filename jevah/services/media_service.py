"""
Media service: the media library (videos, music, sermons, podcasts,
ebooks, devotionals).

Design notes
------------
- Public reads only ever return rows that are ``approved`` and not
  hidden.  Uploaders and admins can still open their own pending or
  rejected items by id.
- Public listings go through the cache-aside pattern.  Cache keys encode
  every query dimension; every media write calls
  ``cache.invalidate_media()``.
- Service functions flush but do not commit.
"""
import hashlib
import logging

from sqlalchemy import asc, delete, desc, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from jevah.cache import cache
from jevah.config import settings
from jevah.errors import ForbiddenError, NotFoundError
from jevah.models import (
    Bookmark,
    Interaction,
    LibraryEntry,
    Media,
    MediaReport,
    PlaybackSession,
    User,
    isoformat,
)
from jevah.schemas import MediaCreate, PaginatedResponse
from jevah.services import interaction_service, notification_service
from jevah.services.pagination import build_page, count_rows, ilike_contains
from jevah.services.user_service import user_summary

logger = logging.getLogger(__name__)

_SORTABLE_COLUMNS: frozenset[str] = frozenset(
    {"created_at", "title", "view_count", "listen_count", "like_count", "comment_count"}
)


def _resolve_sort_column(sort_by: str):
    if sort_by in _SORTABLE_COLUMNS:
        return getattr(Media, sort_by)
    return Media.created_at


def publicly_visible():
    """WHERE clause for media that anonymous users may see."""
    return (Media.moderation_status == "approved") & Media.is_hidden.is_(False)


def media_to_dict(media: Media, uploader: User | None = None) -> dict:
    return {
        "id": media.id,
        "title": media.title,
        "description": media.description,
        "speaker": media.speaker,
        "category": media.category,
        "content_type": media.content_type,
        "file_url": media.file_url,
        "thumbnail_url": media.thumbnail_url,
        "duration": media.duration,
        "view_count": media.view_count,
        "listen_count": media.listen_count,
        "read_count": media.read_count,
        "like_count": media.like_count,
        "comment_count": media.comment_count,
        "share_count": media.share_count,
        "moderation_status": media.moderation_status,
        "is_hidden": media.is_hidden,
        "uploaded_by": media.uploaded_by,
        "uploader": user_summary(uploader if uploader is not None else media.uploader),
        "created_at": isoformat(media.created_at),
    }


async def get_media_or_404(db: AsyncSession, media_id: int) -> Media:
    media = await db.get(Media, media_id)
    if media is None:
        raise NotFoundError("Media not found")
    return media


def _can_manage(media: Media, user: User | None) -> bool:
    return user is not None and (user.role == "admin" or media.uploaded_by == user.id)


def is_visible_to(media: Media, viewer: User | None) -> bool:
    if media.moderation_status == "approved" and not media.is_hidden:
        return True
    return _can_manage(media, viewer)


async def get_visible_media_or_404(db: AsyncSession, media_id: int, viewer: User | None) -> Media:
    """Like ``get_media_or_404`` but unpublished media only exists for its uploader and admins."""
    media = await db.get(Media, media_id)
    if media is None or not is_visible_to(media, viewer):
        raise NotFoundError("Media not found")
    return media


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def get_media_list(
    db: AsyncSession,
    page: int = 1,
    page_size: int = 20,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    content_type: str | None = None,
    category: str | None = None,
    search: str | None = None,
) -> PaginatedResponse:
    """Paginated public media listing, cached per query."""
    search_key = hashlib.md5(search.encode()).hexdigest()[:12] if search else ""
    cache_key = (
        f"media:list:{page}:{page_size}:{sort_by}:{sort_order}:"
        f"{content_type or ''}:{category or ''}:{search_key}"
    )
    cached = await cache.get(cache_key)
    if cached:
        return PaginatedResponse(**cached)

    q = select(Media).where(publicly_visible())
    if content_type:
        q = q.where(Media.content_type == content_type)
    if category:
        q = q.where(Media.category == category)
    if search:
        term = search.strip()
        q = q.where(
            or_(
                ilike_contains(Media.title, term),
                ilike_contains(Media.description, term),
                ilike_contains(Media.speaker, term),
            )
        )

    total = await count_rows(db, q)

    order = desc if sort_order == "desc" else asc
    rows_q = (
        q.options(joinedload(Media.uploader))
        .order_by(order(_resolve_sort_column(sort_by)), order(Media.id))
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    media = (await db.execute(rows_q)).unique().scalars().all()

    response = build_page([media_to_dict(m) for m in media], total, page, page_size)
    await cache.set(cache_key, response.model_dump(), ttl=settings.CACHE_TTL_LIST)
    return response


async def get_media(db: AsyncSession, media_id: int, viewer: User | None = None) -> dict:
    q = select(Media).where(Media.id == media_id).options(joinedload(Media.uploader))
    media = (await db.execute(q)).unique().scalar_one_or_none()
    if media is None or not is_visible_to(media, viewer):
        raise NotFoundError("Media not found")

    data = media_to_dict(media)
    if viewer is not None:
        liked = await interaction_service.liked_target_ids(db, viewer.id, "media", [media.id])
        data["is_liked"] = media.id in liked
    return data


async def create_media(db: AsyncSession, user: User, data: MediaCreate) -> dict:
    """Register uploaded media.  New items wait in the moderation queue."""
    media = Media(**data.model_dump(), uploaded_by=user.id, moderation_status="pending")
    db.add(media)
    await db.flush()
    await cache.invalidate_media()
    logger.info("Media %d registered by user %d (pending review)", media.id, user.id)
    return media_to_dict(media, uploader=user)


async def delete_media(db: AsyncSession, actor: User, media_id: int) -> None:
    media = await get_media_or_404(db, media_id)
    if not _can_manage(media, actor):
        raise ForbiddenError("You can only delete your own media")

    for model in (Bookmark, LibraryEntry, PlaybackSession, MediaReport):
        await db.execute(delete(model).where(model.media_id == media_id))
    await db.execute(
        delete(Interaction).where(Interaction.target_type == "media", Interaction.target_id == media_id)
    )
    await db.delete(media)
    await db.flush()
    await cache.invalidate_media()
    logger.info("Media %d deleted by user %d", media_id, actor.id)


async def toggle_like(db: AsyncSession, user: User, media_id: int) -> dict:
    media = await get_visible_media_or_404(db, media_id, user)
    liked, count = await interaction_service.toggle_like(db, user.id, media, "media", counter="like_count")
    if liked and media.uploaded_by and media.uploaded_by != user.id:
        await notification_service.notify(
            db,
            media.uploaded_by,
            "like",
            "New like",
            f"{user.username} liked \"{media.title}\"",
            metadata={"media_id": media.id, "actor_id": user.id},
            related_id=media.id,
        )
    await cache.incr_counter(f"media:{media.id}:likes", 1 if liked else -1)
    await cache.invalidate_media()
    return {"liked": liked, "like_count": count}


async def share_media(db: AsyncSession, user: User, media_id: int, platform: str | None = None) -> dict:
    media = await get_visible_media_or_404(db, media_id, user)
    await interaction_service.record_interaction(
        db, user.id, "media", media.id, "share", details={"platform": platform} if platform else None
    )
    media.share_count += 1
    await db.flush()
    await cache.invalidate_media()
    if media.uploaded_by and media.uploaded_by != user.id:
        await notification_service.notify(
            db,
            media.uploaded_by,
            "share",
            "Your content was shared",
            f"{user.username} shared \"{media.title}\"",
            metadata={"media_id": media.id, "platform": platform},
            related_id=media.id,
            priority="low",
        )
    return {"shared": True, "share_count": media.share_count}


async def is_in_library(db: AsyncSession, user_id: int | None, media_ids: list[int]) -> set[int]:
    """Media ids from *media_ids* that *user_id* has bookmarked or started playing."""
    if user_id is None or not media_ids:
        return set()
    bookmarked = select(Bookmark.media_id).where(
        Bookmark.user_id == user_id, Bookmark.media_id.in_(media_ids)
    )
    in_library = select(LibraryEntry.media_id).where(
        LibraryEntry.user_id == user_id, LibraryEntry.media_id.in_(media_ids)
    )
    ids = set((await db.execute(bookmarked)).scalars().all())
    ids.update((await db.execute(in_library)).scalars().all())
    return ids
