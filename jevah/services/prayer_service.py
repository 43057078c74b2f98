"""
Prayer service: the community prayer wall.

Likes and comments on prayers are rate limited per (user, prayer) using
the fixed-window limiter in ``CacheManager``; the limiter fails open
when Redis is down.  Comments themselves are handled by
``comment_service`` with ``content_type == "prayer"``.
"""
import logging

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from jevah.cache import cache
from jevah.config import settings
from jevah.errors import ForbiddenError, NotFoundError, RateLimitedError
from jevah.models import Interaction, PrayerPost, User, isoformat
from jevah.schemas import PaginatedResponse, PrayerCreate, PrayerUpdate
from jevah.services import comment_service, interaction_service
from jevah.services.pagination import build_page, count_rows
from jevah.services.user_service import user_summary

logger = logging.getLogger(__name__)


def _prayer_to_dict(
    prayer: PrayerPost, viewer_id: int | None = None, author: User | None = None, user_liked: bool = False
) -> dict:
    author = author if author is not None else prayer.author
    show_author = not prayer.anonymous or viewer_id == prayer.author_id
    return {
        "id": prayer.id,
        "content": prayer.content,
        "anonymous": prayer.anonymous,
        "media": prayer.media or [],
        "likes_count": prayer.likes_count,
        "comments_count": prayer.comments_count,
        "user_liked": user_liked,
        "author": user_summary(author) if show_author else None,
        "created_at": isoformat(prayer.created_at),
        "updated_at": isoformat(prayer.updated_at),
    }


async def _get_prayer_or_404(db: AsyncSession, prayer_id: int) -> PrayerPost:
    prayer = await db.get(PrayerPost, prayer_id)
    if prayer is None:
        raise NotFoundError("Prayer not found")
    return prayer


async def _check_rate(user_id: int, prayer_id: int, action: str, limit: int) -> None:
    key = f"prayer:{action}:{user_id}:{prayer_id}"
    if not await cache.rate_limit(key, limit, settings.RATE_LIMIT_WINDOW):
        raise RateLimitedError("Too many requests, please slow down")


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def create_prayer(db: AsyncSession, user: User, data: PrayerCreate) -> dict:
    prayer = PrayerPost(
        author_id=user.id, content=data.content, anonymous=data.anonymous, media=list(data.media)
    )
    db.add(prayer)
    await db.flush()
    return _prayer_to_dict(prayer, user.id, author=user)


async def get_prayers(
    db: AsyncSession, viewer: User | None = None, page: int = 1, page_size: int = 20
) -> PaginatedResponse:
    q = select(PrayerPost)
    total = await count_rows(db, q)
    rows = (
        await db.execute(
            q.options(joinedload(PrayerPost.author))
            .order_by(PrayerPost.created_at.desc(), PrayerPost.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
    ).unique().scalars().all()

    viewer_id = viewer.id if viewer else None
    liked = await interaction_service.liked_target_ids(db, viewer_id, "prayer", [p.id for p in rows])
    return build_page(
        [_prayer_to_dict(p, viewer_id, user_liked=p.id in liked) for p in rows], total, page, page_size
    )


async def get_prayer(db: AsyncSession, prayer_id: int, viewer: User | None = None) -> dict:
    q = select(PrayerPost).where(PrayerPost.id == prayer_id).options(joinedload(PrayerPost.author))
    prayer = (await db.execute(q)).unique().scalar_one_or_none()
    if prayer is None:
        raise NotFoundError("Prayer not found")
    viewer_id = viewer.id if viewer else None
    liked = await interaction_service.liked_target_ids(db, viewer_id, "prayer", [prayer.id])
    return _prayer_to_dict(prayer, viewer_id, user_liked=prayer.id in liked)


async def update_prayer(db: AsyncSession, user: User, prayer_id: int, data: PrayerUpdate) -> dict:
    prayer = await _get_prayer_or_404(db, prayer_id)
    if prayer.author_id != user.id:
        raise ForbiddenError("You can only edit your own prayers")
    for field, value in data.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(prayer, field, value)
    await db.flush()
    return _prayer_to_dict(prayer, user.id, author=user)


async def delete_prayer(db: AsyncSession, user: User, prayer_id: int) -> None:
    prayer = await _get_prayer_or_404(db, prayer_id)
    if prayer.author_id != user.id and user.role != "admin":
        raise ForbiddenError("You can only delete your own prayers")
    await db.execute(
        delete(Interaction).where(Interaction.target_type == "prayer", Interaction.target_id == prayer.id)
    )
    await db.delete(prayer)
    await db.flush()
    logger.info("Prayer %d deleted by user %d", prayer_id, user.id)


async def toggle_like(db: AsyncSession, user: User, prayer_id: int) -> dict:
    prayer = await _get_prayer_or_404(db, prayer_id)
    await _check_rate(user.id, prayer.id, "like", settings.PRAYER_LIKE_LIMIT)
    liked, count = await interaction_service.toggle_like(db, user.id, prayer, "prayer")
    return {"liked": liked, "likes_count": count}


async def add_comment(
    db: AsyncSession, user: User, prayer_id: int, content: str, parent_comment_id: int | None = None
) -> dict:
    prayer = await _get_prayer_or_404(db, prayer_id)
    await _check_rate(user.id, prayer.id, "comment", settings.PRAYER_COMMENT_LIMIT)
    return await comment_service.add_comment(db, user, "prayer", prayer.id, content, parent_comment_id)


async def get_comments(
    db: AsyncSession, prayer_id: int, viewer: User | None = None, page: int = 1, page_size: int = 20
) -> PaginatedResponse:
    return await comment_service.get_comments(db, "prayer", prayer_id, viewer, page, page_size)
