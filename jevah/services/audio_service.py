"""
Audio service: the copyright-free song library.

Category and artist facets are cached; every admin write purges the
``audio:*`` keys.
"""
import logging

from sqlalchemy import asc, delete, desc, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from jevah.cache import cache
from jevah.config import settings
from jevah.errors import NotFoundError
from jevah.models import AudioTrack, Interaction, User, isoformat
from jevah.schemas import AudioTrackCreate, AudioTrackUpdate, PaginatedResponse
from jevah.services import interaction_service
from jevah.services.pagination import build_page, count_rows, ilike_contains

logger = logging.getLogger(__name__)

# sort name -> (column, direction)
_SORTS = {
    "newest": (AudioTrack.created_at, desc),
    "oldest": (AudioTrack.created_at, asc),
    "popular": (AudioTrack.view_count, desc),
    "title": (AudioTrack.title, asc),
}


def track_to_dict(track: AudioTrack, is_liked: bool = False) -> dict:
    return {
        "id": track.id,
        "title": track.title,
        "singer": track.singer,
        "category": track.category,
        "file_url": track.file_url,
        "thumbnail_url": track.thumbnail_url,
        "duration": track.duration,
        "like_count": track.like_count,
        "share_count": track.share_count,
        "view_count": track.view_count,
        "is_liked": is_liked,
        "created_at": isoformat(track.created_at),
    }


async def _get_track_or_404(db: AsyncSession, track_id: int) -> AudioTrack:
    track = await db.get(AudioTrack, track_id)
    if track is None:
        raise NotFoundError("Song not found")
    return track


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

async def get_tracks(
    db: AsyncSession,
    viewer: User | None = None,
    page: int = 1,
    page_size: int = 20,
    search: str | None = None,
    category: str | None = None,
    artist: str | None = None,
    sort: str = "newest",
) -> PaginatedResponse:
    q = select(AudioTrack)
    if search:
        term = search.strip()
        q = q.where(or_(ilike_contains(AudioTrack.title, term), ilike_contains(AudioTrack.singer, term)))
    if category:
        q = q.where(AudioTrack.category == category)
    if artist:
        q = q.where(func.lower(AudioTrack.singer) == artist.strip().lower())

    total = await count_rows(db, q)
    column, direction = _SORTS.get(sort, _SORTS["newest"])
    tracks = (
        await db.execute(
            q.order_by(direction(column), direction(AudioTrack.id))
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
    ).scalars().all()

    liked = await interaction_service.liked_target_ids(
        db, viewer.id if viewer else None, "audio", [t.id for t in tracks]
    )
    return build_page([track_to_dict(t, t.id in liked) for t in tracks], total, page, page_size)


async def get_track(db: AsyncSession, track_id: int, viewer: User | None = None) -> dict:
    track = await _get_track_or_404(db, track_id)
    liked = await interaction_service.liked_target_ids(db, viewer.id if viewer else None, "audio", [track.id])
    return track_to_dict(track, track.id in liked)


async def get_categories(db: AsyncSession) -> list[dict]:
    cached = await cache.get("audio:categories")
    if cached is not None:
        return cached
    rows = (
        await db.execute(
            select(AudioTrack.category, func.count())
            .where(AudioTrack.category.is_not(None))
            .group_by(AudioTrack.category)
            .order_by(AudioTrack.category)
        )
    ).all()
    categories = [{"category": name, "count": count} for name, count in rows]
    await cache.set("audio:categories", categories, ttl=settings.CACHE_TTL_DETAIL)
    return categories


async def get_artists(db: AsyncSession) -> list[dict]:
    cached = await cache.get("audio:artists")
    if cached is not None:
        return cached
    rows = (
        await db.execute(
            select(AudioTrack.singer, func.count()).group_by(AudioTrack.singer).order_by(AudioTrack.singer)
        )
    ).all()
    artists = [{"artist": name, "count": count} for name, count in rows]
    await cache.set("audio:artists", artists, ttl=settings.CACHE_TTL_DETAIL)
    return artists


# ---------------------------------------------------------------------------
# Admin writes
# ---------------------------------------------------------------------------

async def create_track(db: AsyncSession, admin: User, data: AudioTrackCreate) -> dict:
    track = AudioTrack(**data.model_dump(), uploaded_by=admin.id)
    db.add(track)
    await db.flush()
    await cache.invalidate_audio()
    logger.info("Song %d added by admin %d", track.id, admin.id)
    return track_to_dict(track)


async def update_track(db: AsyncSession, track_id: int, data: AudioTrackUpdate) -> dict:
    track = await _get_track_or_404(db, track_id)
    for field, value in data.model_dump(exclude_unset=True).items():
        if value is not None or field in ("category", "thumbnail_url", "duration"):
            setattr(track, field, value)
    await db.flush()
    await cache.invalidate_audio()
    return track_to_dict(track)


async def delete_track(db: AsyncSession, track_id: int) -> None:
    track = await _get_track_or_404(db, track_id)
    await db.execute(
        delete(Interaction).where(Interaction.target_type == "audio", Interaction.target_id == track.id)
    )
    await db.delete(track)
    await db.flush()
    await cache.invalidate_audio()


async def toggle_like(db: AsyncSession, user: User, track_id: int) -> dict:
    track = await _get_track_or_404(db, track_id)
    liked, count = await interaction_service.toggle_like(db, user.id, track, "audio", counter="like_count")
    return {"liked": liked, "like_count": count}
