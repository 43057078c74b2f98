"""
Search service: one search box over the media library and the
copyright-free song library.

Design notes
------------
- Matching is a case-insensitive substring match (media title,
  description and speaker; song title and singer).  Only approved,
  visible media is searchable.
- Candidates from both tables are merged and ranked in Python, so each
  side is capped at ``_CANDIDATE_LIMIT`` rows; ``total`` and the
  breakdown still come from COUNT queries.
- ``relevance`` ranks title matches first, then by popularity.
"""
import math
import time

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from jevah.cache import cache
from jevah.config import settings
from jevah.errors import BadRequestError
from jevah.models import AudioTrack, Media, User, as_utc
from jevah.services import interaction_service
from jevah.services.audio_service import track_to_dict
from jevah.services.media_service import is_in_library, media_to_dict, publicly_visible
from jevah.services.pagination import count_rows, ilike_contains, ilike_prefix

_CANDIDATE_LIMIT = 500


def _media_popularity(media: Media) -> int:
    return media.view_count + media.listen_count + media.read_count + media.like_count


def _track_popularity(track: AudioTrack) -> int:
    return track.view_count + track.like_count


def _rank(results: list[dict], query: str, sort: str) -> list[dict]:
    if sort == "newest":
        return sorted(results, key=lambda r: r["_created_at"], reverse=True)
    if sort == "oldest":
        return sorted(results, key=lambda r: r["_created_at"])
    if sort == "title":
        return sorted(results, key=lambda r: r["title"].lower())
    if sort == "popular":
        return sorted(results, key=lambda r: r["_popularity"], reverse=True)
    return sorted(
        results,
        key=lambda r: (query in r["title"].lower(), r["_popularity"]),
        reverse=True,
    )


async def search(
    db: AsyncSession,
    query: str,
    viewer: User | None = None,
    page: int = 1,
    page_size: int = 20,
    content_type: str = "all",
    media_type: str | None = None,
    category: str | None = None,
    sort: str = "relevance",
) -> dict:
    started = time.perf_counter()
    term = (query or "").strip().lower()
    if not term:
        raise BadRequestError("Search query is required")

    media_total = audio_total = 0
    candidates: list[dict] = []

    if content_type in ("all", "media"):
        mq = select(Media).where(
            publicly_visible(),
            or_(
                ilike_contains(Media.title, term),
                ilike_contains(Media.description, term),
                ilike_contains(Media.speaker, term),
            ),
        )
        if media_type:
            mq = mq.where(Media.content_type == media_type)
        if category:
            mq = mq.where(Media.category == category)
        media_total = await count_rows(db, mq)
        media_rows = (await db.execute(mq.limit(_CANDIDATE_LIMIT))).scalars().all()

        viewer_id = viewer.id if viewer else None
        ids = [m.id for m in media_rows]
        liked = await interaction_service.liked_target_ids(db, viewer_id, "media", ids)
        saved = await is_in_library(db, viewer_id, ids)
        for media in media_rows:
            item = media_to_dict(media)
            item.update(
                result_type="media",
                is_liked=media.id in liked,
                is_in_library=media.id in saved,
                _popularity=_media_popularity(media),
                _created_at=as_utc(media.created_at),
            )
            candidates.append(item)

    if content_type in ("all", "audio"):
        aq = select(AudioTrack).where(
            or_(ilike_contains(AudioTrack.title, term), ilike_contains(AudioTrack.singer, term))
        )
        if category:
            aq = aq.where(AudioTrack.category == category)
        audio_total = await count_rows(db, aq)
        tracks = (await db.execute(aq.limit(_CANDIDATE_LIMIT))).scalars().all()
        liked = await interaction_service.liked_target_ids(
            db, viewer.id if viewer else None, "audio", [t.id for t in tracks]
        )
        for track in tracks:
            item = track_to_dict(track, track.id in liked)
            item.update(
                result_type="audio",
                is_in_library=False,
                _popularity=_track_popularity(track),
                _created_at=as_utc(track.created_at),
            )
            candidates.append(item)

    ranked = _rank(candidates, term, sort)
    start = (page - 1) * page_size
    results = []
    for item in ranked[start:start + page_size]:
        item.pop("_popularity")
        item.pop("_created_at")
        results.append(item)

    total = media_total + audio_total
    total_pages = math.ceil(total / page_size) if total else 0
    return {
        "results": results,
        "total": total,
        "page": page,
        "page_size": page_size,
        "total_pages": total_pages,
        "has_more": page < total_pages,
        "breakdown": {"media": media_total, "audio": audio_total},
        "query": query.strip(),
        "search_time_ms": round((time.perf_counter() - started) * 1000, 2),
    }


async def suggestions(db: AsyncSession, query: str, limit: int = 10) -> list[str]:
    """Distinct lowercase titles, speakers and singers starting with *query*."""
    prefix = (query or "").strip().lower()
    if not prefix:
        return []

    columns = [
        (Media.title, publicly_visible()),
        (Media.speaker, publicly_visible()),
        (AudioTrack.title, None),
        (AudioTrack.singer, None),
    ]
    found: set[str] = set()
    for column, visibility in columns:
        q = select(func.lower(column)).where(ilike_prefix(column, prefix)).distinct().limit(limit)
        if visibility is not None:
            q = q.where(visibility)
        found.update(v for v in (await db.execute(q)).scalars().all() if v)
    return sorted(found)[:limit]


async def trending(db: AsyncSession, limit: int = 10) -> list[dict]:
    cache_key = f"search:trending:{limit}"
    cached = await cache.get(cache_key)
    if cached is not None:
        return cached

    media = (
        await db.execute(
            select(Media.id, Media.title, Media.view_count)
            .where(publicly_visible())
            .order_by(Media.view_count.desc(), Media.id.desc())
            .limit(limit)
        )
    ).all()
    tracks = (
        await db.execute(
            select(AudioTrack.id, AudioTrack.title, AudioTrack.view_count)
            .order_by(AudioTrack.view_count.desc(), AudioTrack.id.desc())
            .limit(limit)
        )
    ).all()

    items = [{"id": i, "query": title, "count": count, "category": "media"} for i, title, count in media]
    items += [{"id": i, "query": title, "count": count, "category": "audio"} for i, title, count in tracks]
    items.sort(key=lambda item: item["count"], reverse=True)
    items = items[:limit]

    await cache.set(cache_key, items, ttl=settings.CACHE_TTL_TRENDING)
    return items
