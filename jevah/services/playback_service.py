"""
Playback service: per-user playback sessions and library progress.

Design notes
------------
- A user has at most one active session.  Starting a new one
  deactivates (pauses and closes) whatever was active before.
- Watch time only grows by forward movement between progress reports;
  seeking backwards adds nothing.
- Ending a session counts one view, or one listen for audio-like content
  types, once the user has played at least
  ``PLAYBACK_VIEW_THRESHOLD_SECONDS``; the public media listing cache is
  purged when that happens.
- Sessions belonging to another user are reported as missing.
"""
import logging
from datetime import timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from jevah.cache import cache
from jevah.config import settings
from jevah.errors import BadRequestError, NotFoundError
from jevah.models import AUDIO_CONTENT_TYPES, LibraryEntry, Media, PlaybackSession, User, isoformat, utcnow
from jevah.schemas import PaginatedResponse, PlaybackEnd, PlaybackProgress, PlaybackStart
from jevah.services import interaction_service
from jevah.services.media_service import get_visible_media_or_404
from jevah.services.pagination import build_page, count_rows

logger = logging.getLogger(__name__)

COMPLETION_THRESHOLD = 90


def _percentage(position: float, duration: float) -> float:
    if not duration:
        return 0
    return max(0, min(100, round(position / duration * 100)))


def _session_to_dict(session: PlaybackSession, media: Media | None = None) -> dict:
    data = {
        "id": session.id,
        "media_id": session.media_id,
        "started_at": isoformat(session.started_at),
        "last_progress_at": isoformat(session.last_progress_at),
        "current_position": session.current_position,
        "duration": session.duration,
        "progress_percentage": session.progress_percentage,
        "total_watch_time": session.total_watch_time,
        "is_active": session.is_active,
        "is_paused": session.is_paused,
        "paused_at": isoformat(session.paused_at),
        "ended_at": isoformat(session.ended_at),
        "end_reason": session.end_reason,
        "device_info": session.device_info,
    }
    media = media if media is not None else session.media
    if media is not None:
        data["media"] = {
            "id": media.id,
            "title": media.title,
            "content_type": media.content_type,
            "thumbnail_url": media.thumbnail_url,
        }
    return data


async def _get_owned_session(db: AsyncSession, user: User, session_id: int) -> PlaybackSession:
    session = await db.get(PlaybackSession, session_id)
    if session is None or session.user_id != user.id:
        raise NotFoundError("Playback session not found")
    return session


def _require_active(session: PlaybackSession) -> None:
    if not session.is_active:
        raise BadRequestError("Playback session is not active")


async def _library_entry(db: AsyncSession, user_id: int, media_id: int) -> LibraryEntry:
    q = select(LibraryEntry).where(LibraryEntry.user_id == user_id, LibraryEntry.media_id == media_id)
    entry = (await db.execute(q)).scalar_one_or_none()
    if entry is None:
        entry = LibraryEntry(user_id=user_id, media_id=media_id, watch_progress=0, completion_percentage=0)
        db.add(entry)
    return entry


def _advance(session: PlaybackSession, position: float) -> None:
    session.total_watch_time += max(0, position - session.current_position)
    session.current_position = position


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def start_session(
    db: AsyncSession, user: User, data: PlaybackStart, user_agent: str | None = None
) -> dict:
    media = await get_visible_media_or_404(db, data.media_id, user)
    now = utcnow()

    active = (
        await db.execute(
            select(PlaybackSession)
            .where(PlaybackSession.user_id == user.id, PlaybackSession.is_active.is_(True))
            .order_by(PlaybackSession.started_at.desc())
        )
    ).scalars().all()
    previous = None
    for session in active:
        session.is_active = False
        session.is_paused = True
        session.paused_at = now
        session.ended_at = now
        session.end_reason = "superseded"
        previous = previous or session

    entry = await _library_entry(db, user.id, media.id)
    position = data.position if data.position is not None else (entry.watch_progress or 0)
    duration = data.duration or media.duration or 0

    session = PlaybackSession(
        user_id=user.id,
        media_id=media.id,
        started_at=now,
        last_progress_at=now,
        current_position=position,
        duration=duration,
        progress_percentage=_percentage(position, duration),
        total_watch_time=0,
        is_active=True,
        is_paused=False,
        device_info=data.device_info,
        user_agent=user_agent[:500] if user_agent else None,
    )
    db.add(session)
    entry.last_watched = now
    await db.flush()

    return {
        "session": _session_to_dict(session, media),
        "previous_session": _session_to_dict(previous) if previous else None,
        "previous_session_paused": previous is not None,
        "resume_from": position,
    }


async def update_progress(db: AsyncSession, user: User, data: PlaybackProgress) -> dict:
    session = await _get_owned_session(db, user, data.session_id)
    _require_active(session)

    if data.duration:
        session.duration = data.duration
    _advance(session, data.position)
    if data.progress_percentage is not None:
        session.progress_percentage = max(0, min(100, data.progress_percentage))
    else:
        session.progress_percentage = _percentage(data.position, session.duration)
    session.last_progress_at = utcnow()

    entry = await _library_entry(db, user.id, session.media_id)
    entry.watch_progress = data.position
    entry.completion_percentage = session.progress_percentage
    entry.last_watched = session.last_progress_at
    await db.flush()
    return _session_to_dict(session)


async def pause_session(db: AsyncSession, user: User, session_id: int) -> dict:
    session = await _get_owned_session(db, user, session_id)
    _require_active(session)
    session.is_paused = True
    session.paused_at = utcnow()
    await db.flush()
    return _session_to_dict(session)


async def resume_session(db: AsyncSession, user: User, session_id: int) -> dict:
    session = await _get_owned_session(db, user, session_id)
    _require_active(session)
    session.is_paused = False
    session.paused_at = None
    session.last_progress_at = utcnow()
    await db.flush()
    return _session_to_dict(session)


async def end_session(db: AsyncSession, user: User, data: PlaybackEnd) -> dict:
    session = await _get_owned_session(db, user, data.session_id)
    _require_active(session)

    if data.final_position is not None:
        _advance(session, data.final_position)
        session.progress_percentage = _percentage(data.final_position, session.duration)

    now = utcnow()
    session.is_active = False
    session.is_paused = False
    session.ended_at = now
    session.end_reason = data.reason

    is_complete = session.progress_percentage >= COMPLETION_THRESHOLD
    entry = await _library_entry(db, user.id, session.media_id)
    entry.watch_progress = session.current_position
    entry.completion_percentage = 100 if is_complete else session.progress_percentage
    entry.last_watched = now

    threshold = settings.PLAYBACK_VIEW_THRESHOLD_SECONDS
    view_recorded = session.total_watch_time >= threshold or session.current_position >= threshold
    if view_recorded:
        media = await db.get(Media, session.media_id)
        if media is not None:
            kind = "listen" if media.content_type in AUDIO_CONTENT_TYPES else "view"
            await interaction_service.record_interaction(
                db, user.id, "media", media.id, kind,
                details={"session_id": session.id, "watch_time": session.total_watch_time},
            )
            if kind == "listen":
                media.listen_count += 1
            else:
                media.view_count += 1
    await db.flush()
    if view_recorded:
        await cache.invalidate_media()

    return {"session": _session_to_dict(session), "view_recorded": view_recorded, "is_complete": is_complete}


async def get_active_session(db: AsyncSession, user: User) -> dict | None:
    q = (
        select(PlaybackSession)
        .where(PlaybackSession.user_id == user.id, PlaybackSession.is_active.is_(True))
        .options(joinedload(PlaybackSession.media))
        .order_by(PlaybackSession.started_at.desc())
        .limit(1)
    )
    session = (await db.execute(q)).unique().scalar_one_or_none()
    return _session_to_dict(session) if session else None


async def get_history(
    db: AsyncSession, user: User, page: int = 1, page_size: int = 20, include_inactive: bool = True
) -> PaginatedResponse:
    q = select(PlaybackSession).where(PlaybackSession.user_id == user.id)
    if not include_inactive:
        q = q.where(PlaybackSession.is_active.is_(True))
    total = await count_rows(db, q)
    rows = (
        await db.execute(
            q.options(joinedload(PlaybackSession.media))
            .order_by(PlaybackSession.started_at.desc(), PlaybackSession.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
    ).unique().scalars().all()
    return build_page([_session_to_dict(s) for s in rows], total, page, page_size)


async def cleanup_stale_sessions(db: AsyncSession) -> int:
    """Close active sessions with no progress for ``PLAYBACK_STALE_MINUTES``."""
    now = utcnow()
    cutoff = now - timedelta(minutes=settings.PLAYBACK_STALE_MINUTES)
    stale = (
        await db.execute(
            select(PlaybackSession).where(
                PlaybackSession.is_active.is_(True), PlaybackSession.last_progress_at < cutoff
            )
        )
    ).scalars().all()
    for session in stale:
        session.is_active = False
        session.is_paused = False
        session.ended_at = now
        session.end_reason = "stale"
    await db.flush()
    if stale:
        logger.info("Closed %d stale playback session(s)", len(stale))
    return len(stale)
