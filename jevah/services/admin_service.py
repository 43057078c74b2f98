"""
Admin service: bans, role changes, the media moderation queue, the admin
audit log and platform-wide analytics.

Every state-changing action writes an ``AdminAction`` row in the same
transaction as the change itself.
"""
import logging
from datetime import timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from jevah.cache import cache
from jevah.errors import BadRequestError, ForbiddenError, NotFoundError
from jevah.models import (
    AdminAction,
    AudioTrack,
    Forum,
    ForumPost,
    Interaction,
    Media,
    MediaReport,
    Poll,
    PrayerPost,
    User,
    isoformat,
    utcnow,
)
from jevah.schemas import BanRequest, PaginatedResponse
from jevah.services import notification_service
from jevah.services.media_service import media_to_dict
from jevah.services.pagination import build_page, count_rows

logger = logging.getLogger(__name__)

DEFAULT_BAN_REASON = "Violation of community guidelines"


def _action_to_dict(action: AdminAction) -> dict:
    return {
        "id": action.id,
        "admin_id": action.admin_id,
        "action": action.action,
        "target_type": action.target_type,
        "target_id": action.target_id,
        "details": action.details or {},
        "created_at": isoformat(action.created_at),
    }


def _ban_state(user: User) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "role": user.role,
        "is_banned": user.is_banned,
        "ban_reason": user.ban_reason,
        "banned_at": isoformat(user.banned_at),
        "ban_until": isoformat(user.ban_until),
        "banned_by": user.banned_by,
    }


async def log_action(
    db: AsyncSession, admin: User, action: str, target_type: str, target_id: int, details: dict | None = None
) -> None:
    db.add(
        AdminAction(
            admin_id=admin.id,
            action=action,
            target_type=target_type,
            target_id=target_id,
            details=details,
        )
    )
    await db.flush()
    logger.info("Admin %d: %s %s %d", admin.id, action, target_type, target_id)


async def _get_user_or_404(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

async def ban_user(db: AsyncSession, admin: User, user_id: int, data: BanRequest) -> dict:
    if admin.id == user_id:
        raise BadRequestError("Cannot ban yourself")
    user = await _get_user_or_404(db, user_id)
    if user.role == "admin":
        raise ForbiddenError("Cannot ban admin users")

    now = utcnow()
    user.is_banned = True
    user.ban_reason = data.reason or DEFAULT_BAN_REASON
    user.banned_at = now
    user.ban_until = now + timedelta(days=data.duration_days) if data.duration_days else None
    user.banned_by = admin.id
    await db.flush()

    await log_action(
        db, admin, "ban_user", "user", user.id,
        {"reason": user.ban_reason, "duration_days": data.duration_days},
    )
    return _ban_state(user)


async def unban_user(db: AsyncSession, admin: User, user_id: int) -> dict:
    user = await _get_user_or_404(db, user_id)
    user.is_banned = False
    user.ban_reason = None
    user.banned_at = None
    user.ban_until = None
    user.banned_by = None
    await db.flush()
    await log_action(db, admin, "unban_user", "user", user.id)
    return _ban_state(user)


async def update_role(db: AsyncSession, admin: User, user_id: int, role: str) -> dict:
    user = await _get_user_or_404(db, user_id)
    previous = user.role
    user.role = role
    await db.flush()
    await log_action(db, admin, "update_role", "user", user.id, {"from": previous, "to": role})
    return _ban_state(user)


# ---------------------------------------------------------------------------
# Moderation
# ---------------------------------------------------------------------------

async def get_moderation_queue(
    db: AsyncSession, page: int = 1, page_size: int = 20, status: str | None = None
) -> PaginatedResponse:
    """Media awaiting review: ``pending`` and ``under_review`` unless *status* is given."""
    statuses = [status] if status else ["pending", "under_review"]
    q = select(Media).where(Media.moderation_status.in_(statuses))
    total = await count_rows(db, q)
    rows = (
        await db.execute(
            q.options(joinedload(Media.uploader))
            .order_by(Media.created_at.asc(), Media.id.asc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
    ).unique().scalars().all()
    items = []
    for media in rows:
        data = media_to_dict(media)
        data["admin_notes"] = media.admin_notes
        data["report_count"] = media.report_count
        items.append(data)
    return build_page(items, total, page, page_size)


async def moderate_media(
    db: AsyncSession, admin: User, media_id: int, status: str, admin_notes: str | None = None
) -> dict:
    media = await db.get(Media, media_id)
    if media is None:
        raise NotFoundError("Media not found")

    previous = media.moderation_status
    media.moderation_status = status
    media.is_hidden = status == "rejected"
    media.moderated_by = admin.id
    media.moderated_at = utcnow()
    if admin_notes is not None:
        media.admin_notes = admin_notes
    await db.flush()

    await log_action(
        db, admin, "moderate_media", "media", media.id,
        {"from": previous, "to": status, "admin_notes": admin_notes},
    )
    # Approval and rejection both change what the public listings show.
    await cache.invalidate_media()

    if media.uploaded_by and status in ("approved", "rejected"):
        verdict = "approved" if status == "approved" else "was not approved"
        await notification_service.notify(
            db,
            media.uploaded_by,
            "system",
            "Content review update",
            f"Your upload \"{media.title}\" {verdict}.",
            metadata={"media_id": media.id, "status": status},
            priority="high" if status == "rejected" else "medium",
            related_id=media.id,
        )

    data = media_to_dict(media)
    data["admin_notes"] = media.admin_notes
    return data


# ---------------------------------------------------------------------------
# Audit log and analytics
# ---------------------------------------------------------------------------

async def get_activity(
    db: AsyncSession, page: int = 1, page_size: int = 20, admin_id: int | None = None
) -> PaginatedResponse:
    q = select(AdminAction)
    if admin_id is not None:
        q = q.where(AdminAction.admin_id == admin_id)
    total = await count_rows(db, q)
    rows = (
        await db.execute(
            q.order_by(AdminAction.created_at.desc(), AdminAction.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
    ).scalars().all()
    return build_page([_action_to_dict(a) for a in rows], total, page, page_size)


async def _count(db: AsyncSession, model, *where) -> int:
    q = select(func.count()).select_from(model)
    if where:
        q = q.where(*where)
    return (await db.execute(q)).scalar_one()


async def get_analytics(db: AsyncSession) -> dict:
    since = utcnow() - timedelta(days=7)

    moderation = dict(
        (await db.execute(select(Media.moderation_status, func.count()).group_by(Media.moderation_status))).all()
    )
    content_types = dict(
        (await db.execute(select(Media.content_type, func.count()).group_by(Media.content_type))).all()
    )

    return {
        "users": {
            "total": await _count(db, User),
            "banned": await _count(db, User, User.is_banned.is_(True)),
            "new_last_7d": await _count(db, User, User.created_at >= since),
        },
        "content": {
            "media": await _count(db, Media),
            "audio_tracks": await _count(db, AudioTrack),
            "forums": await _count(db, Forum),
            "forum_posts": await _count(db, ForumPost),
            "polls": await _count(db, Poll),
            "prayers": await _count(db, PrayerPost),
            "comments": await _count(
                db, Interaction, Interaction.interaction_type == "comment", Interaction.is_removed.is_(False)
            ),
        },
        "moderation": {
            status: moderation.get(status, 0) for status in ("pending", "approved", "rejected", "under_review")
        },
        "reports": {
            "pending": await _count(db, MediaReport, MediaReport.status == "pending"),
            "total": await _count(db, MediaReport),
        },
        "content_types": content_types,
        "cache": cache.stats,
    }
