"""
Notification service: in-app notifications, read state and per-type
preferences.

``notify`` is the single entry point other services use.  It honours the
recipient's preferences, stores the row and then attempts a push to the
recipient's devices.
"""
import logging

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from jevah.errors import NotFoundError
from jevah.models import NOTIFICATION_TYPES, Notification, User, isoformat, utcnow
from jevah.services import push_service
from jevah.services.pagination import build_page, count_rows

logger = logging.getLogger(__name__)


def _notification_to_dict(notification: Notification) -> dict:
    return {
        "id": notification.id,
        "title": notification.title,
        "message": notification.message,
        "type": notification.type,
        "priority": notification.priority,
        "metadata": notification.payload or {},
        "related_id": notification.related_id,
        "is_read": notification.is_read,
        "read_at": isoformat(notification.read_at),
        "created_at": isoformat(notification.created_at),
    }


async def notify(
    db: AsyncSession,
    user_id: int,
    type: str,
    title: str,
    message: str,
    metadata: dict | None = None,
    priority: str = "medium",
    related_id: int | None = None,
) -> Notification | None:
    """
    Store a notification for *user_id* and push it.

    Returns None without writing when the user has switched *type* off
    or no longer exists.
    """
    user = await db.get(User, user_id)
    if user is None:
        return None
    if (user.notification_preferences or {}).get(type) is False:
        logger.debug("Notification %s suppressed for user %d by preference", type, user_id)
        return None

    notification = Notification(
        user_id=user_id,
        type=type,
        title=title,
        message=message,
        payload=metadata,
        priority=priority,
        related_id=related_id,
    )
    db.add(notification)
    await db.flush()

    await push_service.send_to_user(
        db,
        user_id,
        title,
        message,
        data={"notification_id": notification.id, "type": type, **(metadata or {})},
        category=push_service.CATEGORY_FOR_TYPE.get(type),
    )
    return notification


async def list_notifications(
    db: AsyncSession,
    user: User,
    page: int = 1,
    page_size: int = 20,
    type: str | None = None,
    unread_only: bool = False,
) -> dict:
    q = select(Notification).where(Notification.user_id == user.id)
    if type:
        q = q.where(Notification.type == type)
    if unread_only:
        q = q.where(Notification.is_read.is_(False))

    total = await count_rows(db, q)
    rows = (
        await db.execute(
            q.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
    ).scalars().all()

    unread_q = select(func.count()).select_from(Notification).where(
        Notification.user_id == user.id, Notification.is_read.is_(False)
    )
    unread = (await db.execute(unread_q)).scalar_one()

    response = build_page([_notification_to_dict(n) for n in rows], total, page, page_size).model_dump()
    response["unread_count"] = unread
    return response


async def mark_read(db: AsyncSession, user: User, notification_id: int) -> dict:
    notification = await db.get(Notification, notification_id)
    # Someone else's notification is reported as missing.
    if notification is None or notification.user_id != user.id:
        raise NotFoundError("Notification not found")
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = utcnow()
        await db.flush()
    return _notification_to_dict(notification)


async def mark_all_read(db: AsyncSession, user: User) -> int:
    result = await db.execute(
        update(Notification)
        .where(Notification.user_id == user.id, Notification.is_read.is_(False))
        .values(is_read=True, read_at=utcnow())
    )
    await db.flush()
    return result.rowcount


async def get_stats(db: AsyncSession, user: User) -> dict:
    rows = (
        await db.execute(
            select(Notification.type, Notification.is_read, func.count())
            .where(Notification.user_id == user.id)
            .group_by(Notification.type, Notification.is_read)
        )
    ).all()

    by_type: dict[str, int] = {}
    total = unread = 0
    for type_, is_read, count in rows:
        by_type[type_] = by_type.get(type_, 0) + count
        total += count
        if not is_read:
            unread += count
    return {"total": total, "unread": unread, "by_type": by_type}


def get_preferences(user: User) -> dict[str, bool]:
    prefs = {t: True for t in NOTIFICATION_TYPES}
    prefs.update(user.notification_preferences or {})
    return prefs


async def update_preferences(db: AsyncSession, user: User, preferences: dict[str, bool]) -> dict[str, bool]:
    user.notification_preferences = {**(user.notification_preferences or {}), **preferences}
    await db.flush()
    return get_preferences(user)
