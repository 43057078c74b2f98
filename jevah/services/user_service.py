"""
User service: profiles, admin-side user management and user statistics.

User lists are not cached; the admin screens that read them expect
fresh ban and role state after every write.
"""
import logging
from collections import Counter, defaultdict
from datetime import datetime, timedelta, timezone

from sqlalchemy import asc, delete, desc, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from jevah.cache import cache
from jevah.errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from jevah.models import (
    AudioTrack,
    Bookmark,
    DeviceToken,
    Forum,
    ForumPost,
    Interaction,
    LibraryEntry,
    Media,
    MediaReport,
    Notification,
    PlaybackSession,
    Poll,
    PollVote,
    PrayerPost,
    User,
    isoformat,
)
from jevah.schemas import PaginatedResponse, UserCreate, UserUpdate
from jevah.services.interaction_service import COMMENT_COUNTERS, LIKE_COUNTERS, decrement_counters
from jevah.services.pagination import build_page, count_rows, ilike_contains

logger = logging.getLogger(__name__)

_SORTABLE_COLUMNS: frozenset[str] = frozenset({"created_at", "username", "email", "role"})


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def user_summary(user: User | None) -> dict | None:
    """Public author card embedded in posts, comments and polls."""
    if user is None:
        return None
    return {
        "id": user.id,
        "username": user.username,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "avatar_url": user.avatar_url,
    }


def _user_to_dict(user: User) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "avatar_url": user.avatar_url,
        "bio": user.bio,
        "role": user.role,
        "is_banned": user.is_banned,
        "ban_reason": user.ban_reason,
        "ban_until": isoformat(user.ban_until),
        "push_enabled": user.push_enabled,
        "created_at": isoformat(user.created_at),
        "updated_at": isoformat(user.updated_at),
    }


def _public_profile(user: User) -> dict:
    data = user_summary(user)
    data["bio"] = user.bio
    data["role"] = user.role
    data["created_at"] = isoformat(user.created_at)
    return data


async def _get_or_404(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


async def _ensure_unique(
    db: AsyncSession, username: str | None = None, email: str | None = None, exclude_id: int | None = None
) -> None:
    clauses = []
    if username is not None:
        clauses.append(func.lower(User.username) == username.lower())
    if email is not None:
        clauses.append(func.lower(User.email) == email.lower())
    if not clauses:
        return
    q = select(User.id).where(or_(*clauses))
    if exclude_id is not None:
        q = q.where(User.id != exclude_id)
    if (await db.execute(q.limit(1))).scalar_one_or_none() is not None:
        raise ConflictError("A user with this username or email already exists")


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

def get_me(user: User) -> dict:
    return _user_to_dict(user)


async def get_user(db: AsyncSession, user_id: int, viewer: User | None = None) -> dict:
    """Full record for admins and the user themselves, public profile otherwise."""
    user = await _get_or_404(db, user_id)
    if viewer is not None and (viewer.id == user.id or viewer.role == "admin"):
        return _user_to_dict(user)
    return _public_profile(user)


async def get_users(
    db: AsyncSession,
    page: int = 1,
    page_size: int = 20,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    search: str | None = None,
    role: str | None = None,
    is_banned: bool | None = None,
) -> PaginatedResponse:
    q = select(User)
    if search:
        term = search.strip()
        q = q.where(
            or_(
                ilike_contains(User.username, term),
                ilike_contains(User.email, term),
                ilike_contains(User.first_name, term),
                ilike_contains(User.last_name, term),
            )
        )
    if role:
        q = q.where(User.role == role)
    if is_banned is not None:
        q = q.where(User.is_banned.is_(is_banned))

    total = await count_rows(db, q)

    sort_col = getattr(User, sort_by) if sort_by in _SORTABLE_COLUMNS else User.created_at
    order = desc if sort_order == "desc" else asc
    q = q.order_by(order(sort_col), order(User.id)).offset((page - 1) * page_size).limit(page_size)
    users = (await db.execute(q)).scalars().all()
    return build_page([_user_to_dict(u) for u in users], total, page, page_size)


async def create_user(db: AsyncSession, data: UserCreate) -> dict:
    await _ensure_unique(db, username=data.username, email=data.email)
    user = User(
        username=data.username,
        email=data.email.lower(),
        first_name=data.first_name,
        last_name=data.last_name,
        bio=data.bio,
        role=data.role,
        push_preferences={},
        notification_preferences={},
    )
    db.add(user)
    await db.flush()
    logger.info("Created user %d (%s)", user.id, user.username)
    return _user_to_dict(user)


async def update_profile(db: AsyncSession, user: User, data: UserUpdate) -> dict:
    """Apply only the fields present in the payload to *user*."""
    changes = data.model_dump(exclude_unset=True)
    if changes.get("username") and changes["username"] != user.username:
        await _ensure_unique(db, username=changes["username"], exclude_id=user.id)
    elif "username" in changes and not changes["username"]:
        changes.pop("username")

    for field, value in changes.items():
        setattr(user, field, value)
    await db.flush()
    return _user_to_dict(user)


async def update_user(db: AsyncSession, actor: User, user_id: int, data: UserUpdate) -> dict:
    if actor.id != user_id and actor.role != "admin":
        raise ForbiddenError("You can only update your own profile")
    user = actor if actor.id == user_id else await _get_or_404(db, user_id)
    return await update_profile(db, user, data)


async def _release_forum_posts(db: AsyncSession, user_id: int) -> list[int]:
    """Take the user's posts out of each forum's counters; returns the post ids."""
    rows = (
        await db.execute(select(ForumPost.id, ForumPost.forum_id).where(ForumPost.user_id == user_id))
    ).all()
    per_forum = Counter(forum_id for _, forum_id in rows)
    if per_forum:
        forums = (await db.execute(select(Forum).where(Forum.id.in_(list(per_forum))))).scalars().all()
        for forum in forums:
            forum.posts_count = max(0, forum.posts_count - per_forum[forum.id])
            forum.participants_count = max(0, forum.participants_count - 1)
    return [post_id for post_id, _ in rows]


async def _release_likes(db: AsyncSession, user_id: int) -> None:
    rows = (
        await db.execute(
            select(Interaction.target_type, Interaction.target_id).where(
                Interaction.user_id == user_id, Interaction.interaction_type == "like"
            )
        )
    ).all()
    per_type: dict[str, Counter] = defaultdict(Counter)
    for target_type, target_id in rows:
        per_type[target_type][target_id] += 1
    for target_type, amounts in per_type.items():
        if target_type in LIKE_COUNTERS:
            model, counter = LIKE_COUNTERS[target_type]
            await decrement_counters(db, model, counter, amounts)


async def _release_comments(db: AsyncSession, user_id: int) -> list[int]:
    """
    Take the user's comments, and other users' replies to them, out of the
    comment and reply counters.  Returns the ids of all those comments.
    """
    own = (
        await db.execute(
            select(Interaction).where(Interaction.user_id == user_id, Interaction.interaction_type == "comment")
        )
    ).scalars().all()
    own_ids = [c.id for c in own]
    replies = []
    if own_ids:
        replies = (
            await db.execute(
                select(Interaction).where(
                    Interaction.interaction_type == "comment",
                    Interaction.parent_comment_id.in_(own_ids),
                    Interaction.user_id != user_id,
                )
            )
        ).scalars().all()

    doomed = list(own) + list(replies)
    doomed_ids = {c.id for c in doomed}
    per_type: dict[str, Counter] = defaultdict(Counter)
    reply_counts: Counter = Counter()
    for comment in doomed:
        if comment.is_removed:
            continue
        per_type[comment.target_type][comment.target_id] += 1
        if comment.parent_comment_id is not None and comment.parent_comment_id not in doomed_ids:
            reply_counts[comment.parent_comment_id] += 1

    for target_type, amounts in per_type.items():
        if target_type in COMMENT_COUNTERS:
            model, counter = COMMENT_COUNTERS[target_type]
            await decrement_counters(db, model, counter, amounts)
    await decrement_counters(db, Interaction, "reply_count", reply_counts)
    return list(doomed_ids)


async def delete_user(db: AsyncSession, actor: User, user_id: int) -> None:
    """
    Delete a user together with the rows they own.

    Counters on content that outlives the user (forum post and
    participant counts, likes, comments, replies and report counts) are decremented
    first.  Uploaded media, songs and forums outlive their creator with
    the owner column cleared.
    """
    if actor.id == user_id:
        raise BadRequestError("Cannot delete your own account")
    user = await _get_or_404(db, user_id)

    post_ids = await _release_forum_posts(db, user_id)
    await _release_likes(db, user_id)
    comment_ids = await _release_comments(db, user_id)
    reported = (
        await db.execute(select(MediaReport.media_id).where(MediaReport.reported_by == user_id))
    ).scalars().all()
    await decrement_counters(db, Media, "report_count", Counter(reported))
    await db.flush()

    own_polls = select(Poll.id).where(Poll.author_id == user_id)
    own_prayers = select(PrayerPost.id).where(PrayerPost.author_id == user_id)

    await db.execute(delete(PollVote).where(or_(PollVote.user_id == user_id, PollVote.poll_id.in_(own_polls))))
    await db.execute(delete(Poll).where(Poll.author_id == user_id))
    await db.execute(
        delete(Interaction).where(
            or_(
                Interaction.user_id == user_id,
                Interaction.id.in_(comment_ids),
                (Interaction.target_type == "comment") & Interaction.target_id.in_(comment_ids),
                (Interaction.target_type == "prayer") & Interaction.target_id.in_(own_prayers),
                (Interaction.target_type == "forum_post") & Interaction.target_id.in_(post_ids),
            )
        )
    )
    await db.execute(delete(PrayerPost).where(PrayerPost.author_id == user_id))
    await db.execute(delete(MediaReport).where(MediaReport.reported_by == user_id))
    for model in (ForumPost, Bookmark, LibraryEntry, PlaybackSession, Notification, DeviceToken):
        await db.execute(delete(model).where(model.user_id == user_id))

    await db.execute(update(Media).where(Media.uploaded_by == user_id).values(uploaded_by=None))
    await db.execute(update(AudioTrack).where(AudioTrack.uploaded_by == user_id).values(uploaded_by=None))
    await db.execute(update(Forum).where(Forum.created_by == user_id).values(created_by=None))

    await db.delete(user)
    await db.flush()
    await cache.invalidate_media()
    logger.info("User %d deleted by admin %d", user_id, actor.id)


async def get_user_stats(db: AsyncSession) -> dict:
    now = datetime.now(timezone.utc)

    total = (await db.execute(select(func.count()).select_from(User))).scalar_one()
    banned = (
        await db.execute(select(func.count()).select_from(User).where(User.is_banned.is_(True)))
    ).scalar_one()
    role_rows = (await db.execute(select(User.role, func.count()).group_by(User.role))).all()

    new_users = {}
    for label, days in (("last_24h", 1), ("last_7d", 7), ("last_30d", 30)):
        q = select(func.count()).select_from(User).where(User.created_at >= now - timedelta(days=days))
        new_users[label] = (await db.execute(q)).scalar_one()

    return {
        "total_users": total,
        "banned_users": banned,
        "users_by_role": {role: count for role, count in role_rows},
        "new_users": new_users,
    }
