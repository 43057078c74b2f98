"""
Comment service: threaded comments on media, prayer posts and forum
posts.

Design notes
------------
- A comment is an ``Interaction`` with ``interaction_type == "comment"``
  pointing at its content via ``target_type``/``target_id``.  Replies
  carry ``parent_comment_id``; threads are one level deep in listings.
- Creating or removing a comment adjusts the content's comment counter
  and the parent's ``reply_count`` in the same flush.
- Deletion is soft: the row stays with ``is_removed`` set and its text
  replaced, so reply threads keep their parent.
- Each change is published on ``content:{type}:{id}`` for real-time
  clients.
"""
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from jevah.cache import cache
from jevah.errors import ForbiddenError, NotFoundError
from jevah.models import ForumPost, Interaction, Media, PrayerPost, User, isoformat, utcnow
from jevah.schemas import PaginatedResponse
from jevah.services import interaction_service, notification_service
from jevah.services.pagination import build_page, count_rows
from jevah.services.user_service import user_summary

logger = logging.getLogger(__name__)

REMOVED_PLACEHOLDER = "[Deleted]"

# content_type -> (model, comment counter column, owner column)
_TARGETS = {
    "media": (Media, "comment_count", "uploaded_by"),
    "prayer": (PrayerPost, "comments_count", "author_id"),
    "forum_post": (ForumPost, "comments_count", "user_id"),
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def _get_target(db: AsyncSession, content_type: str, content_id: int):
    if content_type not in _TARGETS:
        raise NotFoundError("Content not found")
    model = _TARGETS[content_type][0]
    target = await db.get(model, content_id)
    if target is None:
        raise NotFoundError("Content not found")
    return target


def _adjust_counter(target, content_type: str, delta: int) -> int:
    counter = _TARGETS[content_type][1]
    setattr(target, counter, max(0, getattr(target, counter) + delta))
    return getattr(target, counter)


async def _get_comment_or_404(db: AsyncSession, comment_id: int) -> Interaction:
    comment = await db.get(Interaction, comment_id)
    if comment is None or comment.interaction_type != "comment" or comment.is_removed:
        raise NotFoundError("Comment not found")
    return comment


def _comment_to_dict(
    comment: Interaction,
    author: User | None = None,
    user_liked: bool = False,
    replies: list[dict] | None = None,
) -> dict:
    data = {
        "id": comment.id,
        "content_type": comment.target_type,
        "content_id": comment.target_id,
        "content": comment.content,
        "parent_comment_id": comment.parent_comment_id,
        "reply_count": comment.reply_count,
        "likes_count": comment.likes_count,
        "user_liked": user_liked,
        "author": user_summary(author if author is not None else comment.user),
        "created_at": isoformat(comment.created_at),
        "updated_at": isoformat(comment.updated_at),
    }
    if replies is not None:
        data["replies"] = replies
    return data


async def _publish(content_type: str, content_id: int, comment_id: int, action: str, count: int) -> None:
    await cache.publish(
        f"content:{content_type}:{content_id}",
        {
            "event": "content:comment",
            "content_id": content_id,
            "content_type": content_type,
            "comment_id": comment_id,
            "action": action,
            "comment_count": count,
        },
    )


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def add_comment(
    db: AsyncSession,
    user: User,
    content_type: str,
    content_id: int,
    content: str,
    parent_comment_id: int | None = None,
) -> dict:
    target = await _get_target(db, content_type, content_id)

    parent = None
    if parent_comment_id is not None:
        parent = await db.get(Interaction, parent_comment_id)
        if (
            parent is None
            or parent.interaction_type != "comment"
            or parent.is_removed
            or parent.target_type != content_type
            or parent.target_id != content_id
        ):
            raise NotFoundError("Parent comment not found")

    comment = Interaction(
        user_id=user.id,
        target_type=content_type,
        target_id=content_id,
        interaction_type="comment",
        content=content,
        parent_comment_id=parent_comment_id,
    )
    db.add(comment)
    count = _adjust_counter(target, content_type, 1)
    if parent is not None:
        parent.reply_count += 1
    await db.flush()

    owner_id = getattr(target, _TARGETS[content_type][2])
    if owner_id and owner_id != user.id:
        await notification_service.notify(
            db,
            owner_id,
            "comment",
            "New comment",
            f"{user.username} commented: {content[:100]}",
            metadata={"content_type": content_type, "content_id": content_id, "comment_id": comment.id},
            related_id=content_id,
        )
    if parent is not None and parent.user_id not in (user.id, owner_id):
        await notification_service.notify(
            db,
            parent.user_id,
            "comment",
            "New reply",
            f"{user.username} replied to your comment",
            metadata={"content_type": content_type, "content_id": content_id, "comment_id": comment.id},
            related_id=parent.id,
        )

    if content_type == "media":
        await cache.invalidate_media()
    await _publish(content_type, content_id, comment.id, "created", count)
    return _comment_to_dict(comment, author=user, replies=None if parent else [])


async def get_comments(
    db: AsyncSession,
    content_type: str,
    content_id: int,
    viewer: User | None = None,
    page: int = 1,
    page_size: int = 20,
) -> PaginatedResponse:
    """
    Top-level comments newest first, each with its visible replies
    oldest first.
    """
    await _get_target(db, content_type, content_id)

    visible = (
        Interaction.interaction_type == "comment",
        Interaction.is_removed.is_(False),
        Interaction.is_hidden.is_(False),
    )
    q = select(Interaction).where(
        Interaction.target_type == content_type,
        Interaction.target_id == content_id,
        Interaction.parent_comment_id.is_(None),
        *visible,
    )
    total = await count_rows(db, q)
    top = (
        await db.execute(
            q.options(joinedload(Interaction.user))
            .order_by(Interaction.created_at.desc(), Interaction.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
    ).unique().scalars().all()

    replies_by_parent: dict[int, list[Interaction]] = {c.id: [] for c in top}
    if top:
        reply_rows = (
            await db.execute(
                select(Interaction)
                .where(Interaction.parent_comment_id.in_(list(replies_by_parent)), *visible)
                .options(joinedload(Interaction.user))
                .order_by(Interaction.created_at.asc(), Interaction.id.asc())
            )
        ).unique().scalars().all()
        for reply in reply_rows:
            replies_by_parent[reply.parent_comment_id].append(reply)

    all_ids = [c.id for c in top] + [r.id for rs in replies_by_parent.values() for r in rs]
    liked = await interaction_service.liked_target_ids(db, viewer.id if viewer else None, "comment", all_ids)

    items = [
        _comment_to_dict(
            c,
            user_liked=c.id in liked,
            replies=[_comment_to_dict(r, user_liked=r.id in liked) for r in replies_by_parent[c.id]],
        )
        for c in top
    ]
    return build_page(items, total, page, page_size)


async def update_comment(db: AsyncSession, user: User, comment_id: int, content: str) -> dict:
    comment = await _get_comment_or_404(db, comment_id)
    if comment.user_id != user.id:
        raise ForbiddenError("You can only edit your own comments")
    comment.content = content
    comment.updated_at = utcnow()
    await db.flush()

    target = await _get_target(db, comment.target_type, comment.target_id)
    count = getattr(target, _TARGETS[comment.target_type][1])
    await _publish(comment.target_type, comment.target_id, comment.id, "updated", count)
    return _comment_to_dict(comment, author=user)


async def delete_comment(db: AsyncSession, user: User, comment_id: int) -> None:
    comment = await _get_comment_or_404(db, comment_id)
    if comment.user_id != user.id and user.role != "admin":
        raise ForbiddenError("You can only delete your own comments")

    comment.is_removed = True
    comment.content = REMOVED_PLACEHOLDER

    target = await db.get(_TARGETS[comment.target_type][0], comment.target_id)
    count = _adjust_counter(target, comment.target_type, -1) if target is not None else 0
    if comment.parent_comment_id is not None:
        parent = await db.get(Interaction, comment.parent_comment_id)
        if parent is not None:
            parent.reply_count = max(0, parent.reply_count - 1)
    await db.flush()

    logger.info("Comment %d removed by user %d", comment.id, user.id)
    if comment.target_type == "media":
        await cache.invalidate_media()
    await _publish(comment.target_type, comment.target_id, comment.id, "deleted", count)


async def toggle_like(db: AsyncSession, user: User, comment_id: int) -> dict:
    comment = await _get_comment_or_404(db, comment_id)
    liked, count = await interaction_service.toggle_like(db, user.id, comment, "comment")
    return {"liked": liked, "likes_count": count}


async def hide_comment(db: AsyncSession, moderator: User, comment_id: int, reason: str) -> dict:
    comment = await _get_comment_or_404(db, comment_id)
    comment.is_hidden = True
    comment.hidden_reason = reason
    comment.hidden_by = moderator.id
    await db.flush()
    logger.info("Comment %d hidden by %d: %s", comment.id, moderator.id, reason)

    author = await db.get(User, comment.user_id)
    data = _comment_to_dict(comment, author=author)
    data["is_hidden"] = True
    data["hidden_reason"] = reason
    return data
