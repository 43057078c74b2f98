"""
Forum service: admin-created forums, member posts and post likes.

``posts_count`` and ``participants_count`` on ``Forum`` are denormalised
and maintained here.  A user counts as a participant while they have at
least one post in the forum: their first post adds them and deleting
their last one removes them.
"""
import logging

from sqlalchemy import asc, delete, desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from jevah.cache import cache
from jevah.errors import ForbiddenError, NotFoundError
from jevah.models import Forum, ForumPost, Interaction, User, isoformat
from jevah.schemas import ForumCreate, ForumPostCreate, ForumPostUpdate, PaginatedResponse
from jevah.services import interaction_service
from jevah.services.pagination import build_page, count_rows
from jevah.services.user_service import user_summary

logger = logging.getLogger(__name__)

_POST_SORT_COLUMNS: frozenset[str] = frozenset({"created_at", "likes_count", "comments_count"})


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def _forum_to_dict(forum: Forum, creator: User | None = None) -> dict:
    return {
        "id": forum.id,
        "title": forum.title,
        "description": forum.description,
        "is_active": forum.is_active,
        "posts_count": forum.posts_count,
        "participants_count": forum.participants_count,
        "created_by": user_summary(creator if creator is not None else forum.creator),
        "created_at": isoformat(forum.created_at),
    }


def _post_to_dict(post: ForumPost, author: User | None = None, user_liked: bool = False) -> dict:
    return {
        "id": post.id,
        "forum_id": post.forum_id,
        "content": post.content,
        "embedded_links": post.embedded_links or [],
        "tags": post.tags or [],
        "likes_count": post.likes_count,
        "comments_count": post.comments_count,
        "user_liked": user_liked,
        "author": user_summary(author if author is not None else post.author),
        "created_at": isoformat(post.created_at),
        "updated_at": isoformat(post.updated_at),
    }


async def _get_active_forum(db: AsyncSession, forum_id: int) -> Forum:
    forum = await db.get(Forum, forum_id)
    if forum is None or not forum.is_active:
        raise NotFoundError("Forum not found")
    return forum


async def get_post_or_404(db: AsyncSession, post_id: int) -> ForumPost:
    post = await db.get(ForumPost, post_id)
    if post is None:
        raise NotFoundError("Post not found")
    return post


# ---------------------------------------------------------------------------
# Forums
# ---------------------------------------------------------------------------

async def create_forum(db: AsyncSession, admin: User, data: ForumCreate) -> dict:
    forum = Forum(title=data.title, description=data.description, created_by=admin.id)
    db.add(forum)
    await db.flush()
    logger.info("Forum %d created by admin %d", forum.id, admin.id)
    return _forum_to_dict(forum, creator=admin)


async def get_forums(db: AsyncSession, page: int = 1, page_size: int = 20) -> PaginatedResponse:
    q = select(Forum).where(Forum.is_active.is_(True))
    total = await count_rows(db, q)
    rows = (
        await db.execute(
            q.options(joinedload(Forum.creator))
            .order_by(Forum.created_at.desc(), Forum.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
    ).unique().scalars().all()
    return build_page([_forum_to_dict(f) for f in rows], total, page, page_size)


async def get_forum(db: AsyncSession, forum_id: int) -> dict:
    q = select(Forum).where(Forum.id == forum_id, Forum.is_active.is_(True)).options(joinedload(Forum.creator))
    forum = (await db.execute(q)).unique().scalar_one_or_none()
    if forum is None:
        raise NotFoundError("Forum not found")
    return _forum_to_dict(forum)


# ---------------------------------------------------------------------------
# Posts
# ---------------------------------------------------------------------------

async def _count_user_posts(
    db: AsyncSession, forum_id: int, user_id: int, exclude_id: int | None = None
) -> int:
    q = select(func.count()).select_from(ForumPost).where(
        ForumPost.forum_id == forum_id, ForumPost.user_id == user_id
    )
    if exclude_id is not None:
        q = q.where(ForumPost.id != exclude_id)
    return (await db.execute(q)).scalar_one()


async def create_post(db: AsyncSession, user: User, forum_id: int, data: ForumPostCreate) -> dict:
    forum = await _get_active_forum(db, forum_id)
    prior_posts = await _count_user_posts(db, forum_id, user.id)

    post = ForumPost(
        forum_id=forum_id,
        user_id=user.id,
        content=data.content,
        embedded_links=[link.model_dump(exclude_none=True) for link in data.embedded_links],
        tags=[t.strip() for t in data.tags if t.strip()],
    )
    db.add(post)

    forum.posts_count += 1
    if prior_posts == 0:
        forum.participants_count += 1
    await db.flush()
    return _post_to_dict(post, author=user)


async def get_posts(
    db: AsyncSession,
    forum_id: int,
    viewer: User | None = None,
    page: int = 1,
    page_size: int = 20,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> PaginatedResponse:
    await _get_active_forum(db, forum_id)

    q = select(ForumPost).where(ForumPost.forum_id == forum_id)
    total = await count_rows(db, q)

    sort_col = getattr(ForumPost, sort_by) if sort_by in _POST_SORT_COLUMNS else ForumPost.created_at
    order = desc if sort_order == "desc" else asc
    rows = (
        await db.execute(
            q.options(joinedload(ForumPost.author))
            .order_by(order(sort_col), order(ForumPost.id))
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
    ).unique().scalars().all()

    liked = await interaction_service.liked_target_ids(
        db, viewer.id if viewer else None, "forum_post", [p.id for p in rows]
    )
    return build_page(
        [_post_to_dict(p, user_liked=p.id in liked) for p in rows], total, page, page_size
    )


async def update_post(db: AsyncSession, user: User, post_id: int, data: ForumPostUpdate) -> dict:
    post = await get_post_or_404(db, post_id)
    if post.user_id != user.id:
        raise ForbiddenError("You can only edit your own posts")

    changes = data.model_dump(exclude_unset=True, exclude_none=False)
    if changes.get("content") is not None:
        post.content = data.content
    if "embedded_links" in changes:
        links = data.embedded_links or []
        post.embedded_links = [link.model_dump(exclude_none=True) for link in links]
    await db.flush()

    liked = await interaction_service.liked_target_ids(db, user.id, "forum_post", [post.id])
    return _post_to_dict(post, author=user, user_liked=post.id in liked)


async def delete_post(db: AsyncSession, user: User, post_id: int) -> None:
    post = await get_post_or_404(db, post_id)
    if post.user_id != user.id and user.role != "admin":
        raise ForbiddenError("You can only delete your own posts")

    forum = await db.get(Forum, post.forum_id)
    remaining = await _count_user_posts(db, post.forum_id, post.user_id, exclude_id=post.id)
    await db.execute(
        delete(Interaction).where(
            Interaction.target_type == "forum_post", Interaction.target_id == post.id
        )
    )
    await db.delete(post)
    if forum is not None:
        forum.posts_count = max(0, forum.posts_count - 1)
        if remaining == 0:
            forum.participants_count = max(0, forum.participants_count - 1)
    await db.flush()


async def toggle_like(db: AsyncSession, user: User, post_id: int) -> dict:
    post = await get_post_or_404(db, post_id)
    liked, count = await interaction_service.toggle_like(db, user.id, post, "forum_post")
    await cache.incr_counter(f"post:{post.id}:likes", 1 if liked else -1)
    return {"liked": liked, "likes_count": count}

