"""
Interaction service: the shared like/share/view bookkeeping used by the
per-resource services.

Likes are unique per (user, target) and stored as ``Interaction`` rows
with ``interaction_type == "like"``.  The denormalised counter on the
target row is adjusted in the same flush and never drops below zero.
"""
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from jevah.models import AudioTrack, ForumPost, Interaction, Media, PrayerPost

# target_type -> (model, like counter column)
LIKE_COUNTERS = {
    "media": (Media, "like_count"),
    "audio": (AudioTrack, "like_count"),
    "prayer": (PrayerPost, "likes_count"),
    "forum_post": (ForumPost, "likes_count"),
    "comment": (Interaction, "likes_count"),
}

# target_type -> (model, comment counter column)
COMMENT_COUNTERS = {
    "media": (Media, "comment_count"),
    "prayer": (PrayerPost, "comments_count"),
    "forum_post": (ForumPost, "comments_count"),
}


async def find_interaction(
    db: AsyncSession, user_id: int, target_type: str, target_id: int, interaction_type: str
) -> Interaction | None:
    q = (
        select(Interaction)
        .where(
            Interaction.user_id == user_id,
            Interaction.target_type == target_type,
            Interaction.target_id == target_id,
            Interaction.interaction_type == interaction_type,
        )
        .limit(1)
    )
    return (await db.execute(q)).scalar_one_or_none()


async def toggle_like(
    db: AsyncSession, user_id: int, target, target_type: str, counter: str = "likes_count"
) -> tuple[bool, int]:
    """
    Like *target* if *user_id* has not liked it yet, otherwise unlike it.

    Returns ``(liked, new_count)`` where *new_count* is the value of the
    target's *counter* column after the toggle.
    """
    existing = await find_interaction(db, user_id, target_type, target.id, "like")
    if existing is not None:
        await db.delete(existing)
        setattr(target, counter, max(0, getattr(target, counter) - 1))
        liked = False
    else:
        db.add(
            Interaction(
                user_id=user_id,
                target_type=target_type,
                target_id=target.id,
                interaction_type="like",
            )
        )
        setattr(target, counter, getattr(target, counter) + 1)
        liked = True
    await db.flush()
    return liked, getattr(target, counter)


async def liked_target_ids(
    db: AsyncSession, user_id: int | None, target_type: str, target_ids: list[int]
) -> set[int]:
    """Return the subset of *target_ids* that *user_id* has liked (one query)."""
    if user_id is None or not target_ids:
        return set()
    q = select(Interaction.target_id).where(
        Interaction.user_id == user_id,
        Interaction.target_type == target_type,
        Interaction.target_id.in_(target_ids),
        Interaction.interaction_type == "like",
    )
    return set((await db.execute(q)).scalars().all())


async def record_interaction(
    db: AsyncSession,
    user_id: int,
    target_type: str,
    target_id: int,
    interaction_type: str,
    details: dict | None = None,
) -> Interaction:
    """Append a non-unique interaction (view, listen, share, download)."""
    interaction = Interaction(
        user_id=user_id,
        target_type=target_type,
        target_id=target_id,
        interaction_type=interaction_type,
        details=details,
    )
    db.add(interaction)
    await db.flush()
    return interaction


async def decrement_counters(db: AsyncSession, model, counter: str, amounts: dict[int, int]) -> None:
    """Subtract ``amounts[id]`` from *counter* on each *model* row, floored at zero."""
    if not amounts:
        return
    rows = (await db.execute(select(model).where(model.id.in_(list(amounts))))).scalars().all()
    for row in rows:
        setattr(row, counter, max(0, getattr(row, counter) - amounts[row.id]))
