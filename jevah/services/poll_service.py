"""
Poll service: community polls with single or multi-select voting.

Each user holds at most one ``PollVote`` row per poll; voting again
replaces the previous choice.  Option tallies are computed from the vote
rows on read rather than stored.
"""
import logging
from datetime import datetime, timezone

from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from jevah.errors import BadRequestError, ForbiddenError, NotFoundError
from jevah.models import Poll, PollVote, User, as_utc, isoformat, utcnow
from jevah.schemas import PaginatedResponse, PollCreate, PollUpdate
from jevah.services.pagination import build_page, count_rows
from jevah.services.user_service import user_summary

logger = logging.getLogger(__name__)


def _is_active(poll: Poll, now: datetime | None = None) -> bool:
    closes_at = as_utc(poll.closes_at)
    return closes_at is None or closes_at > (now or utcnow())


def _require_future(value: datetime) -> datetime:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    if value <= utcnow():
        raise BadRequestError("Poll closing time must be in the future")
    return value


def _poll_to_dict(
    poll: Poll, votes: list[PollVote], viewer_id: int | None = None, author: User | None = None
) -> dict:
    """
    Serialise *poll* with per-option tallies.

    ``total_votes`` counts voters; on multi-select polls option
    percentages are relative to voters, so they may sum past 100.
    """
    tallies = [0] * len(poll.options)
    user_indexes: list[int] | None = None
    for vote in votes:
        for index in vote.option_indexes:
            if 0 <= index < len(tallies):
                tallies[index] += 1
        if viewer_id is not None and vote.user_id == viewer_id:
            user_indexes = list(vote.option_indexes)

    total = len(votes)
    options = [
        {
            "index": i,
            "text": text,
            "votes_count": tallies[i],
            "percentage": round(tallies[i] / total * 100) if total else 0,
        }
        for i, text in enumerate(poll.options)
    ]
    return {
        "id": poll.id,
        "question": poll.question,
        "description": poll.description,
        "options": options,
        "multi_select": poll.multi_select,
        "closes_at": isoformat(poll.closes_at),
        "is_active": _is_active(poll),
        "total_votes": total,
        "user_voted": user_indexes is not None,
        "user_option_indexes": user_indexes or [],
        "author": user_summary(author if author is not None else poll.author),
        "created_at": isoformat(poll.created_at),
    }


async def _votes_by_poll(db: AsyncSession, poll_ids: list[int]) -> dict[int, list[PollVote]]:
    grouped: dict[int, list[PollVote]] = {pid: [] for pid in poll_ids}
    if not poll_ids:
        return grouped
    rows = (await db.execute(select(PollVote).where(PollVote.poll_id.in_(poll_ids)))).scalars().all()
    for vote in rows:
        grouped[vote.poll_id].append(vote)
    return grouped


async def _get_poll_or_404(db: AsyncSession, poll_id: int) -> Poll:
    q = select(Poll).where(Poll.id == poll_id).options(joinedload(Poll.author))
    poll = (await db.execute(q)).unique().scalar_one_or_none()
    if poll is None:
        raise NotFoundError("Poll not found")
    return poll


def _check_manage(poll: Poll, user: User) -> None:
    if poll.author_id != user.id and user.role != "admin":
        raise ForbiddenError("Only the poll creator or an admin can modify this poll")


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def create_poll(db: AsyncSession, user: User, data: PollCreate) -> dict:
    closes_at = _require_future(data.closes_at) if data.closes_at else None
    poll = Poll(
        question=data.question,
        description=data.description,
        options=list(data.options),
        multi_select=data.multi_select,
        closes_at=closes_at,
        author_id=user.id,
    )
    db.add(poll)
    await db.flush()
    logger.info("Poll %d created by user %d", poll.id, user.id)
    return _poll_to_dict(poll, [], user.id, author=user)


async def get_polls(
    db: AsyncSession,
    viewer: User | None = None,
    page: int = 1,
    page_size: int = 20,
    status: str = "all",
    author_id: int | None = None,
) -> PaginatedResponse:
    q = select(Poll)
    now = utcnow()
    if status == "open":
        q = q.where(or_(Poll.closes_at.is_(None), Poll.closes_at > now))
    elif status == "closed":
        q = q.where(Poll.closes_at.is_not(None), Poll.closes_at <= now)
    if author_id is not None:
        q = q.where(Poll.author_id == author_id)

    total = await count_rows(db, q)
    polls = (
        await db.execute(
            q.options(joinedload(Poll.author))
            .order_by(Poll.created_at.desc(), Poll.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
    ).unique().scalars().all()

    votes = await _votes_by_poll(db, [p.id for p in polls])
    viewer_id = viewer.id if viewer else None
    return build_page(
        [_poll_to_dict(p, votes[p.id], viewer_id) for p in polls], total, page, page_size
    )


async def get_poll(db: AsyncSession, poll_id: int, viewer: User | None = None) -> dict:
    poll = await _get_poll_or_404(db, poll_id)
    votes = await _votes_by_poll(db, [poll.id])
    return _poll_to_dict(poll, votes[poll.id], viewer.id if viewer else None)


async def vote(db: AsyncSession, user: User, poll_id: int, option_indexes: list[int]) -> dict:
    poll = await _get_poll_or_404(db, poll_id)
    if not _is_active(poll):
        raise BadRequestError("This poll is closed")
    if len(set(option_indexes)) != len(option_indexes):
        raise BadRequestError("Duplicate options are not allowed")
    if not poll.multi_select and len(option_indexes) != 1:
        raise BadRequestError("This poll allows only one option")
    if any(i < 0 or i >= len(poll.options) for i in option_indexes):
        raise BadRequestError("Invalid option index")

    existing = (
        await db.execute(select(PollVote).where(PollVote.poll_id == poll.id, PollVote.user_id == user.id))
    ).scalar_one_or_none()
    if existing is not None:
        existing.option_indexes = sorted(option_indexes)
        existing.voted_at = utcnow()
    else:
        db.add(PollVote(poll_id=poll.id, user_id=user.id, option_indexes=sorted(option_indexes)))
    await db.flush()

    votes = await _votes_by_poll(db, [poll.id])
    return _poll_to_dict(poll, votes[poll.id], user.id)


async def update_poll(db: AsyncSession, user: User, poll_id: int, data: PollUpdate) -> dict:
    poll = await _get_poll_or_404(db, poll_id)
    _check_manage(poll, user)

    changes = data.model_dump(exclude_unset=True)
    if changes.get("question") is not None:
        poll.question = changes["question"]
    if "description" in changes:
        poll.description = changes["description"]
    if "closes_at" in changes:
        # Explicit null removes the deadline.
        poll.closes_at = _require_future(changes["closes_at"]) if changes["closes_at"] else None
    await db.flush()

    votes = await _votes_by_poll(db, [poll.id])
    return _poll_to_dict(poll, votes[poll.id], user.id)


async def delete_poll(db: AsyncSession, user: User, poll_id: int) -> None:
    poll = await _get_poll_or_404(db, poll_id)
    _check_manage(poll, user)
    await db.execute(delete(PollVote).where(PollVote.poll_id == poll.id))
    await db.delete(poll)
    await db.flush()
    logger.info("Poll %d deleted by user %d", poll_id, user.id)
