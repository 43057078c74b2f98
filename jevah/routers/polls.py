from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from jevah.database import get_db
from jevah.dependencies import PaginationParams, get_current_user, get_optional_user
from jevah.models import User
from jevah.schemas import PaginatedResponse, PollCreate, PollUpdate, PollVoteRequest
from jevah.services import poll_service

router = APIRouter(prefix="/api/v1/polls", tags=["polls"])


@router.post("", status_code=201)
async def create_poll(
    data: PollCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await poll_service.create_poll(db, user, data)


@router.get("", response_model=PaginatedResponse)
async def list_polls(
    status: str = Query("all", pattern="^(all|open|closed)$"),
    pagination: PaginationParams = Depends(),
    viewer: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    return await poll_service.get_polls(db, viewer, pagination.page, pagination.page_size, status)


@router.get("/mine", response_model=PaginatedResponse)
async def my_polls(
    pagination: PaginationParams = Depends(),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await poll_service.get_polls(
        db, user, pagination.page, pagination.page_size, author_id=user.id
    )


@router.get("/{poll_id}")
async def get_poll(
    poll_id: int,
    viewer: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    return await poll_service.get_poll(db, poll_id, viewer)


@router.post("/{poll_id}/vote")
async def vote(
    poll_id: int,
    data: PollVoteRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await poll_service.vote(db, user, poll_id, data.option_indexes)


@router.put("/{poll_id}")
async def update_poll(
    poll_id: int,
    data: PollUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await poll_service.update_poll(db, user, poll_id, data)


@router.delete("/{poll_id}", status_code=204)
async def delete_poll(
    poll_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await poll_service.delete_poll(db, user, poll_id)
