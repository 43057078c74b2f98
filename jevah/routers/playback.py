from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from jevah.database import get_db
from jevah.dependencies import PaginationParams, get_current_user
from jevah.models import User
from jevah.schemas import PaginatedResponse, PlaybackEnd, PlaybackProgress, PlaybackSessionRef, PlaybackStart
from jevah.services import playback_service

router = APIRouter(prefix="/api/v1/playback", tags=["playback"])


@router.post("/start", status_code=201)
async def start_playback(
    data: PlaybackStart,
    request: Request,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await playback_service.start_session(db, user, data, request.headers.get("user-agent"))


@router.post("/progress")
async def update_progress(
    data: PlaybackProgress,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await playback_service.update_progress(db, user, data)


@router.post("/pause")
async def pause_playback(
    data: PlaybackSessionRef,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await playback_service.pause_session(db, user, data.session_id)


@router.post("/resume")
async def resume_playback(
    data: PlaybackSessionRef,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await playback_service.resume_session(db, user, data.session_id)


@router.post("/end")
async def end_playback(
    data: PlaybackEnd,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await playback_service.end_session(db, user, data)


@router.get("/active")
async def active_session(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return {"session": await playback_service.get_active_session(db, user)}


@router.get("/history", response_model=PaginatedResponse)
async def playback_history(
    include_inactive: bool = True,
    pagination: PaginationParams = Depends(),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await playback_service.get_history(
        db, user, pagination.page, pagination.page_size, include_inactive
    )
