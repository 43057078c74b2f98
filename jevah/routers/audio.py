from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from jevah.database import get_db
from jevah.dependencies import PaginationParams, get_current_user, get_optional_user, require_admin
from jevah.models import User
from jevah.schemas import AudioTrackCreate, AudioTrackUpdate, PaginatedResponse
from jevah.services import audio_service

router = APIRouter(prefix="/api/v1/audio", tags=["audio"])


@router.get("/songs", response_model=PaginatedResponse)
async def list_songs(
    search: str | None = Query(None, max_length=200),
    category: str | None = None,
    artist: str | None = None,
    sort: str = Query("newest", pattern="^(newest|oldest|popular|title)$"),
    pagination: PaginationParams = Depends(),
    viewer: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    return await audio_service.get_tracks(
        db, viewer, pagination.page, pagination.page_size, search, category, artist, sort
    )


@router.get("/categories")
async def list_categories(db: AsyncSession = Depends(get_db)):
    return await audio_service.get_categories(db)


@router.get("/artists")
async def list_artists(db: AsyncSession = Depends(get_db)):
    return await audio_service.get_artists(db)


@router.get("/songs/{song_id}")
async def get_song(
    song_id: int,
    viewer: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    return await audio_service.get_track(db, song_id, viewer)


@router.post("/songs", status_code=201)
async def create_song(
    data: AudioTrackCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await audio_service.create_track(db, admin, data)


@router.put("/songs/{song_id}")
async def update_song(
    song_id: int,
    data: AudioTrackUpdate,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await audio_service.update_track(db, song_id, data)


@router.delete("/songs/{song_id}", status_code=204)
async def delete_song(
    song_id: int,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await audio_service.delete_track(db, song_id)


@router.post("/songs/{song_id}/like")
async def like_song(
    song_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await audio_service.toggle_like(db, user, song_id)
