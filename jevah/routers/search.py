from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from jevah.database import get_db
from jevah.dependencies import get_optional_user
from jevah.models import User
from jevah.services import search_service

router = APIRouter(prefix="/api/v1/search", tags=["search"])


@router.get("")
async def search(
    q: str = Query("", max_length=200),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    content_type: str = Query("all", pattern="^(all|media|audio)$"),
    media_type: str | None = None,
    category: str | None = None,
    sort: str = Query("relevance", pattern="^(relevance|popular|newest|oldest|title)$"),
    viewer: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    return await search_service.search(
        db, q, viewer, page, page_size, content_type, media_type, category, sort
    )


@router.get("/suggestions")
async def suggestions(
    q: str = Query("", max_length=100),
    limit: int = Query(10, ge=1, le=50),
    db: AsyncSession = Depends(get_db),
):
    return {"suggestions": await search_service.suggestions(db, q, limit)}


@router.get("/trending")
async def trending(limit: int = Query(10, ge=1, le=50), db: AsyncSession = Depends(get_db)):
    return {"trending": await search_service.trending(db, limit)}
