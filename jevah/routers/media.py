from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from jevah.database import get_db
from jevah.dependencies import PaginationParams, get_current_user, get_optional_user, require_admin
from jevah.models import User
from jevah.schemas import MediaCreate, MediaReportCreate, PaginatedResponse, ReportReview, ShareRequest
from jevah.services import media_service, report_service

router = APIRouter(prefix="/api/v1/media", tags=["media"])


@router.get("", response_model=PaginatedResponse)
async def list_media(
    content_type: str | None = None,
    category: str | None = None,
    search: str | None = Query(None, max_length=200),
    pagination: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    return await media_service.get_media_list(
        db,
        pagination.page,
        pagination.page_size,
        pagination.sort_by,
        pagination.sort_order,
        content_type=content_type,
        category=category,
        search=search,
    )


@router.get("/reports/pending", response_model=PaginatedResponse)
async def pending_reports(
    pagination: PaginationParams = Depends(),
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await report_service.get_pending_reports(db, pagination.page, pagination.page_size)


@router.post("/reports/{report_id}/review")
async def review_report(
    report_id: int,
    data: ReportReview,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await report_service.review_report(db, admin, report_id, data)


@router.get("/{media_id}")
async def get_media(
    media_id: int,
    viewer: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    return await media_service.get_media(db, media_id, viewer)


@router.post("", status_code=201)
async def create_media(
    data: MediaCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await media_service.create_media(db, user, data)


@router.delete("/{media_id}", status_code=204)
async def delete_media(
    media_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await media_service.delete_media(db, user, media_id)


@router.post("/{media_id}/like")
async def like_media(
    media_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await media_service.toggle_like(db, user, media_id)


@router.post("/{media_id}/share")
async def share_media(
    media_id: int,
    data: ShareRequest | None = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await media_service.share_media(db, user, media_id, data.platform if data else None)


@router.post("/{media_id}/report", status_code=201)
async def report_media(
    media_id: int,
    data: MediaReportCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await report_service.report_media(db, user, media_id, data)


@router.get("/{media_id}/reports")
async def media_reports(
    media_id: int,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await report_service.get_media_reports(db, media_id)
