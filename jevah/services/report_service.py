"""
Report service: users flagging media for moderators.

Design notes
------------
- One report per (media, user); uploaders cannot report their own media.
- Every report bumps ``Media.report_count`` and notifies all admins.
  Once the count reaches ``REPORT_REVIEW_THRESHOLD`` the media moves to
  ``under_review``, which takes it out of public listings until an admin
  decides.
- Resolving a report rejects and hides the media.  ``reviewed`` and
  ``dismissed`` only close the report.
"""
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from jevah.cache import cache
from jevah.config import settings
from jevah.errors import BadRequestError, NotFoundError
from jevah.models import Media, MediaReport, User, isoformat, utcnow
from jevah.schemas import MediaReportCreate, PaginatedResponse, ReportReview
from jevah.services import notification_service
from jevah.services.admin_service import log_action
from jevah.services.media_service import get_media_or_404, get_visible_media_or_404
from jevah.services.pagination import build_page, count_rows
from jevah.services.user_service import user_summary

logger = logging.getLogger(__name__)


def _report_to_dict(report: MediaReport, reporter: User | None = None, media: Media | None = None) -> dict:
    data = {
        "id": report.id,
        "media_id": report.media_id,
        "reason": report.reason,
        "description": report.description,
        "status": report.status,
        "reported_by": user_summary(reporter if reporter is not None else report.reporter),
        "reviewed_by": report.reviewed_by,
        "reviewed_at": isoformat(report.reviewed_at),
        "admin_notes": report.admin_notes,
        "created_at": isoformat(report.created_at),
    }
    media = media if media is not None else report.media
    if media is not None:
        data["media"] = {
            "id": media.id,
            "title": media.title,
            "content_type": media.content_type,
            "thumbnail_url": media.thumbnail_url,
            "report_count": media.report_count,
            "moderation_status": media.moderation_status,
        }
    return data


async def _notify_admins(db: AsyncSession, reporter: User, media: Media, report: MediaReport) -> None:
    admin_ids = (await db.execute(select(User.id).where(User.role == "admin"))).scalars().all()
    escalated = media.report_count >= settings.REPORT_REVIEW_THRESHOLD
    for admin_id in admin_ids:
        await notification_service.notify(
            db,
            admin_id,
            "content_report",
            "New content report",
            f"{reporter.username} reported \"{media.title}\" ({report.reason})",
            metadata={
                "media_id": media.id,
                "report_id": report.id,
                "reason": report.reason,
                "report_count": media.report_count,
            },
            priority="high" if escalated else "medium",
            related_id=media.id,
        )


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def report_media(db: AsyncSession, user: User, media_id: int, data: MediaReportCreate) -> dict:
    media = await get_visible_media_or_404(db, media_id, user)
    if media.uploaded_by == user.id:
        raise BadRequestError("You cannot report your own content")

    existing = await db.execute(
        select(MediaReport.id).where(MediaReport.media_id == media.id, MediaReport.reported_by == user.id)
    )
    if existing.scalar_one_or_none() is not None:
        raise BadRequestError("You have already reported this media")

    report = MediaReport(
        media_id=media.id,
        reported_by=user.id,
        reason=data.reason,
        description=data.description or None,
        status="pending",
    )
    db.add(report)
    media.report_count += 1
    escalated = (
        media.report_count >= settings.REPORT_REVIEW_THRESHOLD
        and media.moderation_status not in ("under_review", "rejected")
    )
    if escalated:
        media.moderation_status = "under_review"
    await db.flush()

    if escalated:
        await cache.invalidate_media()
        logger.info("Media %d moved to review after %d reports", media.id, media.report_count)
    await _notify_admins(db, user, media, report)
    return _report_to_dict(report, reporter=user, media=media)


async def get_media_reports(db: AsyncSession, media_id: int) -> dict:
    await get_media_or_404(db, media_id)
    reports = (
        await db.execute(
            select(MediaReport)
            .where(MediaReport.media_id == media_id)
            .options(joinedload(MediaReport.reporter))
            .order_by(MediaReport.created_at.desc(), MediaReport.id.desc())
        )
    ).unique().scalars().all()
    return {"reports": [_report_to_dict(r) for r in reports], "count": len(reports)}


async def get_pending_reports(db: AsyncSession, page: int = 1, page_size: int = 20) -> PaginatedResponse:
    q = select(MediaReport).where(MediaReport.status == "pending")
    total = await count_rows(db, q)
    rows = (
        await db.execute(
            q.options(joinedload(MediaReport.reporter), joinedload(MediaReport.media))
            .order_by(MediaReport.created_at.desc(), MediaReport.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
    ).unique().scalars().all()
    return build_page([_report_to_dict(r) for r in rows], total, page, page_size)


async def review_report(db: AsyncSession, admin: User, report_id: int, data: ReportReview) -> dict:
    report = await db.get(MediaReport, report_id)
    if report is None:
        raise NotFoundError("Report not found")

    report.status = data.status
    report.reviewed_by = admin.id
    report.reviewed_at = utcnow()
    if data.admin_notes:
        report.admin_notes = data.admin_notes

    media = await db.get(Media, report.media_id)
    if data.status == "resolved" and media is not None:
        media.moderation_status = "rejected"
        media.is_hidden = True
        media.moderated_by = admin.id
        media.moderated_at = report.reviewed_at
    await db.flush()

    await log_action(
        db, admin, "review_report", "media_report", report.id,
        {"status": data.status, "media_id": report.media_id},
    )
    if data.status == "resolved":
        await cache.invalidate_media()

    reporter = await db.get(User, report.reported_by)
    return _report_to_dict(report, reporter=reporter, media=media)
