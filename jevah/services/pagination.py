import math

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from jevah.schemas import PaginatedResponse

LIKE_ESCAPE = "\\"


async def count_rows(db: AsyncSession, query: Select) -> int:
    """COUNT(*) over *query* with ordering and eager-load options stripped."""
    subquery = query.order_by(None).subquery()
    return (await db.execute(select(func.count()).select_from(subquery))).scalar_one()


def build_page(items: list, total: int, page: int, page_size: int) -> PaginatedResponse:
    pages = math.ceil(total / page_size) if total > 0 else 0
    return PaginatedResponse(
        items=items,
        total=total,
        page=page,
        page_size=page_size,
        pages=pages,
        has_more=page < pages,
    )


def escape_like(term: str) -> str:
    """Escape LIKE wildcards in *term*; pair with ``escape=LIKE_ESCAPE``."""
    return (
        term.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )


def ilike_contains(column, term: str):
    """Case-insensitive literal substring match of *term* against *column*."""
    return func.lower(column).like(f"%{escape_like(term.lower())}%", escape=LIKE_ESCAPE)


def ilike_prefix(column, term: str):
    return func.lower(column).like(f"{escape_like(term.lower())}%", escape=LIKE_ESCAPE)
