import logging
from datetime import datetime, timedelta, timezone

from fastapi import Depends, HTTPException, Query
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from jevah.config import settings
from jevah.database import get_db
from jevah.models import User, as_utc

logger = logging.getLogger(__name__)

_bearer = HTTPBearer(auto_error=False)


class PaginationParams:
    """
    Reusable dependency that parses pagination and sorting query
    parameters.

    ``sort_by`` is passed through untouched; each service maps it onto a
    whitelist of columns and falls back to its default ordering.
    """

    def __init__(
        self,
        page: int = Query(1, ge=1, description="Page number (1-based)."),
        page_size: int = Query(
            20,
            ge=1,
            le=100,
            description="Number of items returned per page (max 100).",
        ),
        sort_by: str = Query("created_at", description="Column name to sort results by."),
        sort_order: str = Query(
            "desc",
            pattern="^(asc|desc)$",
            description="Sort direction: 'asc' or 'desc'.",
        ),
    ) -> None:
        self.page = page
        self.page_size = min(page_size, settings.MAX_PAGE_SIZE)
        self.sort_by = sort_by
        self.sort_order = sort_order

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


# ---------------------------------------------------------------------------
# Bearer-token authentication
# ---------------------------------------------------------------------------

def create_access_token(user_id: int, expires_minutes: int | None = None) -> str:
    """Sign an access token for *user_id*.  Used by the seeder and tests."""
    expire = datetime.now(timezone.utc) + timedelta(
        minutes=expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES
    )
    return jwt.encode(
        {"sub": str(user_id), "exp": expire},
        settings.SECRET_KEY,
        algorithm=settings.JWT_ALGORITHM,
    )


def _decode_user_id(token: str) -> int:
    try:
        claims = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
        return int(claims["sub"])
    except (JWTError, KeyError, TypeError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid or expired token")


async def _load_active_user(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")

    if user.is_banned:
        ban_until = as_utc(user.ban_until)
        if ban_until is not None and ban_until <= datetime.now(timezone.utc):
            # Temporary ban has run out; lift it on this request.
            user.is_banned = False
            user.ban_reason = None
            user.banned_at = None
            user.ban_until = None
            user.banned_by = None
            await db.flush()
            logger.info("Expired ban lifted for user %d", user.id)
        else:
            raise HTTPException(status_code=403, detail="Account is banned")
    return user


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
    db: AsyncSession = Depends(get_db),
) -> User:
    if credentials is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return await _load_active_user(db, _decode_user_id(credentials.credentials))


async def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
    db: AsyncSession = Depends(get_db),
) -> User | None:
    """Like ``get_current_user`` but anonymous callers get ``None``."""
    if credentials is None:
        return None
    return await _load_active_user(db, _decode_user_id(credentials.credentials))


async def require_admin(user: User = Depends(get_current_user)) -> User:
    if user.role != "admin":
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


async def require_moderator(user: User = Depends(get_current_user)) -> User:
    if user.role not in ("admin", "moderator"):
        raise HTTPException(status_code=403, detail="Moderator access required")
    return user
