from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from jevah.database import get_db
from jevah.dependencies import PaginationParams, get_current_user, require_admin
from jevah.models import User
from jevah.schemas import PaginatedResponse, UserCreate, UserUpdate
from jevah.services import user_service

router = APIRouter(prefix="/api/v1/users", tags=["users"])


@router.get("/me")
async def get_me(user: User = Depends(get_current_user)):
    return user_service.get_me(user)


@router.patch("/me")
async def update_me(
    data: UserUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await user_service.update_profile(db, user, data)


@router.get("", response_model=PaginatedResponse)
async def list_users(
    search: str | None = Query(None, max_length=100),
    role: str | None = None,
    is_banned: bool | None = None,
    pagination: PaginationParams = Depends(),
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await user_service.get_users(
        db,
        pagination.page,
        pagination.page_size,
        pagination.sort_by,
        pagination.sort_order,
        search=search,
        role=role,
        is_banned=is_banned,
    )


@router.get("/stats")
async def user_stats(_: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return await user_service.get_user_stats(db)


@router.post("", status_code=201)
async def create_user(
    data: UserCreate,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await user_service.create_user(db, data)


@router.get("/{user_id}")
async def get_user(
    user_id: int,
    viewer: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await user_service.get_user(db, user_id, viewer)


@router.put("/{user_id}")
async def update_user(
    user_id: int,
    data: UserUpdate,
    actor: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await user_service.update_user(db, actor, user_id, data)


@router.delete("/{user_id}", status_code=204)
async def delete_user(
    user_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await user_service.delete_user(db, admin, user_id)
