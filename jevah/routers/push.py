from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from jevah.database import get_db
from jevah.dependencies import get_current_user, require_admin
from jevah.models import User
from jevah.schemas import (
    PushBroadcast,
    PushEnabledRequest,
    PushPreferencesUpdate,
    PushSendRequest,
    PushTokenRequest,
)
from jevah.services import push_service

router = APIRouter(prefix="/api/v1/push", tags=["push"])


@router.get("/settings")
async def push_settings(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await push_service.get_push_settings(db, user)


@router.post("/register")
async def register_token(
    data: PushTokenRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await push_service.register_token(db, user, data.device_token)


@router.post("/unregister")
async def unregister_token(
    data: PushTokenRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await push_service.unregister_token(db, user, data.device_token)


@router.put("/preferences")
async def update_preferences(
    data: PushPreferencesUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await push_service.update_preferences(db, user, data)


@router.put("/enabled")
async def set_enabled(
    data: PushEnabledRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await push_service.set_enabled(db, user, data.enabled)


@router.post("/test")
async def send_test(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return {"sent": await push_service.send_test(db, user)}


@router.get("/stats")
async def push_stats(_: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return await push_service.get_stats(db)


@router.post("/cleanup")
async def cleanup_tokens(_: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return {"removed": await push_service.cleanup_invalid_tokens(db)}


@router.post("/send")
async def send_to_users(
    data: PushSendRequest,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await push_service.send_to_users(db, data.user_ids, data.title, data.body, data.data)


@router.post("/send-all")
async def send_to_all(
    data: PushBroadcast,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await push_service.send_to_all(db, data.title, data.body, data.data)
