"""
Push service: Expo device-token registry, per-category preferences and
delivery through the Expo push HTTP API.

Design notes
------------
- Delivery is best-effort.  A failing chunk is logged and counted but
  never raised to the caller, so a push outage cannot fail the request
  that triggered it.
- Tickets reporting ``DeviceNotRegistered`` remove the token from the
  registry in the same transaction.
- ``expo_client`` is a module-level instance; tests replace it with one
  built on ``httpx.MockTransport``.
"""
import logging
import re
from dataclasses import dataclass, field

import httpx
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from jevah.config import settings
from jevah.errors import BadRequestError, NotFoundError
from jevah.models import DeviceToken, User
from jevah.schemas import PushPreferencesUpdate

logger = logging.getLogger(__name__)

_EXPO_TOKEN_RE = re.compile(r"^(ExponentPushToken|ExpoPushToken)\[[^\]]+\]$")
_UUID_TOKEN_RE = re.compile(
    r"^[a-z\d]{8}-[a-z\d]{4}-[a-z\d]{4}-[a-z\d]{4}-[a-z\d]{12}$", re.IGNORECASE
)

PREFERENCE_KEYS: tuple[str, ...] = (
    "new_followers",
    "media_likes",
    "media_comments",
    "media_shares",
    "merch_purchases",
    "song_downloads",
    "subscription_updates",
    "security_alerts",
    "live_streams",
    "new_messages",
)

# Notification type -> push preference key.
CATEGORY_FOR_TYPE: dict[str, str] = {
    "follow": "new_followers",
    "like": "media_likes",
    "comment": "media_comments",
    "share": "media_shares",
    "merch_purchase": "merch_purchases",
    "download": "song_downloads",
    "security": "security_alerts",
    "live_stream": "live_streams",
}


def is_expo_push_token(token: str) -> bool:
    return bool(_EXPO_TOKEN_RE.match(token) or _UUID_TOKEN_RE.match(token))


# ---------------------------------------------------------------------------
# Expo HTTP client
# ---------------------------------------------------------------------------

@dataclass
class PushResult:
    success_count: int = 0
    error_count: int = 0
    unregistered_tokens: list[str] = field(default_factory=list)


class ExpoPushClient:
    """Sends message batches to the Expo push endpoint in fixed-size chunks."""

    def __init__(
        self,
        url: str | None = None,
        access_token: str | None = None,
        chunk_size: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url or settings.EXPO_PUSH_URL
        self.access_token = access_token if access_token is not None else settings.EXPO_ACCESS_TOKEN
        self.chunk_size = chunk_size or settings.EXPO_CHUNK_SIZE
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers

    async def send(self, messages: list[dict]) -> PushResult:
        result = PushResult()
        if not messages:
            return result

        async with httpx.AsyncClient(transport=self._transport, timeout=10.0) as client:
            for start in range(0, len(messages), self.chunk_size):
                chunk = messages[start:start + self.chunk_size]
                try:
                    resp = await client.post(self.url, json=chunk, headers=self._headers())
                    resp.raise_for_status()
                    tickets = resp.json().get("data", [])
                except (httpx.HTTPError, ValueError) as exc:
                    logger.warning("Expo push chunk of %d failed: %s", len(chunk), exc)
                    result.error_count += len(chunk)
                    continue

                for message, ticket in zip(chunk, tickets):
                    if ticket.get("status") == "ok":
                        result.success_count += 1
                        continue
                    result.error_count += 1
                    error = (ticket.get("details") or {}).get("error")
                    logger.info("Expo ticket error for %s: %s", message["to"], ticket.get("message"))
                    if error == "DeviceNotRegistered":
                        result.unregistered_tokens.append(message["to"])
                # Tickets missing from a short response count as failures.
                result.error_count += max(0, len(chunk) - len(tickets))
        return result


expo_client = ExpoPushClient()


# ---------------------------------------------------------------------------
# Token registry and preferences
# ---------------------------------------------------------------------------

def _settings_dict(user: User, token_count: int) -> dict:
    prefs = {key: True for key in PREFERENCE_KEYS}
    prefs.update(user.push_preferences or {})
    return {
        "push_enabled": user.push_enabled,
        "preferences": prefs,
        "device_count": token_count,
    }


async def _token_count(db: AsyncSession, user_id: int) -> int:
    q = select(func.count()).select_from(DeviceToken).where(DeviceToken.user_id == user_id)
    return (await db.execute(q)).scalar_one()


async def get_push_settings(db: AsyncSession, user: User) -> dict:
    return _settings_dict(user, await _token_count(db, user.id))


async def register_token(db: AsyncSession, user: User, token: str) -> dict:
    if not is_expo_push_token(token):
        raise BadRequestError("Invalid Expo push token")
    q = select(DeviceToken).where(DeviceToken.user_id == user.id, DeviceToken.token == token)
    if (await db.execute(q)).scalar_one_or_none() is None:
        db.add(DeviceToken(user_id=user.id, token=token))
        await db.flush()
        logger.info("Registered push token for user %d", user.id)
    return await get_push_settings(db, user)


async def unregister_token(db: AsyncSession, user: User, token: str) -> dict:
    await db.execute(
        delete(DeviceToken).where(DeviceToken.user_id == user.id, DeviceToken.token == token)
    )
    await db.flush()
    return await get_push_settings(db, user)


async def update_preferences(db: AsyncSession, user: User, data: PushPreferencesUpdate) -> dict:
    changes = {k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None}
    # Reassign so SQLAlchemy sees the JSON column change.
    user.push_preferences = {**(user.push_preferences or {}), **changes}
    await db.flush()
    return await get_push_settings(db, user)


async def set_enabled(db: AsyncSession, user: User, enabled: bool) -> dict:
    user.push_enabled = enabled
    await db.flush()
    return await get_push_settings(db, user)


# ---------------------------------------------------------------------------
# Delivery
# ---------------------------------------------------------------------------

def _build_message(token: str, title: str, body: str, data: dict | None, category: str | None) -> dict:
    return {
        "to": token,
        "title": title,
        "body": body,
        "data": data or {},
        "sound": "default",
        "priority": "high",
        "channelId": category or "default",
    }


async def _deliver(db: AsyncSession, messages: list[dict]) -> PushResult:
    result = await expo_client.send(messages)
    if result.unregistered_tokens:
        await db.execute(delete(DeviceToken).where(DeviceToken.token.in_(result.unregistered_tokens)))
        await db.flush()
        logger.info("Removed %d unregistered push token(s)", len(result.unregistered_tokens))
    return result


async def _messages_for_users(
    db: AsyncSession, users: list[User], title: str, body: str, data: dict | None, category: str | None
) -> list[dict]:
    eligible = [
        u for u in users
        if u.push_enabled and (category is None or (u.push_preferences or {}).get(category) is not False)
    ]
    if not eligible:
        return []
    q = select(DeviceToken).where(DeviceToken.user_id.in_([u.id for u in eligible]))
    tokens = (await db.execute(q)).scalars().all()
    return [_build_message(t.token, title, body, data, category) for t in tokens]


async def send_to_user(
    db: AsyncSession,
    user_id: int,
    title: str,
    body: str,
    data: dict | None = None,
    category: str | None = None,
) -> bool:
    """
    Push to every device of *user_id*.  Returns True when at least one
    device accepted the message; False when push is disabled, the
    category is opted out, or no device is registered.
    """
    user = await db.get(User, user_id)
    if user is None:
        return False
    messages = await _messages_for_users(db, [user], title, body, data, category)
    if not messages:
        return False
    result = await _deliver(db, messages)
    return result.success_count > 0


async def send_to_users(
    db: AsyncSession,
    user_ids: list[int],
    title: str,
    body: str,
    data: dict | None = None,
    category: str | None = None,
) -> dict:
    users = (await db.execute(select(User).where(User.id.in_(user_ids)))).scalars().all()
    messages = await _messages_for_users(db, list(users), title, body, data, category)
    result = await _deliver(db, messages)
    return {"success_count": result.success_count, "error_count": result.error_count}


async def send_to_all(db: AsyncSession, title: str, body: str, data: dict | None = None) -> dict:
    users = (await db.execute(select(User).where(User.push_enabled.is_(True)))).scalars().all()
    messages = await _messages_for_users(db, list(users), title, body, data, None)
    result = await _deliver(db, messages)
    logger.info("Broadcast push: %d ok, %d failed", result.success_count, result.error_count)
    return {"success_count": result.success_count, "error_count": result.error_count}


async def send_test(db: AsyncSession, user: User) -> bool:
    if await _token_count(db, user.id) == 0:
        raise NotFoundError("No device tokens registered")
    return await send_to_user(
        db, user.id, "Test notification", "Push notifications are working.", {"type": "test"}
    )


async def cleanup_invalid_tokens(db: AsyncSession) -> int:
    """Delete stored tokens that no longer match the Expo token format."""
    tokens = (await db.execute(select(DeviceToken))).scalars().all()
    invalid = [t.id for t in tokens if not is_expo_push_token(t.token)]
    if invalid:
        await db.execute(delete(DeviceToken).where(DeviceToken.id.in_(invalid)))
        await db.flush()
    logger.info("Push token cleanup removed %d token(s)", len(invalid))
    return len(invalid)


async def get_stats(db: AsyncSession) -> dict:
    total_users = (await db.execute(select(func.count()).select_from(User))).scalar_one()
    enabled = (
        await db.execute(select(func.count()).select_from(User).where(User.push_enabled.is_(True)))
    ).scalar_one()
    total_tokens = (await db.execute(select(func.count()).select_from(DeviceToken))).scalar_one()
    users_with_tokens = (
        await db.execute(select(func.count(func.distinct(DeviceToken.user_id))))
    ).scalar_one()
    return {
        "total_users": total_users,
        "users_with_push_enabled": enabled,
        "total_device_tokens": total_tokens,
        "users_with_tokens": users_with_tokens,
    }
