"""
Test infrastructure for the Jevah API.

Strategy
--------
- SQLite in-memory via aiosqlite with StaticPool, so every session and
  request shares one connection and therefore one database.
- The app's get_db dependency is overridden with the test session
  factory; all tables are created before and dropped after each test.
- Redis is disabled (cache._redis = None).  CacheManager already treats
  a missing client as a miss / no-op / fail-open, so service code runs
  its real database paths.  Tests that need rate limiting plug in
  ``FakeRedis`` explicitly.
- Users are inserted directly and authenticate with real signed bearer
  tokens from ``create_access_token``.
"""
import fnmatch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from jevah.cache import cache
from jevah.database import Base, get_db
from jevah.dependencies import create_access_token
from jevah.main import app
from jevah.middleware import install_query_counter
from jevah.models import AudioTrack, Media, User

# ---------------------------------------------------------------------------
# Test database engine
# ---------------------------------------------------------------------------

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine_test = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

install_query_counter(engine_test)

async_session_test = async_sessionmaker(
    engine_test,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def override_get_db():
    async with async_session_test() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


app.dependency_overrides[get_db] = override_get_db


# ---------------------------------------------------------------------------
# In-memory Redis stand-in for rate-limit and pub/sub tests
# ---------------------------------------------------------------------------

class FakeRedis:
    """Implements only the commands CacheManager issues."""

    def __init__(self) -> None:
        self.values: dict[str, int | str] = {}
        self.expiries: dict[str, int] = {}
        self.published: list[tuple[str, str]] = []

    async def get(self, key: str):
        return self.values.get(key)

    async def set(self, key: str, value: str, ex: int | None = None) -> bool:
        self.values[key] = value
        if ex:
            self.expiries[key] = ex
        return True

    async def scan_iter(self, match: str):
        for key in list(self.values):
            if fnmatch.fnmatchcase(key, match):
                yield key

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            removed += self.values.pop(key, None) is not None
        return removed

    async def incr(self, key: str) -> int:
        self.values[key] = self.values.get(key, 0) + 1
        return self.values[key]

    async def incrby(self, key: str, amount: int) -> int:
        self.values[key] = self.values.get(key, 0) + amount
        return self.values[key]

    async def expire(self, key: str, seconds: int) -> bool:
        self.expiries[key] = seconds
        return True

    async def publish(self, channel: str, message: str) -> int:
        self.published.append((channel, message))
        return 0


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after to guarantee isolation."""
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def db_session() -> AsyncSession:
    """A live session for service-level tests."""
    async with async_session_test() as session:
        yield session


@pytest_asyncio.fixture
async def async_client() -> AsyncClient:
    cache._redis = None
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    cache._redis = None


@pytest.fixture
def fake_redis() -> FakeRedis:
    fake = FakeRedis()
    cache._redis = fake
    yield fake
    cache._redis = None


@pytest.fixture
def make_user():
    """Factory inserting a committed user; returns the detached ORM row."""

    async def _make(username: str = "alice", role: str = "learner", **fields) -> User:
        async with async_session_test() as session:
            user = User(
                username=username,
                email=f"{username}@example.com",
                role=role,
                push_preferences={},
                notification_preferences={},
                **fields,
            )
            session.add(user)
            await session.commit()
            return user

    return _make


@pytest.fixture
def make_media():
    async def _make(
        title: str = "Morning Devotion",
        uploaded_by: int | None = None,
        moderation_status: str = "approved",
        content_type: str = "videos",
        **fields,
    ) -> Media:
        async with async_session_test() as session:
            media = Media(
                title=title,
                content_type=content_type,
                file_url=f"https://cdn.example.com/{title.lower().replace(' ', '-')}.mp4",
                uploaded_by=uploaded_by,
                moderation_status=moderation_status,
                **fields,
            )
            session.add(media)
            await session.commit()
            return media

    return _make


@pytest.fixture
def make_track():
    async def _make(title: str = "Amazing Grace", singer: str = "Choir", **fields) -> AudioTrack:
        async with async_session_test() as session:
            track = AudioTrack(
                title=title,
                singer=singer,
                file_url=f"https://cdn.example.com/{title.lower().replace(' ', '-')}.mp3",
                **fields,
            )
            session.add(track)
            await session.commit()
            return track

    return _make


def auth(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture
def headers():
    """``headers(user)`` -> Authorization header dict for *user*."""
    return auth
