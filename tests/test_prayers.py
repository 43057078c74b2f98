"""
Prayer wall tests: anonymous posting, ownership rules, likes, comments
and the per-prayer rate limits.
"""
import pytest
from httpx import AsyncClient


async def _create_prayer(client: AsyncClient, auth: dict, **overrides) -> dict:
    payload = {"content": "Please pray for my family"}
    payload.update(overrides)
    resp = await client.post("/api/v1/prayers", json=payload, headers=auth)
    assert resp.status_code == 201, resp.text
    return resp.json()


@pytest.mark.asyncio
async def test_create_and_list_prayers(async_client: AsyncClient, make_user, headers):
    alice = await make_user("alice")
    prayer = await _create_prayer(async_client, headers(alice))
    assert prayer["author"]["username"] == "alice"
    assert prayer["likes_count"] == 0

    resp = await async_client.get("/api/v1/prayers")
    assert resp.json()["total"] == 1


@pytest.mark.asyncio
async def test_anonymous_prayer_hides_author_from_others(async_client: AsyncClient, make_user, headers):
    alice = await make_user("alice")
    bob = await make_user("bob")
    prayer = await _create_prayer(async_client, headers(alice), anonymous=True)

    resp = await async_client.get(f"/api/v1/prayers/{prayer['id']}", headers=headers(bob))
    assert resp.json()["author"] is None

    resp = await async_client.get(f"/api/v1/prayers/{prayer['id']}")
    assert resp.json()["author"] is None

    resp = await async_client.get(f"/api/v1/prayers/{prayer['id']}", headers=headers(alice))
    assert resp.json()["author"]["username"] == "alice"


@pytest.mark.asyncio
async def test_only_author_can_edit(async_client: AsyncClient, make_user, headers):
    alice = await make_user("alice")
    bob = await make_user("bob")
    prayer = await _create_prayer(async_client, headers(alice))

    resp = await async_client.put(f"/api/v1/prayers/{prayer['id']}", json={"content": "x"}, headers=headers(bob))
    assert resp.status_code == 403

    resp = await async_client.put(
        f"/api/v1/prayers/{prayer['id']}", json={"content": "Healing for my mother"}, headers=headers(alice)
    )
    assert resp.status_code == 200
    assert resp.json()["content"] == "Healing for my mother"


@pytest.mark.asyncio
async def test_delete_by_admin(async_client: AsyncClient, make_user, headers):
    admin = await make_user("root", role="admin")
    alice = await make_user("alice")
    prayer = await _create_prayer(async_client, headers(alice))

    resp = await async_client.delete(f"/api/v1/prayers/{prayer['id']}", headers=headers(admin))
    assert resp.status_code == 204
    resp = await async_client.get(f"/api/v1/prayers/{prayer['id']}")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_like_toggle(async_client: AsyncClient, make_user, headers):
    alice = await make_user("alice")
    bob = await make_user("bob")
    prayer = await _create_prayer(async_client, headers(alice))
    url = f"/api/v1/prayers/{prayer['id']}/like"

    resp = await async_client.post(url, headers=headers(bob))
    assert resp.json() == {"liked": True, "likes_count": 1}

    resp = await async_client.get(f"/api/v1/prayers/{prayer['id']}", headers=headers(bob))
    assert resp.json()["user_liked"] is True

    resp = await async_client.post(url, headers=headers(bob))
    assert resp.json() == {"liked": False, "likes_count": 0}


@pytest.mark.asyncio
async def test_comments_on_prayer(async_client: AsyncClient, make_user, headers):
    alice = await make_user("alice")
    bob = await make_user("bob")
    prayer = await _create_prayer(async_client, headers(alice))

    resp = await async_client.post(
        f"/api/v1/prayers/{prayer['id']}/comments", json={"content": "Praying for you"}, headers=headers(bob)
    )
    assert resp.status_code == 201
    assert resp.json()["content_type"] == "prayer"

    resp = await async_client.get(f"/api/v1/prayers/{prayer['id']}/comments")
    assert [c["content"] for c in resp.json()["items"]] == ["Praying for you"]

    resp = await async_client.get(f"/api/v1/prayers/{prayer['id']}")
    assert resp.json()["comments_count"] == 1

    resp = await async_client.get("/api/v1/notifications", headers=headers(alice))
    assert resp.json()["items"][0]["type"] == "comment"


# ---------------------------------------------------------------------------
# Rate limits
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_like_rate_limit(async_client: AsyncClient, fake_redis, make_user, headers):
    alice = await make_user("alice")
    prayer = await _create_prayer(async_client, headers(alice))
    url = f"/api/v1/prayers/{prayer['id']}/like"

    for _ in range(10):
        resp = await async_client.post(url, headers=headers(alice))
        assert resp.status_code == 200

    resp = await async_client.post(url, headers=headers(alice))
    assert resp.status_code == 429
    assert fake_redis.expiries[f"ratelimit:prayer:like:{alice.id}:{prayer['id']}"] == 30


@pytest.mark.asyncio
async def test_comment_rate_limit(async_client: AsyncClient, fake_redis, make_user, headers):
    alice = await make_user("alice")
    prayer = await _create_prayer(async_client, headers(alice))
    url = f"/api/v1/prayers/{prayer['id']}/comments"

    for i in range(5):
        resp = await async_client.post(url, json={"content": f"Amen {i}"}, headers=headers(alice))
        assert resp.status_code == 201

    resp = await async_client.post(url, json={"content": "One more"}, headers=headers(alice))
    assert resp.status_code == 429

    resp = await async_client.get(f"/api/v1/prayers/{prayer['id']}")
    assert resp.json()["comments_count"] == 5


@pytest.mark.asyncio
async def test_rate_limit_fails_open_without_redis(async_client: AsyncClient, make_user, headers):
    alice = await make_user("alice")
    prayer = await _create_prayer(async_client, headers(alice))
    for _ in range(12):
        resp = await async_client.post(f"/api/v1/prayers/{prayer['id']}/like", headers=headers(alice))
        assert resp.status_code == 200
