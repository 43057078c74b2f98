"""
User endpoint tests: authentication context, own profile, admin user
management, user statistics and the per-request context headers.
"""
import logging
from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient

from jevah.middleware import RequestContext, RequestIdFilter, request_context


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_me_requires_token(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/users/me")
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_invalid_token_rejected(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/users/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Invalid or expired token"


@pytest.mark.asyncio
async def test_banned_user_is_forbidden(async_client: AsyncClient, make_user, headers):
    user = await make_user("banned", is_banned=True, ban_reason="spam")
    resp = await async_client.get("/api/v1/users/me", headers=headers(user))
    assert resp.status_code == 403
    assert resp.json()["detail"] == "Account is banned"


@pytest.mark.asyncio
async def test_expired_ban_is_lifted_on_next_request(async_client: AsyncClient, make_user, headers):
    past = datetime.now(timezone.utc) - timedelta(days=1)
    user = await make_user("returning", is_banned=True, ban_reason="cooldown", ban_until=past)

    resp = await async_client.get("/api/v1/users/me", headers=headers(user))
    assert resp.status_code == 200
    body = resp.json()
    assert body["is_banned"] is False
    assert body["ban_reason"] is None


# ---------------------------------------------------------------------------
# Own profile
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_get_me(async_client: AsyncClient, make_user, headers):
    user = await make_user("alice", first_name="Alice")
    resp = await async_client.get("/api/v1/users/me", headers=headers(user))
    assert resp.status_code == 200
    body = resp.json()
    assert body["username"] == "alice"
    assert body["email"] == "alice@example.com"
    assert body["role"] == "learner"
    assert body["first_name"] == "Alice"


@pytest.mark.asyncio
async def test_update_me_partial(async_client: AsyncClient, make_user, headers):
    user = await make_user("alice", bio="old bio")
    resp = await async_client.patch(
        "/api/v1/users/me", json={"first_name": "Alicia"}, headers=headers(user)
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["first_name"] == "Alicia"
    assert body["bio"] == "old bio"


@pytest.mark.asyncio
async def test_update_me_duplicate_username_conflicts(async_client: AsyncClient, make_user, headers):
    await make_user("taken")
    user = await make_user("alice")
    resp = await async_client.patch("/api/v1/users/me", json={"username": "taken"}, headers=headers(user))
    assert resp.status_code == 409


# ---------------------------------------------------------------------------
# Admin user management
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_list_users_requires_admin(async_client: AsyncClient, make_user, headers):
    user = await make_user("alice")
    resp = await async_client.get("/api/v1/users", headers=headers(user))
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_list_users_with_filters(async_client: AsyncClient, make_user, headers):
    admin = await make_user("root", role="admin")
    await make_user("pastor_john", role="church_admin", first_name="John")
    await make_user("singer_sue", role="artist")

    resp = await async_client.get("/api/v1/users", headers=headers(admin))
    assert resp.status_code == 200
    assert resp.json()["total"] == 3

    resp = await async_client.get("/api/v1/users?role=artist", headers=headers(admin))
    assert [u["username"] for u in resp.json()["items"]] == ["singer_sue"]

    resp = await async_client.get("/api/v1/users?search=john", headers=headers(admin))
    assert [u["username"] for u in resp.json()["items"]] == ["pastor_john"]


@pytest.mark.asyncio
async def test_list_users_pagination(async_client: AsyncClient, make_user, headers):
    admin = await make_user("root", role="admin")
    for i in range(4):
        await make_user(f"member{i}")

    resp = await async_client.get("/api/v1/users?page=2&page_size=2", headers=headers(admin))
    body = resp.json()
    assert body["total"] == 5
    assert body["pages"] == 3
    assert body["page"] == 2
    assert len(body["items"]) == 2
    assert body["has_more"] is True


@pytest.mark.asyncio
async def test_admin_create_user_and_duplicate(async_client: AsyncClient, make_user, headers):
    admin = await make_user("root", role="admin")
    payload = {"username": "newbie", "email": "newbie@example.com", "role": "educator"}

    resp = await async_client.post("/api/v1/users", json=payload, headers=headers(admin))
    assert resp.status_code == 201
    assert resp.json()["role"] == "educator"

    resp = await async_client.post("/api/v1/users", json=payload, headers=headers(admin))
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_create_user_invalid_role(async_client: AsyncClient, make_user, headers):
    admin = await make_user("root", role="admin")
    resp = await async_client.post(
        "/api/v1/users",
        json={"username": "x_user", "email": "x@example.com", "role": "wizard"},
        headers=headers(admin),
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_get_user_public_profile_hides_email(async_client: AsyncClient, make_user, headers):
    viewer = await make_user("viewer")
    target = await make_user("target")
    resp = await async_client.get(f"/api/v1/users/{target.id}", headers=headers(viewer))
    assert resp.status_code == 200
    assert "email" not in resp.json()


@pytest.mark.asyncio
async def test_get_user_not_found(async_client: AsyncClient, make_user, headers):
    viewer = await make_user("viewer")
    resp = await async_client.get("/api/v1/users/9999", headers=headers(viewer))
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_update_other_user_forbidden(async_client: AsyncClient, make_user, headers):
    alice = await make_user("alice")
    bob = await make_user("bob")
    resp = await async_client.put(f"/api/v1/users/{bob.id}", json={"bio": "hacked"}, headers=headers(alice))
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_admin_can_update_other_user(async_client: AsyncClient, make_user, headers):
    admin = await make_user("root", role="admin")
    bob = await make_user("bob")
    resp = await async_client.put(f"/api/v1/users/{bob.id}", json={"bio": "edited"}, headers=headers(admin))
    assert resp.status_code == 200
    assert resp.json()["bio"] == "edited"


@pytest.mark.asyncio
async def test_delete_user(async_client: AsyncClient, make_user, headers):
    admin = await make_user("root", role="admin")
    bob = await make_user("bob")

    resp = await async_client.delete(f"/api/v1/users/{bob.id}", headers=headers(admin))
    assert resp.status_code == 204

    resp = await async_client.get(f"/api/v1/users/{bob.id}", headers=headers(admin))
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_delete_user_releases_counters(async_client: AsyncClient, make_user, make_media, headers):
    admin = await make_user("root", role="admin")
    bob = await make_user("bob")
    carol = await make_user("carol")
    media = await make_media("Evening Worship")

    resp = await async_client.post(
        "/api/v1/forums",
        json={"title": "Testimonies", "description": "Share what God has done"},
        headers=headers(admin),
    )
    forum_id = resp.json()["id"]
    posts_url = f"/api/v1/forums/{forum_id}/posts"
    await async_client.post(posts_url, json={"content": "Bob one"}, headers=headers(bob))
    await async_client.post(posts_url, json={"content": "Bob two"}, headers=headers(bob))
    await async_client.post(posts_url, json={"content": "Carol"}, headers=headers(carol))

    await async_client.post(f"/api/v1/media/{media.id}/like", headers=headers(bob))
    await async_client.post(f"/api/v1/media/{media.id}/like", headers=headers(carol))
    comment = {"content_id": media.id, "content_type": "media"}
    resp = await async_client.post("/api/v1/comments", json={**comment, "content": "From bob"}, headers=headers(bob))
    bob_comment_id = resp.json()["id"]
    await async_client.post(
        "/api/v1/comments",
        json={**comment, "content": "Reply to bob", "parent_comment_id": bob_comment_id},
        headers=headers(carol),
    )
    await async_client.post("/api/v1/comments", json={**comment, "content": "From carol"}, headers=headers(carol))

    resp = await async_client.get(f"/api/v1/media/{media.id}")
    assert resp.json()["like_count"] == 2
    assert resp.json()["comment_count"] == 3

    resp = await async_client.delete(f"/api/v1/users/{bob.id}", headers=headers(admin))
    assert resp.status_code == 204

    forum = (await async_client.get(f"/api/v1/forums/{forum_id}")).json()
    assert forum["posts_count"] == 1
    assert forum["participants_count"] == 1
    assert [p["content"] for p in (await async_client.get(posts_url)).json()["items"]] == ["Carol"]

    body = (await async_client.get(f"/api/v1/media/{media.id}")).json()
    assert body["like_count"] == 1
    assert body["comment_count"] == 1


@pytest.mark.asyncio
async def test_admin_cannot_delete_self(async_client: AsyncClient, make_user, headers):
    admin = await make_user("root", role="admin")
    resp = await async_client.delete(f"/api/v1/users/{admin.id}", headers=headers(admin))
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_user_stats(async_client: AsyncClient, make_user, headers):
    admin = await make_user("root", role="admin")
    await make_user("a1")
    await make_user("a2", role="artist", is_banned=True)

    resp = await async_client.get("/api/v1/users/stats", headers=headers(admin))
    assert resp.status_code == 200
    stats = resp.json()
    assert stats["total_users"] == 3
    assert stats["banned_users"] == 1
    assert stats["users_by_role"] == {"admin": 1, "learner": 1, "artist": 1}
    assert stats["new_users"]["last_24h"] == 3


@pytest.mark.asyncio
async def test_health(async_client: AsyncClient):
    resp = await async_client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"
    assert "x-query-count" in resp.headers
    assert "x-response-time-ms" in resp.headers


@pytest.mark.asyncio
async def test_request_id_generated_or_echoed(async_client: AsyncClient):
    resp = await async_client.get("/health")
    generated = resp.headers["x-request-id"]
    assert len(generated) == 32

    resp = await async_client.get("/health", headers={"X-Request-Id": "mobile-42.a"})
    assert resp.headers["x-request-id"] == "mobile-42.a"

    resp = await async_client.get("/health", headers={"X-Request-Id": "bad id\twith spaces"})
    assert resp.headers["x-request-id"] not in ("bad id\twith spaces", generated)


@pytest.mark.asyncio
async def test_query_count_header_counts_statements(async_client: AsyncClient, make_user, headers):
    admin = await make_user("root", role="admin")
    resp = await async_client.get("/api/v1/users/stats", headers=headers(admin))
    assert int(resp.headers["x-query-count"]) >= 4

    resp = await async_client.get("/health")
    assert resp.headers["x-query-count"] == "0"


@pytest.mark.asyncio
async def test_each_request_logged_with_status(async_client: AsyncClient, caplog):
    caplog.set_level(logging.DEBUG, logger="jevah.middleware")
    await async_client.get("/api/v1/users/me")

    lines = [r.getMessage() for r in caplog.records if r.name == "jevah.middleware"]
    assert any(line.startswith("GET /api/v1/users/me -> 401 in ") for line in lines)


def test_request_id_filter():
    record = logging.LogRecord("jevah", logging.INFO, __file__, 1, "hello", None, None)
    RequestIdFilter().filter(record)
    assert record.request_id == "-"

    token = request_context.set(RequestContext(request_id="abc123"))
    try:
        RequestIdFilter().filter(record)
    finally:
        request_context.reset(token)
    assert record.request_id == "abc123"
