"""
Forum endpoint tests.

Covers forum creation (admin only), post CRUD with embedded links, the
denormalised posts/participants counters and post likes.
"""
import pytest
from httpx import AsyncClient

FORUM = {"title": "Bible Study", "description": "Weekly reflections on scripture"}


async def _create_forum(client: AsyncClient, admin_headers: dict) -> dict:
    resp = await client.post("/api/v1/forums", json=FORUM, headers=admin_headers)
    assert resp.status_code == 201
    return resp.json()


# ---------------------------------------------------------------------------
# Forums
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_forum_requires_admin(async_client: AsyncClient, make_user, headers):
    user = await make_user("alice")
    resp = await async_client.post("/api/v1/forums", json=FORUM, headers=headers(user))
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_create_and_get_forum(async_client: AsyncClient, make_user, headers):
    admin = await make_user("root", role="admin")
    forum = await _create_forum(async_client, headers(admin))
    assert forum["title"] == "Bible Study"
    assert forum["posts_count"] == 0
    assert forum["created_by"]["username"] == "root"

    resp = await async_client.get(f"/api/v1/forums/{forum['id']}")
    assert resp.status_code == 200
    assert resp.json()["created_by"]["id"] == admin.id

    resp = await async_client.get("/api/v1/forums")
    assert resp.json()["total"] == 1


@pytest.mark.asyncio
async def test_forum_title_length_validated(async_client: AsyncClient, make_user, headers):
    admin = await make_user("root", role="admin")
    resp = await async_client.post(
        "/api/v1/forums", json={"title": "ab", "description": "long enough text"}, headers=headers(admin)
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_get_missing_forum(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/forums/999")
    assert resp.status_code == 404


# ---------------------------------------------------------------------------
# Posts
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_posts_update_forum_counters(async_client: AsyncClient, make_user, headers):
    admin = await make_user("root", role="admin")
    alice = await make_user("alice")
    bob = await make_user("bob")
    forum = await _create_forum(async_client, headers(admin))
    url = f"/api/v1/forums/{forum['id']}/posts"

    await async_client.post(url, json={"content": "First thought"}, headers=headers(alice))
    await async_client.post(url, json={"content": "Second thought"}, headers=headers(alice))
    await async_client.post(url, json={"content": "Reply from bob"}, headers=headers(bob))

    resp = await async_client.get(f"/api/v1/forums/{forum['id']}")
    assert resp.json()["posts_count"] == 3
    assert resp.json()["participants_count"] == 2

    resp = await async_client.get(url)
    body = resp.json()
    assert body["total"] == 3
    assert body["items"][0]["content"] == "Reply from bob"
    assert body["items"][0]["author"]["username"] == "bob"


@pytest.mark.asyncio
async def test_post_with_embedded_links(async_client: AsyncClient, make_user, headers):
    admin = await make_user("root", role="admin")
    alice = await make_user("alice")
    forum = await _create_forum(async_client, headers(admin))

    payload = {
        "content": "Great sermon",
        "embedded_links": [{"url": "https://example.com/sermon", "type": "video", "title": "Sermon"}],
    }
    resp = await async_client.post(f"/api/v1/forums/{forum['id']}/posts", json=payload, headers=headers(alice))
    assert resp.status_code == 201
    links = resp.json()["embedded_links"]
    assert links == [{"url": "https://example.com/sermon", "type": "video", "title": "Sermon"}]


@pytest.mark.asyncio
async def test_post_rejects_bad_links(async_client: AsyncClient, make_user, headers):
    admin = await make_user("root", role="admin")
    alice = await make_user("alice")
    forum = await _create_forum(async_client, headers(admin))
    url = f"/api/v1/forums/{forum['id']}/posts"

    resp = await async_client.post(
        url,
        json={"content": "x", "embedded_links": [{"url": "ftp://example.com", "type": "video"}]},
        headers=headers(alice),
    )
    assert resp.status_code == 422

    too_many = [{"url": f"https://example.com/{i}", "type": "article"} for i in range(6)]
    resp = await async_client.post(url, json={"content": "x", "embedded_links": too_many}, headers=headers(alice))
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_only_author_can_edit_post(async_client: AsyncClient, make_user, headers):
    admin = await make_user("root", role="admin")
    alice = await make_user("alice")
    bob = await make_user("bob")
    forum = await _create_forum(async_client, headers(admin))
    resp = await async_client.post(
        f"/api/v1/forums/{forum['id']}/posts", json={"content": "Original"}, headers=headers(alice)
    )
    post_id = resp.json()["id"]

    resp = await async_client.put(f"/api/v1/forums/posts/{post_id}", json={"content": "Hijack"}, headers=headers(bob))
    assert resp.status_code == 403

    resp = await async_client.put(f"/api/v1/forums/posts/{post_id}", json={"content": "Edited"}, headers=headers(alice))
    assert resp.status_code == 200
    assert resp.json()["content"] == "Edited"


@pytest.mark.asyncio
async def test_admin_can_delete_any_post(async_client: AsyncClient, make_user, headers):
    admin = await make_user("root", role="admin")
    alice = await make_user("alice")
    bob = await make_user("bob")
    forum = await _create_forum(async_client, headers(admin))
    resp = await async_client.post(
        f"/api/v1/forums/{forum['id']}/posts", json={"content": "Post"}, headers=headers(alice)
    )
    post_id = resp.json()["id"]

    resp = await async_client.delete(f"/api/v1/forums/posts/{post_id}", headers=headers(bob))
    assert resp.status_code == 403

    resp = await async_client.delete(f"/api/v1/forums/posts/{post_id}", headers=headers(admin))
    assert resp.status_code == 204

    resp = await async_client.get(f"/api/v1/forums/{forum['id']}")
    assert resp.json()["posts_count"] == 0


@pytest.mark.asyncio
async def test_post_like_toggle(async_client: AsyncClient, make_user, headers):
    admin = await make_user("root", role="admin")
    alice = await make_user("alice")
    forum = await _create_forum(async_client, headers(admin))
    resp = await async_client.post(
        f"/api/v1/forums/{forum['id']}/posts", json={"content": "Like me"}, headers=headers(admin)
    )
    post_id = resp.json()["id"]

    resp = await async_client.post(f"/api/v1/forums/posts/{post_id}/like", headers=headers(alice))
    assert resp.json() == {"liked": True, "likes_count": 1}

    resp = await async_client.get(f"/api/v1/forums/{forum['id']}/posts", headers=headers(alice))
    assert resp.json()["items"][0]["user_liked"] is True

    resp = await async_client.post(f"/api/v1/forums/posts/{post_id}/like", headers=headers(alice))
    assert resp.json() == {"liked": False, "likes_count": 0}


@pytest.mark.asyncio
async def test_like_missing_post(async_client: AsyncClient, make_user, headers):
    alice = await make_user("alice")
    resp = await async_client.post("/api/v1/forums/posts/999/like", headers=headers(alice))
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_participants_follow_current_posts(async_client: AsyncClient, make_user, headers):
    admin = await make_user("root", role="admin")
    alice = await make_user("alice")
    forum = await _create_forum(async_client, headers(admin))
    url = f"/api/v1/forums/{forum['id']}/posts"

    first = (await async_client.post(url, json={"content": "One"}, headers=headers(alice))).json()
    second = (await async_client.post(url, json={"content": "Two"}, headers=headers(alice))).json()

    await async_client.delete(f"/api/v1/forums/posts/{first['id']}", headers=headers(alice))
    resp = await async_client.get(f"/api/v1/forums/{forum['id']}")
    assert resp.json()["participants_count"] == 1

    await async_client.delete(f"/api/v1/forums/posts/{second['id']}", headers=headers(alice))
    resp = await async_client.get(f"/api/v1/forums/{forum['id']}")
    assert resp.json()["participants_count"] == 0

    await async_client.post(url, json={"content": "Back again"}, headers=headers(alice))
    resp = await async_client.get(f"/api/v1/forums/{forum['id']}")
    assert resp.json()["posts_count"] == 1
    assert resp.json()["participants_count"] == 1


# ---------------------------------------------------------------------------
# Post ordering
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_posts_sorted_by_likes(async_client: AsyncClient, make_user, headers):
    admin = await make_user("root", role="admin")
    alice = await make_user("alice")
    bob = await make_user("bob")
    forum = await _create_forum(async_client, headers(admin))
    url = f"/api/v1/forums/{forum['id']}/posts"

    ids = {}
    for content in ("Quiet", "Popular", "Liked once"):
        resp = await async_client.post(url, json={"content": content}, headers=headers(admin))
        ids[content] = resp.json()["id"]
    for user in (alice, bob):
        await async_client.post(f"/api/v1/forums/posts/{ids['Popular']}/like", headers=headers(user))
    await async_client.post(f"/api/v1/forums/posts/{ids['Liked once']}/like", headers=headers(alice))

    resp = await async_client.get(url, params={"sort_by": "likes_count", "sort_order": "desc"})
    assert [p["content"] for p in resp.json()["items"]] == ["Popular", "Liked once", "Quiet"]
    assert [p["likes_count"] for p in resp.json()["items"]] == [2, 1, 0]

    resp = await async_client.get(url, params={"sort_by": "likes_count", "sort_order": "asc"})
    assert [p["content"] for p in resp.json()["items"]] == ["Quiet", "Liked once", "Popular"]


@pytest.mark.asyncio
async def test_posts_sorted_by_comments(async_client: AsyncClient, make_user, headers):
    admin = await make_user("root", role="admin")
    alice = await make_user("alice")
    forum = await _create_forum(async_client, headers(admin))
    url = f"/api/v1/forums/{forum['id']}/posts"

    first = (await async_client.post(url, json={"content": "Discussed"}, headers=headers(admin))).json()
    await async_client.post(url, json={"content": "Ignored"}, headers=headers(admin))
    for text in ("Amen", "Agreed"):
        resp = await async_client.post(
            "/api/v1/comments",
            json={"content_id": first["id"], "content_type": "forum_post", "content": text},
            headers=headers(alice),
        )
        assert resp.status_code == 201

    resp = await async_client.get(url, params={"sort_by": "comments_count", "sort_order": "desc"})
    items = resp.json()["items"]
    assert [p["content"] for p in items] == ["Discussed", "Ignored"]
    assert items[0]["comments_count"] == 2

    resp = await async_client.get(url, params={"sort_by": "comments_count", "sort_order": "asc"})
    assert [p["content"] for p in resp.json()["items"]] == ["Ignored", "Discussed"]


@pytest.mark.asyncio
async def test_posts_unknown_sort_falls_back_to_newest(async_client: AsyncClient, make_user, headers):
    admin = await make_user("root", role="admin")
    forum = await _create_forum(async_client, headers(admin))
    url = f"/api/v1/forums/{forum['id']}/posts"
    for content in ("Older", "Newer"):
        await async_client.post(url, json={"content": content}, headers=headers(admin))

    resp = await async_client.get(url, params={"sort_by": "author_id"})
    assert [p["content"] for p in resp.json()["items"]] == ["Newer", "Older"]

    resp = await async_client.get(url, params={"sort_order": "sideways"})
    assert resp.status_code == 422
