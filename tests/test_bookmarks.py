"""
Bookmark endpoint tests: toggling, status, the user's saved list, per-media
stats and bulk operations.
"""
import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_toggle_bookmark(async_client: AsyncClient, make_user, make_media, headers):
    alice = await make_user("alice")
    media = await make_media()
    url = f"/api/v1/bookmarks/{media.id}/toggle"

    resp = await async_client.post(url, headers=headers(alice))
    assert resp.json() == {"bookmarked": True, "bookmark_count": 1}

    resp = await async_client.get(f"/api/v1/bookmarks/{media.id}/status", headers=headers(alice))
    assert resp.json() == {"bookmarked": True, "bookmark_count": 1}

    resp = await async_client.post(url, headers=headers(alice))
    assert resp.json() == {"bookmarked": False, "bookmark_count": 0}


@pytest.mark.asyncio
async def test_bookmark_missing_media(async_client: AsyncClient, make_user, headers):
    alice = await make_user("alice")
    resp = await async_client.post("/api/v1/bookmarks/999/toggle", headers=headers(alice))
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_bookmark_notifies_uploader(async_client: AsyncClient, make_user, make_media, headers):
    creator = await make_user("creator", role="content_creator")
    alice = await make_user("alice")
    media = await make_media(uploaded_by=creator.id)

    await async_client.post(f"/api/v1/bookmarks/{media.id}/toggle", headers=headers(alice))

    resp = await async_client.get("/api/v1/notifications", headers=headers(creator))
    items = resp.json()["items"]
    assert [n["type"] for n in items] == ["bookmark"]
    assert items[0]["metadata"]["actor_id"] == alice.id


@pytest.mark.asyncio
async def test_list_user_bookmarks(async_client: AsyncClient, make_user, make_media, headers):
    alice = await make_user("alice")
    first = await make_media("First Sermon")
    second = await make_media("Second Sermon")
    await async_client.post(f"/api/v1/bookmarks/{first.id}/toggle", headers=headers(alice))
    await async_client.post(f"/api/v1/bookmarks/{second.id}/toggle", headers=headers(alice))

    resp = await async_client.get("/api/v1/bookmarks", headers=headers(alice))
    body = resp.json()
    assert body["total"] == 2
    assert [m["title"] for m in body["items"]] == ["Second Sermon", "First Sermon"]
    assert body["items"][0]["bookmarked_at"] is not None


@pytest.mark.asyncio
async def test_media_bookmark_stats(async_client: AsyncClient, make_user, make_media, headers):
    alice = await make_user("alice")
    bob = await make_user("bob")
    media = await make_media()
    await async_client.post(f"/api/v1/bookmarks/{media.id}/toggle", headers=headers(alice))
    await async_client.post(f"/api/v1/bookmarks/{media.id}/toggle", headers=headers(bob))

    resp = await async_client.get(f"/api/v1/bookmarks/{media.id}/stats")
    body = resp.json()
    assert body["total_bookmarks"] == 2
    assert [b["user"]["username"] for b in body["recent_bookmarks"]] == ["bob", "alice"]


@pytest.mark.asyncio
async def test_bulk_add_and_remove(async_client: AsyncClient, make_user, make_media, headers):
    alice = await make_user("alice")
    one = await make_media("One")
    two = await make_media("Two")

    resp = await async_client.post(
        "/api/v1/bookmarks/bulk",
        json={"media_ids": [one.id, two.id, 999], "action": "add"},
        headers=headers(alice),
    )
    body = resp.json()
    assert body["success"] == 2
    assert body["failed"] == 1
    assert body["results"][2] == {"media_id": 999, "success": False, "error": "Media not found"}

    resp = await async_client.get("/api/v1/bookmarks", headers=headers(alice))
    assert resp.json()["total"] == 2

    resp = await async_client.post(
        "/api/v1/bookmarks/bulk", json={"media_ids": [one.id], "action": "remove"}, headers=headers(alice)
    )
    assert resp.json()["success"] == 1
    resp = await async_client.get("/api/v1/bookmarks", headers=headers(alice))
    assert resp.json()["total"] == 1


@pytest.mark.asyncio
async def test_bulk_rejects_unknown_action(async_client: AsyncClient, make_user, headers):
    alice = await make_user("alice")
    resp = await async_client.post(
        "/api/v1/bookmarks/bulk", json={"media_ids": [1], "action": "toggle"}, headers=headers(alice)
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_unpublished_media_cannot_be_bookmarked_by_others(
    async_client: AsyncClient, make_user, make_media, headers
):
    creator = await make_user("creator", role="content_creator")
    alice = await make_user("alice")
    media = await make_media("Draft Sermon", uploaded_by=creator.id, moderation_status="pending")

    resp = await async_client.post(f"/api/v1/bookmarks/{media.id}/toggle", headers=headers(alice))
    assert resp.status_code == 404
    resp = await async_client.get(f"/api/v1/bookmarks/{media.id}/status", headers=headers(alice))
    assert resp.status_code == 404
    resp = await async_client.get(f"/api/v1/bookmarks/{media.id}/stats")
    assert resp.status_code == 404
    resp = await async_client.post(
        "/api/v1/bookmarks/bulk", json={"media_ids": [media.id], "action": "add"}, headers=headers(alice)
    )
    assert resp.json()["results"] == [{"media_id": media.id, "success": False, "error": "Media not found"}]

    resp = await async_client.post(f"/api/v1/bookmarks/{media.id}/toggle", headers=headers(creator))
    assert resp.json() == {"bookmarked": True, "bookmark_count": 1}
    resp = await async_client.get(f"/api/v1/bookmarks/{media.id}/stats", headers=headers(creator))
    assert resp.json()["total_bookmarks"] == 1


@pytest.mark.asyncio
async def test_bookmark_on_rejected_media_can_still_be_removed(
    async_client: AsyncClient, make_user, make_media, headers
):
    admin = await make_user("root", role="admin")
    alice = await make_user("alice")
    media = await make_media()
    url = f"/api/v1/bookmarks/{media.id}/toggle"
    await async_client.post(url, headers=headers(alice))

    resp = await async_client.patch(
        f"/api/v1/admin/moderation/{media.id}", json={"status": "rejected"}, headers=headers(admin)
    )
    assert resp.status_code == 200

    resp = await async_client.get(f"/api/v1/bookmarks/{media.id}/status", headers=headers(alice))
    assert resp.json() == {"bookmarked": True, "bookmark_count": 1}
    resp = await async_client.post(url, headers=headers(alice))
    assert resp.json() == {"bookmarked": False, "bookmark_count": 0}
    resp = await async_client.post(url, headers=headers(alice))
    assert resp.status_code == 404
