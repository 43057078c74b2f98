"""
Search endpoint tests: merged media/song results, ranking, filters,
suggestions and trending.
"""
import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_search_requires_query(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/search?q=%20%20")
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_search_merges_media_and_songs(async_client: AsyncClient, make_media, make_track):
    await make_media("Grace Talk", speaker="Pastor Ade")
    await make_media("Grace Pending", moderation_status="pending")
    await make_track("Amazing Grace", "Choir")
    await make_track("Oceans", "Hillsong")

    resp = await async_client.get("/api/v1/search?q=Grace")
    assert resp.status_code == 200
    body = resp.json()
    assert body["total"] == 2
    assert body["breakdown"] == {"media": 1, "audio": 1}
    assert body["query"] == "Grace"
    assert {r["result_type"] for r in body["results"]} == {"media", "audio"}
    assert body["has_more"] is False
    assert "search_time_ms" in body


@pytest.mark.asyncio
async def test_relevance_prefers_title_matches(async_client: AsyncClient, make_media):
    await make_media("Faith Walk", description="A message about grace", view_count=500)
    await make_media("Grace Notes", view_count=1)

    resp = await async_client.get("/api/v1/search?q=grace")
    assert [r["title"] for r in resp.json()["results"]] == ["Grace Notes", "Faith Walk"]

    resp = await async_client.get("/api/v1/search?q=grace&sort=popular")
    assert [r["title"] for r in resp.json()["results"]] == ["Faith Walk", "Grace Notes"]


@pytest.mark.asyncio
async def test_search_content_type_filter(async_client: AsyncClient, make_media, make_track):
    await make_media("Hope Rising")
    await make_track("Hope Song", "Choir")

    resp = await async_client.get("/api/v1/search?q=hope&content_type=audio")
    body = resp.json()
    assert body["breakdown"] == {"media": 0, "audio": 1}
    assert [r["title"] for r in body["results"]] == ["Hope Song"]

    resp = await async_client.get("/api/v1/search?q=hope&content_type=books")
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_search_pagination(async_client: AsyncClient, make_track):
    for i in range(5):
        await make_track(f"Psalm {i}", "Choir")

    resp = await async_client.get("/api/v1/search?q=psalm&page=2&page_size=2&sort=title")
    body = resp.json()
    assert [r["title"] for r in body["results"]] == ["Psalm 2", "Psalm 3"]
    assert body["total_pages"] == 3
    assert body["has_more"] is True


@pytest.mark.asyncio
async def test_search_marks_liked_and_library(async_client: AsyncClient, make_user, make_media, headers):
    alice = await make_user("alice")
    media = await make_media("Grace Talk")
    await async_client.post(f"/api/v1/media/{media.id}/like", headers=headers(alice))
    await async_client.post(f"/api/v1/bookmarks/{media.id}/toggle", headers=headers(alice))

    resp = await async_client.get("/api/v1/search?q=grace", headers=headers(alice))
    result = resp.json()["results"][0]
    assert result["is_liked"] is True
    assert result["is_in_library"] is True


@pytest.mark.asyncio
async def test_suggestions(async_client: AsyncClient, make_media, make_track):
    await make_media("Grace Talk", speaker="Graham Smith")
    await make_media("Grave Matters", moderation_status="pending")
    await make_track("Great Is Thy Faithfulness", "Choir")

    resp = await async_client.get("/api/v1/search/suggestions?q=Gr")
    assert resp.json() == {"suggestions": ["grace talk", "graham smith", "great is thy faithfulness"]}

    resp = await async_client.get("/api/v1/search/suggestions?q=")
    assert resp.json() == {"suggestions": []}


@pytest.mark.asyncio
async def test_search_matches_wildcard_characters_literally(async_client: AsyncClient, make_media, make_track):
    await make_media("Morning Devotion")
    await make_track("Amazing Grace", "Choir")

    for term in ("_", "%", "m_rning"):
        resp = await async_client.get("/api/v1/search", params={"q": term})
        assert resp.status_code == 200
        assert resp.json()["total"] == 0

    await make_media("Give 100% Worship")
    resp = await async_client.get("/api/v1/search", params={"q": "100%"})
    assert [r["title"] for r in resp.json()["results"]] == ["Give 100% Worship"]

    resp = await async_client.get("/api/v1/search/suggestions", params={"q": "_"})
    assert resp.json() == {"suggestions": []}


@pytest.mark.asyncio
async def test_trending(async_client: AsyncClient, make_media, make_track):
    popular = await make_media("Popular Sermon", view_count=100)
    await make_media("Quiet Sermon", view_count=10)
    song = await make_track("Way Maker", "Sinach", view_count=50)

    resp = await async_client.get("/api/v1/search/trending?limit=2")
    assert resp.json() == {
        "trending": [
            {"id": popular.id, "query": "Popular Sermon", "count": 100, "category": "media"},
            {"id": song.id, "query": "Way Maker", "count": 50, "category": "audio"},
        ]
    }
