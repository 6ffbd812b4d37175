import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from beautycache.config import settings
from beautycache.infra.scheduler import CacheCleanupScheduler
from beautycache.main import app

ADMIN_KEY = "test-admin-key"
HEADERS = {"X-Admin-Key": ADMIN_KEY}


async def _client_for(cache, clock):
    app.state.analysis_cache = cache
    app.state.cleanup_scheduler = CacheCleanupScheduler(cache, clock=clock)
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest_asyncio.fixture
async def client(cache, clock, monkeypatch):
    monkeypatch.setattr(settings, "admin_api_key", ADMIN_KEY)
    async with await _client_for(cache, clock) as c:
        yield c


@pytest_asyncio.fixture
async def broken_client(broken_cache, clock, monkeypatch):
    monkeypatch.setattr(settings, "admin_api_key", ADMIN_KEY)
    async with await _client_for(broken_cache, clock) as c:
        yield c


@pytest.mark.asyncio
async def test_liveness(client):
    r = await client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_cache_health(client, cache):
    await cache.set("u1", "skin", {"summary": "ok"}, ttl=60)
    r = await client.get("/cache/health")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "healthy"
    assert body["state"] == "Stopped"
    assert body["storage_ok"] is True
    assert body["stats"]["total"] == 1


@pytest.mark.asyncio
async def test_stats_requires_admin_key(client):
    r = await client.get("/cache/stats")
    assert r.status_code == 403
    r = await client.get("/cache/stats", headers={"X-Admin-Key": "wrong"})
    assert r.status_code == 403
    assert "cache admin" in r.json()["detail"]


@pytest.mark.asyncio
async def test_stats_without_configured_key(client, monkeypatch):
    monkeypatch.setattr(settings, "admin_api_key", None)
    r = await client.get("/cache/stats", headers=HEADERS)
    assert r.status_code == 401
    assert "ADMIN_API_KEY" in r.json()["detail"]


@pytest.mark.asyncio
async def test_stats_per_owner(client, cache):
    await cache.set("u1", "skin", {"a": 1}, ttl=60)
    await cache.set("u2", "hair", {"a": 1}, ttl=60)

    r = await client.get("/cache/stats", headers=HEADERS)
    assert r.status_code == 200
    assert r.json()["total"] == 2

    r = await client.get("/cache/stats", params={"owner_id": "u1"}, headers=HEADERS)
    body = r.json()
    assert body["total"] == 1
    assert list(body["by_type"]) == ["skin"]


@pytest.mark.asyncio
async def test_cleanup_endpoint(client, cache, clock):
    await cache.set("u1", "skin", {"a": 1}, ttl=30)
    await cache.set("u2", "skin", {"a": 1}, ttl=300)
    clock.advance(seconds=60)

    r = await client.post("/cache/cleanup", headers=HEADERS)
    assert r.status_code == 200
    body = r.json()
    assert body["reclaimed"] == 1
    assert body["total_before"] == 2
    assert body["total_after"] == 1


@pytest.mark.asyncio
async def test_invalidate_by_type(client, cache):
    await cache.set("u1", "skin", {"a": 1}, ttl=60)
    await cache.set("u1", "hair", {"a": 1}, ttl=60)

    r = await client.delete(
        "/cache/owners/u1", params={"analysis_type": "skin"}, headers=HEADERS,
    )
    assert r.status_code == 200
    body = r.json()
    assert body["removed"] == 1
    assert body["analysis_type"] == "skin"
    assert await cache.get("u1", "hair") is not None


@pytest.mark.asyncio
async def test_invalidate_all_for_owner(client, cache):
    await cache.set("u1", "skin", {"a": 1}, ttl=60)
    await cache.set("u1", "hair", {"a": 1}, ttl=60)

    r = await client.delete("/cache/owners/u1", headers=HEADERS)
    assert r.json()["removed"] == 2
    assert r.json()["analysis_type"] is None


@pytest.mark.asyncio
async def test_invalidate_unknown_type_rejected(client):
    r = await client.delete(
        "/cache/owners/u1", params={"analysis_type": "tattoo"}, headers=HEADERS,
    )
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_storage_down_maps_to_503(broken_client):
    r = await broken_client.get("/cache/stats", headers=HEADERS)
    assert r.status_code == 503
    r = await broken_client.post("/cache/cleanup", headers=HEADERS)
    assert r.status_code == 503


@pytest.mark.asyncio
async def test_health_reports_unhealthy_when_storage_down(broken_client):
    r = await broken_client.get("/cache/health")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "unhealthy"
    assert body["storage_ok"] is False
    assert body["stats"] is None


@pytest.mark.asyncio
async def test_request_id_echoed(client):
    r = await client.get("/health", headers={"X-Request-ID": "req-123"})
    assert r.headers["X-Request-ID"] == "req-123"
