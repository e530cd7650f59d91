"""Rate limit tiers and the sliding-window middleware."""

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from birdfeed.config import settings
from birdfeed.middleware.rate_limit import RateLimitMiddleware, classify_request


@pytest.mark.parametrize(
    "method, path, tier",
    [
        ("POST", "/api/haikubox/sync", "sync"),
        ("GET", "/api/haikubox/sync", "read"),
        ("POST", "/api/species/refresh", "sync"),
        ("POST", "/api/haikubox/test", "write"),
        ("POST", "/api/upload", "upload"),
        ("POST", "/api/upload/browser", "upload"),
        ("GET", "/api/photos", "read"),
        ("PATCH", "/api/photos/4", "write"),
        ("DELETE", "/api/bookmarks/wren", "write"),
        ("GET", "/", "default"),
    ],
)
def test_classify_request(method, path, tier):
    assert classify_request(method, path) == tier


@pytest_asyncio.fixture
async def limited_client(monkeypatch):
    monkeypatch.setattr(settings, "rate_limit_enabled", True)
    monkeypatch.setattr(settings, "rate_limit_read", 2)
    monkeypatch.setattr(settings, "rate_limit_upload", 1)

    app = FastAPI()
    app.add_middleware(RateLimitMiddleware)

    @app.get("/api/things")
    async def things():
        return {"ok": True}

    @app.post("/api/upload")
    async def upload():
        return {"ok": True}

    @app.get("/health")
    async def health():
        return {"status": "healthy"}

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


async def test_read_tier_blocks_after_limit(limited_client):
    first = await limited_client.get("/api/things")
    assert first.headers["X-RateLimit-Limit"] == "2"
    assert first.headers["X-RateLimit-Remaining"] == "1"
    await limited_client.get("/api/things")

    blocked = await limited_client.get("/api/things")

    assert blocked.status_code == 429
    assert blocked.json()["error"] == "rate_limit_exceeded"
    assert blocked.json()["details"]["tier"] == "read"
    assert int(blocked.headers["Retry-After"]) >= 1
    assert blocked.headers["X-RateLimit-Remaining"] == "0"


async def test_tiers_have_separate_budgets(limited_client):
    assert (await limited_client.post("/api/upload")).status_code == 200
    assert (await limited_client.post("/api/upload")).status_code == 429
    assert (await limited_client.get("/api/things")).status_code == 200


async def test_clients_counted_separately(limited_client):
    await limited_client.post("/api/upload", headers={"X-Forwarded-For": "10.0.0.1"})
    response = await limited_client.post("/api/upload", headers={"X-Forwarded-For": "10.0.0.2, 172.16.0.1"})
    assert response.status_code == 200


async def test_health_is_never_limited(limited_client):
    for _ in range(5):
        assert (await limited_client.get("/health")).status_code == 200


async def test_disabled_limits_pass_everything(limited_client, monkeypatch):
    monkeypatch.setattr(settings, "rate_limit_enabled", False)
    for _ in range(4):
        response = await limited_client.get("/api/things")
        assert response.status_code == 200
        assert "X-RateLimit-Limit" not in response.headers
