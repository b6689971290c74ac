"""Middleware tests: request id, rate limiting, CORS, error rendering."""

from unittest.mock import patch

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from fakes import FakeRedis
from shinobi.middleware.rate_limit import RateLimitMiddleware


@pytest.mark.asyncio
async def test_request_id_generated(client: AsyncClient) -> None:
    response = await client.get("/health")
    assert len(response.headers["x-request-id"]) == 32


@pytest.mark.asyncio
async def test_request_id_preserved(client: AsyncClient) -> None:
    response = await client.get("/health", headers={"X-Request-Id": "test-abc-123"})
    assert response.headers["x-request-id"] == "test-abc-123"


@pytest.mark.asyncio
async def test_unsafe_request_id_replaced(client: AsyncClient) -> None:
    response = await client.get("/health", headers={"X-Request-Id": "bad id with spaces!"})
    assert response.headers["x-request-id"] != "bad id with spaces!"


@pytest.mark.asyncio
async def test_cors_preflight(client: AsyncClient) -> None:
    response = await client.options(
        "/health",
        headers={"Origin": "http://localhost:3000", "Access-Control-Request-Method": "GET"},
    )
    assert response.headers["access-control-allow-origin"] == "http://localhost:3000"


@pytest.mark.asyncio
async def test_404_returns_json(client: AsyncClient) -> None:
    response = await client.get("/nonexistent-path")
    assert response.status_code == 404
    assert response.json()["detail"] == "Not Found"


@pytest.mark.asyncio
async def test_no_redis_means_no_limit(client: AsyncClient) -> None:
    response = await client.get("/version")
    assert response.status_code == 200
    assert "x-ratelimit-limit" not in response.headers


class TestRateLimit:
    @pytest.fixture
    def limited(self):
        app = FastAPI()
        app.add_middleware(RateLimitMiddleware, limit=3, window_seconds=60)

        @app.get("/ping")
        async def ping() -> dict[str, str]:
            return {"pong": "ok"}

        @app.get("/health")
        async def health() -> dict[str, str]:
            return {"status": "healthy"}

        return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")

    @pytest.mark.asyncio
    async def test_blocks_after_limit(self, limited):
        redis = FakeRedis()
        with patch("shinobi.middleware.rate_limit.get_optional_redis", return_value=redis):
            async with limited as ac:
                ok = [await ac.get("/ping") for _ in range(3)]
                blocked = await ac.get("/ping")

        assert [r.status_code for r in ok] == [200, 200, 200]
        assert ok[-1].headers["x-ratelimit-remaining"] == "0"
        assert blocked.status_code == 429
        assert 0 < int(blocked.headers["retry-after"]) <= 60

    @pytest.mark.asyncio
    async def test_probes_exempt(self, limited):
        redis = FakeRedis()
        with patch("shinobi.middleware.rate_limit.get_optional_redis", return_value=redis):
            async with limited as ac:
                statuses = {(await ac.get("/health")).status_code for _ in range(10)}
        assert statuses == {200}

    @pytest.mark.asyncio
    async def test_clients_counted_separately(self, limited):
        redis = FakeRedis()
        with patch("shinobi.middleware.rate_limit.get_optional_redis", return_value=redis):
            async with limited as ac:
                for _ in range(3):
                    await ac.get("/ping", headers={"X-Forwarded-For": "10.0.0.1"})
                other = await ac.get("/ping", headers={"X-Forwarded-For": "10.0.0.2"})
        assert other.status_code == 200
