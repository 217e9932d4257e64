"""Integration tests for upstream-facing and admin endpoints.

The outbound HTTP client is an httpx.MockTransport, so these tests cover
the full path: route -> upstream client -> breaker -> retries -> httpx.
"""

import httpx
import pytest
from httpx import AsyncClient

PRODUCTS_URL = "https://upstream.test/products"
WEBHOOKS_URL = "https://upstream.test/webhooks"
TOKEN_URL = "https://idp.test/oauth/token"


@pytest.fixture(autouse=True)
def token_endpoint(upstream_routes) -> None:
    upstream_routes[TOKEN_URL] = lambda request: httpx.Response(
        200, json={"access_token": "abc", "expires_in": 3600}
    )


@pytest.fixture
def upstream_down(upstream_routes) -> dict[str, int]:
    calls = {"n": 0}

    def down(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        return httpx.Response(503)

    upstream_routes[PRODUCTS_URL] = down
    return calls


# =============================================================================
# External Products
# =============================================================================


class TestExternalProducts:
    """Tests for GET /api/external/products."""

    @pytest.mark.asyncio
    async def test_returns_first_ten(self, async_client: AsyncClient, upstream_routes) -> None:
        upstream_routes[PRODUCTS_URL] = lambda request: httpx.Response(
            200, json=[{"id": i, "name": f"User {i}"} for i in range(12)]
        )

        response = await async_client.get("/api/external/products")

        assert response.status_code == 200
        body = response.json()
        assert body["count"] == 10
        assert body["data"][0] == {"id": "0", "name": "User 0", "price": 0.0}

    @pytest.mark.asyncio
    async def test_upstream_failure_is_502(
        self, async_client: AsyncClient, upstream_down, container
    ) -> None:
        response = await async_client.get("/api/external/products")

        assert response.status_code == 502
        error = response.json()["error"]
        assert error["code"] == "UPSTREAM_ERROR"
        assert error["details"] == {"upstream_status": 503, "attempts": 4}
        assert upstream_down["n"] == 4
        assert container.metrics.snapshot()["external_api"]["errors"] == 1

    @pytest.mark.asyncio
    async def test_record_without_id_is_502(
        self, async_client: AsyncClient, upstream_routes, container
    ) -> None:
        upstream_routes[PRODUCTS_URL] = lambda request: httpx.Response(
            200, json=[{"name": "no id"}]
        )

        response = await async_client.get("/api/external/products")

        assert response.status_code == 502
        assert response.json()["error"]["code"] == "UPSTREAM_ERROR"
        assert container.metrics.snapshot()["external_api"]["errors"] == 1

    @pytest.mark.asyncio
    async def test_open_circuit_is_503_without_upstream_call(
        self, async_client: AsyncClient, upstream_down
    ) -> None:
        for _ in range(5):
            await async_client.get("/api/external/products")
        calls_before = upstream_down["n"]

        response = await async_client.get("/api/external/products")

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "CIRCUIT_OPEN"
        assert upstream_down["n"] == calls_before

    @pytest.mark.asyncio
    async def test_identity_provider_failure_is_502(
        self, async_client: AsyncClient, upstream_routes
    ) -> None:
        upstream_routes[TOKEN_URL] = lambda request: httpx.Response(401)

        response = await async_client.get("/api/external/products")

        assert response.status_code == 502
        assert response.json()["error"]["code"] == "CREDENTIAL_FETCH_FAILED"


class TestWebhookRegistration:
    """Tests for POST /api/external/webhooks/register."""

    @pytest.mark.asyncio
    async def test_registers_callback(self, async_client: AsyncClient, upstream_routes) -> None:
        upstream_routes[WEBHOOKS_URL] = lambda request: httpx.Response(200, json={})

        response = await async_client.post(
            "/api/external/webhooks/register",
            json={"callback_url": "https://shop.test/api/webhook/callback"},
        )

        assert response.status_code == 200
        assert response.json()["events"] == ["order.created", "order.updated"]

    @pytest.mark.asyncio
    async def test_missing_callback_is_400(self, async_client: AsyncClient) -> None:
        response = await async_client.post("/api/external/webhooks/register", json={})
        assert response.status_code == 400


# =============================================================================
# Admin
# =============================================================================


class TestAdminEndpoints:
    """Tests for the operational endpoints."""

    @pytest.mark.asyncio
    async def test_circuit_breaker_status_and_reset(
        self, async_client: AsyncClient, upstream_down, upstream_routes
    ) -> None:
        for _ in range(5):
            await async_client.get("/api/external/products")

        status = (await async_client.get("/api/admin/circuit-breaker")).json()["data"]
        assert status["state"] == "OPEN"

        response = await async_client.post("/api/admin/circuit-breaker/reset")
        assert response.json()["message"] == "Circuit breaker reset"

        upstream_routes[PRODUCTS_URL] = lambda request: httpx.Response(200, json=[])
        assert (await async_client.get("/api/external/products")).status_code == 200

    @pytest.mark.asyncio
    async def test_token_invalidate(
        self, async_client: AsyncClient, upstream_routes, fake_redis
    ) -> None:
        upstream_routes[PRODUCTS_URL] = lambda request: httpx.Response(200, json=[])
        await async_client.get("/api/external/products")
        assert "oauth2:access_token" in fake_redis.data

        response = await async_client.post("/api/admin/token/invalidate")

        assert response.status_code == 200
        assert "oauth2:access_token" not in fake_redis.data

    @pytest.mark.asyncio
    async def test_rate_limit_reset(self, async_client: AsyncClient, container) -> None:
        await container.rate_limiter.try_acquire("203.0.113.9")

        response = await async_client.delete("/api/admin/rate-limits/203.0.113.9")

        assert response.json()["message"] == "Rate limit reset"
        assert "ratelimit:203.0.113.9" not in container.redis.data
