"""Integration tests for the product catalogue endpoints.

These tests verify the endpoints work correctly with:
- Real database (SQLite in-memory for tests)
- In-memory Redis double for the cache and rate limiter
"""

from collections.abc import Callable

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from freshcart.models import Product
from freshcart.repositories.product import ProductRepository

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
async def seeded(
    db_session: AsyncSession, make_product: Callable[..., Product]
) -> list[Product]:
    items = [
        make_product(name=f"Apple {i}", price=1.0 + i, category="produce")
        for i in range(30)
    ]
    db_session.add_all(items)
    await db_session.flush()
    return items


@pytest.fixture
def find_calls(monkeypatch: pytest.MonkeyPatch) -> list[int]:
    """Count ProductRepository.find executions."""
    calls: list[int] = []
    original = ProductRepository.find

    async def counting_find(self, **kwargs):
        calls.append(1)
        return await original(self, **kwargs)

    monkeypatch.setattr(ProductRepository, "find", counting_find)
    return calls


# =============================================================================
# List Endpoint
# =============================================================================


class TestListProducts:
    """Tests for GET /api/products."""

    @pytest.mark.asyncio
    async def test_first_page_envelope(self, async_client: AsyncClient, seeded) -> None:
        response = await async_client.get("/api/products", params={"limit": 10})

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "success"
        assert len(body["data"]) == 10
        assert body["hasMore"] is True
        assert body["nextCursor"] == body["data"][-1]["id"]
        assert "createdAt" in body["data"][0]

    @pytest.mark.asyncio
    async def test_walks_all_pages_by_price(self, async_client: AsyncClient, seeded) -> None:
        ids: list[str] = []
        params = {"limit": 12, "sortBy": "price", "sortOrder": "asc"}

        while True:
            body = (await async_client.get("/api/products", params=params)).json()
            ids.extend(item["id"] for item in body["data"])
            if not body["hasMore"]:
                break
            params["cursor"] = body["nextCursor"]

        assert len(ids) == 30
        assert len(set(ids)) == 30

    @pytest.mark.asyncio
    async def test_empty_filtered_set(self, async_client: AsyncClient, seeded) -> None:
        response = await async_client.get(
            "/api/products",
            params={"limit": 5, "sortBy": "price", "sortOrder": "asc", "category": "dairy"},
        )

        assert response.status_code == 200
        assert response.json() == {
            "status": "success",
            "data": [],
            "nextCursor": None,
            "hasMore": False,
        }

    @pytest.mark.asyncio
    async def test_repeat_request_served_from_cache(
        self, async_client: AsyncClient, seeded, find_calls, container
    ) -> None:
        params = {"limit": 5, "category": "produce"}

        first = await async_client.get("/api/products", params=params)
        second = await async_client.get("/api/products", params=params)

        assert first.json() == second.json()
        assert len(find_calls) == 1
        products = container.metrics.snapshot()["products"]
        assert products["cache_misses"] == 1
        assert products["cache_hits"] == 1

    @pytest.mark.asyncio
    async def test_different_filters_are_cached_separately(
        self, async_client: AsyncClient, seeded, find_calls
    ) -> None:
        await async_client.get("/api/products", params={"minPrice": 5})
        await async_client.get("/api/products", params={"minPrice": 6})

        assert len(find_calls) == 2

    @pytest.mark.asyncio
    async def test_admin_invalidation_forces_recompute(
        self, async_client: AsyncClient, seeded, find_calls
    ) -> None:
        await async_client.get("/api/products")

        response = await async_client.delete("/api/admin/cache")
        assert response.status_code == 200
        assert response.json()["deleted"] == 1

        await async_client.get("/api/products")
        assert len(find_calls) == 2

    @pytest.mark.asyncio
    async def test_works_while_redis_is_down(
        self, async_client: AsyncClient, seeded, fake_redis
    ) -> None:
        fake_redis.fail = True

        response = await async_client.get("/api/products", params={"limit": 3})

        assert response.status_code == 200
        assert len(response.json()["data"]) == 3

    @pytest.mark.parametrize(
        ("params", "code"),
        [
            ({"cursor": "not-a-uuid"}, "INVALID_CURSOR"),
            ({"sortBy": "colour"}, "VALIDATION_ERROR"),
            ({"limit": -5}, "VALIDATION_ERROR"),
            ({"minPrice": "cheap"}, "VALIDATION_ERROR"),
        ],
    )
    @pytest.mark.asyncio
    async def test_invalid_parameters_are_400(
        self, async_client: AsyncClient, params: dict, code: str
    ) -> None:
        response = await async_client.get("/api/products", params=params)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == code

    @pytest.mark.asyncio
    async def test_response_headers(self, async_client: AsyncClient) -> None:
        response = await async_client.get(
            "/api/products", headers={"X-Request-ID": "req-123"}
        )

        assert response.headers["X-Request-ID"] == "req-123"
        assert response.headers["X-RateLimit-Remaining"] == "99"


# =============================================================================
# Detail Endpoint
# =============================================================================


class TestGetProduct:
    """Tests for GET /api/products/{id}."""

    @pytest.mark.asyncio
    async def test_returns_product(self, async_client: AsyncClient, seeded) -> None:
        product = seeded[0]

        response = await async_client.get(f"/api/products/{product.id}")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["id"] == str(product.id)
        assert data["name"] == "Apple 0"
        assert data["price"] == 1.0

    @pytest.mark.asyncio
    async def test_detail_is_cached(
        self, async_client: AsyncClient, seeded, fake_redis
    ) -> None:
        product = seeded[0]
        await async_client.get(f"/api/products/{product.id}")

        assert f"products:item:{product.id}" in fake_redis.data

    @pytest.mark.parametrize("product_id", ["00000000-0000-0000-0000-000000000000", "nope"])
    @pytest.mark.asyncio
    async def test_unknown_product_is_404(
        self, async_client: AsyncClient, product_id: str
    ) -> None:
        response = await async_client.get(f"/api/products/{product_id}")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "PRODUCT_NOT_FOUND"
