"""Unit tests for the subscription and product endpoints."""

import pytest
from httpx import AsyncClient

from restock_service.services.pipeline import RestockPipeline


class TestSubscriptionEndpoints:
    @pytest.mark.asyncio
    async def test_subscribe_and_unsubscribe(
        self, async_client: AsyncClient, pipeline: RestockPipeline, make_product
    ) -> None:
        product_id = await make_product()
        payload = {"subscriber_id": "user-7", "product_id": product_id, "email": "u7@example.com"}

        created = await async_client.post("/api/v1/subscriptions", json=payload)
        assert created.status_code == 200
        subscription = created.json()
        assert subscription["delivered"] is False

        repeat = await async_client.post("/api/v1/subscriptions", json=payload)
        assert repeat.json()["id"] == subscription["id"]

        removed = await async_client.delete(f"/api/v1/subscriptions/{subscription['id']}")
        assert removed.status_code == 200
        assert pipeline.interest_cache.lookup(product_id) == ()

        missing = await async_client.delete(f"/api/v1/subscriptions/{subscription['id']}")
        assert missing.status_code == 404

    @pytest.mark.asyncio
    async def test_subscribe_validation(self, async_client: AsyncClient, make_product) -> None:
        product_id = await make_product()

        bad_email = await async_client.post(
            "/api/v1/subscriptions",
            json={"subscriber_id": "u", "product_id": product_id, "email": "nope"},
        )
        assert bad_email.status_code == 422

        unknown = await async_client.post(
            "/api/v1/subscriptions",
            json={"subscriber_id": "u", "product_id": "missing", "email": "u@example.com"},
        )
        assert unknown.status_code == 404

    @pytest.mark.asyncio
    async def test_reset_requires_admin(
        self, async_client: AsyncClient, admin_headers: dict, make_product
    ) -> None:
        product_id = await make_product()
        url = f"/api/v1/subscriptions/products/{product_id}/reset"

        assert (await async_client.post(url)).status_code == 403
        response = await async_client.post(url, headers=admin_headers)
        assert response.json() == {"product_id": product_id, "reset_count": 0}


class TestProductEndpoints:
    @pytest.mark.asyncio
    async def test_stock_update_fans_out(
        self, async_client: AsyncClient, admin_headers: dict, make_product, make_subscriptions
    ) -> None:
        product_id = await make_product(stock=0)
        await make_subscriptions(product_id, count=2)

        response = await async_client.put(
            f"/api/v1/products/{product_id}/stock",
            headers=admin_headers,
            json={"stock_quantity": 3},
        )

        assert response.status_code == 200
        assert response.json()["triggered"] is True
        assert response.json()["queued"] == 2

    @pytest.mark.asyncio
    async def test_stock_update_unknown_product(
        self, async_client: AsyncClient, admin_headers: dict
    ) -> None:
        response = await async_client.put(
            "/api/v1/products/missing/stock",
            headers=admin_headers,
            json={"stock_quantity": 3},
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_restock_report(
        self, async_client: AsyncClient, admin_headers: dict, make_product, make_subscriptions
    ) -> None:
        product_id = await make_product(stock=0)
        await make_subscriptions(product_id, count=1)
        payload = {"product_id": product_id, "old_stock": 0, "new_stock": 2}

        assert (await async_client.post("/api/v1/products/restock", json=payload)).status_code == 403

        response = await async_client.post(
            "/api/v1/products/restock", headers=admin_headers, json=payload
        )
        assert response.json()["queued"] == 1

    @pytest.mark.asyncio
    async def test_sweep(
        self, async_client: AsyncClient, admin_headers: dict, make_product, make_subscriptions
    ) -> None:
        product_id = await make_product(stock=9)
        await make_subscriptions(product_id, count=2)

        response = await async_client.post("/api/v1/products/restock/sweep", headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["products"] == 1
        assert response.json()["queued"] == 2

    @pytest.mark.asyncio
    async def test_invalidate(
        self, async_client: AsyncClient, admin_headers: dict, pipeline: RestockPipeline, make_product
    ) -> None:
        product_id = await make_product()
        await pipeline.product_cache.get(product_id)

        response = await async_client.post(
            f"/api/v1/products/{product_id}/invalidate", headers=admin_headers
        )

        assert response.status_code == 204
        assert product_id not in pipeline.product_cache
