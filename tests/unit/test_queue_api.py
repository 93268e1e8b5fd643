"""Unit tests for the notification queue admin endpoints."""

import pytest
import pytest_asyncio
from httpx import AsyncClient

from restock_service.infrastructure.email import MockEmailSender
from restock_service.services.pipeline import RestockPipeline

QUEUE = "/api/v1/notifications/queue"


@pytest_asyncio.fixture
async def restocked(pipeline: RestockPipeline, make_product, make_subscriptions):
    product_id = await make_product(name="Pie Dish")
    subs = await make_subscriptions(product_id, count=2)
    await pipeline.interest_cache.initialize()
    await pipeline.restock.notify_restock(product_id, 0, 4)
    return product_id, subs


class TestQueueStatus:
    @pytest.mark.asyncio
    async def test_status_and_items(self, async_client: AsyncClient, restocked) -> None:
        status = (await async_client.get(f"{QUEUE}/status")).json()
        assert status["pending_count"] == 2
        assert status["total_count"] == 2

        response = await async_client.get(f"{QUEUE}/items", params={"limit": 1})
        assert response.status_code == 200
        body = response.json()
        assert body["limit"] == 1
        assert len(body["items"]) == 1
        assert body["items"][0]["status"] == "pending"

    @pytest.mark.asyncio
    async def test_items_limit_is_bounded(self, async_client: AsyncClient) -> None:
        response = await async_client.get(f"{QUEUE}/items", params={"limit": 1000})
        assert response.status_code == 422


class TestProcess:
    @pytest.mark.asyncio
    async def test_anonymous_process_is_forbidden(
        self, async_client: AsyncClient, gateway: MockEmailSender, restocked
    ) -> None:
        response = await async_client.post(f"{QUEUE}/process")

        assert response.status_code == 403
        detail = response.json()["detail"]
        assert detail["processed"] == 0
        assert detail["errors"] == ["Authentication required for notification processing"]
        assert gateway.attempted == []

    @pytest.mark.asyncio
    async def test_admin_process(
        self, async_client: AsyncClient, admin_headers: dict, restocked
    ) -> None:
        response = await async_client.post(
            f"{QUEUE}/process", headers=admin_headers, params={"include_errors": True}
        )

        assert response.status_code == 200
        body = response.json()
        assert (body["processed"], body["succeeded"], body["failed"]) == (2, 2, 0)
        assert body["skipped"] is False
        assert body["errors"] == []

    @pytest.mark.asyncio
    async def test_errors_hidden_unless_requested(
        self, async_client: AsyncClient, admin_headers: dict, pipeline: RestockPipeline, restocked
    ) -> None:
        _, subs = restocked
        pipeline.processor.gateway = MockEmailSender(fail_for={subs[0].email})

        body = (await async_client.post(f"{QUEUE}/process", headers=admin_headers)).json()

        assert body["failed"] == 1
        assert body["errors"] is None

    @pytest.mark.asyncio
    async def test_retry_failed(
        self, async_client: AsyncClient, admin_headers: dict, pipeline: RestockPipeline, restocked
    ) -> None:
        _, subs = restocked
        pipeline.processor.gateway = MockEmailSender(fail_for={subs[0].email})
        await async_client.post(f"{QUEUE}/process", headers=admin_headers)
        pipeline.processor.gateway = MockEmailSender()

        response = await async_client.post(f"{QUEUE}/retry-failed", headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["succeeded"] == 1
        status = (await async_client.get(f"{QUEUE}/status")).json()
        assert status["sent_count"] == 2
        assert status["failed_count"] == 0

    @pytest.mark.asyncio
    async def test_retry_failed_requires_admin(
        self, async_client: AsyncClient, restocked
    ) -> None:
        response = await async_client.post(f"{QUEUE}/retry-failed")
        assert response.status_code == 403


class TestAdminOperations:
    @pytest.mark.asyncio
    async def test_clear_failed(
        self, async_client: AsyncClient, admin_headers: dict, pipeline: RestockPipeline, restocked
    ) -> None:
        _, subs = restocked
        pipeline.processor.gateway = MockEmailSender(fail_for={s.email for s in subs})
        await async_client.post(f"{QUEUE}/process", headers=admin_headers)

        assert (await async_client.post(f"{QUEUE}/clear-failed")).status_code == 403
        response = await async_client.post(f"{QUEUE}/clear-failed", headers=admin_headers)

        assert response.json() == {"cleared": 2}
        assert (await async_client.get(f"{QUEUE}/status")).json()["total_count"] == 0

    @pytest.mark.asyncio
    async def test_cache_stats_and_refresh(
        self, async_client: AsyncClient, admin_headers: dict, restocked
    ) -> None:
        stats = (await async_client.get(f"{QUEUE}/cache")).json()
        assert stats["initialized"] is True
        assert stats["total_subscriptions"] == 2

        response = await async_client.post(f"{QUEUE}/cache/refresh", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["product_count"] == 1

    @pytest.mark.asyncio
    async def test_send_test_email(
        self, async_client: AsyncClient, admin_headers: dict, gateway: MockEmailSender
    ) -> None:
        response = await async_client.post(
            f"{QUEUE}/test-email", headers=admin_headers, json={"email": "ops@example.com"}
        )

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert gateway.attempted == ["ops@example.com"]

    @pytest.mark.asyncio
    async def test_send_test_email_malformed(
        self, async_client: AsyncClient, admin_headers: dict
    ) -> None:
        response = await async_client.post(
            f"{QUEUE}/test-email", headers=admin_headers, json={"email": "nobody"}
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_wrong_api_key(self, async_client: AsyncClient) -> None:
        response = await async_client.post(
            f"{QUEUE}/cache/refresh", headers={"X-API-Key": "guess"}
        )
        assert response.status_code == 403
