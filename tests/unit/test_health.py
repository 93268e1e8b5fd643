"""Unit tests for health endpoints."""

import pytest
from httpx import AsyncClient

from restock_service.services.pipeline import RestockPipeline


@pytest.mark.asyncio
async def test_health_check(async_client: AsyncClient) -> None:
    """Test basic health check returns healthy status."""
    response = await async_client.get("/api/v1/health")
    assert response.status_code == 200

    data = response.json()
    assert data["status"] == "healthy"
    assert "version" in data
    assert "environment" in data
    assert "timestamp" in data


@pytest.mark.asyncio
async def test_liveness_check(async_client: AsyncClient) -> None:
    """Test liveness check returns alive status."""
    response = await async_client.get("/api/v1/health/live")
    assert response.status_code == 200
    assert response.json()["status"] == "alive"


@pytest.mark.asyncio
async def test_readiness_waits_for_interest_cache(
    async_client: AsyncClient, pipeline: RestockPipeline
) -> None:
    """Not ready until the interest cache has loaded."""
    response = await async_client.get("/api/v1/health/ready")
    assert response.status_code == 200
    data = response.json()
    assert data["ready"] is False
    assert data["checks"]["database"] is True
    assert data["checks"]["interest_cache"] is False

    await pipeline.start()
    try:
        data = (await async_client.get("/api/v1/health/ready")).json()
    finally:
        await pipeline.stop()
    assert data["ready"] is True
    assert data["checks"]["interest_cache"] is True
