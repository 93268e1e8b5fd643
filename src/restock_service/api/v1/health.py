"""Health check endpoints."""

from datetime import datetime, timezone
from typing import Any

import structlog
from fastapi import APIRouter
from pydantic import BaseModel
from sqlalchemy import text

from restock_service import __version__
from restock_service.api.dependencies import PipelineDep
from restock_service.config import get_settings

logger = structlog.get_logger()

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str
    environment: str
    timestamp: str
    dependencies: dict[str, Any]


class ReadinessResponse(BaseModel):
    """Readiness check response model."""

    ready: bool
    checks: dict[str, bool]


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """
    Basic health check endpoint.

    Returns the service status and version information.
    This endpoint is used by load balancers and orchestrators
    to determine if the service is running.
    """
    settings = get_settings()

    return HealthResponse(
        status="healthy",
        version=__version__,
        environment=settings.app_env,
        timestamp=datetime.now(timezone.utc).isoformat(),
        dependencies={
            "database": "configured",
            "email": settings.email_service,
            "redis": "enabled" if settings.distributed_lock_enabled else "disabled",
        },
    )


@router.get("/health/ready", response_model=ReadinessResponse)
async def readiness_check(pipeline: PipelineDep) -> ReadinessResponse:
    """
    Readiness check endpoint.

    Ready once the database answers and the interest cache has loaded.
    A configured but unreachable Redis lock also fails readiness.
    """
    checks: dict[str, bool] = {}

    try:
        async with pipeline.session_factory() as session:
            await session.execute(text("SELECT 1"))
        checks["database"] = True
    except Exception as e:
        logger.warning("Readiness database check failed", error=str(e))
        checks["database"] = False

    checks["interest_cache"] = pipeline.interest_cache.initialized
    checks["scheduler"] = pipeline.scheduler.running or not pipeline.settings.scheduler_enabled

    if pipeline.run_lock is not None:
        checks["redis"] = await pipeline.run_lock.health_check()

    return ReadinessResponse(
        ready=all(checks.values()),
        checks=checks,
    )


@router.get("/health/live")
async def liveness_check() -> dict[str, str]:
    """
    Liveness check endpoint.

    Simple endpoint that returns 200 if the service is running.
    This endpoint is used by Kubernetes liveness checks.
    """
    return {"status": "alive"}
