"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from restock_service.api.v1.router import api_router
from restock_service.config import get_settings
from restock_service.infrastructure.database.connection import dispose_engine
from restock_service.infrastructure.observability import configure_logging
from restock_service.infrastructure.redis import RedisRunLock, close_redis, get_redis_client
from restock_service.middleware.timing import TimingMiddleware
from restock_service.services.pipeline import build_pipeline, get_pipeline, set_pipeline

configure_logging()

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup and shutdown events."""
    settings = get_settings()
    logger.info(
        "Starting restock notification service",
        app_env=settings.app_env,
        debug=settings.debug,
        delivery_mode=settings.restock_delivery_mode,
        email_service=settings.email_service,
    )

    if settings.distributed_lock_enabled:
        run_lock = RedisRunLock(
            await get_redis_client(),
            key=settings.distributed_lock_key,
            ttl_seconds=settings.distributed_lock_ttl_seconds,
        )
        set_pipeline(build_pipeline(settings, run_lock=run_lock))

    pipeline = get_pipeline()
    await pipeline.start()
    logger.info(
        "Notification pipeline ready",
        scheduler=pipeline.scheduler.running,
        **pipeline.interest_cache.stats().model_dump(),
    )

    yield

    await pipeline.stop()
    await close_redis()
    await dispose_engine()
    logger.info("Shutting down restock notification service")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Restock Notification API",
        description="Back-in-stock subscriptions and queued email delivery",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(TimingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router, prefix="/api/v1")

    return app


app = create_app()


def run() -> None:
    """Run the application using uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "restock_service.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        workers=1 if settings.debug else settings.api_workers,
    )


if __name__ == "__main__":
    run()
