"""Back in stock notification tasks."""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import timedelta
from typing import Any

import structlog
from celery import shared_task

from restock_service.config import get_settings
from restock_service.infrastructure.database.connection import (
    get_async_engine,
    get_async_session_factory,
)
from restock_service.infrastructure.redis import RedisRunLock, close_redis, get_redis_client
from restock_service.services.pipeline import RestockPipeline, build_pipeline

logger = structlog.get_logger()


async def _with_pipeline(work: Callable[[RestockPipeline], Awaitable[Any]]) -> Any:
    """
    Run ``work`` against a pipeline bound to this event loop.

    Each invocation builds its own engine; pooled connections stay bound to
    the loop that opened them and ``asyncio.run`` starts a new one per task.
    """
    settings = get_settings()
    engine = get_async_engine(settings)
    run_lock = None
    if settings.distributed_lock_enabled:
        run_lock = RedisRunLock(
            await get_redis_client(),
            key=settings.distributed_lock_key,
            ttl_seconds=settings.distributed_lock_ttl_seconds,
        )
    pipeline = build_pipeline(
        settings,
        session_factory=get_async_session_factory(engine),
        run_lock=run_lock,
    )
    try:
        return await work(pipeline)
    finally:
        await pipeline.gateway.close()
        await close_redis()
        await engine.dispose()


@shared_task(bind=True, max_retries=3, default_retry_delay=60)
def notify_back_in_stock(self, product_id: str, old_stock: int, new_stock: int) -> dict:
    """
    Fan out notifications for a product whose stock went from zero to positive.

    Triggered by the inventory writer after it commits a stock change.

    Args:
        product_id: The product that's back in stock
        old_stock: Stock level before the change
        new_stock: Stock level after the change

    Returns:
        dict: RestockResult summary
    """
    logger.info(
        "Processing back in stock notification",
        product_id=product_id,
        old_stock=old_stock,
        new_stock=new_stock,
    )

    async def work(pipeline: RestockPipeline):
        return await pipeline.restock.notify_restock(product_id, old_stock, new_stock)

    try:
        result = asyncio.run(_with_pipeline(work))
    except Exception as e:
        logger.error("Back in stock fan-out failed", product_id=product_id, error=str(e))
        raise self.retry(exc=e)
    return result.model_dump(mode="json")


@shared_task
def process_notification_queue() -> dict:
    """Claim and deliver one batch as the worker identity."""

    async def work(pipeline: RestockPipeline):
        return await pipeline.process_now(pipeline.worker_identity)

    result = asyncio.run(_with_pipeline(work))
    if result.processed or result.errors:
        logger.info(
            "Notification queue batch finished",
            processed=result.processed,
            succeeded=result.succeeded,
            failed=result.failed,
            skipped=result.skipped,
        )
    return result.model_dump(mode="json")


@shared_task
def retry_failed_notifications(include_exhausted: bool = False) -> dict:
    """Re-arm failed items and process a batch."""

    async def work(pipeline: RestockPipeline):
        return await pipeline.retry_failed(
            pipeline.worker_identity, include_exhausted=include_exhausted
        )

    return asyncio.run(_with_pipeline(work)).model_dump(mode="json")


@shared_task
def sweep_restocked_products() -> dict:
    """Queue notifications for in-stock products that still have waiting subscribers."""

    async def work(pipeline: RestockPipeline):
        return await pipeline.restock.sweep_restocked_products()

    results = asyncio.run(_with_pipeline(work))
    return {
        "products": len(results),
        "queued": sum(r.queued for r in results),
    }


@shared_task
def fail_stale_notifications() -> dict:
    """Move items stuck in processing to failed so they can be retried."""
    settings = get_settings()

    async def work(pipeline: RestockPipeline):
        return await pipeline.queue.fail_stale_processing(
            timedelta(minutes=settings.queue_stale_processing_minutes)
        )

    return {"failed": asyncio.run(_with_pipeline(work))}
