"""Wiring for the restock notification pipeline and its admin operations."""

from datetime import datetime, timedelta

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from restock_service.config import Settings, get_settings
from restock_service.domain.models import (
    Identity,
    ProcessResult,
    QueueItem,
    QueueStatus,
    QueueStatusSummary,
)
from restock_service.errors import AuthorizationError
from restock_service.infrastructure.database.connection import get_session_factory
from restock_service.infrastructure.database.models import utcnow
from restock_service.infrastructure.email import DeliveryGateway, build_delivery_gateway
from restock_service.infrastructure.redis import RedisRunLock
from restock_service.services.authorization import require_privileged, static_identity
from restock_service.services.delivery_queue import DeliveryQueue
from restock_service.services.interest_cache import InterestCache
from restock_service.services.messages import MessageBuilder
from restock_service.services.product_cache import ProductDetailCache
from restock_service.services.product_catalog import ProductCatalog
from restock_service.services.queue_processor import QueueProcessor
from restock_service.services.restock import RestockNotifier
from restock_service.services.scheduler import QueueScheduler
from restock_service.services.subscription_store import SubscriptionStore
from restock_service.services.subscriptions import SubscriptionService

logger = structlog.get_logger()


class RestockPipeline:
    """Owns every pipeline component for one process."""

    def __init__(
        self,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        gateway: DeliveryGateway,
        run_lock: RedisRunLock | None = None,
    ):
        self.settings = settings
        self.session_factory = session_factory
        self.gateway = gateway
        self.run_lock = run_lock
        self._cache_synced_at: datetime | None = None

        self.subscriptions = SubscriptionStore(session_factory)
        self.queue = DeliveryQueue(session_factory, max_attempts=settings.queue_max_attempts)
        self.catalog = ProductCatalog(session_factory)
        self.interest_cache = InterestCache(self.subscriptions)
        self.product_cache = ProductDetailCache(self.catalog)
        self.message_builder = MessageBuilder(
            storefront_base_url=settings.storefront_base_url,
            company_name=settings.company_name,
        )

        self.processor = QueueProcessor(
            queue=self.queue,
            subscriptions=self.subscriptions,
            interest_cache=self.interest_cache,
            product_cache=self.product_cache,
            gateway=gateway,
            message_builder=self.message_builder,
            batch_size=settings.queue_batch_size,
            pacing_seconds=settings.queue_pacing_seconds,
            privileged_roles=settings.privileged_roles,
            run_lock=run_lock,
        )
        self.scheduler = QueueScheduler(
            processor=self.processor,
            identity_provider=static_identity("queue-scheduler", settings.worker_role),
            interval_seconds=settings.queue_poll_interval_seconds,
            process_queue=settings.queue_processing_owner == "api",
            after_tick=self.sync_interest_cache,
        )
        self.restock = RestockNotifier(
            interest_cache=self.interest_cache,
            product_cache=self.product_cache,
            catalog=self.catalog,
            queue=self.queue,
            subscriptions=self.subscriptions,
            gateway=gateway,
            message_builder=self.message_builder,
            mode=settings.restock_delivery_mode,
            pacing_seconds=settings.queue_pacing_seconds,
        )
        self.subscription_service = SubscriptionService(
            store=self.subscriptions,
            interest_cache=self.interest_cache,
            product_cache=self.product_cache,
            gateway=gateway,
            message_builder=self.message_builder,
        )

    @property
    def worker_identity(self) -> Identity:
        return Identity(subject="queue-worker", role=self.settings.worker_role)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self, run_scheduler: bool | None = None) -> None:
        """Warm the interest cache, recover stale items, start the scheduler."""
        self._cache_synced_at = utcnow()
        await self.interest_cache.initialize()
        await self.queue.fail_stale_processing(
            timedelta(minutes=self.settings.queue_stale_processing_minutes)
        )
        if run_scheduler is None:
            run_scheduler = self.settings.scheduler_enabled
        if run_scheduler:
            self.scheduler.start()

    async def stop(self) -> None:
        await self.scheduler.stop()
        await self.gateway.close()

    async def sync_interest_cache(self) -> list[str]:
        """
        Refresh buckets for products delivered to by other processes.

        Runs after every scheduler tick. Each pass looks back from the previous
        pass by ``interest_cache_sync_overlap_seconds`` so deliveries stamped
        before a slow commit are still seen.
        """
        now = utcnow()
        since = (self._cache_synced_at or now) - timedelta(
            seconds=self.settings.interest_cache_sync_overlap_seconds
        )
        refreshed = await self.interest_cache.sync_delivered(since)
        self._cache_synced_at = now
        return refreshed

    # -------------------------------------------------------------------------
    # Admin operations
    # -------------------------------------------------------------------------

    def _authorize(self, identity: Identity | None) -> None:
        require_privileged(identity, self.settings.privileged_roles)

    async def process_now(self, identity: Identity | None) -> ProcessResult:
        return await self.processor.run(identity)

    async def retry_failed(
        self, identity: Identity | None, include_exhausted: bool = False
    ) -> ProcessResult:
        """Re-arm failed items and immediately process a batch."""
        try:
            self._authorize(identity)
        except AuthorizationError as e:
            return ProcessResult(errors=[e.message], retryable=False)

        await self.queue.retry_failed(include_exhausted=include_exhausted)
        return await self.processor.run(identity)

    async def clear_failed(self, identity: Identity | None) -> int:
        self._authorize(identity)
        return await self.queue.clear_failed()

    async def queue_status(self) -> QueueStatusSummary:
        return await self.queue.status_summary()

    async def list_queue_items(
        self, limit: int, offset: int = 0, status: QueueStatus | None = None
    ) -> list[QueueItem]:
        return await self.queue.list_items(limit=limit, offset=offset, status=status)


def build_pipeline(
    settings: Settings | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    gateway: DeliveryGateway | None = None,
    run_lock: RedisRunLock | None = None,
) -> RestockPipeline:
    settings = settings or get_settings()
    return RestockPipeline(
        settings=settings,
        session_factory=session_factory or get_session_factory(),
        gateway=gateway or build_delivery_gateway(settings),
        run_lock=run_lock,
    )


# Process-wide pipeline
_pipeline: RestockPipeline | None = None


def get_pipeline() -> RestockPipeline:
    """Get or create the process-wide pipeline."""
    global _pipeline
    if _pipeline is None:
        _pipeline = build_pipeline()
    return _pipeline


def set_pipeline(pipeline: RestockPipeline | None) -> None:
    global _pipeline
    _pipeline = pipeline
