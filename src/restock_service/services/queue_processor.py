"""Queue processor: drains a bounded batch of pending notifications.

One invocation claims up to ``batch_size`` items and sends them one at a
time through the delivery gateway, sleeping ``pacing_seconds`` between sends
to stay inside the provider's rate limit. Only one invocation runs at a time
per processor instance; a request that arrives while a run is in flight
returns a skipped result immediately instead of waiting.
"""

import asyncio
from collections.abc import Iterable

import structlog

from restock_service.domain.models import Identity, ProcessResult, QueueItem
from restock_service.errors import (
    AuthorizationError,
    DataError,
    DeliveryError,
    ProductNotFoundError,
    RestockError,
)
from restock_service.infrastructure.email import DeliveryGateway
from restock_service.infrastructure.redis import RedisRunLock
from restock_service.services.authorization import require_privileged
from restock_service.services.delivery_queue import DeliveryQueue
from restock_service.services.interest_cache import InterestCache
from restock_service.services.messages import MessageBuilder
from restock_service.services.product_cache import ProductDetailCache
from restock_service.services.subscription_store import SubscriptionRepository
from shared.constants import (
    DEFAULT_PACING_SECONDS,
    DEFAULT_PRIVILEGED_ROLES,
    DEFAULT_QUEUE_BATCH_SIZE,
)

logger = structlog.get_logger()

ALREADY_RUNNING = "Queue processing already in progress"


class QueueProcessor:
    """Mutually exclusive, paced batch sender for the delivery queue."""

    def __init__(
        self,
        queue: DeliveryQueue,
        subscriptions: SubscriptionRepository,
        interest_cache: InterestCache,
        product_cache: ProductDetailCache,
        gateway: DeliveryGateway,
        message_builder: MessageBuilder,
        batch_size: int = DEFAULT_QUEUE_BATCH_SIZE,
        pacing_seconds: float = DEFAULT_PACING_SECONDS,
        privileged_roles: Iterable[str] = DEFAULT_PRIVILEGED_ROLES,
        run_lock: RedisRunLock | None = None,
    ):
        self.queue = queue
        self.subscriptions = subscriptions
        self.interest_cache = interest_cache
        self.product_cache = product_cache
        self.gateway = gateway
        self.message_builder = message_builder
        self.batch_size = batch_size
        self.pacing_seconds = pacing_seconds
        self.privileged_roles = frozenset(privileged_roles)
        self.run_lock = run_lock
        self._running = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._running.locked()

    async def run(self, identity: Identity | None) -> ProcessResult:
        """
        Process one batch of pending queue items.

        Never raises for per-item problems: every failure is recorded on the
        item and reported in ``ProcessResult.errors``.

        Args:
            identity: The caller; must hold a privileged role

        Returns:
            ProcessResult with processed / succeeded / failed counts
        """
        if self._running.locked():
            logger.debug("Queue processor busy, skipping run")
            return ProcessResult(errors=[ALREADY_RUNNING], skipped=True)

        async with self._running:
            try:
                require_privileged(identity, self.privileged_roles)
            except AuthorizationError as e:
                logger.warning("Queue processing refused", reason=e.message)
                return ProcessResult(errors=[e.message], retryable=False)

            if self.run_lock is not None and not await self.run_lock.acquire():
                logger.info("Queue processor running on another instance, skipping run")
                return ProcessResult(errors=[ALREADY_RUNNING], skipped=True)

            try:
                return await self._process_batch()
            finally:
                if self.run_lock is not None:
                    await self.run_lock.release()

    async def _process_batch(self) -> ProcessResult:
        items = await self.queue.claim_batch(self.batch_size)
        if not items:
            return ProcessResult()

        logger.info("Processing notification batch", batch_size=len(items))
        succeeded = 0
        failed = 0
        errors: list[str] = []

        for index, item in enumerate(items):
            error = await self._deliver(item)
            if error is None:
                succeeded += 1
            else:
                failed += 1
                errors.append(error)

            # Pacing applies between sends, not after the last one
            if index < len(items) - 1 and self.pacing_seconds > 0:
                await asyncio.sleep(self.pacing_seconds)

        result = ProcessResult(
            processed=len(items),
            succeeded=succeeded,
            failed=failed,
            errors=errors,
        )
        logger.info(
            "Processed notification batch",
            processed=result.processed,
            succeeded=result.succeeded,
            failed=result.failed,
        )
        return result

    async def _deliver(self, item: QueueItem) -> str | None:
        """Send one claimed item. Returns an error string on failure."""
        try:
            subscription = await self.subscriptions.get(item.subscription_id)
            if subscription is None:
                raise DataError(f"Subscription not found: {item.subscription_id}")

            if subscription.delivered:
                # Delivered through another path since it was queued
                logger.info(
                    "Subscription already delivered, resolving without send",
                    queue_item_id=item.id,
                    subscription_id=subscription.id,
                )
                await self.queue.mark_sent(item.id)
                self.interest_cache.remove(subscription.id, subscription.product_id)
                return None

            product = await self.product_cache.get(item.product_id)
            if product is None:
                raise ProductNotFoundError(item.product_id)

            message = self.message_builder.build(subscription, product)
            outcome = await self.gateway.send(message)
            if not outcome.success:
                raise DeliveryError(outcome.error or "Unknown error")
        except DeliveryError as e:
            await self._fail(item, e.message)
            return f"Failed to send to {subscription.email}: {e.message}"
        except Exception as e:
            error = e.message if isinstance(e, RestockError) else str(e) or type(e).__name__
            logger.error(
                "Error processing notification item",
                queue_item_id=item.id,
                error=error,
            )
            await self._fail(item, error)
            return f"Error processing notification {item.id}: {error}"

        try:
            recorded = await self.queue.mark_sent(item.id)
        except Exception as e:
            # Item stays in processing until fail_stale_processing picks it up
            logger.error(
                "Sent notification but could not record it",
                queue_item_id=item.id,
                error=str(e),
            )
            return f"Sent to {subscription.email} but could not record delivery: {e}"

        if not recorded:
            # Reclaimed mid-send; a retry of the item must resolve without resending
            await self.subscriptions.mark_delivered(subscription.id)
            self.interest_cache.remove(subscription.id, subscription.product_id)
            logger.warning(
                "Sent notification for an item no longer in processing",
                queue_item_id=item.id,
                message_id=outcome.message_id,
            )
            return (
                f"Sent to {subscription.email} but queue item {item.id} "
                "was no longer processing"
            )

        self.interest_cache.remove(subscription.id, subscription.product_id)
        logger.debug(
            "Notification sent",
            queue_item_id=item.id,
            message_id=outcome.message_id,
        )
        return None

    async def _fail(self, item: QueueItem, error: str) -> None:
        try:
            await self.queue.mark_failed(item.id, error)
        except Exception as e:
            logger.error(
                "Could not record notification failure",
                queue_item_id=item.id,
                error=str(e),
            )
