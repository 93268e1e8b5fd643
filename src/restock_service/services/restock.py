"""Restock fan-out: turns a zero-to-positive stock change into notifications."""

import asyncio
from typing import Literal

import structlog

from restock_service.domain.models import RestockResult, Subscription
from restock_service.errors import DeliveryError, ProductNotFoundError, RestockError
from restock_service.infrastructure.email import DeliveryGateway
from restock_service.services.delivery_queue import DeliveryQueue
from restock_service.services.interest_cache import InterestCache
from restock_service.services.messages import MessageBuilder
from restock_service.services.product_cache import ProductDetailCache
from restock_service.services.product_catalog import ProductCatalog
from restock_service.services.subscription_store import SubscriptionStore
from shared.constants import DEFAULT_PACING_SECONDS

logger = structlog.get_logger()

DeliveryMode = Literal["queued", "direct"]


def is_restock(old_stock: int, new_stock: int) -> bool:
    return old_stock <= 0 and new_stock > 0


class RestockNotifier:
    """
    Entry point for the inventory update path.

    ``queued`` mode (the default) only enqueues work and leaves sending to
    the queue processor, which carries the retry and backlog handling.
    ``direct`` mode is the legacy shortcut that sends immediately and has no
    retry beyond the subscription staying undelivered.
    """

    def __init__(
        self,
        interest_cache: InterestCache,
        product_cache: ProductDetailCache,
        catalog: ProductCatalog,
        queue: DeliveryQueue,
        subscriptions: SubscriptionStore,
        gateway: DeliveryGateway,
        message_builder: MessageBuilder,
        mode: DeliveryMode = "queued",
        pacing_seconds: float = DEFAULT_PACING_SECONDS,
    ):
        self.interest_cache = interest_cache
        self.product_cache = product_cache
        self.catalog = catalog
        self.queue = queue
        self.subscriptions = subscriptions
        self.gateway = gateway
        self.message_builder = message_builder
        self.mode = mode
        self.pacing_seconds = pacing_seconds

    async def notify_restock(
        self,
        product_id: str,
        old_stock: int,
        new_stock: int,
        mode: DeliveryMode | None = None,
    ) -> RestockResult:
        """
        Fan out notifications for a product that just came back in stock.

        No-op unless ``old_stock <= 0`` and ``new_stock > 0``. Subscribers are
        read from the interest cache, never from the store.
        """
        mode = mode or self.mode
        if not is_restock(old_stock, new_stock):
            return RestockResult(product_id=product_id, triggered=False, mode=mode)

        await self.interest_cache.ensure_product(product_id)
        subscriptions = list(self.interest_cache.lookup(product_id))
        logger.info(
            "Product restocked",
            product_id=product_id,
            old_stock=old_stock,
            new_stock=new_stock,
            pending_subscriptions=len(subscriptions),
            mode=mode,
        )

        if mode == "direct":
            result = await self._send_direct(product_id, subscriptions)
        else:
            result = await self._enqueue_all(product_id, subscriptions)

        await self._log_restock(product_id, old_stock, new_stock, result)
        return result

    async def update_stock(self, product_id: str, new_stock: int) -> RestockResult:
        """Inventory write path: set stock, invalidate details, fan out."""
        old_stock = await self.catalog.set_stock(product_id, new_stock)
        self.product_cache.invalidate(product_id)
        return await self.notify_restock(product_id, old_stock, new_stock)

    async def sweep_restocked_products(self) -> list[RestockResult]:
        """
        Fan out for every in-stock product that still has waiting subscribers.

        Recovery path for restocks whose trigger was missed.
        """
        product_ids = await self.subscriptions.products_with_pending_in_stock()
        results = []
        for product_id in product_ids:
            await self.interest_cache.refresh_product(product_id)
            stock = await self.catalog.get_stock(product_id)
            results.append(await self.notify_restock(product_id, 0, stock))
        logger.info("Swept restocked products", products=len(product_ids))
        return results

    async def _enqueue_all(
        self, product_id: str, subscriptions: list[Subscription]
    ) -> RestockResult:
        queued = 0
        errors = []
        for subscription in subscriptions:
            try:
                if await self.queue.enqueue(subscription) is not None:
                    queued += 1
            except Exception as e:
                logger.error(
                    "Error enqueueing notification",
                    subscription_id=subscription.id,
                    error=str(e),
                )
                errors.append(f"Failed to queue notification {subscription.id}: {e}")

        skipped = len(subscriptions) - queued - len(errors)
        if skipped:
            # Delivered elsewhere or already queued; resync the bucket with the store
            logger.info("Skipped cached subscriptions", product_id=product_id, skipped=skipped)
            await self.interest_cache.refresh_product(product_id)
        return RestockResult(
            product_id=product_id,
            triggered=True,
            mode="queued",
            queued=queued,
            failed=len(errors),
            errors=errors,
        )

    async def _send_direct(
        self, product_id: str, subscriptions: list[Subscription]
    ) -> RestockResult:
        result = RestockResult(product_id=product_id, triggered=True, mode="direct")
        if not subscriptions:
            return result

        product = await self.product_cache.get(product_id)
        if product is None:
            error = ProductNotFoundError(product_id).message
            result.failed = len(subscriptions)
            result.errors.append(error)
            return result

        for index, subscription in enumerate(subscriptions):
            try:
                message = self.message_builder.build(subscription, product)
                outcome = await self.gateway.send(message)
                if not outcome.success:
                    raise DeliveryError(outcome.error or "Unknown error")
            except Exception as e:
                error = e.message if isinstance(e, RestockError) else str(e)
                result.failed += 1
                result.errors.append(f"Failed to send to {subscription.email}: {error}")
            else:
                await self.subscriptions.mark_delivered(subscription.id)
                self.interest_cache.remove(subscription.id, product_id)
                result.sent += 1

            if index < len(subscriptions) - 1 and self.pacing_seconds > 0:
                await asyncio.sleep(self.pacing_seconds)

        logger.info(
            "Sent stock notifications directly",
            product_id=product_id,
            sent=result.sent,
            failed=result.failed,
        )
        return result

    async def _log_restock(
        self, product_id: str, old_stock: int, new_stock: int, result: RestockResult
    ) -> None:
        try:
            product = await self.product_cache.get(product_id)
            await self.catalog.record_restock(
                product_id=product_id,
                product_name=product.name if product else "",
                old_stock=old_stock,
                new_stock=new_stock,
                notifications_queued=result.queued,
            )
        except Exception as e:
            logger.warning("Could not record restock event", product_id=product_id, error=str(e))
