"""Storefront-facing subscription management."""

import structlog

from restock_service.domain.models import ProductDetails, SendOutcome, Subscription
from restock_service.errors import NotFoundError, ProductNotFoundError
from restock_service.infrastructure.database.models import utcnow
from restock_service.infrastructure.email import DeliveryGateway
from restock_service.services.interest_cache import InterestCache
from restock_service.services.messages import MessageBuilder
from restock_service.services.product_cache import ProductDetailCache
from restock_service.services.subscription_store import SubscriptionStore

logger = structlog.get_logger()


class SubscriptionService:
    """Keeps the subscription store and the interest cache in step."""

    def __init__(
        self,
        store: SubscriptionStore,
        interest_cache: InterestCache,
        product_cache: ProductDetailCache,
        gateway: DeliveryGateway,
        message_builder: MessageBuilder,
    ):
        self.store = store
        self.interest_cache = interest_cache
        self.product_cache = product_cache
        self.gateway = gateway
        self.message_builder = message_builder

    async def subscribe(self, subscriber_id: str, product_id: str, email: str) -> Subscription:
        """
        Register interest in a product restock.

        Idempotent per (subscriber, product) while the registration is still
        undelivered: the existing subscription is returned.
        """
        if await self.product_cache.get(product_id) is None:
            raise ProductNotFoundError(product_id)

        subscription, created = await self.store.get_or_create_pending(
            subscriber_id, product_id, email
        )
        self.interest_cache.add(subscription)
        if not created:
            return subscription

        logger.info(
            "Stock subscription created",
            subscription_id=subscription.id,
            product_id=product_id,
        )
        return subscription

    async def unsubscribe(self, subscription_id: str) -> Subscription:
        removed = await self.store.delete(subscription_id)
        if removed is None:
            # Still purge any stale cache entry
            self.interest_cache.remove(subscription_id)
            raise NotFoundError(f"Subscription not found: {subscription_id}")
        self.interest_cache.remove(subscription_id, removed.product_id)
        logger.info("Stock subscription removed", subscription_id=subscription_id)
        return removed

    async def reset_for_product(self, product_id: str) -> int:
        """Re-arm delivered subscriptions for a product and resync its bucket."""
        reset_count = await self.store.reset_delivered(product_id)
        await self.interest_cache.refresh_product(product_id)
        return reset_count

    async def send_test_notification(self, email: str) -> SendOutcome:
        """Send a sample back-in-stock message through the live gateway."""
        product = ProductDetails(id="test", name="Test Product - Stock Available", price=29.99)
        subscription = Subscription(
            id="test",
            product_id=product.id,
            subscriber_id="test",
            email=email,
            created_at=utcnow(),
        )
        message = self.message_builder.build(subscription, product)
        return await self.gateway.send(message)
