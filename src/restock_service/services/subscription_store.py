"""Subscription store: durable "remind me" registrations."""

from datetime import datetime
from typing import Protocol

import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from restock_service.domain.models import Subscription
from restock_service.infrastructure.database.models import (
    Product,
    StockSubscription,
    new_id,
    utcnow,
)

logger = structlog.get_logger()


class SubscriptionRepository(Protocol):
    """Narrow read/write surface the caches and processor depend on."""

    async def list_pending(self, product_id: str) -> list[Subscription]: ...

    async def list_all_pending(self) -> list[Subscription]: ...

    async def get(self, subscription_id: str) -> Subscription | None: ...

    async def mark_delivered(self, subscription_id: str) -> bool: ...

    async def insert(self, subscription: Subscription) -> Subscription: ...

    async def products_delivered_since(self, since: datetime) -> list[str]: ...


class SubscriptionStore:
    """SQLAlchemy-backed subscription repository."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def list_pending(self, product_id: str) -> list[Subscription]:
        """Undelivered subscriptions for one product, oldest first."""
        query = (
            select(StockSubscription)
            .where(
                StockSubscription.product_id == product_id,
                StockSubscription.delivered.is_(False),
            )
            .order_by(StockSubscription.created_at, StockSubscription.id)
        )
        async with self.session_factory() as session:
            rows = (await session.execute(query)).scalars().all()
        return [Subscription.model_validate(row) for row in rows]

    async def list_all_pending(self) -> list[Subscription]:
        """Every undelivered subscription, oldest first."""
        query = (
            select(StockSubscription)
            .where(StockSubscription.delivered.is_(False))
            .order_by(StockSubscription.created_at, StockSubscription.id)
        )
        async with self.session_factory() as session:
            rows = (await session.execute(query)).scalars().all()
        return [Subscription.model_validate(row) for row in rows]

    async def get(self, subscription_id: str) -> Subscription | None:
        async with self.session_factory() as session:
            row = await session.get(StockSubscription, subscription_id)
        return Subscription.model_validate(row) if row else None

    async def find_pending(self, subscriber_id: str, product_id: str) -> Subscription | None:
        """Existing undelivered registration for a (subscriber, product) pair."""
        query = select(StockSubscription).where(
            StockSubscription.subscriber_id == subscriber_id,
            StockSubscription.product_id == product_id,
            StockSubscription.delivered.is_(False),
        )
        async with self.session_factory() as session:
            row = (await session.execute(query)).scalars().first()
        return Subscription.model_validate(row) if row else None

    async def insert(self, subscription: Subscription) -> Subscription:
        row = StockSubscription(
            id=subscription.id,
            product_id=subscription.product_id,
            subscriber_id=subscription.subscriber_id,
            email=subscription.email,
            delivered=subscription.delivered,
            created_at=subscription.created_at,
            delivered_at=subscription.delivered_at,
        )
        async with self.session_factory() as session, session.begin():
            session.add(row)
        logger.debug(
            "Inserted stock subscription",
            subscription_id=row.id,
            product_id=row.product_id,
        )
        return Subscription.model_validate(row)

    async def create(self, subscriber_id: str, product_id: str, email: str) -> Subscription:
        """Build and insert a fresh undelivered subscription."""
        return await self.insert(
            Subscription(
                id=new_id(),
                product_id=product_id,
                subscriber_id=subscriber_id,
                email=email,
                delivered=False,
                created_at=utcnow(),
            )
        )

    async def get_or_create_pending(
        self, subscriber_id: str, product_id: str, email: str
    ) -> tuple[Subscription, bool]:
        """
        Return the subscriber's undelivered registration, creating it if needed.

        The partial unique index on (subscriber_id, product_id) for undelivered
        rows settles concurrent callers: the loser re-reads the winner's row.

        Returns:
            (subscription, created)
        """
        existing = await self.find_pending(subscriber_id, product_id)
        if existing is not None:
            return existing, False

        try:
            return await self.create(subscriber_id, product_id, email), True
        except IntegrityError:
            existing = await self.find_pending(subscriber_id, product_id)
            if existing is None:
                raise
            logger.debug(
                "Concurrent subscribe resolved to existing registration",
                subscription_id=existing.id,
            )
            return existing, False

    async def mark_delivered(self, subscription_id: str) -> bool:
        """Flip delivered false -> true. Returns False if already delivered."""
        query = (
            update(StockSubscription)
            .where(
                StockSubscription.id == subscription_id,
                StockSubscription.delivered.is_(False),
            )
            .values(delivered=True, delivered_at=utcnow())
        )
        async with self.session_factory() as session, session.begin():
            result = await session.execute(query)
        return result.rowcount == 1

    async def delete(self, subscription_id: str) -> Subscription | None:
        """Remove a registration (storefront unsubscribe)."""
        async with self.session_factory() as session, session.begin():
            row = await session.get(StockSubscription, subscription_id)
            if row is None:
                return None
            removed = Subscription.model_validate(row)
            await session.execute(
                delete(StockSubscription).where(StockSubscription.id == subscription_id)
            )
        return removed

    async def reset_delivered(self, product_id: str) -> int:
        """
        Administrative reset of delivered flags for one product.

        At most one registration per subscriber is re-armed (the most recently
        delivered), and none for subscribers already waiting again.
        """
        async with self.session_factory() as session, session.begin():
            rows = (
                await session.execute(
                    select(StockSubscription)
                    .where(StockSubscription.product_id == product_id)
                    .order_by(StockSubscription.delivered_at.desc())
                )
            ).scalars().all()

            waiting = {row.subscriber_id for row in rows if not row.delivered}
            reset_ids = []
            for row in rows:
                if row.delivered and row.subscriber_id not in waiting:
                    waiting.add(row.subscriber_id)
                    reset_ids.append(row.id)

            if reset_ids:
                await session.execute(
                    update(StockSubscription)
                    .where(StockSubscription.id.in_(reset_ids))
                    .values(delivered=False, delivered_at=None)
                )
        logger.info(
            "Reset delivered subscriptions",
            product_id=product_id,
            reset_count=len(reset_ids),
        )
        return len(reset_ids)

    async def products_delivered_since(self, since: datetime) -> list[str]:
        """Products with at least one subscription delivered at or after ``since``."""
        query = (
            select(StockSubscription.product_id)
            .where(
                StockSubscription.delivered.is_(True),
                StockSubscription.delivered_at >= since,
            )
            .distinct()
        )
        async with self.session_factory() as session:
            return list((await session.execute(query)).scalars().all())

    async def products_with_pending_in_stock(self) -> list[str]:
        """Products that are in stock yet still have undelivered subscriptions."""
        query = (
            select(StockSubscription.product_id)
            .join(Product, Product.id == StockSubscription.product_id)
            .where(
                StockSubscription.delivered.is_(False),
                Product.stock_quantity > 0,
            )
            .distinct()
        )
        async with self.session_factory() as session:
            return list((await session.execute(query)).scalars().all())
