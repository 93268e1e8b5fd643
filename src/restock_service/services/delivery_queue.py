"""Delivery queue: durable notification work items and their state machine.

    pending -> processing -> sent
                          -> failed -> pending   (explicit retry only)

Claims are conditional updates (``WHERE status = 'pending'``) so two
processors racing over the same backlog can never both own one item.
"""

from datetime import datetime, timedelta

import structlog
from sqlalchemy import delete, exists, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import aliased

from restock_service.domain.models import QueueItem, QueueStatus, QueueStatusSummary, Subscription
from restock_service.infrastructure.database.models import (
    NotificationQueueEntry,
    StockSubscription,
    new_id,
    utcnow,
)
from shared.constants import DEFAULT_MAX_ATTEMPTS

logger = structlog.get_logger()

ACTIVE_STATUSES = (QueueStatus.PENDING.value, QueueStatus.PROCESSING.value)


class DeliveryQueue:
    """SQLAlchemy-backed delivery queue."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ):
        self.session_factory = session_factory
        self.max_attempts = max_attempts

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def enqueue(self, subscription: Subscription) -> QueueItem | None:
        """
        Queue a pending delivery for a subscription.

        Returns None without inserting when the subscription is no longer
        waiting (delivered or deleted in the store) or already has a pending
        or processing item. The partial unique index on live items settles
        concurrent enqueues of the same subscription.
        """
        waiting_query = select(StockSubscription.delivered).where(
            StockSubscription.id == subscription.id
        )
        existing_query = select(NotificationQueueEntry.id).where(
            NotificationQueueEntry.subscription_id == subscription.id,
            NotificationQueueEntry.status.in_(ACTIVE_STATUSES),
        )
        try:
            async with self.session_factory() as session, session.begin():
                delivered = (await session.execute(waiting_query)).scalar_one_or_none()
                if delivered is None or delivered:
                    logger.info(
                        "Subscription no longer waiting, not queued",
                        subscription_id=subscription.id,
                        delivered=delivered,
                    )
                    return None

                if (await session.execute(existing_query)).first() is not None:
                    logger.debug(
                        "Subscription already queued",
                        subscription_id=subscription.id,
                    )
                    return None

                row = NotificationQueueEntry(
                    id=new_id(),
                    subscription_id=subscription.id,
                    product_id=subscription.product_id,
                    status=QueueStatus.PENDING.value,
                    attempts=0,
                    max_attempts=self.max_attempts,
                    created_at=utcnow(),
                )
                session.add(row)
        except IntegrityError:
            logger.debug(
                "Subscription queued concurrently",
                subscription_id=subscription.id,
            )
            return None

        logger.debug(
            "Enqueued notification",
            queue_item_id=row.id,
            subscription_id=subscription.id,
            product_id=subscription.product_id,
        )
        return QueueItem.model_validate(row)

    async def claim_batch(self, limit: int) -> list[QueueItem]:
        """
        Claim up to ``limit`` pending items, oldest first.

        Each candidate is moved to processing by its own conditional update;
        a candidate that another claimer took first updates zero rows and is
        simply dropped from this batch.
        """
        if limit <= 0:
            return []

        candidates_query = (
            select(NotificationQueueEntry.id)
            .where(
                NotificationQueueEntry.status == QueueStatus.PENDING.value,
                NotificationQueueEntry.attempts < NotificationQueueEntry.max_attempts,
            )
            .order_by(NotificationQueueEntry.created_at, NotificationQueueEntry.id)
            .limit(limit)
        )
        async with self.session_factory() as session:
            candidate_ids = list((await session.execute(candidates_query)).scalars().all())

        if not candidate_ids:
            return []

        claimed_ids: list[str] = []
        now = utcnow()
        async with self.session_factory() as session, session.begin():
            for item_id in candidate_ids:
                result = await session.execute(
                    update(NotificationQueueEntry)
                    .where(
                        NotificationQueueEntry.id == item_id,
                        NotificationQueueEntry.status == QueueStatus.PENDING.value,
                        NotificationQueueEntry.attempts < NotificationQueueEntry.max_attempts,
                    )
                    .values(
                        status=QueueStatus.PROCESSING.value,
                        attempts=NotificationQueueEntry.attempts + 1,
                        processed_at=now,
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 1:
                    claimed_ids.append(item_id)

            if not claimed_ids:
                return []

            rows = (
                await session.execute(
                    select(NotificationQueueEntry)
                    .where(NotificationQueueEntry.id.in_(claimed_ids))
                    .order_by(NotificationQueueEntry.created_at, NotificationQueueEntry.id)
                )
            ).scalars().all()
            claimed = [QueueItem.model_validate(row) for row in rows]

        if len(claimed_ids) < len(candidate_ids):
            logger.info(
                "Some queue items were claimed elsewhere",
                candidates=len(candidate_ids),
                claimed=len(claimed_ids),
            )
        return claimed

    async def mark_sent(self, item_id: str) -> bool:
        """Resolve a processing item as sent and mark its subscription delivered."""
        now = utcnow()
        async with self.session_factory() as session, session.begin():
            row = await session.get(NotificationQueueEntry, item_id)
            if row is None or row.status != QueueStatus.PROCESSING.value:
                logger.warning(
                    "Cannot mark queue item sent",
                    queue_item_id=item_id,
                    status=row.status if row else None,
                )
                return False

            row.status = QueueStatus.SENT.value
            row.sent_at = now
            row.error_message = None
            await session.execute(
                update(StockSubscription)
                .where(
                    StockSubscription.id == row.subscription_id,
                    StockSubscription.delivered.is_(False),
                )
                .values(delivered=True, delivered_at=now)
            )
        return True

    async def mark_failed(self, item_id: str, error_message: str) -> bool:
        """Resolve a processing item as failed; the subscription is untouched."""
        async with self.session_factory() as session, session.begin():
            result = await session.execute(
                update(NotificationQueueEntry)
                .where(
                    NotificationQueueEntry.id == item_id,
                    NotificationQueueEntry.status == QueueStatus.PROCESSING.value,
                )
                .values(status=QueueStatus.FAILED.value, error_message=error_message)
            )
        if result.rowcount != 1:
            logger.warning("Cannot mark queue item failed", queue_item_id=item_id)
            return False
        return True

    async def clear_failed(self) -> int:
        """Delete every failed item. Returns the number removed."""
        async with self.session_factory() as session, session.begin():
            result = await session.execute(
                delete(NotificationQueueEntry).where(
                    NotificationQueueEntry.status == QueueStatus.FAILED.value
                )
            )
        logger.info("Cleared failed notifications", count=result.rowcount)
        return result.rowcount

    async def retry_failed(self, include_exhausted: bool = False) -> int:
        """
        Move failed items back to pending with attempts reset to 0.

        A subscription that already has a live item keeps its failed ones as
        they are, and only the newest failed item of a subscription is
        re-armed, so a subscription never ends up with two live items.

        Args:
            include_exhausted: Also re-arm items whose attempts already reached
                max_attempts. By default only items with attempts left are
                retried.

        Returns:
            Number of items moved back to pending
        """
        live = aliased(NotificationQueueEntry)
        candidates_query = (
            select(NotificationQueueEntry.id, NotificationQueueEntry.subscription_id)
            .where(
                NotificationQueueEntry.status == QueueStatus.FAILED.value,
                ~exists().where(
                    live.subscription_id == NotificationQueueEntry.subscription_id,
                    live.status.in_(ACTIVE_STATUSES),
                ),
            )
            .order_by(NotificationQueueEntry.created_at.desc(), NotificationQueueEntry.id.desc())
        )
        if not include_exhausted:
            candidates_query = candidates_query.where(
                NotificationQueueEntry.attempts < NotificationQueueEntry.max_attempts
            )

        async with self.session_factory() as session, session.begin():
            newest: dict[str, str] = {}
            for item_id, subscription_id in (await session.execute(candidates_query)).all():
                newest.setdefault(subscription_id, item_id)

            count = 0
            if newest:
                result = await session.execute(
                    update(NotificationQueueEntry)
                    .where(
                        NotificationQueueEntry.id.in_(list(newest.values())),
                        NotificationQueueEntry.status == QueueStatus.FAILED.value,
                    )
                    .values(
                        status=QueueStatus.PENDING.value,
                        attempts=0,
                        error_message=None,
                    )
                    .execution_options(synchronize_session=False)
                )
                count = result.rowcount

        logger.info(
            "Reset failed notifications to pending",
            count=count,
            include_exhausted=include_exhausted,
        )
        return count

    async def fail_stale_processing(self, older_than: timedelta) -> int:
        """
        Fail items left in processing by a crashed run.

        They keep their attempt count and become eligible for retry_failed.
        """
        cutoff: datetime = utcnow() - older_than
        async with self.session_factory() as session, session.begin():
            result = await session.execute(
                update(NotificationQueueEntry)
                .where(
                    NotificationQueueEntry.status == QueueStatus.PROCESSING.value,
                    NotificationQueueEntry.processed_at < cutoff,
                )
                .values(
                    status=QueueStatus.FAILED.value,
                    error_message="Delivery interrupted before completion",
                )
            )
        if result.rowcount:
            logger.warning("Failed stale processing items", count=result.rowcount)
        return result.rowcount

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get(self, item_id: str) -> QueueItem | None:
        async with self.session_factory() as session:
            row = await session.get(NotificationQueueEntry, item_id)
        return QueueItem.model_validate(row) if row else None

    async def list_items(
        self,
        limit: int = 50,
        offset: int = 0,
        status: QueueStatus | None = None,
    ) -> list[QueueItem]:
        """Queue items for the admin console, newest first."""
        query = select(NotificationQueueEntry)
        if status is not None:
            query = query.where(NotificationQueueEntry.status == status.value)
        query = (
            query.order_by(
                NotificationQueueEntry.created_at.desc(),
                NotificationQueueEntry.id.desc(),
            )
            .limit(limit)
            .offset(offset)
        )
        async with self.session_factory() as session:
            rows = (await session.execute(query)).scalars().all()
        return [QueueItem.model_validate(row) for row in rows]

    async def status_summary(self) -> QueueStatusSummary:
        query = select(
            NotificationQueueEntry.status, func.count(NotificationQueueEntry.id)
        ).group_by(NotificationQueueEntry.status)
        async with self.session_factory() as session:
            counts = {status: count for status, count in (await session.execute(query)).all()}

        return QueueStatusSummary(
            pending_count=counts.get(QueueStatus.PENDING.value, 0),
            processing_count=counts.get(QueueStatus.PROCESSING.value, 0),
            sent_count=counts.get(QueueStatus.SENT.value, 0),
            failed_count=counts.get(QueueStatus.FAILED.value, 0),
            total_count=sum(counts.values()),
        )
