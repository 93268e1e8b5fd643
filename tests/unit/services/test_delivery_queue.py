"""Unit tests for the delivery queue state machine."""

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from restock_service.domain.models import QueueStatus
from restock_service.infrastructure.database.models import NotificationQueueEntry, utcnow
from restock_service.services.delivery_queue import DeliveryQueue
from restock_service.services.subscription_store import SubscriptionStore


class TestEnqueue:
    @pytest.mark.asyncio
    async def test_enqueue_creates_pending_item(
        self, queue: DeliveryQueue, make_product, make_subscriptions
    ) -> None:
        product_id = await make_product()
        (subscription,) = await make_subscriptions(product_id)

        item = await queue.enqueue(subscription)

        assert item is not None
        assert item.status == QueueStatus.PENDING
        assert item.attempts == 0
        assert item.max_attempts == 3
        assert item.product_id == product_id

    @pytest.mark.asyncio
    async def test_enqueue_skips_active_duplicate(
        self, queue: DeliveryQueue, make_product, make_subscriptions
    ) -> None:
        product_id = await make_product()
        (subscription,) = await make_subscriptions(product_id)

        assert await queue.enqueue(subscription) is not None
        assert await queue.enqueue(subscription) is None
        assert (await queue.status_summary()).pending_count == 1

    @pytest.mark.asyncio
    async def test_enqueue_skips_delivered_subscription(
        self,
        queue: DeliveryQueue,
        store: SubscriptionStore,
        make_product,
        make_subscriptions,
    ) -> None:
        product_id = await make_product()
        (subscription,) = await make_subscriptions(product_id)
        await store.mark_delivered(subscription.id)

        assert await queue.enqueue(subscription) is None
        assert (await queue.status_summary()).total_count == 0

    @pytest.mark.asyncio
    async def test_concurrent_enqueue_creates_one_item(
        self, queue: DeliveryQueue, make_product, make_subscriptions
    ) -> None:
        product_id = await make_product()
        (subscription,) = await make_subscriptions(product_id)

        results = await asyncio.gather(*(queue.enqueue(subscription) for _ in range(4)))

        assert len([r for r in results if r is not None]) == 1
        assert (await queue.status_summary()).pending_count == 1

    @pytest.mark.asyncio
    async def test_second_live_item_is_rejected_by_schema(
        self, queue: DeliveryQueue, session_factory, make_product, make_subscriptions
    ) -> None:
        product_id = await make_product()
        (subscription,) = await make_subscriptions(product_id)
        await queue.enqueue(subscription)

        with pytest.raises(IntegrityError):
            async with session_factory() as session, session.begin():
                session.add(
                    NotificationQueueEntry(
                        subscription_id=subscription.id,
                        product_id=product_id,
                        status=QueueStatus.PROCESSING.value,
                    )
                )


class TestClaim:
    @pytest.mark.asyncio
    async def test_claims_oldest_first_up_to_limit(
        self, queue: DeliveryQueue, make_product, make_subscriptions
    ) -> None:
        product_id = await make_product()
        subs = await make_subscriptions(product_id, count=4)
        items = [await queue.enqueue(s) for s in subs]

        claimed = await queue.claim_batch(3)

        assert [c.id for c in claimed] == [i.id for i in items[:3]]
        assert all(c.status == QueueStatus.PROCESSING for c in claimed)
        assert all(c.attempts == 1 for c in claimed)
        assert all(c.processed_at is not None for c in claimed)

    @pytest.mark.asyncio
    async def test_empty_queue_and_zero_limit(self, queue: DeliveryQueue) -> None:
        assert await queue.claim_batch(10) == []
        assert await queue.claim_batch(0) == []

    @pytest.mark.asyncio
    async def test_concurrent_claims_partition_items(
        self, queue: DeliveryQueue, make_product, make_subscriptions
    ) -> None:
        product_id = await make_product()
        subs = await make_subscriptions(product_id, count=6)
        for s in subs:
            await queue.enqueue(s)

        batches = await asyncio.gather(*(queue.claim_batch(6) for _ in range(3)))

        claimed_ids = [item.id for batch in batches for item in batch]
        assert len(claimed_ids) == len(set(claimed_ids))
        assert len(claimed_ids) == 6
        summary = await queue.status_summary()
        assert summary.processing_count == 6
        assert summary.pending_count == 0

    @pytest.mark.asyncio
    async def test_exhausted_item_is_not_claimed(
        self, queue: DeliveryQueue, set_queue_item, make_product, make_subscriptions
    ) -> None:
        product_id = await make_product()
        (subscription,) = await make_subscriptions(product_id)
        item = await queue.enqueue(subscription)
        await set_queue_item(item.id, attempts=3)

        assert await queue.claim_batch(10) == []


class TestResolve:
    @pytest.mark.asyncio
    async def test_mark_sent_marks_subscription_delivered(
        self,
        queue: DeliveryQueue,
        store: SubscriptionStore,
        make_product,
        make_subscriptions,
    ) -> None:
        product_id = await make_product()
        (subscription,) = await make_subscriptions(product_id)
        item = await queue.enqueue(subscription)
        await queue.claim_batch(1)

        assert await queue.mark_sent(item.id) is True

        sent = await queue.get(item.id)
        assert sent.status == QueueStatus.SENT
        assert sent.sent_at is not None
        assert (await store.get(subscription.id)).delivered is True

    @pytest.mark.asyncio
    async def test_mark_sent_requires_processing(
        self, queue: DeliveryQueue, make_product, make_subscriptions
    ) -> None:
        product_id = await make_product()
        (subscription,) = await make_subscriptions(product_id)
        item = await queue.enqueue(subscription)

        assert await queue.mark_sent(item.id) is False
        assert await queue.mark_sent("missing") is False
        assert (await queue.get(item.id)).status == QueueStatus.PENDING

    @pytest.mark.asyncio
    async def test_mark_failed_keeps_subscription_undelivered(
        self,
        queue: DeliveryQueue,
        store: SubscriptionStore,
        make_product,
        make_subscriptions,
    ) -> None:
        product_id = await make_product()
        (subscription,) = await make_subscriptions(product_id)
        item = await queue.enqueue(subscription)
        await queue.claim_batch(1)

        assert await queue.mark_failed(item.id, "mailbox full") is True

        failed = await queue.get(item.id)
        assert failed.status == QueueStatus.FAILED
        assert failed.error_message == "mailbox full"
        assert (await store.get(subscription.id)).delivered is False

    @pytest.mark.asyncio
    async def test_sent_item_cannot_fail(
        self, queue: DeliveryQueue, make_product, make_subscriptions
    ) -> None:
        product_id = await make_product()
        (subscription,) = await make_subscriptions(product_id)
        item = await queue.enqueue(subscription)
        await queue.claim_batch(1)
        await queue.mark_sent(item.id)

        assert await queue.mark_failed(item.id, "late error") is False
        assert (await queue.get(item.id)).status == QueueStatus.SENT


class TestAdministration:
    async def _failed_item(self, queue, set_queue_item, subscription, attempts: int):
        item = await queue.enqueue(subscription)
        await set_queue_item(
            item.id,
            status=QueueStatus.FAILED.value,
            attempts=attempts,
            error_message="boom",
        )
        return item

    @pytest.mark.asyncio
    async def test_retry_failed_skips_exhausted_by_default(
        self, queue: DeliveryQueue, set_queue_item, make_product, make_subscriptions
    ) -> None:
        product_id = await make_product()
        retryable_sub, exhausted_sub = await make_subscriptions(product_id, count=2)
        retryable = await self._failed_item(queue, set_queue_item, retryable_sub, attempts=1)
        exhausted = await self._failed_item(queue, set_queue_item, exhausted_sub, attempts=3)

        assert await queue.retry_failed() == 1

        rearmed = await queue.get(retryable.id)
        assert rearmed.status == QueueStatus.PENDING
        assert rearmed.attempts == 0
        assert rearmed.error_message is None
        assert (await queue.get(exhausted.id)).status == QueueStatus.FAILED

    @pytest.mark.asyncio
    async def test_retry_failed_including_exhausted(
        self, queue: DeliveryQueue, set_queue_item, make_product, make_subscriptions
    ) -> None:
        product_id = await make_product()
        (subscription,) = await make_subscriptions(product_id)
        exhausted = await self._failed_item(queue, set_queue_item, subscription, attempts=3)

        assert await queue.retry_failed(include_exhausted=True) == 1

        rearmed = await queue.get(exhausted.id)
        assert rearmed.status == QueueStatus.PENDING
        assert rearmed.attempts == 0
        assert [c.id for c in await queue.claim_batch(1)] == [exhausted.id]

    @pytest.mark.asyncio
    async def test_retry_failed_leaves_subscription_with_live_item(
        self, queue: DeliveryQueue, set_queue_item, make_product, make_subscriptions
    ) -> None:
        product_id = await make_product()
        (subscription,) = await make_subscriptions(product_id)
        failed = await self._failed_item(queue, set_queue_item, subscription, attempts=1)
        live = await queue.enqueue(subscription)

        assert await queue.retry_failed() == 0
        assert (await queue.get(failed.id)).status == QueueStatus.FAILED
        assert (await queue.status_summary()).pending_count == 1
        assert [c.id for c in await queue.claim_batch(10)] == [live.id]

    @pytest.mark.asyncio
    async def test_retry_failed_rearms_newest_item_per_subscription(
        self, queue: DeliveryQueue, set_queue_item, make_product, make_subscriptions
    ) -> None:
        product_id = await make_product()
        (subscription,) = await make_subscriptions(product_id)
        older = await self._failed_item(queue, set_queue_item, subscription, attempts=1)
        newer = await self._failed_item(queue, set_queue_item, subscription, attempts=1)
        await set_queue_item(older.id, created_at=utcnow() - timedelta(minutes=5))

        assert await queue.retry_failed() == 1
        assert (await queue.get(newer.id)).status == QueueStatus.PENDING
        assert (await queue.get(older.id)).status == QueueStatus.FAILED

    @pytest.mark.asyncio
    async def test_clear_failed_deletes_only_failed(
        self, queue: DeliveryQueue, set_queue_item, make_product, make_subscriptions
    ) -> None:
        product_id = await make_product()
        failed_sub, pending_sub = await make_subscriptions(product_id, count=2)
        failed = await self._failed_item(queue, set_queue_item, failed_sub, attempts=1)
        pending = await queue.enqueue(pending_sub)

        assert await queue.clear_failed() == 1
        assert await queue.get(failed.id) is None
        assert (await queue.get(pending.id)).status == QueueStatus.PENDING

    @pytest.mark.asyncio
    async def test_fail_stale_processing(
        self, queue: DeliveryQueue, set_queue_item, make_product, make_subscriptions
    ) -> None:
        product_id = await make_product()
        stale_sub, fresh_sub = await make_subscriptions(product_id, count=2)
        stale = await queue.enqueue(stale_sub)
        fresh = await queue.enqueue(fresh_sub)
        await queue.claim_batch(2)
        await set_queue_item(stale.id, processed_at=utcnow() - timedelta(hours=1))

        assert await queue.fail_stale_processing(timedelta(minutes=15)) == 1

        recovered = await queue.get(stale.id)
        assert recovered.status == QueueStatus.FAILED
        assert recovered.error_message == "Delivery interrupted before completion"
        assert (await queue.get(fresh.id)).status == QueueStatus.PROCESSING


class TestReads:
    @pytest.mark.asyncio
    async def test_list_items_newest_first_with_filter(
        self, queue: DeliveryQueue, make_product, make_subscriptions
    ) -> None:
        product_id = await make_product()
        subs = await make_subscriptions(product_id, count=3)
        items = [await queue.enqueue(s) for s in subs]
        await queue.claim_batch(1)

        listed = await queue.list_items(limit=10)
        assert [i.id for i in listed] == [i.id for i in reversed(items)]

        pending = await queue.list_items(limit=10, status=QueueStatus.PENDING)
        assert [i.id for i in pending] == [items[2].id, items[1].id]

        page = await queue.list_items(limit=1, offset=1)
        assert [i.id for i in page] == [items[1].id]

    @pytest.mark.asyncio
    async def test_status_summary(
        self, queue: DeliveryQueue, make_product, make_subscriptions
    ) -> None:
        product_id = await make_product()
        subs = await make_subscriptions(product_id, count=3)
        items = [await queue.enqueue(s) for s in subs]
        await queue.claim_batch(2)
        await queue.mark_sent(items[0].id)

        summary = await queue.status_summary()
        assert summary.pending_count == 1
        assert summary.processing_count == 1
        assert summary.sent_count == 1
        assert summary.failed_count == 0
        assert summary.total_count == 3
