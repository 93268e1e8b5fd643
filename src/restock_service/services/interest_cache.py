"""In-process index of undelivered subscriptions, keyed by product.

Lets a restock fan out to every waiting subscriber without querying the
subscription store on each stock change. The store stays the source of
truth: the cache is updated after store writes, not transactionally with
them, so a crash between the two leaves the cache stale until the next
``refresh_product`` / ``refresh_all``. That staleness is accepted; the
processor re-checks the delivered flag in the store before every send.
"""

import asyncio
from collections.abc import Sequence
from datetime import datetime

import structlog

from restock_service.domain.models import CacheStats, Subscription
from restock_service.services.subscription_store import SubscriptionRepository

logger = structlog.get_logger()


class InterestCache:
    """Product id -> undelivered subscriptions, oldest first."""

    def __init__(self, store: SubscriptionRepository):
        self.store = store
        self._buckets: dict[str, list[Subscription]] = {}
        self._initialized = False
        self._loading: asyncio.Task[bool] | None = None
        self._loaded_products: set[str] = set()

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """
        Load all undelivered subscriptions once.

        Concurrent callers await the same in-flight load instead of starting
        another full scan. A failed load leaves the cache uninitialized so the
        next call tries again.
        """
        if self._initialized:
            return

        if self._loading is None:
            self._loading = asyncio.create_task(self._load_all())
        loading = self._loading
        try:
            loaded = await asyncio.shield(loading)
        finally:
            if loading.done() and self._loading is loading:
                self._loading = None

        if loaded:
            self._initialized = True

    async def refresh_all(self) -> None:
        """Reload every bucket from the store unconditionally."""
        if await self._load_all():
            self._initialized = True

    async def refresh_product(self, product_id: str) -> None:
        """Replace one product's bucket with the store's current view."""
        try:
            pending = await self.store.list_pending(product_id)
        except Exception as e:
            logger.error(
                "Error refreshing product subscriptions",
                product_id=product_id,
                error=str(e),
            )
            return

        if pending:
            self._buckets[product_id] = list(pending)
        else:
            self._buckets.pop(product_id, None)
        self._loaded_products.add(product_id)
        logger.debug(
            "Refreshed product subscriptions",
            product_id=product_id,
            pending=len(pending),
        )

    async def ensure_product(self, product_id: str) -> None:
        """
        Make sure one product's bucket is loaded.

        No-op once the full index is loaded. Short-lived processes (Celery
        tasks, CLI runs) use this to read a single product instead of paying
        for a full scan on every restock.
        """
        if self._initialized or product_id in self._loaded_products:
            return
        await self.refresh_product(product_id)

    async def sync_delivered(self, since: datetime) -> list[str]:
        """
        Re-read the buckets of products with deliveries since ``since``.

        Picks up deliveries made by other processes (the Celery worker, a
        second API instance) that never touched this process's cache.

        Returns:
            Product ids whose buckets were refreshed
        """
        try:
            product_ids = await self.store.products_delivered_since(since)
        except Exception as e:
            logger.error("Error reading delivered subscriptions", error=str(e))
            return []

        stale = [pid for pid in product_ids if self.has(pid)]
        for product_id in stale:
            await self.refresh_product(product_id)
        if stale:
            logger.info("Synced interest cache with store deliveries", products=len(stale))
        return stale

    async def _load_all(self) -> bool:
        logger.info("Loading pending stock subscriptions into cache")
        try:
            pending = await self.store.list_all_pending()
        except Exception as e:
            logger.error("Error loading pending subscriptions", error=str(e))
            return False

        buckets: dict[str, list[Subscription]] = {}
        for subscription in pending:
            buckets.setdefault(subscription.product_id, []).append(subscription)

        # Swap in one step so readers never observe a half-built index
        self._buckets = buckets
        logger.info(
            "Loaded pending subscriptions",
            subscriptions=len(pending),
            products=len(buckets),
        )
        return True

    # -------------------------------------------------------------------------
    # Reads (never touch the store)
    # -------------------------------------------------------------------------

    def lookup(self, product_id: str) -> Sequence[Subscription]:
        return tuple(self._buckets.get(product_id, ()))

    def has(self, product_id: str) -> bool:
        return bool(self._buckets.get(product_id))

    def stats(self) -> CacheStats:
        return CacheStats(
            initialized=self._initialized,
            product_count=len(self._buckets),
            total_subscriptions=sum(len(bucket) for bucket in self._buckets.values()),
        )

    def product_ids(self) -> list[str]:
        return list(self._buckets)

    # -------------------------------------------------------------------------
    # Incremental maintenance
    # -------------------------------------------------------------------------

    def add(self, subscription: Subscription) -> None:
        if subscription.delivered:
            return
        bucket = self._buckets.setdefault(subscription.product_id, [])
        if any(existing.id == subscription.id for existing in bucket):
            return
        bucket.append(subscription)

    def remove(self, subscription_id: str, product_id: str | None = None) -> bool:
        """
        Drop a subscription from the cache. Idempotent.

        Without ``product_id`` every bucket is scanned; pass the hint whenever
        the caller knows it.

        Returns:
            True if something was removed
        """
        if product_id is not None:
            product_ids = [product_id]
        else:
            product_ids = list(self._buckets)

        removed = False
        for pid in product_ids:
            bucket = self._buckets.get(pid)
            if not bucket:
                continue
            remaining = [s for s in bucket if s.id != subscription_id]
            if len(remaining) == len(bucket):
                continue
            removed = True
            if remaining:
                self._buckets[pid] = remaining
            else:
                del self._buckets[pid]
        return removed
