"""In-process memo of product details used to render notifications."""

from typing import Protocol

import structlog

from restock_service.domain.models import ProductDetails

logger = structlog.get_logger()


class ProductSource(Protocol):
    async def get_product_details(self, product_id: str) -> ProductDetails | None: ...


class ProductDetailCache:
    """
    Lazily populated product detail cache.

    There is no expiry: product editors must call ``invalidate`` whenever a
    product changes, so entries are only as fresh as the last invalidation.
    Misses (unknown products) are not memoised.
    """

    def __init__(self, source: ProductSource):
        self.source = source
        self._entries: dict[str, ProductDetails] = {}

    async def get(self, product_id: str) -> ProductDetails | None:
        cached = self._entries.get(product_id)
        if cached is not None:
            return cached

        details = await self.source.get_product_details(product_id)
        if details is not None:
            self._entries[product_id] = details
        return details

    def invalidate(self, product_id: str) -> None:
        if self._entries.pop(product_id, None) is not None:
            logger.debug("Invalidated product details", product_id=product_id)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, product_id: str) -> bool:
        return product_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)
