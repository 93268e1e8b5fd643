"""Read/write access to storefront products used by the restock pipeline."""

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from restock_service.domain.models import ProductDetails
from restock_service.errors import ProductNotFoundError
from restock_service.infrastructure.database.models import Product, RestockEvent, utcnow

logger = structlog.get_logger()


def _first_image(images: object) -> str | None:
    """First entry of the product's image list, if it has one."""
    if isinstance(images, list) and images:
        first = images[0]
        return str(first) if first else None
    if isinstance(images, str) and images:
        return images
    return None


class ProductCatalog:
    """Product details, stock levels and the restock event log."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get_product_details(self, product_id: str) -> ProductDetails | None:
        async with self.session_factory() as session:
            product = await session.get(Product, product_id)
        if product is None:
            return None
        return ProductDetails(
            id=product.id,
            name=product.name,
            price=product.price,
            image_url=_first_image(product.images),
        )

    async def get_stock(self, product_id: str) -> int:
        async with self.session_factory() as session:
            stock = (
                await session.execute(
                    select(Product.stock_quantity).where(Product.id == product_id)
                )
            ).scalar_one_or_none()
        if stock is None:
            raise ProductNotFoundError(product_id)
        return stock

    async def set_stock(self, product_id: str, new_stock: int) -> int:
        """
        Write a new stock level.

        Returns:
            The stock level before the write
        """
        async with self.session_factory() as session, session.begin():
            product = await session.get(Product, product_id, with_for_update=True)
            if product is None:
                raise ProductNotFoundError(product_id)
            old_stock = product.stock_quantity
            product.stock_quantity = new_stock
            product.updated_at = utcnow()

        logger.info(
            "Product stock updated",
            product_id=product_id,
            old_stock=old_stock,
            new_stock=new_stock,
        )
        return old_stock

    async def record_restock(
        self,
        product_id: str,
        product_name: str,
        old_stock: int,
        new_stock: int,
        notifications_queued: int,
    ) -> None:
        async with self.session_factory() as session, session.begin():
            session.add(
                RestockEvent(
                    product_id=product_id,
                    product_name=product_name,
                    old_stock=old_stock,
                    new_stock=new_stock,
                    notifications_queued=notifications_queued,
                    triggered_at=utcnow(),
                )
            )
