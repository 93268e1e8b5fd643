"""Pytest configuration and fixtures."""

from collections.abc import AsyncGenerator, Awaitable, Callable
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from restock_service.config import Settings, get_settings
from restock_service.domain.models import Identity, Subscription
from restock_service.infrastructure.database.connection import (
    get_async_engine,
    get_async_session_factory,
)
from restock_service.infrastructure.database.models import (
    Base,
    NotificationQueueEntry,
    Product,
)
from restock_service.infrastructure.email import MockEmailSender
from restock_service.services.delivery_queue import DeliveryQueue
from restock_service.services.messages import MessageBuilder
from restock_service.services.pipeline import RestockPipeline, build_pipeline, get_pipeline
from restock_service.services.product_catalog import ProductCatalog
from restock_service.services.subscription_store import SubscriptionStore

ADMIN_API_KEY = "test-admin-key"


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Get test settings with overrides."""
    return Settings(
        app_env="test",
        debug=False,
        database_url_override=f"sqlite+aiosqlite:///{tmp_path / 'restock.db'}",
        email_service="mock",
        email_mock_storage_path=str(tmp_path / "emails"),
        admin_api_key=ADMIN_API_KEY,
        queue_pacing_seconds=0,
        queue_batch_size=10,
        queue_max_attempts=3,
        scheduler_enabled=False,
        distributed_lock_enabled=False,
    )


@pytest_asyncio.fixture
async def engine(test_settings: Settings) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite engine with the schema created."""
    engine = get_async_engine(test_settings)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return get_async_session_factory(engine)


@pytest.fixture
def store(session_factory: async_sessionmaker[AsyncSession]) -> SubscriptionStore:
    return SubscriptionStore(session_factory)


@pytest.fixture
def queue(session_factory: async_sessionmaker[AsyncSession]) -> DeliveryQueue:
    return DeliveryQueue(session_factory, max_attempts=3)


@pytest.fixture
def catalog(session_factory: async_sessionmaker[AsyncSession]) -> ProductCatalog:
    return ProductCatalog(session_factory)


@pytest.fixture
def gateway() -> MockEmailSender:
    return MockEmailSender()


@pytest.fixture
def message_builder() -> MessageBuilder:
    return MessageBuilder(storefront_base_url="https://shop.test", company_name="Test Shop")


@pytest.fixture
def admin() -> Identity:
    return Identity(subject="admin-user", role="admin")


@pytest.fixture
def make_product(
    session_factory: async_sessionmaker[AsyncSession],
) -> Callable[..., Awaitable[str]]:
    """Insert a product row and return its id."""

    async def _make(
        name: str = "Ceramic Mug",
        price: float = 12.5,
        stock: int = 0,
        images: list[str] | None = None,
        product_id: str | None = None,
    ) -> str:
        product = Product(
            name=name,
            price=price,
            stock_quantity=stock,
            images=images if images is not None else ["https://cdn.test/mug.jpg"],
        )
        if product_id is not None:
            product.id = product_id
        async with session_factory() as session, session.begin():
            session.add(product)
        return product.id

    return _make


@pytest.fixture
def make_subscriptions(
    store: SubscriptionStore,
) -> Callable[..., Awaitable[list[Subscription]]]:
    """Create ``count`` undelivered subscriptions for a product."""

    async def _make(product_id: str, count: int = 1, prefix: str = "user") -> list[Subscription]:
        return [
            await store.create(f"{prefix}-{i}", product_id, f"{prefix}{i}@example.com")
            for i in range(count)
        ]

    return _make


@pytest.fixture
def pipeline(
    test_settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    gateway: MockEmailSender,
) -> RestockPipeline:
    return build_pipeline(test_settings, session_factory=session_factory, gateway=gateway)


@pytest.fixture
def app(test_settings: Settings, pipeline: RestockPipeline) -> Any:
    """Create test application."""
    from restock_service.main import create_app

    app = create_app()
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    return app


@pytest_asyncio.fixture
async def async_client(app: Any) -> AsyncGenerator[AsyncClient, None]:
    """Create asynchronous test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return {"X-API-Key": ADMIN_API_KEY}


@pytest.fixture
def set_queue_item(
    session_factory: async_sessionmaker[AsyncSession],
) -> Callable[..., Awaitable[None]]:
    """Force column values on a queue row (attempt counts, stale timestamps)."""

    async def _set(item_id: str, **values: Any) -> None:
        async with session_factory() as session, session.begin():
            await session.execute(
                update(NotificationQueueEntry)
                .where(NotificationQueueEntry.id == item_id)
                .values(**values)
            )

    return _set
