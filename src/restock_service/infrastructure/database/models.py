"""SQLAlchemy models for the restock notification pipeline.

The ``products`` table belongs to the storefront catalogue; it is mapped here
only so the pipeline can read product details and stock levels. The
subscription, queue and restock log tables are owned by this service.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from restock_service.domain.models import QueueStatus
from shared.constants import DEFAULT_MAX_ATTEMPTS


ACTIVE_STATUS_CLAUSE = "status IN ('pending', 'processing')"


def utcnow() -> datetime:
    """Naive UTC timestamp; all DB columns store naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid4())


class Base(DeclarativeBase):
    """Base class for all models."""


# =============================================================================
# Catalogue (read mostly; owned by the storefront)
# =============================================================================


class Product(Base):
    """Storefront product, reduced to the columns notifications need."""

    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    price: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    images: Mapped[Optional[list]] = mapped_column(JSON, default=list)
    stock_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )


# =============================================================================
# Stock Subscriptions
# =============================================================================


class StockSubscription(Base):
    """A customer's "remind me" request for an out-of-stock product."""

    __tablename__ = "stock_subscriptions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    product_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("products.id", ondelete="CASCADE"), nullable=False
    )
    subscriber_id: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    delivered: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    __table_args__ = (
        Index("ix_stock_subscriptions_product_pending", "product_id", "delivered"),
        Index("ix_stock_subscriptions_subscriber", "subscriber_id"),
        Index("ix_stock_subscriptions_created", "created_at"),
        Index("ix_stock_subscriptions_delivered_at", "delivered_at"),
        Index(
            "uq_stock_subscriptions_pending_subscriber",
            "subscriber_id",
            "product_id",
            unique=True,
            postgresql_where=text("NOT delivered"),
            sqlite_where=text("NOT delivered"),
        ),
    )


# =============================================================================
# Notification Queue
# =============================================================================


class NotificationQueueEntry(Base):
    """Durable delivery work item derived from one subscription."""

    __tablename__ = "notification_queue"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    subscription_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("stock_subscriptions.id", ondelete="CASCADE"),
        nullable=False,
    )
    product_id: Mapped[str] = mapped_column(String(36), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), default=QueueStatus.PENDING.value, nullable=False
    )
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_attempts: Mapped[int] = mapped_column(
        Integer, default=DEFAULT_MAX_ATTEMPTS, nullable=False
    )
    error_message: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    __table_args__ = (
        Index("ix_notification_queue_status_created", "status", "created_at"),
        Index("ix_notification_queue_subscription", "subscription_id"),
        Index("ix_notification_queue_product", "product_id"),
        # At most one live delivery per subscription
        Index(
            "uq_notification_queue_active_subscription",
            "subscription_id",
            unique=True,
            postgresql_where=text(ACTIVE_STATUS_CLAUSE),
            sqlite_where=text(ACTIVE_STATUS_CLAUSE),
        ),
        CheckConstraint(
            "status IN ('pending', 'processing', 'sent', 'failed')",
            name="ck_notification_queue_status",
        ),
    )


# =============================================================================
# Restock Log
# =============================================================================


class RestockEvent(Base):
    """One row per triggered restock fan-out."""

    __tablename__ = "stock_notification_log"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    product_id: Mapped[str] = mapped_column(String(36), nullable=False)
    product_name: Mapped[str] = mapped_column(String(500), nullable=False)
    old_stock: Mapped[int] = mapped_column(Integer, nullable=False)
    new_stock: Mapped[int] = mapped_column(Integer, nullable=False)
    notifications_queued: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    triggered_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_stock_notification_log_product", "product_id"),
        Index("ix_stock_notification_log_triggered", "triggered_at"),
    )
