"""Typed records exchanged between the stores, caches and processor.

Rows coming out of SQLAlchemy are validated into these models at the store
boundary (``model_validate(row, from_attributes=True)``) so nothing past the
repositories handles loose dicts.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class QueueStatus(str, Enum):
    """Queue item lifecycle states."""

    PENDING = "pending"
    PROCESSING = "processing"
    SENT = "sent"
    FAILED = "failed"


class Subscription(BaseModel):
    """A customer's registered interest in a restock of one product."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    product_id: str
    subscriber_id: str
    email: str
    delivered: bool = False
    created_at: datetime
    delivered_at: datetime | None = None


class QueueItem(BaseModel):
    """One unit of delivery work derived from a subscription."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    subscription_id: str
    product_id: str
    status: QueueStatus
    attempts: int = Field(ge=0)
    max_attempts: int = Field(gt=0)
    error_message: str | None = None
    created_at: datetime
    processed_at: datetime | None = None
    sent_at: datetime | None = None


class ProductDetails(BaseModel):
    """The slice of a product needed to render a notification."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    price: float
    image_url: str | None = None


class NotificationMessage(BaseModel):
    """Everything the gateway needs to deliver one notification."""

    to: str
    subject: str
    template_data: dict[str, Any]


class SendOutcome(BaseModel):
    """Result returned by a delivery gateway."""

    success: bool
    message_id: str | None = None
    error: str | None = None


class Identity(BaseModel):
    """Calling identity as reported by the authorization collaborator."""

    subject: str
    role: str


class QueueStatusSummary(BaseModel):
    """Queue item counts grouped by status."""

    pending_count: int = 0
    processing_count: int = 0
    sent_count: int = 0
    failed_count: int = 0
    total_count: int = 0


class ProcessResult(BaseModel):
    """Aggregate outcome of one queue processor invocation."""

    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    errors: list[str] = Field(default_factory=list)
    retryable: bool = True
    skipped: bool = False


class RestockResult(BaseModel):
    """Outcome of a restock fan-out for one product."""

    product_id: str
    triggered: bool
    mode: str = "queued"
    queued: int = 0
    sent: int = 0
    failed: int = 0
    errors: list[str] = Field(default_factory=list)


class CacheStats(BaseModel):
    """Interest cache occupancy."""

    initialized: bool
    product_count: int
    total_subscriptions: int
