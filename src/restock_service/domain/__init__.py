"""Domain records for the restock notification pipeline."""

from restock_service.domain.models import (
    CacheStats,
    Identity,
    NotificationMessage,
    ProcessResult,
    ProductDetails,
    QueueItem,
    QueueStatus,
    QueueStatusSummary,
    RestockResult,
    SendOutcome,
    Subscription,
)

__all__ = [
    "CacheStats",
    "Identity",
    "NotificationMessage",
    "ProcessResult",
    "ProductDetails",
    "QueueItem",
    "QueueStatus",
    "QueueStatusSummary",
    "RestockResult",
    "SendOutcome",
    "Subscription",
]
