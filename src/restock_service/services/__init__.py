"""Business logic services."""

from restock_service.services.delivery_queue import DeliveryQueue
from restock_service.services.interest_cache import InterestCache
from restock_service.services.pipeline import RestockPipeline, build_pipeline, get_pipeline
from restock_service.services.product_cache import ProductDetailCache
from restock_service.services.product_catalog import ProductCatalog
from restock_service.services.queue_processor import QueueProcessor
from restock_service.services.restock import RestockNotifier
from restock_service.services.scheduler import QueueScheduler
from restock_service.services.subscription_store import SubscriptionStore
from restock_service.services.subscriptions import SubscriptionService

__all__ = [
    "DeliveryQueue",
    "InterestCache",
    "ProductCatalog",
    "ProductDetailCache",
    "QueueProcessor",
    "QueueScheduler",
    "RestockNotifier",
    "RestockPipeline",
    "SubscriptionService",
    "SubscriptionStore",
    "build_pipeline",
    "get_pipeline",
]
