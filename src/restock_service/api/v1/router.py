"""API v1 router that aggregates all endpoint routers."""

from fastapi import APIRouter

from restock_service.api.v1 import (
    health,
    products,
    queue,
    subscriptions,
)

api_router = APIRouter()

# Include all routers
api_router.include_router(
    health.router,
    tags=["Health"],
)

api_router.include_router(
    subscriptions.router,
    prefix="/subscriptions",
    tags=["Subscriptions"],
)

api_router.include_router(
    products.router,
    prefix="/products",
    tags=["Products"],
)

api_router.include_router(
    queue.router,
    prefix="/notifications/queue",
    tags=["Notification Queue"],
)
