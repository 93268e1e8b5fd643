"""Storefront endpoints for "notify me when back in stock" registrations."""

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from restock_service.api.dependencies import AdminDep, PipelineDep
from restock_service.domain.models import Subscription
from restock_service.errors import NotFoundError, ProductNotFoundError

router = APIRouter()


class SubscribeRequest(BaseModel):
    """Request model for registering restock interest."""

    subscriber_id: str = Field(..., description="Storefront user identifier")
    product_id: str = Field(..., description="Out-of-stock product identifier")
    email: str = Field(..., pattern=r"^[^@\s]+@[^@\s]+$", description="Notification address")


class ResetResponse(BaseModel):
    product_id: str
    reset_count: int


@router.post("", response_model=Subscription)
async def subscribe(request: SubscribeRequest, pipeline: PipelineDep) -> Subscription:
    """
    Register interest in a product restock.

    Repeating the request for the same subscriber and product returns the
    existing undelivered registration.
    """
    try:
        return await pipeline.subscription_service.subscribe(
            subscriber_id=request.subscriber_id,
            product_id=request.product_id,
            email=request.email,
        )
    except ProductNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message) from e


@router.delete("/{subscription_id}", response_model=Subscription)
async def unsubscribe(subscription_id: str, pipeline: PipelineDep) -> Subscription:
    """Remove a registration (unsubscribe link / storefront cancel)."""
    try:
        return await pipeline.subscription_service.unsubscribe(subscription_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message) from e


@router.post("/products/{product_id}/reset", response_model=ResetResponse)
async def reset_product_subscriptions(
    product_id: str,
    pipeline: PipelineDep,
    admin: AdminDep,
) -> ResetResponse:
    """Re-arm delivered subscriptions for a product (admin)."""
    reset_count = await pipeline.subscription_service.reset_for_product(product_id)
    return ResetResponse(product_id=product_id, reset_count=reset_count)
