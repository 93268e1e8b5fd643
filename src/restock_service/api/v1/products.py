"""Inventory-facing endpoints: stock changes and product invalidation."""

from typing import Annotated, Literal

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from restock_service.api.dependencies import AdminDep, PipelineDep
from restock_service.domain.models import RestockResult
from restock_service.errors import ProductNotFoundError

router = APIRouter()


class StockUpdateRequest(BaseModel):
    stock_quantity: int = Field(..., ge=0, description="New stock level")


class RestockRequest(BaseModel):
    """Stock transition observed by an external inventory writer."""

    product_id: str
    old_stock: int
    new_stock: int


class SweepResponse(BaseModel):
    products: int
    queued: int
    results: list[RestockResult]


@router.put("/{product_id}/stock", response_model=RestockResult)
async def update_stock(
    product_id: str,
    request: StockUpdateRequest,
    pipeline: PipelineDep,
    admin: AdminDep,
) -> RestockResult:
    """Set a product's stock; fans out notifications on a zero-to-positive change."""
    try:
        return await pipeline.restock.update_stock(product_id, request.stock_quantity)
    except ProductNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message) from e


@router.post("/restock", response_model=RestockResult)
async def notify_restock(
    request: RestockRequest,
    pipeline: PipelineDep,
    admin: AdminDep,
    mode: Annotated[
        Literal["queued", "direct"] | None,
        Query(description="Override the configured delivery mode"),
    ] = None,
) -> RestockResult:
    """Report a stock transition written elsewhere."""
    return await pipeline.restock.notify_restock(
        request.product_id, request.old_stock, request.new_stock, mode=mode
    )


@router.post("/restock/sweep", response_model=SweepResponse)
async def sweep_restocked_products(pipeline: PipelineDep, admin: AdminDep) -> SweepResponse:
    """Queue notifications for every in-stock product with waiting subscribers."""
    results = await pipeline.restock.sweep_restocked_products()
    return SweepResponse(
        products=len(results),
        queued=sum(r.queued for r in results),
        results=results,
    )


@router.post("/{product_id}/invalidate", status_code=204)
async def invalidate_product(product_id: str, pipeline: PipelineDep, admin: AdminDep) -> None:
    """Drop cached product details after the product editor saves a change."""
    pipeline.product_cache.invalidate(product_id)
