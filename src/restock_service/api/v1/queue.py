"""Admin console endpoints for the notification queue."""

from typing import Annotated

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from restock_service.api.dependencies import AdminDep, IdentityDep, PipelineDep
from restock_service.domain.models import (
    CacheStats,
    ProcessResult,
    QueueItem,
    QueueStatus,
    QueueStatusSummary,
    SendOutcome,
)
from restock_service.errors import MalformedSubscriptionError
from shared.constants import DEFAULT_QUEUE_LIST_LIMIT, MAX_QUEUE_LIST_LIMIT

router = APIRouter()


# =============================================================================
# Request / Response Models
# =============================================================================


class QueueItemsResponse(BaseModel):
    """Page of queue items, newest first."""

    items: list[QueueItem]
    limit: int
    offset: int


class ProcessResponse(BaseModel):
    """Aggregate counts from a processing run."""

    processed: int
    succeeded: int
    failed: int
    skipped: bool
    errors: list[str] | None = None


class ClearFailedResponse(BaseModel):
    cleared: int


class TestEmailRequest(BaseModel):
    email: str = Field(..., description="Address to send the sample notification to")


def _process_response(result: ProcessResult, include_errors: bool) -> ProcessResponse:
    if not result.retryable:
        raise HTTPException(
            status_code=403,
            detail={"processed": 0, "errors": result.errors},
        )
    return ProcessResponse(
        processed=result.processed,
        succeeded=result.succeeded,
        failed=result.failed,
        skipped=result.skipped,
        errors=result.errors if include_errors else None,
    )


# =============================================================================
# Endpoints
# =============================================================================


@router.get("/status", response_model=QueueStatusSummary)
async def get_queue_status(pipeline: PipelineDep) -> QueueStatusSummary:
    """Counts of queue items per status."""
    return await pipeline.queue_status()


@router.get("/items", response_model=QueueItemsResponse)
async def list_queue_items(
    pipeline: PipelineDep,
    limit: Annotated[int, Query(ge=1, le=MAX_QUEUE_LIST_LIMIT)] = DEFAULT_QUEUE_LIST_LIMIT,
    offset: Annotated[int, Query(ge=0)] = 0,
    status: Annotated[QueueStatus | None, Query(description="Filter by status")] = None,
) -> QueueItemsResponse:
    """Paginated queue item listing for the admin console."""
    items = await pipeline.list_queue_items(limit=limit, offset=offset, status=status)
    return QueueItemsResponse(items=items, limit=limit, offset=offset)


@router.post("/process", response_model=ProcessResponse)
async def process_queue(
    pipeline: PipelineDep,
    identity: IdentityDep,
    include_errors: Annotated[bool, Query(description="Return per-item errors")] = False,
) -> ProcessResponse:
    """
    Process one batch of pending notifications now.

    Returns immediately with `skipped: true` when a run is already in
    progress. Requires an admin identity.
    """
    result = await pipeline.process_now(identity)
    return _process_response(result, include_errors)


@router.post("/retry-failed", response_model=ProcessResponse)
async def retry_failed_notifications(
    pipeline: PipelineDep,
    identity: IdentityDep,
    include_exhausted: Annotated[
        bool, Query(description="Also re-arm items that used every attempt")
    ] = False,
    include_errors: Annotated[bool, Query(description="Return per-item errors")] = False,
) -> ProcessResponse:
    """Reset failed notifications to pending and process a batch."""
    result = await pipeline.retry_failed(identity, include_exhausted=include_exhausted)
    return _process_response(result, include_errors)


@router.post("/clear-failed", response_model=ClearFailedResponse)
async def clear_failed_notifications(
    pipeline: PipelineDep,
    admin: AdminDep,
) -> ClearFailedResponse:
    """Delete every failed queue item."""
    cleared = await pipeline.clear_failed(admin)
    return ClearFailedResponse(cleared=cleared)


@router.get("/cache", response_model=CacheStats)
async def get_cache_stats(pipeline: PipelineDep) -> CacheStats:
    """Interest cache occupancy."""
    return pipeline.interest_cache.stats()


@router.post("/cache/refresh", response_model=CacheStats)
async def refresh_cache(pipeline: PipelineDep, admin: AdminDep) -> CacheStats:
    """Rebuild the interest cache from the subscription store."""
    await pipeline.interest_cache.refresh_all()
    return pipeline.interest_cache.stats()


@router.post("/test-email", response_model=SendOutcome)
async def send_test_email(
    request: TestEmailRequest,
    pipeline: PipelineDep,
    admin: AdminDep,
) -> SendOutcome:
    """Send a sample back-in-stock email through the configured gateway."""
    try:
        return await pipeline.subscription_service.send_test_notification(request.email)
    except MalformedSubscriptionError as e:
        raise HTTPException(status_code=400, detail=e.message) from e
