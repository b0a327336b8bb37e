"""Development request API endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from campscout.models.base import get_db
from campscout.models.development_request import DevelopmentRequest
from campscout.schemas.development import (
    ApproveResponse,
    DevelopmentRequestCreate,
    DevelopmentRequestRead,
    DevelopmentRequestSummary,
    FeedbackCreate,
    ForceRestartRequest,
    MarkFailedRequest,
)
from campscout.services import development, remediation
from campscout.services.errors import NotFoundError, StateError

router = APIRouter(prefix="/development", tags=["development"])


async def _call(db: AsyncSession, fn):
    """Run a sync service call, mapping service errors to HTTP errors."""
    try:
        return await db.run_sync(fn)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Development request not found")
    except StateError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.get("", response_model=list[DevelopmentRequestSummary])
async def list_requests(
    db: AsyncSession = Depends(get_db),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    status: str | None = Query(None, description="Filter by status"),
    market: str | None = Query(None, description="Filter by market"),
):
    """List development requests, oldest first."""
    query = select(DevelopmentRequest)

    if status:
        query = query.where(DevelopmentRequest.status == status)
    if market:
        query = query.where(DevelopmentRequest.market == market)

    query = query.order_by(DevelopmentRequest.requested_at).offset(skip).limit(limit)
    result = await db.execute(query)
    return [DevelopmentRequestSummary.model_validate(r) for r in result.scalars().all()]


@router.post("", response_model=DevelopmentRequestRead, status_code=201)
async def create_request(
    payload: DevelopmentRequestCreate,
    db: AsyncSession = Depends(get_db),
):
    """Queue a development request. 409 when one is already open for the URL."""
    request = await _call(db, lambda s: development.request_development(s, **payload.model_dump()))
    return DevelopmentRequestRead.model_validate(request)


@router.get("/{request_id}", response_model=DevelopmentRequestRead)
async def get_request(
    request_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    request = await db.get(DevelopmentRequest, request_id)
    if not request:
        raise HTTPException(status_code=404, detail="Development request not found")
    return DevelopmentRequestRead.model_validate(request)


@router.post("/{request_id}/feedback", response_model=DevelopmentRequestRead)
async def submit_feedback(
    request_id: UUID,
    payload: FeedbackCreate,
    db: AsyncSession = Depends(get_db),
):
    """Append human feedback and send the request back to the queue."""
    request = await _call(db, lambda s: development.submit_feedback(s, request_id, payload.text, payload.author))
    return DevelopmentRequestRead.model_validate(request)


@router.post("/{request_id}/force-restart", response_model=DevelopmentRequestRead)
async def force_restart(
    request_id: UUID,
    payload: ForceRestartRequest,
    db: AsyncSession = Depends(get_db),
):
    request = await _call(
        db,
        lambda s: development.force_restart(s, request_id, payload.clear_code, payload.clear_feedback),
    )
    return DevelopmentRequestRead.model_validate(request)


@router.post("/{request_id}/reset", response_model=DevelopmentRequestRead)
async def reset_request(
    request_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    request = await _call(db, lambda s: development.reset_to_pending(s, request_id))
    return DevelopmentRequestRead.model_validate(request)


@router.post("/{request_id}/approve", response_model=ApproveResponse)
async def approve_request(
    request_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    """Deploy tested code and queue a first job for the source."""
    job = await _call(db, lambda s: development.approve(s, request_id))
    request = await db.get(DevelopmentRequest, request_id)
    return ApproveResponse(request_id=request_id, status=request.status, job_id=job.id if job else None)


@router.post("/{request_id}/fail", response_model=DevelopmentRequestRead)
async def mark_failed(
    request_id: UUID,
    payload: MarkFailedRequest,
    db: AsyncSession = Depends(get_db),
):
    request = await _call(db, lambda s: development.mark_failed(s, request_id, payload.reason))
    return DevelopmentRequestRead.model_validate(request)


@router.post("/remediate/link-completed")
async def link_completed(db: AsyncSession = Depends(get_db)):
    return await db.run_sync(remediation.link_completed_requests)


@router.post("/remediate/approve-all")
async def approve_all(
    db: AsyncSession = Depends(get_db),
    market: str | None = Query(None),
    limit: int = Query(100, ge=1, le=500),
):
    return await db.run_sync(lambda s: remediation.bulk_approve_needs_feedback(s, market, limit))


@router.post("/remediate/activate-sources")
async def activate_sources(
    db: AsyncSession = Depends(get_db),
    market: str | None = Query(None),
    limit: int = Query(100, ge=1, le=500),
):
    return await db.run_sync(lambda s: remediation.activate_sources_with_logic(s, market, limit))


@router.post("/remediate/orphaned-sources")
async def orphaned_sources(
    db: AsyncSession = Depends(get_db),
    market: str | None = Query(None),
    limit: int = Query(100, ge=1, le=500),
    dry_run: bool = Query(True),
):
    return await db.run_sync(
        lambda s: remediation.create_requests_for_orphaned_sources(s, market, limit, dry_run)
    )
