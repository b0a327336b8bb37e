"""Source API endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from campscout.models.base import get_db
from campscout.models.scrape_job import ScrapeJob
from campscout.models.source import Source
from campscout.schemas.job import ScrapeJobSummary
from campscout.schemas.source import (
    RunDueResponse,
    RunSourceResponse,
    SourceRead,
    SourceWithJobs,
)
from campscout.services import orchestrator
from campscout.services.errors import NotFoundError
from campscout.services.source_health import automation_metrics, health_status

router = APIRouter(prefix="/sources", tags=["sources"])


@router.get("", response_model=list[SourceRead])
async def list_sources(
    db: AsyncSession = Depends(get_db),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    market: str | None = Query(None, description="Filter by market"),
    is_active: bool | None = Query(None, description="Filter by active status"),
    needs_regeneration: bool | None = Query(None, description="Filter by regeneration flag"),
):
    """List sources with their health counters."""
    query = select(Source)

    if market:
        query = query.where(Source.market == market)
    if is_active is not None:
        query = query.where(Source.is_active == is_active)
    if needs_regeneration is not None:
        query = query.where(Source.needs_regeneration == needs_regeneration)

    query = query.order_by(Source.next_scheduled_scrape.asc().nullsfirst()).offset(skip).limit(limit)
    result = await db.execute(query)
    return [SourceRead.model_validate(source) for source in result.scalars().all()]


@router.get("/metrics")
async def source_metrics(db: AsyncSession = Depends(get_db)):
    """Health buckets and development counts for the automation dashboard."""
    return await db.run_sync(automation_metrics)


@router.post("/run-due", response_model=RunDueResponse)
async def run_due_sources(db: AsyncSession = Depends(get_db)):
    """Create jobs for every source whose next attempt is due."""
    return RunDueResponse(**await db.run_sync(orchestrator.run_due_sources))


@router.get("/{source_id}", response_model=SourceWithJobs)
async def get_source(
    source_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    """Get a single source with recent jobs."""
    source = await db.get(Source, source_id)
    if not source:
        raise HTTPException(status_code=404, detail="Source not found")

    jobs_query = (
        select(ScrapeJob)
        .where(ScrapeJob.source_id == source_id)
        .order_by(ScrapeJob.created_at.desc())
        .limit(10)
    )
    jobs_result = await db.execute(jobs_query)
    jobs = jobs_result.scalars().all()

    return SourceWithJobs(
        **SourceRead.model_validate(source).model_dump(),
        health_status=health_status(source),
        recent_jobs=[ScrapeJobSummary.model_validate(job) for job in jobs],
    )


@router.post("/{source_id}/run", response_model=RunSourceResponse)
async def run_source(
    source_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    """Trigger a manual run. No job is created while one is already in flight."""
    try:
        job = await db.run_sync(lambda s: orchestrator.run_source_now(s, source_id))
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Source not found")

    if job is None:
        return RunSourceResponse(
            message="Source is inactive or already has a job in flight",
            source_id=source_id,
        )
    return RunSourceResponse(message="Job queued", source_id=source_id, job_id=job.id)


@router.post("/{source_id}/cleanup-jobs")
async def cleanup_stuck_jobs(
    source_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    """Fail every pending or running job of a source."""
    source = await db.get(Source, source_id)
    if not source:
        raise HTTPException(status_code=404, detail="Source not found")

    cleaned = await db.run_sync(lambda s: orchestrator.cleanup_stuck_jobs(s, source_id))
    return {"source_id": str(source_id), "jobs_failed": cleaned}
