"""Scrape job API endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from campscout.models.base import get_db
from campscout.models.scrape_job import ScrapeJob
from campscout.schemas.job import (
    ScrapeJobRead,
    ScrapeJobWithChanges,
    ScrapeJobWithSource,
    SessionChangeRead,
)
from campscout.schemas.source import SourceSummary

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.get("", response_model=list[ScrapeJobWithSource])
async def list_jobs(
    db: AsyncSession = Depends(get_db),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    source_id: UUID | None = Query(None, description="Filter by source"),
    status: str | None = Query(None, description="Filter by status"),
):
    """List recent scrape jobs."""
    query = select(ScrapeJob).options(selectinload(ScrapeJob.source))

    if source_id:
        query = query.where(ScrapeJob.source_id == source_id)
    if status:
        query = query.where(ScrapeJob.status == status)

    query = query.order_by(ScrapeJob.created_at.desc()).offset(skip).limit(limit)
    result = await db.execute(query)
    jobs = result.scalars().all()

    return [
        ScrapeJobWithSource(
            **ScrapeJobRead.model_validate(job).model_dump(),
            source=SourceSummary.model_validate(job.source) if job.source else None,
        )
        for job in jobs
    ]


@router.get("/{job_id}", response_model=ScrapeJobWithChanges)
async def get_job(
    job_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    """Get a single job with the session changes it recorded."""
    query = (
        select(ScrapeJob)
        .options(selectinload(ScrapeJob.source), selectinload(ScrapeJob.changes))
        .where(ScrapeJob.id == job_id)
    )
    result = await db.execute(query)
    job = result.scalar_one_or_none()

    if not job:
        raise HTTPException(status_code=404, detail="Job not found")

    return ScrapeJobWithChanges(
        **ScrapeJobRead.model_validate(job).model_dump(),
        source=SourceSummary.model_validate(job.source) if job.source else None,
        changes=[SessionChangeRead.model_validate(c) for c in job.changes],
    )
