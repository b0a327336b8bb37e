"""Maintenance API endpoints — camp merges and cross-source duplicate scans."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from campscout.models.base import get_db
from campscout.schemas.maintenance import (
    CampMergeRequest,
    CampMergeResponse,
    DuplicateGroup,
    TaskQueuedResponse,
)
from campscout.services import deduplication

router = APIRouter(prefix="/maintenance", tags=["maintenance"])


@router.post("/merge-camps", response_model=CampMergeResponse)
async def merge_camps(
    payload: CampMergeRequest,
    db: AsyncSession = Depends(get_db),
):
    """Merge camps sharing a normalized name. Defaults to a dry run."""
    return await db.run_sync(
        lambda s: deduplication.merge_duplicate_camps(s, payload.organization_id, payload.dry_run)
    )


@router.get("/cross-source-duplicates", response_model=list[DuplicateGroup])
async def cross_source_duplicates(db: AsyncSession = Depends(get_db)):
    """Report likely duplicates across sources without raising an alert."""
    return await db.run_sync(lambda s: deduplication.detect_cross_source_duplicates(s, emit=False))


@router.post("/recover-sources", response_model=TaskQueuedResponse)
async def recover_sources():
    """Queue the recheck of sources auto-disabled for 404s."""
    from campscout.tasks.maintenance_tasks import recover_disabled_sources

    task = recover_disabled_sources.delay()
    return TaskQueuedResponse(message="Source recovery queued", task_id=task.id)
