"""Maintenance tasks — cross-source duplicates, camp merges, disabled source recovery."""

import logging

from campscout.tasks.celery_app import celery_app
from campscout.models.base import SyncSessionLocal
from campscout.models.organization import Organization  # noqa: F401
from campscout.models.source import Source  # noqa: F401
from campscout.models.scrape_job import ScrapeJob  # noqa: F401
from campscout.models.camp import Camp, CampSession  # noqa: F401
from campscout.models.session_change import SessionChange  # noqa: F401
from campscout.models.alert import ScraperAlert  # noqa: F401
from campscout.models.development_request import DevelopmentRequest  # noqa: F401
from campscout.services import deduplication, source_health

logger = logging.getLogger(__name__)


@celery_app.task(name="campscout.tasks.maintenance_tasks.detect_cross_source_duplicates")
def detect_cross_source_duplicates():
    """Report sessions that more than one source lists for the same organization."""
    db = SyncSessionLocal()
    try:
        groups = deduplication.detect_cross_source_duplicates(db)
        logger.info(f"Found {len(groups)} cross-source duplicate groups")
        return {"groups": len(groups)}
    finally:
        db.close()


@celery_app.task(name="campscout.tasks.maintenance_tasks.merge_duplicate_camps")
def merge_duplicate_camps(organization_id: str | None = None, dry_run: bool = False):
    """Merge camps with equal normalized names within each organization."""
    from uuid import UUID

    db = SyncSessionLocal()
    try:
        return deduplication.merge_duplicate_camps(
            db,
            organization_id=UUID(organization_id) if organization_id else None,
            dry_run=dry_run,
        )
    finally:
        db.close()


@celery_app.task(name="campscout.tasks.maintenance_tasks.recover_disabled_sources")
def recover_disabled_sources():
    """Re-enable sources auto-disabled for 404s whose URL answers again."""
    db = SyncSessionLocal()
    try:
        return source_health.recover_disabled_sources(db)
    finally:
        db.close()
