"""Scrape orchestration tasks."""

import logging
from uuid import UUID

from campscout.tasks.celery_app import celery_app
from campscout.models.base import SyncSessionLocal
from campscout.models.organization import Organization  # noqa: F401
from campscout.models.source import Source  # noqa: F401
from campscout.models.scrape_job import ScrapeJob  # noqa: F401
from campscout.models.camp import Camp, CampSession  # noqa: F401
from campscout.models.session_change import SessionChange  # noqa: F401
from campscout.models.alert import ScraperAlert  # noqa: F401
from campscout.models.development_request import DevelopmentRequest  # noqa: F401
from campscout.services import orchestrator

logger = logging.getLogger(__name__)


@celery_app.task(name="campscout.tasks.scrape_tasks.dispatch_due_sources")
def dispatch_due_sources():
    """Create jobs for every active source whose next attempt is due."""
    db = SyncSessionLocal()
    try:
        return orchestrator.run_due_sources(db)
    finally:
        db.close()


@celery_app.task(name="campscout.tasks.scrape_tasks.launch_pending_job")
def launch_pending_job(job_id: str):
    """Deferred starter for a freshly created job."""
    db = SyncSessionLocal()
    try:
        return orchestrator.launch_pending_job(db, UUID(job_id))
    finally:
        db.close()


@celery_app.task(name="campscout.tasks.scrape_tasks.run_scrape_job")
def run_scrape_job(job_id: str):
    """Run one job's workflow to completion. Failures land on the job, not here."""
    # Import extraction package to trigger @register_logic decorators
    import campscout.extraction  # noqa: F401

    db = SyncSessionLocal()
    try:
        job = orchestrator.start_workflow(db, UUID(job_id))
        return {"job_id": job_id, "status": job.status, "sessions_found": job.sessions_found}
    finally:
        db.close()


@celery_app.task(name="campscout.tasks.scrape_tasks.run_source_now")
def run_source_now(source_id: str, triggered_by: str = "manual"):
    """Manual trigger for one source."""
    db = SyncSessionLocal()
    try:
        job = orchestrator.run_source_now(db, UUID(source_id), triggered_by)
        if job is None:
            logger.info(f"Source {source_id} already has a job in flight or is inactive")
            return {"job_id": None}
        return {"job_id": str(job.id)}
    finally:
        db.close()


@celery_app.task(name="campscout.tasks.scrape_tasks.relaunch_orphaned_jobs")
def relaunch_orphaned_jobs():
    """Re-schedule pending jobs whose deferred start was lost."""
    db = SyncSessionLocal()
    try:
        return {"relaunched": orchestrator.relaunch_orphaned_pending(db)}
    finally:
        db.close()


@celery_app.task(name="campscout.tasks.scrape_tasks.fail_stale_jobs")
def fail_stale_jobs():
    """Fail jobs that never finished within the staleness window."""
    db = SyncSessionLocal()
    try:
        return {"failed": orchestrator.fail_stale_jobs(db)}
    finally:
        db.close()
