"""Job orchestrator — serialized per-source jobs with a bounded, jittered start.

Lifecycle of one job:
    create_job()          locks the source row, refuses when a job is in flight,
                          inserts a pending job and schedules its start
    launch_pending_job()  deferred starter: re-checks state, enforces the global
                          workflow cap, attaches a workflow handle and dispatches
    start_workflow()      pending -> running -> completed | failed

Usage:
    from campscout.services.orchestrator import create_job

    job = create_job(db, source.id, triggered_by="manual")  # None when one is in flight
"""

import logging
import random
import uuid
from datetime import datetime, timezone, timedelta
from typing import Callable
from uuid import UUID

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from campscout.config import get_settings
from campscout.models.alert import AlertType, Severity
from campscout.models.scrape_job import (
    IN_FLIGHT_STATUSES,
    JOB_COMPLETED,
    JOB_FAILED,
    JOB_PENDING,
    JOB_RUNNING,
    ScrapeJob,
)
from campscout.models.source import Source
from campscout.services.alerts import emit_alert
from campscout.services.errors import NotFoundError
from campscout.services.session_sync import sync_sessions
from campscout.services.source_health import Failure, Success, is_eligible, record_outcome

logger = logging.getLogger(__name__)

ORPHANED_PENDING_MINUTES = 5

Scheduler = Callable[[UUID], None]
Dispatcher = Callable[[UUID, str], None]


def schedule_start(job_id: UUID) -> None:
    """Schedule the deferred starter after a random 100-4000 ms delay."""
    from campscout.tasks.scrape_tasks import launch_pending_job as launch_task

    settings = get_settings()
    delay_ms = random.randint(settings.job_start_jitter_min_ms, settings.job_start_jitter_max_ms)
    launch_task.apply_async(args=[str(job_id)], countdown=delay_ms / 1000)


def dispatch_workflow(job_id: UUID, workflow_id: str) -> None:
    """Hand the job to the scrapes queue under its workflow handle."""
    from campscout.tasks.scrape_tasks import run_scrape_job

    run_scrape_job.apply_async(args=[str(job_id)], task_id=workflow_id, queue="scrapes")


def has_in_flight_job(db: Session, source_id: UUID) -> bool:
    return db.query(ScrapeJob.id).filter(
        ScrapeJob.source_id == source_id,
        ScrapeJob.status.in_(IN_FLIGHT_STATUSES),
    ).first() is not None


def create_job(
    db: Session,
    source_id: UUID,
    triggered_by: str,
    schedule: Scheduler | None = None,
) -> ScrapeJob | None:
    """Create a pending job for a source unless one is already in flight.

    Returns None when the source is inactive or already has a pending or
    running job. Commits the session; the workflow start is scheduled only
    after the insert is durable.
    """
    source = db.query(Source).filter(Source.id == source_id).with_for_update().first()
    if not source:
        db.rollback()
        raise NotFoundError(f"Source {source_id} not found")

    in_flight = has_in_flight_job(db, source_id)
    if not is_eligible(source, in_flight):
        reason = "job already in flight" if in_flight else "source inactive"
        db.rollback()
        logger.info(f"Skipping job for source {source_id} ({triggered_by}): {reason}")
        return None

    job = ScrapeJob(
        id=uuid.uuid4(),
        source_id=source_id,
        status=JOB_PENDING,
        triggered_by=triggered_by,
    )
    db.add(job)
    try:
        db.commit()
    except IntegrityError:
        # Lost the race to a concurrent creator; the partial unique index held
        db.rollback()
        logger.info(f"Concurrent job creation for source {source_id} lost the race")
        return None

    logger.info(f"Created job {job.id} for source {source_id} ({triggered_by})")
    (schedule or schedule_start)(job.id)
    return job


def count_in_flight_workflows(db: Session) -> int:
    """Jobs holding a workflow handle that have not finished."""
    return db.query(func.count(ScrapeJob.id)).filter(
        ScrapeJob.status.in_(IN_FLIGHT_STATUSES),
        ScrapeJob.workflow_id.isnot(None),
    ).scalar() or 0


def launch_pending_job(
    db: Session,
    job_id: UUID,
    dispatch: Dispatcher | None = None,
    reschedule: Scheduler | None = None,
) -> str:
    """Deferred starter. Returns "dispatched", "deferred" or "skipped"."""
    job = db.query(ScrapeJob).filter(ScrapeJob.id == job_id).with_for_update().first()
    if not job or job.status != JOB_PENDING or job.workflow_id:
        db.rollback()
        logger.info(f"Job {job_id} no longer startable, skipping launch")
        return "skipped"

    cap = get_settings().max_concurrent_workflows
    in_flight = count_in_flight_workflows(db)
    if in_flight >= cap:
        db.rollback()
        logger.info(f"Workflow cap reached ({in_flight}/{cap}), deferring job {job_id}")
        (reschedule or schedule_start)(job_id)
        return "deferred"

    workflow_id = f"scrape-{job_id}-{uuid.uuid4().hex[:8]}"
    job.workflow_id = workflow_id
    db.commit()

    (dispatch or dispatch_workflow)(job_id, workflow_id)
    logger.info(f"Dispatched job {job_id} as {workflow_id}")
    return "dispatched"


def _fail_job(db: Session, job_id: UUID, error: str) -> ScrapeJob:
    now = datetime.now(timezone.utc)
    job = db.get(ScrapeJob, job_id)
    source = db.get(Source, job.source_id)

    job.status = JOB_FAILED
    job.completed_at = now
    job.error_message = error[:2000]
    record_outcome(db, source, Failure(error=error), now)
    db.commit()

    logger.warning(f"Job {job_id} for {source.name} failed: {error}")
    return job


def start_workflow(db: Session, job_id: UUID, worker=None) -> ScrapeJob:
    """Run one job to a terminal state.

    Extraction and persistence failures are recorded on the job and in the
    source's health; they are never raised to the caller.
    """
    job = db.get(ScrapeJob, job_id)
    if not job:
        raise NotFoundError(f"Job {job_id} not found")
    if job.status != JOB_PENDING:
        logger.warning(f"Job {job_id} is {job.status}, not starting")
        return job

    job.status = JOB_RUNNING
    job.started_at = datetime.now(timezone.utc)
    db.commit()

    if worker is None:
        from campscout.extraction.worker import ExtractionWorker
        worker = ExtractionWorker()

    source = db.get(Source, job.source_id)
    try:
        result = worker.run_for_source(source)
    except Exception as e:
        logger.error(f"Extraction worker crashed for job {job_id}: {e}")
        return _fail_job(db, job_id, f"{type(e).__name__}: {e}")

    if result.error:
        return _fail_job(db, job_id, result.error)

    try:
        now = datetime.now(timezone.utc)
        counts = sync_sessions(db, job, source, result, now)
        record_outcome(db, source, Success(sessions_found=counts["sessions_found"]), now)

        job.status = JOB_COMPLETED
        job.completed_at = now
        job.sessions_found = counts["sessions_found"]
        job.sessions_created = counts["sessions_created"]
        job.sessions_updated = counts["sessions_updated"]
        job.sessions_removed = counts["sessions_removed"]

        change_volume = counts["sessions_created"] + counts["sessions_updated"]
        if change_volume > get_settings().high_change_volume_threshold:
            emit_alert(
                db,
                AlertType.HIGH_CHANGE_VOLUME,
                f'Source "{source.name}" had {counts["sessions_created"]} new and '
                f'{counts["sessions_updated"]} updated sessions in one run',
                Severity.INFO,
                source_id=source.id,
            )
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Persisting results for job {job_id} failed: {e}")
        return _fail_job(db, job_id, f"{type(e).__name__}: {e}")

    logger.info(f"Job {job_id} for {source.name} completed: {counts}")
    return job


def run_due_sources(db: Session, now: datetime | None = None, schedule: Scheduler | None = None) -> dict:
    """Batch trigger: create jobs for every active source whose next attempt is due."""
    now = now or datetime.now(timezone.utc)
    due_ids = [
        source_id for (source_id,) in db.query(Source.id).filter(
            Source.is_active == True,  # noqa: E712
            or_(Source.extraction_module.isnot(None), Source.extraction_code.isnot(None)),
            or_(Source.next_scheduled_scrape.is_(None), Source.next_scheduled_scrape <= now),
        ).order_by(Source.next_scheduled_scrape).all()
    ]

    created = 0
    for source_id in due_ids:
        if create_job(db, source_id, "schedule", schedule):
            created += 1

    logger.info(f"Due sources: {len(due_ids)}, jobs created: {created}")
    return {"due": len(due_ids), "created": created, "skipped": len(due_ids) - created}


def run_source_now(db: Session, source_id: UUID, triggered_by: str = "manual",
                   schedule: Scheduler | None = None) -> ScrapeJob | None:
    """Manual trigger for one source."""
    return create_job(db, source_id, triggered_by, schedule)


def cleanup_stuck_jobs(db: Session, source_id: UUID) -> int:
    """Operator escape hatch: fail every pending/running job of a source."""
    now = datetime.now(timezone.utc)
    jobs = db.query(ScrapeJob).filter(
        ScrapeJob.source_id == source_id,
        ScrapeJob.status.in_(IN_FLIGHT_STATUSES),
    ).all()
    for job in jobs:
        job.status = JOB_FAILED
        job.completed_at = now
        job.error_message = "Manually cleaned up (stuck job)"
    db.commit()
    if jobs:
        logger.info(f"Cleaned up {len(jobs)} stuck jobs for source {source_id}")
    return len(jobs)


def fail_stale_jobs(db: Session, max_age_minutes: int | None = None) -> int:
    """Fail jobs that never reached a terminal state within the staleness window."""
    max_age_minutes = max_age_minutes or get_settings().stale_job_minutes
    cutoff = datetime.now(timezone.utc) - timedelta(minutes=max_age_minutes)

    stale_ids = [
        job_id for (job_id,) in db.query(ScrapeJob.id).filter(
            or_(
                (ScrapeJob.status == JOB_RUNNING) & (ScrapeJob.started_at < cutoff),
                (ScrapeJob.status == JOB_PENDING) & ScrapeJob.workflow_id.isnot(None)
                & (ScrapeJob.created_at < cutoff),
            )
        ).all()
    ]

    for job_id in stale_ids:
        _fail_job(db, job_id, f"Timed out: no completion within {max_age_minutes} minutes")

    if stale_ids:
        logger.warning(f"Failed {len(stale_ids)} stale jobs")
    return len(stale_ids)


def relaunch_orphaned_pending(db: Session, schedule: Scheduler | None = None) -> int:
    """Re-schedule pending jobs whose deferred start never ran."""
    cutoff = datetime.now(timezone.utc) - timedelta(minutes=ORPHANED_PENDING_MINUTES)
    orphaned = [
        job_id for (job_id,) in db.query(ScrapeJob.id).filter(
            ScrapeJob.status == JOB_PENDING,
            ScrapeJob.workflow_id.is_(None),
            ScrapeJob.created_at < cutoff,
        ).all()
    ]
    for job_id in orphaned:
        (schedule or schedule_start)(job_id)

    if orphaned:
        logger.info(f"Re-scheduled {len(orphaned)} orphaned pending jobs")
    return len(orphaned)
