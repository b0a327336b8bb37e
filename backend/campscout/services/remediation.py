"""Bulk remediation for development requests and sources that fell out of sync.

Every job these operations enqueue goes through create_job, so running
one twice never produces a second in-flight job for a source.
"""

import logging

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from campscout.models.development_request import (
    REQUEST_COMPLETED,
    REQUEST_NEEDS_FEEDBACK,
    DevelopmentRequest,
)
from campscout.models.source import Source
from campscout.services.development import deploy_request, find_open_request, request_development
from campscout.services.orchestrator import Scheduler, create_job

logger = logging.getLogger(__name__)


def link_completed_requests(db: Session, limit: int = 100, schedule: Scheduler | None = None) -> dict:
    """Deploy completed requests whose code never reached a source.

    Only code that was deployed before or found sessions in its test qualifies;
    expected-empty completions stay undeployed.
    """
    requests = db.query(DevelopmentRequest).filter(
        DevelopmentRequest.status == REQUEST_COMPLETED,
        DevelopmentRequest.source_id.is_(None),
        or_(
            DevelopmentRequest.final_code.isnot(None),
            and_(
                DevelopmentRequest.generated_code.isnot(None),
                DevelopmentRequest.last_test_sessions_found > 0,
            ),
        ),
    ).order_by(DevelopmentRequest.completed_at).limit(limit).all()

    linked = 0
    jobs_created = 0
    for request in requests:
        job = deploy_request(db, request, triggered_by="remediation-link", schedule=schedule)
        linked += 1
        if job:
            jobs_created += 1

    logger.info(f"Linked {linked} completed requests to sources, {jobs_created} jobs created")
    return {"linked": linked, "jobs_created": jobs_created}


def activate_sources_with_logic(db: Session, market: str | None = None, limit: int = 100,
                                schedule: Scheduler | None = None) -> dict:
    """Activate inactive sources that already carry extraction logic.

    Sources an operator or the 404 sweep closed stay closed.
    """
    query = db.query(Source).filter(
        Source.is_active == False,  # noqa: E712
        or_(Source.extraction_module.isnot(None), Source.extraction_code.isnot(None)),
        Source.closed_at.is_(None),
    )
    if market:
        query = query.filter(Source.market == market)
    sources = query.order_by(Source.created_at).limit(limit).all()

    activated = 0
    jobs_created = 0
    for source in sources:
        source.is_active = True
        db.commit()
        activated += 1
        if create_job(db, source.id, "bulk-activation", schedule):
            jobs_created += 1

    logger.info(f"Activated {activated} sources with extraction logic, {jobs_created} jobs created")
    return {"activated": activated, "jobs_created": jobs_created}


def bulk_approve_needs_feedback(db: Session, market: str | None = None, limit: int = 100,
                                schedule: Scheduler | None = None) -> dict:
    """Approve and deploy every request waiting on human review."""
    query = db.query(DevelopmentRequest).filter(
        DevelopmentRequest.status == REQUEST_NEEDS_FEEDBACK,
        DevelopmentRequest.generated_code.isnot(None),
    )
    if market:
        query = query.filter(DevelopmentRequest.market == market)
    requests = query.order_by(DevelopmentRequest.requested_at).limit(limit).all()

    approved = 0
    jobs_created = 0
    for request in requests:
        job = deploy_request(db, request, triggered_by="bulk-approval", schedule=schedule)
        approved += 1
        if job:
            jobs_created += 1

    logger.info(f"Bulk-approved {approved} requests, {jobs_created} jobs created")
    return {"approved": approved, "jobs_created": jobs_created}


def create_requests_for_orphaned_sources(db: Session, market: str | None = None, limit: int = 100,
                                         dry_run: bool = True) -> dict:
    """Queue development for sources that have no extraction logic and no request."""
    query = db.query(Source).filter(
        Source.extraction_module.is_(None),
        Source.extraction_code.is_(None),
    )
    if market:
        query = query.filter(Source.market == market)
    orphaned = query.order_by(Source.created_at).all()

    requested_ids = {
        source_id for (source_id,) in db.query(DevelopmentRequest.source_id).filter(
            DevelopmentRequest.source_id.isnot(None),
        ).all()
    }
    needs_request = [
        s for s in orphaned
        if s.id not in requested_ids and not find_open_request(db, s.url)
    ]

    created = []
    for source in needs_request[:limit]:
        if not dry_run:
            request_development(
                db, source.name, source.url,
                market=source.market,
                source_id=source.id,
                requested_by="auto-orphan-fill",
                commit=False,
            )
        created.append({"name": source.name, "url": source.url})

    if not dry_run:
        db.commit()

    logger.info(
        f"Orphaned sources: {len(orphaned)}, needing requests: {len(needs_request)}, "
        f"created: {len(created)} (dry_run={dry_run})"
    )
    return {
        "dry_run": dry_run,
        "orphaned_sources": len(orphaned),
        "already_have_requests": len(orphaned) - len(needs_request),
        "created": len(created),
        "created_list": created[:20],
    }
