"""Development pipeline tasks — queue processing and request housekeeping."""

import logging
import socket

from campscout.tasks.celery_app import celery_app
from campscout.models.base import SyncSessionLocal
from campscout.models.organization import Organization  # noqa: F401
from campscout.models.source import Source  # noqa: F401
from campscout.models.scrape_job import ScrapeJob  # noqa: F401
from campscout.models.camp import Camp, CampSession  # noqa: F401
from campscout.models.session_change import SessionChange  # noqa: F401
from campscout.models.alert import ScraperAlert  # noqa: F401
from campscout.models.development_request import DevelopmentRequest  # noqa: F401
from campscout.services import development, pipeline, remediation

logger = logging.getLogger(__name__)


@celery_app.task(name="campscout.tasks.development_tasks.process_development_queue", bind=True)
def process_development_queue(self, market: str | None = None):
    """Claim and process the oldest pending development request."""
    worker_id = f"{socket.gethostname()}:{self.request.id}"
    db = SyncSessionLocal()
    try:
        outcome = pipeline.process_next(db, worker_id, market)
        if outcome is None:
            logger.debug("Development queue empty")
            return {"processed": 0}
        return {"processed": 1, **outcome}
    finally:
        db.close()


@celery_app.task(name="campscout.tasks.development_tasks.recover_stuck_requests")
def recover_stuck_requests():
    """Retry or fail requests whose claim is older than the cycle allowance."""
    db = SyncSessionLocal()
    try:
        return {"recovered": development.recover_stuck_requests(db)}
    finally:
        db.close()


@celery_app.task(name="campscout.tasks.development_tasks.auto_queue_development")
def auto_queue_development():
    """Queue development for sources flagged for regeneration or lacking logic."""
    db = SyncSessionLocal()
    try:
        return {"queued": development.auto_queue_development(db)}
    finally:
        db.close()


@celery_app.task(name="campscout.tasks.development_tasks.cleanup_stale_requests")
def cleanup_stale_requests():
    """Fail open requests with no activity for a week."""
    db = SyncSessionLocal()
    try:
        return {"failed": development.cleanup_stale_requests(db)}
    finally:
        db.close()


@celery_app.task(name="campscout.tasks.development_tasks.bulk_remediate")
def bulk_remediate(market: str | None = None):
    """Link, approve and activate everything that is ready but not running."""
    db = SyncSessionLocal()
    try:
        return {
            "linked": remediation.link_completed_requests(db),
            "approved": remediation.bulk_approve_needs_feedback(db, market),
            "activated": remediation.activate_sources_with_logic(db, market),
        }
    finally:
        db.close()
