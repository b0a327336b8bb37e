"""Development request state machine.

    pending -> in_progress -> testing -> pending (retry) | completed | failed | needs_feedback

Automated retries are bounded by ``max_test_retries``; once the cap is
reached the only next state is ``failed``. Human feedback and operator
restarts return a request to ``pending`` outside that cap.
"""

import logging
import re
from datetime import datetime, timezone, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from campscout.config import get_settings
from campscout.models.alert import AlertType, Severity
from campscout.models.development_request import (
    OPEN_STATUSES,
    REQUEST_COMPLETED,
    REQUEST_FAILED,
    REQUEST_IN_PROGRESS,
    REQUEST_NEEDS_FEEDBACK,
    REQUEST_PENDING,
    REQUEST_TESTING,
    DevelopmentRequest,
)
from campscout.models.scrape_job import ScrapeJob
from campscout.models.source import Source
from campscout.schemas.extraction import SiteExploration
from campscout.services.alerts import emit_alert
from campscout.services.errors import NotFoundError, StateError
from campscout.services.orchestrator import Scheduler, create_job
from campscout.services.organizations import (
    canonical_url,
    domain_of,
    get_or_create_organization,
    get_or_create_source,
)
from campscout.services.source_health import mark_deployed

logger = logging.getLogger(__name__)

FEEDBACK_AUTO = "auto-test"
FEEDBACK_HUMAN = "human"

# Links a directory page carries that never lead to a camp provider
NON_CAMP_LINK_RE = re.compile(
    r"facebook|twitter|instagram|linkedin|youtube|google|yelp|tripadvisor|amazon|pinterest|reddit"
    r"|wikipedia|tiktok|indeed|glassdoor",
    re.IGNORECASE,
)

ZERO_SESSIONS_FEEDBACK = (
    "Test ran successfully but found 0 sessions. The page likely has camp data - "
    "please improve the extraction logic to find the sessions."
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def get_request(db: Session, request_id: UUID) -> DevelopmentRequest:
    request = db.get(DevelopmentRequest, request_id)
    if not request:
        raise NotFoundError(f"Development request {request_id} not found")
    return request


def _append_feedback(request: DevelopmentRequest, text: str, author: str, source: str) -> None:
    history = list(request.feedback_history or [])
    history.append({
        "timestamp": _now().isoformat(),
        "author": author,
        "source": source,
        "text": text,
        "code_version_before": request.code_version or 0,
    })
    request.feedback_history = history


def _release_claim(request: DevelopmentRequest) -> None:
    request.claimed_by = None
    request.claimed_at = None


def find_open_request(db: Session, url: str) -> DevelopmentRequest | None:
    target = canonical_url(url)
    return db.query(DevelopmentRequest).filter(
        DevelopmentRequest.source_url.in_([target, target + "/"]),
        DevelopmentRequest.status.in_(OPEN_STATUSES),
    ).first()


def request_development(
    db: Session,
    source_name: str,
    source_url: str,
    market: str | None = None,
    source_id: UUID | None = None,
    notes: str | None = None,
    requested_by: str | None = None,
    parent_request_id: UUID | None = None,
    commit: bool = True,
) -> DevelopmentRequest:
    """Queue a new request. Raises StateError when one is already open for the URL."""
    existing = find_open_request(db, source_url)
    if existing:
        raise StateError(f"Open development request {existing.id} already exists for {source_url}")

    request = DevelopmentRequest(
        source_name=source_name[:255],
        source_url=canonical_url(source_url),
        market=market,
        source_id=source_id,
        notes=notes,
        requested_by=requested_by,
        requested_at=_now(),
        parent_request_id=parent_request_id,
        status=REQUEST_PENDING,
        code_version=0,
        feedback_history=[],
        test_retry_count=0,
        max_test_retries=get_settings().max_test_retries,
    )
    db.add(request)
    if commit:
        db.commit()
    else:
        db.flush()
    logger.info(f"Queued development request for {source_name} ({source_url})")
    return request


def claim_next(db: Session, worker_id: str, market: str | None = None) -> DevelopmentRequest | None:
    """Atomically claim the oldest pending request, optionally within a market.

    Concurrent workers skip rows another worker has locked, so no two ever
    claim the same request.
    """
    candidate = (
        select(DevelopmentRequest.id)
        .where(DevelopmentRequest.status == REQUEST_PENDING)
        .order_by(DevelopmentRequest.requested_at, DevelopmentRequest.id)
        .limit(1)
        .with_for_update(skip_locked=True)
    )
    if market:
        candidate = candidate.where(DevelopmentRequest.market == market)

    stmt = (
        update(DevelopmentRequest)
        .where(
            DevelopmentRequest.id == candidate.scalar_subquery(),
            DevelopmentRequest.status == REQUEST_PENDING,
        )
        .values(status=REQUEST_IN_PROGRESS, claimed_by=worker_id, claimed_at=_now())
        .returning(DevelopmentRequest.id)
        .execution_options(synchronize_session=False)
    )
    row = db.execute(stmt).first()
    db.commit()
    if not row:
        return None

    request = db.get(DevelopmentRequest, row[0], populate_existing=True)
    logger.info(f"{worker_id} claimed development request {request.id} ({request.source_name})")
    return request


def save_exploration(db: Session, request: DevelopmentRequest, exploration: SiteExploration) -> None:
    """Persist the exploration once; later attempts reuse it."""
    if request.site_exploration:
        return
    request.site_exploration = exploration.model_dump(mode="json")
    db.commit()


def expand_directory(db: Session, request: DevelopmentRequest, exploration: SiteExploration) -> dict[str, int]:
    """Turn a directory page into one child request per camp link.

    External links are distinct by domain, internal detail pages distinct
    by URL. The parent completes with a note and no generated code.
    """
    settings = get_settings()

    external = []
    seen_domains: set[str] = set()
    for link in exploration.external_links:
        domain = domain_of(link.url)
        if not domain or NON_CAMP_LINK_RE.search(link.url) or domain in seen_domains:
            continue
        seen_domains.add(domain)
        external.append(link)

    internal = []
    seen_urls: set[str] = set()
    for link in exploration.internal_links:
        url = canonical_url(link.url)
        if NON_CAMP_LINK_RE.search(url) or url in seen_urls:
            continue
        seen_urls.add(url)
        internal.append(link)

    created_external = 0
    created_internal = 0
    existed = 0

    for link in external[:settings.directory_external_link_cap]:
        domain = domain_of(link.url)
        name = link.name if len(link.name) > 3 else domain.split(".")[0]
        try:
            request_development(
                db, name[:100], link.url,
                market=request.market,
                notes=f"Discovered from directory: {request.source_name} (external camp website)",
                requested_by="directory-crawler",
                parent_request_id=request.id,
                commit=False,
            )
            created_external += 1
        except StateError:
            existed += 1

    for link in internal[:settings.directory_internal_link_cap]:
        slug = [part for part in link.url.split("?")[0].split("/") if part][-1]
        name = link.name if len(link.name) > 3 else slug.replace("-", " ")
        try:
            request_development(
                db, name[:100], link.url,
                market=request.market,
                notes=(
                    f"Directory detail page from: {request.source_name}. Extract camp info "
                    "(name, dates, price, ages, location, registration URL) from this page."
                ),
                requested_by="directory-crawler-internal",
                parent_request_id=request.id,
                commit=False,
            )
            created_internal += 1
        except StateError:
            existed += 1

    total = created_external + created_internal
    note = (
        f"Directory processed: {created_external} external + {created_internal} internal = "
        f"{total} new scraper requests queued"
    )
    request.notes = f"{request.notes}\n{note}" if request.notes else note
    request.status = REQUEST_COMPLETED
    request.generated_code = None
    request.completed_at = _now()
    _release_claim(request)
    db.commit()

    logger.info(f"[{request.source_name}] {note} ({existed} already queued)")
    return {"external": created_external, "internal": created_internal, "created": total, "existed": existed}


def store_generated_code(db: Session, request: DevelopmentRequest, code: str) -> None:
    request.generated_code = code
    request.code_version = (request.code_version or 0) + 1
    request.status = REQUEST_TESTING
    db.commit()
    logger.info(f"Stored code version {request.code_version} for {request.source_name}")


def _retry_or_fail(request: DevelopmentRequest, feedback: str) -> None:
    if (request.test_retry_count or 0) < request.max_test_retries:
        _append_feedback(request, feedback, author="auto-test", source=FEEDBACK_AUTO)
        request.test_retry_count = (request.test_retry_count or 0) + 1
        request.status = REQUEST_PENDING
        logger.info(
            f"Retrying {request.source_name} "
            f"({request.test_retry_count}/{request.max_test_retries})"
        )
    else:
        request.status = REQUEST_FAILED
        logger.warning(f"Development of {request.source_name} failed after {request.test_retry_count} retries")
    _release_claim(request)


def record_test_results(
    db: Session,
    request_id: UUID,
    sessions_found: int,
    error: str | None = None,
    sample_data: dict[str, Any] | None = None,
    schedule: Scheduler | None = None,
) -> DevelopmentRequest:
    """Interpret a test run of generated code and advance the request."""
    request = get_request(db, request_id)
    if request.status not in (REQUEST_TESTING, REQUEST_IN_PROGRESS):
        raise StateError(f"Cannot record test results for request in {request.status} status")

    request.last_test_run_at = _now()
    request.last_test_sessions_found = sessions_found
    request.last_test_sample_data = sample_data
    request.last_test_error = error

    if error:
        _retry_or_fail(request, f"Test failed with error: {error}\n\nPlease fix the scraper to handle this error.")
        db.commit()
        return request

    if sessions_found == 0:
        if (sample_data or {}).get("expectedEmpty") is True:
            request.status = REQUEST_COMPLETED
            request.completed_at = _now()
            _release_claim(request)
            note = (sample_data or {}).get("note") or "Zero sessions expected (catalog not yet published)"
            request.notes = f"{request.notes}\n{note}" if request.notes else note
            db.commit()
            logger.info(f"{request.source_name}: zero sessions expected, completed without deployment")
        else:
            _retry_or_fail(request, ZERO_SESSIONS_FEEDBACK)
            db.commit()
        return request

    if not get_settings().auto_deploy_generated_code:
        request.status = REQUEST_NEEDS_FEEDBACK
        _release_claim(request)
        db.commit()
        logger.info(f"{request.source_name}: {sessions_found} sessions found, awaiting approval")
        return request

    deploy_request(db, request, triggered_by="auto-approval", schedule=schedule)
    return request


def resolve_source(db: Session, request: DevelopmentRequest) -> Source:
    """The request's linked source, else one located or created from its URL."""
    if request.source_id:
        source = db.get(Source, request.source_id)
        if source:
            return source

    organization = get_or_create_organization(db, request.source_url, market=request.market)
    source = get_or_create_source(
        db,
        request.source_url,
        name=request.source_name,
        market=request.market,
        organization=organization,
        discovered_by="development",
    )
    request.source_id = source.id
    return source


def deploy_request(
    db: Session,
    request: DevelopmentRequest,
    triggered_by: str,
    schedule: Scheduler | None = None,
) -> ScrapeJob | None:
    """Attach tested code to the source, activate it and enqueue a job.

    Safe to call repeatedly: the job goes through create_job, which refuses
    a second in-flight job for the source.
    """
    code = request.generated_code or request.final_code
    if not code:
        raise StateError(f"Request {request.id} has no generated code to deploy")

    source = resolve_source(db, request)
    source.attach_code(code)
    source.is_active = True
    source.closure_reason = None
    source.closed_at = None
    source.closed_by = None
    source.next_scheduled_scrape = _now()
    mark_deployed(source)

    request.status = REQUEST_COMPLETED
    request.final_code = code
    request.completed_at = request.completed_at or _now()
    _release_claim(request)
    db.commit()

    logger.info(f"Deployed code version {request.code_version} to {source.name}")
    return create_job(db, source.id, triggered_by, schedule)


def submit_feedback(db: Session, request_id: UUID, text: str, author: str) -> DevelopmentRequest:
    """Human steering: append feedback and return to pending, outside the retry cap."""
    request = get_request(db, request_id)
    _append_feedback(request, text, author=author, source=FEEDBACK_HUMAN)
    request.status = REQUEST_PENDING
    _release_claim(request)
    db.commit()
    logger.info(f"Feedback from {author} on {request.source_name}, back to pending")
    return request


def force_restart(db: Session, request_id: UUID, clear_code: bool = False,
                  clear_feedback: bool = False) -> DevelopmentRequest:
    """Operator escalation: back to pending with a fresh retry budget."""
    request = get_request(db, request_id)
    request.status = REQUEST_PENDING
    request.test_retry_count = 0
    request.last_test_error = None
    request.completed_at = None
    _release_claim(request)
    if clear_code:
        request.generated_code = None
        request.code_version = 0
    if clear_feedback:
        request.feedback_history = []
    db.commit()
    logger.info(f"Force-restarted {request.source_name} (clear_code={clear_code}, clear_feedback={clear_feedback})")
    return request


def approve(db: Session, request_id: UUID, schedule: Scheduler | None = None) -> ScrapeJob | None:
    """Approve tested code held for review and deploy it."""
    request = get_request(db, request_id)
    if request.status not in (REQUEST_NEEDS_FEEDBACK, REQUEST_COMPLETED):
        raise StateError(f"Cannot approve request in {request.status} status")
    return deploy_request(db, request, triggered_by="approval", schedule=schedule)


def mark_failed(db: Session, request_id: UUID, reason: str | None = None) -> DevelopmentRequest:
    request = get_request(db, request_id)
    request.status = REQUEST_FAILED
    if reason:
        request.last_test_error = reason
    _release_claim(request)
    db.commit()
    return request


def reset_to_pending(db: Session, request_id: UUID) -> DevelopmentRequest:
    """Return a request to the queue, keeping its retry count and code."""
    request = get_request(db, request_id)
    if request.status == REQUEST_PENDING:
        return request
    if (request.test_retry_count or 0) >= request.max_test_retries:
        raise StateError("Retries exhausted; use force restart to reset the retry budget")
    request.status = REQUEST_PENDING
    _release_claim(request)
    db.commit()
    return request


def recover_stuck_requests(db: Session, schedule: Scheduler | None = None) -> int:
    """Send requests claimed too long ago through the bounded retry path."""
    settings = get_settings()
    cutoff = _now() - timedelta(minutes=settings.stuck_request_minutes)
    stuck_ids = [
        request_id for (request_id,) in db.query(DevelopmentRequest.id).filter(
            DevelopmentRequest.status.in_((REQUEST_IN_PROGRESS, REQUEST_TESTING)),
            DevelopmentRequest.claimed_at < cutoff,
        ).all()
    ]
    for request_id in stuck_ids:
        record_test_results(
            db, request_id, 0,
            error=f"Development cycle did not finish within {settings.stuck_request_minutes} minutes",
            schedule=schedule,
        )
    if stuck_ids:
        logger.warning(f"Recovered {len(stuck_ids)} stuck development requests")
    return len(stuck_ids)


def cleanup_stale_requests(db: Session) -> int:
    """Fail open requests with no activity for the configured number of days."""
    cutoff = _now() - timedelta(days=get_settings().stale_request_days)
    stale = db.query(DevelopmentRequest).filter(
        DevelopmentRequest.status.in_(OPEN_STATUSES),
        DevelopmentRequest.updated_at < cutoff,
    ).all()
    for request in stale:
        request.status = REQUEST_FAILED
        request.last_test_error = "Marked failed: no activity for over a week"
        _release_claim(request)
    db.commit()
    if stale:
        logger.info(f"Failed {len(stale)} stale development requests")
    return len(stale)


def auto_queue_development(db: Session) -> int:
    """Queue requests for sources flagged for regeneration or lacking logic.

    The regeneration flag stays set until the new code is deployed.
    """
    open_source_ids = {
        source_id for (source_id,) in db.query(DevelopmentRequest.source_id).filter(
            DevelopmentRequest.status.in_(OPEN_STATUSES),
            DevelopmentRequest.source_id.isnot(None),
        ).all()
    }
    candidates = db.query(Source).filter(
        or_(
            Source.needs_regeneration == True,  # noqa: E712
            (Source.extraction_module.is_(None) & Source.extraction_code.is_(None)),
        ),
        Source.closed_by.is_(None),
    ).all()

    queued = 0
    for source in candidates:
        if source.id in open_source_ids or find_open_request(db, source.url):
            continue
        reason = "regeneration" if source.needs_regeneration else "no extraction logic"
        request_development(
            db, source.name, source.url,
            market=source.market,
            source_id=source.id,
            notes=f"Auto-queued: {reason}" + (f". Last error: {source.last_error}" if source.last_error else ""),
            requested_by="auto-queue",
            commit=False,
        )
        queued += 1

    if queued:
        emit_alert(
            db,
            AlertType.NEW_SOURCES_PENDING,
            f"{queued} sources queued for extraction logic development",
            Severity.INFO,
        )
    db.commit()
    logger.info(f"Auto-queued {queued} development requests")
    return queued
