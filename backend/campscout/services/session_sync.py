"""Apply an extraction result to stored sessions, recording every detected change."""

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import or_
from sqlalchemy.orm import Session

from campscout.models.camp import Camp, CampSession
from campscout.models.scrape_job import ScrapeJob
from campscout.models.session_change import SessionChange
from campscout.models.source import Source
from campscout.schemas.extraction import ExtractedSession, ExtractionResult
from campscout.services.deduplication import find_existing_session
from campscout.services.organizations import get_or_create_organization
from campscout.services.similarity import normalize_name

logger = logging.getLogger(__name__)

SESSION_STATUSES = {"active", "sold_out", "waitlist", "cancelled"}


def _status_for(extracted: ExtractedSession) -> str:
    return extracted.availability if extracted.availability in SESSION_STATUSES else "active"


def _as_text(value: Any) -> str | None:
    if value is None:
        return None
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


def _record_change(db: Session, job: ScrapeJob, session: CampSession, change_type: str,
                   previous: Any = None, new: Any = None, now: datetime | None = None) -> None:
    db.add(SessionChange(
        job_id=job.id,
        source_id=job.source_id,
        session_id=session.id,
        change_type=change_type,
        previous_value=_as_text(previous),
        new_value=_as_text(new),
        detected_at=now or datetime.now(timezone.utc),
    ))


def get_or_create_camp(db: Session, organization_id, name: str, image_urls: list[str] | None = None) -> Camp:
    """Camp of the organization with the same normalized name, created if missing."""
    key = normalize_name(name)
    for camp in db.query(Camp).filter(Camp.organization_id == organization_id).all():
        if normalize_name(camp.name) == key:
            if image_urls:
                merged = list(camp.image_urls or [])
                merged.extend(u for u in image_urls if u not in merged)
                camp.image_urls = merged
            return camp

    camp = Camp(organization_id=organization_id, name=name, image_urls=list(image_urls or []))
    db.add(camp)
    db.flush()
    return camp


def _update_existing(db: Session, job: ScrapeJob, existing: CampSession,
                     extracted: ExtractedSession, now: datetime) -> bool:
    """Fold fresh data into a matched session. Returns True when anything changed."""
    changed = False

    new_status = _status_for(extracted)
    if existing.status != new_status:
        _record_change(db, job, existing, "status_changed", existing.status, new_status, now)
        existing.status = new_status
        changed = True

    if extracted.price is not None and existing.price != extracted.price:
        _record_change(db, job, existing, "price_changed", existing.price, extracted.price, now)
        existing.price = extracted.price
        changed = True

    if extracted.end_date is not None and existing.end_date != extracted.end_date:
        _record_change(
            db, job, existing, "dates_changed",
            f"{existing.start_date.isoformat()}..{_as_text(existing.end_date) or ''}",
            f"{extracted.start_date.isoformat()}..{extracted.end_date.isoformat()}",
            now,
        )
        existing.end_date = extracted.end_date
        changed = True

    # Descriptive fields are refreshed without a change record
    for field in ("location", "registration_url", "min_age", "max_age"):
        value = getattr(extracted, field)
        if value is not None and getattr(existing, field) != value:
            setattr(existing, field, value)
            changed = True

    existing.is_active = new_status != "cancelled"
    existing.removal_detected_at = None
    existing.last_scraped_at = now
    existing.last_seen_job_id = job.id
    return changed


def _create_session(db: Session, job: ScrapeJob, source: Source, extracted: ExtractedSession,
                    now: datetime) -> CampSession:
    camp = get_or_create_camp(db, source.organization_id, extracted.name, extracted.image_urls)
    status = _status_for(extracted)
    session = CampSession(
        camp_id=camp.id,
        organization_id=source.organization_id,
        source_id=source.id,
        name=extracted.name,
        start_date=extracted.start_date,
        end_date=extracted.end_date,
        price=extracted.price,
        min_age=extracted.min_age,
        max_age=extracted.max_age,
        location=extracted.location,
        registration_url=extracted.registration_url,
        status=status,
        is_active=status != "cancelled",
        last_scraped_at=now,
        last_seen_job_id=job.id,
    )
    db.add(session)
    db.flush()
    _record_change(db, job, session, "session_added", None, extracted.name, now)
    return session


def detect_removals(db: Session, job: ScrapeJob, source: Source, now: datetime) -> int:
    """Mark sessions of the source not seen by this job as removed.

    Only call after a run that found sessions, so an empty or broken page
    never wipes a catalog.
    """
    stale = db.query(CampSession).filter(
        CampSession.source_id == source.id,
        CampSession.is_active == True,  # noqa: E712
        or_(CampSession.last_seen_job_id.is_(None), CampSession.last_seen_job_id != job.id),
    ).all()

    for session in stale:
        _record_change(db, job, session, "session_removed", session.status, "removed", now)
        session.status = "removed"
        session.is_active = False
        session.removal_detected_at = now

    if stale:
        logger.info(f"[{source.name}] Detected {len(stale)} removed sessions")
    return len(stale)


def sync_sessions(db: Session, job: ScrapeJob, source: Source, result: ExtractionResult,
                  now: datetime | None = None) -> dict[str, int]:
    """Dedup and persist extracted sessions for one job. The caller owns the commit."""
    now = now or datetime.now(timezone.utc)

    if not source.organization_id:
        org_name = result.organization.name if result.organization else None
        organization = get_or_create_organization(db, source.url, name=org_name, market=source.market)
        source.organization_id = organization.id

    created = 0
    updated = 0
    for extracted in result.sessions:
        existing = find_existing_session(db, source, extracted.name, extracted.start_date)
        if existing:
            if _update_existing(db, job, existing, extracted, now):
                updated += 1
        else:
            _create_session(db, job, source, extracted, now)
            created += 1
        db.flush()

    removed = detect_removals(db, job, source, now) if result.sessions else 0

    return {
        "sessions_found": len(result.sessions),
        "sessions_created": created,
        "sessions_updated": updated,
        "sessions_removed": removed,
    }
