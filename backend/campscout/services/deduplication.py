"""Deduplication engine — session matching, cross-source detection and camp merges.

Three entry points:
    find_existing_session()          inline, per extracted session during a job
    detect_cross_source_duplicates() batch scan, alert-only, never merges
    merge_duplicate_camps()          administrator-invoked, destructive, one transaction per group
"""

import logging
from collections import defaultdict
from datetime import date, datetime, timezone
from itertools import combinations
from uuid import UUID

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from campscout.config import get_settings
from campscout.models.alert import AlertType, Severity
from campscout.models.camp import Camp, CampSession
from campscout.models.source import Source
from campscout.services.alerts import emit_alert, has_recent_unacknowledged
from campscout.services.similarity import normalize_name, similarity

logger = logging.getLogger(__name__)


def _first_similar(candidates: list[CampSession], name: str, threshold: float) -> CampSession | None:
    for candidate in candidates:
        if similarity(candidate.name, name) > threshold:
            return candidate
    return None


def find_existing_session(db: Session, source: Source, name: str, start_date: date) -> CampSession | None:
    """Match a newly extracted session against records already stored.

    Looks at the same source first, then falls back to untracked records of
    the source's organization (imported before per-source tracking existed).
    A fallback match is adopted by the source.
    """
    threshold = get_settings().similarity_threshold

    same_source = db.query(CampSession).filter(
        CampSession.source_id == source.id,
        CampSession.start_date == start_date,
    ).order_by(CampSession.created_at).all()
    match = _first_similar(same_source, name, threshold)
    if match:
        return match

    if not source.organization_id:
        return None

    # Only untracked rows are adopted; sessions another source owns stay with it
    legacy = db.query(CampSession).filter(
        CampSession.organization_id == source.organization_id,
        CampSession.start_date == start_date,
        CampSession.source_id.is_(None),
    ).order_by(CampSession.created_at).all()
    match = _first_similar(legacy, name, threshold)
    if match:
        logger.info(f"Source {source.id} adopting untracked session {match.id} ({match.name})")
        match.source_id = source.id
    return match


def detect_cross_source_duplicates(db: Session, emit: bool = True) -> list[dict]:
    """Find likely duplicates published by different sources of one organization.

    Groups active sessions by (organization, start date) and compares only
    pairs from different sources. Surfaces one summary alert, never merges.
    """
    threshold = get_settings().similarity_threshold

    sessions = db.query(CampSession).filter(
        CampSession.is_active == True,  # noqa: E712
        CampSession.source_id.isnot(None),
    ).all()

    grouped: dict[tuple, list[CampSession]] = defaultdict(list)
    for session in sessions:
        grouped[(session.organization_id, session.start_date)].append(session)

    candidate_groups = []
    for (organization_id, start_date), members in grouped.items():
        if len({m.source_id for m in members}) < 2:
            continue

        matched: dict[UUID, CampSession] = {}
        pairs = []
        for left, right in combinations(members, 2):
            if left.source_id == right.source_id:
                continue
            score = similarity(left.name, right.name)
            if score > threshold:
                matched[left.id] = left
                matched[right.id] = right
                pairs.append({"session_ids": [str(left.id), str(right.id)], "similarity": round(score, 3)})

        if len(matched) >= 2:
            candidate_groups.append({
                "organization_id": str(organization_id),
                "start_date": start_date.isoformat(),
                "session_ids": [str(sid) for sid in matched],
                "names": sorted({m.name for m in matched.values()}),
                "pairs": pairs,
            })

    logger.info(f"Cross-source scan: {len(sessions)} sessions, {len(candidate_groups)} duplicate groups")

    if emit and candidate_groups:
        if has_recent_unacknowledged(db, AlertType.CROSS_SOURCE_DUPLICATES):
            logger.info("Unacknowledged cross-source alert already open, not repeating")
        else:
            session_count = sum(len(g["session_ids"]) for g in candidate_groups)
            emit_alert(
                db,
                AlertType.CROSS_SOURCE_DUPLICATES,
                f"Found {len(candidate_groups)} groups of likely duplicate sessions across sources "
                f"({session_count} sessions). Review before merging.",
                Severity.WARNING,
            )
            db.commit()

    return candidate_groups


def _merge_group(db: Session, camp_ids: list[UUID], dry_run: bool) -> dict:
    # Lock the whole group for the duration of the merge
    camps = db.query(Camp).filter(Camp.id.in_(camp_ids)).with_for_update().all()

    counts = dict(
        db.query(CampSession.camp_id, func.count(CampSession.id))
        .filter(CampSession.camp_id.in_(camp_ids))
        .group_by(CampSession.camp_id)
        .all()
    )

    # Most sessions wins, earliest created breaks ties
    ordered = sorted(camps, key=lambda c: (-counts.get(c.id, 0), c.created_at, str(c.id)))
    keeper, losers = ordered[0], ordered[1:]

    images = list(keeper.image_urls or [])
    for loser in losers:
        for url in loser.image_urls or []:
            if url not in images:
                images.append(url)

    moved = sum(counts.get(loser.id, 0) for loser in losers)
    result = {
        "keeper_id": str(keeper.id),
        "keeper_name": keeper.name,
        "removed_ids": [str(loser.id) for loser in losers],
        "sessions_moved": moved,
    }
    if dry_run:
        return result

    loser_ids = [loser.id for loser in losers]
    db.execute(
        update(CampSession)
        .where(CampSession.camp_id.in_(loser_ids))
        .values(camp_id=keeper.id)
        .execution_options(synchronize_session=False)
    )
    keeper.image_urls = images
    for loser in losers:
        db.delete(loser)
    return result


def merge_duplicate_camps(db: Session, organization_id: UUID | None = None, dry_run: bool = False) -> dict:
    """Collapse camps sharing (organization, normalized name) into one keeper per group.

    Each group commits on its own; a failing group is rolled back and
    reported without touching the others.
    """
    query = db.query(Camp.id, Camp.organization_id, Camp.name)
    if organization_id:
        query = query.filter(Camp.organization_id == organization_id)

    groups: dict[tuple, list[UUID]] = defaultdict(list)
    for camp_id, org_id, name in query.all():
        key = normalize_name(name)
        if key:
            groups[(org_id, key)].append(camp_id)

    merged = []
    failed = []
    for (org_id, key), camp_ids in groups.items():
        if len(camp_ids) < 2:
            continue
        try:
            result = _merge_group(db, camp_ids, dry_run)
            if dry_run:
                db.rollback()
            else:
                db.commit()
            merged.append(result)
        except Exception as e:
            db.rollback()
            logger.error(f"Camp merge failed for org {org_id} '{key}': {e}")
            failed.append({"organization_id": str(org_id), "name": key, "error": str(e)})

    removed = sum(len(g["removed_ids"]) for g in merged)
    logger.info(
        f"Camp merge{' (dry run)' if dry_run else ''}: {len(merged)} groups, "
        f"{removed} camps removed, {len(failed)} failed"
    )
    return {
        "dry_run": dry_run,
        "groups": merged,
        "camps_removed": removed,
        "failed": failed,
        "completed_at": datetime.now(timezone.utc).isoformat(),
    }
