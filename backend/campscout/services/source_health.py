"""Source health model — rolling per-source counters, alerts and the regeneration flag.

Outcome handling is the only writer of the health counters. Jobs are
serialized per source, so no two call sites update one source concurrently.

Usage:
    from campscout.services.source_health import Success, Failure, record_outcome

    record_outcome(db, source, Success(sessions_found=12))
    record_outcome(db, source, Failure(error="HTTP 503"))
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone, timedelta
from typing import Callable

import httpx
from sqlalchemy import func
from sqlalchemy.orm import Session

from campscout.config import get_settings
from campscout.extraction.registry import list_modules
from campscout.models.alert import AlertType, Severity
from campscout.models.development_request import DevelopmentRequest
from campscout.models.source import Source
from campscout.services.alerts import emit_alert

logger = logging.getLogger(__name__)

_RATE_LIMIT_RE = re.compile(r"429|rate.?limit", re.IGNORECASE)
_NOT_FOUND_RE = re.compile(r"404|not found", re.IGNORECASE)

URL_HISTORY_LIMIT = 20


@dataclass(frozen=True)
class Success:
    sessions_found: int


@dataclass(frozen=True)
class Failure:
    error: str

    @property
    def is_rate_limited(self) -> bool:
        return bool(_RATE_LIMIT_RE.search(self.error or ""))

    @property
    def is_not_found(self) -> bool:
        return bool(_NOT_FOUND_RE.search(self.error or ""))


def is_eligible(source: Source, in_flight: bool) -> bool:
    """A source can run when it is active and has no pending/running job."""
    return bool(source.is_active) and not in_flight


def _recompute_success_rate(source: Source, succeeded: bool) -> None:
    total = source.total_runs or 0
    successes = round((source.success_rate or 0.0) * total)
    if succeeded:
        successes += 1
    source.total_runs = total + 1
    source.success_rate = successes / source.total_runs


def _consecutive_404s(history: list[dict]) -> int:
    count = 0
    for entry in reversed(history):
        if entry.get("status") != "404":
            break
        count += 1
    return count


def _append_url_history(source: Source, status: str, now: datetime) -> list[dict]:
    history = list(source.url_history or [])
    history.append({"url": source.url, "status": status, "checked_at": now.isoformat()})
    history = history[-URL_HISTORY_LIMIT:]
    source.url_history = history
    return history


def record_outcome(db: Session, source: Source, outcome: Success | Failure, now: datetime | None = None) -> None:
    """Fold one job outcome into the source's health state.

    Adds any resulting alerts to the session and always computes the next
    scheduled attempt. The caller owns the commit.
    """
    settings = get_settings()
    now = now or datetime.now(timezone.utc)
    source.last_scraped_at = now

    if isinstance(outcome, Success):
        _record_success(db, source, outcome, now, settings)
    else:
        _record_failure(db, source, outcome, now, settings)


def _record_success(db: Session, source: Source, outcome: Success, now: datetime, settings) -> None:
    source.consecutive_failures = 0
    source.last_error = None
    _recompute_success_rate(source, succeeded=True)
    source.next_scheduled_scrape = now + timedelta(hours=source.scrape_frequency_hours or settings.default_scrape_frequency_hours)

    history = source.url_history or []
    if history and history[-1].get("status") == "404":
        _append_url_history(source, "ok", now)

    if outcome.sessions_found > 0:
        source.consecutive_zero_results = 0
        source.last_success_at = now
        return

    zero_count = (source.consecutive_zero_results or 0) + 1
    source.consecutive_zero_results = zero_count
    emit_alert(
        db,
        AlertType.ZERO_RESULTS,
        f'Scraper "{source.name}" returned 0 sessions ({zero_count} consecutive), may need attention',
        Severity.WARNING,
        source_id=source.id,
    )
    if zero_count >= settings.zero_result_regeneration_threshold:
        source.needs_regeneration = True


def _record_failure(db: Session, source: Source, outcome: Failure, now: datetime, settings) -> None:
    rate_limited = outcome.is_rate_limited
    not_found = outcome.is_not_found

    failures = source.consecutive_failures or 0
    if not rate_limited:
        failures += 1
    source.consecutive_failures = failures
    source.last_error = outcome.error
    source.last_failure_at = now
    _recompute_success_rate(source, succeeded=False)

    if not not_found and not rate_limited and failures >= settings.degraded_failure_threshold:
        source.needs_regeneration = True

    consecutive_404s = 0
    if not_found:
        history = _append_url_history(source, "404", now)
        consecutive_404s = _consecutive_404s(history)
    auto_disable = not_found and source.is_active and consecutive_404s >= settings.auto_disable_404_threshold

    if rate_limited:
        source.next_scheduled_scrape = now + timedelta(hours=settings.rate_limit_backoff_hours)
    else:
        frequency = source.scrape_frequency_hours or settings.default_scrape_frequency_hours
        backoff_hours = min(frequency * (2 ** failures), settings.max_backoff_hours)
        source.next_scheduled_scrape = now + timedelta(hours=backoff_hours)

    if auto_disable:
        source.is_active = False
        source.closure_reason = f"Auto-disabled: URL returned 404 for {consecutive_404s} consecutive attempts"
        source.closed_at = now
        source.closed_by = "system"

    if rate_limited:
        emit_alert(
            db,
            AlertType.RATE_LIMITED,
            f'Source "{source.name}" was rate-limited. Next attempt in {settings.rate_limit_backoff_hours} hours.',
            Severity.INFO,
            source_id=source.id,
        )
    elif auto_disable:
        emit_alert(
            db,
            AlertType.SCRAPER_DISABLED,
            f'Source "{source.name}" auto-disabled after {consecutive_404s} consecutive 404 errors. '
            f"URL needs to be updated: {source.url}",
            Severity.ERROR,
            source_id=source.id,
        )
    elif failures == settings.degraded_failure_threshold:
        emit_alert(
            db,
            AlertType.SCRAPER_DEGRADED,
            f'Scraper "{source.name}" has failed {failures} times consecutively. Last error: {outcome.error}',
            Severity.WARNING,
            source_id=source.id,
        )
    elif failures >= settings.regeneration_failure_threshold and not not_found:
        emit_alert(
            db,
            AlertType.SCRAPER_NEEDS_REGENERATION,
            f'Scraper "{source.name}" needs regeneration after {failures} consecutive failures.',
            Severity.ERROR,
            source_id=source.id,
        )


def mark_deployed(source: Source) -> None:
    """Reset health after new extraction logic is deployed.

    This is the only path that clears needs_regeneration.
    """
    source.needs_regeneration = False
    source.consecutive_failures = 0
    source.consecutive_zero_results = 0
    source.last_error = None


def health_status(source: Source) -> str:
    """Bucket a source for dashboards: healthy, degraded, failing or no_logic."""
    if not source.has_extraction_logic:
        return "no_logic"
    if source.needs_regeneration or (source.consecutive_failures or 0) >= get_settings().regeneration_failure_threshold:
        return "failing"
    if (source.consecutive_failures or 0) > 0 or (source.consecutive_zero_results or 0) > 0:
        return "degraded"
    return "healthy"


def automation_metrics(db: Session) -> dict:
    """Source and development counts for the health dashboard."""
    sources = db.query(Source).all()
    buckets = {"healthy": 0, "degraded": 0, "failing": 0, "no_logic": 0}
    for source in sources:
        buckets[health_status(source)] += 1

    request_counts = dict(
        db.query(DevelopmentRequest.status, func.count(DevelopmentRequest.id))
        .group_by(DevelopmentRequest.status)
        .all()
    )

    return {
        "sources_total": len(sources),
        "sources_active": sum(1 for s in sources if s.is_active),
        "sources_needing_regeneration": sum(1 for s in sources if s.needs_regeneration),
        "health": buckets,
        "development_requests": request_counts,
        "extraction_modules": sorted(list_modules()),
    }


# --- Recovery of sources auto-disabled for 404 ---


def _head_ok(url: str) -> bool:
    settings = get_settings()
    try:
        response = httpx.head(
            url,
            follow_redirects=True,
            timeout=15,
            headers={"User-Agent": settings.user_agent},
        )
        return response.status_code < 400
    except httpx.HTTPError as e:
        logger.info(f"Recovery check failed for {url}: {e}")
        return False


def recovery_candidates(db: Session, now: datetime | None = None) -> list[Source]:
    """Inactive sources closed for 404 longer ago than the minimum closure age."""
    settings = get_settings()
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(days=settings.recovery_min_closed_days)
    return db.query(Source).filter(
        Source.is_active == False,  # noqa: E712
        Source.closed_at.isnot(None),
        Source.closed_at < cutoff,
        Source.closure_reason.ilike("%404%"),
    ).all()


def recover_disabled_sources(db: Session, url_check: Callable[[str], bool] = _head_ok) -> dict:
    """Re-enable 404-closed sources whose URL answers again."""
    now = datetime.now(timezone.utc)
    checked = 0
    recovered = 0

    for source in recovery_candidates(db, now):
        checked += 1
        if not url_check(source.url):
            continue

        source.is_active = True
        source.closure_reason = None
        source.closed_at = None
        source.closed_by = None
        source.url_history = []
        source.last_error = None
        source.consecutive_failures = 0
        source.consecutive_zero_results = 0
        source.next_scheduled_scrape = now
        emit_alert(
            db,
            AlertType.SOURCE_RECOVERED,
            f'Source "{source.name}" has been automatically re-enabled, URL is responding again: {source.url}',
            Severity.INFO,
            source_id=source.id,
        )
        db.commit()
        recovered += 1

    logger.info(f"Source recovery: checked {checked}, recovered {recovered}")
    return {"checked": checked, "recovered": recovered}
