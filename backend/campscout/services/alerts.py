"""Alert emission — append-only operational notifications."""

import logging
from datetime import datetime, timezone, timedelta
from uuid import UUID

from sqlalchemy.orm import Session

from campscout.models.alert import AlertType, ScraperAlert, Severity
from campscout.services.errors import NotFoundError

logger = logging.getLogger(__name__)

_LOG_LEVELS = {
    Severity.INFO: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.ERROR: logging.ERROR,
    Severity.CRITICAL: logging.CRITICAL,
}


def emit_alert(
    db: Session,
    alert_type: AlertType,
    message: str,
    severity: Severity,
    source_id: UUID | None = None,
) -> ScraperAlert:
    """Add an alert to the session. The caller owns the commit."""
    alert = ScraperAlert(
        source_id=source_id,
        alert_type=alert_type.value,
        message=message,
        severity=severity.value,
        created_at=datetime.now(timezone.utc),
    )
    db.add(alert)
    logger.log(_LOG_LEVELS[severity], f"[{alert_type.value}] {message}")
    return alert


def has_recent_unacknowledged(db: Session, alert_type: AlertType, hours: int = 24) -> bool:
    """True when an unacknowledged alert of this type was raised within the window."""
    cutoff = datetime.now(timezone.utc) - timedelta(hours=hours)
    return db.query(ScraperAlert.id).filter(
        ScraperAlert.alert_type == alert_type.value,
        ScraperAlert.acknowledged_at.is_(None),
        ScraperAlert.created_at >= cutoff,
    ).first() is not None


def acknowledge_alert(db: Session, alert_id: UUID, acknowledged_by: str) -> ScraperAlert:
    alert = db.get(ScraperAlert, alert_id)
    if not alert:
        raise NotFoundError(f"Alert {alert_id} not found")
    if alert.acknowledged_at is None:
        alert.acknowledged_at = datetime.now(timezone.utc)
        alert.acknowledged_by = acknowledged_by
        db.commit()
    return alert
