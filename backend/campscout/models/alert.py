"""Scraper alert model — operational notifications, acknowledged but never resolved."""

import enum

from sqlalchemy import Column, String, DateTime, Text, ForeignKey, Index, func
from sqlalchemy.dialects.postgresql import UUID

from campscout.models.base import Base, UUIDMixin


class AlertType(str, enum.Enum):
    SCRAPER_DISABLED = "scraper_disabled"
    SCRAPER_DEGRADED = "scraper_degraded"
    HIGH_CHANGE_VOLUME = "high_change_volume"
    SCRAPER_NEEDS_REGENERATION = "scraper_needs_regeneration"
    NEW_SOURCES_PENDING = "new_sources_pending"
    ZERO_RESULTS = "zero_results"
    RATE_LIMITED = "rate_limited"
    SOURCE_RECOVERED = "source_recovered"
    CROSS_SOURCE_DUPLICATES = "cross_source_duplicates"


class Severity(str, enum.Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ScraperAlert(UUIDMixin, Base):
    __tablename__ = "scraper_alerts"

    # Null for system-wide alerts
    source_id = Column(UUID(as_uuid=True), ForeignKey("sources.id"), index=True)

    alert_type = Column(String(50), nullable=False, index=True)
    message = Column(Text, nullable=False)
    severity = Column(String(20), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    acknowledged_at = Column(DateTime(timezone=True))
    acknowledged_by = Column(String(100))

    __table_args__ = (
        Index("idx_alert_unacknowledged", "acknowledged_at", "created_at"),
    )
