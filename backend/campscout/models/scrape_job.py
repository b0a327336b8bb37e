"""Scrape job model — audit log per extraction attempt against a source."""

from sqlalchemy import Column, String, Integer, DateTime, Text, ForeignKey, Index, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from campscout.models.base import Base, TimestampMixin, UUIDMixin

JOB_PENDING = "pending"
JOB_RUNNING = "running"
JOB_COMPLETED = "completed"
JOB_FAILED = "failed"

IN_FLIGHT_STATUSES = (JOB_PENDING, JOB_RUNNING)

_IN_FLIGHT_PREDICATE = text("status IN ('pending', 'running')")


class ScrapeJob(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "scrape_jobs"

    source_id = Column(UUID(as_uuid=True), ForeignKey("sources.id"), nullable=False, index=True)

    status = Column(String(20), nullable=False, default=JOB_PENDING)  # pending, running, completed, failed
    triggered_by = Column(String(100))  # schedule, manual, auto-approval, remediation, ...
    workflow_id = Column(String(255))  # handle of the dispatched workflow task

    started_at = Column(DateTime(timezone=True))
    completed_at = Column(DateTime(timezone=True))
    sessions_found = Column(Integer, default=0)
    sessions_created = Column(Integer, default=0)
    sessions_updated = Column(Integer, default=0)
    sessions_removed = Column(Integer, default=0)
    error_message = Column(Text)

    # Relationships
    source = relationship("Source", back_populates="jobs")
    changes = relationship("SessionChange", back_populates="job")

    __table_args__ = (
        Index("idx_job_source_status", "source_id", "status"),
        # At most one pending/running job per source
        Index(
            "uq_job_in_flight_per_source",
            "source_id",
            unique=True,
            postgresql_where=_IN_FLIGHT_PREDICATE,
            sqlite_where=_IN_FLIGHT_PREDICATE,
        ),
    )
