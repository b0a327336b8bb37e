"""Development request model — queued work to produce or repair a source's extraction logic."""

from sqlalchemy import Column, String, Integer, DateTime, Text, ForeignKey, Index, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from campscout.models.base import Base, JSONDocument, TimestampMixin, UUIDMixin

REQUEST_PENDING = "pending"
REQUEST_IN_PROGRESS = "in_progress"
REQUEST_TESTING = "testing"
REQUEST_NEEDS_FEEDBACK = "needs_feedback"
REQUEST_COMPLETED = "completed"
REQUEST_FAILED = "failed"

OPEN_STATUSES = (REQUEST_PENDING, REQUEST_IN_PROGRESS, REQUEST_TESTING, REQUEST_NEEDS_FEEDBACK)


class DevelopmentRequest(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "development_requests"

    # Target site
    source_name = Column(String(255), nullable=False)
    source_url = Column(String(1000), nullable=False, index=True)
    market = Column(String(100), index=True)
    source_id = Column(UUID(as_uuid=True), ForeignKey("sources.id"), index=True)
    parent_request_id = Column(UUID(as_uuid=True), ForeignKey("development_requests.id"))

    notes = Column(Text)
    requested_by = Column(String(100))
    requested_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # State machine: pending -> in_progress -> testing -> pending | completed | failed | needs_feedback
    status = Column(String(20), nullable=False, default=REQUEST_PENDING)
    claimed_by = Column(String(255))
    claimed_at = Column(DateTime(timezone=True))

    # Generated logic
    generated_code = Column(Text)
    code_version = Column(Integer, default=0, nullable=False)
    final_code = Column(Text)

    # [{timestamp, author, source, text, code_version_before}], source is auto-test or human
    # JSON columns are replaced, never mutated in place
    feedback_history = Column(JSONDocument, default=list)

    # Test loop
    test_retry_count = Column(Integer, default=0, nullable=False)
    max_test_retries = Column(Integer, default=3, nullable=False)
    last_test_run_at = Column(DateTime(timezone=True))
    last_test_sessions_found = Column(Integer)
    last_test_error = Column(Text)
    last_test_sample_data = Column(JSONDocument)

    # Exploration summary, persisted once per request
    site_exploration = Column(JSONDocument)

    completed_at = Column(DateTime(timezone=True))

    # Relationships
    source = relationship("Source")

    __table_args__ = (
        Index("idx_devreq_status_requested", "status", "requested_at"),
    )
