"""Session change model — append-only audit of differences detected by a job."""

from sqlalchemy import Column, String, DateTime, Text, ForeignKey, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from campscout.models.base import Base, UUIDMixin

CHANGE_TYPES = (
    "session_added",
    "session_removed",
    "status_changed",
    "price_changed",
    "dates_changed",
)


class SessionChange(UUIDMixin, Base):
    __tablename__ = "session_changes"

    job_id = Column(UUID(as_uuid=True), ForeignKey("scrape_jobs.id"), nullable=False, index=True)
    source_id = Column(UUID(as_uuid=True), ForeignKey("sources.id"), nullable=False, index=True)
    session_id = Column(UUID(as_uuid=True), ForeignKey("camp_sessions.id"), index=True)

    change_type = Column(String(30), nullable=False)
    previous_value = Column(Text)
    new_value = Column(Text)
    detected_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Relationships
    job = relationship("ScrapeJob", back_populates="changes")
