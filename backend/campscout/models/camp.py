"""Camp and session models — the canonical records extraction feeds into."""

from sqlalchemy import Column, String, Integer, Float, Boolean, Date, DateTime, Text, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from campscout.models.base import Base, JSONDocument, TimestampMixin, UUIDMixin


class Camp(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "camps"

    organization_id = Column(UUID(as_uuid=True), ForeignKey("organizations.id"), nullable=False, index=True)
    name = Column(String(500), nullable=False)
    description = Column(Text)
    image_urls = Column(JSONDocument, default=list)

    # Relationships
    organization = relationship("Organization", back_populates="camps")
    sessions = relationship("CampSession", back_populates="camp")


class CampSession(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "camp_sessions"

    camp_id = Column(UUID(as_uuid=True), ForeignKey("camps.id"), nullable=False, index=True)
    organization_id = Column(UUID(as_uuid=True), ForeignKey("organizations.id"), nullable=False, index=True)
    # Null for records imported before per-source tracking existed
    source_id = Column(UUID(as_uuid=True), ForeignKey("sources.id"), index=True)

    name = Column(String(500), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date)
    price = Column(Float)
    min_age = Column(Integer)
    max_age = Column(Integer)
    location = Column(String(500))
    registration_url = Column(Text)
    status = Column(String(20), default="active", nullable=False)  # active, sold_out, cancelled, removed

    is_active = Column(Boolean, default=True, nullable=False)
    last_scraped_at = Column(DateTime(timezone=True))
    last_seen_job_id = Column(UUID(as_uuid=True))
    removal_detected_at = Column(DateTime(timezone=True))

    # Relationships
    camp = relationship("Camp", back_populates="sessions")
    source = relationship("Source", back_populates="sessions")

    __table_args__ = (
        Index("idx_session_source_start", "source_id", "start_date"),
        Index("idx_session_org_start", "organization_id", "start_date"),
    )
