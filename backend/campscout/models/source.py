"""Source model — one external site to crawl, its extraction logic and health state."""

from sqlalchemy import Column, String, Integer, Float, Boolean, DateTime, Text, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from campscout.models.base import Base, JSONDocument, TimestampMixin, UUIDMixin


class Source(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "sources"

    organization_id = Column(UUID(as_uuid=True), ForeignKey("organizations.id"), index=True)

    # Site info
    name = Column(String(255), nullable=False)
    url = Column(String(1000), nullable=False, index=True)
    additional_urls = Column(JSONDocument, default=list)
    market = Column(String(100), index=True)

    # Scrape config
    is_active = Column(Boolean, default=False, nullable=False)
    scrape_frequency_hours = Column(Integer, default=24, nullable=False)
    scrape_timeout_seconds = Column(Integer)

    # Extraction logic: a built-in registry name XOR a stored generated blob
    extraction_module = Column(String(100))
    extraction_code = Column(Text)
    parsing_notes = Column(Text)

    # Scrape state
    last_scraped_at = Column(DateTime(timezone=True))
    next_scheduled_scrape = Column(DateTime(timezone=True), index=True)

    # Health
    consecutive_failures = Column(Integer, default=0, nullable=False)
    consecutive_zero_results = Column(Integer, default=0, nullable=False)
    total_runs = Column(Integer, default=0, nullable=False)
    success_rate = Column(Float, default=0.0, nullable=False)
    needs_regeneration = Column(Boolean, default=False, nullable=False)
    last_error = Column(Text)
    last_success_at = Column(DateTime(timezone=True))
    last_failure_at = Column(DateTime(timezone=True))
    url_history = Column(JSONDocument, default=list)  # [{url, status, checked_at}]

    # Closure tracking
    closure_reason = Column(Text)
    closed_at = Column(DateTime(timezone=True))
    closed_by = Column(String(50))  # "system" or operator id

    # Discovery metadata
    discovered_by = Column(String(50), default="manual")  # manual, market_seed, directory, remediation

    # Relationships
    organization = relationship("Organization", back_populates="sources")
    jobs = relationship("ScrapeJob", back_populates="source")
    sessions = relationship("CampSession", back_populates="source")

    __table_args__ = (
        Index("idx_source_active_next", "is_active", "next_scheduled_scrape"),
    )

    @property
    def has_extraction_logic(self) -> bool:
        return bool(self.extraction_module or self.extraction_code)

    def attach_code(self, code: str) -> None:
        """Deploy a generated code blob, replacing any built-in module."""
        self.extraction_code = code
        self.extraction_module = None

    def attach_module(self, module_name: str) -> None:
        """Point the source at a built-in extraction module, dropping stored code."""
        self.extraction_module = module_name
        self.extraction_code = None
