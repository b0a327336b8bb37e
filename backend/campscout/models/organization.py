"""Organization model — camp providers, parks departments, nonprofits, etc."""

from sqlalchemy import Column, String, Index
from sqlalchemy.orm import relationship

from campscout.models.base import Base, TimestampMixin, UUIDMixin


class Organization(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "organizations"

    # Identity
    name = Column(String(255), nullable=False)
    slug = Column(String(255), unique=True, nullable=False, index=True)
    domain = Column(String(255), unique=True, index=True)  # hostname without www.
    website_url = Column(String(500))

    # Market (city slug) the organization was discovered in
    market = Column(String(100), index=True)

    # Relationships
    sources = relationship("Source", back_populates="organization")
    camps = relationship("Camp", back_populates="organization")

    __table_args__ = (
        Index("idx_org_market_name", "market", "name"),
    )
