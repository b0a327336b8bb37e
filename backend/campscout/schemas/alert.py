"""Pydantic schemas for ScraperAlert model."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ScraperAlertRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    source_id: UUID | None = None
    alert_type: str
    message: str
    severity: str
    created_at: datetime
    acknowledged_at: datetime | None = None
    acknowledged_by: str | None = None


class AlertAcknowledge(BaseModel):
    acknowledged_by: str = Field(min_length=1, max_length=100)
