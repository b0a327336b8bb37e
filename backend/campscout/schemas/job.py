"""Pydantic schemas for ScrapeJob and SessionChange models."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from pydantic import BaseModel, ConfigDict

if TYPE_CHECKING:
    from campscout.schemas.source import SourceSummary


class ScrapeJobSummary(BaseModel):
    """Minimal job info for nested responses."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    status: str
    triggered_by: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    sessions_found: int | None = 0
    error_message: str | None = None


class ScrapeJobRead(ScrapeJobSummary):
    """Full job output."""

    source_id: UUID
    workflow_id: str | None = None
    sessions_created: int | None = 0
    sessions_updated: int | None = 0
    sessions_removed: int | None = 0
    created_at: datetime


class SessionChangeRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    session_id: UUID | None = None
    change_type: str
    previous_value: str | None = None
    new_value: str | None = None
    detected_at: datetime


class ScrapeJobWithSource(ScrapeJobRead):
    source: "SourceSummary | None" = None


class ScrapeJobWithChanges(ScrapeJobWithSource):
    """Job detail with the changes it recorded."""

    changes: list[SessionChangeRead] = []
