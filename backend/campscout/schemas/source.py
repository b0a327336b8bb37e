"""Pydantic schemas for Source model."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from pydantic import BaseModel, ConfigDict

if TYPE_CHECKING:
    from campscout.schemas.job import ScrapeJobSummary


class SourceRead(BaseModel):
    """Full source output, health included."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    organization_id: UUID | None = None
    name: str
    url: str
    additional_urls: list[str] | None = None
    market: str | None = None
    is_active: bool
    scrape_frequency_hours: int
    scrape_timeout_seconds: int | None = None
    extraction_module: str | None = None
    has_extraction_logic: bool
    last_scraped_at: datetime | None = None
    next_scheduled_scrape: datetime | None = None

    consecutive_failures: int = 0
    consecutive_zero_results: int = 0
    total_runs: int = 0
    success_rate: float = 0.0
    needs_regeneration: bool = False
    last_error: str | None = None
    last_success_at: datetime | None = None
    last_failure_at: datetime | None = None

    closure_reason: str | None = None
    closed_at: datetime | None = None
    closed_by: str | None = None
    discovered_by: str | None = None
    created_at: datetime
    updated_at: datetime


class SourceSummary(BaseModel):
    """Minimal source info for nested responses."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    url: str
    is_active: bool


class SourceWithJobs(SourceRead):
    """Source with recent jobs and its health bucket."""

    health_status: str
    recent_jobs: list["ScrapeJobSummary"] = []


class RunSourceResponse(BaseModel):
    """Response from a manual run request."""

    message: str
    source_id: UUID
    job_id: UUID | None = None


class RunDueResponse(BaseModel):
    due: int
    created: int
    skipped: int
