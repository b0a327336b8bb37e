"""Pydantic schemas for DevelopmentRequest model."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class DevelopmentRequestCreate(BaseModel):
    """Fields for queueing a development request."""

    source_name: str = Field(min_length=1, max_length=255)
    source_url: str = Field(min_length=1, max_length=1000)
    market: str | None = None
    source_id: UUID | None = None
    notes: str | None = None
    requested_by: str | None = None


class DevelopmentRequestSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    source_name: str
    source_url: str
    market: str | None = None
    status: str
    code_version: int = 0
    test_retry_count: int = 0
    max_test_retries: int = 3
    last_test_sessions_found: int | None = None
    requested_at: datetime
    completed_at: datetime | None = None


class DevelopmentRequestRead(DevelopmentRequestSummary):
    """Full request output, generated code and feedback included."""

    source_id: UUID | None = None
    parent_request_id: UUID | None = None
    notes: str | None = None
    requested_by: str | None = None
    claimed_by: str | None = None
    claimed_at: datetime | None = None
    generated_code: str | None = None
    final_code: str | None = None
    feedback_history: list[dict[str, Any]] | None = None
    last_test_run_at: datetime | None = None
    last_test_error: str | None = None
    last_test_sample_data: dict[str, Any] | None = None
    site_exploration: dict[str, Any] | None = None
    updated_at: datetime


class FeedbackCreate(BaseModel):
    text: str = Field(min_length=1)
    author: str = Field(min_length=1, max_length=100)


class ForceRestartRequest(BaseModel):
    clear_code: bool = False
    clear_feedback: bool = False


class MarkFailedRequest(BaseModel):
    reason: str | None = None


class ApproveResponse(BaseModel):
    request_id: UUID
    status: str
    job_id: UUID | None = None
