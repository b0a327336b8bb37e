"""Pydantic schemas for maintenance endpoints."""

from uuid import UUID

from pydantic import BaseModel


class CampMergeRequest(BaseModel):
    organization_id: UUID | None = None
    dry_run: bool = True


class CampMergeGroup(BaseModel):
    keeper_id: str
    keeper_name: str
    removed_ids: list[str]
    sessions_moved: int


class CampMergeResponse(BaseModel):
    dry_run: bool
    groups: list[CampMergeGroup]
    camps_removed: int
    failed: list[dict]
    completed_at: str


class DuplicateGroup(BaseModel):
    organization_id: str
    start_date: str
    session_ids: list[str]
    names: list[str]
    pairs: list[dict]


class TaskQueuedResponse(BaseModel):
    message: str
    task_id: str
