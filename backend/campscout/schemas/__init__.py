"""Pydantic schemas package."""

from campscout.schemas.source import (
    RunDueResponse,
    RunSourceResponse,
    SourceRead,
    SourceSummary,
    SourceWithJobs,
)
from campscout.schemas.job import (
    ScrapeJobRead,
    ScrapeJobSummary,
    ScrapeJobWithChanges,
    ScrapeJobWithSource,
    SessionChangeRead,
)
from campscout.schemas.development import (
    ApproveResponse,
    DevelopmentRequestCreate,
    DevelopmentRequestRead,
    DevelopmentRequestSummary,
    FeedbackCreate,
    ForceRestartRequest,
    MarkFailedRequest,
)
from campscout.schemas.alert import AlertAcknowledge, ScraperAlertRead
from campscout.schemas.maintenance import (
    CampMergeRequest,
    CampMergeResponse,
    DuplicateGroup,
    TaskQueuedResponse,
)

# Rebuild models to resolve forward references
SourceWithJobs.model_rebuild()
ScrapeJobWithSource.model_rebuild()
ScrapeJobWithChanges.model_rebuild()

__all__ = [
    # Source
    "RunDueResponse",
    "RunSourceResponse",
    "SourceRead",
    "SourceSummary",
    "SourceWithJobs",
    # ScrapeJob
    "ScrapeJobRead",
    "ScrapeJobSummary",
    "ScrapeJobWithChanges",
    "ScrapeJobWithSource",
    "SessionChangeRead",
    # DevelopmentRequest
    "ApproveResponse",
    "DevelopmentRequestCreate",
    "DevelopmentRequestRead",
    "DevelopmentRequestSummary",
    "FeedbackCreate",
    "ForceRestartRequest",
    "MarkFailedRequest",
    # ScraperAlert
    "AlertAcknowledge",
    "ScraperAlertRead",
    # Maintenance
    "CampMergeRequest",
    "CampMergeResponse",
    "DuplicateGroup",
    "TaskQueuedResponse",
]
