"""Pydantic schemas for the extraction worker contract and site exploration."""

from datetime import date
from typing import Any

from pydantic import BaseModel, Field, field_validator


class ExtractedSession(BaseModel):
    """One session as extraction logic reports it.

    Normalized fields drive dedup and change detection; raw text is kept
    alongside for review.
    """

    name: str
    start_date: date
    end_date: date | None = None
    price: float | None = None
    min_age: int | None = None
    max_age: int | None = None
    location: str | None = None
    registration_url: str | None = None
    availability: str = "active"  # active, sold_out, waitlist, cancelled
    image_urls: list[str] = []

    # Raw text as found on the page
    raw_dates: str | None = None
    raw_times: str | None = None
    raw_price: str | None = None
    raw_ages: str | None = None

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("session name is blank")
        return v


class ExtractedOrganization(BaseModel):
    name: str
    website_url: str | None = None
    description: str | None = None


class ExtractionResult(BaseModel):
    """Outcome of running extraction logic against a URL.

    A result with ``error`` set is a failed run; ``expected_empty`` marks a
    zero-session run the logic considers legitimate (catalog not yet published).
    """

    sessions: list[ExtractedSession] = []
    organization: ExtractedOrganization | None = None
    error: str | None = None
    expected_empty: bool = False
    note: str | None = None
    dropped: int = 0  # entries that failed validation

    @property
    def ok(self) -> bool:
        return self.error is None


class DirectoryLink(BaseModel):
    url: str
    name: str


class SiteExploration(BaseModel):
    """Navigation summary gathered once per development request."""

    url: str
    title: str | None = None
    site_type: str = "provider"  # provider or directory
    registration_system: str | None = None
    locations: list[str] = []
    categories: list[str] = []
    camp_links: list[str] = []
    external_links: list[DirectoryLink] = []
    internal_links: list[DirectoryLink] = []
    notes: list[str] = Field(default_factory=list)

    @property
    def is_directory(self) -> bool:
        return self.site_type == "directory"


class GenerationContext(BaseModel):
    """Everything the code generation service receives for one attempt."""

    source_name: str
    source_url: str
    market: str | None = None
    notes: str | None = None
    site_exploration: dict[str, Any] | None = None
    feedback_history: list[dict[str, Any]] = []
    previous_code: str | None = None
    code_version: int = 0
