"""
Root pytest configuration for backend tests.

Provides:
- An in-memory SQLite session per test, schema built from the model metadata
- Factories for organizations, sources, jobs, sessions and development requests
- Fakes for the extraction worker, code generator and site explorer
"""

import uuid
from datetime import date, datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from campscout.config import get_settings
from campscout.models.base import Base
from campscout.models.organization import Organization
from campscout.models.source import Source
from campscout.models.scrape_job import ScrapeJob
from campscout.models.camp import Camp, CampSession
from campscout.models.session_change import SessionChange  # noqa: F401
from campscout.models.alert import ScraperAlert  # noqa: F401
from campscout.models.development_request import DevelopmentRequest
from campscout.schemas.extraction import ExtractedSession, ExtractionResult, SiteExploration


@pytest.fixture(autouse=True)
def fresh_settings():
    """Settings are cached; clear around each test so env overrides apply."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def db():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


class RecordingScheduler:
    """Stands in for the Celery deferred start; records scheduled job ids."""

    def __init__(self):
        self.calls = []

    def __call__(self, job_id):
        self.calls.append(job_id)


@pytest.fixture
def scheduler():
    return RecordingScheduler()


# =============================================================================
# FACTORIES
# =============================================================================

@pytest.fixture
def make_org(db):
    def _make(name="Riverside Parks", domain=None, market="austin"):
        domain = domain or f"{uuid.uuid4().hex[:8]}.example.org"
        org = Organization(
            name=name,
            slug=f"{name.lower().replace(' ', '-')}-{uuid.uuid4().hex[:6]}",
            domain=domain,
            website_url=f"https://{domain}",
            market=market,
        )
        db.add(org)
        db.commit()
        return org
    return _make


@pytest.fixture
def make_source(db, make_org):
    def _make(organization=None, url=None, is_active=True, code="def extract(url, hints):\n    return []\n",
              **fields):
        organization = organization or make_org()
        source = Source(
            organization_id=organization.id,
            name=fields.pop("name", f"{organization.name} camps"),
            url=url or f"https://{organization.domain}/camps",
            market=organization.market,
            is_active=is_active,
            scrape_frequency_hours=fields.pop("scrape_frequency_hours", 24),
            extraction_code=code,
            additional_urls=[],
            url_history=fields.pop("url_history", []),
            **fields,
        )
        db.add(source)
        db.commit()
        return source
    return _make


@pytest.fixture
def make_job(db):
    def _make(source, status="pending", **fields):
        job = ScrapeJob(id=uuid.uuid4(), source_id=source.id, status=status, triggered_by="test", **fields)
        db.add(job)
        db.commit()
        return job
    return _make


@pytest.fixture
def make_session(db):
    def _make(organization, name, start_date=date(2026, 6, 8), source=None, camp=None, **fields):
        if camp is None:
            camp = Camp(organization_id=organization.id, name=name, image_urls=[])
            db.add(camp)
            db.flush()
        session = CampSession(
            camp_id=camp.id,
            organization_id=organization.id,
            source_id=source.id if source else None,
            name=name,
            start_date=start_date,
            status=fields.pop("status", "active"),
            is_active=fields.pop("is_active", True),
            **fields,
        )
        db.add(session)
        db.commit()
        return session
    return _make


@pytest.fixture
def make_request(db):
    def _make(name="Lakeside Day Camp", url=None, status="pending", **fields):
        request = DevelopmentRequest(
            source_name=name,
            source_url=url or f"https://{uuid.uuid4().hex[:8]}.example.com/summer",
            market=fields.pop("market", "austin"),
            status=status,
            requested_at=fields.pop("requested_at", datetime.now(timezone.utc)),
            code_version=fields.pop("code_version", 0),
            feedback_history=fields.pop("feedback_history", []),
            test_retry_count=fields.pop("test_retry_count", 0),
            max_test_retries=fields.pop("max_test_retries", 3),
            **fields,
        )
        db.add(request)
        db.commit()
        return request
    return _make


def extracted(name, start=date(2026, 6, 8), **fields):
    return ExtractedSession(name=name, start_date=start, **fields)


# =============================================================================
# FAKES
# =============================================================================

class FakeWorker:
    """Extraction worker returning canned results."""

    def __init__(self, result=None, code_result=None, raises=None):
        self.result = result or ExtractionResult()
        self.code_result = code_result or ExtractionResult()
        self.raises = raises
        self.code_calls = []

    def run_for_source(self, source):
        if self.raises:
            raise self.raises
        return self.result

    def run_code(self, url, code, hints=None, timeout=None):
        self.code_calls.append({"url": url, "code": code, "hints": hints, "timeout": timeout})
        return self.code_result


class FakeGenerator:
    """Code generator returning a fixed blob (or None) and recording contexts."""

    def __init__(self, code="def extract(url, hints):\n    return []\n"):
        self.code = code
        self.contexts = []

    def generate(self, context):
        self.contexts.append(context)
        return self.code


class FakeExplorer:
    def __init__(self, exploration=None):
        self.exploration = exploration
        self.calls = 0

    def explore(self, url):
        self.calls += 1
        return self.exploration or SiteExploration(url=url)
