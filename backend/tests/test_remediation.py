"""Tests for bulk remediation operations."""

from datetime import datetime, timezone

from campscout.models.development_request import DevelopmentRequest
from campscout.models.scrape_job import ScrapeJob
from campscout.models.source import Source
from campscout.services import development, remediation

CODE = "def extract(url, hints):\n    return []\n"


class TestLinkCompletedRequests:
    def test_links_and_deploys(self, db, make_request, scheduler):
        request = make_request(status="completed", generated_code=CODE,
                               url="https://hillcountry.example.com/camps",
                               last_test_sessions_found=6,
                               completed_at=datetime.now(timezone.utc))
        make_request(status="completed")  # directory parent, no code

        result = remediation.link_completed_requests(db, schedule=scheduler)

        assert result == {"linked": 1, "jobs_created": 1}
        request = db.get(DevelopmentRequest, request.id)
        source = db.get(Source, request.source_id)
        assert source.is_active
        assert source.extraction_code == CODE

    def test_running_twice_creates_no_extra_job(self, db, make_request, scheduler):
        make_request(status="completed", generated_code=CODE, last_test_sessions_found=4,
                     completed_at=datetime.now(timezone.utc))

        remediation.link_completed_requests(db, schedule=scheduler)
        second = remediation.link_completed_requests(db, schedule=scheduler)

        assert second == {"linked": 0, "jobs_created": 0}
        assert db.query(ScrapeJob).count() == 1

    def test_expected_empty_completion_stays_undeployed(self, db, make_request, scheduler):
        request = make_request(status="testing", generated_code=CODE)
        development.record_test_results(
            db, request.id, 0,
            sample_data={"sessions": [], "expectedEmpty": True, "note": "2027 catalog not yet published"},
        )

        result = remediation.link_completed_requests(db, schedule=scheduler)

        assert result == {"linked": 0, "jobs_created": 0}
        assert db.query(ScrapeJob).count() == 0
        assert db.query(Source).count() == 0
        assert scheduler.calls == []

    def test_previously_deployed_code_relinks(self, db, make_request, scheduler):
        make_request(status="completed", final_code=CODE, completed_at=datetime.now(timezone.utc))
        assert remediation.link_completed_requests(db, schedule=scheduler) == {"linked": 1, "jobs_created": 1}


class TestActivateSources:
    def test_activates_inactive_sources_with_logic(self, db, make_source, scheduler):
        ready = make_source(is_active=False)
        make_source(is_active=False, code=None)
        make_source(is_active=False, closed_at=datetime.now(timezone.utc), closed_by="system_404")

        result = remediation.activate_sources_with_logic(db, schedule=scheduler)

        assert result == {"activated": 1, "jobs_created": 1}
        assert db.get(Source, ready.id).is_active
        assert db.query(ScrapeJob).one().triggered_by == "bulk-activation"

    def test_market_filter(self, db, make_org, make_source, scheduler):
        make_source(organization=make_org(market="denver"), is_active=False)
        result = remediation.activate_sources_with_logic(db, market="austin", schedule=scheduler)
        assert result["activated"] == 0


class TestBulkApprove:
    def test_approves_waiting_requests(self, db, make_request, scheduler):
        make_request(status="needs_feedback", generated_code=CODE)
        make_request(status="needs_feedback", generated_code=CODE)
        make_request(status="failed", generated_code=CODE)

        result = remediation.bulk_approve_needs_feedback(db, schedule=scheduler)

        assert result == {"approved": 2, "jobs_created": 2}
        statuses = sorted(r.status for r in db.query(DevelopmentRequest).all())
        assert statuses == ["completed", "completed", "failed"]


class TestOrphanedSources:
    def test_dry_run_reports_without_creating(self, db, make_source, make_request):
        make_source(code=None)
        covered = make_source(code=None)
        make_request(source_id=covered.id, url=covered.url, status="failed")
        make_source()

        result = remediation.create_requests_for_orphaned_sources(db)

        assert result["dry_run"] is True
        assert result["orphaned_sources"] == 2
        assert result["already_have_requests"] == 1
        assert result["created"] == 1
        assert db.query(DevelopmentRequest).count() == 1

    def test_creates_requests(self, db, make_source):
        orphan = make_source(code=None)

        result = remediation.create_requests_for_orphaned_sources(db, dry_run=False)

        assert result["created"] == 1
        request = db.query(DevelopmentRequest).one()
        assert request.source_id == orphan.id
        assert request.requested_by == "auto-orphan-fill"
