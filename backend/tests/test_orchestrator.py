"""Tests for job creation, deferred start, workflow execution and sweeps."""

from datetime import date, datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from campscout.config import get_settings
from campscout.models.alert import ScraperAlert
from campscout.models.camp import CampSession
from campscout.models.scrape_job import ScrapeJob
from campscout.models.session_change import SessionChange
from campscout.models.source import Source
from campscout.schemas.extraction import ExtractionResult
from campscout.services import orchestrator
from campscout.services.errors import NotFoundError

from conftest import FakeWorker, RecordingScheduler, extracted


class TestCreateJob:
    def test_creates_pending_job_and_schedules_start(self, db, make_source, scheduler):
        source = make_source()

        job = orchestrator.create_job(db, source.id, "manual", scheduler)

        assert job.status == "pending"
        assert job.workflow_id is None
        assert scheduler.calls == [job.id]

    def test_second_job_refused_while_one_in_flight(self, db, make_source, scheduler):
        source = make_source()
        first = orchestrator.create_job(db, source.id, "manual", scheduler)

        assert orchestrator.create_job(db, source.id, "schedule", scheduler) is None
        assert scheduler.calls == [first.id]
        assert db.query(ScrapeJob).count() == 1

    def test_inactive_source_refused(self, db, make_source, scheduler):
        source = make_source(is_active=False)
        assert orchestrator.create_job(db, source.id, "manual", scheduler) is None
        assert scheduler.calls == []

    def test_finished_job_does_not_block(self, db, make_source, make_job, scheduler):
        source = make_source()
        make_job(source, status="completed")
        make_job(source, status="failed")

        assert orchestrator.create_job(db, source.id, "manual", scheduler) is not None

    def test_missing_source(self, db, scheduler):
        import uuid
        with pytest.raises(NotFoundError):
            orchestrator.create_job(db, uuid.uuid4(), "manual", scheduler)

    def test_lost_race_hits_unique_index(self, db, make_source, make_job, scheduler):
        source = make_source()
        make_job(source, status="running")

        # Simulate a concurrent creator that passed the check before our insert
        with patch.object(orchestrator, "has_in_flight_job", return_value=False):
            assert orchestrator.create_job(db, source.id, "manual", scheduler) is None

        assert scheduler.calls == []
        assert db.query(ScrapeJob).count() == 1


class TestLaunchPendingJob:
    def test_dispatches_with_workflow_handle(self, db, make_source, make_job):
        job = make_job(make_source())
        dispatched = []

        outcome = orchestrator.launch_pending_job(db, job.id, dispatch=lambda j, w: dispatched.append((j, w)))

        assert outcome == "dispatched"
        db.refresh(job)
        assert job.workflow_id.startswith(f"scrape-{job.id}-")
        assert dispatched == [(job.id, job.workflow_id)]

    def test_defers_when_cap_reached(self, db, make_source, make_job, monkeypatch):
        monkeypatch.setenv("MAX_CONCURRENT_WORKFLOWS", "1")
        get_settings.cache_clear()
        make_job(make_source(), status="running", workflow_id="scrape-busy")
        job = make_job(make_source())
        rescheduled = RecordingScheduler()

        outcome = orchestrator.launch_pending_job(
            db, job.id, dispatch=lambda j, w: pytest.fail("should not dispatch"), reschedule=rescheduled,
        )

        assert outcome == "deferred"
        assert rescheduled.calls == [job.id]
        db.refresh(job)
        assert job.workflow_id is None

    def test_skips_job_already_started(self, db, make_source, make_job):
        job = make_job(make_source(), workflow_id="scrape-x")
        assert orchestrator.launch_pending_job(db, job.id, dispatch=lambda j, w: None) == "skipped"

    def test_skips_finished_job(self, db, make_source, make_job):
        job = make_job(make_source(), status="failed")
        assert orchestrator.launch_pending_job(db, job.id, dispatch=lambda j, w: None) == "skipped"

    def test_scrapes_worker_pool_matches_cap(self):
        from campscout.tasks.celery_app import celery_app

        assert celery_app.conf.worker_concurrency == get_settings().max_concurrent_workflows
        assert celery_app.conf.task_routes["campscout.tasks.scrape_tasks.run_scrape_job"] == {"queue": "scrapes"}


class TestStartWorkflow:
    def test_success_creates_sessions_and_records_changes(self, db, make_source, make_job):
        source = make_source()
        job = make_job(source)
        worker = FakeWorker(ExtractionResult(sessions=[
            extracted("Lego Robotics", price=250.0),
            extracted("Nature Explorers"),
        ]))

        orchestrator.start_workflow(db, job.id, worker)

        db.refresh(job)
        assert job.status == "completed"
        assert job.sessions_found == 2
        assert job.sessions_created == 2
        assert db.query(CampSession).filter(CampSession.source_id == source.id).count() == 2
        changes = db.query(SessionChange).filter(SessionChange.job_id == job.id).all()
        assert sorted(c.change_type for c in changes) == ["session_added", "session_added"]

        db.refresh(source)
        assert source.total_runs == 1
        assert source.next_scheduled_scrape is not None

    def test_rerun_updates_and_detects_removals(self, db, make_source, make_job):
        source = make_source()
        first = make_job(source)
        orchestrator.start_workflow(db, first.id, FakeWorker(ExtractionResult(sessions=[
            extracted("Lego Robotics", price=250.0),
            extracted("Nature Explorers"),
        ])))

        second = make_job(source)
        orchestrator.start_workflow(db, second.id, FakeWorker(ExtractionResult(sessions=[
            extracted("Lego Robotics", price=275.0, availability="sold_out"),
        ])))

        db.refresh(second)
        assert second.sessions_updated == 1
        assert second.sessions_removed == 1
        change_types = sorted(
            c.change_type for c in db.query(SessionChange).filter(SessionChange.job_id == second.id)
        )
        assert change_types == ["price_changed", "session_removed", "status_changed"]
        removed = db.query(CampSession).filter(CampSession.name == "Nature Explorers").one()
        assert removed.status == "removed"
        assert not removed.is_active

    def test_empty_run_never_removes(self, db, make_source, make_job):
        source = make_source()
        first = make_job(source)
        orchestrator.start_workflow(db, first.id, FakeWorker(ExtractionResult(sessions=[extracted("Art Camp")])))

        second = make_job(source)
        orchestrator.start_workflow(db, second.id, FakeWorker(ExtractionResult()))

        assert db.query(CampSession).filter(CampSession.is_active == True).count() == 1  # noqa: E712
        db.refresh(source)
        assert source.consecutive_zero_results == 1

    def test_extraction_error_fails_job_and_updates_health(self, db, make_source, make_job):
        source = make_source()
        job = make_job(source)

        orchestrator.start_workflow(db, job.id, FakeWorker(ExtractionResult(error="HTTP 503 for https://x")))

        db.refresh(job)
        db.refresh(source)
        assert job.status == "failed"
        assert job.error_message == "HTTP 503 for https://x"
        assert source.consecutive_failures == 1
        assert source.next_scheduled_scrape is not None

    def test_worker_crash_is_recorded_not_raised(self, db, make_source, make_job):
        job = make_job(make_source())

        orchestrator.start_workflow(db, job.id, FakeWorker(raises=RuntimeError("browser died")))

        db.refresh(job)
        assert job.status == "failed"
        assert "browser died" in job.error_message

    def test_high_change_volume_alert(self, db, make_source, make_job):
        job = make_job(make_source())
        sessions = [extracted("Day Camp", start=date(2026, 6, 1) + timedelta(days=i)) for i in range(21)]

        orchestrator.start_workflow(db, job.id, FakeWorker(ExtractionResult(sessions=sessions)))

        assert [a.alert_type for a in db.query(ScraperAlert).all()] == ["high_change_volume"]

    def test_non_pending_job_is_left_alone(self, db, make_source, make_job):
        job = make_job(make_source(), status="completed")
        result = orchestrator.start_workflow(db, job.id, FakeWorker(raises=AssertionError("not called")))
        assert result.status == "completed"


class TestBatchAndSweeps:
    def test_run_due_sources(self, db, make_source, scheduler):
        now = datetime.now(timezone.utc)
        due = make_source(next_scheduled_scrape=now - timedelta(minutes=5))
        make_source(next_scheduled_scrape=now + timedelta(hours=3))
        never_run = make_source()
        make_source(code=None)
        make_source(is_active=False)

        outcome = orchestrator.run_due_sources(db, now=now, schedule=scheduler)

        assert outcome["created"] == 2
        job_sources = {j.source_id for j in db.query(ScrapeJob).all()}
        assert job_sources == {due.id, never_run.id}

    def test_cleanup_stuck_jobs(self, db, make_source, make_job):
        source = make_source()
        make_job(source, status="running")

        assert orchestrator.cleanup_stuck_jobs(db, source.id) == 1
        assert db.query(ScrapeJob).filter(ScrapeJob.status == "failed").count() == 1

    def test_fail_stale_jobs(self, db, make_source, make_job):
        old = datetime.now(timezone.utc) - timedelta(hours=2)
        stale_source = make_source()
        stale = make_job(stale_source, status="running", started_at=old)
        fresh = make_job(make_source(), status="running", started_at=datetime.now(timezone.utc))

        assert orchestrator.fail_stale_jobs(db, max_age_minutes=30) == 1

        db.refresh(stale)
        db.refresh(fresh)
        assert stale.status == "failed"
        assert fresh.status == "running"
        assert db.get(Source, stale_source.id).consecutive_failures == 1

    def test_relaunch_orphaned_pending(self, db, make_source, make_job, scheduler):
        old = datetime.now(timezone.utc) - timedelta(minutes=20)
        orphan = make_job(make_source(), created_at=old)
        make_job(make_source(), created_at=old, workflow_id="scrape-dispatched")
        make_job(make_source())

        assert orchestrator.relaunch_orphaned_pending(db, schedule=scheduler) == 1
        assert scheduler.calls == [orphan.id]
