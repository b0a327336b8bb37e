"""Tests for the explore / generate / test development cycle."""

from campscout.models.development_request import DevelopmentRequest
from campscout.models.scrape_job import ScrapeJob
from campscout.models.source import Source
from campscout.schemas.extraction import DirectoryLink, ExtractionResult, SiteExploration
from campscout.services import pipeline

from conftest import FakeExplorer, FakeGenerator, FakeWorker, extracted

CODE = "def extract(url, hints):\n    return []\n"


def reload(db, request):
    return db.get(DevelopmentRequest, request.id, populate_existing=True)


class ExplodingGenerator:
    def generate(self, context):
        raise RuntimeError("generation backend unreachable")


class TestProcessNext:
    def test_empty_queue(self, db):
        assert pipeline.process_next(db, "worker-1", explorer=FakeExplorer(),
                                     generator=FakeGenerator(), worker=FakeWorker()) is None

    def test_successful_cycle_deploys(self, db, make_request, scheduler):
        request = make_request(name="Riverbend Nature Camp", url="https://riverbend.example.org/camps")
        worker = FakeWorker(code_result=ExtractionResult(sessions=[
            extracted("Nature Explorers"), extracted("Junior Rangers"),
        ]))

        outcome = pipeline.process_next(
            db, "worker-1",
            explorer=FakeExplorer(), generator=FakeGenerator(CODE), worker=worker, schedule=scheduler,
        )

        assert outcome["status"] == "completed"
        request = reload(db, request)
        assert request.code_version == 1
        assert request.last_test_sessions_found == 2
        assert len(request.last_test_sample_data["sessions"]) == 2
        source = db.get(Source, request.source_id)
        assert source.is_active
        assert source.extraction_code == CODE
        assert db.query(ScrapeJob).count() == 1
        assert len(scheduler.calls) == 1

    def test_test_run_gets_source_hints_and_deadline(self, db, make_request):
        make_request(name="Riverbend", notes="Sessions listed per week")
        worker = FakeWorker()

        pipeline.process_next(db, "worker-1", explorer=FakeExplorer(), generator=FakeGenerator(CODE), worker=worker)

        call = worker.code_calls[0]
        assert call["code"] == CODE
        assert call["hints"] == {"source_name": "Riverbend", "notes": "Sessions listed per week"}
        assert 0 < call["timeout"] <= 1500

    def test_exploration_persisted_and_reused(self, db, make_request):
        request = make_request()
        explorer = FakeExplorer(SiteExploration(url=request.source_url, registration_system="CampMinder"))
        generator = FakeGenerator(None)

        pipeline.process_next(db, "worker-1", explorer=explorer, generator=generator, worker=FakeWorker())
        pipeline.process_next(db, "worker-1", explorer=explorer, generator=generator, worker=FakeWorker())

        assert explorer.calls == 1
        assert generator.contexts[1].site_exploration["registration_system"] == "CampMinder"
        assert len(generator.contexts[1].feedback_history) == 1

    def test_no_code_counts_as_failed_attempt(self, db, make_request):
        request = make_request()

        outcome = pipeline.process_next(db, "worker-1", explorer=FakeExplorer(),
                                        generator=FakeGenerator(None), worker=FakeWorker())

        assert outcome["status"] == "pending"
        request = reload(db, request)
        assert request.test_retry_count == 1
        assert "returned no code" in request.last_test_error

    def test_zero_sessions_feeds_back_to_next_attempt(self, db, make_request):
        request = make_request()
        generator = FakeGenerator(CODE)

        pipeline.process_next(db, "worker-1", explorer=FakeExplorer(), generator=generator, worker=FakeWorker())
        pipeline.process_next(db, "worker-1", explorer=FakeExplorer(), generator=generator, worker=FakeWorker())

        second = generator.contexts[1]
        assert second.previous_code == CODE
        assert second.code_version == 1
        assert "found 0 sessions" in second.feedback_history[0]["text"]
        assert reload(db, request).code_version == 2

    def test_crash_goes_through_retry_path(self, db, make_request):
        request = make_request()

        outcome = pipeline.process_next(db, "worker-1", explorer=FakeExplorer(),
                                        generator=ExplodingGenerator(), worker=FakeWorker())

        assert outcome["status"] == "pending"
        request = reload(db, request)
        assert request.claimed_by is None
        assert "RuntimeError" in request.last_test_error

    def test_directory_fans_out_without_generating(self, db, make_request):
        parent = make_request(name="Austin Summer Camp Guide", url="https://guide.example.com/best-summer-camps")
        exploration = SiteExploration(
            url=parent.source_url,
            site_type="directory",
            external_links=[
                DirectoryLink(url="https://zilker.example.com/", name="Zilker Nature Camp"),
                DirectoryLink(url="https://paddle.example.org/camps", name="Paddle Camp"),
            ],
        )
        generator = FakeGenerator(CODE)

        outcome = pipeline.process_next(db, "worker-1", explorer=FakeExplorer(exploration),
                                        generator=generator, worker=FakeWorker())

        assert outcome["status"] == "completed"
        assert generator.contexts == []
        children = db.query(DevelopmentRequest).filter(DevelopmentRequest.parent_request_id == parent.id).all()
        assert {c.source_url for c in children} == {"https://zilker.example.com/", "https://paddle.example.org/camps"}
        assert all(c.status == "pending" for c in children)
