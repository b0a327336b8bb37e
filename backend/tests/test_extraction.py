"""Tests for extraction logic: result validation, JSON-LD parsing, worker and sandbox."""

import asyncio
import json
from datetime import date

import httpx
import pytest

import campscout.extraction  # noqa: F401
from campscout.extraction.base import ExtractionLogic, build_result
from campscout.extraction.jsonld_events import JsonLdEventsLogic, parse_jsonld_events
from campscout.extraction.registry import get_logic_class, list_modules
from campscout.extraction.sandbox import SandboxedCodeLogic
from campscout.extraction.worker import ExtractionWorker
from campscout.models.source import Source
from campscout.schemas.extraction import ExtractionResult


# =============================================================================
# RESULT VALIDATION
# =============================================================================

class TestBuildResult:
    def test_bare_list(self):
        result = build_result([{"name": "Art Camp", "start_date": "2026-06-08"}])
        assert len(result.sessions) == 1
        assert result.sessions[0].start_date == date(2026, 6, 8)

    def test_invalid_entries_dropped(self):
        result = build_result({"sessions": [
            {"name": "Art Camp", "start_date": "2026-06-08"},
            {"name": "   ", "start_date": "2026-06-08"},
            {"name": "No Date"},
        ]})
        assert len(result.sessions) == 1
        assert result.dropped == 2

    def test_expected_empty_flag(self):
        result = build_result({"sessions": [], "expectedEmpty": True, "note": "2027 dates coming in January"})
        assert result.expected_empty
        assert result.note == "2027 dates coming in January"

    def test_organization_without_name_ignored(self):
        result = build_result({"sessions": [], "organization": {"website_url": "https://x.example.com"}})
        assert result.organization is None

    def test_wrong_type(self):
        assert build_result("nope").error.startswith("Extraction returned str")


# =============================================================================
# JSON-LD EVENTS
# =============================================================================

EVENT_PAGE = """
<html><head>
<script type="application/ld+json">
{"@context": "https://schema.org", "@graph": [
  {"@type": "Organization", "name": "Zilker Nature Center"},
  {"@type": "ChildrensEvent", "name": "Nature Explorers Week 1",
   "startDate": "2026-06-08T09:00:00-05:00", "endDate": "2026-06-12",
   "location": {"@type": "Place", "name": "Zilker Park"},
   "typicalAgeRange": "6-9",
   "organizer": {"name": "Zilker Nature Center", "url": "https://zilker.example.com"},
   "offers": {"price": "225", "url": "/register/101", "availability": "https://schema.org/SoldOut"}}
]}
</script>
<script type="application/ld+json">{not valid json</script>
<script type="application/ld+json">
[{"@type": "Event", "name": "Cancelled Camp", "startDate": "2026-07-06",
  "eventStatus": "https://schema.org/EventCancelled"},
 {"@type": "Event", "name": "Undated Camp"}]
</script>
</head><body></body></html>
"""


class TestJsonLdEvents:
    def test_parses_events(self):
        payload = parse_jsonld_events(EVENT_PAGE, "https://zilker.example.com/camps")

        assert [s["name"] for s in payload["sessions"]] == ["Nature Explorers Week 1", "Cancelled Camp"]
        first = payload["sessions"][0]
        assert first["start_date"] == date(2026, 6, 8)
        assert first["end_date"] == date(2026, 6, 12)
        assert first["price"] == 225.0
        assert first["min_age"] == 6 and first["max_age"] == 9
        assert first["location"] == "Zilker Park"
        assert first["availability"] == "sold_out"
        assert first["registration_url"] == "https://zilker.example.com/register/101"
        assert payload["sessions"][1]["availability"] == "cancelled"
        assert payload["organization"]["name"] == "Zilker Nature Center"

    def test_result_validates(self):
        result = build_result(parse_jsonld_events(EVENT_PAGE, "https://zilker.example.com/camps"))
        assert len(result.sessions) == 2
        assert result.organization.website_url == "https://zilker.example.com"

    def test_page_without_markup(self):
        assert parse_jsonld_events("<html><body>Camps</body></html>", "https://x.example.com") == {
            "sessions": [], "organization": None,
        }


class TestRegistry:
    def test_builtins_registered(self):
        assert "jsonld_events" in list_modules()
        assert get_logic_class("jsonld_events") is JsonLdEventsLogic
        assert get_logic_class("jsonld_events_rendered").requires_browser

    def test_unknown_module(self):
        assert get_logic_class("nonexistent") is None


# =============================================================================
# WORKER
# =============================================================================

class StaticLogic(ExtractionLogic):
    def __init__(self, results):
        self.results = results

    async def extract(self, url, hints):
        outcome = self.results[url]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class SlowLogic(ExtractionLogic):
    async def extract(self, url, hints):
        await asyncio.sleep(5)
        return ExtractionResult()


def _status_error(status, url):
    request = httpx.Request("GET", url)
    return httpx.HTTPStatusError("boom", request=request, response=httpx.Response(status, request=request))


class TestExtractionWorker:
    def test_resolves_builtin_module(self):
        source = Source(name="Zilker", url="https://zilker.example.com", extraction_module="jsonld_events")
        assert isinstance(ExtractionWorker().resolve_logic(source), JsonLdEventsLogic)

    def test_unknown_module_resolves_to_none(self):
        source = Source(name="Zilker", url="https://zilker.example.com", extraction_module="gone")
        assert ExtractionWorker().resolve_logic(source) is None

    def test_resolves_stored_code(self):
        source = Source(name="Zilker", url="https://zilker.example.com", extraction_code="def extract(u, h): return []")
        logic = ExtractionWorker().resolve_logic(source)
        assert isinstance(logic, SandboxedCodeLogic)

    def test_no_logic_is_an_error_result(self):
        source = Source(name="Zilker", url="https://zilker.example.com")
        result = ExtractionWorker().run_for_source(source)
        assert "No extraction logic" in result.error

    def test_browser_logic_gets_longer_timeout(self):
        worker = ExtractionWorker()
        assert worker.timeout_for(get_logic_class("jsonld_events_rendered")()) == 120
        assert worker.timeout_for(JsonLdEventsLogic()) == 60
        assert worker.timeout_for(JsonLdEventsLogic(), override=15) == 15

    def test_timeout_becomes_error(self):
        result = asyncio.run(ExtractionWorker().extract("https://slow.example.com", SlowLogic(), timeout=0.05))
        assert result.error == "Extraction timed out after 0.05s"

    def test_http_error_described(self):
        url = "https://gone.example.com/camps"
        logic = StaticLogic({url: _status_error(404, url)})
        result = asyncio.run(ExtractionWorker().extract(url, logic, timeout=5))
        assert result.error == f"HTTP 404 for {url}"

    def test_additional_urls_best_effort(self):
        primary = "https://zilker.example.com/camps"
        extra = "https://zilker.example.com/camps/page-2"
        broken = "https://zilker.example.com/camps/page-3"
        source = Source(name="Zilker", url=primary, additional_urls=[extra, broken])
        logic = StaticLogic({
            primary: build_result([{"name": "Week 1", "start_date": "2026-06-08"}]),
            extra: build_result([{"name": "Week 2", "start_date": "2026-06-15"}]),
            broken: RuntimeError("layout changed"),
        })

        result = asyncio.run(ExtractionWorker()._extract_source(source, logic))

        assert result.error is None
        assert [s.name for s in result.sessions] == ["Week 1", "Week 2"]

    def test_primary_url_failure_fails_run(self):
        primary = "https://zilker.example.com/camps"
        source = Source(name="Zilker", url=primary, additional_urls=[])
        logic = StaticLogic({primary: _status_error(500, primary)})

        result = asyncio.run(ExtractionWorker()._extract_source(source, logic))

        assert result.error == f"HTTP 500 for {primary}"


# =============================================================================
# SANDBOX
# =============================================================================

class TestSandboxedCode:
    def test_runs_generated_code(self):
        code = (
            "def extract(url, hints):\n"
            "    print('debug output is ignored')\n"
            "    return {'sessions': [{'name': hints['source_name'] + ' Week 1', 'start_date': '2026-06-08'}],\n"
            "            'note': url}\n"
        )
        result = asyncio.run(SandboxedCodeLogic(code, timeout=30).extract(
            "https://zilker.example.com", {"source_name": "Zilker"},
        ))

        assert result.error is None
        assert result.sessions[0].name == "Zilker Week 1"
        assert result.note == "https://zilker.example.com"

    def test_exception_reported_with_traceback_tail(self):
        code = "def extract(url, hints):\n    raise KeyError('price')\n"
        result = asyncio.run(SandboxedCodeLogic(code, timeout=30).extract("https://x.example.com", {}))
        assert result.error.startswith("Generated code exited with 1")
        assert "KeyError" in result.error

    def test_missing_extract_function(self):
        result = asyncio.run(SandboxedCodeLogic("x = 1\n", timeout=30).extract("https://x.example.com", {}))
        assert "does not define extract" in result.error

    def test_hung_code_is_killed(self):
        code = "import time\n\ndef extract(url, hints):\n    time.sleep(30)\n    return []\n"
        result = asyncio.run(SandboxedCodeLogic(code, timeout=0.5).extract("https://x.example.com", {}))
        assert result.error == "Extraction timed out after 0.5s"

    def test_worker_run_code(self):
        code = "def extract(url, hints):\n    return []\n"
        result = ExtractionWorker().run_code("https://x.example.com", code, timeout=30)
        assert result.error is None
        assert result.sessions == []
