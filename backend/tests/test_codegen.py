"""Tests for the code generation service client."""

import httpx

from campscout.codegen.client import CodeGenerationClient, strip_code_fences
from campscout.schemas.extraction import GenerationContext

URL = "https://codegen.example.com/generate"


def context():
    return GenerationContext(
        source_name="Zilker Nature Camp",
        source_url="https://zilker.example.com/camps",
        feedback_history=[{"text": "found 0 sessions"}],
        code_version=1,
    )


def fake_post(response=None, error=None, calls=None):
    def _post(url, json=None, headers=None, timeout=None):
        if calls is not None:
            calls.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        if error:
            raise error
        response.request = httpx.Request("POST", url)
        return response
    return _post


class TestStripCodeFences:
    def test_fenced(self):
        assert strip_code_fences("```python\ndef extract(u, h):\n    return []\n```") == \
            "def extract(u, h):\n    return []"

    def test_plain(self):
        assert strip_code_fences("  def extract(u, h): return []\n") == "def extract(u, h): return []"


class TestCodeGenerationClient:
    def test_posts_context_and_returns_code(self, monkeypatch):
        calls = []
        monkeypatch.setattr(httpx, "post", fake_post(
            httpx.Response(200, json={"code": "```python\ndef extract(u, h):\n    return []\n```"}), calls=calls,
        ))

        code = CodeGenerationClient(url=URL, api_key="secret").generate(context())

        assert code == "def extract(u, h):\n    return []"
        assert calls[0]["url"] == URL
        assert calls[0]["json"]["source_url"] == "https://zilker.example.com/camps"
        assert calls[0]["json"]["feedback_history"] == [{"text": "found 0 sessions"}]
        assert calls[0]["headers"]["Authorization"] == "Bearer secret"

    def test_http_error_returns_none(self, monkeypatch):
        monkeypatch.setattr(httpx, "post", fake_post(httpx.Response(503, text="overloaded")))
        assert CodeGenerationClient(url=URL).generate(context()) is None

    def test_timeout_returns_none(self, monkeypatch):
        monkeypatch.setattr(httpx, "post", fake_post(error=httpx.ReadTimeout("slow")))
        assert CodeGenerationClient(url=URL).generate(context()) is None

    def test_missing_code_returns_none(self, monkeypatch):
        monkeypatch.setattr(httpx, "post", fake_post(httpx.Response(200, json={"code": "   "})))
        assert CodeGenerationClient(url=URL).generate(context()) is None

    def test_non_json_body_returns_none(self, monkeypatch):
        monkeypatch.setattr(httpx, "post", fake_post(httpx.Response(200, text="<html>")))
        assert CodeGenerationClient(url=URL).generate(context()) is None
