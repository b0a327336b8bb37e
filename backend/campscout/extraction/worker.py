"""Extraction worker — resolves a source's logic and runs it under a timeout.

Failures never raise out of the worker; they come back as an
ExtractionResult with ``error`` set so the orchestrator can record them.
"""

import asyncio
import logging
from typing import Any

import httpx

from campscout.config import get_settings
from campscout.extraction.base import ExtractionLogic
from campscout.extraction.registry import get_logic_class
from campscout.extraction.sandbox import SandboxedCodeLogic
from campscout.models.source import Source
from campscout.schemas.extraction import ExtractionResult

logger = logging.getLogger(__name__)


def _describe_error(e: Exception) -> str:
    if isinstance(e, httpx.HTTPStatusError):
        return f"HTTP {e.response.status_code} for {e.request.url}"
    return f"{type(e).__name__}: {e}" if str(e) else type(e).__name__


class ExtractionWorker:
    """Runs extraction logic for sources and for untested generated code."""

    def timeout_for(self, logic: ExtractionLogic, override: int | None = None) -> float:
        if override:
            return float(override)
        settings = get_settings()
        if logic.requires_browser:
            return float(settings.browser_extraction_timeout)
        return float(settings.direct_extraction_timeout)

    def resolve_logic(self, source: Source) -> ExtractionLogic | None:
        """Built-in module by name, else the stored code blob, else None."""
        if source.extraction_module:
            logic_class = get_logic_class(source.extraction_module)
            if logic_class is None:
                logger.error(f"No extraction logic registered as {source.extraction_module}")
                return None
            return logic_class()
        if source.extraction_code:
            return SandboxedCodeLogic(source.extraction_code, timeout=self.timeout_for_code(source.scrape_timeout_seconds))
        return None

    def timeout_for_code(self, override: int | None = None) -> float:
        return float(override or get_settings().direct_extraction_timeout)

    async def extract(
        self,
        url: str,
        logic: ExtractionLogic,
        hints: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> ExtractionResult:
        timeout = timeout or self.timeout_for(logic)
        try:
            return await asyncio.wait_for(logic.extract(url, hints or {}), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Extraction of {url} timed out after {timeout}s")
            return ExtractionResult(error=f"Extraction timed out after {timeout}s")
        except Exception as e:
            logger.warning(f"Extraction of {url} failed: {e}")
            return ExtractionResult(error=_describe_error(e))

    async def _extract_source(self, source: Source, logic: ExtractionLogic) -> ExtractionResult:
        hints = {"parsing_notes": source.parsing_notes, "source_name": source.name}
        timeout = self.timeout_for(logic, source.scrape_timeout_seconds)
        urls = [source.url] + [u for u in (source.additional_urls or []) if u and u != source.url]

        combined = ExtractionResult()
        for url in urls:
            result = await self.extract(url, logic, hints, timeout)
            if result.error:
                # The primary URL failing fails the run; extra pages are best effort
                if url == source.url:
                    return result
                logger.warning(f"Additional URL {url} for {source.name} failed: {result.error}")
                continue
            combined.sessions.extend(result.sessions)
            combined.dropped += result.dropped
            combined.organization = combined.organization or result.organization
            combined.expected_empty = combined.expected_empty or result.expected_empty
            combined.note = combined.note or result.note
        return combined

    def run_for_source(self, source: Source) -> ExtractionResult:
        """Synchronous entry point for Celery tasks."""
        logic = self.resolve_logic(source)
        if logic is None:
            return ExtractionResult(error=f"No extraction logic deployed for {source.name}")
        return asyncio.run(self._extract_source(source, logic))

    def run_code(self, url: str, code: str, hints: dict[str, Any] | None = None,
                 timeout: float | None = None) -> ExtractionResult:
        """Test an undeployed code blob against a live URL."""
        timeout = timeout or self.timeout_for_code()
        logic = SandboxedCodeLogic(code, timeout=timeout)
        return asyncio.run(self.extract(url, logic, hints, timeout))
