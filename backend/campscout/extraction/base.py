"""Extraction logic strategy interface."""

import logging
from abc import ABC, abstractmethod
from typing import Any

from campscout.schemas.extraction import ExtractedSession, ExtractionResult

logger = logging.getLogger(__name__)


class ExtractionLogic(ABC):
    """A routine that turns a camp provider's page into session records.

    Subclasses must implement:
        extract(url, hints) -> ExtractionResult

    Set ``requires_browser`` when the logic renders pages with a headless
    browser; the worker then applies the longer browser timeout.
    """

    name: str = "base"
    requires_browser: bool = False

    @abstractmethod
    async def extract(self, url: str, hints: dict[str, Any]) -> ExtractionResult:
        ...


def build_result(payload: dict[str, Any] | list) -> ExtractionResult:
    """Validate loosely shaped extraction output into an ExtractionResult.

    Accepts a bare list of sessions or a dict with ``sessions`` and optional
    ``organization``, ``expectedEmpty``/``expected_empty``, ``note`` and
    ``error``. Invalid session entries are dropped and counted.
    """
    if isinstance(payload, list):
        payload = {"sessions": payload}
    if not isinstance(payload, dict):
        return ExtractionResult(error=f"Extraction returned {type(payload).__name__}, expected a dict or list")

    sessions = []
    dropped = 0
    for raw in payload.get("sessions") or []:
        try:
            sessions.append(ExtractedSession.model_validate(raw))
        except ValueError as e:
            dropped += 1
            logger.debug(f"Dropping invalid session entry: {e}")

    if dropped:
        logger.warning(f"Dropped {dropped} invalid session entries")

    organization = payload.get("organization")
    if organization is not None and not (isinstance(organization, dict) and organization.get("name")):
        organization = None

    return ExtractionResult(
        sessions=sessions,
        organization=organization,
        error=payload.get("error"),
        expected_empty=bool(payload.get("expectedEmpty", payload.get("expected_empty", False))),
        note=payload.get("note"),
        dropped=dropped,
    )
