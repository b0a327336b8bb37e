"""Development pipeline — one explore / generate / test cycle per claimed request.

Flow:
    1. Claim the oldest pending request (optionally within a market)
    2. Explore the site once; directories fan out into child requests
    3. Ask the code generation service for extraction code
    4. Test the code in the sandbox against the live URL
    5. Record the outcome, which retries, completes, fails or deploys

Generation and test share one wall-clock deadline.
"""

import logging
import time
from typing import Any

from sqlalchemy.orm import Session

from campscout.config import get_settings
from campscout.models.development_request import (
    REQUEST_IN_PROGRESS,
    REQUEST_TESTING,
    DevelopmentRequest,
)
from campscout.schemas.extraction import GenerationContext, SiteExploration
from campscout.services import development
from campscout.services.orchestrator import Scheduler

logger = logging.getLogger(__name__)

SAMPLE_SESSION_COUNT = 5


def build_context(request: DevelopmentRequest) -> GenerationContext:
    return GenerationContext(
        source_name=request.source_name,
        source_url=request.source_url,
        market=request.market,
        notes=request.notes,
        site_exploration=request.site_exploration,
        feedback_history=list(request.feedback_history or []),
        previous_code=request.generated_code,
        code_version=request.code_version or 0,
    )


def _sample_data(result) -> dict[str, Any]:
    return {
        "sessions": [s.model_dump(mode="json") for s in result.sessions[:SAMPLE_SESSION_COUNT]],
        "expectedEmpty": result.expected_empty,
        "note": result.note,
    }


def process_request(
    db: Session,
    request: DevelopmentRequest,
    explorer=None,
    generator=None,
    worker=None,
    schedule: Scheduler | None = None,
) -> str:
    """Drive one claimed request through a single cycle. Returns the resulting status."""
    settings = get_settings()
    deadline = time.monotonic() + settings.development_cycle_timeout

    if explorer is None:
        from campscout.services.site_explorer import SiteExplorer
        explorer = SiteExplorer()
    if generator is None:
        from campscout.codegen.client import CodeGenerationClient
        generator = CodeGenerationClient()
    if worker is None:
        from campscout.extraction.worker import ExtractionWorker
        worker = ExtractionWorker()

    if request.site_exploration:
        exploration = SiteExploration.model_validate(request.site_exploration)
    else:
        exploration = explorer.explore(request.source_url)
        development.save_exploration(db, request, exploration)

    if exploration.is_directory and (exploration.external_links or exploration.internal_links):
        development.expand_directory(db, request, exploration)
        return request.status

    code = generator.generate(build_context(request))
    if not code:
        development.record_test_results(
            db, request.id, 0, error="Code generation service returned no code", schedule=schedule,
        )
        return request.status

    development.store_generated_code(db, request, code)

    remaining = deadline - time.monotonic()
    if remaining <= 0:
        development.record_test_results(
            db, request.id, 0,
            error=f"Development cycle exceeded {settings.development_cycle_timeout}s before testing",
            schedule=schedule,
        )
        return request.status

    hints = {"source_name": request.source_name, "notes": request.notes}
    result = worker.run_code(request.source_url, code, hints, timeout=remaining)
    logger.info(
        f"Test of {request.source_name} v{request.code_version}: "
        f"{len(result.sessions)} sessions, error={result.error}"
    )

    development.record_test_results(
        db,
        request.id,
        len(result.sessions),
        error=result.error,
        sample_data=_sample_data(result),
        schedule=schedule,
    )
    return request.status


def process_next(
    db: Session,
    worker_id: str,
    market: str | None = None,
    explorer=None,
    generator=None,
    worker=None,
    schedule: Scheduler | None = None,
) -> dict | None:
    """Claim and process one request. Returns None when the queue is empty."""
    request = development.claim_next(db, worker_id, market)
    if request is None:
        return None

    try:
        status = process_request(db, request, explorer, generator, worker, schedule)
    except Exception as e:
        db.rollback()
        logger.error(f"Development cycle for {request.source_name} crashed: {e}")
        request = db.get(DevelopmentRequest, request.id, populate_existing=True)
        if request.status in (REQUEST_IN_PROGRESS, REQUEST_TESTING):
            development.record_test_results(
                db, request.id, 0, error=f"{type(e).__name__}: {e}", schedule=schedule,
            )
        status = request.status

    return {"request_id": str(request.id), "source_name": request.source_name, "status": status}
