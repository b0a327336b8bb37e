"""FastAPI application entry point — operator API for the crawl orchestrator."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import redis
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.gzip import GZipMiddleware
from sqlalchemy import func, select, text

from campscout.config import get_settings
from campscout.models.base import engine, AsyncSessionLocal, Base
from campscout.models.organization import Organization  # noqa: F401
from campscout.models.source import Source  # noqa: F401
from campscout.models.scrape_job import IN_FLIGHT_STATUSES, ScrapeJob
from campscout.models.camp import Camp, CampSession  # noqa: F401
from campscout.models.session_change import SessionChange  # noqa: F401
from campscout.models.alert import ScraperAlert  # noqa: F401
from campscout.models.development_request import REQUEST_PENDING, DevelopmentRequest
from campscout.api.v1 import router as api_v1_router

logger = logging.getLogger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {settings.app_name}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    description="Crawl orchestration for camp listings: sources, jobs, and extraction logic development",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(GZipMiddleware, minimum_size=500)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_v1_router)


async def _check_database() -> dict:
    """Connectivity plus the two queue depths operators watch."""
    async with AsyncSessionLocal() as session:
        await session.execute(text("SELECT 1"))
        in_flight = await session.scalar(
            select(func.count(ScrapeJob.id)).where(ScrapeJob.status.in_(IN_FLIGHT_STATUSES))
        )
        pending_requests = await session.scalar(
            select(func.count(DevelopmentRequest.id)).where(DevelopmentRequest.status == REQUEST_PENDING)
        )
    return {
        "ok": True,
        "jobs_in_flight": in_flight,
        "workflow_capacity": settings.max_concurrent_workflows,
        "pending_development_requests": pending_requests,
    }


def _check_redis() -> dict:
    redis.from_url(settings.redis_url, socket_timeout=5).ping()
    return {"ok": True}


def _check_workers() -> dict:
    from campscout.tasks.celery_app import celery_app

    active = celery_app.control.inspect(timeout=5).active() or {}
    return {"ok": bool(active), "workers": sorted(active)}


@app.get("/health")
async def health_check():
    return {"status": "healthy", "app": settings.app_name}


@app.get("/health/detailed")
async def detailed_health_check():
    checks = {}
    try:
        checks["database"] = await _check_database()
    except Exception as e:
        checks["database"] = {"ok": False, "message": str(e)}

    for name, check in (("redis", _check_redis), ("celery_workers", _check_workers)):
        try:
            checks[name] = check()
        except Exception as e:
            checks[name] = {"ok": False, "message": str(e)}

    return {
        "status": "healthy" if all(c["ok"] for c in checks.values()) else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": checks,
    }
