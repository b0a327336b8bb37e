"""API v1 router aggregation."""

from fastapi import APIRouter

from campscout.api.v1.sources import router as sources_router
from campscout.api.v1.jobs import router as jobs_router
from campscout.api.v1.development import router as development_router
from campscout.api.v1.alerts import router as alerts_router
from campscout.api.v1.maintenance import router as maintenance_router

router = APIRouter(prefix="/api/v1")

router.include_router(sources_router)
router.include_router(jobs_router)
router.include_router(development_router)
router.include_router(alerts_router)
router.include_router(maintenance_router)
