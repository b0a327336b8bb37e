"""Scraper alert API endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from campscout.models.alert import ScraperAlert
from campscout.models.base import get_db
from campscout.schemas.alert import AlertAcknowledge, ScraperAlertRead
from campscout.services.alerts import acknowledge_alert
from campscout.services.errors import NotFoundError

router = APIRouter(prefix="/alerts", tags=["alerts"])


@router.get("", response_model=list[ScraperAlertRead])
async def list_alerts(
    db: AsyncSession = Depends(get_db),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    alert_type: str | None = Query(None, description="Filter by alert type"),
    severity: str | None = Query(None, description="Filter by severity"),
    unacknowledged: bool = Query(False, description="Only alerts nobody has acknowledged"),
):
    """List alerts, newest first."""
    query = select(ScraperAlert)

    if alert_type:
        query = query.where(ScraperAlert.alert_type == alert_type)
    if severity:
        query = query.where(ScraperAlert.severity == severity)
    if unacknowledged:
        query = query.where(ScraperAlert.acknowledged_at.is_(None))

    query = query.order_by(ScraperAlert.created_at.desc()).offset(skip).limit(limit)
    result = await db.execute(query)
    return [ScraperAlertRead.model_validate(a) for a in result.scalars().all()]


@router.post("/{alert_id}/acknowledge", response_model=ScraperAlertRead)
async def acknowledge(
    alert_id: UUID,
    payload: AlertAcknowledge,
    db: AsyncSession = Depends(get_db),
):
    try:
        alert = await db.run_sync(lambda s: acknowledge_alert(s, alert_id, payload.acknowledged_by))
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Alert not found")
    return ScraperAlertRead.model_validate(alert)
