"""
Alerts Router — Alert listing and resolution.
"""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from alerts.store import list_alerts as list_alert_records
from alerts.store import resolve_alert as resolve_alert_record
from api.deps import get_db
from db.models import Alert

router = APIRouter(prefix="/api/v1/alerts", tags=["alerts"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class AlertResponse(BaseModel):
    alert_id: UUID
    system_id: UUID
    row_id: UUID | None
    alert_type: str
    parameter: str
    message: str
    value: float
    threshold: float
    is_resolved: bool
    created_at: datetime
    resolved_at: datetime | None

    model_config = {"from_attributes": True}


class AlertSummary(BaseModel):
    total: int
    open: int
    resolved: int
    critical: int
    warning: int


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.get("/", response_model=list[AlertResponse])
async def list_alerts(
    system_id: UUID | None = None,
    row_id: UUID | None = None,
    is_resolved: bool | None = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    """List alerts, newest first. Filters combine with AND."""
    return await list_alert_records(
        db,
        system_id=system_id,
        row_id=row_id,
        is_resolved=is_resolved,
        skip=skip,
        limit=limit,
    )


@router.get("/summary", response_model=AlertSummary)
async def get_alert_summary(
    system_id: UUID | None = None,
    db: AsyncSession = Depends(get_db),
):
    """Get alert summary counts."""
    base = select(Alert)
    if system_id:
        base = base.where(Alert.system_id == system_id)

    total_q = select(func.count()).select_from(base.subquery())
    open_q = select(func.count()).select_from(base.where(Alert.is_resolved.is_(False)).subquery())
    critical_q = select(func.count()).select_from(
        base.where(Alert.is_resolved.is_(False), Alert.alert_type == "critical").subquery()
    )
    warning_q = select(func.count()).select_from(
        base.where(Alert.is_resolved.is_(False), Alert.alert_type == "warning").subquery()
    )

    total = (await db.execute(total_q)).scalar() or 0
    open_count = (await db.execute(open_q)).scalar() or 0
    critical = (await db.execute(critical_q)).scalar() or 0
    warning = (await db.execute(warning_q)).scalar() or 0

    return AlertSummary(
        total=total,
        open=open_count,
        resolved=total - open_count,
        critical=critical,
        warning=warning,
    )


@router.patch("/{alert_id}/resolve", response_model=AlertResponse)
async def resolve_alert(
    alert_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    """Resolve an alert. Repeating the call re-stamps resolved_at."""
    return await resolve_alert_record(db, alert_id)
