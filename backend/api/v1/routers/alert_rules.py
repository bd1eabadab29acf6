"""
Alert Rules Router — Per (system, parameter) threshold policies.
"""

from datetime import datetime
from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from alerts.store import list_rules, upsert_rule
from api.deps import get_db

router = APIRouter(prefix="/api/v1/alert-rules", tags=["alert-rules"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class AlertRuleUpsert(BaseModel):
    system_id: UUID
    parameter: str = Field(..., min_length=1, max_length=64)
    min_threshold: float | None = None
    max_threshold: float | None = None
    severity: Literal["warning", "critical"] | None = None
    is_enabled: bool | None = None
    notification_methods: list[Literal["push", "sound", "email"]] | None = None


class AlertRuleResponse(BaseModel):
    rule_id: UUID
    system_id: UUID
    parameter: str
    min_threshold: float | None
    max_threshold: float | None
    severity: str
    is_enabled: bool
    notification_methods: list[str]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.get("/", response_model=list[AlertRuleResponse])
async def get_alert_rules(
    system_id: UUID | None = None,
    db: AsyncSession = Depends(get_db),
):
    """List alert rules, optionally for one system."""
    return await list_rules(db, system_id=system_id)


@router.put("/", response_model=AlertRuleResponse)
async def put_alert_rule(
    body: AlertRuleUpsert,
    db: AsyncSession = Depends(get_db),
):
    """
    Create or patch the rule for (system_id, parameter).

    Only fields present in the request body are written; explicit nulls
    clear a threshold.
    """
    fields = body.model_dump(exclude_unset=True, exclude={"system_id", "parameter"})
    # severity / is_enabled / notification_methods cannot be cleared
    fields = {
        name: value
        for name, value in fields.items()
        if value is not None or name in ("min_threshold", "max_threshold")
    }
    return await upsert_rule(db, body.system_id, body.parameter, fields)
