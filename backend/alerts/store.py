"""
Alert Lifecycle Store — alert listing/resolution and rule upserts.
"""

import uuid
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import NotFoundError, ValidationError
from db.models import NOTIFICATION_METHODS, RULE_SEVERITIES, Alert, AlertRule, System, utcnow

logger = structlog.get_logger()

RULE_FIELDS = ("min_threshold", "max_threshold", "severity", "is_enabled", "notification_methods")

RULE_DEFAULTS: dict[str, Any] = {
    "min_threshold": None,
    "max_threshold": None,
    "severity": "warning",
    "is_enabled": True,
    "notification_methods": [],
}


async def list_alerts(
    db: AsyncSession,
    system_id: uuid.UUID | None = None,
    row_id: uuid.UUID | None = None,
    is_resolved: bool | None = None,
    skip: int = 0,
    limit: int | None = None,
) -> list[Alert]:
    """Alerts newest first. Supplied filters are ANDed; omitted ones match anything."""
    query = select(Alert)
    if system_id is not None:
        query = query.where(Alert.system_id == system_id)
    if row_id is not None:
        query = query.where(Alert.row_id == row_id)
    if is_resolved is not None:
        query = query.where(Alert.is_resolved.is_(is_resolved))
    query = query.order_by(Alert.created_at.desc()).offset(skip)
    if limit is not None:
        query = query.limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all())


async def resolve_alert(db: AsyncSession, alert_id: uuid.UUID) -> Alert:
    """
    Mark an alert resolved.

    Resolving an already-resolved alert is accepted and re-stamps resolved_at,
    so retried dashboard commands never error.
    """
    result = await db.execute(select(Alert).where(Alert.alert_id == alert_id))
    alert = result.scalar_one_or_none()
    if alert is None:
        raise NotFoundError("Alert", alert_id)

    was_resolved = alert.is_resolved
    alert.is_resolved = True
    alert.resolved_at = max(utcnow(), alert.created_at)
    await db.commit()
    await db.refresh(alert)

    logger.info(
        "alerts.resolved",
        alert_id=str(alert_id),
        system_id=str(alert.system_id),
        parameter=alert.parameter,
        restamped=was_resolved,
    )
    return alert


async def list_rules(db: AsyncSession, system_id: uuid.UUID | None = None) -> list[AlertRule]:
    query = select(AlertRule)
    if system_id is not None:
        query = query.where(AlertRule.system_id == system_id)
    result = await db.execute(query.order_by(AlertRule.system_id, AlertRule.parameter))
    return list(result.scalars().all())


def _validate_rule_fields(fields: dict[str, Any]) -> dict[str, Any]:
    unknown = set(fields) - set(RULE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown alert rule fields: {sorted(unknown)}")
    if "severity" in fields and fields["severity"] not in RULE_SEVERITIES:
        raise ValidationError(f"Invalid severity: {fields['severity']!r}")
    if "notification_methods" in fields:
        methods = list(dict.fromkeys(fields["notification_methods"] or []))
        invalid = [m for m in methods if m not in NOTIFICATION_METHODS]
        if invalid:
            raise ValidationError(f"Invalid notification methods: {invalid}")
        fields = {**fields, "notification_methods": methods}
    return fields


async def _get_rule(db: AsyncSession, system_id: uuid.UUID, parameter: str) -> AlertRule | None:
    result = await db.execute(
        select(AlertRule).where(AlertRule.system_id == system_id, AlertRule.parameter == parameter)
    )
    return result.scalar_one_or_none()


async def upsert_rule(
    db: AsyncSession,
    system_id: uuid.UUID,
    parameter: str,
    fields: dict[str, Any],
) -> AlertRule:
    """
    Create the rule for (system, parameter) or patch only the supplied fields.

    The unique constraint on (system_id, parameter) serializes concurrent
    creates: the losing insert is rolled back and applied as a patch.
    """
    fields = _validate_rule_fields(dict(fields))

    system = await db.get(System, system_id)
    if system is None:
        raise NotFoundError("System", system_id)

    rule = await _get_rule(db, system_id, parameter)
    if rule is None:
        rule = AlertRule(system_id=system_id, parameter=parameter, **{**RULE_DEFAULTS, **fields})
        db.add(rule)
        try:
            await db.commit()
            logger.info("alerts.rule_created", rule_id=str(rule.rule_id), system_id=str(system_id), parameter=parameter)
            return rule
        except IntegrityError:
            await db.rollback()
            rule = await _get_rule(db, system_id, parameter)
            if rule is None:
                raise

    for name, value in fields.items():
        setattr(rule, name, value)
    await db.commit()
    await db.refresh(rule)
    logger.info(
        "alerts.rule_patched",
        rule_id=str(rule.rule_id),
        system_id=str(system_id),
        parameter=parameter,
        fields=sorted(fields),
    )
    return rule
