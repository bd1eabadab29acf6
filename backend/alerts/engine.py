"""
Alert Engine — Per-parameter threshold evaluation and alert opening.

Patterns used: Rule-based detection, database-enforced alert deduplication,
Redis pub/sub

Outcomes per evaluated (system, parameter, value):
  - no_rule:      no enabled rule, or a rule with neither bound configured
  - healthy:      value within bounds (open alerts are NOT auto-resolved)
  - already_open: breach, but an open alert already covers (system, parameter)
  - opened:       breach, new alert created

The single-open-alert invariant is enforced by a partial unique index on
alerts(system_id, parameter) WHERE NOT is_resolved. Concurrent evaluators
race on the insert; the loser rolls back and reports already_open.
"""

import json
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from db.models import Alert, AlertRule

logger = structlog.get_logger()

# Rule severity -> alert type. "info" is reserved for non-rule alerts.
SEVERITY_TO_ALERT_TYPE = {
    "warning": "warning",
    "critical": "critical",
}

REALTIME_METHODS = {"push", "sound"}


class OutcomeStatus(str, Enum):
    NO_RULE = "no_rule"
    HEALTHY = "healthy"
    ALREADY_OPEN = "already_open"
    OPENED = "opened"


@dataclass
class EvaluationOutcome:
    status: OutcomeStatus
    parameter: str
    value: float
    alert_id: uuid.UUID | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "parameter": self.parameter,
            "value": self.value,
            "alert_id": str(self.alert_id) if self.alert_id else None,
        }


@dataclass
class Breach:
    bound: str  # "min" or "max"
    threshold: float


# ──────────────────────────────────────────────────────────────────────────
# Breach Detection
# ──────────────────────────────────────────────────────────────────────────


def has_bounds(rule: AlertRule) -> bool:
    return rule.min_threshold is not None or rule.max_threshold is not None


def _relative_excess(value: float, threshold: float) -> float:
    return abs(value - threshold) / max(abs(threshold), 1e-9)


def detect_breach(value: float, min_threshold: float | None, max_threshold: float | None) -> Breach | None:
    """
    Return the bound a value crosses, or None.

    Bounds are strict: a value equal to a threshold is within range.
    Below-min and above-max cannot both hold for a consistent rule; for an
    inverted rule (min > max) the bound exceeded furthest in relative terms wins.
    """
    below_min = min_threshold is not None and value < min_threshold
    above_max = max_threshold is not None and value > max_threshold

    if below_min and above_max:
        if _relative_excess(value, min_threshold) >= _relative_excess(value, max_threshold):
            return Breach(bound="min", threshold=min_threshold)
        return Breach(bound="max", threshold=max_threshold)
    if below_min:
        return Breach(bound="min", threshold=min_threshold)
    if above_max:
        return Breach(bound="max", threshold=max_threshold)
    return None


def format_value(value: float) -> str:
    return f"{value:g}"


def build_alert_message(parameter: str, value: float, breach: Breach, severity: str) -> str:
    """Human-readable description of which bound was crossed."""
    if breach.bound == "min":
        direction = f"below minimum threshold of {format_value(breach.threshold)}"
    else:
        direction = f"above maximum threshold of {format_value(breach.threshold)}"
    return f"{severity.capitalize()}: {parameter} reading {format_value(value)} is {direction}"


# ──────────────────────────────────────────────────────────────────────────
# Evaluation
# ──────────────────────────────────────────────────────────────────────────


async def get_enabled_rule(db: AsyncSession, system_id: uuid.UUID, parameter: str) -> AlertRule | None:
    result = await db.execute(
        select(AlertRule).where(
            AlertRule.system_id == system_id,
            AlertRule.parameter == parameter,
            AlertRule.is_enabled.is_(True),
        )
    )
    return result.scalar_one_or_none()


async def find_open_alert(db: AsyncSession, system_id: uuid.UUID, parameter: str) -> Alert | None:
    result = await db.execute(
        select(Alert).where(
            Alert.system_id == system_id,
            Alert.parameter == parameter,
            Alert.is_resolved.is_(False),
        )
    )
    return result.scalar_one_or_none()


async def evaluate(
    db: AsyncSession,
    system_id: uuid.UUID,
    parameter: str,
    value: float,
    row_id: uuid.UUID | None = None,
) -> EvaluationOutcome:
    """Evaluate one parameter value against its system's rule and open an alert on breach."""
    rule = await get_enabled_rule(db, system_id, parameter)
    if rule is None:
        return EvaluationOutcome(OutcomeStatus.NO_RULE, parameter, value)

    if not has_bounds(rule):
        logger.warning("alerts.rule_without_bounds", system_id=str(system_id), parameter=parameter)
        return EvaluationOutcome(OutcomeStatus.NO_RULE, parameter, value)

    breach = detect_breach(value, rule.min_threshold, rule.max_threshold)
    if breach is None:
        return EvaluationOutcome(OutcomeStatus.HEALTHY, parameter, value)

    existing = await find_open_alert(db, system_id, parameter)
    if existing is not None:
        return EvaluationOutcome(OutcomeStatus.ALREADY_OPEN, parameter, value, alert_id=existing.alert_id)

    alert = Alert(
        system_id=system_id,
        row_id=row_id,
        alert_type=SEVERITY_TO_ALERT_TYPE[rule.severity],
        parameter=parameter,
        message=build_alert_message(parameter, value, breach, rule.severity),
        value=value,
        threshold=breach.threshold,
        is_resolved=False,
    )
    db.add(alert)
    try:
        await db.commit()
    except IntegrityError:
        # Lost the race against a concurrent evaluator for the same key.
        await db.rollback()
        winner = await find_open_alert(db, system_id, parameter)
        logger.info("alerts.open_race_lost", system_id=str(system_id), parameter=parameter)
        return EvaluationOutcome(
            OutcomeStatus.ALREADY_OPEN,
            parameter,
            value,
            alert_id=winner.alert_id if winner else None,
        )

    logger.info(
        "alerts.opened",
        alert_id=str(alert.alert_id),
        system_id=str(system_id),
        row_id=str(row_id) if row_id else None,
        parameter=parameter,
        value=value,
        threshold=breach.threshold,
        alert_type=alert.alert_type,
    )
    return EvaluationOutcome(OutcomeStatus.OPENED, parameter, value, alert_id=alert.alert_id)


# ──────────────────────────────────────────────────────────────────────────
# Publishing
# ──────────────────────────────────────────────────────────────────────────


def alert_channel(organization_id: uuid.UUID | str) -> str:
    """Redis pub/sub channel carrying one organization's realtime alerts."""
    return f"alerts:{organization_id}"


def alert_event(alert: Alert, notification_methods: list[str]) -> dict[str, Any]:
    return {
        "type": "alert",
        "payload": {
            "alert_id": str(alert.alert_id),
            "alert_type": alert.alert_type,
            "parameter": alert.parameter,
            "message": alert.message,
            "value": alert.value,
            "threshold": alert.threshold,
            "system_id": str(alert.system_id),
            "row_id": str(alert.row_id) if alert.row_id else None,
            "created_at": alert.created_at.isoformat(),
            "sound": "sound" in notification_methods,
        },
    }


async def publish_alerts(
    organization_id: uuid.UUID,
    alerts: list[tuple[Alert, list[str]]],
) -> int:
    """
    Publish newly opened alerts to Redis pub/sub for real-time WebSocket delivery.

    Only alerts whose rule asks for push or sound are published. Returns the
    number of subscribers notified; Redis failures are logged, never raised.
    """
    settings = get_settings()
    realtime = [(alert, methods) for alert, methods in alerts if REALTIME_METHODS & set(methods)]
    if not realtime or not settings.alert_publish_enabled:
        return 0

    channel = alert_channel(organization_id)
    redis = aioredis.from_url(settings.redis_url)
    try:
        total_subs = 0
        for alert, methods in realtime:
            total_subs += await redis.publish(channel, json.dumps(alert_event(alert, methods)))
        return total_subs
    except (RedisError, OSError) as exc:
        logger.warning("alerts.publish_failed", channel=channel, count=len(realtime), error=str(exc))
        return 0
    finally:
        await redis.aclose()
