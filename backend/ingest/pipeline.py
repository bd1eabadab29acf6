"""
Ingestion Pipeline — inbound reading -> identity -> store -> rules -> notify.

Architecture:
    Controller topic / HTTP → resolve_route → append reading
                                            → evaluate each parameter
                                            → publish / email opened alerts

Each stage commits its own unit of work: the reading is durable before any
rule runs, and each alert insert stands alone, so a failure while opening
one alert never leaves a partial reading or a duplicate alert behind. Once
the reading is stored, failures surface as EvaluationError so callers can
tell them apart from failures that stored nothing.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from numbers import Real
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from alerts.email import send_alert_email
from alerts.engine import EvaluationOutcome, OutcomeStatus, evaluate, publish_alerts
from core.errors import EvaluationError, NotFoundError, ValidationError
from db.models import Alert, AlertRule
from identity.resolver import resolve_route
from identity.topics import parse_topic
from readings import store as reading_store

logger = structlog.get_logger()


def coerce_timestamp_ms(value: Any) -> int:
    """Epoch milliseconds from a number or an ISO-8601 string."""
    if isinstance(value, bool):
        raise ValidationError(f"Invalid timestamp: {value!r}")
    if isinstance(value, Real):
        try:
            return int(value)
        except (OverflowError, ValueError) as exc:
            raise ValidationError(f"Invalid timestamp: {value!r}") from exc
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError as exc:
            raise ValidationError(f"Invalid timestamp: {value!r}") from exc
        # naive strings are taken as UTC
        return reading_store.to_epoch_millis(parsed)
    raise ValidationError(f"Invalid timestamp: {value!r}")


@dataclass
class InboundReading:
    """Parsed delivery from a transport: routing key, optional row identity, values."""

    routing_key: str
    payload: dict[str, float]
    row_number: int | None = None
    row_id: uuid.UUID | None = None
    timestamp_ms: int | None = None

    @classmethod
    def from_topic(cls, topic: str, payload: dict[str, Any], timestamp_ms: int | None = None) -> "InboundReading":
        """Build from a broker message. A "timestamp" key inside the payload is lifted out."""
        routing_key, row_number = parse_topic(topic)
        payload = dict(payload)
        embedded = payload.pop("timestamp", None)
        if timestamp_ms is None and embedded is not None:
            timestamp_ms = coerce_timestamp_ms(embedded)
        return cls(routing_key=routing_key, row_number=row_number, payload=payload, timestamp_ms=timestamp_ms)


@dataclass
class IngestResult:
    reading_id: uuid.UUID
    organization_id: uuid.UUID
    system_id: uuid.UUID
    row_id: uuid.UUID
    routing_key: str
    timestamp: datetime
    outcomes: list[EvaluationOutcome] = field(default_factory=list)

    @property
    def opened_alert_ids(self) -> list[uuid.UUID]:
        return [o.alert_id for o in self.outcomes if o.status == OutcomeStatus.OPENED and o.alert_id]

    def as_dict(self) -> dict[str, Any]:
        return {
            "reading_id": str(self.reading_id),
            "organization_id": str(self.organization_id),
            "system_id": str(self.system_id),
            "row_id": str(self.row_id),
            "routing_key": self.routing_key,
            "timestamp": self.timestamp.isoformat(),
            "outcomes": [o.as_dict() for o in self.outcomes],
        }


def validate_payload(payload: Any) -> dict[str, float]:
    """Structural check only: a mapping of parameter name -> number. Values are not range-checked."""
    if not isinstance(payload, dict):
        raise ValidationError("Reading payload must be an object of parameter -> number")
    cleaned: dict[str, float] = {}
    for name, value in payload.items():
        if not isinstance(name, str) or not name:
            raise ValidationError(f"Invalid parameter name: {name!r}")
        if isinstance(value, bool) or not isinstance(value, Real):
            raise ValidationError(f"Parameter {name!r} must be numeric", detail={"parameter": name})
        cleaned[name] = float(value)
    return cleaned


async def ingest_reading(db: AsyncSession, inbound: InboundReading, notify: bool = True) -> IngestResult:
    """
    Run one inbound reading through the full pipeline.

    Raises NotFoundError when the routing key / row cannot be resolved
    (nothing is stored) and ValidationError for a structurally invalid payload
    or an unrepresentable timestamp. A database failure after the reading is
    stored raises EvaluationError: the reading stays, and re-running the
    pipeline would store it twice.
    """
    payload = validate_payload(inbound.payload)
    timestamp = reading_store.from_epoch_millis(inbound.timestamp_ms)

    route = await resolve_route(db, inbound.routing_key, row_number=inbound.row_number, row_id=inbound.row_id)
    if route.row is None:
        raise NotFoundError("Row", f"{inbound.routing_key} (no row number or row id supplied)")

    # Plain values: later rollbacks expire ORM instances.
    organization_id = route.organization.organization_id
    system_id = route.system.system_id
    system_name = route.system.name
    routing_key = route.system.routing_key
    row_id = route.row.row_id
    row_number = route.row.row_number

    reading_id = await reading_store.append(db, row_id, routing_key, payload, timestamp)

    result = IngestResult(
        reading_id=reading_id,
        organization_id=organization_id,
        system_id=system_id,
        row_id=row_id,
        routing_key=routing_key,
        timestamp=timestamp,
    )
    try:
        for parameter, value in payload.items():
            result.outcomes.append(await evaluate(db, system_id, parameter, value, row_id=row_id))

        logger.info(
            "ingest.reading_stored",
            reading_id=str(reading_id),
            routing_key=routing_key,
            row_number=row_number,
            parameters=len(payload),
            alerts_opened=len(result.opened_alert_ids),
        )

        if notify and result.opened_alert_ids:
            await notify_opened_alerts(
                db,
                organization_id=organization_id,
                system_id=system_id,
                alert_ids=result.opened_alert_ids,
                system_name=system_name,
                row_number=row_number,
            )
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error(
            "ingest.evaluation_failed",
            reading_id=str(reading_id),
            routing_key=routing_key,
            evaluated=len(result.outcomes),
            error=str(exc),
        )
        raise EvaluationError(
            reading_id,
            f"Reading stored but alert evaluation failed: {exc}",
            outcomes=[o.as_dict() for o in result.outcomes],
        ) from exc
    return result


async def notify_opened_alerts(
    db: AsyncSession,
    *,
    organization_id: uuid.UUID,
    system_id: uuid.UUID,
    alert_ids: list[uuid.UUID],
    system_name: str = "",
    row_number: int | None = None,
) -> None:
    """Fan newly opened alerts out to pub/sub and email per their rule's notification methods."""
    alerts = (await db.execute(select(Alert).where(Alert.alert_id.in_(alert_ids)))).scalars().all()
    rules = (
        await db.execute(
            select(AlertRule).where(
                AlertRule.system_id == system_id,
                AlertRule.parameter.in_([a.parameter for a in alerts]),
            )
        )
    ).scalars().all()
    methods_by_parameter = {rule.parameter: list(rule.notification_methods or []) for rule in rules}

    deliveries = [(alert, methods_by_parameter.get(alert.parameter, [])) for alert in alerts]
    await publish_alerts(organization_id, deliveries)

    for alert, methods in deliveries:
        if "email" in methods:
            await send_alert_email(alert, system_name=system_name, row_number=row_number)
