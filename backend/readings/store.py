"""
Reading Store — append-only per-row sensor time series.

Readings are stored exactly as delivered: no range or sanity checks on the
values, and out-of-order timestamps are accepted. Both read paths order by
timestamp descending and are capped at MAX_READINGS_LIMIT entries.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import ValidationError
from db.models import SensorReading, utcnow

logger = structlog.get_logger()

MAX_READINGS_LIMIT = 100


EPOCH = datetime(1970, 1, 1)

# Representable range of a naive datetime, in epoch milliseconds.
MIN_EPOCH_MILLIS = (datetime.min - EPOCH) // timedelta(milliseconds=1)
MAX_EPOCH_MILLIS = (datetime.max - EPOCH) // timedelta(milliseconds=1)


def from_epoch_millis(value: int | float | None) -> datetime:
    """Epoch milliseconds -> naive UTC datetime. None means 'now'."""
    if value is None:
        return utcnow()
    try:
        return EPOCH + timedelta(milliseconds=value)
    except (OverflowError, ValueError) as exc:
        raise ValidationError(f"Timestamp out of range: {value!r}") from exc


def to_epoch_millis(value: datetime) -> int:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return (value - EPOCH) // timedelta(milliseconds=1)


def clamp_limit(limit: int | None) -> int:
    if limit is None:
        return MAX_READINGS_LIMIT
    return max(0, min(int(limit), MAX_READINGS_LIMIT))


async def append(
    db: AsyncSession,
    row_id: uuid.UUID,
    routing_key: str,
    payload: dict[str, Any],
    timestamp: datetime | None = None,
) -> uuid.UUID:
    """Persist one reading and return its id."""
    reading = SensorReading(
        row_id=row_id,
        routing_key=routing_key,
        timestamp=timestamp or utcnow(),
        data=dict(payload),
    )
    db.add(reading)
    await db.commit()

    logger.debug(
        "readings.appended",
        reading_id=str(reading.reading_id),
        row_id=str(row_id),
        routing_key=routing_key,
        parameters=sorted(payload),
    )
    return reading.reading_id


async def latest(db: AsyncSession, row_id: uuid.UUID, limit: int = MAX_READINGS_LIMIT) -> list[SensorReading]:
    """Most recent readings for a row, newest first."""
    capped = clamp_limit(limit)
    if capped == 0:
        return []
    result = await db.execute(
        select(SensorReading)
        .where(SensorReading.row_id == row_id)
        .order_by(SensorReading.timestamp.desc())
        .limit(capped)
    )
    return list(result.scalars().all())


async def latest_by_route(db: AsyncSession, routing_key: str, limit: int = MAX_READINGS_LIMIT) -> list[SensorReading]:
    """Most recent readings ingested under a routing key, newest first. Unknown keys yield []."""
    capped = clamp_limit(limit)
    if capped == 0:
        return []
    result = await db.execute(
        select(SensorReading)
        .where(SensorReading.routing_key == routing_key)
        .order_by(SensorReading.timestamp.desc())
        .limit(capped)
    )
    return list(result.scalars().all())
