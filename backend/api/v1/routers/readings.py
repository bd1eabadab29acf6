"""
Readings Router — Recent sensor readings by row or routing key.
"""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_db
from readings import store as reading_store

router = APIRouter(prefix="/api/v1/readings", tags=["readings"])


class ReadingResponse(BaseModel):
    reading_id: UUID
    row_id: UUID
    routing_key: str
    timestamp: datetime
    timestamp_ms: int
    data: dict[str, float]


def _serialize(reading) -> ReadingResponse:
    return ReadingResponse(
        reading_id=reading.reading_id,
        row_id=reading.row_id,
        routing_key=reading.routing_key,
        timestamp=reading.timestamp,
        timestamp_ms=reading_store.to_epoch_millis(reading.timestamp),
        data=reading.data or {},
    )


@router.get("/", response_model=list[ReadingResponse])
async def list_readings(
    row_id: UUID | None = None,
    routing_key: str | None = None,
    limit: int = Query(reading_store.MAX_READINGS_LIMIT, ge=1, le=reading_store.MAX_READINGS_LIMIT),
    db: AsyncSession = Depends(get_db),
):
    """
    Most recent readings, newest first.

    `row_id` takes precedence over `routing_key`; with neither, the result is empty.
    """
    if row_id is not None:
        readings = await reading_store.latest(db, row_id, limit)
    elif routing_key:
        readings = await reading_store.latest_by_route(db, routing_key, limit)
    else:
        readings = []
    return [_serialize(r) for r in readings]
