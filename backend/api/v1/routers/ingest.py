"""
Ingest Router — HTTP delivery of controller readings.

Unresolvable routing keys / rows answer 404 and nothing is stored.
"""

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_db
from ingest.pipeline import InboundReading, ingest_reading
from readings.store import MAX_EPOCH_MILLIS, MIN_EPOCH_MILLIS

router = APIRouter(prefix="/api/v1/ingest", tags=["ingest"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class ReadingDelivery(BaseModel):
    routing_key: str = Field(..., min_length=1)
    row_number: int | None = None
    row_id: UUID | None = None
    payload: dict[str, float]
    timestamp: int | None = Field(
        None,
        ge=MIN_EPOCH_MILLIS,
        le=MAX_EPOCH_MILLIS,
        description="Epoch milliseconds; defaults to ingestion time",
    )


class TopicDelivery(BaseModel):
    topic: str = Field(..., min_length=1)
    # raw controller JSON; may carry its own "timestamp" (ISO-8601 or epoch ms)
    payload: dict[str, Any]
    timestamp: int | None = Field(None, ge=MIN_EPOCH_MILLIS, le=MAX_EPOCH_MILLIS)


class OutcomeResponse(BaseModel):
    status: str
    parameter: str
    value: float
    alert_id: str | None


class IngestResponse(BaseModel):
    reading_id: str
    organization_id: str
    system_id: str
    row_id: str
    routing_key: str
    timestamp: str
    outcomes: list[OutcomeResponse]


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.post("/readings", response_model=IngestResponse, status_code=201)
async def post_reading(
    body: ReadingDelivery,
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Ingest one reading addressed by routing key and row number (or row id)."""
    inbound = InboundReading(
        routing_key=body.routing_key,
        row_number=body.row_number,
        row_id=body.row_id,
        payload=body.payload,
        timestamp_ms=body.timestamp,
    )
    result = await ingest_reading(db, inbound)
    return result.as_dict()


@router.post("/mqtt", response_model=IngestResponse, status_code=201)
async def post_topic_reading(
    body: TopicDelivery,
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Ingest a message as received from the broker: controller topic plus JSON payload."""
    inbound = InboundReading.from_topic(body.topic, body.payload, timestamp_ms=body.timestamp)
    result = await ingest_reading(db, inbound)
    return result.as_dict()
