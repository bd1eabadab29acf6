"""
Ingestion Worker — Runs inbound controller readings through the pipeline.

A transport bridge (MQTT subscriber, HTTP relay, ...) enqueues one task per
message with the parsed payload. Unresolvable routing keys and malformed
payloads are reported back as "dropped" and never retried. Database
failures are retried by Celery only while nothing has been stored; once the
reading is durable an evaluation failure is reported as "stored" with the
error, since a retry would append the reading a second time.
"""

import asyncio
import uuid

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from core.errors import EvaluationError, NotFoundError, ValidationError
from workers.celery_app import celery_app

logger = structlog.get_logger()


@celery_app.task(
    name="workers.ingest.ingest_reading",
    bind=True,
    max_retries=3,
    default_retry_delay=5,
    acks_late=True,
)
def ingest_reading(
    self,
    payload: dict,
    routing_key: str | None = None,
    row_number: int | None = None,
    row_id: str | None = None,
    topic: str | None = None,
    timestamp: int | None = None,
):
    """
    Ingest one reading. Either `topic` or `routing_key` (+ row_number / row_id)
    identifies the row; `timestamp` is epoch milliseconds (defaults to now).
    """
    from core.config import get_settings
    from ingest.pipeline import InboundReading, ingest_reading as run_pipeline

    run_id = self.request.id or "manual"

    async def _ingest():
        if topic:
            inbound = InboundReading.from_topic(topic, payload, timestamp_ms=timestamp)
        else:
            inbound = InboundReading(
                routing_key=routing_key or "",
                row_number=row_number,
                row_id=uuid.UUID(row_id) if row_id else None,
                payload=payload,
                timestamp_ms=timestamp,
            )

        settings = get_settings()
        engine = create_async_engine(settings.database_url)
        try:
            async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
            async with async_session() as db:
                result = await run_pipeline(db, inbound)
            return {"status": "stored", "run_id": run_id, **result.as_dict()}
        finally:
            await engine.dispose()

    try:
        return asyncio.run(_ingest())
    except (NotFoundError, ValidationError, ValueError) as exc:
        logger.error(
            "ingest.dropped",
            run_id=run_id,
            topic=topic,
            routing_key=routing_key,
            row_number=row_number,
            error=str(exc),
        )
        return {"status": "dropped", "run_id": run_id, "reason": str(exc)}
    except EvaluationError as exc:
        logger.error("ingest.evaluation_failed", run_id=run_id, reading_id=str(exc.reading_id), error=exc.message)
        return {
            "status": "stored",
            "run_id": run_id,
            "reading_id": str(exc.reading_id),
            "outcomes": exc.outcomes,
            "error": exc.message,
        }
    except SQLAlchemyError as exc:
        logger.error("ingest.failed", run_id=run_id, routing_key=routing_key, error=str(exc), exc_info=True)
        raise self.retry(exc=exc)
