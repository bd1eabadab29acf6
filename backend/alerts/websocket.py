"""
Real-time alert stream for dashboards.

Each connection subscribes to its organization's Redis channel
(``alerts:<organization_id>``), which alerts.engine.publish_alerts feeds
with alerts whose rule asks for push or sound delivery.
"""

import asyncio
from uuid import UUID

import redis.asyncio as aioredis
import structlog
from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect
from redis.exceptions import RedisError

from alerts.engine import alert_channel
from core.config import get_settings

logger = structlog.get_logger()
router = APIRouter()

HEARTBEAT_SECONDS = 30


@router.websocket("/ws/alerts")
async def websocket_alerts(websocket: WebSocket, organization_id: UUID = Query(...)):
    """
    Stream newly opened alerts for one organization.

    Connect: ws://host/ws/alerts?organization_id=<uuid>

    Messages sent to client:
        {"type": "alert", "payload": {...}}
        {"type": "heartbeat", "payload": {}}
    """
    settings = get_settings()
    channel = alert_channel(organization_id)
    await websocket.accept()

    redis = aioredis.from_url(settings.redis_url)
    pubsub = redis.pubsub()

    async def forward_alerts():
        async for message in pubsub.listen():
            if message["type"] != "message":
                continue
            data = message["data"]
            await websocket.send_text(data.decode() if isinstance(data, bytes) else data)

    async def heartbeat():
        while True:
            await asyncio.sleep(HEARTBEAT_SECONDS)
            await websocket.send_json({"type": "heartbeat", "payload": {}})

    async def watch_client():
        # Inbound frames are ignored; this only notices the client leaving.
        while True:
            await websocket.receive_text()

    tasks: list[asyncio.Task] = []
    try:
        await pubsub.subscribe(channel)
        logger.info("ws.alerts_subscribed", channel=channel)

        tasks = [asyncio.create_task(coro) for coro in (forward_alerts(), heartbeat(), watch_client())]
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            exc = task.exception()
            if isinstance(exc, RedisError):
                raise exc
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                logger.warning("ws.alerts_stream_failed", channel=channel, error=str(exc))
    except RedisError as exc:
        logger.error("ws.alerts_redis_unavailable", channel=channel, error=str(exc))
        await websocket.close(code=1011, reason="Alert stream unavailable")
    finally:
        for task in tasks:
            task.cancel()
        try:
            await pubsub.unsubscribe(channel)
        except RedisError as exc:
            logger.debug("ws.alerts_unsubscribe_failed", channel=channel, error=str(exc))
        await pubsub.aclose()
        await redis.aclose()
        logger.info("ws.alerts_unsubscribed", channel=channel)
