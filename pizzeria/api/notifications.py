"""
Pizzeria POS — SSE order notifications over Redis pub/sub

Order writes publish a status snapshot to order:{order_id} and to
orders:board (see pizzeria.core.events). These endpoints subscribe and
stream the snapshots to the browser EventSource.
"""
import asyncio
import json
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from pizzeria.api.deps import get_actor, staff_area
from pizzeria.core.access_policy import ActorContext
from pizzeria.core.config import get_settings
from pizzeria.core.events import BOARD_CHANNEL, order_channel
from pizzeria.core.lifecycle import TERMINAL_STATUSES
from pizzeria.core.redis_client import get_redis
from pizzeria.db import order_ops
from pizzeria.db.database import get_db

settings = get_settings()
logger = logging.getLogger(__name__)
router = APIRouter(prefix="/notifications", tags=["notifications"])

TERMINAL_VALUES = {s.value for s in TERMINAL_STATUSES}

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",  # Disable Nginx buffering
    "Connection": "keep-alive",
}


async def _sse_generator(
    channel_name: str, request: Request, stop_on_terminal: bool
) -> AsyncGenerator[str, None]:
    """Subscribe to one Redis channel and yield SSE events."""
    redis = get_redis()
    pubsub = redis.pubsub()
    await pubsub.subscribe(channel_name)

    try:
        yield f": connected to {channel_name}\n\n"
        yield f"retry: {settings.SSE_RETRY_MILLISECONDS}\n\n"

        while True:
            if await request.is_disconnected():
                break

            message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
            if message and message["type"] == "message":
                data = message["data"]
                try:
                    payload = json.loads(data)
                except ValueError:
                    logger.warning("Dropping malformed event on %s", channel_name)
                    continue

                yield f"event: order_update\ndata: {json.dumps(payload)}\n\n"

                if stop_on_terminal and payload.get("status") in TERMINAL_VALUES:
                    break
            else:
                yield ": keepalive\n\n"
                await asyncio.sleep(settings.SSE_KEEPALIVE_INTERVAL_SECONDS)

    finally:
        await pubsub.unsubscribe(channel_name)
        await pubsub.aclose()


@router.get("/stream")
async def stream_board(request: Request, actor: ActorContext = Depends(staff_area)):
    """Every order status change, for the kitchen and floor boards."""
    return StreamingResponse(
        _sse_generator(BOARD_CHANNEL, request, stop_on_terminal=False),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.get("/stream/{order_id}")
async def stream_order(
    order_id: str,
    request: Request,
    actor: ActorContext = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    """
    Status changes of one order until it is COMPLETED or CANCELLED.
    Customers may only follow their own orders.
    """
    order = await order_ops.get_order(db, actor, order_id)
    return StreamingResponse(
        _sse_generator(order_channel(order.id), request, stop_on_terminal=True),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
