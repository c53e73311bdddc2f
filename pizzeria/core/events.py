"""
Pizzeria POS — Order event publishing (Redis pub/sub)

Every committed order status change is pushed to two channels:
  order:{order_id}   one customer/server following a single order
  orders:board       the kitchen display board
"""
import json
import logging
from datetime import datetime, timezone

from pizzeria.core.redis_client import get_redis

logger = logging.getLogger(__name__)

BOARD_CHANNEL = "orders:board"


def order_channel(order_id: str) -> str:
    return f"order:{order_id}"


async def publish_order_event(order, previous_status: str | None = None) -> None:
    """Push a status snapshot. Publication failures MUST NOT affect the committed write."""
    payload = {
        "order_id": order.id,
        "order_number": order.order_number,
        "order_type": getattr(order.order_type, "value", order.order_type),
        "status": getattr(order.status, "value", order.status),
        "previous_status": getattr(previous_status, "value", previous_status),
        "table_id": order.table_id,
        "estimated_completion_time": (
            order.estimated_completion_time.isoformat() if order.estimated_completion_time else None
        ),
        "published_at": datetime.now(tz=timezone.utc).isoformat(),
    }
    message = json.dumps(payload)
    try:
        redis = get_redis()
        await redis.publish(order_channel(order.id), message)
        await redis.publish(BOARD_CHANNEL, message)
    except Exception as exc:
        logger.warning("Order event for %s not published: %s", order.id, exc)
