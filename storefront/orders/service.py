import logging
from typing import Any, Dict, List, Optional

from ..common.config import settings
from ..common.database import fetch_order, fetch_orders
from ..common.kafka_client import publish_event

_logger = logging.getLogger(__name__)


async def list_orders(user_id: int) -> List[Dict[str, Any]]:
    return await fetch_orders(user_id)


async def get_order(user_id: int, order_id: int) -> Optional[Dict[str, Any]]:
    """The order with its items, or None when missing or owned by someone else."""
    order = await fetch_order(order_id)
    if order is None or order["user_id"] != user_id:
        return None
    return order


async def publish_order_event(event: str, order: Dict[str, Any]) -> None:
    payload = {
        "event": event,
        "order_id": order["id"],
        "user_id": order["user_id"],
        "status": order["status"],
        "total_amount": order["total_amount"],
        "currency": order["currency"],
        "transaction_id": order["transaction_id"],
    }
    if await publish_event(settings.ORDER_EVENTS_TOPIC, payload, key=order["transaction_id"]):
        _logger.debug("Order event published | event=%s order_id=%s", event, order["id"])
