import logging
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from ..catalog.service import get_product
from ..common.config import settings
from ..common.database import (
    add_cart_item,
    clear_cart,
    fetch_cart_items,
    money,
    remove_cart_item,
    update_cart_item,
)

_logger = logging.getLogger(__name__)


async def get_cart(user_id: int) -> List[Dict[str, Any]]:
    return await fetch_cart_items(user_id)


async def add_item(user_id: int, product_id: int, quantity: int) -> Dict[str, Any]:
    if quantity < 1:
        return {"ok": False, "error": "invalid_quantity"}
    if await get_product(product_id) is None:
        return {"ok": False, "error": "product_not_found"}
    item = await add_cart_item(user_id, product_id, quantity)
    _logger.debug("Cart add | user_id=%s product_id=%s qty=%s -> %s", user_id, product_id, quantity, item["quantity"])
    return {"ok": True, "item": item}


async def update_item(user_id: int, product_id: int, quantity: int) -> Optional[Dict[str, Any]]:
    return await update_cart_item(user_id, product_id, quantity)


async def remove_item(user_id: int, product_id: int) -> bool:
    return await remove_cart_item(user_id, product_id)


async def clear(user_id: int) -> bool:
    return await clear_cart(user_id)


def shipping_for(subtotal: Decimal) -> Decimal:
    if subtotal >= Decimal(settings.FREE_SHIPPING_THRESHOLD):
        return Decimal("0")
    return Decimal(settings.SHIPPING_FEE)


def summarize(items: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    """Subtotal, shipping and total of cart rows as returned by get_cart()."""
    items = list(items)
    subtotal = sum(
        (Decimal(item["product"]["price"]) * item["quantity"] for item in items),
        Decimal("0"),
    )
    shipping = shipping_for(subtotal)
    return {
        "items": items,
        "item_count": len(items),
        "subtotal": money(subtotal),
        "shipping": money(shipping),
        "total": money(subtotal + shipping),
    }
