"""Checkout orchestration against the payment gateway.

An order is created ``pending`` only after the gateway accepted the payment
request, and later moves to ``completed`` or ``failed`` exactly once. Two
paths can settle it: the gateway webhook (``handle_notification``) and the
client poll (``check_payment_status``). Both go through ``transition_order``,
which only touches rows still pending, so either path may run any number of
times in any order.
"""
import logging
import secrets
import time
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple

from prometheus_client import Counter

from .gateway import (
    NOTIFY_SUCCESS_RESULT,
    STATUS_ACCEPTED,
    GatewayError,
    GatewayTimeout,
)
from .schemas import PaymentNotification
from ..common.config import settings
from ..common.database import create_order, fetch_cart_items, fetch_order_by_transaction, transition_order
from ..orders.model import ORDER_COMPLETED, ORDER_FAILED
from ..orders.service import publish_order_event

_logger = logging.getLogger(__name__)

INIT_ERROR_MESSAGE = "Erreur lors de l'initialisation du paiement"
CHECK_NOT_FOUND_MESSAGE = "Transaction non trouvée"
PAYMENT_METHOD = "cinetpay"

# Gateway statuses that mean "not settled yet" rather than "refused"
NON_FINAL_STATUSES = frozenset(
    {"", "PENDING", "WAITING_CUSTOMER_PAYMENT", "WAITING_CUSTOMER_TO_VALIDATE", "WAITING_CUSTOMER_OTP_CODE"}
)

PAYMENT_TRANSITIONS = Counter(
    "payment_transitions_total",
    "Orders moved out of pending",
    ["source", "status"],
)


def new_transaction_id() -> str:
    return f"TXN_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


def split_name(name: Optional[str]) -> Tuple[str, str]:
    parts = (name or "").split()
    if not parts:
        return "Client", ""
    return parts[0], " ".join(parts[1:])


async def initiate_payment(
    gateway,
    user: Dict[str, Any],
    amount: int,
    currency: str,
    description: Optional[str],
    notify_url: str,
    return_url: str,
    phone: Optional[str] = None,
) -> Dict[str, Any]:
    if amount <= 0:
        return {"ok": False, "error": "invalid_amount"}

    transaction_id = new_transaction_id()
    first_name, surname = split_name(user.get("name"))
    try:
        result = await gateway.create_payment(
            transaction_id=transaction_id,
            amount=amount,
            currency=currency,
            description=description or settings.DEFAULT_PAYMENT_DESCRIPTION,
            customer_name=first_name,
            customer_surname=surname,
            customer_email=user["email"],
            customer_phone_number=phone or settings.CINETPAY_DEFAULT_PHONE,
            notify_url=notify_url,
            return_url=return_url,
        )
    except GatewayTimeout as e:
        _logger.warning("Payment initiation timed out | transaction_id=%s err=%s", transaction_id, e)
        return {"ok": False, "error": "gateway_timeout", "retryable": True}
    except GatewayError as e:
        _logger.error("Payment initiation failed | transaction_id=%s err=%s", transaction_id, e)
        return {"ok": False, "error": "gateway_unavailable"}

    if not result.ok:
        _logger.warning(
            "Gateway refused payment | transaction_id=%s code=%s message=%s", transaction_id, result.code, result.message
        )
        return {"ok": False, "error": "gateway_rejected", "message": result.message or INIT_ERROR_MESSAGE}

    items = [
        {"product_id": line["product_id"], "quantity": line["quantity"], "price": line["product"]["price"]}
        for line in await fetch_cart_items(user["id"])
    ]
    order = await create_order(
        user_id=user["id"],
        total_amount=Decimal(amount),
        currency=currency,
        transaction_id=transaction_id,
        payment_method=PAYMENT_METHOD,
        items=items,
    )
    _logger.info(
        "Order pending payment | order_id=%s transaction_id=%s amount=%s %s", order["id"], transaction_id, amount, currency
    )
    await publish_order_event("order_created", order)
    return {
        "ok": True,
        "payment_url": result.payment_url,
        "payment_token": result.payment_token,
        "transaction_id": transaction_id,
        "order_id": order["id"],
    }


async def complete_order(transaction_id: str, source: str, user_id: Optional[int] = None) -> Optional[Dict[str, Any]]:
    """Settle a pending order as paid and empty its owner's cart. None if nothing changed."""
    order = await transition_order(transaction_id, ORDER_COMPLETED, user_id=user_id, clear_owner_cart=True)
    if order is not None:
        PAYMENT_TRANSITIONS.labels(source=source, status=ORDER_COMPLETED).inc()
        _logger.info("Payment completed | order_id=%s transaction_id=%s source=%s", order["id"], transaction_id, source)
        await publish_order_event("order_completed", order)
    return order


async def fail_order(transaction_id: str, source: str, user_id: Optional[int] = None) -> Optional[Dict[str, Any]]:
    order = await transition_order(transaction_id, ORDER_FAILED, user_id=user_id)
    if order is not None:
        PAYMENT_TRANSITIONS.labels(source=source, status=ORDER_FAILED).inc()
        _logger.info("Payment failed | order_id=%s transaction_id=%s source=%s", order["id"], transaction_id, source)
        await publish_order_event("order_failed", order)
    return order


def is_accepted(notification: PaymentNotification) -> bool:
    return (notification.cpm_result or "") == NOTIFY_SUCCESS_RESULT and (
        notification.cpm_trans_status or ""
    ).upper() == STATUS_ACCEPTED


async def handle_notification(notification: PaymentNotification) -> Dict[str, Any]:
    """Apply a gateway notification. Never fails for unknown or already settled transactions."""
    transaction_id = notification.cpm_trans_id
    status = (notification.cpm_trans_status or "").upper()
    if is_accepted(notification):
        order = await complete_order(transaction_id, source="notify")
    elif not notification.cpm_result and status in NON_FINAL_STATUSES:
        _logger.info("Notification without outcome ignored | transaction_id=%s status=%s", transaction_id, status)
        return {"ok": True, "changed": False}
    else:
        order = await fail_order(transaction_id, source="notify")

    if order is None:
        existing = await fetch_order_by_transaction(transaction_id)
        if existing is None:
            _logger.warning("Notification for unknown transaction | transaction_id=%s", transaction_id)
        else:
            _logger.info(
                "Notification for settled order | transaction_id=%s status=%s", transaction_id, existing["status"]
            )
        return {"ok": True, "changed": False}
    return {"ok": True, "changed": True, "status": order["status"]}


async def check_payment_status(gateway, user_id: int, transaction_id: str) -> Dict[str, Any]:
    try:
        result = await gateway.check_payment(transaction_id)
    except GatewayTimeout as e:
        _logger.warning("Payment status check timed out | transaction_id=%s err=%s", transaction_id, e)
        return {"ok": False, "error": "gateway_timeout", "retryable": True}
    except GatewayError as e:
        _logger.error("Payment status check failed | transaction_id=%s err=%s", transaction_id, e)
        return {"ok": False, "error": "gateway_unavailable"}

    if not result.ok:
        return {"ok": False, "error": "gateway_rejected", "message": result.message or CHECK_NOT_FOUND_MESSAGE}

    if (result.status or "").upper() == STATUS_ACCEPTED:
        await complete_order(transaction_id, source="poll", user_id=user_id)
    return {"ok": True, "status": result.status, "amount": result.amount, "currency": result.currency}
