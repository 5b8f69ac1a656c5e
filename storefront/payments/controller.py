import logging

from quart import Blueprint, current_app, jsonify, request

from .gateway import verify_notification
from .schemas import PaymentInitiate, PaymentNotification
from .service import INIT_ERROR_MESSAGE, check_payment_status, handle_notification, initiate_payment
from ..auth.service import get_user
from ..auth.session import current_user_id, require_auth
from ..common.config import settings
from ..common.validation import invalid_response, parse_body

_logger = logging.getLogger(__name__)

bp = Blueprint("payments", __name__, url_prefix="/api/payment")

RETRY_MESSAGE = "Le service de paiement ne répond pas, veuillez réessayer"


def _gateway():
    return current_app.extensions["payment_gateway"]


def _public_url(path: str) -> str:
    base = settings.PUBLIC_BASE_URL.rstrip("/") or request.host_url.rstrip("/")
    return f"{base}{path}"


@bp.post("/initiate")
@require_auth
async def initiate():
    body, errors = parse_body(PaymentInitiate, await request.get_json(silent=True))
    if errors:
        if any(e["field"] == "amount" for e in errors):
            return invalid_response(errors, message="Montant invalide")
        return invalid_response(errors)
    user = await get_user(current_user_id())
    if user is None:
        return jsonify({"message": "Utilisateur non trouvé"}), 401

    result = await initiate_payment(
        _gateway(),
        user,
        amount=body.amount,
        currency=body.currency,
        description=body.description,
        notify_url=_public_url("/api/payment/notify"),
        return_url=_public_url("/payment/success"),
        phone=body.customer_phone_number,
    )
    if result["ok"]:
        return jsonify(
            {
                "success": True,
                "payment_url": result["payment_url"],
                "payment_token": result["payment_token"],
                "transaction_id": result["transaction_id"],
                "order_id": result["order_id"],
            }
        )
    error = result["error"]
    if error == "gateway_timeout":
        return jsonify({"success": False, "message": RETRY_MESSAGE, "retryable": True}), 504
    if error == "gateway_unavailable":
        return jsonify({"success": False, "message": INIT_ERROR_MESSAGE}), 502
    if error == "invalid_amount":
        return jsonify({"success": False, "message": "Montant invalide"}), 400
    return jsonify({"success": False, "message": result.get("message") or INIT_ERROR_MESSAGE}), 400


@bp.post("/notify")
async def notify():
    try:
        if request.mimetype == "application/json":
            data = await request.get_json(silent=True)
            if not isinstance(data, dict):
                data = {}
        else:
            data = (await request.form).to_dict()
        _logger.info("Payment notification received | transaction_id=%s", data.get("cpm_trans_id"))

        if settings.CINETPAY_SECRET_KEY and not verify_notification(
            data, request.headers.get("x-token"), settings.CINETPAY_SECRET_KEY
        ):
            _logger.warning("Notification rejected, bad token | transaction_id=%s", data.get("cpm_trans_id"))
            return "FORBIDDEN", 403

        notification, errors = parse_body(PaymentNotification, data)
        if errors:
            _logger.warning("Malformed notification ignored | errors=%s", errors)
            return "OK", 200
        await handle_notification(notification)
        return "OK", 200
    except Exception:
        _logger.exception("Notification handling error")
        return "ERROR", 500


@bp.get("/status/<transaction_id>")
@require_auth
async def status(transaction_id: str):
    result = await check_payment_status(_gateway(), current_user_id(), transaction_id)
    if result["ok"]:
        return jsonify(
            {"success": True, "status": result["status"], "amount": result["amount"], "currency": result["currency"]}
        )
    if result["error"] == "gateway_timeout":
        return jsonify({"success": False, "message": RETRY_MESSAGE, "retryable": True}), 504
    if result["error"] == "gateway_unavailable":
        return jsonify({"success": False, "message": "Erreur lors de la vérification du statut"}), 502
    return jsonify({"success": False, "message": result.get("message") or "Transaction non trouvée"})
