from quart import Blueprint, jsonify

from .service import get_order, list_orders
from ..auth.session import current_user_id, require_auth

bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@bp.get("")
@require_auth
async def orders_list():
    return jsonify(await list_orders(current_user_id()))


@bp.get("/<int:order_id>")
@require_auth
async def order_detail(order_id: int):
    order = await get_order(current_user_id(), order_id)
    if order is None:
        return jsonify({"message": "Commande non trouvée"}), 404
    return jsonify(order)
