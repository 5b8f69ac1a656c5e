from quart import Blueprint, jsonify, request

from .schemas import CartItemCreate, CartItemUpdate
from .service import add_item, clear, get_cart, remove_item, summarize, update_item
from ..auth.session import current_user_id, require_auth
from ..common.validation import invalid_response, parse_body

bp = Blueprint("cart", __name__, url_prefix="/api/cart")


@bp.get("")
@require_auth
async def cart_list():
    return jsonify(await get_cart(current_user_id()))


@bp.get("/summary")
@require_auth
async def cart_summary():
    return jsonify(summarize(await get_cart(current_user_id())))


@bp.post("")
@require_auth
async def cart_add():
    body, errors = parse_body(CartItemCreate, await request.get_json(silent=True))
    if errors:
        return invalid_response(errors)
    result = await add_item(current_user_id(), body.product_id, body.quantity)
    if result.get("error") == "product_not_found":
        return jsonify({"message": "Produit non trouvé"}), 404
    if not result["ok"]:
        return invalid_response([{"field": "quantity", "message": "Quantité invalide"}])
    return jsonify(result["item"])


@bp.put("/<int:product_id>")
@require_auth
async def cart_update(product_id: int):
    body, errors = parse_body(CartItemUpdate, await request.get_json(silent=True))
    if errors:
        return invalid_response(errors)
    item = await update_item(current_user_id(), product_id, body.quantity)
    if item is None:
        return jsonify({"message": "Article non trouvé dans le panier"}), 404
    return jsonify(item)


@bp.delete("/<int:product_id>")
@require_auth
async def cart_remove(product_id: int):
    if not await remove_item(current_user_id(), product_id):
        return jsonify({"message": "Article non trouvé dans le panier"}), 404
    return jsonify({"message": "Article retiré du panier"})


@bp.delete("")
@require_auth
async def cart_clear():
    await clear(current_user_id())
    return jsonify({"message": "Panier vidé"})
