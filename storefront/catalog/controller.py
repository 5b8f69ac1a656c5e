from quart import Blueprint, jsonify, request

from .schemas import ReviewCreate
from .service import (
    add_review,
    get_categories,
    get_category_products,
    get_featured_products,
    get_product,
    get_products,
    get_reviews,
)
from ..auth.session import current_user_id, require_auth
from ..common.validation import invalid_response, parse_body

bp = Blueprint("catalog", __name__, url_prefix="/api")


@bp.get("/products")
async def products_list():
    return jsonify(await get_products())


@bp.get("/products/featured")
async def products_featured():
    return jsonify(await get_featured_products())


@bp.get("/products/<int:product_id>")
async def product_detail(product_id: int):
    prod = await get_product(product_id)
    if not prod:
        return jsonify({"message": "Produit non trouvé"}), 404
    return jsonify(prod)


@bp.get("/categories")
async def categories_list():
    return jsonify(await get_categories())


@bp.get("/categories/<int:category_id>/products")
async def category_products(category_id: int):
    items = await get_category_products(category_id)
    if items is None:
        return jsonify({"message": "Catégorie non trouvée"}), 404
    return jsonify(items)


@bp.get("/products/<int:product_id>/reviews")
async def reviews_list(product_id: int):
    reviews = await get_reviews(product_id)
    if reviews is None:
        return jsonify({"message": "Produit non trouvé"}), 404
    return jsonify(reviews)


@bp.post("/products/<int:product_id>/reviews")
@require_auth
async def reviews_create(product_id: int):
    body, errors = parse_body(ReviewCreate, await request.get_json(silent=True))
    if errors:
        return invalid_response(errors)
    review = await add_review(current_user_id(), product_id, body.rating, body.comment)
    if review is None:
        return jsonify({"message": "Produit non trouvé"}), 404
    return jsonify(review)
