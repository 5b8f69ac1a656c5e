import logging
from typing import Any, Dict, List, Optional

from ..common.database import (
    create_review,
    fetch_categories,
    fetch_category,
    fetch_product,
    fetch_products,
    fetch_reviews,
)

_logger = logging.getLogger(__name__)

FEATURED_LIMIT = 8


async def get_products() -> List[Dict[str, Any]]:
    return await fetch_products()


async def get_featured_products() -> List[Dict[str, Any]]:
    return await fetch_products(featured=True, limit=FEATURED_LIMIT)


async def get_product(product_id: int, active_only: bool = True) -> Optional[Dict[str, Any]]:
    prod = await fetch_product(product_id)
    if prod is None or (active_only and not prod["is_active"]):
        return None
    return prod


async def get_categories() -> List[Dict[str, Any]]:
    return await fetch_categories()


async def get_category_products(category_id: int) -> Optional[List[Dict[str, Any]]]:
    """None when the category is unknown or inactive."""
    cat = await fetch_category(category_id)
    if cat is None or not cat["is_active"]:
        return None
    return await fetch_products(category_id=category_id)


async def get_reviews(product_id: int) -> Optional[List[Dict[str, Any]]]:
    if await get_product(product_id) is None:
        return None
    return await fetch_reviews(product_id)


async def add_review(user_id: int, product_id: int, rating: int, comment: Optional[str]) -> Optional[Dict[str, Any]]:
    if await get_product(product_id) is None:
        return None
    review = await create_review(user_id, product_id, rating, comment)
    if review is not None:
        _logger.info("Review created | product_id=%s user_id=%s rating=%s", product_id, user_id, rating)
    return review
