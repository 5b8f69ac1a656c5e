import logging
from decimal import Decimal
from typing import Optional, Dict, Any, List

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, async_sessionmaker, AsyncSession

from .config import settings
from .db import Base
from ..auth.model import User
from ..catalog.model import Category, Product, Review
from ..cart.model import CartItem
from ..orders.model import Order, OrderItem, ORDER_PENDING

_logger = logging.getLogger(__name__)


# Async SQLAlchemy engine and session factory, rebuilt by configure_engine()
engine: Optional[AsyncEngine] = None
AsyncSessionLocal: Optional[async_sessionmaker] = None

_CENTS = Decimal("0.01")


def configure_engine(db_url: Optional[str] = None) -> None:
    global engine, AsyncSessionLocal
    engine = create_async_engine(db_url or settings.DB_URL, future=True, echo=False)
    AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def dispose_engine() -> None:
    global engine, AsyncSessionLocal
    if engine is not None:
        await engine.dispose()
    engine = None
    AsyncSessionLocal = None


async def init_db() -> None:
    if engine is None:
        configure_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


def money(value: Any) -> str:
    return str(Decimal(value).quantize(_CENTS))


def _user_dict(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "email_verified_at": user.email_verified_at.isoformat() if user.email_verified_at else None,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


def _category_dict(cat: Category) -> Dict[str, Any]:
    return {
        "id": cat.id,
        "name": cat.name,
        "description": cat.description,
        "slug": cat.slug,
        "is_active": cat.is_active,
    }


def _product_dict(prod: Product) -> Dict[str, Any]:
    return {
        "id": prod.id,
        "name": prod.name,
        "description": prod.description,
        "price": money(prod.price),
        "original_price": money(prod.original_price) if prod.original_price is not None else None,
        "stock": prod.stock,
        "category_id": prod.category_id,
        "images": list(prod.images or []),
        "rating": money(prod.rating or 0),
        "review_count": prod.review_count or 0,
        "is_active": prod.is_active,
        "is_featured": prod.is_featured,
    }


def _review_dict(review: Review) -> Dict[str, Any]:
    return {
        "id": review.id,
        "user_id": review.user_id,
        "product_id": review.product_id,
        "rating": review.rating,
        "comment": review.comment,
        "is_verified": review.is_verified,
        "created_at": review.created_at.isoformat() if review.created_at else None,
    }


def _cart_dict(item: CartItem, prod: Optional[Product] = None) -> Dict[str, Any]:
    data = {
        "id": item.id,
        "user_id": item.user_id,
        "product_id": item.product_id,
        "quantity": item.quantity,
    }
    if prod is not None:
        data["product"] = {
            "id": prod.id,
            "name": prod.name,
            "price": money(prod.price),
            "images": list(prod.images or []),
            "stock": prod.stock,
        }
    return data


def _order_dict(order: Order) -> Dict[str, Any]:
    return {
        "id": order.id,
        "user_id": order.user_id,
        "status": order.status,
        "total_amount": money(order.total_amount),
        "currency": order.currency,
        "payment_method": order.payment_method,
        "transaction_id": order.transaction_id,
        "shipping_address": order.shipping_address,
        "billing_address": order.billing_address,
        "created_at": order.created_at.isoformat() if order.created_at else None,
        "updated_at": order.updated_at.isoformat() if order.updated_at else None,
    }


# ---------- Users ----------

async def fetch_user(user_id: int) -> Optional[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        user = await session.get(User, user_id)
        return _user_dict(user) if user else None


async def fetch_user_credentials(email: str) -> Optional[Dict[str, Any]]:
    """Public user fields plus the password hash, for login only."""
    async with AsyncSessionLocal() as session:
        res = await session.execute(sa.select(User).where(User.email == email))
        user = res.scalar_one_or_none()
        if not user:
            return None
        data = _user_dict(user)
        data["password"] = user.password
        return data


async def create_user(name: str, email: str, password_hash: str) -> Optional[Dict[str, Any]]:
    """Returns None when the email is already registered."""
    async with AsyncSessionLocal() as session:
        user = User(name=name, email=email, password=password_hash)
        session.add(user)
        try:
            await session.commit()
        except IntegrityError:
            await session.rollback()
            return None
        await session.refresh(user)
        return _user_dict(user)


# ---------- Catalog ----------

async def fetch_categories() -> List[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        res = await session.execute(sa.select(Category).where(Category.is_active.is_(True)).order_by(Category.id))
        return [_category_dict(c) for c in res.scalars().all()]


async def fetch_category(category_id: int) -> Optional[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        cat = await session.get(Category, category_id)
        return _category_dict(cat) if cat else None


async def create_category(name: str, slug: str, description: Optional[str] = None) -> Dict[str, Any]:
    async with AsyncSessionLocal() as session:
        cat = Category(name=name, slug=slug, description=description, is_active=True)
        session.add(cat)
        await session.flush()  # assign PK
        data = _category_dict(cat)
        await session.commit()
        return data


async def fetch_products(
    featured: bool = False, category_id: Optional[int] = None, limit: Optional[int] = None
) -> List[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        stmt = sa.select(Product).where(Product.is_active.is_(True))
        if featured:
            stmt = stmt.where(Product.is_featured.is_(True))
        if category_id is not None:
            stmt = stmt.where(Product.category_id == category_id)
        stmt = stmt.order_by(Product.id)
        if limit:
            stmt = stmt.limit(limit)
        res = await session.execute(stmt)
        return [_product_dict(p) for p in res.scalars().all()]


async def fetch_product(product_id: int) -> Optional[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        prod = await session.get(Product, product_id)
        return _product_dict(prod) if prod else None


async def count_products() -> int:
    async with AsyncSessionLocal() as session:
        res = await session.execute(sa.select(sa.func.count(Product.id)))
        return int(res.scalar() or 0)


async def create_product(**fields: Any) -> Dict[str, Any]:
    async with AsyncSessionLocal() as session:
        fields.setdefault("is_active", True)
        prod = Product(**fields)
        session.add(prod)
        await session.flush()
        data = _product_dict(prod)
        await session.commit()
        return data


async def fetch_reviews(product_id: int) -> List[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        stmt = (
            sa.select(Review)
            .where(Review.product_id == product_id)
            .order_by(Review.created_at.desc(), Review.id.desc())
        )
        res = await session.execute(stmt)
        return [_review_dict(r) for r in res.scalars().all()]


async def create_review(user_id: int, product_id: int, rating: int, comment: Optional[str]) -> Optional[Dict[str, Any]]:
    """Insert a review and fold it into the product's rating/review_count in one transaction.

    Returns None when the product does not exist.
    """
    async with AsyncSessionLocal() as session:
        async with session.begin():
            res = await session.execute(
                sa.select(Product).where(Product.id == product_id).with_for_update()
            )
            prod = res.scalar_one_or_none()
            if prod is None:
                return None
            count = prod.review_count or 0
            total = Decimal(prod.rating or 0) * count + rating
            prod.review_count = count + 1
            prod.rating = (total / (count + 1)).quantize(_CENTS)
            review = Review(user_id=user_id, product_id=product_id, rating=rating, comment=comment)
            session.add(review)
            await session.flush()
            await session.refresh(review)
            return _review_dict(review)


# ---------- Cart ----------

async def fetch_cart_items(user_id: int) -> List[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        stmt = (
            sa.select(CartItem, Product)
            .join(Product, Product.id == CartItem.product_id)
            .where(CartItem.user_id == user_id)
            .order_by(CartItem.id)
        )
        res = await session.execute(stmt)
        return [_cart_dict(item, prod) for item, prod in res.all()]


async def _select_cart_row(session: AsyncSession, user_id: int, product_id: int) -> Optional[CartItem]:
    res = await session.execute(
        sa.select(CartItem).where(CartItem.user_id == user_id, CartItem.product_id == product_id)
    )
    return res.scalar_one_or_none()


async def add_cart_item(user_id: int, product_id: int, quantity: int) -> Dict[str, Any]:
    """Merge-on-add: increment the existing row in place, insert otherwise.

    The increment is a single UPDATE so concurrent adds cannot lose each other's
    quantity; an insert that races another insert falls back to the increment.
    """
    for attempt in range(2):
        try:
            async with AsyncSessionLocal() as session:
                async with session.begin():
                    stmt = (
                        sa.update(CartItem)
                        .where(CartItem.user_id == user_id, CartItem.product_id == product_id)
                        .values(quantity=CartItem.quantity + quantity)
                        .execution_options(synchronize_session=False)
                    )
                    res = await session.execute(stmt)
                    if not res.rowcount:
                        session.add(CartItem(user_id=user_id, product_id=product_id, quantity=quantity))
                        await session.flush()
                    item = await _select_cart_row(session, user_id, product_id)
                    return _cart_dict(item)
        except IntegrityError:
            if attempt:
                raise
            _logger.debug("Cart insert raced, retrying as increment | user_id=%s product_id=%s", user_id, product_id)
    raise RuntimeError("cart item could not be merged")


async def update_cart_item(user_id: int, product_id: int, quantity: int) -> Optional[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        async with session.begin():
            stmt = (
                sa.update(CartItem)
                .where(CartItem.user_id == user_id, CartItem.product_id == product_id)
                .values(quantity=quantity)
                .execution_options(synchronize_session=False)
            )
            res = await session.execute(stmt)
            if not res.rowcount:
                return None
            item = await _select_cart_row(session, user_id, product_id)
            return _cart_dict(item)


async def remove_cart_item(user_id: int, product_id: int) -> bool:
    async with AsyncSessionLocal() as session:
        async with session.begin():
            stmt = sa.delete(CartItem).where(CartItem.user_id == user_id, CartItem.product_id == product_id)
            res = await session.execute(stmt)
            return (res.rowcount or 0) > 0


async def clear_cart(user_id: int) -> bool:
    async with AsyncSessionLocal() as session:
        async with session.begin():
            res = await session.execute(sa.delete(CartItem).where(CartItem.user_id == user_id))
            return (res.rowcount or 0) > 0


# ---------- Orders ----------

async def create_order(
    user_id: int,
    total_amount: Decimal,
    currency: str,
    transaction_id: str,
    payment_method: str,
    items: List[Dict[str, Any]],
    status: str = ORDER_PENDING,
) -> Dict[str, Any]:
    async with AsyncSessionLocal() as session:
        async with session.begin():
            order = Order(
                user_id=user_id,
                status=status,
                total_amount=total_amount,
                currency=currency,
                transaction_id=transaction_id,
                payment_method=payment_method,
                shipping_address="",
                billing_address="",
            )
            session.add(order)
            await session.flush()  # assign PK
            for line in items:
                session.add(
                    OrderItem(
                        order_id=order.id,
                        product_id=line["product_id"],
                        quantity=line["quantity"],
                        price=Decimal(line["price"]),
                    )
                )
            await session.flush()
            await session.refresh(order)
            return _order_dict(order)


async def fetch_orders(user_id: int) -> List[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        stmt = sa.select(Order).where(Order.user_id == user_id).order_by(Order.created_at.desc(), Order.id.desc())
        res = await session.execute(stmt)
        return [_order_dict(o) for o in res.scalars().all()]


async def fetch_order(order_id: int) -> Optional[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        order = await session.get(Order, order_id)
        if not order:
            return None
        data = _order_dict(order)
        res = await session.execute(sa.select(OrderItem).where(OrderItem.order_id == order_id).order_by(OrderItem.id))
        data["items"] = [
            {"product_id": i.product_id, "quantity": i.quantity, "price": money(i.price)}
            for i in res.scalars().all()
        ]
        return data


async def fetch_order_by_transaction(transaction_id: str, user_id: Optional[int] = None) -> Optional[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        stmt = sa.select(Order).where(Order.transaction_id == transaction_id)
        if user_id is not None:
            stmt = stmt.where(Order.user_id == user_id)
        res = await session.execute(stmt)
        order = res.scalar_one_or_none()
        return _order_dict(order) if order else None


async def transition_order(
    transaction_id: str, status: str, user_id: Optional[int] = None, clear_owner_cart: bool = False
) -> Optional[Dict[str, Any]]:
    """Move a pending order to a terminal status.

    Only a row still in ``pending`` is touched, so repeated calls are no-ops
    and return None. The owner's cart is cleared in the same transaction when
    requested and the status actually changed.
    """
    async with AsyncSessionLocal() as session:
        async with session.begin():
            stmt = sa.update(Order).where(Order.transaction_id == transaction_id, Order.status == ORDER_PENDING)
            if user_id is not None:
                stmt = stmt.where(Order.user_id == user_id)
            stmt = stmt.values(status=status).execution_options(synchronize_session=False)
            res = await session.execute(stmt)
            if not res.rowcount:
                return None
            order = (await session.execute(sa.select(Order).where(Order.transaction_id == transaction_id))).scalar_one()
            if clear_owner_cart:
                await session.execute(sa.delete(CartItem).where(CartItem.user_id == order.user_id))
            return _order_dict(order)
