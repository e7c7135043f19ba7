"""
Orders: creation from a cart, queries, and the Created -> Paid -> Delivered lifecycle.

Lifecycle actions return an ActionResult instead of raising. Once a transition
is committed, the follow-up side effects (email, event, cache invalidation) are
best effort: a failure there is logged and never undoes the transition.
"""
import logging
import math
from datetime import datetime
from typing import Any, Callable

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from shared.events import publish

from . import config
from .cache import ReadThroughCache
from .emails import EmailSender, get_email_sender, send_ask_review_order_items, send_purchase_receipt
from .errors import ActionResult, ConflictError, NotFoundError, StorefrontError
from .models import Order, OrderItem, Product, utcnow
from .pricing import calc_delivery_date_and_price
from .schemas import CartIn, CartItemIn, OrderInput, OrderOut

logger = logging.getLogger(__name__)


# CREATE

def create_order_from_cart(db: Session, cart: CartIn, user_id: int, now: datetime | None = None) -> Order:
    """
    Persist an order for `cart`, re-pricing every line from the catalog.

    Client-side totals are never trusted: unit prices come from the Product
    rows and the breakdown is recomputed here.
    """
    items: list[CartItemIn] = []
    for line in cart.items:
        product = db.get(Product, line.product_id)
        if product is None:
            raise NotFoundError("Product not found")
        items.append(line.model_copy(update={"price": float(product.price)}))

    breakdown = calc_delivery_date_and_price(
        items=items,
        shipping_address=cart.shipping_address,
        delivery_date_index=cart.delivery_date_index,
        now=now,
    )

    data = OrderInput.model_validate({
        "user_id": user_id,
        "items": [i.model_dump() for i in items],
        "shipping_address": cart.shipping_address.model_dump() if cart.shipping_address else None,
        "payment_method": cart.payment_method or "",
        "items_price": breakdown.items_price,
        "shipping_price": breakdown.shipping_price,
        "tax_price": breakdown.tax_price,
        "total_price": breakdown.total_price,
        "expected_delivery_date": breakdown.expected_delivery_date,
    })

    try:
        order = Order(
            user_id=data.user_id,
            payment_method=data.payment_method,
            items_price=data.items_price,
            shipping_price=data.shipping_price,
            tax_price=data.tax_price,
            total_price=data.total_price,
            expected_delivery_date=data.expected_delivery_date,
            **data.shipping_address.model_dump(),
        )
        order.items = [OrderItem(**item.model_dump()) for item in data.items]
        db.add(order)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    db.refresh(order)
    logger.info("Order created id=%s user=%s total=%s", order.id, user_id, order.total_price)
    return order


def create_order(db: Session, cart: CartIn, user_id: int) -> ActionResult:
    try:
        order = create_order_from_cart(db, cart, user_id)
    except (StorefrontError, PydanticValidationError, SQLAlchemyError) as e:
        return ActionResult.fail(e)
    return ActionResult.ok("Order placed successfully", {"order_id": order.id})


# READ

def get_order_by_id(db: Session, order_id: int) -> Order:
    order = db.scalars(
        select(Order).options(selectinload(Order.items)).where(Order.id == order_id)
    ).first()
    if order is None:
        raise NotFoundError("Order not found")
    return order


def get_order_view(db: Session, order_id: int, cache: ReadThroughCache | None = None) -> OrderOut:
    """Order detail view, served from `cache` until a lifecycle transition invalidates it."""

    def load() -> OrderOut:
        return OrderOut.model_validate(get_order_by_id(db, order_id))

    if cache is None:
        return load()
    return cache.get(order_id, load)


def _paginate(db: Session, where: list[Any], page: int, limit: int | None) -> dict[str, Any]:
    limit = limit or config.PAGE_SIZE
    page = max(int(page), 1)
    rows = db.scalars(
        select(Order)
        .options(selectinload(Order.items))
        .where(*where)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()
    count = db.scalar(select(func.count()).select_from(Order).where(*where)) or 0
    return {"data": list(rows), "total_pages": math.ceil(count / limit)}


def get_my_orders(db: Session, user_id: int, page: int, limit: int | None = None) -> dict[str, Any]:
    return _paginate(db, [Order.user_id == user_id], page, limit)


def get_all_orders(db: Session, page: int, limit: int | None = None) -> dict[str, Any]:
    return _paginate(db, [], page, limit)


# DELETE

def delete_order(db: Session, order_id: int, cache: ReadThroughCache | None = None) -> ActionResult:
    try:
        order = db.get(Order, order_id)
        if order is None:
            raise NotFoundError("Order not found")
        db.delete(order)
        db.commit()
    except (StorefrontError, SQLAlchemyError) as e:
        db.rollback()
        return ActionResult.fail(e)
    if cache is not None:
        cache.invalidate(order_id)
    return ActionResult.ok("Order deleted successfully")


# STOCK

def update_product_stock(db: Session, order_id: int, now: datetime | None = None) -> None:
    """
    Mark the order paid and decrement stock for each line, in one transaction.

    A missing order or product aborts everything. There is no floor at zero:
    availability is only checked when items go into the cart.
    """
    try:
        order = db.get(Order, order_id)
        if order is None:
            raise NotFoundError("Order not found")
        order.is_paid = True
        order.paid_at = now or utcnow()

        for item in order.items:
            product = db.get(Product, item.product_id)
            if product is None:
                raise NotFoundError("Product not found")
            product.count_in_stock -= item.quantity
            product.num_sales += item.quantity

        db.commit()
    except Exception:
        db.rollback()
        raise


# LIFECYCLE

def _best_effort(what: str, order_id: int, fn: Callable[[], None]) -> None:
    try:
        fn()
    except Exception:
        logger.exception("%s failed for order=%s", what, order_id)


def update_order_to_paid(
    db: Session,
    order_id: int,
    *,
    payment_result: dict[str, Any] | None = None,
    mailer: EmailSender | None = None,
    cache: ReadThroughCache | None = None,
    enable_inventory_decrement: bool | None = None,
    now: datetime | None = None,
) -> ActionResult:
    """
    Created -> Paid.

    `payment_result` is stored in the same commit as the paid flag, so a
    rejected transition leaves no trace of the payment on the order.
    """
    if enable_inventory_decrement is None:
        enable_inventory_decrement = config.ENABLE_INVENTORY_DECREMENT

    try:
        order = get_order_by_id(db, order_id)
        if order.is_paid:
            raise ConflictError("Order is already paid")

        if payment_result is not None:
            order.payment_result = payment_result
        paid_at = now or utcnow()

        if enable_inventory_decrement:
            update_product_stock(db, order.id, now=paid_at)
        else:
            order.is_paid = True
            order.paid_at = paid_at
            db.commit()
    except (StorefrontError, SQLAlchemyError) as e:
        db.rollback()
        logger.warning("Pay order=%s rejected: %s", order_id, e)
        return ActionResult.fail(e)

    logger.info("Order paid id=%s", order.id)

    if order.user is not None and order.user.email:
        _best_effort(
            "Purchase receipt",
            order.id,
            lambda: send_purchase_receipt(order, mailer or get_email_sender()),
        )
    publish(
        "order.paid",
        {"order_id": order.id, "user_id": order.user_id, "total": float(order.total_price)},
        safe=True,
    )
    if cache is not None:
        cache.invalidate(order.id)

    return ActionResult.ok("Order paid successfully")


def deliver_order(
    db: Session,
    order_id: int,
    *,
    mailer: EmailSender | None = None,
    cache: ReadThroughCache | None = None,
    now: datetime | None = None,
) -> ActionResult:
    """Paid -> Delivered."""
    try:
        order = get_order_by_id(db, order_id)
        if not order.is_paid:
            raise ConflictError("Order is not paid")
        if order.is_delivered:
            raise ConflictError("Order is already delivered")

        delivered_at = now or utcnow()
        order.is_delivered = True
        order.delivered_at = delivered_at
        db.commit()
    except (StorefrontError, SQLAlchemyError) as e:
        db.rollback()
        logger.warning("Deliver order=%s rejected: %s", order_id, e)
        return ActionResult.fail(e)

    logger.info("Order delivered id=%s", order.id)

    if order.user is not None and order.user.email:
        _best_effort(
            "Review request",
            order.id,
            lambda: send_ask_review_order_items(order, mailer or get_email_sender(), now=delivered_at),
        )
    publish("order.delivered", {"order_id": order.id, "user_id": order.user_id}, safe=True)
    if cache is not None:
        cache.invalidate(order.id)

    return ActionResult.ok("Order delivered successfully")
