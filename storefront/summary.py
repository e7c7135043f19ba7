"""Admin dashboard rollups over orders, products and users."""
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session, joinedload, selectinload

from . import config
from .models import Order, Product, User


def _count(db: Session, model, date_from: datetime, date_to: datetime) -> int:
    return db.scalar(
        select(func.count()).select_from(model).where(model.created_at >= date_from, model.created_at <= date_to)
    ) or 0


def _six_months_back(now: datetime) -> datetime:
    month = now.month - 5
    year = now.year
    while month <= 0:
        month += 12
        year -= 1
    return datetime(year, month, 1, tzinfo=now.tzinfo)


def get_order_summary(db: Session, date_from: datetime, date_to: datetime, now: datetime | None = None) -> dict[str, Any]:
    now = now or datetime.now(timezone.utc)

    in_range = db.scalars(
        select(Order)
        .options(selectinload(Order.items))
        .where(Order.created_at >= date_from, Order.created_at <= date_to)
    ).all()

    total_sales = sum(float(o.total_price) for o in in_range)

    daily: dict[tuple[int, int, int], float] = defaultdict(float)
    categories: dict[str, int] = defaultdict(int)
    products: dict[int, dict[str, Any]] = {}
    for order in in_range:
        created = order.created_at
        daily[(created.year, created.month, created.day)] += float(order.total_price)
        for item in order.items:
            categories[item.category] += item.quantity
            entry = products.setdefault(
                item.product_id,
                {"id": item.product_id, "label": item.name, "image": item.image, "value": 0.0},
            )
            entry["value"] += item.quantity * float(item.price)

    since = _six_months_back(now)
    recent = db.scalars(select(Order).where(Order.created_at >= since)).all()
    monthly: dict[str, float] = defaultdict(float)
    for order in recent:
        monthly[order.created_at.strftime("%Y-%m")] += float(order.total_price)

    latest = db.scalars(
        select(Order)
        .options(joinedload(Order.user))
        .order_by(Order.created_at.desc(), Order.id.desc())
        .limit(config.PAGE_SIZE)
    ).all()

    top_products = sorted(products.values(), key=lambda p: p["value"], reverse=True)[:6]
    top_categories = sorted(categories.items(), key=lambda kv: kv[1], reverse=True)[:5]

    return {
        "orders_count": len(in_range),
        "products_count": _count(db, Product, date_from, date_to),
        "users_count": _count(db, User, date_from, date_to),
        "total_sales": round(total_sales, 2),
        "monthly_sales": [
            {"label": label, "value": round(value, 2)}
            for label, value in sorted(monthly.items(), reverse=True)
        ],
        "sales_chart_data": [
            {"date": f"{y}/{m}/{d}", "total_sales": round(value, 2)}
            for (y, m, d), value in sorted(daily.items())
        ],
        "top_sales_categories": [{"category": c, "total_sales": n} for c, n in top_categories],
        "top_sales_products": sorted(top_products, key=lambda p: p["id"]),
        "latest_orders": [
            {
                "id": o.id,
                "user_name": o.user.name if o.user else None,
                "total_price": float(o.total_price),
                "is_paid": o.is_paid,
                "is_delivered": o.is_delivered,
                "created_at": o.created_at,
            }
            for o in latest
        ],
    }
