import json

from sqlalchemy import String, cast, select
from sqlalchemy.orm import Session

from .errors import NotFoundError
from .models import Product


def _published():
    return select(Product).where(Product.is_published == True)  # noqa: E712


def _tagged(tag: str):
    # tags is stored as a JSON array; match the quoted element in its text form
    return cast(Product.tags, String).contains(json.dumps(tag), autoescape=True)


def get_all_categories(db: Session) -> list[str]:
    rows = db.scalars(
        select(Product.category)
        .where(Product.is_published == True)  # noqa: E712
        .distinct()
        .order_by(Product.category)
    ).all()
    return list(rows)


def get_products_by_tag(db: Session, tag: str, limit: int = 10) -> list[Product]:
    rows = db.scalars(
        _published()
        .where(_tagged(tag))
        .order_by(Product.created_at.desc(), Product.id.desc())
        .limit(limit)
    ).all()
    return list(rows)


def get_products_for_card(db: Session, tag: str, limit: int = 4) -> list[dict]:
    return [
        {
            "name": p.name,
            "href": f"/product/{p.slug}",
            "image": p.images[0] if p.images else "",
        }
        for p in get_products_by_tag(db, tag, limit=limit)
    ]


def get_product_by_slug(db: Session, slug: str) -> Product:
    product = db.scalars(_published().where(Product.slug == slug)).first()
    if product is None:
        raise NotFoundError("Product not found")
    return product


def get_browsing_history(
    db: Session,
    list_type: str = "history",
    ids: list[int] | None = None,
    categories: list[str] | None = None,
) -> list[Product]:
    """
    history: the viewed products, in viewing order.
    related: other products from the viewed categories.
    """
    if not ids or not categories:
        return []

    if list_type == "history":
        rows = db.scalars(select(Product).where(Product.id.in_(ids))).all()
        position = {pid: i for i, pid in enumerate(ids)}
        return sorted(rows, key=lambda p: position[p.id])

    rows = db.scalars(
        select(Product)
        .where(Product.category.in_(categories), Product.id.not_in(ids))
        .order_by(Product.id)
    ).all()
    return list(rows)
