import logging
import math
from decimal import Decimal, ROUND_HALF_UP
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from . import config
from .errors import ActionResult, NotFoundError, StorefrontError
from .models import Product, Review
from .schemas import ReviewInput, ReviewOut

logger = logging.getLogger(__name__)


def create_update_review(db: Session, user_id: int, data: dict[str, Any] | ReviewInput) -> ActionResult:
    """One review per (user, product): a second submission edits the first."""
    try:
        review_in = data if isinstance(data, ReviewInput) else ReviewInput.model_validate(data)
        if db.get(Product, review_in.product_id) is None:
            raise NotFoundError("Product not found")

        existing = db.scalars(
            select(Review).where(Review.product_id == review_in.product_id, Review.user_id == user_id)
        ).first()

        if existing:
            existing.title = review_in.title
            existing.comment = review_in.comment
            existing.rating = review_in.rating
            message = "Review updated successfully"
        else:
            db.add(Review(user_id=user_id, **review_in.model_dump()))
            message = "Review created successfully"
        db.flush()

        update_product_review(db, review_in.product_id)
        db.commit()
    except (StorefrontError, PydanticValidationError, SQLAlchemyError) as e:
        db.rollback()
        return ActionResult.fail(e)
    return ActionResult.ok(message)


def update_product_review(db: Session, product_id: int) -> None:
    """Recompute avg_rating, num_reviews and the 1..5 rating distribution. Caller commits."""
    rows = db.execute(
        select(Review.rating, func.count())
        .where(Review.product_id == product_id)
        .group_by(Review.rating)
    ).all()
    counts = {rating: count for rating, count in rows}

    total = sum(counts.values())
    avg = sum(rating * count for rating, count in counts.items()) / total if total else 0

    product = db.get(Product, product_id)
    product.num_reviews = total
    product.avg_rating = Decimal(str(avg)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
    product.rating_distribution = [{"rating": i, "count": counts.get(i, 0)} for i in range(1, 6)]


def _to_out(review: Review) -> ReviewOut:
    out = ReviewOut.model_validate(review)
    out.user_name = review.user.name if review.user else None
    return out


def get_reviews(db: Session, product_id: int, page: int, limit: int | None = None) -> dict[str, Any]:
    limit = limit or config.PAGE_SIZE
    page = max(int(page), 1)
    rows = db.scalars(
        select(Review)
        .options(joinedload(Review.user))
        .where(Review.product_id == product_id)
        .order_by(Review.created_at.desc(), Review.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()
    count = db.scalar(select(func.count()).select_from(Review).where(Review.product_id == product_id)) or 0
    return {
        "data": [_to_out(r) for r in rows],
        "total_pages": 1 if count == 0 else math.ceil(count / limit),
    }


def get_review_by_product_id(db: Session, product_id: int, user_id: int) -> ReviewOut | None:
    review = db.scalars(
        select(Review).where(Review.product_id == product_id, Review.user_id == user_id)
    ).first()
    return _to_out(review) if review else None
