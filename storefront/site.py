"""Site settings, content pages and account profile."""
import copy
import logging
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import config
from .cache import ReadThroughCache
from .errors import ActionResult, NotFoundError, StorefrontError
from .models import Setting, User, WebPage
from .schemas import SettingIn, UserNameIn, UserOut

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS: dict[str, Any] = {
    "common": {
        "free_shipping_min_price": config.FREE_SHIPPING_MIN_PRICE,
        "is_maintenance_mode": False,
        "default_theme": "Light",
        "default_color": "Gold",
        "page_size": config.PAGE_SIZE,
    },
    "site": {
        "name": config.APP_NAME,
        "url": config.SERVER_URL,
        "email": "admin@example.com",
    },
    "carousels": [],
    "available_delivery_dates": config.AVAILABLE_DELIVERY_DATES,
    "available_payment_methods": config.AVAILABLE_PAYMENT_METHODS,
    "default_payment_method": config.DEFAULT_PAYMENT_METHOD,
}


class SettingsCache:
    """Site settings read through a cache; admin updates invalidate it."""

    KEY = "settings"

    def __init__(self, ttl: float = config.SETTINGS_CACHE_TTL):
        self._cache = ReadThroughCache("settings", ttl=ttl)

    def get(self, db: Session) -> dict[str, Any]:
        return self._cache.get(self.KEY, lambda: get_no_cached_setting(db))

    def set(self, value: dict[str, Any]) -> None:
        self._cache.set(self.KEY, value)

    def invalidate(self) -> None:
        self._cache.invalidate(self.KEY)


def get_no_cached_setting(db: Session) -> dict[str, Any]:
    row = db.scalars(select(Setting).order_by(Setting.id)).first()
    if row is None:
        return copy.deepcopy(DEFAULT_SETTINGS)
    return copy.deepcopy(row.data)


def update_setting(db: Session, new_setting: dict[str, Any] | SettingIn, cache: SettingsCache | None = None) -> ActionResult:
    try:
        setting_in = new_setting if isinstance(new_setting, SettingIn) else SettingIn.model_validate(new_setting)
        data = setting_in.model_dump()
        row = db.scalars(select(Setting).order_by(Setting.id)).first()
        if row is None:
            db.add(Setting(data=data))
        else:
            row.data = data
        db.commit()
    except (PydanticValidationError, SQLAlchemyError) as e:
        db.rollback()
        return ActionResult.fail(e)

    if cache is not None:
        cache.set(data)
    logger.info("Settings updated")
    return ActionResult.ok("Setting updated successfully")


# Web pages

def get_all_web_pages(db: Session) -> list[WebPage]:
    return list(db.scalars(select(WebPage).order_by(WebPage.id)).all())


def get_web_page_by_id(db: Session, web_page_id: int) -> WebPage:
    page = db.get(WebPage, web_page_id)
    if page is None:
        raise NotFoundError("WebPage not found")
    return page


def get_web_page_by_slug(db: Session, slug: str) -> WebPage:
    page = db.scalars(
        select(WebPage).where(WebPage.slug == slug, WebPage.is_published == True)  # noqa: E712
    ).first()
    if page is None:
        raise NotFoundError("WebPage not found")
    return page


def delete_web_page(db: Session, web_page_id: int) -> ActionResult:
    try:
        page = get_web_page_by_id(db, web_page_id)
        db.delete(page)
        db.commit()
    except (StorefrontError, SQLAlchemyError) as e:
        db.rollback()
        return ActionResult.fail(e)
    return ActionResult.ok("WebPage deleted successfully")


# Account

def update_user_name(db: Session, user_id: int, data: dict[str, Any] | UserNameIn) -> ActionResult:
    try:
        name_in = data if isinstance(data, UserNameIn) else UserNameIn.model_validate(data)
        user = db.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")
        user.name = name_in.name
        db.commit()
        db.refresh(user)
    except (StorefrontError, PydanticValidationError, SQLAlchemyError) as e:
        db.rollback()
        return ActionResult.fail(e)
    return ActionResult.ok("User updated successfully", UserOut.model_validate(user).model_dump())
