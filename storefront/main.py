import logging
from contextlib import asynccontextmanager
from datetime import datetime

import httpx
from fastapi import FastAPI, Depends, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from sqlalchemy.orm import Session

from shared.security import is_admin, require_admin, require_user

from . import catalog, config, orders, payments, reviews, site, summary
from .cache import ReadThroughCache
from .db import get_db
from .emails import EmailSender, get_email_sender
from .errors import ActionResult, NotFoundError, StorefrontError
from .pricing import calc_delivery_date_and_price
from .schemas import (
    CartIn,
    OrderListOut,
    OrderOut,
    PayPalApproveIn,
    PriceBreakdown,
    ProductCardOut,
    ProductOut,
    ReviewInput,
    ReviewListOut,
    ReviewOut,
    SettingIn,
    UserNameIn,
    WebPageOut,
)

logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)

# Reuse client across invocations
_http_client: httpx.AsyncClient | None = None

settings_cache = site.SettingsCache(ttl=config.SETTINGS_CACHE_TTL)
order_cache = ReadThroughCache("order-detail", ttl=config.ORDER_CACHE_TTL)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Keep cold start lightweight.
    Schema creation/migrations run at deploy-time, not here.
    """
    global _http_client
    _http_client = httpx.AsyncClient(timeout=10.0)
    yield
    if _http_client:
        await _http_client.aclose()


app = FastAPI(title="storefront", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # tighten in prod
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_settings_cache() -> site.SettingsCache:
    return settings_cache


def get_order_cache() -> ReadThroughCache:
    return order_cache


def get_mailer() -> EmailSender | None:
    try:
        return get_email_sender()
    except RuntimeError:
        # Lifecycle transitions must not fail on a misconfigured mailer
        logger.exception("Email backend is not configured")
        return None


def get_paypal_client() -> payments.PayPalClient:
    global _http_client
    if _http_client is None:
        # fallback in case lifespan didn't run (tests)
        _http_client = httpx.AsyncClient(timeout=10.0)
    return payments.PayPalClient(_http_client)


def _not_found(e: StorefrontError) -> HTTPException:
    return HTTPException(status_code=404, detail=e.message)


# Checkout

@app.post("/cart/price", response_model=PriceBreakdown)
def price_cart(payload: CartIn):
    return calc_delivery_date_and_price(
        items=payload.items,
        shipping_address=payload.shipping_address,
        delivery_date_index=payload.delivery_date_index,
    )


@app.post("/orders", response_model=ActionResult)
def create_order(payload: CartIn, claims: dict = Depends(require_user), db: Session = Depends(get_db)):
    return orders.create_order(db, payload, claims["user_id"])


@app.get("/orders/mine", response_model=OrderListOut)
def my_orders(
    page: int = Query(default=1, ge=1),
    limit: int | None = Query(default=None, ge=1, le=100),
    claims: dict = Depends(require_user),
    db: Session = Depends(get_db),
):
    return orders.get_my_orders(db, claims["user_id"], page, limit)


@app.get("/orders/{order_id}", response_model=OrderOut)
def get_order(
    order_id: int,
    claims: dict = Depends(require_user),
    db: Session = Depends(get_db),
    cache: ReadThroughCache = Depends(get_order_cache),
):
    try:
        order = orders.get_order_view(db, order_id, cache)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Not found")
    if order.user_id != claims["user_id"] and not is_admin(claims):
        raise HTTPException(status_code=404, detail="Not found")
    return order


def _owned_order(db: Session, order_id: int, claims: dict):
    try:
        order = orders.get_order_by_id(db, order_id)
    except NotFoundError as e:
        raise _not_found(e)
    if order.user_id != claims["user_id"] and not is_admin(claims):
        raise HTTPException(status_code=404, detail="Not found")
    return order


# Payments

@app.post("/orders/{order_id}/paypal", response_model=ActionResult)
async def create_paypal_order(
    order_id: int,
    claims: dict = Depends(require_user),
    db: Session = Depends(get_db),
    paypal: payments.PayPalClient = Depends(get_paypal_client),
    cache: ReadThroughCache = Depends(get_order_cache),
):
    _owned_order(db, order_id, claims)
    return await payments.create_paypal_order(db, order_id, paypal, cache)


@app.post("/orders/{order_id}/stripe", response_model=ActionResult)
def create_stripe_payment_intent(
    order_id: int,
    claims: dict = Depends(require_user),
    db: Session = Depends(get_db),
):
    """Client secret for the Stripe payment form."""
    _owned_order(db, order_id, claims)
    return payments.create_stripe_payment_intent(db, order_id)


@app.post("/orders/{order_id}/paypal/approve", response_model=ActionResult)
async def approve_paypal_order(
    order_id: int,
    payload: PayPalApproveIn,
    claims: dict = Depends(require_user),
    db: Session = Depends(get_db),
    paypal: payments.PayPalClient = Depends(get_paypal_client),
    mailer: EmailSender = Depends(get_mailer),
    cache: ReadThroughCache = Depends(get_order_cache),
):
    _owned_order(db, order_id, claims)
    return await payments.approve_paypal_order(
        db, order_id, payload.order_id, paypal, mailer=mailer, cache=cache
    )


@app.post("/webhooks/stripe")
async def stripe_webhook(
    request: Request,
    db: Session = Depends(get_db),
    mailer: EmailSender = Depends(get_mailer),
    cache: ReadThroughCache = Depends(get_order_cache),
):
    body = await request.body()
    try:
        event = payments.construct_stripe_event(body, request.headers.get("stripe-signature"))
    except RuntimeError:
        logger.exception("Stripe webhook received but not configured")
        return Response("Webhook not configured", status_code=500)
    except StorefrontError as e:
        logger.warning("Rejected Stripe webhook: %s", e)
        return Response("Bad Request", status_code=400)

    status, result = payments.handle_stripe_event(db, event, mailer=mailer, cache=cache)
    if status != 200:
        return Response("Bad Request", status_code=status)
    if result is None:
        return Response(status_code=200)
    return JSONResponse(result.model_dump(mode="json"))


# Admin: orders

@app.get("/admin/orders", response_model=OrderListOut)
def admin_orders(
    page: int = Query(default=1, ge=1),
    limit: int | None = Query(default=None, ge=1, le=100),
    claims: dict = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return orders.get_all_orders(db, page, limit)


@app.post("/admin/orders/{order_id}/pay", response_model=ActionResult)
def admin_mark_paid(
    order_id: int,
    claims: dict = Depends(require_admin),
    db: Session = Depends(get_db),
    mailer: EmailSender = Depends(get_mailer),
    cache: ReadThroughCache = Depends(get_order_cache),
):
    """Cash on delivery: the admin confirms payment by hand."""
    return orders.update_order_to_paid(db, order_id, mailer=mailer, cache=cache)


@app.post("/admin/orders/{order_id}/deliver", response_model=ActionResult)
def admin_mark_delivered(
    order_id: int,
    claims: dict = Depends(require_admin),
    db: Session = Depends(get_db),
    mailer: EmailSender = Depends(get_mailer),
    cache: ReadThroughCache = Depends(get_order_cache),
):
    return orders.deliver_order(db, order_id, mailer=mailer, cache=cache)


@app.delete("/admin/orders/{order_id}", response_model=ActionResult)
def admin_delete_order(
    order_id: int,
    claims: dict = Depends(require_admin),
    db: Session = Depends(get_db),
    cache: ReadThroughCache = Depends(get_order_cache),
):
    return orders.delete_order(db, order_id, cache)


@app.get("/admin/overview")
def admin_overview(
    date_from: datetime = Query(alias="from"),
    date_to: datetime = Query(alias="to"),
    claims: dict = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return summary.get_order_summary(db, date_from, date_to)


# Catalog

@app.get("/products/categories", response_model=list[str])
def list_categories(db: Session = Depends(get_db)):
    return catalog.get_all_categories(db)


@app.get("/products/browsing-history", response_model=list[ProductOut])
def browsing_history(
    list_type: str = Query(default="history", alias="type", pattern="^(history|related)$"),
    ids: str | None = None,
    categories: str | None = None,
    db: Session = Depends(get_db),
):
    if not ids or not categories:
        return []
    try:
        product_ids = [int(i) for i in ids.split(",") if i]
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid ids")
    return catalog.get_browsing_history(db, list_type, product_ids, categories.split(","))


@app.get("/products/tags/{tag}", response_model=list[ProductOut])
def products_by_tag(tag: str, limit: int = Query(default=10, ge=1, le=50), db: Session = Depends(get_db)):
    return catalog.get_products_by_tag(db, tag, limit)


@app.get("/products/tags/{tag}/cards", response_model=list[ProductCardOut])
def product_cards(tag: str, limit: int = Query(default=4, ge=1, le=50), db: Session = Depends(get_db)):
    return catalog.get_products_for_card(db, tag, limit)


@app.get("/products/{slug}", response_model=ProductOut)
def get_product(slug: str, db: Session = Depends(get_db)):
    try:
        return catalog.get_product_by_slug(db, slug)
    except NotFoundError as e:
        raise _not_found(e)


# Reviews

@app.post("/reviews", response_model=ActionResult)
def create_update_review(payload: ReviewInput, claims: dict = Depends(require_user), db: Session = Depends(get_db)):
    return reviews.create_update_review(db, claims["user_id"], payload)


@app.get("/products/{product_id}/reviews", response_model=ReviewListOut)
def list_reviews(
    product_id: int,
    page: int = Query(default=1, ge=1),
    limit: int | None = Query(default=None, ge=1, le=100),
    db: Session = Depends(get_db),
):
    return reviews.get_reviews(db, product_id, page, limit)


@app.get("/products/{product_id}/reviews/mine", response_model=ReviewOut | None)
def my_review(product_id: int, claims: dict = Depends(require_user), db: Session = Depends(get_db)):
    return reviews.get_review_by_product_id(db, product_id, claims["user_id"])


# Settings, pages, account

@app.get("/settings")
def get_settings(db: Session = Depends(get_db), cache: site.SettingsCache = Depends(get_settings_cache)):
    return cache.get(db)


@app.put("/admin/settings", response_model=ActionResult)
def update_settings(
    payload: SettingIn,
    claims: dict = Depends(require_admin),
    db: Session = Depends(get_db),
    cache: site.SettingsCache = Depends(get_settings_cache),
):
    return site.update_setting(db, payload, cache)


@app.get("/pages/{slug}", response_model=WebPageOut)
def get_page(slug: str, db: Session = Depends(get_db)):
    try:
        return site.get_web_page_by_slug(db, slug)
    except NotFoundError as e:
        raise _not_found(e)


@app.get("/admin/pages", response_model=list[WebPageOut])
def admin_pages(claims: dict = Depends(require_admin), db: Session = Depends(get_db)):
    return site.get_all_web_pages(db)


@app.get("/admin/pages/{page_id}", response_model=WebPageOut)
def admin_page(page_id: int, claims: dict = Depends(require_admin), db: Session = Depends(get_db)):
    try:
        return site.get_web_page_by_id(db, page_id)
    except NotFoundError as e:
        raise _not_found(e)


@app.delete("/admin/pages/{page_id}", response_model=ActionResult)
def admin_delete_page(page_id: int, claims: dict = Depends(require_admin), db: Session = Depends(get_db)):
    return site.delete_web_page(db, page_id)


@app.patch("/account/name", response_model=ActionResult)
def update_account_name(payload: UserNameIn, claims: dict = Depends(require_user), db: Session = Depends(get_db)):
    return site.update_user_name(db, claims["user_id"], payload)


@app.get("/health")
def health():
    return {"ok": True}
