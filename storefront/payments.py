"""
Payment providers.

PayPal is driven from our side (create order, then capture after the buyer
approves). For Stripe we open a PaymentIntent tagged with our order id and
Stripe calls us back through a signed webhook once the charge succeeds.
"""
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Any

import httpx
import stripe
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import config
from .cache import ReadThroughCache
from .errors import ActionResult, ConflictError, StorefrontError, UpstreamServiceError, ValidationError
from .models import Order
from .orders import get_order_by_id, update_order_to_paid

logger = logging.getLogger(__name__)


class PayPalClient:
    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: str | None = None,
        client_id: str | None = None,
        client_secret: str | None = None,
    ):
        self._http = http_client
        self.base_url = (base_url or config.PAYPAL_API_URL).rstrip("/")
        self.client_id = client_id if client_id is not None else config.PAYPAL_CLIENT_ID
        self.client_secret = client_secret if client_secret is not None else config.PAYPAL_CLIENT_SECRET

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return await self._http.request(method, f"{self.base_url}{path}", **kwargs)
        except httpx.TimeoutException:
            raise UpstreamServiceError("PayPal timeout")
        except httpx.RequestError:
            raise UpstreamServiceError("PayPal unavailable")

    @staticmethod
    def _handle_response(r: httpx.Response) -> dict:
        if r.status_code in (200, 201):
            try:
                return r.json()
            except ValueError:
                raise UpstreamServiceError("Bad response from PayPal")
        raise UpstreamServiceError(r.text or f"PayPal error {r.status_code}")

    async def generate_access_token(self) -> str:
        r = await self._request(
            "POST",
            "/v1/oauth2/token",
            data={"grant_type": "client_credentials"},
            auth=(self.client_id, self.client_secret),
        )
        return self._handle_response(r)["access_token"]

    async def _auth_headers(self) -> dict:
        token = await self.generate_access_token()
        return {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}

    async def create_order(self, price: float) -> dict:
        body = {
            "intent": "CAPTURE",
            "purchase_units": [
                {"amount": {"currency_code": config.CURRENCY_CODE, "value": f"{price:.2f}"}}
            ],
        }
        r = await self._request("POST", "/v2/checkout/orders", json=body, headers=await self._auth_headers())
        return self._handle_response(r)

    async def capture_payment(self, paypal_order_id: str) -> dict:
        r = await self._request(
            "POST",
            f"/v2/checkout/orders/{paypal_order_id}/capture",
            headers=await self._auth_headers(),
        )
        return self._handle_response(r)


def _captured_amount(capture: dict) -> str:
    try:
        return capture["purchase_units"][0]["payments"]["captures"][0]["amount"]["value"]
    except (KeyError, IndexError, TypeError):
        return "0"


async def create_paypal_order(
    db: Session,
    order_id: int,
    paypal: PayPalClient,
    cache: ReadThroughCache | None = None,
) -> ActionResult:
    try:
        order = get_order_by_id(db, order_id)
        paypal_order = await paypal.create_order(float(order.total_price))
        order.payment_result = {
            "id": paypal_order["id"],
            "email_address": "",
            "status": "",
            "pricePaid": "0",
        }
        db.commit()
    except (StorefrontError, SQLAlchemyError) as e:
        db.rollback()
        return ActionResult.fail(e)
    if cache is not None:
        cache.invalidate(order_id)
    return ActionResult.ok("PayPal order created successfully", paypal_order["id"])


async def approve_paypal_order(
    db: Session,
    order_id: int,
    paypal_order_id: str,
    paypal: PayPalClient,
    **transition: Any,
) -> ActionResult:
    """
    Capture an approved PayPal order, then run the paid transition.

    The capture must match the PayPal order recorded by `create_paypal_order`
    and be COMPLETED, otherwise the order is left unpaid.
    """
    try:
        order = get_order_by_id(db, order_id)
        capture = await paypal.capture_payment(paypal_order_id)
        expected_id = (order.payment_result or {}).get("id")
        if not capture or capture.get("id") != expected_id or capture.get("status") != "COMPLETED":
            raise UpstreamServiceError("Error in paypal payment")
    except StorefrontError as e:
        logger.warning("PayPal approval failed order=%s: %s", order_id, e)
        return ActionResult.fail(e)

    result = update_order_to_paid(
        db,
        order_id,
        payment_result={
            "id": capture["id"],
            "status": capture["status"],
            "email_address": (capture.get("payer") or {}).get("email_address", ""),
            "pricePaid": _captured_amount(capture),
        },
        **transition,
    )
    if not result.success:
        return result
    return ActionResult.ok("Your order has been successfully paid by PayPal")


# Stripe

def _amount_in_cents(total: Decimal | float) -> int:
    return int((Decimal(str(total)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def create_stripe_payment_intent(db: Session, order_id: int, api_key: str | None = None) -> ActionResult:
    """
    Open a PaymentIntent for an unpaid Stripe order and hand back its client secret.

    The order id travels in `metadata.orderId`; the `charge.succeeded` webhook
    reads it back to run the paid transition.
    """
    api_key = api_key if api_key is not None else config.STRIPE_SECRET_KEY
    try:
        order = get_order_by_id(db, order_id)
        if order.payment_method != "Stripe":
            raise ValidationError("Order is not paid with Stripe")
        if order.is_paid:
            raise ConflictError("Order is already paid")
        if not api_key:
            raise UpstreamServiceError("Stripe is not configured")

        intent = stripe.PaymentIntent.create(
            amount=_amount_in_cents(order.total_price),
            currency=config.CURRENCY_CODE,
            metadata={"orderId": str(order.id)},
            api_key=api_key,
        )
    except stripe.StripeError as e:
        logger.warning("Stripe PaymentIntent failed order=%s: %s", order_id, e)
        return ActionResult.fail(UpstreamServiceError(e.user_message or "Stripe error"))
    except StorefrontError as e:
        return ActionResult.fail(e)

    logger.info("Stripe PaymentIntent created id=%s order=%s", intent["id"], order_id)
    return ActionResult.ok("Stripe payment created successfully", intent["client_secret"])


def construct_stripe_event(payload: bytes, signature: str | None, secret: str | None = None) -> Any:
    secret = secret if secret is not None else config.STRIPE_WEBHOOK_SECRET
    if not secret:
        raise RuntimeError("STRIPE_WEBHOOK_SECRET is not set")
    try:
        return stripe.Webhook.construct_event(payload, signature or "", secret)
    except (ValueError, stripe.SignatureVerificationError) as e:
        raise ValidationError("Invalid Stripe webhook") from e


def handle_stripe_event(db: Session, event: Any, **transition: Any) -> tuple[int, ActionResult | None]:
    """
    Apply a verified Stripe event. Returns (http status, result).

    Only `charge.succeeded` is acted upon; the charge carries our order id in
    `metadata.orderId`.
    """
    if event["type"] != "charge.succeeded":
        return 200, None

    charge = event["data"]["object"]
    try:
        order_id = int(charge["metadata"]["orderId"])
        email = charge["billing_details"]["email"] or ""
        price_paid = f"{charge['amount'] / 100:.2f}"
    except (KeyError, TypeError, ValueError):
        logger.warning("Stripe charge without usable order metadata event=%s", event["id"])
        return 400, None

    if db.get(Order, order_id) is None:
        logger.warning("Stripe charge for unknown order=%s", order_id)
        return 400, None

    result = update_order_to_paid(
        db,
        order_id,
        payment_result={
            "id": event["id"],
            "status": "COMPLETED",
            "email_address": email,
            "pricePaid": price_paid,
        },
        **transition,
    )
    # Already-paid is terminal: acknowledge so Stripe stops retrying
    return 200, result
