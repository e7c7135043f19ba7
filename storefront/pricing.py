"""
Checkout pricing.

Prices are recomputed on the server from the cart lines, the chosen delivery
option and the shipping address. Without an address only the items subtotal is
known: shipping and tax stay None (price preview) rather than 0.
"""
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable, Sequence

from .config import AVAILABLE_DELIVERY_DATES, TAX_RATE
from .schemas import DeliveryDateOption, PriceBreakdown

_CENT = Decimal("0.01")


def round2(value: float | int | Decimal) -> float:
    """
    Round a money amount half-up to 2 decimals.

    Works on the shortest decimal repr of the float, so 19.005 -> 19.01 and
    1.005 -> 1.01 instead of the binary-float surprise. Idempotent.
    """
    if not isinstance(value, Decimal):
        value = Decimal(repr(float(value)))
    return float(value.quantize(_CENT, rounding=ROUND_HALF_UP))


def _field(item: Any, name: str) -> Any:
    if isinstance(item, dict):
        return item[name]
    return getattr(item, name)


def calc_items_price(items: Iterable[Any]) -> float:
    return round2(sum(float(_field(i, "price")) * int(_field(i, "quantity")) for i in items))


def _delivery_options(options: Sequence[Any] | None) -> list[DeliveryDateOption]:
    if options is None:
        options = AVAILABLE_DELIVERY_DATES
    return [o if isinstance(o, DeliveryDateOption) else DeliveryDateOption.model_validate(o) for o in options]


def calc_delivery_date_and_price(
    items: Sequence[Any],
    shipping_address: Any = None,
    delivery_date_index: int | None = None,
    available_delivery_dates: Sequence[Any] | None = None,
    tax_rate: float = TAX_RATE,
    now: datetime | None = None,
) -> PriceBreakdown:
    if not isinstance(items, (list, tuple)):
        raise TypeError("items must be a list of cart lines")

    options = _delivery_options(available_delivery_dates)
    items_price = calc_items_price(items)

    index = len(options) - 1 if delivery_date_index is None else delivery_date_index
    option = options[index] if 0 <= index < len(options) else None

    if not shipping_address or option is None:
        shipping_price = None
    elif option.free_shipping_min_price > 0 and items_price >= option.free_shipping_min_price:
        shipping_price = 0.0
    else:
        shipping_price = option.shipping_price

    tax_price = round2(items_price * tax_rate) if shipping_address else None

    total_price = round2(
        items_price
        + (round2(shipping_price) if shipping_price else 0)
        + (round2(tax_price) if tax_price else 0)
    )

    expected = None
    if option is not None:
        expected = (now or datetime.now(timezone.utc)) + timedelta(days=option.days_to_deliver)

    return PriceBreakdown(
        items_price=items_price,
        shipping_price=shipping_price,
        tax_price=tax_price,
        total_price=total_price,
        delivery_date_index=index,
        available_delivery_dates=options,
        expected_delivery_date=expected,
    )
