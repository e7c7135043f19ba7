from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from storefront.pricing import calc_delivery_date_and_price, calc_items_price, round2
from storefront.schemas import DeliveryDateOption

ADDRESS = {"street": "12 Marina Road", "city": "Lagos"}
NOW = datetime(2026, 10, 18, 9, 30, tzinfo=timezone.utc)


def line(price, quantity=1):
    return {"price": price, "quantity": quantity}


@pytest.mark.parametrize(
    "value, expected",
    [
        (19.005, 19.01),
        (1.005, 1.01),
        (2.675, 2.68),
        (10.0, 10.0),
        (0.1 + 0.2, 0.3),
        (Decimal("4.9449"), 4.94),
    ],
)
def test_round2_half_up_on_decimal_repr(value, expected):
    assert round2(value) == expected


@pytest.mark.parametrize("value", [19.005, 1.005, 12.344999, 7.125, 100])
def test_round2_is_stable(value):
    once = round2(value)
    assert round2(value) == once
    assert round2(once) == once


def test_items_price_sums_lines():
    assert calc_items_price([line(10.5, 2), line(0.1, 3)]) == 21.3


def test_no_address_suppresses_shipping_and_tax():
    result = calc_delivery_date_and_price([line(20, 2)], now=NOW)

    assert result.shipping_price is None
    assert result.tax_price is None
    assert result.items_price == 40
    assert result.total_price == result.items_price


def test_default_delivery_option_is_the_last_one():
    result = calc_delivery_date_and_price([line(20)], shipping_address=ADDRESS, now=NOW)

    assert result.delivery_date_index == 2
    assert result.shipping_price == 4.9
    assert result.tax_price == 3.0
    assert result.total_price == 27.9
    assert result.expected_delivery_date == NOW + timedelta(days=5)
    assert [o.name for o in result.available_delivery_dates] == ["Tomorrow", "Next 3 days", "Next 5 days"]


def test_free_shipping_threshold_is_inclusive():
    at_threshold = calc_delivery_date_and_price([line(35)], shipping_address=ADDRESS)
    below = calc_delivery_date_and_price([line(34.99)], shipping_address=ADDRESS)

    assert at_threshold.shipping_price == 0
    assert below.shipping_price == 4.9


def test_option_without_threshold_always_charges():
    result = calc_delivery_date_and_price([line(500)], shipping_address=ADDRESS, delivery_date_index=0, now=NOW)

    assert result.shipping_price == 12.9
    assert result.tax_price == 75.0
    assert result.total_price == 587.9
    assert result.expected_delivery_date == NOW + timedelta(days=1)


def test_unknown_delivery_index_leaves_shipping_undefined():
    result = calc_delivery_date_and_price([line(20)], shipping_address=ADDRESS, delivery_date_index=7)

    assert result.shipping_price is None
    assert result.tax_price == 3.0
    assert result.total_price == 23.0
    assert result.expected_delivery_date is None


def test_negative_index_does_not_wrap():
    result = calc_delivery_date_and_price([line(20)], shipping_address=ADDRESS, delivery_date_index=-1)
    assert result.shipping_price is None


@pytest.mark.parametrize(
    "items",
    [
        [line(19.99, 3)],
        [line(0.01, 1), line(33.33, 3)],
        [line(12.345, 2), line(7.005, 1)],
        [line(99.95, 7), line(1.1, 9)],
    ],
)
@pytest.mark.parametrize("index", [0, 1, 2])
def test_total_is_sum_of_rounded_parts(items, index):
    result = calc_delivery_date_and_price(items, shipping_address=ADDRESS, delivery_date_index=index)

    assert round2(result.items_price + result.shipping_price + result.tax_price) == result.total_price


def test_custom_delivery_options_and_tax_rate():
    options = [DeliveryDateOption(name="Pickup", days_to_deliver=0, shipping_price=0, free_shipping_min_price=0)]
    result = calc_delivery_date_and_price(
        [line(10)], shipping_address=ADDRESS, available_delivery_dates=options, tax_rate=0.2, now=NOW
    )

    assert result.shipping_price == 0
    assert result.tax_price == 2.0
    assert result.total_price == 12.0
    assert result.expected_delivery_date == NOW


def test_accepts_objects_with_price_and_quantity():
    class Line:
        price = 5
        quantity = 4

    assert calc_delivery_date_and_price([Line()]).items_price == 20


def test_items_must_be_a_list():
    with pytest.raises(TypeError):
        calc_delivery_date_and_price("not a cart")
