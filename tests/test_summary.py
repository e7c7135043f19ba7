from datetime import datetime, timezone

from storefront.summary import get_order_summary

from .conftest import auth_headers, make_product, place_order

FROM = datetime(2000, 1, 1, tzinfo=timezone.utc)
TO = datetime(2100, 1, 1, tzinfo=timezone.utc)


def test_order_summary(db, user, admin):
    runner = make_product(db, "Runner", price="25.00", category="Shoes")
    tee = make_product(db, "Tee", price="10.00", category="T-Shirts")
    place_order(db, user, [(runner, 2), (tee, 1)])
    place_order(db, admin, [(tee, 3)])

    summary = get_order_summary(db, FROM, TO)

    assert summary["orders_count"] == 2
    assert summary["products_count"] == 2
    assert summary["users_count"] == 2
    # 60 + 0 + 9 and 30 + 4.9 + 4.5
    assert summary["total_sales"] == 108.4
    assert summary["top_sales_categories"] == [
        {"category": "T-Shirts", "total_sales": 4},
        {"category": "Shoes", "total_sales": 2},
    ]
    assert [(p["label"], p["value"]) for p in summary["top_sales_products"]] == [("Runner", 50.0), ("Tee", 40.0)]
    assert len(summary["sales_chart_data"]) == 1
    assert summary["sales_chart_data"][0]["total_sales"] == 108.4
    assert summary["monthly_sales"][0]["value"] == 108.4
    assert [o["user_name"] for o in summary["latest_orders"]] == ["Admin", "Ada Obi"]


def test_order_summary_empty_range(db):
    summary = get_order_summary(db, FROM, FROM)

    assert summary["orders_count"] == 0
    assert summary["total_sales"] == 0
    assert summary["top_sales_products"] == []


def test_overview_route_is_admin_only(client, admin, user):
    params = {"from": FROM.isoformat(), "to": TO.isoformat()}

    assert client.get("/admin/overview", params=params, headers=auth_headers(user.id)).status_code == 403
    r = client.get("/admin/overview", params=params, headers=auth_headers(admin.id, "Admin"))
    assert r.status_code == 200
    assert r.json()["users_count"] == 2
