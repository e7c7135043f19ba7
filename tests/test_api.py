import time
from unittest.mock import patch

import stripe
from jose import jwt

import storefront.main as main

from .conftest import ADDRESS, auth_headers, cart_line, make_product, place_order


def test_health(client):
    assert client.get("/health").json() == {"ok": True}


def test_cart_price_preview_without_address(client, db):
    shoe = make_product(db, "Runner", price="20.00")

    r = client.post("/cart/price", json={"items": [cart_line(shoe, 2)]})

    assert r.status_code == 200
    body = r.json()
    assert body["items_price"] == 40.0
    assert body["shipping_price"] is None
    assert body["tax_price"] is None
    assert body["total_price"] == 40.0


def test_orders_require_bearer_token(client):
    r = client.post("/orders", json={"items": []})
    assert r.status_code == 401
    assert r.json()["detail"] == "Missing bearer token"


def test_invalid_and_expired_tokens(client, user):
    bad = client.get("/orders/mine", headers={"Authorization": "Bearer not-a-jwt"})
    assert bad.status_code == 401

    expired = jwt.encode({"sub": str(user.id), "exp": int(time.time()) - 60}, "test-secret", algorithm="HS256")
    r = client.get("/orders/mine", headers={"Authorization": f"Bearer {expired}"})
    assert r.status_code == 401
    assert r.json()["detail"] == "Token expired"


def test_place_pay_and_deliver_over_http(client, db, user, admin, mailer):
    shoe = make_product(db, "Runner", price="25.00", stock=10)
    cart = {"items": [cart_line(shoe, 2)], "shipping_address": ADDRESS, "payment_method": "Cash On Delivery"}

    created = client.post("/orders", json=cart, headers=auth_headers(user.id)).json()
    assert created["success"] is True
    order_id = created["data"]["order_id"]

    view = client.get(f"/orders/{order_id}", headers=auth_headers(user.id)).json()
    assert view["status"] == "Created"
    assert view["total_price"] == 57.5

    paid = client.post(f"/admin/orders/{order_id}/pay", headers=auth_headers(admin.id, "Admin")).json()
    assert paid == {"success": True, "message": "Order paid successfully", "kind": None, "data": None}

    view = client.get(f"/orders/{order_id}", headers=auth_headers(user.id)).json()
    assert view["status"] == "Paid"

    again = client.post(f"/admin/orders/{order_id}/pay", headers=auth_headers(admin.id, "Admin")).json()
    assert again["success"] is False
    assert again["kind"] == "conflict"

    delivered = client.post(f"/admin/orders/{order_id}/deliver", headers=auth_headers(admin.id, "Admin")).json()
    assert delivered["message"] == "Order delivered successfully"
    assert [m["subject"] for m in mailer.sent] == ["Order Confirmation", "Review your order items"]

    db.refresh(shoe)
    assert shoe.count_in_stock == 8


def test_create_order_validation_message(client, db, user):
    shoe = make_product(db, "Runner")

    r = client.post("/orders", json={"items": [cart_line(shoe, 1)]}, headers=auth_headers(user.id))

    assert r.status_code == 200
    assert r.json()["success"] is False
    assert r.json()["kind"] == "validation"


def test_order_is_hidden_from_other_users(client, db, user, admin):
    shoe = make_product(db, "Runner")
    order = place_order(db, user, [(shoe, 1)])

    assert client.get(f"/orders/{order.id}", headers=auth_headers(user.id + 100)).status_code == 404
    assert client.get(f"/orders/{order.id}", headers=auth_headers(admin.id, "Admin")).status_code == 200
    assert client.get("/orders/999", headers=auth_headers(user.id)).status_code == 404


def test_admin_routes_require_admin_role(client, db, user):
    shoe = make_product(db, "Runner")
    order = place_order(db, user, [(shoe, 1)])

    r = client.post(f"/admin/orders/{order.id}/pay", headers=auth_headers(user.id))

    assert r.status_code == 403
    assert r.json()["detail"] == "Admin only"
    db.refresh(order)
    assert order.is_paid is False


def test_is_admin_claim_is_accepted(client, admin):
    token = jwt.encode({"sub": str(admin.id), "is_admin": True}, "test-secret", algorithm="HS256")

    r = client.get("/admin/orders", headers={"Authorization": f"Bearer {token}"})

    assert r.status_code == 200
    assert r.json() == {"data": [], "total_pages": 0}


def test_my_orders_lists_only_own_orders(client, db, user, admin):
    shoe = make_product(db, "Runner")
    place_order(db, user, [(shoe, 1)])
    place_order(db, admin, [(shoe, 1)])

    body = client.get("/orders/mine", headers=auth_headers(user.id)).json()

    assert body["total_pages"] == 1
    assert [o["user_id"] for o in body["data"]] == [user.id]


def test_stripe_webhook(client, db, user, monkeypatch):
    shoe = make_product(db, "Runner", price="25.00")
    order = place_order(db, user, [(shoe, 2)])
    event = {
        "id": "evt_9",
        "type": "charge.succeeded",
        "data": {"object": {"amount": 5750, "metadata": {"orderId": str(order.id)}, "billing_details": {"email": None}}},
    }
    monkeypatch.setattr(main.payments, "construct_stripe_event", lambda payload, sig: event)

    r = client.post("/webhooks/stripe", content=b"{}", headers={"stripe-signature": "t=1,v1=x"})

    assert r.status_code == 200
    assert r.json()["message"] == "Order paid successfully"
    db.refresh(order)
    assert order.payment_result["pricePaid"] == "57.50"
    assert order.payment_result["email_address"] == ""


def test_stripe_webhook_rejects_bad_signature(client, monkeypatch):
    monkeypatch.setattr(main.payments.config, "STRIPE_WEBHOOK_SECRET", "whsec_test")

    r = client.post("/webhooks/stripe", content=b"{}", headers={"stripe-signature": "t=1,v1=deadbeef"})

    assert r.status_code == 400


def test_stripe_webhook_unknown_order(client, monkeypatch):
    event = {
        "id": "evt_9",
        "type": "charge.succeeded",
        "data": {"object": {"amount": 100, "metadata": {"orderId": "404"}, "billing_details": {"email": ""}}},
    }
    monkeypatch.setattr(main.payments, "construct_stripe_event", lambda payload, sig: event)

    r = client.post("/webhooks/stripe", content=b"{}")

    assert r.status_code == 400
    assert r.text == "Bad Request"


def test_admin_delete_order(client, db, user, admin):
    shoe = make_product(db, "Runner")
    order = place_order(db, user, [(shoe, 1)])

    r = client.delete(f"/admin/orders/{order.id}", headers=auth_headers(admin.id, "Admin"))

    assert r.json()["message"] == "Order deleted successfully"
    assert client.get(f"/orders/{order.id}", headers=auth_headers(user.id)).status_code == 404


def test_stripe_webhook_without_secret_is_a_server_error(client, monkeypatch):
    monkeypatch.setattr(main.payments.config, "STRIPE_WEBHOOK_SECRET", "")

    r = client.post("/webhooks/stripe", content=b"{}", headers={"stripe-signature": "t=1,v1=x"})

    assert r.status_code == 500
    assert r.text == "Webhook not configured"


def test_stripe_payment_intent_route(client, db, user, monkeypatch):
    shoe = make_product(db, "Runner", price="25.00")
    order = place_order(db, user, [(shoe, 2)], payment_method="Stripe")
    monkeypatch.setattr(main.payments.config, "STRIPE_SECRET_KEY", "sk_test")

    with patch.object(stripe.PaymentIntent, "create", return_value={"id": "pi_1", "client_secret": "pi_1_secret"}):
        r = client.post(f"/orders/{order.id}/stripe", headers=auth_headers(user.id))
        other = client.post(f"/orders/{order.id}/stripe", headers=auth_headers(user.id + 100))

    assert r.json()["data"] == "pi_1_secret"
    assert other.status_code == 404


def test_paypal_order_route_refreshes_cached_view(client, db, user, order_cache, monkeypatch):
    shoe = make_product(db, "Runner")
    order = place_order(db, user, [(shoe, 1)])
    client.get(f"/orders/{order.id}", headers=auth_headers(user.id))
    assert order.id in order_cache

    class StubPayPal:
        async def create_order(self, price):
            return {"id": "PP-7"}

    main.app.dependency_overrides[main.get_paypal_client] = lambda: StubPayPal()
    r = client.post(f"/orders/{order.id}/paypal", headers=auth_headers(user.id))

    assert r.json()["data"] == "PP-7"
    view = client.get(f"/orders/{order.id}", headers=auth_headers(user.id)).json()
    assert view["payment_result"]["id"] == "PP-7"
