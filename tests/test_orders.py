from datetime import timedelta

import pytest

from database import utcnow
from errors import InvalidState, NotFound
from schemas import OrderStatusPatch
import orders


def _create_order(client, order_payload, product_id, **overrides):
    r = client.post("/api/orders", json=order_payload(product_id, **overrides))
    assert r.status_code == 201, r.text
    return r.json()["order"]


def _set_status(client, headers, order_id, **fields):
    return client.put(f"/api/orders/{order_id}", headers=headers, json=fields)


def test_total_is_computed_from_discounted_price(client, make_product, order_payload):
    product = make_product(price=100000, discount=20)

    order = _create_order(client, order_payload, product["id"], quantity=2, total_amount=1)

    assert order["total_amount"] == 160000
    assert order["payment_status"] == "pending"
    assert order["delivery_status"] == "pending"
    assert order["state"] == "awaiting_payment"
    assert order["product"]["title"] == product["title"]


def test_discount_rounds_down_to_whole_currency(client, make_product, order_payload):
    product = make_product(price=999, discount=15)
    order = _create_order(client, order_payload, product["id"], quantity=3)
    assert order["total_amount"] == (999 - 999 * 15 // 100) * 3


def test_order_for_inactive_product_is_rejected(client, admin_headers, make_product, order_payload):
    product = make_product()
    client.delete(f"/api/products/{product['id']}", headers=admin_headers)

    r = client.post("/api/orders", json=order_payload(product["id"]))

    assert r.status_code == 404
    assert r.json() == {"error": "Product not found or inactive"}


@pytest.mark.parametrize("field,value", [
    ("customer_email", "not-an-email"),
    ("quantity", 0),
    ("customer_name", "   "),
])
def test_checkout_validation(client, make_product, order_payload, field, value):
    product = make_product()
    r = client.post("/api/orders", json=order_payload(product["id"], **{field: value}))
    assert r.status_code == 400
    assert "error" in r.json()


def test_order_with_malformed_product_id(client, order_payload):
    r = client.post("/api/orders", json=order_payload("nope"))
    assert r.status_code == 400
    assert r.json() == {"error": "Invalid id"}


def test_delivery_confirmation_sets_expiry_and_counts_downloads(client, admin_headers, make_product,
                                                              order_payload, db):
    product = make_product()
    order = _create_order(client, order_payload, product["id"], quantity=3)

    assert _set_status(client, admin_headers, order["id"], payment_status="paid").status_code == 200
    r = _set_status(client, admin_headers, order["id"], delivery_status="delivered")

    assert r.status_code == 200
    updated = r.json()["order"]
    assert updated["state"] == "delivered"
    stored = db.orders.find_one({"_id": orders.to_obj_id(order["id"])})
    expected = utcnow() + timedelta(days=30)
    assert abs((stored["download_expires"] - expected).total_seconds()) < 60
    assert db.products.find_one({"title": product["title"]})["downloads"] == 3


def test_paid_and_delivered_in_one_patch(client, admin_headers, make_product, order_payload, db):
    product = make_product()
    order = _create_order(client, order_payload, product["id"])

    r = _set_status(client, admin_headers, order["id"], payment_status="paid", delivery_status="delivered")

    assert r.status_code == 200
    assert r.json()["order"]["state"] == "delivered"
    assert db.products.find_one({"title": product["title"]})["downloads"] == 1


def test_delivered_before_paid_is_rejected(client, admin_headers, make_product, order_payload, db):
    product = make_product()
    order = _create_order(client, order_payload, product["id"])

    r = _set_status(client, admin_headers, order["id"], delivery_status="delivered")
    assert r.status_code == 400
    assert "Cannot move order" in r.json()["error"]

    stored = db.orders.find_one({"_id": orders.to_obj_id(order["id"])})
    assert stored["delivery_status"] == "pending"
    assert stored.get("download_link") is None
    assert stored.get("download_expires") is None

    # Once paid, delivery is allowed and the link invariant holds
    assert _set_status(client, admin_headers, order["id"], payment_status="paid").status_code == 200
    r = _set_status(client, admin_headers, order["id"], delivery_status="delivered",
                    download_link="/uploads/neon-koi.png")
    assert r.status_code == 200
    final = r.json()["order"]
    assert final["payment_status"] == "paid"
    assert final["delivery_status"] == "delivered"
    assert final["download_link"] == "/uploads/neon-koi.png"
    assert db.products.find_one({"title": product["title"]})["downloads"] == 1


def test_download_link_requires_delivered_state(client, admin_headers, make_product, order_payload, db):
    product = make_product()
    order = _create_order(client, order_payload, product["id"])
    _set_status(client, admin_headers, order["id"], payment_status="paid")

    r = _set_status(client, admin_headers, order["id"], download_link="https://cdn.example.com/file.zip")

    assert r.status_code == 400
    assert db.orders.find_one({"_id": orders.to_obj_id(order["id"])}).get("download_link") is None


def test_refunded_is_terminal(client, admin_headers, make_product, order_payload):
    product = make_product()
    order = _create_order(client, order_payload, product["id"])
    _set_status(client, admin_headers, order["id"], payment_status="paid")
    assert _set_status(client, admin_headers, order["id"], payment_status="refunded").status_code == 200

    r = _set_status(client, admin_headers, order["id"], payment_status="paid")
    assert r.status_code == 400


def test_refunded_order_keeps_its_delivery_status(client, admin_headers, make_product, order_payload, db):
    product = make_product()
    order = _create_order(client, order_payload, product["id"])
    _set_status(client, admin_headers, order["id"], payment_status="paid")
    _set_status(client, admin_headers, order["id"], payment_status="refunded")

    for delivery in ("processing", "delivered", "failed"):
        r = _set_status(client, admin_headers, order["id"], delivery_status=delivery)
        assert r.status_code == 400, delivery

    stored = db.orders.find_one({"_id": orders.to_obj_id(order["id"])})
    assert (stored["payment_status"], stored["delivery_status"]) == ("refunded", "pending")


def test_empty_status_patch_is_rejected(client, admin_headers, make_product, order_payload):
    product = make_product()
    order = _create_order(client, order_payload, product["id"])

    r = _set_status(client, admin_headers, order["id"])

    assert r.status_code == 400
    assert r.json() == {"error": "No fields to update"}


def test_notes_only_patch_keeps_state(client, admin_headers, make_product, order_payload):
    product = make_product()
    order = _create_order(client, order_payload, product["id"])

    r = _set_status(client, admin_headers, order["id"], notes="Transfer proof received")

    assert r.status_code == 200
    assert r.json()["order"]["notes"] == "Transfer proof received"
    assert r.json()["order"]["state"] == "awaiting_payment"


def test_unknown_patch_fields_are_rejected(client, admin_headers, make_product, order_payload):
    product = make_product()
    order = _create_order(client, order_payload, product["id"])

    r = _set_status(client, admin_headers, order["id"], total_amount=1)

    assert r.status_code == 400


def test_status_update_requires_admin(client, user_headers, make_product, order_payload):
    product = make_product()
    order = _create_order(client, order_payload, product["id"])

    assert _set_status(client, {}, order["id"], payment_status="paid").status_code == 401
    assert _set_status(client, user_headers, order["id"], payment_status="paid").status_code == 403


def test_update_missing_order(client, admin_headers):
    r = _set_status(client, admin_headers, "0" * 24, payment_status="paid")
    assert r.status_code == 404
    assert r.json() == {"error": "Order not found"}


@pytest.mark.parametrize("current,patch,expected", [
    (("pending", "pending"), {"payment_status": "paid"}, ("paid", "pending")),
    (("pending", "pending"), {"payment_status": "failed"}, ("failed", "pending")),
    (("paid", "pending"), {"delivery_status": "processing"}, ("paid", "processing")),
    (("paid", "processing"), {"delivery_status": "failed"}, ("paid", "failed")),
    (("paid", "failed"), {"payment_status": "refunded"}, ("refunded", "failed")),
    (("failed", "pending"), {"payment_status": "refunded"}, ("refunded", "pending")),
])
def test_allowed_transitions(current, patch, expected):
    assert orders.plan_transition(*current, patch.get("payment_status"), patch.get("delivery_status")) == expected


@pytest.mark.parametrize("current,patch", [
    (("pending", "pending"), {"delivery_status": "processing"}),
    (("pending", "pending"), {"payment_status": "refunded"}),
    (("failed", "pending"), {"payment_status": "paid"}),
    (("paid", "delivered"), {"delivery_status": "processing"}),
    (("paid", "delivered"), {"payment_status": "failed"}),
    (("refunded", "delivered"), {"payment_status": "paid"}),
    (("refunded", "pending"), {"delivery_status": "processing"}),
    (("refunded", "delivered"), {"delivery_status": "failed"}),
    (("paid", "processing"), {"payment_status": "refunded", "delivery_status": "delivered"}),
])
def test_rejected_transitions(current, patch):
    with pytest.raises(InvalidState):
        orders.plan_transition(*current, patch.get("payment_status"), patch.get("delivery_status"))


def test_concurrent_status_change_is_detected(make_product, order_payload, monkeypatch):
    product = make_product()
    created = orders.create_order(orders.OrderCreate(**order_payload(product["id"])))
    orders.update_order_status(created["id"], OrderStatusPatch(payment_status="paid"))
    stale = orders.find_order(created["id"])
    orders.update_order_status(created["id"], OrderStatusPatch(delivery_status="processing"))

    monkeypatch.setattr(orders, "find_order", lambda order_id: stale)
    with pytest.raises(InvalidState):
        orders.update_order_status(created["id"], OrderStatusPatch(delivery_status="delivered"))


def test_fulfillment_is_recorded_once(make_product, order_payload, db):
    product = make_product()
    created = orders.create_order(orders.OrderCreate(**order_payload(product["id"], quantity=2)))
    orders.update_order_status(created["id"], OrderStatusPatch(payment_status="paid", delivery_status="delivered"))

    order = orders.find_order(created["id"])
    assert orders.record_fulfillment(order) is False
    assert orders.record_fulfillment(order) is False
    assert db.products.find_one({"title": product["title"]})["downloads"] == 2


def test_list_orders_as_admin(client, admin_headers, make_product, order_payload):
    product = make_product()
    _create_order(client, order_payload, product["id"], customer_email="a@example.com")
    _create_order(client, order_payload, product["id"], customer_email="b@example.com")

    r = client.get("/api/orders", headers=admin_headers)
    assert r.status_code == 200
    body = r.json()
    assert body["pagination"] == {"page": 1, "limit": 10, "total": 2, "pages": 1}
    assert [o["customer_email"] for o in body["orders"]] == ["b@example.com", "a@example.com"]
    assert body["orders"][0]["product"]["title"] == product["title"]

    r = client.get("/api/orders", headers=admin_headers, params={"email": "A@example.com"})
    assert [o["customer_email"] for o in r.json()["orders"]] == ["a@example.com"]


def test_list_orders_filters_by_status(client, admin_headers, make_product, order_payload):
    product = make_product()
    first = _create_order(client, order_payload, product["id"])
    _create_order(client, order_payload, product["id"])
    _set_status(client, admin_headers, first["id"], payment_status="paid")

    r = client.get("/api/orders", headers=admin_headers, params={"paymentStatus": "paid"})
    assert [o["id"] for o in r.json()["orders"]] == [first["id"]]

    r = client.get("/api/orders", headers=admin_headers, params={"status": "delivered"})
    assert r.json()["orders"] == []


def test_non_admin_sees_only_own_orders(client, user_headers, make_product, order_payload):
    product = make_product()
    _create_order(client, order_payload, product["id"], customer_email="customer@example.com")
    _create_order(client, order_payload, product["id"], customer_email="someone@example.com")

    r = client.get("/api/orders", headers=user_headers, params={"email": "someone@example.com"})

    assert r.status_code == 200
    assert [o["customer_email"] for o in r.json()["orders"]] == ["customer@example.com"]


def test_anonymous_order_listing_is_unauthorized(client):
    r = client.get("/api/orders")
    assert r.status_code == 401
    assert r.json() == {"error": "Unauthorized"}


def test_order_summary_survives_product_removal(client, admin_headers, make_product, order_payload, db):
    product = make_product()
    order = _create_order(client, order_payload, product["id"])
    db.products.delete_many({})

    r = client.get(f"/api/orders/{order['id']}", headers=admin_headers)

    assert r.status_code == 200
    assert r.json()["order"]["product"] is None


def test_delete_order(client, admin_headers, make_product, order_payload):
    product = make_product()
    order = _create_order(client, order_payload, product["id"])

    assert client.delete(f"/api/orders/{order['id']}", headers=admin_headers).status_code == 200
    assert client.delete(f"/api/orders/{order['id']}", headers=admin_headers).status_code == 404


def test_missing_order_lookup():
    with pytest.raises(NotFound):
        orders.find_order("0" * 24)
