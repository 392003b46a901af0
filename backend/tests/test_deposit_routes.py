"""
HTTP surface tests: thin routes over the deposit services.
"""

import pytest


HEADERS = {"X-User-Id": "3"}


@pytest.fixture
def created(client, product):
    resp = client.post("/api/deposits/", headers=HEADERS, json={
        "customer_name": "Jane Smith",
        "expected_date": "2026-12-01",
        "items": [{"product_id": product.id, "quantity": 1, "unit_price_cents": 500}],
        "part_exchanges": [{"product_name": "Old Chain", "allowance_cents": 100}],
        "initial_payment": {"amount_cents": 100, "payment_method": "cash"},
    })
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()


def test_create_returns_derived_amounts(created):
    assert created["status"] == "active"
    assert created["staff_user_id"] == 3
    assert created["amount_paid_cents"] == 100
    assert created["balance_due_cents"] == 300
    assert len(created["items"]) == 1
    assert len(created["part_exchanges"]) == 1
    assert len(created["payments"]) == 1


def test_create_validation_error_shape(client, db_session):
    resp = client.post("/api/deposits/", json={"customer_name": "X", "items": []})
    assert resp.status_code == 400
    body = resp.get_json()
    assert body["code"] == "validation_error"
    assert body["details"]["field"] == "items"


def test_create_rejects_float_cents(client, product):
    resp = client.post("/api/deposits/", json={
        "customer_name": "X",
        "items": [{"product_id": product.id, "unit_price_cents": 4.99}],
    })
    assert resp.status_code == 400


@pytest.mark.parametrize("flag", ["false", 0, "no"])
def test_create_rejects_non_boolean_custom_flag(client, product, flag):
    resp = client.post("/api/deposits/", json={
        "customer_name": "X",
        "items": [{"product_id": product.id, "product_name": "Ring", "quantity": 1,
                   "unit_price_cents": 500, "is_custom_order": flag}],
    })
    assert resp.status_code == 400
    assert resp.get_json()["details"]["field"] == "items[0].is_custom_order"
    assert client.get(f"/api/inventory/{product.id}").get_json()["available"] == 5


def test_create_rejects_custom_line_with_product_id(client, product):
    resp = client.post("/api/deposits/", json={
        "customer_name": "X",
        "items": [{"product_id": product.id, "product_name": "Ring", "quantity": 1,
                   "unit_price_cents": 500, "is_custom_order": True}],
    })
    assert resp.status_code == 400
    assert resp.get_json()["details"]["field"] == "items[0].product_id"
    assert client.get(f"/api/inventory/{product.id}").get_json()["available"] == 5


def test_explicit_catalog_flag_reserves_stock(client, product):
    resp = client.post("/api/deposits/", json={
        "customer_name": "X",
        "items": [{"product_id": product.id, "quantity": 2,
                   "unit_price_cents": 500, "is_custom_order": False}],
    })
    assert resp.status_code == 201
    item = resp.get_json()["items"][0]
    assert item["product_id"] == product.id
    assert item["is_custom_order"] is False
    assert client.get(f"/api/inventory/{product.id}").get_json()["available"] == 3


def test_create_rejects_trailing_garbage_in_date(client, product):
    resp = client.post("/api/deposits/", json={
        "customer_name": "X",
        "expected_date": "2026-11-30 not a date",
        "items": [{"product_id": product.id, "unit_price_cents": 500}],
    })
    assert resp.status_code == 400
    assert resp.get_json()["details"]["field"] == "expected_date"


def test_insufficient_stock_carries_availability(client, product):
    resp = client.post("/api/deposits/", json={
        "customer_name": "X",
        "items": [{"product_id": product.id, "quantity": 9, "unit_price_cents": 500}],
    })
    assert resp.status_code == 409
    body = resp.get_json()
    assert body["code"] == "insufficient_stock"
    assert body["details"] == {"product_id": product.id, "requested": 9, "available": 5}


def test_payment_flow_and_overpayment(client, created):
    order_id = created["id"]

    resp = client.post(f"/api/deposits/{order_id}/payments", headers=HEADERS,
                       json={"amount_cents": 301, "payment_method": "card"})
    assert resp.status_code == 409
    assert resp.get_json()["details"]["balance_due_cents"] == 300

    resp = client.post(f"/api/deposits/{order_id}/payments", headers=HEADERS,
                       json={"amount_cents": 300, "payment_method": "card", "reference": "AUTH-1"})
    assert resp.status_code == 201
    assert resp.get_json()["summary"]["balance_due_cents"] == 0

    resp = client.get(f"/api/deposits/{order_id}/payments")
    assert [p["amount_cents"] for p in resp.get_json()["payments"]] == [100, 300]


def test_complete_requires_full_payment(client, created):
    order_id = created["id"]

    resp = client.post(f"/api/deposits/{order_id}/complete", headers=HEADERS)
    assert resp.status_code == 409
    assert resp.get_json()["code"] == "outstanding_balance"
    assert resp.get_json()["details"]["balance_due_cents"] == 300

    client.post(f"/api/deposits/{order_id}/payments", json={"amount_cents": 300, "payment_method": "cash"})
    resp = client.post(f"/api/deposits/{order_id}/complete", headers=HEADERS)
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["order"]["status"] == "completed"
    assert body["sale"]["total_cents"] == 400
    assert len(body["sale"]["items"]) == 1


def test_cancel_then_cancel_again(client, created, product):
    order_id = created["id"]

    resp = client.post(f"/api/deposits/{order_id}/cancel", headers=HEADERS, json={"reason": "no longer wanted"})
    assert resp.status_code == 200
    assert resp.get_json()["status"] == "cancelled"

    resp = client.post(f"/api/deposits/{order_id}/cancel", headers=HEADERS)
    assert resp.status_code == 409
    assert resp.get_json()["details"]["status"] == "cancelled"

    stock = client.get(f"/api/inventory/{product.id}").get_json()
    assert stock["available"] == 5


def test_unknown_order_is_404(client, db_session):
    assert client.get("/api/deposits/9999").status_code == 404
    assert client.post("/api/deposits/9999/void").status_code == 404


def test_bad_actor_header(client, db_session):
    resp = client.get("/api/deposits/", headers={"X-User-Id": "abc"})
    assert resp.status_code == 400


def test_list_update_and_stats(client, created):
    order_id = created["id"]

    resp = client.patch(f"/api/deposits/{order_id}", json={"notes": "Ring sized"})
    assert resp.status_code == 200
    assert resp.get_json()["notes"] == "Ring sized"

    orders = client.get("/api/deposits/?status=active").get_json()["orders"]
    assert [o["id"] for o in orders] == [order_id]
    assert client.get("/api/deposits/?status=bogus").status_code == 400

    stats = client.get("/api/deposits/stats").get_json()
    assert stats["active"]["count"] == 1


def test_inventory_routes(client, product):
    resp = client.post("/api/inventory/receive", headers=HEADERS,
                       json={"product_id": product.id, "quantity": 2, "unit_cost_cents": 300})
    assert resp.status_code == 201
    assert resp.get_json()["summary"]["on_hand"] == 7

    resp = client.post("/api/inventory/adjust", json={"product_id": product.id, "quantity_delta": -10})
    assert resp.status_code == 400

    movements = client.get(f"/api/inventory/{product.id}/movements").get_json()["movements"]
    assert [m["movement_type"] for m in movements] == ["purchase", "purchase"]

    assert client.get("/api/inventory/424242").status_code == 404
    assert client.get("/api/inventory/reserved").get_json() == {"reserved": []}
