from deposit_engine.models import Sale
from deposit_engine.services import deposit_service, reconciliation_service, reservation_service

from conftest import cash, catalog_item


def _kinds(findings):
    return sorted(f["kind"] for f in findings)


def test_clean_lifecycle_has_no_findings(db_session, product):
    kept = deposit_service.create_deposit_order(customer_name="A", items=[catalog_item(product.id)])
    cancelled = deposit_service.create_deposit_order(customer_name="B", items=[catalog_item(product.id)])
    sold = deposit_service.create_deposit_order(
        customer_name="C", items=[catalog_item(product.id, unit_price_cents=500)], initial_payment=cash(500),
    )
    deposit_service.cancel_deposit_order(cancelled.id)
    deposit_service.complete_deposit_order(sold.id)

    assert kept.id
    assert reconciliation_service.find_reservation_discrepancies() == []
    assert reconciliation_service.find_negative_availability() == []


def test_double_release_is_reported(db_session, product):
    order = deposit_service.create_deposit_order(customer_name="A", items=[catalog_item(product.id, quantity=2)])
    deposit_service.cancel_deposit_order(order.id)

    # A second release for the same order slips through: nothing prevents it structurally
    reservation_service.release(product.id, 2, order.id, note="duplicate")
    db_session.commit()

    findings = reconciliation_service.find_reservation_discrepancies()
    assert findings == [{
        "kind": "over_released",
        "deposit_order_id": order.id,
        "product_id": product.id,
        "status": "cancelled",
        "held": -2,
    }]
    assert _kinds(reconciliation_service.find_negative_availability()) == ["available_exceeds_on_hand"]


def test_missing_and_stale_reservations(db_session, make_product):
    product = make_product(stock=5)
    active = deposit_service.create_deposit_order(customer_name="A", items=[catalog_item(product.id, quantity=2)])
    closed = deposit_service.create_deposit_order(customer_name="B", items=[catalog_item(product.id)])

    # Active order loses one unit of its hold; closed order is flipped without releasing
    reservation_service.release(product.id, 1, active.id)
    deposit_service.get_order(closed.id).status = "voided"
    db_session.commit()

    findings = reconciliation_service.find_reservation_discrepancies()
    assert _kinds(findings) == ["missing_reservation", "stale_reservation"]
    missing = next(f for f in findings if f["kind"] == "missing_reservation")
    assert (missing["deposit_order_id"], missing["held"], missing["expected"]) == (active.id, 1, 2)


def test_active_order_with_sale_is_incomplete(db_session, product):
    order = deposit_service.create_deposit_order(customer_name="A", items=[catalog_item(product.id)])
    db_session.add(Sale(document_number="S-ORPHAN", deposit_order_id=order.id, subtotal_cents=500, total_cents=500))
    db_session.commit()

    findings = reconciliation_service.find_reservation_discrepancies()
    assert [(f["kind"], f["deposit_order_id"]) for f in findings] == [("incomplete_completion", order.id)]
