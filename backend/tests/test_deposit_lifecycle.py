"""
Deposit order lifecycle tests.

Covers the transition table, terminal states, and the atomicity of create.
"""

from datetime import date

import pytest

from deposit_engine.errors import (
    InsufficientStockError,
    InvalidStateError,
    NotFoundError,
    OutstandingBalanceError,
    ValidationError,
)
from deposit_engine.models import DepositOrder, DepositOrderItem, PartExchangeItem, Sale, StockMovement
from deposit_engine.services import deposit_service, payment_service
from deposit_engine.services.audit_service import list_audit_events
from deposit_engine.services.deposit_service import DepositEvent, DepositItemSpec, DepositStatus, next_status
from deposit_engine.services.stock_ledger_service import get_available

from conftest import cash, catalog_item, custom_item, trade_in


def _create(product, **kwargs):
    kwargs.setdefault("customer_name", "Jane Smith")
    kwargs.setdefault("items", [catalog_item(product.id, unit_price_cents=500)])
    return deposit_service.create_deposit_order(**kwargs)


# =============================================================================
# TRANSITION TABLE
# =============================================================================

def test_only_active_has_outgoing_transitions():
    for event in DepositEvent:
        assert next_status("active", event) is not None
    for status in ("completed", "cancelled", "voided", "expired"):
        for event in DepositEvent:
            assert next_status(status, event) is None
    assert next_status("pending", DepositEvent.CANCEL) is None


def test_transition_targets():
    assert next_status("active", DepositEvent.COMPLETE) is DepositStatus.COMPLETED
    assert next_status("active", DepositEvent.CANCEL) is DepositStatus.CANCELLED
    assert next_status("active", DepositEvent.VOID) is DepositStatus.VOIDED
    assert next_status("active", DepositEvent.EXPIRE) is DepositStatus.EXPIRED


# =============================================================================
# CREATE
# =============================================================================

def test_create_writes_order_items_part_exchanges_and_payment(db_session, product):
    order = _create(
        product,
        customer_id=7,
        items=[catalog_item(product.id, unit_price_cents=500), custom_item(unit_price_cents=800)],
        part_exchanges=[trade_in(allowance_cents=100, serial="SN-1")],
        initial_payment=cash(200),
        expected_date="2026-12-24",
        notes="Gift",
    )

    assert order.status == "active"
    assert order.customer_id == 7
    assert order.total_amount_cents == 1300
    assert order.part_exchange_total_cents == 100
    assert order.expected_date == date(2026, 12, 24)
    assert len(order.items) == 2
    assert [i.is_custom_order for i in order.items] == [False, True]
    assert order.items[1].product_id is None
    assert len(order.part_exchanges) == 1
    assert payment_service.get_balance_due(order.id) == 1000

    events = [e.event_type for e in list_audit_events(deposit_order_id=order.id)]
    assert events == ["deposit.created", "deposit.payment_recorded"]


def test_walk_in_customer_name_default(db_session, product):
    order = _create(product, customer_name=None)
    assert order.customer_name == "Walk-in Customer"


def test_named_customer_requires_name(db_session, product):
    with pytest.raises(ValidationError):
        _create(product, customer_id=3, customer_name="  ")


def test_zero_initial_payment_is_ignored(db_session, product):
    order = _create(product, initial_payment=cash(0))
    assert payment_service.list_payments(order.id) == []


@pytest.mark.parametrize("items", [
    [],
    [catalog_item(1, quantity=0)],
    [custom_item(name="")],
    [DepositItemSpec(product_id=1, product_name="Ring", quantity=1, unit_price_cents=500, is_custom_order=True)],
])
def test_create_rejects_bad_items(db_session, items):
    with pytest.raises(ValidationError):
        deposit_service.create_deposit_order(customer_name="Jane Smith", items=items)


def test_trade_in_cannot_exceed_total(db_session, product):
    with pytest.raises(ValidationError):
        _create(product, part_exchanges=[trade_in(allowance_cents=501)])


def test_create_is_all_or_nothing(db_session, make_product):
    plenty = make_product(stock=5)
    scarce = make_product(stock=1)

    with pytest.raises(InsufficientStockError):
        deposit_service.create_deposit_order(
            customer_name="Jane Smith",
            items=[catalog_item(plenty.id), catalog_item(scarce.id, quantity=2)],
            part_exchanges=[trade_in()],
            initial_payment=cash(100),
        )

    assert db_session.query(DepositOrder).count() == 0
    assert db_session.query(DepositOrderItem).count() == 0
    assert db_session.query(PartExchangeItem).count() == 0
    assert db_session.query(StockMovement).filter_by(movement_type="reserve").count() == 0
    assert get_available(plenty.id) == 5


def test_create_unknown_product(db_session):
    with pytest.raises(NotFoundError):
        deposit_service.create_deposit_order(customer_name="Jane Smith", items=[catalog_item(99999)])


# =============================================================================
# CLOSE WITHOUT SALE
# =============================================================================

@pytest.mark.parametrize("close,status,stamp", [
    (deposit_service.cancel_deposit_order, "cancelled", "cancelled_at"),
    (deposit_service.void_deposit_order, "voided", "voided_at"),
])
def test_cancel_and_void(db_session, product, close, status, stamp):
    order = _create(product, initial_payment=cash(100), notes="Original note")

    closed = close(order.id, "customer request", actor_user_id=12)

    assert closed.status == status
    assert getattr(closed, stamp) is not None
    assert closed.closed_by_user_id == 12
    assert closed.notes.startswith("Original note")
    assert "customer request" in closed.notes
    assert get_available(product.id) == 5
    # Payment rows are untouched
    assert payment_service.get_amount_paid(order.id) == 100


def test_expire_releases_stock(db_session, product):
    order = _create(product)
    expired = deposit_service.expire_deposit_order(order.id)
    assert expired.status == "expired"
    assert expired.expired_at is not None
    assert get_available(product.id) == 5


@pytest.mark.parametrize("close", [
    deposit_service.cancel_deposit_order,
    deposit_service.void_deposit_order,
    deposit_service.expire_deposit_order,
    deposit_service.complete_deposit_order,
])
def test_terminal_states_are_final(db_session, product, close):
    order = _create(product)
    deposit_service.cancel_deposit_order(order.id)
    movements_before = db_session.query(StockMovement).count()

    with pytest.raises(InvalidStateError) as exc:
        close(order.id)

    assert exc.value.details["status"] == "cancelled"
    assert db_session.query(StockMovement).count() == movements_before
    assert deposit_service.get_order(order.id).status == "cancelled"


def test_expire_overdue_orders_only_touches_overdue_active(db_session, make_product):
    product = make_product(stock=5)
    overdue = _create(product, expected_date="2026-08-01")
    recent = _create(product, expected_date="2026-10-01")
    undated = _create(product)
    closed = _create(product, expected_date="2026-07-01")
    deposit_service.cancel_deposit_order(closed.id)

    expired = deposit_service.expire_overdue_orders(as_of=date(2026, 10, 19), grace_days=30)

    assert expired == [overdue.id]
    assert deposit_service.get_order(overdue.id).status == "expired"
    assert deposit_service.get_order(recent.id).status == "active"
    assert deposit_service.get_order(undated.id).status == "active"
    assert deposit_service.get_order(closed.id).status == "cancelled"
    assert get_available(product.id) == 3


# =============================================================================
# COMPLETE
# =============================================================================

def test_completion_blocked_by_one_cent_balance(db_session, product):
    order = _create(product, initial_payment=cash(499))

    with pytest.raises(OutstandingBalanceError) as exc:
        deposit_service.complete_deposit_order(order.id)

    assert exc.value.details["balance_due_cents"] == 1
    assert deposit_service.get_order(order.id).status == "active"
    assert db_session.query(Sale).count() == 0
    assert get_available(product.id) == 4


def test_completion_sets_sale_and_stamp(db_session, product):
    order = _create(product, initial_payment=cash(500))

    completed = deposit_service.complete_deposit_order(order.id, actor_user_id=5)

    assert completed.status == "completed"
    assert completed.completed_at is not None
    assert completed.closed_by_user_id == 5
    sale = db_session.get(Sale, completed.sale_id)
    assert sale.deposit_order_id == order.id
    assert sale.document_number == "S-000001"


# =============================================================================
# EDITS & READS
# =============================================================================

def test_update_details(db_session, product):
    order = _create(product)
    deposit_service.update_order_details(order.id, expected_date="2026-11-01", notes="Call first")
    order = deposit_service.get_order(order.id)
    assert order.expected_date == date(2026, 11, 1)
    assert order.notes == "Call first"

    deposit_service.cancel_deposit_order(order.id)
    deposit_service.update_order_details(order.id, notes="Refunded in cash")
    with pytest.raises(InvalidStateError):
        deposit_service.update_order_details(order.id, expected_date="2026-12-01")


@pytest.mark.parametrize("bad_date", ["2026-11-30 not a date", "2026-13-01", "next week"])
def test_malformed_expected_date_is_rejected(db_session, product, bad_date):
    with pytest.raises(ValidationError):
        _create(product, expected_date=bad_date)
    assert db_session.query(DepositOrder).count() == 0

    order = _create(product, expected_date="2026-11-30")
    with pytest.raises(ValidationError):
        deposit_service.update_order_details(order.id, expected_date=bad_date)
    assert deposit_service.get_order(order.id).expected_date == date(2026, 11, 30)


def test_set_item_cost_on_active_order_only(db_session, product):
    order = _create(product, items=[custom_item(unit_cost_cents=None)])
    item_id = order.items[0].id

    item = deposit_service.set_item_cost(item_id, 420)
    assert item.unit_cost_cents == 420

    with pytest.raises(ValidationError):
        deposit_service.set_item_cost(item_id, -1)

    deposit_service.void_deposit_order(order.id)
    with pytest.raises(InvalidStateError):
        deposit_service.set_item_cost(item_id, 100)


def test_list_orders_and_stats(db_session, product):
    a = _create(product, initial_payment=cash(100))
    b = _create(product, customer_id=9, customer_name="Sam Lee")
    deposit_service.cancel_deposit_order(b.id)

    assert [o.id for o in deposit_service.list_orders(status="active")] == [a.id]
    assert [o.id for o in deposit_service.list_orders(customer_id=9)] == [b.id]
    with pytest.raises(ValidationError):
        deposit_service.list_orders(status="pending")

    stats = deposit_service.get_deposit_order_stats()
    assert stats["active"] == {
        "count": 1, "total_value_cents": 500, "total_paid_cents": 100, "balance_due_cents": 400,
    }
    assert stats["cancelled"]["count"] == 1
    assert stats["completed"]["count"] == 0

    summary = deposit_service.order_summary(deposit_service.get_order(a.id))
    assert summary["amount_paid_cents"] == 100
    assert summary["balance_due_cents"] == 400
    assert summary["item_count"] == 1
