import pytest

from deposit_engine.errors import InvalidStateError, NotFoundError, OverpaymentError, ValidationError
from deposit_engine.models import DepositPayment
from deposit_engine.services import deposit_service, payment_service

from conftest import cash, catalog_item, trade_in


@pytest.fixture
def order(db_session, product):
    return deposit_service.create_deposit_order(
        customer_name="Jane Smith",
        items=[catalog_item(product.id, unit_price_cents=500)],
        part_exchanges=[trade_in(allowance_cents=100)],
        initial_payment=cash(150),
    )


def test_balance_due_is_net_of_trade_in_and_payments(db_session, order):
    assert payment_service.get_amount_paid(order.id) == 150
    assert payment_service.get_balance_due(order.id) == 250


def test_partial_payments_accumulate(db_session, order):
    payment_service.record_payment(order.id, 100, "card", reference="AUTH-1")
    payment_service.record_payment(order.id, 50, "transfer")

    summary = payment_service.get_payment_summary(order.id)
    assert summary["amount_paid_cents"] == 300
    assert summary["balance_due_cents"] == 100
    assert summary["payment_count"] == 3
    assert [p.amount_cents for p in payment_service.list_payments(order.id)] == [150, 100, 50]


def test_overpayment_rejected_and_nothing_written(db_session, order):
    with pytest.raises(OverpaymentError) as exc:
        payment_service.record_payment(order.id, 251, "cash")

    assert exc.value.details["balance_due_cents"] == 250
    assert exc.value.details["amount_paid_cents"] == 150
    assert db_session.query(DepositPayment).filter_by(deposit_order_id=order.id).count() == 1
    assert payment_service.get_amount_paid(order.id) == 150


def test_exact_balance_is_accepted(db_session, order):
    payment_service.record_payment(order.id, 250, "cash")
    assert payment_service.get_balance_due(order.id) == 0

    with pytest.raises(OverpaymentError):
        payment_service.record_payment(order.id, 1, "cash")


@pytest.mark.parametrize("amount,method", [
    (0, "cash"),
    (-100, "cash"),
    (100, "bitcoin"),
    (True, "cash"),
])
def test_invalid_payment_input(db_session, order, amount, method):
    with pytest.raises(ValidationError):
        payment_service.record_payment(order.id, amount, method)
    assert payment_service.get_amount_paid(order.id) == 150


def test_payment_on_closed_order_rejected(db_session, order):
    deposit_service.cancel_deposit_order(order.id, "customer left")

    with pytest.raises(InvalidStateError) as exc:
        payment_service.record_payment(order.id, 10, "cash")
    assert exc.value.details["status"] == "cancelled"
    # Payments already taken stay on the order
    assert payment_service.get_amount_paid(order.id) == 150


def test_payment_on_unknown_order(db_session):
    with pytest.raises(NotFoundError):
        payment_service.record_payment(424242, 10, "cash")


def test_initial_payment_cannot_exceed_net_total(db_session, product):
    with pytest.raises(OverpaymentError):
        deposit_service.create_deposit_order(
            customer_name="Jane Smith",
            items=[catalog_item(product.id, unit_price_cents=500)],
            part_exchanges=[trade_in(allowance_cents=100)],
            initial_payment=cash(401),
        )
    assert deposit_service.list_orders() == []
