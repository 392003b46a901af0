# Overview: Service-layer operations for deposit payments; append-only ledger with derived balances.

"""
Deposit Payment Ledger

WHY: A deposit order is paid off in instalments. amount_paid is the sum of
immutable DepositPayment rows, never a stored counter, so two terminals
recording payments at once cannot lose an update.

DESIGN PRINCIPLES:
- Append-only: there is no edit, void, or delete for a payment
- Overpayment is rejected: amount must not exceed balance_due
- Only ACTIVE orders accept payments
- The order row is locked before the balance check (per-order serialization)
- Refunds for cancelled/voided orders are handled outside this engine
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..errors import InvalidStateError, NotFoundError, OverpaymentError, ValidationError
from ..models import DepositOrder, DepositPayment
from .audit_service import append_audit_event
from .concurrency import begin_serialized, lock_for_update, run_with_retry


# =============================================================================
# PAYMENT METHODS (CONSTANTS)
# =============================================================================

METHOD_CASH = "cash"
METHOD_CARD = "card"
METHOD_TRANSFER = "transfer"
METHOD_CHECK = "check"
METHOD_OTHER = "other"

VALID_PAYMENT_METHODS = [
    METHOD_CASH,
    METHOD_CARD,
    METHOD_TRANSFER,
    METHOD_CHECK,
    METHOD_OTHER,
]


# =============================================================================
# DERIVED AMOUNTS
# =============================================================================

def get_amount_paid(order_id: int) -> int:
    """Sum of all payments recorded against the order (cents)."""
    q = db.session.query(
        func.coalesce(func.sum(DepositPayment.amount_cents), 0)
    ).filter(DepositPayment.deposit_order_id == order_id)
    return int(q.scalar() or 0)


def compute_balance_due(order: DepositOrder, amount_paid_cents: int | None = None) -> int:
    if amount_paid_cents is None:
        amount_paid_cents = get_amount_paid(order.id)
    return max(order.net_payable_cents - amount_paid_cents, 0)


def get_balance_due(order_id: int) -> int:
    order = _get_order(order_id)
    return compute_balance_due(order)


def _get_order(order_id: int, *, lock: bool = False) -> DepositOrder:
    query = db.session.query(DepositOrder).filter_by(id=order_id)
    if lock:
        query = lock_for_update(query)
    order = query.first()
    if order is None:
        raise NotFoundError(
            f"Deposit order {order_id} not found",
            details={"entity": "deposit_order", "id": order_id},
        )
    return order


# =============================================================================
# PAYMENT RECORDING
# =============================================================================

def _validate_payment_input(amount_cents, method: str) -> None:
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int):
        raise ValidationError("amount_cents must be an integer", details={"field": "amount_cents"})
    if amount_cents <= 0:
        raise ValidationError("Payment amount must be positive", details={"field": "amount_cents"})
    if method not in VALID_PAYMENT_METHODS:
        raise ValidationError(
            f"Invalid payment method: {method}. Must be one of {VALID_PAYMENT_METHODS}",
            details={"field": "payment_method"},
        )


def _record_payment_locked(
    order: DepositOrder,
    *,
    amount_cents: int,
    payment_method: str,
    reference: str | None = None,
    notes: str | None = None,
    recorded_by_user_id: int | None = None,
) -> DepositPayment:
    """
    Append a payment to an order whose row the caller already holds locked.

    No commit; used by record_payment() and by create_deposit_order() for the
    initial payment.
    """
    _validate_payment_input(amount_cents, payment_method)

    amount_paid = get_amount_paid(order.id)
    balance_due = compute_balance_due(order, amount_paid)

    if order.status != "active":
        raise InvalidStateError(
            f"Cannot add payment to a {order.status} order",
            details={
                "order_id": order.id,
                "status": order.status,
                "event": "payment",
                "balance_due_cents": balance_due,
            },
        )

    if amount_cents > balance_due:
        raise OverpaymentError(
            f"Payment amount exceeds balance due ({balance_due} cents)",
            details={
                "order_id": order.id,
                "amount_cents": amount_cents,
                "balance_due_cents": balance_due,
                "amount_paid_cents": amount_paid,
            },
        )

    payment = DepositPayment(
        deposit_order_id=order.id,
        amount_cents=amount_cents,
        payment_method=payment_method,
        reference=reference,
        notes=notes,
        recorded_by_user_id=recorded_by_user_id,
    )
    db.session.add(payment)
    db.session.flush()  # Get payment ID

    append_audit_event(
        event_type="deposit.payment_recorded",
        entity_type="deposit_payment",
        entity_id=payment.id,
        actor_user_id=recorded_by_user_id,
        deposit_order_id=order.id,
        payload={
            "amount_cents": amount_cents,
            "payment_method": payment_method,
            "balance_due_cents": balance_due - amount_cents,
        },
    )
    return payment


def record_payment(
    order_id: int,
    amount_cents: int,
    payment_method: str,
    *,
    reference: str | None = None,
    notes: str | None = None,
    recorded_by_user_id: int | None = None,
) -> DepositPayment:
    """
    Record a payment against an active deposit order.

    Raises:
        NotFoundError: unknown order
        ValidationError: non-positive amount or unknown method
        InvalidStateError: order is not active
        OverpaymentError: amount > balance_due (nothing written)
    """
    def _op():
        begin_serialized()
        order = _get_order(order_id, lock=True)
        payment = _record_payment_locked(
            order,
            amount_cents=amount_cents,
            payment_method=payment_method,
            reference=reference,
            notes=notes,
            recorded_by_user_id=recorded_by_user_id,
        )
        db.session.commit()
        current_app.logger.info(
            "Deposit order %s: recorded %s payment of %s cents",
            order_id, payment_method, amount_cents,
        )
        return payment

    return run_with_retry(_op)


# =============================================================================
# QUERIES
# =============================================================================

def list_payments(order_id: int) -> list[DepositPayment]:
    _get_order(order_id)
    return (
        db.session.query(DepositPayment)
        .filter_by(deposit_order_id=order_id)
        .order_by(DepositPayment.created_at, DepositPayment.id)
        .all()
    )


def get_payment_summary(order_id: int) -> dict:
    """Totals an operator needs to take the next payment."""
    order = _get_order(order_id)
    amount_paid = get_amount_paid(order_id)
    payment_count = (
        db.session.query(func.count(DepositPayment.id))
        .filter(DepositPayment.deposit_order_id == order_id)
        .scalar()
    )
    return {
        "deposit_order_id": order_id,
        "status": order.status,
        "total_amount_cents": order.total_amount_cents,
        "part_exchange_total_cents": order.part_exchange_total_cents,
        "amount_paid_cents": amount_paid,
        "balance_due_cents": compute_balance_due(order, amount_paid),
        "payment_count": int(payment_count or 0),
    }
