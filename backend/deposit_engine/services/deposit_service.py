# Overview: Service-layer operations for deposit orders; lifecycle state machine and atomic create.

"""
Deposit Order Lifecycle Service

================================================================================
PURPOSE: Own the deposit order lifecycle and keep every transition atomic
================================================================================

STATE MACHINE:
    ACTIVE -> COMPLETED | CANCELLED | VOIDED | EXPIRED

    ACTIVE:    holds reservations, accepts payments
    COMPLETED: converted into a sale (completion_service)
    CANCELLED: customer/staff cancelled; reservations released
    VOIDED:    entered in error; reservations released
    EXPIRED:   abandoned (time-driven); reservations released

RULES (NON-NEGOTIABLE):
1. Every terminal status is final. Nothing leaves a terminal status.
2. Transitions are looked up in TRANSITIONS; anything missing is rejected.
3. COMPLETE requires balance_due <= 0.
4. The status flip is the LAST write of an operation, inside the same
   transaction as the side effects. A failure leaves the order ACTIVE.
5. Payments are never refunded here; refund bookkeeping belongs to the caller.

================================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..errors import (
    InvalidStateError,
    NotFoundError,
    OutstandingBalanceError,
    ValidationError,
)
from ..models import (
    DepositOrder,
    DepositOrderItem,
    DepositPayment,
    PartExchangeItem,
    Product,
)
from ..time_utils import parse_iso_date, utcnow
from . import completion_service, reservation_service
from .audit_service import append_audit_event
from .concurrency import begin_serialized, run_with_retry
from .payment_service import (
    _get_order,
    _record_payment_locked,
    compute_balance_due,
    get_amount_paid,
)
from .stock_ledger_service import get_available


class DepositStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    VOIDED = "voided"
    EXPIRED = "expired"


class DepositEvent(str, Enum):
    COMPLETE = "complete"
    CANCEL = "cancel"
    VOID = "void"
    EXPIRE = "expire"


TRANSITIONS: dict[tuple[DepositStatus, DepositEvent], DepositStatus] = {
    (DepositStatus.ACTIVE, DepositEvent.COMPLETE): DepositStatus.COMPLETED,
    (DepositStatus.ACTIVE, DepositEvent.CANCEL): DepositStatus.CANCELLED,
    (DepositStatus.ACTIVE, DepositEvent.VOID): DepositStatus.VOIDED,
    (DepositStatus.ACTIVE, DepositEvent.EXPIRE): DepositStatus.EXPIRED,
}

TERMINAL_STATUSES = frozenset(
    {DepositStatus.COMPLETED, DepositStatus.CANCELLED, DepositStatus.VOIDED, DepositStatus.EXPIRED}
)

# Note prefix and timestamp column per releasing transition
_RELEASE_TRANSITIONS = {
    DepositEvent.CANCEL: ("Cancellation reason", "cancelled_at"),
    DepositEvent.VOID: ("Void reason", "voided_at"),
    DepositEvent.EXPIRE: ("Expired", "expired_at"),
}


def next_status(current: str, event: DepositEvent) -> DepositStatus | None:
    """Transition table lookup; None when the event is not allowed."""
    try:
        status = DepositStatus(current)
    except ValueError:
        return None
    return TRANSITIONS.get((status, event))


def _require_transition(order: DepositOrder, event: DepositEvent) -> DepositStatus:
    target = next_status(order.status, event)
    if target is None:
        raise InvalidStateError(
            f"Cannot {event.value} a {order.status} deposit order",
            details={
                "order_id": order.id,
                "status": order.status,
                "event": event.value,
            },
        )
    return target


# =============================================================================
# INPUT SPECS
# =============================================================================

@dataclass(frozen=True)
class DepositItemSpec:
    """One requested line. product_id=None (or is_custom_order) means custom."""
    product_name: str
    quantity: int
    unit_price_cents: int
    product_id: int | None = None
    unit_cost_cents: int | None = None
    is_custom_order: bool = False
    category: str | None = None
    description: str | None = None


@dataclass(frozen=True)
class PartExchangeSpec:
    product_name: str
    allowance_cents: int
    category: str | None = None
    serial: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class PaymentSpec:
    amount_cents: int
    payment_method: str
    reference: str | None = None
    notes: str | None = None


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _validate_item(index: int, spec: DepositItemSpec) -> None:
    field = f"items[{index}]"
    if not _is_int(spec.quantity) or spec.quantity <= 0:
        raise ValidationError(f"{field}.quantity must be a positive integer", details={"field": f"{field}.quantity"})
    if not _is_int(spec.unit_price_cents) or spec.unit_price_cents < 0:
        raise ValidationError(
            f"{field}.unit_price_cents must be a non-negative integer",
            details={"field": f"{field}.unit_price_cents"},
        )
    if spec.unit_cost_cents is not None and (not _is_int(spec.unit_cost_cents) or spec.unit_cost_cents < 0):
        raise ValidationError(
            f"{field}.unit_cost_cents must be a non-negative integer",
            details={"field": f"{field}.unit_cost_cents"},
        )
    if spec.is_custom_order and spec.product_id is not None:
        raise ValidationError(
            f"{field} cannot be both a custom order and a catalog product",
            details={"field": f"{field}.product_id"},
        )
    is_custom = spec.is_custom_order or spec.product_id is None
    if is_custom and not (spec.product_name or "").strip():
        raise ValidationError(f"{field}.product_name is required for custom items", details={"field": f"{field}.product_name"})


def _validate_part_exchange(index: int, spec: PartExchangeSpec) -> None:
    field = f"part_exchanges[{index}]"
    if not (spec.product_name or "").strip():
        raise ValidationError(f"{field}.product_name is required", details={"field": f"{field}.product_name"})
    if not _is_int(spec.allowance_cents) or spec.allowance_cents < 0:
        raise ValidationError(
            f"{field}.allowance_cents must be a non-negative integer",
            details={"field": f"{field}.allowance_cents"},
        )


def _resolve_customer_name(customer_id: int | None, customer_name: str | None) -> str:
    name = (customer_name or "").strip()
    if name:
        return name
    if customer_id is not None:
        raise ValidationError("customer_name is required when customer_id is given", details={"field": "customer_name"})
    return current_app.config.get("WALK_IN_CUSTOMER_NAME", "Walk-in Customer")


# =============================================================================
# CREATE
# =============================================================================

def create_deposit_order(
    *,
    items: list[DepositItemSpec],
    part_exchanges: list[PartExchangeSpec] | None = None,
    initial_payment: PaymentSpec | None = None,
    customer_id: int | None = None,
    customer_name: str | None = None,
    notes: str | None = None,
    expected_date=None,
    location_id: int | None = None,
    staff_user_id: int | None = None,
) -> DepositOrder:
    """
    Create an ACTIVE deposit order as one atomic unit.

    Steps (single transaction):
    1. Validate input and resolve catalog products.
    2. Insert order, item rows, and part-exchange rows.
    3. Reserve every catalog line (custom lines are not reserved).
    4. Record the optional initial payment last.

    Any failure (InsufficientStockError, OverpaymentError, ...) rolls back
    everything: no order, items, reservations, or payment survive.
    """
    part_exchanges = list(part_exchanges or [])

    def _op():
        if not items:
            raise ValidationError("A deposit order needs at least one item", details={"field": "items"})
        for i, spec in enumerate(items):
            _validate_item(i, spec)
        for i, spec in enumerate(part_exchanges):
            _validate_part_exchange(i, spec)

        name = _resolve_customer_name(customer_id, customer_name)
        try:
            expected = parse_iso_date(expected_date)
        except ValueError:
            raise ValidationError("expected_date must be YYYY-MM-DD", details={"field": "expected_date"})

        total = sum(spec.quantity * spec.unit_price_cents for spec in items)
        px_total = sum(spec.allowance_cents for spec in part_exchanges)
        if px_total > total:
            raise ValidationError(
                "Part-exchange allowance cannot exceed the order total",
                details={"field": "part_exchanges", "total_amount_cents": total, "part_exchange_total_cents": px_total},
            )

        begin_serialized()

        order = DepositOrder(
            customer_id=customer_id,
            customer_name=name,
            status=DepositStatus.ACTIVE.value,
            total_amount_cents=total,
            part_exchange_total_cents=px_total,
            expected_date=expected,
            notes=notes,
            location_id=location_id,
            staff_user_id=staff_user_id,
        )
        db.session.add(order)
        db.session.flush()

        order_items = []
        for i, spec in enumerate(items):
            is_custom = spec.is_custom_order or spec.product_id is None
            product_name = spec.product_name
            if not is_custom:
                product = db.session.get(Product, spec.product_id)
                if product is None:
                    raise NotFoundError(
                        f"Product {spec.product_id} not found",
                        details={"entity": "product", "id": spec.product_id, "field": f"items[{i}].product_id"},
                    )
                if not product.is_active:
                    raise ValidationError(
                        f"Product {product.name} is inactive",
                        details={"field": f"items[{i}].product_id", "product_id": product.id},
                    )
                product_name = product_name or product.name
            item = DepositOrderItem(
                deposit_order_id=order.id,
                product_id=None if is_custom else spec.product_id,
                product_name=product_name,
                category=spec.category,
                description=spec.description,
                quantity=spec.quantity,
                unit_price_cents=spec.unit_price_cents,
                unit_cost_cents=spec.unit_cost_cents,
                is_custom_order=is_custom,
            )
            db.session.add(item)
            order_items.append(item)

        for spec in part_exchanges:
            db.session.add(PartExchangeItem(
                deposit_order_id=order.id,
                product_name=spec.product_name.strip(),
                category=spec.category,
                serial=spec.serial,
                allowance_cents=spec.allowance_cents,
                notes=spec.notes,
            ))
        db.session.flush()

        reservation_service.reserve_items(order, order_items, actor_user_id=staff_user_id)

        append_audit_event(
            event_type="deposit.created",
            entity_type="deposit_order",
            entity_id=order.id,
            actor_user_id=staff_user_id,
            deposit_order_id=order.id,
            payload={
                "total_amount_cents": total,
                "part_exchange_total_cents": px_total,
                "item_count": len(order_items),
                "part_exchange_count": len(part_exchanges),
            },
        )

        if initial_payment is not None and initial_payment.amount_cents:
            _record_payment_locked(
                order,
                amount_cents=initial_payment.amount_cents,
                payment_method=initial_payment.payment_method,
                reference=initial_payment.reference,
                notes=initial_payment.notes,
                recorded_by_user_id=staff_user_id,
            )

        db.session.commit()
        current_app.logger.info(
            "Deposit order %s created for %s: total=%s part_exchange=%s",
            order.id, name, total, px_total,
        )
        return order

    return run_with_retry(_op)


# =============================================================================
# CANCEL / VOID / EXPIRE
# =============================================================================

def _append_note(existing: str | None, line: str) -> str:
    return f"{existing or ''}\n\n{line}".strip()


def _release_and_close(
    order_id: int,
    event: DepositEvent,
    *,
    reason: str | None = None,
    actor_user_id: int | None = None,
) -> DepositOrder:
    def _op():
        begin_serialized()
        order = _get_order(order_id, lock=True)
        target = _require_transition(order, event)

        prefix, stamp_column = _RELEASE_TRANSITIONS[event]
        released = reservation_service.release_for_order(
            order,
            list(order.items),
            actor_user_id=actor_user_id,
            note=f"Deposit Order #{order.id} {target.value}",
        )

        if reason or event is DepositEvent.EXPIRE:
            line = f"{prefix}: {reason}" if reason else prefix
            order.notes = _append_note(order.notes, line)

        now = utcnow()
        setattr(order, stamp_column, now)
        order.closed_by_user_id = actor_user_id
        order.status = target.value

        append_audit_event(
            event_type=f"deposit.{target.value}",
            entity_type="deposit_order",
            entity_id=order.id,
            actor_user_id=actor_user_id,
            deposit_order_id=order.id,
            occurred_at=now,
            note=reason,
            payload={
                "released_movements": len(released),
                "amount_paid_cents": get_amount_paid(order.id),
            },
        )

        db.session.commit()
        current_app.logger.info(
            "Deposit order %s %s; released %d reservation(s)",
            order.id, target.value, len(released),
        )
        return order

    return run_with_retry(_op)


def cancel_deposit_order(order_id: int, reason: str | None = None, *, actor_user_id: int | None = None) -> DepositOrder:
    """ACTIVE -> CANCELLED. Releases reservations; payments are not refunded here."""
    return _release_and_close(order_id, DepositEvent.CANCEL, reason=reason, actor_user_id=actor_user_id)


def void_deposit_order(order_id: int, reason: str | None = None, *, actor_user_id: int | None = None) -> DepositOrder:
    """ACTIVE -> VOIDED. Same release semantics as cancel."""
    return _release_and_close(order_id, DepositEvent.VOID, reason=reason, actor_user_id=actor_user_id)


def expire_deposit_order(order_id: int, *, actor_user_id: int | None = None, reason: str | None = None) -> DepositOrder:
    """ACTIVE -> EXPIRED (abandoned). Same release semantics as cancel."""
    return _release_and_close(order_id, DepositEvent.EXPIRE, reason=reason, actor_user_id=actor_user_id)


def expire_overdue_orders(
    *,
    as_of: date | None = None,
    grace_days: int | None = None,
    actor_user_id: int | None = None,
) -> list[int]:
    """
    Expire ACTIVE orders whose expected date is more than grace_days past.

    Each order expires in its own transaction; an order that changed state
    in the meantime is skipped.
    """
    if grace_days is None:
        grace_days = current_app.config.get("DEPOSIT_EXPIRY_GRACE_DAYS", 30)
    if as_of is None:
        as_of = utcnow().date()
    cutoff = as_of - timedelta(days=grace_days)

    candidate_ids = [
        row.id
        for row in db.session.query(DepositOrder.id)
        .filter(
            DepositOrder.status == DepositStatus.ACTIVE.value,
            DepositOrder.expected_date.isnot(None),
            DepositOrder.expected_date < cutoff,
        )
        .order_by(DepositOrder.id)
        .all()
    ]
    db.session.rollback()

    expired = []
    for order_id in candidate_ids:
        try:
            expire_deposit_order(
                order_id,
                actor_user_id=actor_user_id,
                reason=f"expected date passed more than {grace_days} days before {as_of.isoformat()}",
            )
        except InvalidStateError:
            current_app.logger.info("Deposit order %s no longer active; not expired", order_id)
            continue
        expired.append(order_id)
    return expired


# =============================================================================
# COMPLETE
# =============================================================================

def complete_deposit_order(order_id: int, *, actor_user_id: int | None = None) -> DepositOrder:
    """
    ACTIVE -> COMPLETED once the balance is fully paid.

    Delegates the fan-out to completion_service, then flips the status as the
    last write. Any failure rolls back the whole completion and the order
    stays ACTIVE (safe to retry once the cause is fixed).

    Raises:
        InvalidStateError: order not ACTIVE, or a sale already exists for it
        OutstandingBalanceError: balance_due > 0
        MissingAttributionError: consigned product without supplier/cost
    """
    def _op():
        begin_serialized()
        order = _get_order(order_id, lock=True)
        target = _require_transition(order, DepositEvent.COMPLETE)

        amount_paid = get_amount_paid(order.id)
        balance_due = compute_balance_due(order, amount_paid)
        if balance_due > 0:
            raise OutstandingBalanceError(
                f"Cannot complete order with outstanding balance of {balance_due} cents",
                details={
                    "order_id": order.id,
                    "balance_due_cents": balance_due,
                    "amount_paid_cents": amount_paid,
                },
            )

        sale = completion_service.complete_order(order, actor_user_id=actor_user_id)

        now = utcnow()
        order.sale_id = sale.id
        order.completed_at = now
        order.closed_by_user_id = actor_user_id
        order.status = target.value

        append_audit_event(
            event_type="deposit.completed",
            entity_type="deposit_order",
            entity_id=order.id,
            actor_user_id=actor_user_id,
            deposit_order_id=order.id,
            sale_id=sale.id,
            occurred_at=now,
            payload={"sale_total_cents": sale.total_cents, "amount_paid_cents": amount_paid},
        )

        db.session.commit()
        current_app.logger.info(
            "Deposit order %s completed as sale %s (total=%s)",
            order.id, sale.document_number, sale.total_cents,
        )
        return order

    return run_with_retry(_op)


# =============================================================================
# EDITS
# =============================================================================

_UNSET = object()


def update_order_details(
    order_id: int,
    *,
    notes=_UNSET,
    expected_date=_UNSET,
    actor_user_id: int | None = None,
) -> DepositOrder:
    """
    Edit free-text notes (any status) or the expected pickup date (ACTIVE only).
    """
    def _op():
        begin_serialized()
        order = _get_order(order_id, lock=True)
        changes = {}

        if expected_date is not _UNSET:
            if order.status != DepositStatus.ACTIVE.value:
                raise InvalidStateError(
                    f"Cannot change the expected date of a {order.status} order",
                    details={"order_id": order.id, "status": order.status, "event": "update"},
                )
            try:
                order.expected_date = parse_iso_date(expected_date)
            except ValueError:
                raise ValidationError("expected_date must be YYYY-MM-DD", details={"field": "expected_date"})
            changes["expected_date"] = order.expected_date.isoformat() if order.expected_date else None

        if notes is not _UNSET:
            order.notes = notes
            changes["notes"] = True

        if not changes:
            raise ValidationError("Nothing to update", details={"field": None})

        append_audit_event(
            event_type="deposit.updated",
            entity_type="deposit_order",
            entity_id=order.id,
            actor_user_id=actor_user_id,
            deposit_order_id=order.id,
            payload=changes,
        )
        db.session.commit()
        return order

    return run_with_retry(_op)


def set_item_cost(item_id: int, unit_cost_cents: int, *, actor_user_id: int | None = None) -> DepositOrderItem:
    """Record the unit cost of a line (usually a custom item) before completion."""
    def _op():
        if not _is_int(unit_cost_cents) or unit_cost_cents < 0:
            raise ValidationError("unit_cost_cents must be a non-negative integer", details={"field": "unit_cost_cents"})

        begin_serialized()
        item = db.session.get(DepositOrderItem, item_id)
        if item is None:
            raise NotFoundError(
                f"Deposit order item {item_id} not found",
                details={"entity": "deposit_order_item", "id": item_id},
            )
        order = _get_order(item.deposit_order_id, lock=True)
        if order.status != DepositStatus.ACTIVE.value:
            raise InvalidStateError(
                f"Cannot change item cost on a {order.status} order",
                details={"order_id": order.id, "status": order.status, "event": "set_item_cost"},
            )

        previous = item.unit_cost_cents
        item.unit_cost_cents = unit_cost_cents

        append_audit_event(
            event_type="deposit.item_cost_set",
            entity_type="deposit_order_item",
            entity_id=item.id,
            actor_user_id=actor_user_id,
            deposit_order_id=order.id,
            payload={"previous_cents": previous, "unit_cost_cents": unit_cost_cents},
        )
        db.session.commit()
        return item

    return run_with_retry(_op)


# =============================================================================
# READ ACCESSORS
# =============================================================================

def get_order(order_id: int) -> DepositOrder:
    return _get_order(order_id)


def list_orders(*, status: str | None = None, customer_id: int | None = None) -> list[DepositOrder]:
    q = db.session.query(DepositOrder)
    if status:
        try:
            DepositStatus(status)
        except ValueError:
            raise ValidationError(
                f"Invalid status: {status}. Must be one of {[s.value for s in DepositStatus]}",
                details={"field": "status"},
            )
        q = q.filter(DepositOrder.status == status)
    if customer_id is not None:
        q = q.filter(DepositOrder.customer_id == customer_id)
    return q.order_by(DepositOrder.created_at.desc(), DepositOrder.id.desc()).all()


def available_stock(product_id: int) -> int:
    return get_available(product_id)


def order_summary(order: DepositOrder, *, include_details: bool = False) -> dict:
    """Order row plus derived amounts and child counts."""
    amount_paid = get_amount_paid(order.id)
    data = order.to_dict()
    data.update({
        "amount_paid_cents": amount_paid,
        "balance_due_cents": compute_balance_due(order, amount_paid),
        "item_count": len(order.items),
        "payment_count": len(order.payments),
        "part_exchange_count": len(order.part_exchanges),
        "item_names": ", ".join(item.product_name for item in order.items),
    })
    if include_details:
        data["items"] = [item.to_dict() for item in order.items]
        data["part_exchanges"] = [px.to_dict() for px in order.part_exchanges]
        data["payments"] = [p.to_dict() for p in order.payments]
    return data


def get_deposit_order_stats() -> dict:
    """Counts and money totals per status."""
    paid_by_order = (
        db.session.query(
            DepositPayment.deposit_order_id.label("order_id"),
            func.sum(DepositPayment.amount_cents).label("paid"),
        )
        .group_by(DepositPayment.deposit_order_id)
        .subquery()
    )
    rows = (
        db.session.query(
            DepositOrder.status,
            DepositOrder.total_amount_cents,
            DepositOrder.part_exchange_total_cents,
            func.coalesce(paid_by_order.c.paid, 0).label("paid"),
        )
        .outerjoin(paid_by_order, paid_by_order.c.order_id == DepositOrder.id)
        .all()
    )

    stats = {
        status.value: {"count": 0, "total_value_cents": 0, "total_paid_cents": 0, "balance_due_cents": 0}
        for status in DepositStatus
    }
    for row in rows:
        bucket = stats.setdefault(
            row.status,
            {"count": 0, "total_value_cents": 0, "total_paid_cents": 0, "balance_due_cents": 0},
        )
        paid = int(row.paid or 0)
        bucket["count"] += 1
        bucket["total_value_cents"] += row.total_amount_cents
        bucket["total_paid_cents"] += paid
        if row.status == DepositStatus.ACTIVE.value:
            bucket["balance_due_cents"] += max(row.total_amount_cents - row.part_exchange_total_cents - paid, 0)
    return stats
