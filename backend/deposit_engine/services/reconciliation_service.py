# Overview: Read-only consistency checks over the stock ledger, deposit orders, and sales.

from __future__ import annotations

from sqlalchemy import case, func

from ..extensions import db
from ..models import DepositOrder, DepositOrderItem, Product, Sale, StockMovement
from .stock_ledger_service import RESERVATION_TYPES

"""
Reconciliation

Nothing here writes. Each finding is a plain dict with a "kind" and the ids
and quantities an operator needs to repair the data by hand:

- over_released:          an order released more of a product than it reserved
- stale_reservation:      a closed order still holds stock
- missing_reservation:    an active order's catalog lines hold less than their quantity
- incomplete_completion:  an active order already has a sale, or a completed order has none
- negative_on_hand / negative_available / available_exceeds_on_hand
"""


def _reservation_balances() -> dict[tuple[int, int], int]:
    """(order_id, product_id) -> units still held."""
    rows = (
        db.session.query(
            StockMovement.deposit_order_id,
            StockMovement.product_id,
            func.sum(StockMovement.quantity_delta).label("net"),
        )
        .filter(
            StockMovement.movement_type.in_(RESERVATION_TYPES),
            StockMovement.deposit_order_id.isnot(None),
        )
        .group_by(StockMovement.deposit_order_id, StockMovement.product_id)
        .all()
    )
    return {(r.deposit_order_id, r.product_id): -int(r.net or 0) for r in rows}


def _expected_holds() -> dict[tuple[int, int], int]:
    """(order_id, product_id) -> quantity an active order should hold."""
    rows = (
        db.session.query(
            DepositOrderItem.deposit_order_id,
            DepositOrderItem.product_id,
            func.sum(DepositOrderItem.quantity).label("qty"),
        )
        .join(DepositOrder, DepositOrder.id == DepositOrderItem.deposit_order_id)
        .filter(
            DepositOrder.status == "active",
            DepositOrderItem.is_custom_order == False,  # noqa: E712
            DepositOrderItem.product_id.isnot(None),
        )
        .group_by(DepositOrderItem.deposit_order_id, DepositOrderItem.product_id)
        .all()
    )
    return {(r.deposit_order_id, r.product_id): int(r.qty) for r in rows}


def find_reservation_discrepancies() -> list[dict]:
    statuses = dict(db.session.query(DepositOrder.id, DepositOrder.status).all())
    held = _reservation_balances()
    expected = _expected_holds()

    findings = []
    for (order_id, product_id), quantity in sorted(held.items()):
        status = statuses.get(order_id)
        if quantity < 0:
            findings.append({
                "kind": "over_released",
                "deposit_order_id": order_id,
                "product_id": product_id,
                "status": status,
                "held": quantity,
            })
        elif quantity > 0 and status != "active":
            findings.append({
                "kind": "stale_reservation",
                "deposit_order_id": order_id,
                "product_id": product_id,
                "status": status,
                "held": quantity,
            })

    for (order_id, product_id), quantity in sorted(expected.items()):
        current = held.get((order_id, product_id), 0)
        if 0 <= current < quantity:
            findings.append({
                "kind": "missing_reservation",
                "deposit_order_id": order_id,
                "product_id": product_id,
                "status": "active",
                "held": current,
                "expected": quantity,
            })

    sale_by_order = dict(db.session.query(Sale.deposit_order_id, Sale.id).all())
    for order_id, status in sorted(statuses.items()):
        sale_id = sale_by_order.get(order_id)
        if status == "active" and sale_id is not None:
            findings.append({
                "kind": "incomplete_completion",
                "deposit_order_id": order_id,
                "status": status,
                "sale_id": sale_id,
            })
        elif status == "completed" and sale_id is None:
            findings.append({
                "kind": "incomplete_completion",
                "deposit_order_id": order_id,
                "status": status,
                "sale_id": None,
            })

    return findings


def find_negative_availability() -> list[dict]:
    is_reservation = StockMovement.movement_type.in_(RESERVATION_TYPES)
    rows = (
        db.session.query(
            Product.id,
            Product.sku,
            func.coalesce(func.sum(case((is_reservation, 0), else_=StockMovement.quantity_delta)), 0).label("on_hand"),
            func.coalesce(func.sum(case((is_reservation, StockMovement.quantity_delta), else_=0)), 0).label("held"),
        )
        .outerjoin(StockMovement, StockMovement.product_id == Product.id)
        .group_by(Product.id, Product.sku)
        .order_by(Product.id)
        .all()
    )

    findings = []
    for row in rows:
        on_hand = int(row.on_hand)
        reserved = -int(row.held)
        available = on_hand - reserved
        base = {"product_id": row.id, "sku": row.sku, "on_hand": on_hand, "reserved": reserved, "available": available}
        if on_hand < 0:
            findings.append({"kind": "negative_on_hand", **base})
        if available < 0:
            findings.append({"kind": "negative_available", **base})
        if available > on_hand:
            findings.append({"kind": "available_exceeds_on_hand", **base})
    return findings
