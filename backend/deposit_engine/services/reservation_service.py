# Overview: Service-layer operations for stock reservations held by deposit orders.

"""
Reservation Manager

WHY: A deposit order holds stock against resale while the customer pays it
off. Holding is a pair of ledger movements, never a mutable counter:

    reserve  (-qty, deposit_order_id)  on create
    release  (+qty, deposit_order_id)  on cancel / void / expire / complete

RULES:
- reserve() checks available >= quantity against the locked product row and
  writes nothing on failure.
- release() is NOT idempotent. Callers release exactly once per reserved
  line; a double release shows up in reconciliation_service as an
  over-released order/product pair.
- Functions here never commit. The deposit_service operation that calls them
  owns the transaction.
"""

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..errors import InsufficientStockError, ValidationError
from ..models import DepositOrder, DepositOrderItem, Product, StockMovement
from .stock_ledger_service import (
    MOVEMENT_RELEASE,
    MOVEMENT_RESERVE,
    RESERVATION_TYPES,
    _get_product,
    get_on_hand,
    get_outstanding_reservations,
    record_movement,
)


def _check_quantity(quantity) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("quantity must be a positive integer", details={"field": "quantity"})


def reserve(
    product_id: int,
    quantity: int,
    order_id: int,
    *,
    actor_user_id: int | None = None,
) -> StockMovement:
    """
    Hold stock for a deposit order.

    Raises:
        InsufficientStockError: available < quantity (nothing written)
        NotFoundError: unknown product
    """
    _check_quantity(quantity)
    product = _get_product(product_id, lock=True)
    _ensure_available(product, quantity)
    return _write_reserve(product_id, quantity, order_id, actor_user_id=actor_user_id)


def release(
    product_id: int,
    quantity: int,
    order_id: int,
    *,
    actor_user_id: int | None = None,
    note: str | None = None,
) -> StockMovement:
    """Return held stock to availability. Call exactly once per reserved line."""
    _check_quantity(quantity)
    return record_movement(
        product_id,
        quantity,
        MOVEMENT_RELEASE,
        deposit_order_id=order_id,
        note=note or f"Deposit Order #{order_id} released",
        actor_user_id=actor_user_id,
    )


def _write_reserve(product_id: int, quantity: int, order_id: int, *, actor_user_id: int | None) -> StockMovement:
    """The reserve movement itself. Availability must already be checked under lock."""
    return record_movement(
        product_id,
        -quantity,
        MOVEMENT_RESERVE,
        deposit_order_id=order_id,
        note=f"Deposit Order #{order_id}",
        actor_user_id=actor_user_id,
    )


def _ensure_available(product: Product, quantity: int) -> None:
    available = get_on_hand(product.id) - get_outstanding_reservations(product.id)
    if available < quantity:
        raise InsufficientStockError(
            f"Insufficient stock for {product.name} (need {quantity}, have {available} available)",
            details={
                "product_id": product.id,
                "requested": quantity,
                "available": available,
            },
        )


def reserve_items(
    order: DepositOrder,
    items: list[DepositOrderItem],
    *,
    actor_user_id: int | None = None,
) -> list[StockMovement]:
    """
    Reserve every catalog line of an order.

    Two phases so a shortfall on any product leaves no reservation behind:
      Phase 1: lock products in id order, check aggregated demand per product.
      Phase 2: one reserve movement per line.
    Custom lines have no catalog product and are skipped.
    """
    demand: dict[int, int] = {}
    for item in items:
        if item.holds_reservation:
            demand[item.product_id] = demand.get(item.product_id, 0) + item.quantity

    for product_id in sorted(demand):
        product = _get_product(product_id, lock=True)
        _ensure_available(product, demand[product_id])

    return [
        _write_reserve(item.product_id, item.quantity, order.id, actor_user_id=actor_user_id)
        for item in items
        if item.holds_reservation
    ]


def release_for_order(
    order: DepositOrder,
    items: list[DepositOrderItem],
    *,
    actor_user_id: int | None = None,
    note: str | None = None,
) -> list[StockMovement]:
    """One release per catalog line of the order."""
    return [
        release(
            item.product_id,
            item.quantity,
            order.id,
            actor_user_id=actor_user_id,
            note=note,
        )
        for item in items
        if item.holds_reservation
    ]


def get_order_reserved_quantity(order_id: int, product_id: int) -> int:
    """Units of product still held by this order (reserve minus release)."""
    q = db.session.query(
        func.coalesce(func.sum(StockMovement.quantity_delta), 0)
    ).filter(
        StockMovement.deposit_order_id == order_id,
        StockMovement.product_id == product_id,
        StockMovement.movement_type.in_(RESERVATION_TYPES),
    )
    return -int(q.scalar() or 0)


def list_reserved_items() -> list[dict]:
    """
    Outstanding reservations grouped by order and product.

    Only pairs still holding stock are returned (dashboard view).
    """
    held = func.sum(StockMovement.quantity_delta)
    rows = (
        db.session.query(
            StockMovement.deposit_order_id,
            StockMovement.product_id,
            held.label("net"),
        )
        .filter(
            StockMovement.movement_type.in_(RESERVATION_TYPES),
            StockMovement.deposit_order_id.isnot(None),
        )
        .group_by(StockMovement.deposit_order_id, StockMovement.product_id)
        .having(held < 0)
        .order_by(StockMovement.deposit_order_id, StockMovement.product_id)
        .all()
    )

    result = []
    for row in rows:
        order = db.session.get(DepositOrder, row.deposit_order_id)
        product = db.session.get(Product, row.product_id)
        result.append({
            "deposit_order_id": row.deposit_order_id,
            "customer_name": order.customer_name if order else None,
            "order_status": order.status if order else None,
            "expected_date": order.expected_date.isoformat() if order and order.expected_date else None,
            "product_id": row.product_id,
            "sku": product.sku if product else None,
            "product_name": product.name if product else None,
            "reserved_quantity": -int(row.net),
        })
    return result
