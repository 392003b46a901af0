# Overview: Service-layer operations for the stock ledger; append-only movements and derived quantities.

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..errors import NotFoundError, ValidationError
from ..models import Product, StockMovement
from ..time_utils import utcnow
from .audit_service import append_audit_event
from .concurrency import begin_serialized, lock_for_update, run_with_retry
"""
Stock Ledger Invariants (authoritative)

Inventory model:
- Stock is ledger-derived from StockMovement rows; never stored as a mutable quantity field.
- on_hand = SUM(quantity_delta) over every movement that is not reserve/release.
- outstanding reservations = -SUM(quantity_delta) over reserve/release movements.
- available = on_hand - outstanding reservations.

Append-only:
- record_movement() only inserts. Nothing here updates or deletes a movement.
- The ledger has no cross-entry knowledge of intent: it does not check the
  resulting balance. Callers (reservation_service, completion_service) must.
- Only reservation_service and completion_service write movements for deposit
  orders; receive_stock()/adjust_stock() are the catalog's stock-in entry points.
"""


# =============================================================================
# MOVEMENT TYPES (CONSTANTS)
# =============================================================================

MOVEMENT_PURCHASE = "purchase"
MOVEMENT_SALE = "sale"
MOVEMENT_RESERVE = "reserve"
MOVEMENT_RELEASE = "release"
MOVEMENT_ADJUSTMENT = "adjustment"
MOVEMENT_RETURN = "return"

# Sign each type's quantity_delta must carry: +1 positive, -1 negative, 0 either
MOVEMENT_SIGNS = {
    MOVEMENT_PURCHASE: 1,
    MOVEMENT_RETURN: 1,
    MOVEMENT_RELEASE: 1,
    MOVEMENT_SALE: -1,
    MOVEMENT_RESERVE: -1,
    MOVEMENT_ADJUSTMENT: 0,
}

RESERVATION_TYPES = (MOVEMENT_RESERVE, MOVEMENT_RELEASE)


def _get_product(product_id: int, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise NotFoundError(
            f"Product {product_id} not found",
            details={"entity": "product", "id": product_id},
        )
    return product


def record_movement(
    product_id: int,
    quantity_delta: int,
    movement_type: str,
    *,
    deposit_order_id: int | None = None,
    sale_id: int | None = None,
    unit_cost_cents: int | None = None,
    note: str | None = None,
    actor_user_id: int | None = None,
) -> StockMovement:
    """
    Append one movement to the ledger (no commit).

    Raises:
        NotFoundError: unknown product
        ValidationError: unknown type, zero quantity, or sign inconsistent with type
    """
    if movement_type not in MOVEMENT_SIGNS:
        raise ValidationError(
            f"Invalid movement type: {movement_type}. Must be one of {sorted(MOVEMENT_SIGNS)}",
            details={"field": "movement_type"},
        )
    if isinstance(quantity_delta, bool) or not isinstance(quantity_delta, int) or quantity_delta == 0:
        raise ValidationError("quantity_delta must be a non-zero integer", details={"field": "quantity_delta"})

    sign = MOVEMENT_SIGNS[movement_type]
    if sign and (quantity_delta > 0) != (sign > 0):
        raise ValidationError(
            f"{movement_type} movements must be {'positive' if sign > 0 else 'negative'}",
            details={"field": "quantity_delta", "movement_type": movement_type},
        )

    _get_product(product_id)

    movement = StockMovement(
        product_id=product_id,
        movement_type=movement_type,
        quantity_delta=quantity_delta,
        unit_cost_cents=unit_cost_cents,
        deposit_order_id=deposit_order_id,
        sale_id=sale_id,
        note=note[:255] if note else None,
        actor_user_id=actor_user_id,
        occurred_at=utcnow(),
    )
    db.session.add(movement)
    db.session.flush()
    return movement


# =============================================================================
# DERIVED QUANTITIES
# =============================================================================

def get_on_hand(product_id: int) -> int:
    """Physical stock: every movement except reserve/release."""
    q = db.session.query(
        func.coalesce(func.sum(StockMovement.quantity_delta), 0)
    ).filter(
        StockMovement.product_id == product_id,
        StockMovement.movement_type.notin_(RESERVATION_TYPES),
    )
    return int(q.scalar() or 0)


def get_outstanding_reservations(product_id: int) -> int:
    """Units held by reservations not yet matched by a release."""
    q = db.session.query(
        func.coalesce(func.sum(StockMovement.quantity_delta), 0)
    ).filter(
        StockMovement.product_id == product_id,
        StockMovement.movement_type.in_(RESERVATION_TYPES),
    )
    return -int(q.scalar() or 0)


def get_available(product_id: int) -> int:
    _get_product(product_id)
    return get_on_hand(product_id) - get_outstanding_reservations(product_id)


def get_stock_summary(product_id: int) -> dict:
    product = _get_product(product_id)
    on_hand = get_on_hand(product_id)
    reserved = get_outstanding_reservations(product_id)
    return {
        "product_id": product.id,
        "sku": product.sku,
        "name": product.name,
        "on_hand": on_hand,
        "reserved": reserved,
        "available": on_hand - reserved,
    }


def list_movements(
    *, product_id: int | None = None, deposit_order_id: int | None = None
) -> list[StockMovement]:
    q = db.session.query(StockMovement)
    if product_id is not None:
        q = q.filter(StockMovement.product_id == product_id)
    if deposit_order_id is not None:
        q = q.filter(StockMovement.deposit_order_id == deposit_order_id)
    return q.order_by(StockMovement.id).all()


# =============================================================================
# STOCK-IN / CORRECTIONS
# =============================================================================

def receive_stock(
    *,
    product_id: int,
    quantity: int,
    unit_cost_cents: int | None = None,
    note: str | None = None,
    actor_user_id: int | None = None,
) -> StockMovement:
    """Receive purchased stock (one purchase movement, committed)."""
    def _op():
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError("quantity must be a positive integer", details={"field": "quantity"})
        if unit_cost_cents is not None and unit_cost_cents < 0:
            raise ValidationError("unit_cost_cents cannot be negative", details={"field": "unit_cost_cents"})

        begin_serialized()
        _get_product(product_id, lock=True)

        movement = record_movement(
            product_id,
            quantity,
            MOVEMENT_PURCHASE,
            unit_cost_cents=unit_cost_cents,
            note=note,
            actor_user_id=actor_user_id,
        )
        append_audit_event(
            event_type="stock.received",
            entity_type="stock_movement",
            entity_id=movement.id,
            actor_user_id=actor_user_id,
            note=note,
            payload={"product_id": product_id, "quantity": quantity},
        )
        db.session.commit()
        return movement

    return run_with_retry(_op)


def adjust_stock(
    *,
    product_id: int,
    quantity_delta: int,
    note: str | None = None,
    actor_user_id: int | None = None,
) -> StockMovement:
    """
    Manual correction (shrink, found stock).

    Refuses to make on-hand negative, and refuses to push available below
    zero while reservations hold the stock.
    """
    def _op():
        begin_serialized()
        _get_product(product_id, lock=True)

        on_hand = get_on_hand(product_id)
        reserved = get_outstanding_reservations(product_id)
        if on_hand + quantity_delta < 0:
            raise ValidationError(
                "adjustment would make on-hand negative",
                details={"field": "quantity_delta", "on_hand": on_hand},
            )
        if on_hand + quantity_delta - reserved < 0:
            raise ValidationError(
                "adjustment would take reserved stock",
                details={"field": "quantity_delta", "on_hand": on_hand, "reserved": reserved},
            )

        movement = record_movement(
            product_id,
            quantity_delta,
            MOVEMENT_ADJUSTMENT,
            note=note,
            actor_user_id=actor_user_id,
        )
        append_audit_event(
            event_type="stock.adjusted",
            entity_type="stock_movement",
            entity_id=movement.id,
            actor_user_id=actor_user_id,
            note=note,
            payload={"product_id": product_id, "quantity_delta": quantity_delta},
        )
        db.session.commit()
        return movement

    return run_with_retry(_op)
