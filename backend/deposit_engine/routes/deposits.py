# Overview: Flask API routes for deposit orders; parses input and returns JSON responses.

"""
Deposit Order API Routes

WHY: Let the counter terminal take deposits, record instalments, and close
orders over REST. Every route is thin: parse, call one service operation,
serialize.

ERRORS:
- DepositEngineError subclasses map to their http_status with
  {"error", "code", "details"}; details carry the current balance/stock so
  the terminal can re-render without another request.
- Anything else is logged and returned as 500.

Actor identity comes from the X-User-Id header (see require_actor).
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import DepositEngineError, ValidationError
from ..services import deposit_service, payment_service
from ..validation import parse_cents, parse_create_deposit_payload, parse_int
from ..decorators import require_actor


deposits_bp = Blueprint("deposits", __name__, url_prefix="/api/deposits")


def _error(e: DepositEngineError):
    return jsonify(e.to_dict()), e.http_status


# =============================================================================
# ORDERS
# =============================================================================

@deposits_bp.post("/")
@require_actor
def create_deposit_route():
    """
    Create a deposit order, reserving its catalog items.

    Request body:
    {
        "customer_id": 7,                       (optional)
        "customer_name": "Jane Smith",          (required with customer_id)
        "expected_date": "2026-11-30",          (optional)
        "notes": "...",                         (optional)
        "items": [
            {"product_id": 1, "quantity": 1, "unit_price_cents": 50000},
            {"product_name": "Engraved band", "quantity": 1,
             "unit_price_cents": 30000, "is_custom_order": true}
        ],
        "part_exchanges": [
            {"product_name": "Old ring", "allowance_cents": 5000}
        ],
        "initial_payment": {"amount_cents": 10000, "payment_method": "cash"}
    }

    Returns:
        201: Order created (with items, part exchanges, payments)
        400: Invalid input
        404: Unknown product
        409: Insufficient stock / overpayment
    """
    try:
        kwargs = parse_create_deposit_payload(request.get_json(silent=True))
        order = deposit_service.create_deposit_order(staff_user_id=g.actor_user_id, **kwargs)
        return jsonify(deposit_service.order_summary(order, include_details=True)), 201

    except DepositEngineError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to create deposit order")
        return jsonify({"error": "Internal server error"}), 500


@deposits_bp.get("/")
@require_actor
def list_deposits_route():
    """
    List deposit orders, newest first.

    Query params:
    - status: active|completed|cancelled|voided|expired
    - customer_id
    """
    try:
        customer_id = parse_int(request.args.get("customer_id"), "customer_id", required=False)
        orders = deposit_service.list_orders(
            status=request.args.get("status") or None,
            customer_id=customer_id,
        )
        return jsonify({"orders": [deposit_service.order_summary(o) for o in orders]}), 200

    except DepositEngineError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to list deposit orders")
        return jsonify({"error": "Internal server error"}), 500


@deposits_bp.get("/stats")
@require_actor
def deposit_stats_route():
    """Counts and money totals per status."""
    try:
        return jsonify(deposit_service.get_deposit_order_stats()), 200
    except Exception:
        current_app.logger.exception("Failed to load deposit stats")
        return jsonify({"error": "Internal server error"}), 500


@deposits_bp.get("/<int:order_id>")
@require_actor
def get_deposit_route(order_id: int):
    try:
        order = deposit_service.get_order(order_id)
        return jsonify(deposit_service.order_summary(order, include_details=True)), 200

    except DepositEngineError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to load deposit order")
        return jsonify({"error": "Internal server error"}), 500


@deposits_bp.patch("/<int:order_id>")
@require_actor
def update_deposit_route(order_id: int):
    """
    Edit notes (any status) or expected_date (active only).

    Request body: {"notes": "...", "expected_date": "2026-12-01"}
    """
    try:
        data = request.get_json(silent=True) or {}
        changes = {k: data[k] for k in ("notes", "expected_date") if k in data}
        order = deposit_service.update_order_details(order_id, actor_user_id=g.actor_user_id, **changes)
        return jsonify(deposit_service.order_summary(order)), 200

    except DepositEngineError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to update deposit order")
        return jsonify({"error": "Internal server error"}), 500


@deposits_bp.patch("/items/<int:item_id>/cost")
@require_actor
def set_item_cost_route(item_id: int):
    """Request body: {"unit_cost_cents": 12000}"""
    try:
        data = request.get_json(silent=True) or {}
        cost = parse_cents(data.get("unit_cost_cents"), "unit_cost_cents")
        item = deposit_service.set_item_cost(item_id, cost, actor_user_id=g.actor_user_id)
        return jsonify(item.to_dict()), 200

    except DepositEngineError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to set item cost")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# PAYMENTS
# =============================================================================

@deposits_bp.post("/<int:order_id>/payments")
@require_actor
def add_deposit_payment_route(order_id: int):
    """
    Record a payment against an active order.

    Request body:
    {
        "amount_cents": 10000,
        "payment_method": "card",
        "reference": "AUTH-12345",  (optional)
        "notes": "..."              (optional)
    }

    Returns:
        201: Payment recorded, with updated summary
        400: Invalid input
        409: Overpayment / order not active (details carry balance_due_cents)
    """
    try:
        data = request.get_json(silent=True) or {}
        amount_cents = parse_int(data.get("amount_cents"), "amount_cents")
        payment_method = data.get("payment_method")
        if not payment_method:
            raise ValidationError("payment_method is required", details={"field": "payment_method"})

        payment = payment_service.record_payment(
            order_id,
            amount_cents,
            payment_method,
            reference=data.get("reference"),
            notes=data.get("notes"),
            recorded_by_user_id=g.actor_user_id,
        )
        summary = payment_service.get_payment_summary(order_id)

        return jsonify({
            "payment": payment.to_dict(),
            "summary": summary,
        }), 201

    except DepositEngineError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to record deposit payment")
        return jsonify({"error": "Internal server error"}), 500


@deposits_bp.get("/<int:order_id>/payments")
@require_actor
def list_deposit_payments_route(order_id: int):
    try:
        payments = payment_service.list_payments(order_id)
        return jsonify({
            "deposit_order_id": order_id,
            "payments": [p.to_dict() for p in payments],
            "summary": payment_service.get_payment_summary(order_id),
        }), 200

    except DepositEngineError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to load deposit payments")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# TRANSITIONS
# =============================================================================

@deposits_bp.post("/<int:order_id>/cancel")
@require_actor
def cancel_deposit_route(order_id: int):
    """Request body: {"reason": "..."} (optional)"""
    try:
        data = request.get_json(silent=True) or {}
        order = deposit_service.cancel_deposit_order(order_id, data.get("reason"), actor_user_id=g.actor_user_id)
        return jsonify(deposit_service.order_summary(order)), 200

    except DepositEngineError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to cancel deposit order")
        return jsonify({"error": "Internal server error"}), 500


@deposits_bp.post("/<int:order_id>/void")
@require_actor
def void_deposit_route(order_id: int):
    """Request body: {"reason": "..."} (optional)"""
    try:
        data = request.get_json(silent=True) or {}
        order = deposit_service.void_deposit_order(order_id, data.get("reason"), actor_user_id=g.actor_user_id)
        return jsonify(deposit_service.order_summary(order)), 200

    except DepositEngineError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to void deposit order")
        return jsonify({"error": "Internal server error"}), 500


@deposits_bp.post("/<int:order_id>/expire")
@require_actor
def expire_deposit_route(order_id: int):
    try:
        data = request.get_json(silent=True) or {}
        order = deposit_service.expire_deposit_order(order_id, actor_user_id=g.actor_user_id, reason=data.get("reason"))
        return jsonify(deposit_service.order_summary(order)), 200

    except DepositEngineError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to expire deposit order")
        return jsonify({"error": "Internal server error"}), 500


@deposits_bp.post("/<int:order_id>/complete")
@require_actor
def complete_deposit_route(order_id: int):
    """
    Convert a fully paid order into a sale.

    Returns:
        200: {"order": ..., "sale": ...}
        409: Outstanding balance / not active
        422: Consigned product missing supplier or cost
    """
    try:
        from ..services.completion_service import get_sale

        order = deposit_service.complete_deposit_order(order_id, actor_user_id=g.actor_user_id)
        sale = get_sale(order.sale_id)
        sale_data = sale.to_dict()
        sale_data["items"] = [item.to_dict() for item in sale.items]
        sale_data["consignment_settlements"] = [s.to_dict() for s in sale.consignment_settlements]

        return jsonify({
            "order": deposit_service.order_summary(order),
            "sale": sale_data,
        }), 200

    except DepositEngineError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to complete deposit order")
        return jsonify({"error": "Internal server error"}), 500
