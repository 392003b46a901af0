# backend/deposit_engine/routes/inventory.py
"""
Inventory routes.

Stock is read from the movement ledger; the only writes here are purchase
receipts and manual adjustments. Reservations are made and released by the
deposit routes, never directly.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..errors import DepositEngineError
from ..services import reservation_service, stock_ledger_service
from ..validation import parse_cents, parse_int
from ..decorators import require_actor


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("/<int:product_id>")
@require_actor
def stock_summary_route(product_id: int):
    """On-hand, reserved, and available units for one product."""
    try:
        return jsonify(stock_ledger_service.get_stock_summary(product_id)), 200
    except DepositEngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to load stock summary")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/<int:product_id>/movements")
@require_actor
def list_movements_route(product_id: int):
    try:
        stock_ledger_service.get_stock_summary(product_id)
        movements = stock_ledger_service.list_movements(product_id=product_id)
        return jsonify({
            "product_id": product_id,
            "movements": [m.to_dict() for m in movements],
        }), 200
    except DepositEngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list stock movements")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/reserved")
@require_actor
def reserved_items_route():
    """Stock currently held by deposit orders, per order and product."""
    try:
        return jsonify({"reserved": reservation_service.list_reserved_items()}), 200
    except Exception:
        current_app.logger.exception("Failed to list reserved items")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/receive")
@require_actor
def receive_stock_route():
    """
    Receive purchased stock.

    Request body: {"product_id": 1, "quantity": 5, "unit_cost_cents": 1200, "note": "..."}
    """
    payload = request.get_json(silent=True) or {}

    try:
        product_id = parse_int(payload.get("product_id"), "product_id", minimum=1)
        movement = stock_ledger_service.receive_stock(
            product_id=product_id,
            quantity=parse_int(payload.get("quantity"), "quantity", minimum=1),
            unit_cost_cents=parse_cents(payload.get("unit_cost_cents"), "unit_cost_cents", required=False),
            note=payload.get("note"),
            actor_user_id=g.actor_user_id,
        )
        return jsonify({
            "movement": movement.to_dict(),
            "summary": stock_ledger_service.get_stock_summary(product_id),
        }), 201
    except DepositEngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to receive stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/adjust")
@require_actor
def adjust_stock_route():
    """
    Manual stock correction.

    Request body: {"product_id": 1, "quantity_delta": -1, "note": "damaged"}
    """
    payload = request.get_json(silent=True) or {}

    try:
        product_id = parse_int(payload.get("product_id"), "product_id", minimum=1)
        movement = stock_ledger_service.adjust_stock(
            product_id=product_id,
            quantity_delta=parse_int(payload.get("quantity_delta"), "quantity_delta"),
            note=payload.get("note"),
            actor_user_id=g.actor_user_id,
        )
        return jsonify({
            "movement": movement.to_dict(),
            "summary": stock_ledger_service.get_stock_summary(product_id),
        }), 201
    except DepositEngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500
