# Overview: Flask API routes for manual stock movements.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_admin
from ..models import StockMovement
from ..services import stock_service
from ..services.exceptions import (
    ConcurrentModificationError,
    InsufficientStockError,
    NotFoundError,
)
from ..validation import ModelValidationPolicy, ValidationError, validate_payload


MOVEMENT_POLICY = ModelValidationPolicy(
    writable_fields={"movement_type", "quantity", "reason"},
    required_on_create={"movement_type", "quantity"},
)

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.post("/<int:product_id>/movements")
@require_admin
def register_movement_route(product_id: int):
    """
    Register a stock entry (replenishment) or exit.

    Body: movement_type ("entry" | "exit"), quantity, reason?
    """
    try:
        patch = validate_payload(
            model=StockMovement,
            payload=request.get_json(silent=True),
            policy=MOVEMENT_POLICY,
            partial=False,
        )
        new_stock = stock_service.register_stock_movement(
            product_id,
            patch["movement_type"],
            patch["quantity"],
            reason=patch.get("reason"),
            actor_id=g.actor_id,
        )
        return jsonify({"product_id": product_id, "stock_quantity": new_stock}), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e), "details": e.details}), 404
    except (InsufficientStockError, ConcurrentModificationError) as e:
        return jsonify({"error": str(e), "details": e.details}), 409
    except Exception:
        current_app.logger.exception("Failed to register stock movement")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/<int:product_id>/movements")
@require_admin
def list_movements_route(product_id: int):
    try:
        stock = stock_service.get_stock(product_id)
    except NotFoundError as e:
        return jsonify({"error": str(e), "details": e.details}), 404

    limit = min(request.args.get("limit", 100, type=int), 500)
    movements = stock_service.list_movements(product_id, limit=limit)
    return jsonify({
        "product_id": product_id,
        "stock_quantity": stock,
        "movements": [m.to_dict() for m in movements],
    }), 200
