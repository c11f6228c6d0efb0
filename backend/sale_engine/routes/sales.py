# Overview: Flask API routes for sales; parses input and maps engine errors to JSON responses.

# backend/sale_engine/routes/sales.py
"""Sales API routes"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_admin
from ..models import Sale
from ..services import sales_service
from ..services.exceptions import (
    ConcurrentModificationError,
    InsufficientStockError,
    NotFoundError,
    PartialFailureError,
)
from ..validation import ModelValidationPolicy, ValidationError, validate_payload


SALE_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"product_id", "quantity", "payment_method", "installments", "sale_date", "notes"},
    required_on_create={"product_id", "quantity", "payment_method"},
)

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def partial_failure_response(e: PartialFailureError):
    body = e.to_dict()
    body["error"] = str(e)
    body["incident"] = True
    return jsonify(body), 500


@sales_bp.post("/")
@require_admin
def create_sale_route():
    """
    Record a sale for the acting administrator.

    Body: product_id, quantity, payment_method, installments?, sale_date?, notes?
    """
    try:
        patch = validate_payload(
            model=Sale,
            payload=request.get_json(silent=True),
            policy=SALE_CREATE_POLICY,
            partial=False,
        )
        outcome = sales_service.create_sale(administrator_id=g.actor_id, **patch)
        return jsonify(outcome.to_dict()), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e), "details": e.details}), 404
    except (InsufficientStockError, ConcurrentModificationError) as e:
        return jsonify({"error": str(e), "details": e.details}), 409
    except PartialFailureError as e:
        return partial_failure_response(e)
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/")
@require_admin
def list_sales_route():
    product_id = request.args.get("product_id", type=int)
    limit = min(request.args.get("limit", 100, type=int), 500)
    sales = sales_service.list_sales(product_id=product_id, limit=limit)
    return jsonify({"sales": [s.to_dict() for s in sales]}), 200


@sales_bp.get("/<int:sale_id>")
@require_admin
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
        return jsonify({"sale": sale.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e), "details": e.details}), 404


@sales_bp.delete("/<int:sale_id>")
@require_admin
def delete_sale_route(sale_id: int):
    """Delete a sale and return its quantity to stock."""
    try:
        outcome = sales_service.delete_sale(sale_id, actor_id=g.actor_id)
        return jsonify(outcome.to_dict()), 200

    except NotFoundError as e:
        return jsonify({"error": str(e), "details": e.details}), 404
    except PartialFailureError as e:
        return partial_failure_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/delete-all")
@require_admin
def delete_all_sales_route():
    """
    Delete every sale and restore stock.

    Body must be {"confirm": true}.
    """
    data = request.get_json(silent=True) or {}
    if data.get("confirm") is not True:
        return jsonify({"error": "confirm must be true"}), 400

    try:
        result = sales_service.delete_all_sales(actor_id=g.actor_id)
    except Exception:
        current_app.logger.exception("Failed to delete all sales")
        return jsonify({"error": "Internal server error"}), 500

    status = 200 if not result["failures"] else 500
    return jsonify(result), status
