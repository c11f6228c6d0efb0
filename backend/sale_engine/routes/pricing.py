# Overview: Flask API routes for price resolution and low-stock listing.

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_admin
from ..services import pricing_service, stock_service
from ..services.exceptions import NotFoundError
from ..validation import ValidationError, coerce_decimal, coerce_datetime

pricing_bp = Blueprint("pricing", __name__, url_prefix="/api/products")


@pricing_bp.get("/<int:product_id>/price")
@require_admin
def resolve_price_route(product_id: int):
    """
    Resolve the best promotional price for a product.

    Query params:
    - original_price (optional): price to discount, defaults to the product price
    - at (optional): ISO-8601 instant, defaults to now
    """
    try:
        original_price = request.args.get("original_price")
        if original_price is not None:
            original_price = coerce_decimal("original_price", original_price)
            if original_price < 0:
                raise ValidationError("original_price must be >= 0")
        at = request.args.get("at")
        if at is not None:
            at = coerce_datetime("at", at)

        resolution = pricing_service.resolve_price(product_id, original_price, at=at)
        return jsonify(resolution.to_dict()), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e), "details": e.details}), 404
    except Exception:
        current_app.logger.exception("Failed to resolve price")
        return jsonify({"error": "Internal server error"}), 500


@pricing_bp.get("/low-stock")
@require_admin
def low_stock_route():
    products = stock_service.list_low_stock_products()
    return jsonify({"products": [p.to_dict() for p in products]}), 200
