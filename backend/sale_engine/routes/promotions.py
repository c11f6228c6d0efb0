from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_admin
from ..services import promotions_service
from ..services.exceptions import NotFoundError
from ..validation import ValidationError

promotions_bp = Blueprint("promotions", __name__, url_prefix="/api/promotions")


@promotions_bp.route("", methods=["GET"])
@require_admin
def list_promotions():
    active_only = request.args.get("active_only", "false").lower() == "true"
    product_id = request.args.get("product_id", type=int)
    result = promotions_service.list_promotions(active_only, product_id)
    return jsonify({"promotions": result})


@promotions_bp.route("", methods=["POST"])
@require_admin
def create_promotion():
    try:
        result = promotions_service.create_promotion(request.get_json(silent=True) or {}, actor_id=g.actor_id)
        return jsonify(result), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e), "details": e.details}), 404
    except Exception:
        current_app.logger.exception("Failed to create promotion")
        return jsonify({"error": "Internal server error"}), 500


@promotions_bp.route("/<int:promo_id>", methods=["PATCH"])
@require_admin
def update_promotion(promo_id: int):
    try:
        result = promotions_service.update_promotion(promo_id, request.get_json(silent=True) or {}, actor_id=g.actor_id)
        return jsonify(result)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e), "details": e.details}), 404
    except Exception:
        current_app.logger.exception("Failed to update promotion")
        return jsonify({"error": "Internal server error"}), 500


@promotions_bp.route("/<int:promo_id>", methods=["DELETE"])
@require_admin
def delete_promotion(promo_id: int):
    try:
        promotions_service.delete_promotion(promo_id, actor_id=g.actor_id)
        return "", 204
    except NotFoundError as e:
        return jsonify({"error": str(e), "details": e.details}), 404
    except Exception:
        current_app.logger.exception("Failed to delete promotion")
        return jsonify({"error": "Internal server error"}), 500
