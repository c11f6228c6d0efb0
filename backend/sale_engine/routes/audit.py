# Overview: Flask API routes for the audit log; filtered listing and confirmed purge.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_admin
from ..services import audit_service
from ..services.exceptions import BadConfirmationError
from ..validation import ValidationError, coerce_datetime

audit_bp = Blueprint("audit", __name__, url_prefix="/api/audit")


@audit_bp.get("/")
@require_admin
def list_audit_route():
    """
    Query params: search, user_id, action_type, table_name, date_from, date_to,
    page, per_page (max 200).
    """
    try:
        date_from = request.args.get("date_from")
        date_to = request.args.get("date_to")
        entries, total = audit_service.list_entries(
            search=request.args.get("search") or None,
            user_id=request.args.get("user_id", type=int),
            action_type=request.args.get("action_type") or None,
            table_name=request.args.get("table_name") or None,
            date_from=coerce_datetime("date_from", date_from) if date_from else None,
            date_to=coerce_datetime("date_to", date_to) if date_to else None,
            page=request.args.get("page", 1, type=int),
            per_page=min(request.args.get("per_page", audit_service.DEFAULT_PAGE_SIZE, type=int), 200),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({
        "entries": [entry.to_dict() for entry in entries],
        "total": total,
    }), 200


@audit_bp.post("/purge")
@require_admin
def purge_audit_route():
    """
    Delete all audit entries.

    Body: {"confirmation": "<AUDIT_PURGE_CONFIRMATION>"}
    """
    data = request.get_json(silent=True) or {}
    try:
        deleted = audit_service.purge_all(data.get("confirmation"), user_id=g.actor_id)
        return jsonify({"deleted": deleted}), 200
    except BadConfirmationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to purge audit log")
        return jsonify({"error": "Internal server error"}), 500
