# Overview: Request decorators for API routes.

from functools import wraps
import hmac

from flask import current_app, g, jsonify, request


def default_authorizer(req) -> int | None:
    """
    Resolve the acting administrator from a shared admin token.

    Expects `Authorization: Bearer <ADMIN_API_TOKEN>` and an
    `X-Administrator-Id` header. Returns the administrator id or None.
    """
    expected = current_app.config.get("ADMIN_API_TOKEN")
    if not expected:
        return None

    auth_header = req.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    token = auth_header.split(" ", 1)[1]
    if not hmac.compare_digest(token.encode(), expected.encode()):
        return None

    try:
        actor_id = int(req.headers.get("X-Administrator-Id", ""))
    except ValueError:
        return None
    return actor_id if actor_id >= 1 else None


def require_admin(f):
    """
    Require an authorized administrator.

    Sets g.actor_id for the route. The check itself is pluggable through
    ADMIN_AUTHORIZER(request) -> actor_id | None.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        authorizer = current_app.config.get("ADMIN_AUTHORIZER") or default_authorizer
        actor_id = authorizer(request)
        if actor_id is None:
            return jsonify({"error": "Authentication required"}), 401

        g.actor_id = actor_id
        return f(*args, **kwargs)

    return decorated_function
