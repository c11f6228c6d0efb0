"""Shared helpers for the sale engine tests."""

from sale_engine.extensions import db
from sale_engine.models import AuditLogEntry, Product, StockMovement

ADMIN_TOKEN = "test-token"
ADMIN_ID = 7


def admin_headers(actor_id: int = ADMIN_ID) -> dict:
    """Helper to create admin Authorization headers."""
    return {
        'Authorization': f'Bearer {ADMIN_TOKEN}',
        'X-Administrator-Id': str(actor_id),
    }


def count(model) -> int:
    return db.session.query(model).count()


def audit_entries(action_type: str | None = None) -> list[AuditLogEntry]:
    q = db.session.query(AuditLogEntry)
    if action_type:
        q = q.filter_by(action_type=action_type)
    return q.order_by(AuditLogEntry.id.asc()).all()


def movements_for(product_id: int) -> list[StockMovement]:
    return (
        db.session.query(StockMovement)
        .filter_by(product_id=product_id)
        .order_by(StockMovement.id.asc())
        .all()
    )


def stock_of(product_id: int) -> int:
    db.session.expire_all()
    return db.session.get(Product, product_id).stock_quantity
