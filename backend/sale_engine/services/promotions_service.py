# Overview: Promotion administration; validated create/update/delete and product links.

from __future__ import annotations

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Product, Promotion
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    enforce_rules_promotion,
    validate_payload,
)
from . import audit_service
from .concurrency import begin_write
from .exceptions import NotFoundError

PROMOTION_POLICY = ModelValidationPolicy(
    writable_fields={
        "name",
        "description",
        "discount_type",
        "discount_value",
        "start_date",
        "end_date",
        "is_active",
    },
    required_on_create={"name", "discount_type", "discount_value", "start_date", "end_date"},
)

_RULE_FIELDS = ("discount_type", "discount_value", "start_date", "end_date")


def _get_promotion(promotion_id: int) -> Promotion:
    promo = db.session.get(Promotion, promotion_id)
    if promo is None:
        raise NotFoundError("Promotion not found", details={"promotion_id": promotion_id})
    return promo


def _resolve_products(product_ids) -> list[Product]:
    if not isinstance(product_ids, list):
        raise ValidationError("product_ids must be a list of integers")
    ids = []
    for pid in product_ids:
        if isinstance(pid, bool) or not isinstance(pid, int) or pid < 1:
            raise ValidationError("product_ids must be a list of integers")
        if pid not in ids:
            ids.append(pid)
    if not ids:
        return []

    products = db.session.query(Product).filter(Product.id.in_(ids)).all()
    missing = sorted(set(ids) - {p.id for p in products})
    if missing:
        raise NotFoundError("Product not found", details={"product_ids": missing})
    return products


def _commit() -> None:
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise


def list_promotions(active_only: bool = False, product_id: int | None = None) -> list[dict]:
    q = db.session.query(Promotion)
    if active_only:
        q = q.filter(Promotion.is_active.is_(True))
    if product_id is not None:
        q = q.filter(Promotion.products.any(Product.id == product_id))
    return [p.to_dict() for p in q.order_by(Promotion.start_date.desc(), Promotion.id.desc()).all()]


def get_promotion(promotion_id: int) -> dict:
    return _get_promotion(promotion_id).to_dict()


def create_promotion(data: dict, *, actor_id: int | None = None) -> dict:
    """
    Create a promotion. `product_ids` (optional) links it to products.
    The remaining keys go through PROMOTION_POLICY.
    """
    data = dict(data or {})
    product_ids = data.pop("product_ids", [])
    patch = validate_payload(model=Promotion, payload=data, policy=PROMOTION_POLICY, partial=False)
    enforce_rules_promotion(patch)
    products = _resolve_products(product_ids)

    begin_write()
    promo = Promotion(**patch)
    promo.products = products
    db.session.add(promo)
    _commit()

    result = promo.to_dict()
    audit_service.record_safely(
        audit_service.CREATE, "promotions", promo.id, {"name": promo.name},
        user_id=actor_id, new_values=result,
    )
    return result


def update_promotion(promotion_id: int, data: dict, *, actor_id: int | None = None) -> dict:
    """
    Partial update. Business rules are checked on the merged result, so a
    PATCH that only moves end_date still has to stay after start_date.
    Activation toggles use the same path with {"is_active": bool}.
    """
    data = dict(data or {})
    product_ids = data.pop("product_ids", None)
    patch = validate_payload(model=Promotion, payload=data, policy=PROMOTION_POLICY, partial=True)

    promo = _get_promotion(promotion_id)
    before = promo.to_dict()

    merged = {key: patch.get(key, getattr(promo, key)) for key in _RULE_FIELDS}
    enforce_rules_promotion(merged)

    products = _resolve_products(product_ids) if product_ids is not None else None

    begin_write()
    for key, value in patch.items():
        setattr(promo, key, value)
    if products is not None:
        promo.products = products
    _commit()

    result = promo.to_dict()
    audit_service.record_safely(
        audit_service.UPDATE, "promotions", promo.id, {"fields": sorted(patch) + (["product_ids"] if products is not None else [])},
        user_id=actor_id, old_values=before, new_values=result,
    )
    return result


def delete_promotion(promotion_id: int, *, actor_id: int | None = None) -> None:
    """Sales keep their promotion snapshot; only the link rows cascade."""
    promo = _get_promotion(promotion_id)
    before = promo.to_dict()

    begin_write()
    db.session.delete(promo)
    _commit()

    audit_service.record_safely(
        audit_service.DELETE, "promotions", promotion_id, {"name": before["name"]},
        user_id=actor_id, old_values=before,
    )
