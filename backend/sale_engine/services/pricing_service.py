# Overview: Promotional price resolution for a single product.

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Product, Promotion, product_promotions
from ..models.inventory import money
from ..models.promotions import PERCENTAGE, FIXED_AMOUNT
from sale_engine.time_utils import utcnow
from .exceptions import NotFoundError

CENT = Decimal("0.01")


@dataclass(frozen=True)
class AppliedPromotion:
    """Snapshot of the promotion that produced a price."""
    id: int
    name: str
    discount_type: str
    discount_value: Decimal

    @classmethod
    def from_model(cls, promotion: Promotion) -> "AppliedPromotion":
        return cls(
            id=promotion.id,
            name=promotion.name,
            discount_type=promotion.discount_type,
            discount_value=Decimal(promotion.discount_value),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "discount_type": self.discount_type,
            "discount_value": money(self.discount_value),
        }


@dataclass(frozen=True)
class PriceResolution:
    original_price: Decimal
    resolved_price: Decimal
    discount_amount: Decimal
    has_promotion: bool
    applied_promotion: AppliedPromotion | None = None

    @classmethod
    def undiscounted(cls, original_price: Decimal) -> "PriceResolution":
        return cls(
            original_price=original_price,
            resolved_price=original_price,
            discount_amount=Decimal("0.00"),
            has_promotion=False,
        )

    def to_dict(self) -> dict:
        return {
            "original_price": money(self.original_price),
            "resolved_price": money(self.resolved_price),
            "discount_amount": money(self.discount_amount),
            "has_promotion": self.has_promotion,
            "applied_promotion": self.applied_promotion.to_dict() if self.applied_promotion else None,
        }


def _to_money(value) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def get_active_promotions_for_product(product_id: int, at: datetime | None = None) -> list[Promotion]:
    """
    Promotions linked to the product that are effectively active at `at`.

    Window bounds are inclusive. Ordered by start_date, then id, so the
    "first seen" promotion is stable across calls.
    """
    at = at or utcnow()
    return (
        db.session.query(Promotion)
        .join(product_promotions, product_promotions.c.promotion_id == Promotion.id)
        .filter(
            product_promotions.c.product_id == product_id,
            Promotion.is_active.is_(True),
            Promotion.start_date <= at,
            Promotion.end_date >= at,
        )
        .order_by(Promotion.start_date.asc(), Promotion.id.asc())
        .all()
    )


def calculate_promotional_price(original_price: Decimal, discount_type: str, discount_value: Decimal) -> Decimal:
    """
    percentage   -> original * (1 - value / 100)
    fixed_amount -> max(0, original - value)
    Unknown types leave the price unchanged.
    """
    original_price = Decimal(original_price)
    discount_value = Decimal(discount_value)
    if discount_type == PERCENTAGE:
        return _to_money(original_price * (Decimal(100) - discount_value) / Decimal(100))
    if discount_type == FIXED_AMOUNT:
        return _to_money(max(Decimal(0), original_price - discount_value))
    return _to_money(original_price)


def resolve_price(product_id: int, original_price: Decimal | None = None, at: datetime | None = None) -> PriceResolution:
    """
    Best (lowest) unit price for a product among its effectively active promotions.

    original_price defaults to the product's current price. A promotion lookup
    failure fails closed: the undiscounted price is returned and nothing is cached.
    """
    if original_price is None:
        product = db.session.get(Product, product_id)
        if product is None:
            raise NotFoundError("Product not found", details={"product_id": product_id})
        original_price = product.price
    original_price = _to_money(original_price)

    try:
        promotions = get_active_promotions_for_product(product_id, at)
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.warning(
            "Promotion lookup failed for product %s; charging original price", product_id, exc_info=True
        )
        return PriceResolution.undiscounted(original_price)

    best_price = original_price
    best_promotion: Promotion | None = None
    for promotion in promotions:
        candidate = calculate_promotional_price(original_price, promotion.discount_type, promotion.discount_value)
        # Strictly lower only: ties keep the first-seen promotion
        if candidate < best_price:
            best_price = candidate
            best_promotion = promotion

    if best_promotion is None:
        return PriceResolution.undiscounted(original_price)

    return PriceResolution(
        original_price=original_price,
        resolved_price=best_price,
        discount_amount=original_price - best_price,
        has_promotion=True,
        applied_promotion=AppliedPromotion.from_model(best_promotion),
    )
