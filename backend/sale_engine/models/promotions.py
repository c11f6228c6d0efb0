from __future__ import annotations

from ..extensions import db
from sale_engine.time_utils import to_utc_z
from .inventory import money


PERCENTAGE = "percentage"
FIXED_AMOUNT = "fixed_amount"
DISCOUNT_TYPES = (PERCENTAGE, FIXED_AMOUNT)


product_promotions = db.Table(
    "product_promotions",
    db.Column("product_id", db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), primary_key=True),
    db.Column("promotion_id", db.Integer, db.ForeignKey("promotions.id", ondelete="CASCADE"), primary_key=True),
)


class Promotion(db.Model):
    """
    Product promotions.

    Applies to the products linked through product_promotions.
    Supports percentage and fixed amount discounts.

    is_active is a manual toggle independent of the date window; a promotion
    affects pricing only while is_active AND start_date <= now <= end_date.
    """
    __tablename__ = "promotions"
    __table_args__ = (
        db.CheckConstraint("discount_value > 0", name="ck_promotions_discount_positive"),
        db.CheckConstraint("start_date < end_date", name="ck_promotions_window_ordered"),
        db.Index("ix_promotions_active_window", "is_active", "start_date", "end_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    discount_type = db.Column(db.String(16), nullable=False)  # percentage, fixed_amount
    discount_value = db.Column(db.Numeric(12, 2), nullable=False)  # percent for percentage, currency for fixed_amount

    start_date = db.Column(db.DateTime(timezone=True), nullable=False)
    end_date = db.Column(db.DateTime(timezone=True), nullable=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    products = db.relationship(
        "Product",
        secondary=product_promotions,
        back_populates="promotions",
        lazy=True,
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "discount_type": self.discount_type,
            "discount_value": money(self.discount_value),
            "start_date": to_utc_z(self.start_date),
            "end_date": to_utc_z(self.end_date),
            "is_active": self.is_active,
            "product_ids": sorted(p.id for p in self.products),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
