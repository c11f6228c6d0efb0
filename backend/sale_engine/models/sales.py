from __future__ import annotations

from ..extensions import db
from sale_engine.time_utils import to_utc_z
from .inventory import money


CASH = "cash"
DEBIT_CARD = "debit_card"
CREDIT_CARD = "credit_card"
PIX = "pix"
OTHER = "other"
PAYMENT_METHODS = (CASH, DEBIT_CARD, CREDIT_CARD, PIX, OTHER)


class Sale(db.Model):
    """
    Sale record: the permanent trace of one stock-decrementing event.

    IMMUTABLE: never updated after insert; only deleted (which returns the
    stock through the ledger).

    PROMOTION SNAPSHOT:
    promotion_id is deliberately not a foreign key. The promotion may be
    deactivated or deleted later; name/type/value are copied at creation so
    the sale stays interpretable on its own.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_sales_quantity_positive"),
        db.CheckConstraint("unit_price >= 0", name="ck_sales_unit_price_non_negative"),
        db.Index("ix_sales_product_date", "product_id", "sale_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)

    # Actor (authenticated administrator); auth lives outside the engine
    administrator_id = db.Column(db.Integer, nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)

    # Pricing as charged (all Numeric(12, 2))
    original_unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_price = db.Column(db.Numeric(12, 2), nullable=False)

    # Promotion snapshot (set only when a promotion produced unit_price)
    promotion_id = db.Column(db.Integer, nullable=True, index=True)
    promotion_name = db.Column(db.String(255), nullable=True)
    promotion_discount_type = db.Column(db.String(16), nullable=True)
    promotion_discount_value = db.Column(db.Numeric(12, 2), nullable=True)

    # Payment
    payment_method = db.Column(db.String(32), nullable=False, index=True)  # cash, debit_card, credit_card, pix, other
    installments = db.Column(db.Integer, nullable=True)

    notes = db.Column(db.Text, nullable=True)

    sale_date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("sales", lazy=True, passive_deletes=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "administrator_id": self.administrator_id,
            "quantity": self.quantity,
            "original_unit_price": money(self.original_unit_price),
            "unit_price": money(self.unit_price),
            "discount_amount": money(self.discount_amount),
            "total_price": money(self.total_price),
            "promotion_id": self.promotion_id,
            "promotion_name": self.promotion_name,
            "promotion_discount_type": self.promotion_discount_type,
            "promotion_discount_value": money(self.promotion_discount_value),
            "payment_method": self.payment_method,
            "installments": self.installments,
            "notes": self.notes,
            "sale_date": to_utc_z(self.sale_date),
            "created_at": to_utc_z(self.created_at),
        }
