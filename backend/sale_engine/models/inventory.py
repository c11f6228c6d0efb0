from __future__ import annotations

from ..extensions import db
from sale_engine.time_utils import to_utc_z


ENTRY = "entry"
EXIT = "exit"
MOVEMENT_TYPES = (ENTRY, EXIT)


def money(value) -> str | None:
    """Serialize a Numeric column value as a fixed two-decimal string."""
    if value is None:
        return None
    return f"{value:.2f}"


class Product(db.Model):
    """
    Product master data.

    STOCK OWNERSHIP:
    stock_quantity is written ONLY by services.stock_service (reserve/release).
    price and minimum_stock are admin-edited and read here, never mutated by
    the sale workflow.

    minimum_stock is advisory: it drives low-stock listings, never blocks a sale.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock_quantity >= 0", name="ck_products_stock_non_negative"),
        db.CheckConstraint("price >= 0", name="ck_products_price_non_negative"),
        db.CheckConstraint("minimum_stock >= 0", name="ck_products_minimum_stock_non_negative"),
        db.Index("ix_products_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    product_code = db.Column(db.String(64), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    price = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    minimum_stock = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    promotions = db.relationship(
        "Promotion",
        secondary="product_promotions",
        back_populates="products",
        lazy=True,
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} code={self.product_code!r} name={self.name!r} stock={self.stock_quantity}>"

    @property
    def is_low_stock(self) -> bool:
        return self.stock_quantity <= self.minimum_stock

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_code": self.product_code,
            "name": self.name,
            "description": self.description,
            "price": money(self.price),
            "stock_quantity": self.stock_quantity,
            "minimum_stock": self.minimum_stock,
            "is_low_stock": self.is_low_stock,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only stock trail.

    Every reserve (exit) and release (entry) writes one row with the stock
    observed before and after the write. Reversal entries for a deleted sale
    carry a unique sale_id, which is how a retried deletion detects that stock was
    already returned.

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_stock_movements_quantity_positive"),
        db.Index("ix_stock_movements_product_created", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)

    movement_type = db.Column(db.String(16), nullable=False, index=True)  # entry, exit
    quantity = db.Column(db.Integer, nullable=False)

    previous_stock = db.Column(db.Integer, nullable=False)
    new_stock = db.Column(db.Integer, nullable=False)

    reason = db.Column(db.String(255), nullable=True)

    sale_id = db.Column(db.Integer, nullable=True, index=True, unique=True)
    actor_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "movement_type": self.movement_type,
            "quantity": self.quantity,
            "previous_stock": self.previous_stock,
            "new_stock": self.new_stock,
            "reason": self.reason,
            "sale_id": self.sale_id,
            "actor_id": self.actor_id,
            "created_at": to_utc_z(self.created_at),
        }
