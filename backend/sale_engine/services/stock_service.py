# Overview: Stock ledger; the only writer of Product.stock_quantity.

# backend/sale_engine/services/stock_service.py

from __future__ import annotations

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

from ..extensions import db
from ..models import Product, Sale, StockMovement
from ..models.inventory import ENTRY, EXIT, MOVEMENT_TYPES
from ..signals import notify, stock_changed
from ..validation import ValidationError, enforce_rules_stock_movement
from sale_engine.time_utils import utcnow
from . import audit_service
from .concurrency import begin_write, run_with_retry
from .exceptions import (
    ConcurrentModificationError,
    InsufficientForExitError,
    InsufficientStockError,
    NotFoundError,
)
"""
Stock Ledger Invariants (authoritative)

- stock_quantity >= 0 for every product at rest (also a DB check constraint).
- reserve() is ONE conditional write: UPDATE ... WHERE stock_quantity = <observed>.
  A read-then-blind-write pair would let two sales take the last unit.
- A lost race raises ConcurrentModificationError; callers retry from a fresh
  read through concurrency.run_with_retry, bounded by STOCK_RESERVE_ATTEMPTS.
- release() is an unconditional atomic increment.
- release_for_sale() restores a sale at most once: the sale row and earlier
  reversals are checked inside the same write transaction as the increment,
  and stock_movements.sale_id is unique.
- Every reserve/release appends a StockMovement in the same commit as the
  stock write. Movements are never updated or deleted.
"""

__all__ = [
    "MOVEMENT_TYPES",
    "get_stock",
    "reserve",
    "release",
    "release_for_sale",
    "register_stock_movement",
    "has_reversal_for_sale",
    "list_movements",
    "list_low_stock_products",
]


def _require_positive_quantity(quantity) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise ValidationError("quantity must be an integer >= 1")


def _current_stock(product_id: int) -> int | None:
    return db.session.execute(
        select(Product.stock_quantity).where(Product.id == product_id)
    ).scalar_one_or_none()


def _compare_and_set(product_id: int, expected: int, new_value: int) -> bool:
    result = db.session.execute(
        update(Product)
        .where(Product.id == product_id, Product.stock_quantity == expected)
        .values(stock_quantity=new_value, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _append_movement(
    *,
    product_id: int,
    movement_type: str,
    quantity: int,
    previous_stock: int,
    new_stock: int,
    reason: str | None,
    sale_id: int | None = None,
    actor_id: int | None = None,
) -> StockMovement:
    movement = StockMovement(
        product_id=product_id,
        movement_type=movement_type,
        quantity=quantity,
        previous_stock=previous_stock,
        new_stock=new_stock,
        reason=reason,
        sale_id=sale_id,
        actor_id=actor_id,
    )
    db.session.add(movement)
    return movement


def get_stock(product_id: int) -> int:
    stock = _current_stock(product_id)
    if stock is None:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    return stock


def reserve(product_id: int, quantity: int, *, reason: str | None = None, actor_id: int | None = None) -> int:
    """
    Decrement stock by `quantity` if enough is on hand. Returns the new stock.

    Raises:
    - InsufficientStockError: quantity > stock (nothing written)
    - ConcurrentModificationError: stock changed between read and write
    - NotFoundError: product does not exist
    """
    _require_positive_quantity(quantity)

    try:
        begin_write()
        observed = _current_stock(product_id)
        if observed is None:
            db.session.rollback()
            raise NotFoundError("Product not found", details={"product_id": product_id})

        if quantity > observed:
            db.session.rollback()
            raise InsufficientStockError(product_id, quantity, observed)

        new_stock = observed - quantity
        if not _compare_and_set(product_id, observed, new_stock):
            db.session.rollback()
            raise ConcurrentModificationError(
                "Stock changed, please retry",
                details={"product_id": product_id, "observed_stock": observed},
            )

        _append_movement(
            product_id=product_id,
            movement_type=EXIT,
            quantity=quantity,
            previous_stock=observed,
            new_stock=new_stock,
            reason=reason,
            actor_id=actor_id,
        )
        db.session.commit()
    except OperationalError as exc:
        # Lock contention reported by the database is a lost race as well
        db.session.rollback()
        raise ConcurrentModificationError(
            "Stock changed, please retry",
            details={"product_id": product_id},
        ) from exc

    return new_stock


def _increment(
    product_id: int,
    quantity: int,
    *,
    reason: str | None,
    sale_id: int | None,
    actor_id: int | None,
) -> int:
    # Caller owns the transaction
    result = db.session.execute(
        update(Product)
        .where(Product.id == product_id)
        .values(stock_quantity=Product.stock_quantity + quantity, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.session.rollback()
        raise NotFoundError("Product not found", details={"product_id": product_id})

    new_stock = _current_stock(product_id)
    _append_movement(
        product_id=product_id,
        movement_type=ENTRY,
        quantity=quantity,
        previous_stock=new_stock - quantity,
        new_stock=new_stock,
        reason=reason,
        sale_id=sale_id,
        actor_id=actor_id,
    )
    return new_stock


def release(
    product_id: int,
    quantity: int,
    *,
    reason: str | None = None,
    actor_id: int | None = None,
) -> int:
    """
    Increment stock by `quantity` (compensation, replenishment).
    Returns the new stock.
    """
    _require_positive_quantity(quantity)

    try:
        begin_write()
        new_stock = _increment(product_id, quantity, reason=reason, sale_id=None, actor_id=actor_id)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise

    return new_stock


def release_for_sale(
    sale_id: int,
    product_id: int,
    quantity: int,
    *,
    reason: str | None = None,
    actor_id: int | None = None,
) -> tuple[int, bool]:
    """
    Return a deleted sale's quantity to stock, at most once per sale.

    The sale row and any earlier reversal are checked under the same write
    lock as the increment, so concurrent deletions of one sale cannot both
    restore it. Returns (stock, released); released is False when an earlier
    attempt already restored the stock.

    Raises NotFoundError when the sale row is already gone.
    """
    _require_positive_quantity(quantity)

    try:
        begin_write()
        sale_exists = db.session.execute(
            select(Sale.id).where(Sale.id == sale_id)
        ).scalar_one_or_none() is not None
        if not sale_exists:
            db.session.rollback()
            raise NotFoundError("Sale not found", details={"sale_id": sale_id})

        if has_reversal_for_sale(sale_id):
            stock = _current_stock(product_id)
            db.session.rollback()
            if stock is None:
                raise NotFoundError("Product not found", details={"product_id": product_id})
            return stock, False

        new_stock = _increment(product_id, quantity, reason=reason, sale_id=sale_id, actor_id=actor_id)
        db.session.commit()
    except IntegrityError:
        # Unique sale_id on entry movements: another writer restored it first
        db.session.rollback()
        return get_stock(product_id), False
    except SQLAlchemyError:
        db.session.rollback()
        raise

    return new_stock, True


def register_stock_movement(
    product_id: int,
    movement_type: str,
    quantity: int,
    reason: str | None = None,
    actor_id: int | None = None,
) -> int:
    """
    Manual stock entry (replenishment) or exit (shrink, correction).

    Returns the new stock level. An exit larger than the stock on hand raises
    InsufficientForExitError and leaves stock unchanged.
    """
    enforce_rules_stock_movement({"movement_type": movement_type, "quantity": quantity})

    if movement_type == ENTRY:
        new_stock = release(product_id, quantity, reason=reason, actor_id=actor_id)
        previous_stock = new_stock - quantity
    else:
        try:
            new_stock = run_with_retry(
                lambda: reserve(product_id, quantity, reason=reason, actor_id=actor_id)
            )
        except InsufficientStockError as exc:
            raise InsufficientForExitError(
                product_id,
                quantity,
                exc.available,
                message="Exit quantity exceeds current stock",
            ) from exc
        previous_stock = new_stock + quantity

    audit_service.record_safely(
        audit_service.UPDATE,
        "products",
        product_id,
        {"movement_type": movement_type, "quantity": quantity, "reason": reason},
        user_id=actor_id,
        old_values={"stock_quantity": previous_stock},
        new_values={"stock_quantity": new_stock},
    )
    notify(stock_changed, product_id=product_id, stock_quantity=new_stock)
    return new_stock


def has_reversal_for_sale(sale_id: int) -> bool:
    """True if stock for this sale was already returned by an earlier deletion attempt."""
    return db.session.query(
        db.session.query(StockMovement)
        .filter(StockMovement.sale_id == sale_id, StockMovement.movement_type == ENTRY)
        .exists()
    ).scalar()


def list_movements(product_id: int, limit: int = 100) -> list[StockMovement]:
    return (
        db.session.query(StockMovement)
        .filter(StockMovement.product_id == product_id)
        .order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        .limit(limit)
        .all()
    )


def list_low_stock_products() -> list[Product]:
    """Products at or below their advisory minimum_stock."""
    return (
        db.session.query(Product)
        .filter(Product.stock_quantity <= Product.minimum_stock)
        .order_by(Product.stock_quantity.asc(), Product.name.asc())
        .all()
    )
