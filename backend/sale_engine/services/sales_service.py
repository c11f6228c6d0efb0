"""
Sale Transaction Coordinator

WHY: The sale workflow touches three records (product stock, sale row, audit
entry) that are committed one step at a time. There is no transaction spanning
the steps, so this module owns the ordering and the compensation when a later
step fails after an earlier one already took effect.

CREATE: Validating -> PriceResolving -> StockReserving -> SalePersisting -> AuditLogging -> Done
DELETE: Loading -> StockReleasing -> SaleRemoving -> AuditLogging -> Done

Compensation rules:
- Sale insert fails after stock was reserved: release the same quantity, then
  raise PartialFailureError (critical only if the release also failed).
- Sale removal fails after stock was released: raise a critical
  PartialFailureError. Never re-reserve automatically; that could race with
  sales made in the meantime. A retried deletion sees the reversal movement
  and does not release stock a second time.
- Audit failures never unwind a committed sale or stock change.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from flask import current_app
from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Product, Sale
from ..signals import notify, sale_created, sale_deleted, stock_changed
from ..validation import coerce_datetime, enforce_rules_sale
from sale_engine.time_utils import utcnow
from . import audit_service, pricing_service, stock_service
from .concurrency import begin_write, run_with_retry
from .exceptions import (
    ConcurrentModificationError,
    InsufficientStockError,
    NotFoundError,
    PartialFailureError,
)
from .pricing_service import PriceResolution


class SaleStep(str, Enum):
    VALIDATING = "validating"
    PRICE_RESOLVING = "price_resolving"
    STOCK_RESERVING = "stock_reserving"
    SALE_PERSISTING = "sale_persisting"
    LOADING = "loading"
    STOCK_RELEASING = "stock_releasing"
    SALE_REMOVING = "sale_removing"
    AUDIT_LOGGING = "audit_logging"
    DONE = "done"


@dataclass
class SaleOutcome:
    sale: Sale
    pricing: PriceResolution
    stock_after: int
    audit_recorded: bool
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "sale": self.sale.to_dict(),
            "pricing": self.pricing.to_dict(),
            "stock_quantity": self.stock_after,
            "audit_recorded": self.audit_recorded,
            "warnings": self.warnings,
        }


@dataclass
class DeleteOutcome:
    sale_id: int
    snapshot: dict
    stock_restored: bool
    stock_after: int | None
    audit_recorded: bool
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "sale_id": self.sale_id,
            "snapshot": self.snapshot,
            "stock_restored": self.stock_restored,
            "stock_quantity": self.stock_after,
            "audit_recorded": self.audit_recorded,
            "warnings": self.warnings,
        }


def _report_incident(incident: PartialFailureError, *, actor_id: int | None) -> None:
    """Log the incident and record it durably in the audit log."""
    log = current_app.logger.critical if incident.critical else current_app.logger.error
    log(
        "PARTIAL FAILURE in %s sale at step %s (compensated=%s): %s %s",
        incident.operation, incident.failed_step, incident.compensated, incident, incident.details,
    )
    audit_service.record_safely(
        audit_service.INCIDENT,
        "sales",
        incident.details.get("sale_id"),
        incident.to_dict(),
        user_id=actor_id,
    )


def _load_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id, populate_existing=True)
    if product is None:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    return product


def _insert_sale(
    *,
    product_id: int,
    administrator_id: int,
    quantity: int,
    pricing: PriceResolution,
    payment_method: str,
    installments: int | None,
    sale_date: datetime,
    notes: str | None,
) -> Sale:
    promotion = pricing.applied_promotion
    sale = Sale(
        product_id=product_id,
        administrator_id=administrator_id,
        quantity=quantity,
        original_unit_price=pricing.original_price,
        unit_price=pricing.resolved_price,
        discount_amount=pricing.discount_amount,
        total_price=pricing.resolved_price * quantity,
        promotion_id=promotion.id if promotion else None,
        promotion_name=promotion.name if promotion else None,
        promotion_discount_type=promotion.discount_type if promotion else None,
        promotion_discount_value=promotion.discount_value if promotion else None,
        payment_method=payment_method,
        installments=installments,
        sale_date=sale_date,
        notes=notes,
    )
    begin_write()
    db.session.add(sale)
    db.session.commit()
    return sale


def _remove_sale(sale_id: int) -> None:
    begin_write()
    result = db.session.execute(
        delete(Sale).where(Sale.id == sale_id).execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        # Already removed by a concurrent deletion
        db.session.rollback()
        raise NotFoundError("Sale not found", details={"sale_id": sale_id})
    db.session.commit()


def sale_snapshot(sale: Sale, product: Product | None = None) -> dict:
    """Everything needed to interpret a sale after its row is gone."""
    snapshot = sale.to_dict()
    snapshot["product_name"] = product.name if product else None
    snapshot["product_code"] = product.product_code if product else None
    return snapshot


def create_sale(
    *,
    product_id: int,
    administrator_id: int,
    quantity: int,
    payment_method: str,
    installments: int | None = None,
    sale_date: datetime | str | None = None,
    notes: str | None = None,
) -> SaleOutcome:
    """
    Record a sale: resolve the price, reserve stock, persist the sale, audit it.

    Raises ValidationError, NotFoundError, InsufficientStockError,
    ConcurrentModificationError (after bounded retries) or PartialFailureError.
    """
    # Validating
    enforce_rules_sale(
        {
            "product_id": product_id,
            "administrator_id": administrator_id,
            "quantity": quantity,
            "payment_method": payment_method,
            "installments": installments,
            "notes": notes,
        },
        max_installments=current_app.config.get("MAX_INSTALLMENTS", 12),
    )
    priced_at = coerce_datetime("sale_date", sale_date) if sale_date is not None else utcnow()

    product = _load_product(product_id)
    if quantity > product.stock_quantity:
        raise InsufficientStockError(product_id, quantity, product.stock_quantity)

    # PriceResolving + StockReserving, re-run together from a fresh read on conflict
    def _price_and_reserve():
        fresh = _load_product(product_id)
        pricing = pricing_service.resolve_price(fresh.id, fresh.price, at=priced_at)
        stock_after = stock_service.reserve(
            fresh.id,
            quantity,
            reason=f"Sale by administrator {administrator_id}",
            actor_id=administrator_id,
        )
        return fresh, pricing, stock_after

    try:
        product, pricing, stock_after = run_with_retry(_price_and_reserve)
    except ConcurrentModificationError as exc:
        raise ConcurrentModificationError("Stock changed, please retry", details=exc.details) from exc

    product_name = product.name

    # SalePersisting
    try:
        sale = _insert_sale(
            product_id=product_id,
            administrator_id=administrator_id,
            quantity=quantity,
            pricing=pricing,
            payment_method=payment_method,
            installments=installments,
            sale_date=priced_at,
            notes=notes,
        )
    except SQLAlchemyError as exc:
        db.session.rollback()
        compensated = _compensate_reservation(product_id, quantity, administrator_id)
        incident = PartialFailureError(
            "Sale could not be saved after stock was reserved",
            operation="create",
            failed_step=SaleStep.SALE_PERSISTING.value,
            completed_steps=[
                SaleStep.VALIDATING.value,
                SaleStep.PRICE_RESOLVING.value,
                SaleStep.STOCK_RESERVING.value,
            ],
            compensated=compensated,
            details={
                "product_id": product_id,
                "quantity": quantity,
                "unit_price": str(pricing.resolved_price),
                "error": exc.__class__.__name__,
            },
        )
        _report_incident(incident, actor_id=administrator_id)
        raise incident from exc

    # AuditLogging
    warnings: list[str] = []
    audit_recorded = audit_service.record_safely(
        audit_service.CREATE,
        "sales",
        sale.id,
        {
            "product_id": product_id,
            "product_name": product_name,
            "quantity": quantity,
            "total_price": str(sale.total_price),
            "promotion_id": sale.promotion_id,
        },
        user_id=administrator_id,
        new_values=sale.to_dict(),
    )
    if not audit_recorded:
        warnings.append("Sale recorded but the audit entry could not be written")

    # Done
    notify(sale_created, sale_id=sale.id, product_id=product_id)
    notify(stock_changed, product_id=product_id, stock_quantity=stock_after)

    return SaleOutcome(
        sale=sale,
        pricing=pricing,
        stock_after=stock_after,
        audit_recorded=audit_recorded,
        warnings=warnings,
    )


def _compensate_reservation(product_id: int, quantity: int, actor_id: int) -> bool:
    try:
        stock_service.release(
            product_id,
            quantity,
            reason="Compensation: sale could not be saved",
            actor_id=actor_id,
        )
    except (SQLAlchemyError, NotFoundError):
        db.session.rollback()
        current_app.logger.exception(
            "Compensating release failed for product %s (quantity %s)", product_id, quantity
        )
        return False
    return True


def delete_sale(sale_id: int, *, actor_id: int | None = None) -> DeleteOutcome:
    """
    Delete a sale and return its quantity to stock.

    Raises NotFoundError or PartialFailureError.
    """
    # Loading
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError("Sale not found", details={"sale_id": sale_id})

    product = db.session.get(Product, sale.product_id)
    snapshot = sale_snapshot(sale, product)
    product_id, quantity = sale.product_id, sale.quantity
    warnings: list[str] = []

    # StockReleasing
    stock_restored = False
    stock_after = None
    if product is None:
        warnings.append("Product no longer exists; stock was not restored")
        current_app.logger.warning(
            "Sale %s deleted without stock restoration: product %s no longer exists", sale_id, product_id
        )
        audit_service.record_safely(
            audit_service.INCIDENT,
            "sales",
            sale_id,
            {"message": "Stock not restored: product no longer exists", "product_id": product_id, "quantity": quantity},
            user_id=actor_id,
        )
    else:
        # NotFoundError here means a concurrent deletion already removed the row
        stock_after, released = stock_service.release_for_sale(
            sale_id,
            product_id,
            quantity,
            reason=f"Sale {sale_id} deleted",
            actor_id=actor_id,
        )
        stock_restored = True
        if not released:
            warnings.append("Stock for this sale was already restored by an earlier attempt")

    # SaleRemoving
    try:
        _remove_sale(sale_id)
    except SQLAlchemyError as exc:
        db.session.rollback()
        incident = PartialFailureError(
            "Stock was restored but the sale could not be removed; reconcile manually",
            operation="delete",
            failed_step=SaleStep.SALE_REMOVING.value,
            completed_steps=[SaleStep.LOADING.value, SaleStep.STOCK_RELEASING.value],
            compensated=False,
            details={
                "sale_id": sale_id,
                "product_id": product_id,
                "quantity": quantity,
                "stock_restored": stock_restored,
                "error": exc.__class__.__name__,
            },
        )
        _report_incident(incident, actor_id=actor_id)
        raise incident from exc

    # AuditLogging
    audit_recorded = audit_service.record_safely(
        audit_service.DELETE,
        "sales",
        sale_id,
        {
            "product_id": product_id,
            "product_name": snapshot["product_name"],
            "quantity": quantity,
            "total_price": snapshot["total_price"],
            "stock_restored": stock_restored,
        },
        user_id=actor_id,
        old_values=snapshot,
    )
    if not audit_recorded:
        warnings.append("Sale deleted but the audit entry could not be written")

    # Done
    notify(sale_deleted, sale_id=sale_id, product_id=product_id)
    if stock_restored:
        notify(stock_changed, product_id=product_id, stock_quantity=stock_after)

    return DeleteOutcome(
        sale_id=sale_id,
        snapshot=snapshot,
        stock_restored=stock_restored,
        stock_after=stock_after,
        audit_recorded=audit_recorded,
        warnings=warnings,
    )


def delete_all_sales(*, actor_id: int | None = None) -> dict:
    """
    Delete every sale, restoring stock for each one.

    Each sale goes through delete_sale so it keeps its own compensation and
    audit entry; a failure on one sale does not stop the others.
    """
    sale_ids = [row[0] for row in db.session.query(Sale.id).order_by(Sale.id.asc()).all()]
    deleted = 0
    failures: list[dict] = []
    for sale_id in sale_ids:
        try:
            delete_sale(sale_id, actor_id=actor_id)
        except PartialFailureError as exc:
            failures.append(exc.to_dict())
        except NotFoundError:
            # Removed concurrently by another caller
            continue
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.exception("Deleting sale %s failed", sale_id)
            failures.append({
                "sale_id": sale_id,
                "message": "Sale could not be deleted; nothing was changed",
                "error": exc.__class__.__name__,
                "critical": False,
            })
        else:
            deleted += 1
    return {"deleted": deleted, "failures": failures}


def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError("Sale not found", details={"sale_id": sale_id})
    return sale


def list_sales(product_id: int | None = None, limit: int = 100) -> list[Sale]:
    q = db.session.query(Sale)
    if product_id is not None:
        q = q.filter(Sale.product_id == product_id)
    return q.order_by(Sale.sale_date.desc(), Sale.id.desc()).limit(limit).all()
