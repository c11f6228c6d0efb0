"""
Sale coordinator tests.

Covers the create and delete workflows end to end, including the
compensation paths when a later step fails after stock already moved.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import delete
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from sale_engine.extensions import db
from sale_engine.models import Product, Sale, StockMovement, AuditLogEntry
from sale_engine.services import audit_service, sales_service, stock_service
from sale_engine.services.exceptions import (
    AuditWriteError,
    ConcurrentModificationError,
    InsufficientStockError,
    NotFoundError,
    PartialFailureError,
    ValidationError,
)
from sale_engine.signals import sale_created, sale_deleted
from sale_engine.time_utils import utcnow

from helpers import audit_entries, count, movements_for, stock_of


def _sell(product, quantity=1, **kwargs):
    kwargs.setdefault("administrator_id", 7)
    kwargs.setdefault("payment_method", "cash")
    return sales_service.create_sale(product_id=product.id, quantity=quantity, **kwargs)


def _fail(*args, **kwargs):
    raise SQLAlchemyError("simulated database failure")


class TestCreateSale:
    def test_promotional_sale(self, db_session, make_product, make_promotion):
        product = make_product(price="100.00", stock=10)
        promo = make_promotion([product], "percentage", "20", name="Spring 20")

        outcome = _sell(product, 2)

        sale = outcome.sale
        assert sale.unit_price == Decimal("80.00")
        assert sale.total_price == Decimal("160.00")
        assert sale.original_unit_price == Decimal("100.00")
        assert sale.discount_amount == Decimal("20.00")
        assert sale.promotion_id == promo.id
        assert sale.promotion_name == "Spring 20"
        assert sale.promotion_discount_type == "percentage"
        assert outcome.stock_after == 8
        assert stock_of(product.id) == 8
        assert outcome.audit_recorded is True
        assert outcome.warnings == []

        [entry] = audit_entries("CREATE")
        assert entry.table_name == "sales"
        assert entry.record_id == str(sale.id)
        assert entry.new_values["total_price"] == "160.00"

    def test_expired_promotion_charges_original_price(self, db_session, make_product, make_promotion):
        product = make_product(price="100.00", stock=10)
        now = utcnow()
        make_promotion([product], "percentage", "20", start=now - timedelta(days=30), end=now - timedelta(days=1))

        outcome = _sell(product, 1)

        assert outcome.sale.unit_price == Decimal("100.00")
        assert outcome.sale.promotion_id is None
        assert outcome.pricing.has_promotion is False

    def test_sale_date_sets_pricing_instant(self, db_session, make_product, make_promotion):
        product = make_product(price="100.00", stock=10)
        now = utcnow()
        make_promotion([product], "fixed_amount", "15", start=now - timedelta(days=10), end=now - timedelta(days=5))

        outcome = _sell(product, 1, sale_date=(now - timedelta(days=7)).isoformat() + "Z")

        assert outcome.sale.unit_price == Decimal("85.00")

    def test_zero_stock_has_no_side_effects(self, db_session, make_product):
        product = make_product(stock=0)

        with pytest.raises(InsufficientStockError):
            _sell(product, 1)

        assert count(Sale) == 0
        assert count(StockMovement) == 0
        assert count(AuditLogEntry) == 0
        assert stock_of(product.id) == 0

    def test_quantity_above_stock_is_rejected(self, db_session, make_product):
        product = make_product(stock=3)

        with pytest.raises(InsufficientStockError) as exc_info:
            _sell(product, 4)

        assert exc_info.value.details == {"product_id": product.id, "requested_quantity": 4, "available": 3}

    @pytest.mark.parametrize("overrides", [
        {"quantity": 0},
        {"quantity": -2},
        {"quantity": 1.5},
        {"payment_method": "cheque"},
        {"installments": 3, "payment_method": "cash"},
        {"installments": 13, "payment_method": "credit_card"},
        {"administrator_id": 0},
    ])
    def test_invalid_requests(self, db_session, make_product, overrides):
        product = make_product(stock=10)
        kwargs = {"quantity": 1, "payment_method": "cash", "administrator_id": 7}
        kwargs.update(overrides)

        with pytest.raises(ValidationError):
            sales_service.create_sale(product_id=product.id, **kwargs)

        assert stock_of(product.id) == 10
        assert count(Sale) == 0

    def test_credit_card_installments(self, db_session, make_product):
        product = make_product(stock=10)

        outcome = _sell(product, 1, payment_method="credit_card", installments=6)

        assert outcome.sale.installments == 6

    def test_missing_product(self, db_session):
        with pytest.raises(NotFoundError):
            sales_service.create_sale(product_id=999999, quantity=1, payment_method="cash", administrator_id=7)

    def test_conflict_surfaces_after_retries(self, db_session, make_product, monkeypatch):
        product = make_product(stock=10)
        monkeypatch.setattr(stock_service, "_current_stock", lambda product_id: 50)

        with pytest.raises(ConcurrentModificationError, match="please retry"):
            _sell(product, 1)

        monkeypatch.undo()
        assert count(Sale) == 0
        assert stock_of(product.id) == 10

    def test_persist_failure_is_compensated(self, db_session, make_product, monkeypatch):
        product = make_product(stock=10)
        monkeypatch.setattr(sales_service, "_insert_sale", _fail)

        with pytest.raises(PartialFailureError) as exc_info:
            _sell(product, 2)

        incident = exc_info.value
        assert incident.compensated is True
        assert incident.critical is False
        assert incident.failed_step == "sale_persisting"
        assert "stock_reserving" in incident.completed_steps
        assert stock_of(product.id) == 10
        assert count(Sale) == 0
        assert [m.movement_type for m in movements_for(product.id)] == ["exit", "entry"]

        [entry] = audit_entries("INCIDENT")
        assert entry.details["failed_step"] == "sale_persisting"
        assert entry.details["compensated"] is True

    def test_persist_failure_without_compensation_is_critical(self, db_session, make_product, monkeypatch):
        product = make_product(stock=10)
        monkeypatch.setattr(sales_service, "_insert_sale", _fail)
        monkeypatch.setattr(stock_service, "release", _fail)

        with pytest.raises(PartialFailureError) as exc_info:
            _sell(product, 2)

        assert exc_info.value.compensated is False
        assert exc_info.value.critical is True
        assert stock_of(product.id) == 8
        assert len(audit_entries("INCIDENT")) == 1

    def test_audit_failure_keeps_sale(self, db_session, make_product, monkeypatch):
        product = make_product(stock=10)

        def broken_record(*args, **kwargs):
            raise AuditWriteError("audit store unavailable")

        monkeypatch.setattr(audit_service, "record", broken_record)

        outcome = _sell(product, 1)

        assert outcome.audit_recorded is False
        assert outcome.warnings
        assert count(Sale) == 1
        assert stock_of(product.id) == 9

    def test_emits_sale_created(self, db_session, make_product, app):
        product = make_product(stock=10)
        received = []

        def receiver(sender, **payload):
            received.append(payload)

        with sale_created.connected_to(receiver, sender=app):
            outcome = _sell(product, 1)

        assert received == [{"sale_id": outcome.sale.id, "product_id": product.id}]

    def test_failing_receiver_does_not_fail_the_sale(self, db_session, make_product, app):
        product = make_product(stock=10)

        def receiver(sender, **payload):
            raise RuntimeError("listener crashed")

        with sale_created.connected_to(receiver, sender=app):
            outcome = _sell(product, 1)

        assert outcome.sale.id is not None
        assert count(Sale) == 1


class TestDeleteSale:
    def test_round_trip_restores_stock(self, db_session, make_product, make_promotion):
        product = make_product(price="100.00", stock=10)
        make_promotion([product], "percentage", "20")
        sale_id = _sell(product, 3).sale.id

        outcome = sales_service.delete_sale(sale_id, actor_id=7)

        assert outcome.stock_restored is True
        assert outcome.stock_after == 10
        assert stock_of(product.id) == 10
        assert db.session.get(Sale, sale_id) is None
        assert outcome.snapshot["product_name"] == product.name
        assert outcome.snapshot["total_price"] == "240.00"

        [entry] = audit_entries("DELETE")
        assert entry.record_id == str(sale_id)
        assert entry.old_values["quantity"] == 3
        assert entry.old_values["unit_price"] == "80.00"

        reversal = movements_for(product.id)[-1]
        assert reversal.movement_type == "entry"
        assert reversal.sale_id == sale_id

    def test_missing_sale(self, db_session):
        with pytest.raises(NotFoundError):
            sales_service.delete_sale(999999)

    def test_remove_failure_then_retry_restores_stock_once(self, db_session, make_product, monkeypatch):
        product = make_product(stock=10)
        sale_id = _sell(product, 4).sale.id
        assert stock_of(product.id) == 6

        monkeypatch.setattr(sales_service, "_remove_sale", _fail)
        with pytest.raises(PartialFailureError) as exc_info:
            sales_service.delete_sale(sale_id)

        assert exc_info.value.critical is True
        assert exc_info.value.failed_step == "sale_removing"
        assert stock_of(product.id) == 10
        assert db.session.get(Sale, sale_id) is not None
        assert len(audit_entries("INCIDENT")) == 1

        monkeypatch.undo()
        outcome = sales_service.delete_sale(sale_id)

        assert outcome.stock_restored is True
        assert outcome.warnings
        assert stock_of(product.id) == 10
        assert db.session.get(Sale, sale_id) is None

    def test_deleted_product_skips_restoration(self, db_session, make_product):
        product = make_product(stock=10)
        product_id = product.id
        sale_id = _sell(product, 2).sale.id

        db.session.execute(delete(Product).where(Product.id == product_id))
        db.session.commit()
        db.session.expunge_all()

        outcome = sales_service.delete_sale(sale_id)

        assert outcome.stock_restored is False
        assert outcome.stock_after is None
        assert outcome.warnings
        assert db.session.get(Sale, sale_id) is None
        assert len(audit_entries("INCIDENT")) == 1
        assert len(audit_entries("DELETE")) == 1

    def test_sale_survives_promotion_deletion(self, db_session, make_product, make_promotion):
        product = make_product(price="50.00", stock=10)
        promo = make_promotion([product], "fixed_amount", "5", name="Five off")
        sale_id = _sell(product, 1).sale.id

        db.session.delete(promo)
        db.session.commit()

        sale = sales_service.get_sale(sale_id)
        assert sale.promotion_name == "Five off"
        assert sale.unit_price == Decimal("45.00")

    def test_emits_sale_deleted(self, db_session, make_product, app):
        product = make_product(stock=10)
        sale_id = _sell(product, 1).sale.id
        received = []

        def receiver(sender, **payload):
            received.append(payload)

        with sale_deleted.connected_to(receiver, sender=app):
            sales_service.delete_sale(sale_id)

        assert received == [{"sale_id": sale_id, "product_id": product.id}]

    def test_row_removed_concurrently_is_not_found(self, db_session, make_product, monkeypatch, app):
        product = make_product(stock=10)
        sale_id = _sell(product, 3).sale.id
        real_release = stock_service.release_for_sale

        def release_then_lose_row(*args, **kwargs):
            result = real_release(*args, **kwargs)
            # Another deletion removes the row before ours does
            db.session.execute(
                delete(Sale).where(Sale.id == sale_id).execution_options(synchronize_session=False)
            )
            db.session.commit()
            return result

        monkeypatch.setattr(stock_service, "release_for_sale", release_then_lose_row)
        received = []

        def receiver(sender, **payload):
            received.append(payload)

        with sale_deleted.connected_to(receiver, sender=app):
            with pytest.raises(NotFoundError):
                sales_service.delete_sale(sale_id)

        assert received == []
        assert audit_entries("DELETE") == []
        assert audit_entries("INCIDENT") == []
        assert stock_of(product.id) == 10

    def test_second_delete_is_not_found(self, db_session, make_product):
        product = make_product(stock=10)
        sale_id = _sell(product, 3).sale.id

        sales_service.delete_sale(sale_id)
        with pytest.raises(NotFoundError):
            sales_service.delete_sale(sale_id)

        assert stock_of(product.id) == 10
        assert len(audit_entries("DELETE")) == 1


def test_delete_all_sales_restores_every_unit(db_session, make_product):
    first = make_product(stock=10)
    second = make_product(stock=5)
    _sell(first, 2)
    _sell(first, 3)
    _sell(second, 5)

    result = sales_service.delete_all_sales(actor_id=7)

    assert result == {"deleted": 3, "failures": []}
    assert stock_of(first.id) == 10
    assert stock_of(second.id) == 5
    assert count(Sale) == 0


def test_delete_all_sales_reports_failures(db_session, make_product, monkeypatch):
    product = make_product(stock=10)
    _sell(product, 1)
    _sell(product, 1)
    monkeypatch.setattr(sales_service, "_remove_sale", _fail)

    result = sales_service.delete_all_sales()

    assert result["deleted"] == 0
    assert len(result["failures"]) == 2
    assert all(f["critical"] for f in result["failures"])


def test_delete_all_sales_continues_past_database_errors(db_session, make_product, monkeypatch):
    product = make_product(stock=10)
    first_id = _sell(product, 1).sale.id
    broken_id = _sell(product, 2).sale.id
    last_id = _sell(product, 3).sale.id
    real_release = stock_service.release_for_sale

    def locked_for_one(sale_id, *args, **kwargs):
        if sale_id == broken_id:
            raise OperationalError("UPDATE products", {}, Exception("database is locked"))
        return real_release(sale_id, *args, **kwargs)

    monkeypatch.setattr(stock_service, "release_for_sale", locked_for_one)

    result = sales_service.delete_all_sales()

    assert result["deleted"] == 2
    [failure] = result["failures"]
    assert failure["sale_id"] == broken_id
    assert failure["error"] == "OperationalError"
    assert failure["critical"] is False
    assert db.session.get(Sale, first_id) is None
    assert db.session.get(Sale, last_id) is None
    assert db.session.get(Sale, broken_id) is not None
    assert stock_of(product.id) == 8


def test_list_sales_filters_by_product(db_session, make_product):
    first = make_product(stock=10)
    second = make_product(stock=10)
    _sell(first, 1)
    _sell(second, 1)
    _sell(first, 2)

    sales = sales_service.list_sales(product_id=first.id)

    assert {s.product_id for s in sales} == {first.id}
    assert len(sales) == 2
