from datetime import datetime
from decimal import Decimal

import pytest

from sale_engine.models import Sale
from sale_engine.routes.sales import SALE_CREATE_POLICY
from sale_engine.validation import (
    ValidationError,
    enforce_rules_promotion,
    enforce_rules_sale,
    validate_payload,
)


def _validate(payload, partial=False):
    return validate_payload(model=Sale, payload=payload, policy=SALE_CREATE_POLICY, partial=partial)


def test_sale_payload_is_coerced(app):
    patch = _validate({
        "product_id": "3",
        "quantity": 2,
        "payment_method": " credit_card ",
        "installments": "4",
        "sale_date": "2026-03-01T12:30:00-03:00",
    })

    assert patch == {
        "product_id": 3,
        "quantity": 2,
        "payment_method": "credit_card",
        "installments": 4,
        "sale_date": datetime(2026, 3, 1, 15, 30),
    }


@pytest.mark.parametrize("payload", [
    {"quantity": 1, "payment_method": "cash"},
    {"product_id": 1, "quantity": 1.0, "payment_method": "cash"},
    {"product_id": 1, "quantity": "1e2", "payment_method": "cash"},
    {"product_id": 1, "quantity": 1, "payment_method": None},
    {"product_id": 1, "quantity": 1, "payment_method": "cash", "total_price": "0.01"},
    {"product_id": 1, "quantity": 1, "payment_method": "cash", "sale_date": "last tuesday"},
    "not a dict",
])
def test_sale_payload_rejections(app, payload):
    with pytest.raises(ValidationError):
        _validate(payload)


def test_sale_rules():
    base = {"product_id": 1, "administrator_id": 1, "quantity": 1, "payment_method": "credit_card", "installments": 12}
    enforce_rules_sale(base, max_installments=12)

    with pytest.raises(ValidationError):
        enforce_rules_sale(dict(base, installments=12), max_installments=6)
    with pytest.raises(ValidationError):
        enforce_rules_sale(dict(base, installments=0), max_installments=12)
    with pytest.raises(ValidationError):
        enforce_rules_sale(dict(base, payment_method="debit_card", installments=2), max_installments=12)
    with pytest.raises(ValidationError):
        enforce_rules_sale(dict(base, notes="x" * 1001), max_installments=12)
    with pytest.raises(ValidationError):
        enforce_rules_sale(dict(base, quantity=True), max_installments=12)

    # A single installment is just a regular payment
    enforce_rules_sale(dict(base, payment_method="cash", installments=1), max_installments=12)


def test_promotion_rules():
    start, end = datetime(2026, 1, 1), datetime(2026, 1, 31)
    ok = {"discount_type": "percentage", "discount_value": Decimal("100"), "start_date": start, "end_date": end}
    enforce_rules_promotion(ok)

    with pytest.raises(ValidationError):
        enforce_rules_promotion(dict(ok, discount_value=Decimal("100.01")))
    with pytest.raises(ValidationError):
        enforce_rules_promotion(dict(ok, start_date=end, end_date=end))
    with pytest.raises(ValidationError):
        enforce_rules_promotion(dict(ok, end_date=None))
    enforce_rules_promotion(dict(ok, discount_type="fixed_amount", discount_value=Decimal("250.00")))
