from __future__ import annotations
from datetime import datetime
from decimal import Decimal, InvalidOperation
from sale_engine.time_utils import parse_iso_datetime, normalize_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, Numeric, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta


# Maximum price: 9,999,999,999.99 (fits Numeric(12, 2))
# This prevents database overflow issues and nonsensical prices
MAX_PRICE = Decimal("9999999999.99")

MAX_NOTES_LENGTH = 1000


class ValidationError(ValueError):
    """400-level input problem."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _require_int(key: str, value: Any) -> int:
    """Native ints only; payloads are coerced by validate_payload before this point."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{key} must be an integer")
    return value


def _coerce_integer(key: str, value: Any) -> int:
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    # Reject floats explicitly
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def coerce_decimal(key: str, value: Any) -> Decimal:
    """Accept Decimal, int or numeric strings; floats go through str() to avoid binary noise."""
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be a number")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValidationError(f"{key} must be a number")
    else:
        raise ValidationError(f"{key} must be a number")
    if not result.is_finite():
        raise ValidationError(f"{key} must be a finite number")
    return result


def coerce_datetime(key: str, value: Any) -> datetime:
    if isinstance(value, datetime):
        return normalize_datetime(value)
    if isinstance(value, str):
        try:
            dt = parse_iso_datetime(value)
        except ValueError:
            raise ValidationError(f"{key} must be an ISO-8601 datetime")
        if dt is None:
            raise ValidationError(f"{key} must be an ISO-8601 datetime")
        return dt
    raise ValidationError(f"{key} must be a datetime")


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        return _coerce_integer(col.key, value)

    if isinstance(coltype, Numeric):
        return coerce_decimal(col.key, value)

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean")

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        return coerce_datetime(col.key, value)

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # Default: leave as-is
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        # NULL handling
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def enforce_rules_sale(patch: dict, *, max_installments: int) -> None:
    """
    Business rules for a sale request that SQLAlchemy metadata does not capture.
    Expects coerced values (see validate_payload) or native Python values.
    """
    from .models.sales import PAYMENT_METHODS, CREDIT_CARD

    for key in ("product_id", "administrator_id"):
        value = patch.get(key)
        if value is None:
            raise ValidationError(f"{key} is required")
        if _require_int(key, value) < 1:
            raise ValidationError(f"{key} must be a positive integer")

    quantity = patch.get("quantity")
    if quantity is None:
        raise ValidationError("quantity is required")
    if _require_int("quantity", quantity) < 1:
        raise ValidationError("quantity must be >= 1")

    method = patch.get("payment_method")
    if method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}")

    installments = patch.get("installments")
    if installments is not None:
        _require_int("installments", installments)
        if installments < 1 or installments > max_installments:
            raise ValidationError(f"installments must be between 1 and {max_installments}")
        if installments > 1 and method != CREDIT_CARD:
            raise ValidationError("installments are only allowed for credit_card payments")

    notes = patch.get("notes")
    if notes is not None and len(notes) > MAX_NOTES_LENGTH:
        raise ValidationError(f"notes exceeds max length {MAX_NOTES_LENGTH}")


def enforce_rules_stock_movement(patch: dict) -> None:
    from .models.inventory import MOVEMENT_TYPES

    if patch.get("movement_type") not in MOVEMENT_TYPES:
        raise ValidationError(f"movement_type must be one of: {', '.join(MOVEMENT_TYPES)}")
    quantity = patch.get("quantity")
    if quantity is None or _require_int("quantity", quantity) < 1:
        raise ValidationError("quantity must be >= 1")


def enforce_rules_promotion(patch: dict) -> None:
    """
    discount_value > 0 (and <= 100 for percentages); start_date < end_date.
    On partial updates the caller merges current values in first.
    """
    from .models.promotions import DISCOUNT_TYPES, PERCENTAGE

    discount_type = patch.get("discount_type")
    if discount_type not in DISCOUNT_TYPES:
        raise ValidationError(f"discount_type must be one of: {', '.join(DISCOUNT_TYPES)}")

    value = patch.get("discount_value")
    if value is None:
        raise ValidationError("discount_value is required")
    value = coerce_decimal("discount_value", value)
    if value <= 0:
        raise ValidationError("discount_value must be > 0")
    if discount_type == PERCENTAGE and value > 100:
        raise ValidationError("discount_value cannot exceed 100 for percentage promotions")
    if value > MAX_PRICE:
        raise ValidationError(f"discount_value cannot exceed {MAX_PRICE}")

    start, end = patch.get("start_date"), patch.get("end_date")
    if start is None or end is None:
        raise ValidationError("start_date and end_date are required")
    if start >= end:
        raise ValidationError("start_date must be before end_date")
