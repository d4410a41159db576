from __future__ import annotations
from datetime import date, datetime
from stockroom.time_utils import parse_iso_datetime, parse_iso_date

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Date, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .errors import (
    ValidationError,
    ConflictError,
    InvalidQuantity,
    InvalidCost,
    InvalidPrice,
)
from .money import MAX_AMOUNT_CENTS, MAX_LINE_TOTAL_CENTS, decimal_to_cents

# Largest quantity a single purchase or sale may move
MAX_QUANTITY = 1_000_000

# Signed 64-bit range; anything wider cannot be bound as a database integer
_MAX_DB_INT = 2**63 - 1

__all__ = [
    "ModelValidationPolicy",
    "validate_payload",
    "ValidationError",
    "ConflictError",
    "is_strict_int",
    "require_positive_quantity",
    "require_amount_cents",
    "require_line_total",
    "parse_int_arg",
    "MAX_QUANTITY",
    "normalize_amount_field",
    "enforce_rules_product",
    "enforce_rules_purchase",
    "enforce_rules_sale",
]


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


def is_strict_int(value: Any) -> bool:
    # bool is a subclass of int; True is not a quantity
    return isinstance(value, int) and not isinstance(value, bool)


def _in_db_range(col, value: int) -> int:
    if abs(value) > _MAX_DB_INT:
        raise ValidationError(f"{col.key} is out of range")
    return value


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        if is_strict_int(value):
            return _in_db_range(col, value)
        # String input - must be plain digits (with optional leading minus)
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{col.key} must be an integer")
            if 'e' in stripped.lower():
                raise ValidationError(f"{col.key} must be a plain integer (scientific notation not allowed)")
            if '.' in stripped:
                raise ValidationError(f"{col.key} must be an integer (no decimals)")
            try:
                parsed = int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
            return _in_db_range(col, parsed)
        if isinstance(value, float):
            raise ValidationError(f"{col.key} must be an integer, not a decimal")
        raise ValidationError(f"{col.key} must be an integer")

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be true or false")

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    if isinstance(coltype, Date):
        if isinstance(value, date):
            return value
        if isinstance(value, str):
            try:
                d = parse_iso_date(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 date (YYYY-MM-DD)")
            return d
        raise ValidationError(f"{col.key} must be a date")

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

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

        # Optional text: blank means "not given"
        if isinstance(col.type, (String, Text)) and col.nullable and val == "":
            val = None

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def normalize_amount_field(payload: dict, decimal_key: str, cents_key: str) -> dict:
    """
    Accept a decimal amount ("1.20") under decimal_key as an alternative to
    integer cents under cents_key. Returns a copy with only cents_key set.
    """
    if not isinstance(payload, dict) or decimal_key not in payload:
        return payload
    if cents_key in payload:
        raise ValidationError(f"Provide either {decimal_key} or {cents_key}, not both")
    out = dict(payload)
    raw = out.pop(decimal_key)
    if raw is None:
        out[cents_key] = None
        return out
    try:
        out[cents_key] = decimal_to_cents(raw)
    except ValueError:
        raise ValidationError(f"{decimal_key} must be a decimal amount")
    return out


def require_positive_quantity(quantity: Any) -> int:
    if not is_strict_int(quantity) or quantity <= 0:
        raise InvalidQuantity("quantity must be a positive integer", details={"quantity": quantity})
    if quantity > MAX_QUANTITY:
        raise InvalidQuantity(f"quantity cannot exceed {MAX_QUANTITY:,}", details={"quantity": quantity})
    return quantity


def require_amount_cents(value: Any, *, field: str, error_cls=ValidationError) -> int:
    if not is_strict_int(value):
        raise error_cls(f"{field} must be an integer number of cents", details={field: value})
    if value < 0:
        raise error_cls(f"{field} must be >= 0", details={field: value})
    if value > MAX_AMOUNT_CENTS:
        raise error_cls(
            f"{field} cannot exceed {MAX_AMOUNT_CENTS} ({MAX_AMOUNT_CENTS / 100:,.2f})",
            details={field: value},
        )
    return value


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    for field in ("cost_price_cents", "selling_price_cents"):
        if field in patch and patch[field] is not None:
            require_amount_cents(patch[field], field=field, error_cls=InvalidPrice)

    if "reorder_level" in patch and patch["reorder_level"] is not None:
        if patch["reorder_level"] < 0:
            raise ValidationError("reorder_level must be >= 0")


def enforce_rules_purchase(patch: dict) -> None:
    # Stock-in requires qty > 0 and a unit cost >= 0
    require_positive_quantity(patch.get("quantity"))
    require_amount_cents(patch.get("unit_cost_cents"), field="unit_cost_cents", error_cls=InvalidCost)
    require_line_total(patch["quantity"], patch["unit_cost_cents"], field="total_cost_cents", error_cls=InvalidCost)


def enforce_rules_sale(patch: dict) -> None:
    # Stock-out requires qty > 0; unit price is optional (defaults to selling price)
    require_positive_quantity(patch.get("quantity"))
    if patch.get("unit_price_cents") is not None:
        require_amount_cents(patch["unit_price_cents"], field="unit_price_cents", error_cls=InvalidPrice)
        require_line_total(
            patch["quantity"], patch["unit_price_cents"], field="total_amount_cents", error_cls=InvalidPrice
        )


def require_line_total(quantity: int, unit_cents: int, *, field: str, error_cls=ValidationError) -> int:
    """quantity x unit amount, rejected above MAX_LINE_TOTAL_CENTS."""
    total = quantity * unit_cents
    if total > MAX_LINE_TOTAL_CENTS:
        raise error_cls(
            f"{field} cannot exceed {MAX_LINE_TOTAL_CENTS} ({MAX_LINE_TOTAL_CENTS / 100:,.2f})",
            details={field: total},
        )
    return total


def parse_int_arg(raw: str | None, name: str, default: int | None = None) -> int | None:
    """
    Strict integer query-string argument.

    Missing or blank -> default. Anything else that is not a plain integer
    raises ValidationError instead of being silently ignored.
    """
    if raw is None or not raw.strip():
        return default
    stripped = raw.strip()
    if not stripped.removeprefix("-").isdecimal():
        raise ValidationError(f"{name} must be an integer", details={name: raw})
    value = int(stripped)
    if abs(value) > _MAX_DB_INT:
        raise ValidationError(f"{name} is out of range", details={name: raw})
    return value
