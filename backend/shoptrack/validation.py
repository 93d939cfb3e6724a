# Overview: Boundary validation of JSON payloads against model columns and business ranges.

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any
from urllib.parse import urlparse

from sqlalchemy import Boolean, Date, Integer, Numeric, String, Text

from .errors import ValidationError
from .models.orders import PAYMENT_MODES

# Matches the products CHECK constraint
MAX_PRICE = Decimal("10000000")

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: frozenset
    required_on_create: frozenset = frozenset()


def _columns_by_key(model) -> dict[str, Any]:
    return {c.key: c for c in model.__mapper__.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - reject floats, bools and scientific notation
    if isinstance(coltype, Integer):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped or "e" in stripped.lower() or "." in stripped:
                raise ValidationError(f"{col.key} must be a plain integer")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
        raise ValidationError(f"{col.key} must be an integer")

    # Decimals - accept numbers or numeric strings, never floats' binary noise
    if isinstance(coltype, Numeric):
        if isinstance(value, bool):
            raise ValidationError(f"{col.key} must be a number")
        try:
            dec = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise ValidationError(f"{col.key} must be a number")
        if not dec.is_finite():
            raise ValidationError(f"{col.key} must be a finite number")
        scale = coltype.scale if coltype.scale is not None else 2
        return dec.quantize(Decimal(1).scaleb(-scale))

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean")

    if isinstance(coltype, Date):
        if isinstance(value, date):
            return value
        try:
            return date.fromisoformat(str(value).strip())
        except ValueError:
            raise ValidationError(f"{col.key} must be an ISO date (YYYY-MM-DD)")

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model,
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
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(f for f in policy.required_on_create if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

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

        if isinstance(col.type, (String, Text)) and isinstance(val, str) and val == "":
            if not col.nullable:
                raise ValidationError(f"{k} cannot be blank")
            val = None

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def _check_range(patch: dict, key: str, low, high) -> None:
    value = patch.get(key)
    if value is None:
        return
    if value < low or value > high:
        raise ValidationError(f"{key} must be between {low} and {high}")


def validate_url(value: str | None, key: str = "image_url") -> None:
    if value is None:
        return
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError(f"{key} must be an http(s) URL")


def validate_email(value: str | None, key: str = "email") -> None:
    if value is None:
        return
    if not EMAIL_RE.match(value):
        raise ValidationError(f"{key} is not a valid email address")


def enforce_rules_product(patch: dict) -> None:
    """Ranges the product form enforced client-side, re-checked at the boundary."""
    _check_range(patch, "price", Decimal("0"), MAX_PRICE)
    _check_range(patch, "stock", 0, 1_000_000)
    _check_range(patch, "discount_percentage", Decimal("0"), Decimal("100"))
    _check_range(patch, "gst_rate", Decimal("0"), Decimal("100"))
    _check_range(patch, "lead_time_days", 1, 365)
    _check_range(patch, "reorder_point", 0, 10_000)

    sku = patch.get("sku")
    if sku is not None and len(sku) < 3:
        raise ValidationError("sku must be at least 3 characters")
    description = patch.get("description")
    if description is not None and len(description) > 2000:
        raise ValidationError("description exceeds max length 2000")
    validate_url(patch.get("image_url"))


def enforce_rules_supplier(patch: dict) -> None:
    _check_range(patch, "rating", Decimal("1"), Decimal("5"))
    validate_email(patch.get("email"))


def enforce_rules_supplier_performance(patch: dict) -> None:
    _check_range(patch, "quality_score", Decimal("0"), Decimal("5"))
    _check_range(patch, "total_orders", 0, 1_000_000)
    _check_range(patch, "on_time_deliveries", 0, 1_000_000)
    total = patch.get("total_orders")
    on_time = patch.get("on_time_deliveries")
    if total is not None and on_time is not None and on_time > total:
        raise ValidationError("on_time_deliveries cannot exceed total_orders")


def require_quantity(value: Any, key: str = "quantity", *, allow_zero: bool = False) -> int:
    """Positive integer quantity (InvalidQuantity otherwise)."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{key} must be an integer")
    if value < 0 or (value == 0 and not allow_zero):
        raise ValidationError(f"{key} must be positive")
    return value


def require_payment_mode(value: Any) -> str:
    if value not in PAYMENT_MODES:
        raise ValidationError(f"payment_mode must be one of {', '.join(PAYMENT_MODES)}")
    return value
