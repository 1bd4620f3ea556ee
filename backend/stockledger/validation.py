from __future__ import annotations
from datetime import datetime
from stockledger.time_utils import parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta


# Maximum price: 9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999

# Upper bound on a single stock movement
MAX_QUANTITY = 1_000_000


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate email)."""


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


def _coerce_int(key: str, value: Any) -> int:
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
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return _coerce_int(col.key, value)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        return bool(value)

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

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def parse_positive_quantity(value: Any, key: str = "quantity") -> int:
    """Coerce a quantity from JSON/query input; must be a positive integer."""
    if value is None:
        raise ValidationError(f"{key} is required")
    qty = _coerce_int(key, value)
    if qty <= 0:
        raise ValidationError(f"{key} must be > 0")
    if qty > MAX_QUANTITY:
        raise ValidationError(f"{key} cannot exceed {MAX_QUANTITY}")
    return qty


def parse_id(value: Any, key: str) -> int:
    if value is None or value == "":
        raise ValidationError(f"{key} is required")
    ident = _coerce_int(key, value)
    if ident <= 0:
        raise ValidationError(f"{key} must be a positive integer")
    return ident


def parse_optional_id(value: Any, key: str) -> int | None:
    """Query-string filter: absent means no filter, anything else must be a valid id."""
    if value is None or value == "":
        return None
    return parse_id(value, key)


def _check_enum(patch: dict, key: str, allowed) -> None:
    if key in patch and patch[key] is not None and patch[key] not in allowed:
        raise ValidationError(f"{key} must be one of: {', '.join(allowed)}")


def _check_cents(patch: dict, key: str) -> None:
    if key in patch and patch[key] is not None:
        if patch[key] < 0:
            raise ValidationError(f"{key} must be >= 0")
        if patch[key] > MAX_PRICE_CENTS:
            raise ValidationError(f"{key} cannot exceed {MAX_PRICE_CENTS}")


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    from .models.catalog import PRODUCT_CATEGORIES, CYLINDER_TYPES

    _check_enum(patch, "category", PRODUCT_CATEGORIES)
    _check_enum(patch, "cylinder_type", CYLINDER_TYPES)
    _check_cents(patch, "cost_price_cents")
    _check_cents(patch, "least_price_cents")

    if patch.get("category") == "cylinder" and not patch.get("cylinder_type"):
        raise ValidationError("cylinder_type is required for cylinder products")


def enforce_rules_purchase_order(patch: dict) -> None:
    from .models.catalog import PRODUCT_CATEGORIES
    from .models.documents import PO_STATUS_PENDING, PO_STATUS_RECEIVED

    _check_enum(patch, "purchase_type", PRODUCT_CATEGORIES)
    _check_enum(patch, "status", (PO_STATUS_PENDING, PO_STATUS_RECEIVED))
    _check_cents(patch, "unit_price_cents")
    if "quantity" in patch:
        parse_positive_quantity(patch["quantity"])


def enforce_rules_cylinder_transaction(patch: dict) -> None:
    from .models.catalog import CYLINDER_TYPES
    from .models.documents import CYLINDER_PAYMENT_METHODS, CYLINDER_STATUSES

    _check_enum(patch, "cylinder_size", CYLINDER_TYPES)
    _check_enum(patch, "payment_method", CYLINDER_PAYMENT_METHODS)
    _check_enum(patch, "status", CYLINDER_STATUSES)
    _check_cents(patch, "amount_cents")
    _check_cents(patch, "cash_amount_cents")
    if "quantity" in patch:
        parse_positive_quantity(patch["quantity"])
    if patch.get("payment_method") == "cheque" and not patch.get("check_number"):
        raise ValidationError("check_number is required for cheque payments")


def enforce_rules_assignment(patch: dict) -> None:
    if "quantity" in patch:
        parse_positive_quantity(patch["quantity"])


def parse_line_items(items: Any) -> list[dict]:
    """
    Validate sale line items: a non-empty list of
    {"product_id": int, "quantity": int > 0, "unit_price_cents": int >= 0 (optional)}.
    """
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")

    parsed = []
    for idx, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f"items[{idx}] must be an object")
        line = {
            "product_id": parse_id(item.get("product_id"), f"items[{idx}].product_id"),
            "quantity": parse_positive_quantity(item.get("quantity"), f"items[{idx}].quantity"),
            "unit_price_cents": None,
        }
        price = item.get("unit_price_cents")
        if price is not None:
            price = _coerce_int(f"items[{idx}].unit_price_cents", price)
            if price < 0 or price > MAX_PRICE_CENTS:
                raise ValidationError(f"items[{idx}].unit_price_cents is out of range")
            line["unit_price_cents"] = price
        parsed.append(line)
    return parsed


def parse_cents(value: Any, key: str) -> int:
    cents = _coerce_int(key, value)
    if cents < 0:
        raise ValidationError(f"{key} must be >= 0")
    if cents > MAX_PRICE_CENTS:
        raise ValidationError(f"{key} cannot exceed {MAX_PRICE_CENTS}")
    return cents
