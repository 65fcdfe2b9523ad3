from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError, InvalidQuantity
from .time_utils import parse_iso_date


# Maximum price: N9,999,999.99 (999,999,999 kobo)
MAX_PRICE_CENTS = 999_999_999

# Largest carton count accepted in a single line or stock write
MAX_CARTONS = 1_000_000


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


def coerce_int(value: Any, field: str) -> int:
    """Strict integer coercion: rejects bools, floats, decimals and scientific notation."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(value, col.key)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be true or false")

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

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def enforce_rules_product(patch: dict) -> None:
    if "price_per_carton_cents" in patch and patch["price_per_carton_cents"] is not None:
        price = patch["price_per_carton_cents"]
        if price < 0:
            raise ValidationError("price_per_carton_cents must be >= 0")
        if price > MAX_PRICE_CENTS:
            raise ValidationError(f"price_per_carton_cents cannot exceed {MAX_PRICE_CENTS}")


def validate_cartons(value: Any, field: str = "cartons", *, allow_zero: bool = True) -> int:
    """Carton counts are integers; zero is allowed for stock levels but not for sale lines."""
    try:
        cartons = coerce_int(value, field)
    except ValidationError as exc:
        raise InvalidQuantity(str(exc), details={"field": field}) from exc
    if cartons < 0 or (cartons == 0 and not allow_zero):
        bound = ">= 0" if allow_zero else "> 0"
        raise InvalidQuantity(f"{field} must be {bound}", details={"field": field, "value": cartons})
    if cartons > MAX_CARTONS:
        raise InvalidQuantity(f"{field} cannot exceed {MAX_CARTONS}", details={"field": field, "value": cartons})
    return cartons


def require_text(value: Any, field: str, max_length: int = 255) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required")
    text = str(value).strip()
    if len(text) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}")
    return text


def parse_line_items(items: Any) -> list[tuple[int, int]]:
    """
    Normalize [{product_id, cartons}, ...] into (product_id, cartons) pairs.

    Client-supplied prices or totals are ignored; the catalog is authoritative.
    """
    if not isinstance(items, list) or not items:
        raise ValidationError("At least one item is required")

    parsed: list[tuple[int, int]] = []
    for i, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f"items[{i}] must be an object")
        if "product_id" not in item:
            raise ValidationError(f"items[{i}].product_id is required")
        product_id = coerce_int(item["product_id"], f"items[{i}].product_id")
        cartons = validate_cartons(item.get("cartons"), f"items[{i}].cartons", allow_zero=False)
        parsed.append((product_id, cartons))
    return parsed


def aggregate_line_items(items: list[tuple[int, int]]) -> dict[int, int]:
    """Sum cartons per product, preserving first-seen order."""
    totals: dict[int, int] = {}
    for product_id, cartons in items:
        totals[product_id] = totals.get(product_id, 0) + cartons
    return totals


def parse_date_arg(value: Any, field: str):
    """YYYY-MM-DD query/body value -> date (None when absent)."""
    if value is None or value == "":
        return None
    try:
        return parse_iso_date(str(value))
    except ValueError:
        raise ValidationError(f"{field} must be a date (YYYY-MM-DD)", details={field: value})


def require_object(payload: Any) -> dict:
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def require_int(value: Any, field: str) -> int:
    if value is None or value == "":
        raise ValidationError(f"{field} is required")
    return coerce_int(value, field)
