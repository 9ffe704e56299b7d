from __future__ import annotations
import math
from datetime import datetime
from possync.time_utils import parse_iso_datetime

from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Boolean, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta


class ValidationError(ValueError):
    """Payload field does not match its column."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer for device payloads:
    - writable_fields: columns a device is allowed to set
    - required: fields that must be present
    - ignored_fields: accepted on the wire but dropped (e.g. device-computed totals)
    - aliases: wire key -> column key
    """
    writable_fields: set[str]
    required: set[str] = field(default_factory=set)
    ignored_fields: set[str] = field(default_factory=set)
    aliases: dict[str, str] = field(default_factory=dict)


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


# Signed 64-bit, the widest INTEGER the supported databases store
_INT_MIN, _INT_MAX = -(2 ** 63), 2 ** 63 - 1


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        # Already an int (but not bool which is a subclass of int)
        if isinstance(value, int) and not isinstance(value, bool):
            if not _INT_MIN <= value <= _INT_MAX:
                raise ValidationError(f"{col.key} is out of range")
            return value
        # String input - must be plain digits (with optional leading minus)
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{col.key} must be an integer")
            # Reject scientific notation (e.g., "1e15", "1E10")
            if 'e' in stripped.lower():
                raise ValidationError(f"{col.key} must be a plain integer (scientific notation not allowed)")
            # Reject decimal points (e.g., "12.5")
            if '.' in stripped:
                raise ValidationError(f"{col.key} must be an integer (no decimals)")
            try:
                parsed = int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
            if not _INT_MIN <= parsed <= _INT_MAX:
                raise ValidationError(f"{col.key} is out of range")
            return parsed
        # Whole floats are what JSON encoders on some devices emit for ints
        if isinstance(value, float):
            if value.is_integer() and _INT_MIN <= value <= _INT_MAX:
                return int(value)
            raise ValidationError(f"{col.key} must be an integer, not a decimal")
        # Other types
        raise ValidationError(f"{col.key} must be an integer")

    # Floats (prices, totals)
    if isinstance(coltype, Float):
        if isinstance(value, bool):
            raise ValidationError(f"{col.key} must be a number")
        if isinstance(value, (int, float)):
            try:
                number = float(value)
            except OverflowError:
                raise ValidationError(f"{col.key} is out of range")
        elif isinstance(value, str):
            try:
                number = float(value.strip())
            except ValueError:
                raise ValidationError(f"{col.key} must be a number")
        else:
            raise ValidationError(f"{col.key} must be a number")
        # NaN and infinity slip past every ">= 0" rule
        if not math.isfinite(number):
            raise ValidationError(f"{col.key} must be a finite number")
        return number

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        # fallback: truthiness
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

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        if isinstance(value, (dict, list)):
            raise ValidationError(f"{col.key} must be a string")
        return str(value).strip()

    # Default: leave as-is
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
) -> dict:
    """
    Validates + normalizes an incoming device payload against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required fields
    Returns a cleaned dict keyed by column name with only writable fields.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("payload must be a JSON object")

    payload = {
        policy.aliases.get(k, k): v
        for k, v in payload.items()
        if k not in policy.ignored_fields
    }

    missing = sorted(f for f in policy.required if payload.get(f) in (None, ""))
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    cleaned: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        # NULL handling: absent and null both mean "use the default"
        if raw is None:
            if not col.nullable and col.default is None:
                raise ValidationError(f"{k} cannot be null")
            continue

        val = _coerce_value(col, raw)

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        cleaned[k] = val

    return cleaned


def enforce_rules_product(cleaned: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    if cleaned.get("price") is not None and cleaned["price"] < 0:
        raise ValidationError("price must be >= 0")
    if cleaned.get("stock") is not None and cleaned["stock"] < 0:
        raise ValidationError("stock must be >= 0")
    if cleaned.get("version") is not None and cleaned["version"] < 1:
        raise ValidationError("version must be >= 1")


def enforce_rules_user(cleaned: dict) -> None:
    if cleaned.get("version") is not None and cleaned["version"] < 1:
        raise ValidationError("version must be >= 1")


def enforce_rules_line_item(cleaned: dict) -> None:
    # Lines move stock, so quantity must be a positive count
    if cleaned.get("quantity") is None or cleaned["quantity"] <= 0:
        raise ValidationError("quantity must be > 0")
    if cleaned.get("price") is None or cleaned["price"] < 0:
        raise ValidationError("price must be >= 0")
