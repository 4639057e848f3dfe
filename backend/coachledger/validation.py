# Overview: Request payload coercion for API routes; rejects bad input before any service call.

from __future__ import annotations

from typing import Any

from .errors import ValidationError


# Maximum price: 9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999


def require_json_object(data: Any) -> dict:
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def coerce_int(value: Any, field: str) -> int:
    """
    Strict integer coercion: rejects floats, booleans and scientific notation.
    """
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def require_int(data: dict, field: str) -> int:
    if data.get(field) is None:
        raise ValidationError(f"{field} is required")
    return coerce_int(data[field], field)


def optional_int(data: dict, field: str) -> int | None:
    if data.get(field) is None:
        return None
    return coerce_int(data[field], field)


def require_price_cents(data: dict, field: str = "price_cents") -> int:
    price = require_int(data, field)
    if price > MAX_PRICE_CENTS:
        raise ValidationError(f"{field} exceeds the maximum of {MAX_PRICE_CENTS}")
    return price


def optional_str(data: dict, field: str, max_length: int = 255) -> str | None:
    value = data.get(field)
    if value is None:
        return None
    value = str(value).strip()
    if len(value) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return value or None


def parse_bool_arg(value: str | None, field: str) -> bool:
    """
    Parse a mandatory true/false flag. There is no default: a missing flag
    is a validation error.
    """
    if value is None:
        raise ValidationError(f"{field} is required (true or false)")
    normalized = str(value).strip().lower()
    if normalized == "true":
        return True
    if normalized == "false":
        return False
    raise ValidationError(f"{field} must be true or false")
