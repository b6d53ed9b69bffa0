"""Shared parsing helpers for blueprints and services.

parse_date:          lenient parse, returns None on bad input
parse_date_input:    strict parse, raises ValidationError on bad input
parse_quantity:      non-negative float or None, raises ValidationError
"""
from datetime import date, datetime

from app.core.exceptions import ValidationError


def parse_date(value):
    """Parse a date string (ISO or DD/MM/YYYY) to a date object.

    Returns None for empty/invalid input. Supports:
    - YYYY-MM-DD (ISO format)
    - YYYY-MM-DDTHH:MM:SS (datetime ISO → .date())
    - DD/MM/YYYY (format used by the field teams' spreadsheets)
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(str(value)).date()
    except (ValueError, TypeError):
        pass
    try:
        return datetime.strptime(str(value), "%d/%m/%Y").date()
    except (ValueError, TypeError):
        return None


def parse_date_input(value, field="date"):
    """Parse a user-supplied date, raising ValidationError on bad input.

    Empty input maps to None (clears the field).
    """
    if value is None or value == "":
        return None
    parsed = parse_date(value)
    if parsed is None:
        raise ValidationError(
            f"{field} is not a valid date. Use YYYY-MM-DD or DD/MM/YYYY.",
            details={field: str(value)},
        )
    return parsed


def parse_quantity(value, field="qty"):
    """Return *value* as a non-negative float, None when empty."""
    if value is None or value == "":
        return None
    try:
        qty = float(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{field} must be a number", details={field: str(value)}) from exc
    if qty < 0:
        raise ValidationError(f"{field} must not be negative", details={field: qty})
    return qty
