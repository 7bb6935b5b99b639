"""
Value formatting helpers shared by every exporter.

All helpers accept MISSING / None and return a sentinel instead of raising,
so a row that lacks an optional field still renders.
"""

from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional

from dateutil.parser import isoparse

EMPTY = "-"
ELLIPSIS = "..."

DATE_FORMAT = "%d %b %Y"
DATETIME_FORMAT = "%d %b %Y %H:%M:%S"


class _Missing:
    """Sentinel for a path that does not resolve."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"


MISSING = _Missing()


def is_blank(value: Any) -> bool:
    return value is MISSING or value is None or value == ""


def get_nested_value(obj: Any, path: Optional[str]) -> Any:
    """
    Resolve a dotted path such as `actor.name` against dicts and objects.

    `items.length` returns the length of a list. Unresolvable paths return
    MISSING rather than raising.
    """
    if not path:
        return obj if obj is not None else MISSING

    current = obj
    for part in path.split("."):
        if current is None or current is MISSING:
            return MISSING
        if part == "length" and isinstance(current, (list, tuple)):
            current = len(current)
            continue
        if isinstance(current, Mapping):
            if part not in current:
                return MISSING
            current = current[part]
        elif isinstance(current, (list, tuple)) and part.isdigit():
            index = int(part)
            if index >= len(current):
                return MISSING
            current = current[index]
        else:
            if not hasattr(current, part):
                return MISSING
            current = getattr(current, part)
    return MISSING if current is None else current


def display_value(value: Any) -> str:
    """String form of a raw value; blanks become the '-' sentinel."""
    if is_blank(value):
        return EMPTY
    if isinstance(value, bool):
        return format_bool(value)
    if isinstance(value, datetime):
        return format_datetime(value)
    if isinstance(value, date):
        return format_date(value)
    return str(value)


def format_currency(amount: Any) -> str:
    """Fixed two decimals with no locale grouping or symbol: 1234.5 -> '1234.50'."""
    if is_blank(amount) or isinstance(amount, bool):
        return EMPTY
    try:
        quantized = Decimal(str(amount)).quantize(Decimal("0.01"))
    except (InvalidOperation, ValueError):
        return EMPTY
    return f"{quantized:.2f}"


def _coerce_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        try:
            return isoparse(value.strip())
        except (ValueError, OverflowError):
            return None
    return None


def format_date(value: Any) -> str:
    """Short date such as '17 Oct 2026'."""
    if is_blank(value):
        return EMPTY
    parsed = _coerce_datetime(value)
    if parsed is None:
        return EMPTY
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    return parsed.strftime(DATE_FORMAT)


def format_datetime(value: Any) -> str:
    """Date and time in UTC, e.g. '17 Oct 2026 14:05:09'."""
    if is_blank(value):
        return EMPTY
    parsed = _coerce_datetime(value)
    if parsed is None:
        return EMPTY
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    return parsed.strftime(DATETIME_FORMAT)


def format_bool(value: Any) -> str:
    return "Yes" if value else "No"


def truncate_text(value: Any, max_length: int = 50) -> str:
    if is_blank(value):
        return EMPTY
    text = str(value)
    if len(text) <= max_length:
        return text
    return text[:max_length] + ELLIPSIS
