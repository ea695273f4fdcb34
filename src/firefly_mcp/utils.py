"""Utility functions for Firefly III data."""

import calendar
from datetime import datetime
from decimal import Decimal
from typing import Any


ACCOUNT_TYPES = ("asset", "expense", "revenue", "liability", "special")

# Firefly account type names that map onto our liability group
_LIABILITY_TYPES = {"liability", "liabilities", "loan", "debt", "mortgage"}


def parse_amount(value: Any) -> float:
    """Parse a Firefly amount string ("12.50") into a float.

    Firefly sends amounts as strings and uses null for absent foreign
    amounts. Anything that does not parse becomes 0.0.
    """
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def normalize_account_type(account_type: str | None) -> str:
    """Map a Firefly account type onto asset/expense/revenue/liability/special."""
    value = (account_type or "").strip().lower()
    if value in ("asset", "expense", "revenue"):
        return value
    if value in _LIABILITY_TYPES:
        return "liability"
    return "special"


def month_bounds(year: int, month: int) -> tuple[datetime, datetime]:
    """Return the first and last instant of a calendar month.

    Raises:
        ValueError: If month is outside 1..12.
    """
    if not 1 <= month <= 12:
        raise ValueError(f"month must be in 1..12, got {month}")
    last_day = calendar.monthrange(year, month)[1]
    start = datetime(year, month, 1)
    end = datetime(year, month, last_day, 23, 59, 59, 999999)
    return start, end


def format_amount(value: Any) -> str:
    """Render an amount for a request payload without rounding it.

    Strings are sent as given; numbers use their shortest exact decimal form
    ("0.00012345", "3.2").
    """
    if isinstance(value, str):
        return value.strip()
    return format(Decimal(repr(float(value))), "f")
