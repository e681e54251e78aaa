"""Utility functions for money, dates and identifiers."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from hcbsrecon.core.errors import BusinessError


CENT = Decimal("0.01")


def to_money(value: Any) -> Decimal:
    """Convert a number to a Decimal rounded to cents.

    Floats go through ``str`` first so ``0.1`` becomes ``Decimal("0.10")``
    rather than its binary expansion.
    """
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, float):
        amount = Decimal(str(value))
    else:
        amount = Decimal(value)
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def parse_money(value: Any) -> Decimal | None:
    """Like ``to_money`` but returns None for values that are not numbers."""
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = to_money(value)
    except (InvalidOperation, TypeError, ValueError):
        return None
    return amount if amount.is_finite() else None


def to_cents(amount: Decimal) -> int:
    return int(to_money(amount) * 100)


def from_cents(cents: int | None) -> Decimal:
    return (Decimal(cents or 0) / 100).quantize(CENT)


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Naive UTC timestamp, the same clock as SQLite CURRENT_TIMESTAMP."""
    return datetime.now(timezone.utc).replace(tzinfo=None, microsecond=0)


def age_in_days(since: date, as_of: date | None = None) -> int:
    """Whole days elapsed from ``since`` to ``as_of`` (today by default)."""
    return ((as_of or date.today()) - since).days


def month_key(value: date) -> str:
    return value.strftime("%Y-%m")


def month_starts(start: date, end: date) -> list[date]:
    """First day of every calendar month touched by [start, end]."""
    months = []
    current = start.replace(day=1)
    while current <= end:
        months.append(current)
        current = date(current.year + current.month // 12, current.month % 12 + 1, 1)
    return months


def validate_date_range(start: date, end: date) -> None:
    """Raise BusinessError when the range is inverted."""
    if start > end:
        raise BusinessError(
            "Start date must not be after end date",
            "date.invalidRange",
            {"start_date": start.isoformat(), "end_date": end.isoformat()},
        )


def safe_ratio(numerator: Decimal | int, denominator: Decimal | int) -> float:
    """``numerator / denominator`` as a float, or 0.0 when the denominator is zero."""
    if not denominator:
        return 0.0
    return float(Decimal(numerator) / Decimal(denominator))
