# Copyright 2026 Truefolio
# SPDX-License-Identifier: MIT
"""Shared helpers: tolerant date parsing, month names, safe arithmetic."""

from __future__ import annotations

import calendar
import logging
import math
from datetime import date, datetime
from typing import Any, Callable, Optional, Tuple, TypeVar, Union

import pytz

logger = logging.getLogger(__name__)

T = TypeVar("T")

MONTHS: Tuple[str, ...] = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)

_MONTH_ALIASES = {
    "january": "Jan", "february": "Feb", "march": "Mar", "april": "Apr",
    "june": "Jun", "july": "Jul", "august": "Aug", "september": "Sep",
    "sept": "Sep", "october": "Oct", "november": "Nov", "december": "Dec",
}

DateLike = Union[date, datetime, str, None]


class InvalidMonthError(ValueError):
    """Raised when a month cannot be resolved to Jan..Dec."""


def normalize_month(month: Union[int, str]) -> str:
    """Normalize 1-12, "Jan", "JAN", "January" or "Sept" to the short name."""
    if isinstance(month, int) and not isinstance(month, bool):
        if 1 <= month <= 12:
            return MONTHS[month - 1]
        raise InvalidMonthError(f"Invalid month: {month}")
    text = str(month).strip()
    for name in MONTHS:
        if text.lower() == name.lower():
            return name
    alias = _MONTH_ALIASES.get(text.lower())
    if alias is None:
        raise InvalidMonthError(f"Invalid month: {month}")
    return alias


def month_number(month: Union[int, str]) -> int:
    """Return 1-12 for any accepted month form."""
    return MONTHS.index(normalize_month(month)) + 1


def parse_date(value: DateLike) -> Optional[date]:
    """Parse ISO dates/datetimes, DD-MM-YYYY and DD.MM.YYYY. None when unparseable."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        pass
    for fmt in ("%d-%m-%Y", "%d.%m.%Y", "%d/%m/%Y"):
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        return None


def format_date(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def today(timezone: Optional[str] = None) -> date:
    """Current date in the configured timezone."""
    if timezone is None:
        from truefolio.core.settings import get_timezone
        timezone = get_timezone()
    try:
        tz = pytz.timezone(timezone)
    except pytz.UnknownTimeZoneError:
        logger.warning("[UTILS] Unknown timezone %s; using UTC", timezone)
        tz = pytz.UTC
    return datetime.now(tz).date()


def last_day_of_month(year: int, month: int) -> date:
    return date(year, month, calendar.monthrange(year, month)[1])


def shift_month(year: int, month: int, delta: int) -> Tuple[int, int]:
    """Move (year, month) by delta months."""
    idx = year * 12 + (month - 1) + delta
    return idx // 12, idx % 12 + 1


def days_between(start: date, end: date) -> int:
    """Whole days from start to end, never negative."""
    return max(0, (end - start).days)


def safe_divide(numerator: float, denominator: float, fallback: float = 0.0) -> float:
    """Division that returns fallback instead of raising or producing nan/inf."""
    if not denominator:
        return fallback
    result = numerator / denominator
    if math.isnan(result) or math.isinf(result):
        return fallback
    return result


def is_finite_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def safe_calculation(fn: Callable[[], T], fallback: T, message: str) -> T:
    """Run fn; on any error log a warning and return fallback."""
    try:
        return fn()
    except Exception as e:
        logger.warning("[CALC] %s: %s", message, e)
        return fallback
