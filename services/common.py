"""
Common utilities and shared functions.
Ticker normalization, timestamp handling, and display formatting.
"""

import logging
import math
from datetime import date, datetime, time, timezone
from typing import Optional, Union

logger = logging.getLogger(__name__)

DAYS_PER_YEAR = 365.25
SECONDS_PER_YEAR = DAYS_PER_YEAR * 24 * 60 * 60


def normalize_ticker(ticker: str) -> str:
    """
    Convert a ticker symbol to its canonical upper-case form.

    Examples:
        >>> normalize_ticker(" aapl ")
        'AAPL'
        >>> normalize_ticker("brk-b")
        'BRK-B'
    """
    normalized = (ticker or "").strip().upper()
    if not normalized:
        raise ValueError("Ticker symbol is required")
    return normalized


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_utc_datetime(value: Union[datetime, date]) -> datetime:
    """
    Normalize a timestamp to timezone-aware UTC.

    Naive datetimes (as loaded back from SQLite) are taken to be UTC.
    Plain dates become midnight UTC.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    raise TypeError(f"Expected date or datetime, got {type(value).__name__}")


def years_between(start: Union[datetime, date], end: Union[datetime, date]) -> float:
    """Elapsed time from start to end in years of 365.25 days (negative if end < start)."""
    delta = to_utc_datetime(end) - to_utc_datetime(start)
    return delta.total_seconds() / SECONDS_PER_YEAR


def _is_number(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value)


def format_rate(rate: Optional[float], decimals: int = 2) -> str:
    """
    Format a CAGR/XIRR decimal rate as a signed percentage.

    Examples:
        >>> format_rate(0.1523)
        '+15.23%'
        >>> format_rate(None)
        'N/A'
    """
    if not _is_number(rate):
        return "N/A"
    return f"{rate * 100:+.{decimals}f}%"


def format_percentage(value: float, decimals: int = 2) -> str:
    """Format a value that is already a percentage (e.g. 12.5 -> '+12.50%')."""
    if not _is_number(value):
        return "N/A"
    return f"{value:+.{decimals}f}%"


def format_currency(value: float, symbol: str = "$") -> str:
    """Format an amount as currency, e.g. -1234.5 -> '-$1,234.50'."""
    if not _is_number(value):
        return "N/A"
    sign = "-" if value < 0 else ""
    return f"{sign}{symbol}{abs(value):,.2f}"
