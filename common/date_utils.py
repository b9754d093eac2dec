"""
Calendar-month utilities for billing periods.

Every billing period is a calendar month represented by its first day.
Months are accepted as YYYY-MM or YYYY-MM-DD strings, or as date objects.
"""

import calendar
import re
from datetime import date, datetime
from typing import List, Tuple, Union

from .exceptions import ValidationError

_MONTH_RE = re.compile(r'^(\d{4})-(\d{2})(?:-(\d{2}))?$')
_DATE_RE = re.compile(r'^\d{4}-\d{2}-\d{2}$')


def days_in_month(month_start: date) -> int:
    """Number of calendar days (28-31) in the month containing month_start."""
    return calendar.monthrange(month_start.year, month_start.month)[1]


def add_months(month_start: date, count: int) -> date:
    """
    Shift a first-of-month date by count months (negative goes back).

    Example:
        >>> add_months(date(2025, 11, 1), 3)
        date(2026, 2, 1)
    """
    index = month_start.year * 12 + (month_start.month - 1) + count
    return date(index // 12, index % 12 + 1, 1)


def month_window(month_start: date) -> Tuple[date, date]:
    """Half-open window [month_start, next month start)."""
    return month_start, add_months(month_start, 1)


def normalize_month(value: Union[str, date, datetime, None]) -> date:
    """
    Normalize a month expression to the first day of that month.

    Args:
        value: 'YYYY-MM', 'YYYY-MM-DD', a date, or None (current month)

    Returns:
        date: First day of the month

    Raises:
        ValidationError: If the string is not a valid month
    """
    if value is None:
        today = date.today()
        return date(today.year, today.month, 1)

    if isinstance(value, datetime):
        return date(value.year, value.month, 1)

    if isinstance(value, date):
        return date(value.year, value.month, 1)

    if not isinstance(value, str):
        raise ValidationError(f'month must be YYYY-MM, got {value!r}')

    match = _MONTH_RE.match(value.strip())
    if not match:
        raise ValidationError(f'month must be YYYY-MM, got "{value}"')

    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        raise ValidationError(f'month out of range: "{value}"')

    if match.group(3):
        # Reject impossible days such as 2025-02-30
        parse_date_string(value.strip())

    return date(year, month, 1)


def parse_date_string(date_str: str, field_name: str = 'date') -> date:
    """
    Parse a date string in YYYY-MM-DD format.

    Raises:
        ValidationError: If the string is not a valid calendar date
    """
    if isinstance(date_str, date):
        return date_str
    if not isinstance(date_str, str) or not _DATE_RE.match(date_str):
        raise ValidationError(f'{field_name} must be YYYY-MM-DD')
    try:
        return datetime.strptime(date_str, '%Y-%m-%d').date()
    except ValueError:
        raise ValidationError(f'{field_name} is not a valid date: "{date_str}"')


def months_ending_at(last_month: date, count: int) -> List[date]:
    """
    The count months ending at last_month, oldest first.

    Example:
        >>> months_ending_at(date(2025, 2, 1), 3)
        [date(2024, 12, 1), date(2025, 1, 1), date(2025, 2, 1)]
    """
    return [add_months(last_month, offset) for offset in range(-(count - 1), 1)]


def format_month(month_start: date) -> str:
    """Human label for a bill month, e.g. 'March 2025'."""
    return month_start.strftime('%B %Y')
