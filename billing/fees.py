"""
Management fee arithmetic.

All amounts are integer minor units (cents). The fee is floored so rounding
never charges a member more than the plan percentage of gross revenue.
"""

from common.exceptions import ValidationError


def _check_int(value, field_name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f'{field_name} must be an integer')


def compute_fee(gross_revenue_minor: int, percent: int) -> int:
    """
    Management fee for a month: floor(gross_revenue_minor * percent / 100).

    Args:
        gross_revenue_minor: Gross revenue in minor units (>= 0)
        percent: Fee percentage (0-100)

    Returns:
        int: Fee in minor units

    Example:
        >>> compute_fee(500000, 18)
        90000
    """
    _check_int(gross_revenue_minor, 'gross_revenue_minor')
    _check_int(percent, 'percent')
    if gross_revenue_minor < 0:
        raise ValidationError('gross_revenue_minor cannot be negative')
    if not 0 <= percent <= 100:
        raise ValidationError('percent must be between 0 and 100')
    return gross_revenue_minor * percent // 100


def compute_net_revenue(gross_revenue_minor: int, expenses_minor: int, fee_minor: int) -> int:
    """Net revenue after expenses and fee. Negative for a loss month."""
    return gross_revenue_minor - expenses_minor - fee_minor


def format_money(amount_minor: int, currency: str = 'CAD') -> str:
    """
    Format minor units for display, e.g. 90000 -> '$900.00 CAD'.
    Integer arithmetic only.
    """
    sign = '-' if amount_minor < 0 else ''
    major, minor = divmod(abs(amount_minor), 100)
    return f"{sign}${major:,}.{minor:02d} {currency}"
