from datetime import date, datetime

import pytest

from common.date_utils import (
    add_months, days_in_month, format_month, month_window, months_ending_at,
    normalize_month, parse_date_string,
)
from common.exceptions import ValidationError


@pytest.mark.parametrize('value, expected', [
    ('2025-03', date(2025, 3, 1)),
    ('2025-03-17', date(2025, 3, 1)),
    (' 2025-12 ', date(2025, 12, 1)),
    (date(2024, 2, 29), date(2024, 2, 1)),
    (datetime(2025, 7, 31, 23, 59), date(2025, 7, 1)),
])
def test_normalize_month(value, expected):
    assert normalize_month(value) == expected


def test_normalize_month_defaults_to_current_month():
    today = date.today()
    assert normalize_month(None) == date(today.year, today.month, 1)


@pytest.mark.parametrize('value', ['2025-13', '2025-00', '2025/03', 'March', '2025-02-30', 202503])
def test_normalize_month_rejects_malformed(value):
    with pytest.raises(ValidationError):
        normalize_month(value)


@pytest.mark.parametrize('month_start, expected', [
    (date(2025, 2, 1), 28),
    (date(2024, 2, 1), 29),
    (date(2025, 4, 1), 30),
    (date(2025, 5, 1), 31),
])
def test_days_in_month(month_start, expected):
    assert days_in_month(month_start) == expected


def test_add_months_crosses_years():
    assert add_months(date(2025, 11, 1), 3) == date(2026, 2, 1)
    assert add_months(date(2025, 1, 1), -1) == date(2024, 12, 1)


def test_month_window_is_half_open():
    assert month_window(date(2025, 12, 1)) == (date(2025, 12, 1), date(2026, 1, 1))


def test_months_ending_at_oldest_first():
    assert months_ending_at(date(2025, 2, 1), 3) == [
        date(2024, 12, 1), date(2025, 1, 1), date(2025, 2, 1),
    ]


def test_parse_date_string():
    assert parse_date_string('2025-05-10') == date(2025, 5, 10)
    assert parse_date_string(date(2025, 5, 10)) == date(2025, 5, 10)
    with pytest.raises(ValidationError, match='check_in'):
        parse_date_string('10/05/2025', 'check_in')


def test_format_month():
    assert format_month(date(2025, 3, 1)) == 'March 2025'
