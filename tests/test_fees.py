import pytest

from billing.fee_plans import tier_percent
from billing.fees import compute_fee, compute_net_revenue, format_money
from common.exceptions import ValidationError


def test_scenario_fee_and_net():
    fee = compute_fee(500000, 18)
    assert fee == 90000
    assert compute_net_revenue(500000, 80000, fee) == 330000


@pytest.mark.parametrize('gross, percent, expected', [
    (0, 22, 0),
    (1, 12, 0),
    (999, 12, 119),
    (12345, 18, 2222),
    (100, 100, 100),
    (500000, 0, 0),
])
def test_fee_is_floored(gross, percent, expected):
    assert compute_fee(gross, percent) == expected


@pytest.mark.parametrize('percent', [0, 12, 18, 22, 100])
def test_fee_never_exceeds_exact_percentage(percent):
    for gross in range(0, 2000, 7):
        assert compute_fee(gross, percent) * 100 <= gross * percent


@pytest.mark.parametrize('percent', [12, 18, 22])
def test_fee_monotonic_in_gross(percent):
    fees = [compute_fee(gross, percent) for gross in range(0, 5000, 3)]
    assert fees == sorted(fees)


def test_net_revenue_may_be_negative():
    assert compute_net_revenue(10000, 25000, 1200) == -16200


@pytest.mark.parametrize('gross, percent', [(-1, 12), (100, 101), (100, -1), (100.0, 12), (True, 12)])
def test_compute_fee_rejects_bad_input(gross, percent):
    with pytest.raises(ValidationError):
        compute_fee(gross, percent)


@pytest.mark.parametrize('amount, expected', [
    (90000, '$900.00 CAD'),
    (0, '$0.00 CAD'),
    (5, '$0.05 CAD'),
    (123456789, '$1,234,567.89 CAD'),
    (-16200, '-$162.00 CAD'),
])
def test_format_money(amount, expected):
    assert format_money(amount) == expected


def test_tier_percents():
    assert tier_percent('launch') == 12
    assert tier_percent('Elevate') == 18
    assert tier_percent('maximize') == 22
    with pytest.raises(ValidationError):
        tier_percent('premium')
