from datetime import date

import pytest
from sqlalchemy import func

from common.exceptions import FeeResolutionError, NotFoundError, ValidationError
from common.models import FeePlan
from tests.conftest import ORG_ID, OWNER_ID


def _resolve(service, user_id, target):
    with service.store.session_scope() as session:
        return service.resolver.resolve(session, ORG_ID, user_id, target)


def test_default_tier_when_no_plan(service, org):
    plan = _resolve(service, None, date(2025, 3, 1))
    assert (plan.tier, plan.percent, plan.source) == ('launch', 12, 'default')
    assert plan.is_default


def test_latest_plan_on_or_before_target(service, org):
    service.set_plan(ORG_ID, 'elevate', effective_date='2025-01-01')
    service.set_plan(ORG_ID, 'maximize', effective_date='2025-03-01')

    assert _resolve(service, None, date(2024, 12, 1)).tier == 'launch'
    assert _resolve(service, None, date(2025, 2, 1)).tier == 'elevate'
    assert _resolve(service, None, date(2025, 3, 1)).tier == 'maximize'


def test_future_plan_never_selected(service, org):
    service.set_plan(ORG_ID, 'maximize', effective_date='2025-03-02')
    plan = _resolve(service, None, date(2025, 3, 1))
    assert plan.is_default


def test_user_plan_then_org_plan(service, org):
    service.set_plan(ORG_ID, 'elevate', effective_date='2025-01-01')
    service.set_plan(ORG_ID, 'maximize', user_id=OWNER_ID, effective_date='2025-02-01')

    user_plan = _resolve(service, OWNER_ID, date(2025, 3, 1))
    assert (user_plan.tier, user_plan.source) == ('maximize', 'user')

    # Before the user plan starts the org plan applies
    fallback = _resolve(service, OWNER_ID, date(2025, 1, 1))
    assert (fallback.tier, fallback.source) == ('elevate', 'org')

    # Other users only see the org plan
    assert _resolve(service, 'someone-else', date(2025, 3, 1)).tier == 'elevate'


def test_same_day_plan_updates_in_place(service, org):
    service.set_plan(ORG_ID, 'elevate', effective_date='2025-01-01')
    plan = service.set_plan(ORG_ID, 'maximize', effective_date='2025-01-01')

    assert (plan.tier, plan.percent) == ('maximize', 22)
    with service.store.session_scope() as session:
        count = session.query(func.count(FeePlan.id)).filter_by(org_id=ORG_ID).scalar()
    assert count == 1


def test_org_and_user_plans_on_same_day_are_distinct(service, org):
    service.set_plan(ORG_ID, 'elevate', effective_date='2025-01-01')
    service.set_plan(ORG_ID, 'maximize', user_id=OWNER_ID, effective_date='2025-01-01')

    with service.store.session_scope() as session:
        count = session.query(func.count(FeePlan.id)).filter_by(org_id=ORG_ID).scalar()
    assert count == 2


def test_set_plan_validation(service, org):
    with pytest.raises(ValidationError):
        service.set_plan(ORG_ID, 'platinum')
    with pytest.raises(ValidationError):
        service.set_plan(ORG_ID, 'launch', effective_date='01/01/2025')
    with pytest.raises(NotFoundError):
        service.set_plan('missing-org', 'launch')


def test_set_plan_defaults_to_today(service, org):
    plan = service.set_plan(ORG_ID, 'elevate')
    assert plan.effective_date == date.today()
    assert service.current_plan(ORG_ID).tier == 'elevate'


def test_inconsistent_stored_plan_is_fatal(service, org):
    with service.store.session_scope() as session:
        session.add(FeePlan(org_id=ORG_ID, user_scope='*', tier='elevate', percent=30,
                            effective_date=date(2025, 1, 1)))

    with pytest.raises(FeeResolutionError):
        _resolve(service, None, date(2025, 3, 1))
    with pytest.raises(FeeResolutionError):
        service.generate_invoice(ORG_ID, '2025-03')


def test_plan_change_propagates_to_live_kpis(service, march_ledger):
    service.set_plan(ORG_ID, 'elevate', effective_date='2025-01-01')
    assert service.get_kpis(ORG_ID, '2025-03').management_fee_minor == 90000

    # Backdated correction
    service.set_plan(ORG_ID, 'maximize', effective_date='2025-02-01')
    snapshot = service.get_kpis(ORG_ID, '2025-03')
    assert snapshot.management_fee_minor == 110000
    assert snapshot.net_revenue_minor == 500000 - 80000 - 110000


def test_resolve_percent(service, org):
    service.set_plan(ORG_ID, 'elevate', effective_date='2025-01-01')
    with service.store.session_scope() as session:
        assert service.resolver.resolve_percent(session, ORG_ID, None, date(2025, 3, 1)) == 18
        assert service.resolver.resolve_percent(session, ORG_ID, OWNER_ID, date(2024, 6, 1)) == 12
