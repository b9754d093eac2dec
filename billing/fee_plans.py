"""
Fee Plan Resolver.

Finds the management-fee percentage in effect for an org (and optionally one
of its users) at a target date. Lookup order:

1. the user's plan with the latest effective_date <= target date
2. the org-level plan (no user) with the same rule
3. the default tier

Resolution always hits the store; nothing is cached between requests so a
backdated plan change shows up in every KPI view computed afterwards.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional, Dict, Any

from sqlalchemy.orm import Session

from common.exceptions import FeeResolutionError, ValidationError
from common.date_utils import parse_date_string

logger = logging.getLogger(__name__)

# Fixed percentage per tier
TIER_PERCENTS = {
    'launch': 12,
    'elevate': 18,
    'maximize': 22,
}
DEFAULT_TIER = 'launch'


def tier_percent(tier: str) -> int:
    """
    Percentage for a tier name.

    Raises:
        ValidationError: Unknown tier
    """
    key = tier.strip().lower() if isinstance(tier, str) else ''
    if key not in TIER_PERCENTS:
        raise ValidationError(f'tier must be one of: {"|".join(TIER_PERCENTS)}')
    return TIER_PERCENTS[key]


@dataclass(frozen=True)
class ResolvedPlan:
    """The plan applied to a fee computation and where it came from."""
    tier: str
    percent: int
    source: str  # 'user', 'org' or 'default'
    effective_date: Optional[date] = None
    user_id: Optional[str] = None

    @property
    def is_default(self) -> bool:
        return self.source == 'default'

    def to_dict(self) -> Dict[str, Any]:
        return {
            'tier': self.tier,
            'percent': self.percent,
            'source': self.source,
            'is_default': self.is_default,
            'effective_date': self.effective_date.isoformat() if self.effective_date else None,
            'user_id': self.user_id,
        }


class FeePlanResolver:
    """
    Resolves and records fee plans.

    Args:
        store: BillingStore
        default_tier: Tier used when no plan row applies
    """

    def __init__(self, store, default_tier: str = DEFAULT_TIER):
        if default_tier not in TIER_PERCENTS:
            raise ValueError(f"Unknown default tier: {default_tier}")
        self.store = store
        self.default_tier = default_tier

    def resolve(self, session: Session, org_id: str, user_id: Optional[str], target_date: date) -> ResolvedPlan:
        """
        Plan in effect for (org, user) at target_date.

        Raises:
            FeeResolutionError: A stored plan is inconsistent (unknown tier,
                percent out of range or not matching its tier)
        """
        if user_id:
            plan = self.store.latest_fee_plan(session, org_id, user_id, target_date)
            if plan is not None:
                return self._from_row(plan, 'user')

        plan = self.store.latest_fee_plan(session, org_id, None, target_date)
        if plan is not None:
            return self._from_row(plan, 'org')

        logger.debug(
            f"No fee plan for org={org_id} user={user_id} at {target_date}; "
            f"using default tier {self.default_tier}"
        )
        return ResolvedPlan(
            tier=self.default_tier,
            percent=TIER_PERCENTS[self.default_tier],
            source='default',
            user_id=user_id,
        )

    def resolve_percent(self, session: Session, org_id: str, user_id: Optional[str], target_date: date) -> int:
        return self.resolve(session, org_id, user_id, target_date).percent

    def set_plan(self, session: Session, org_id: str, tier: str, user_id: Optional[str] = None,
                 effective_date=None) -> ResolvedPlan:
        """
        Record a plan effective from effective_date (default today).
        A second plan for the same (org, user, day) replaces the first.
        """
        percent = tier_percent(tier)
        tier = tier.strip().lower()
        effective = parse_date_string(effective_date, 'effective_date') if effective_date else date.today()

        self.store.require_organization(session, org_id)
        row = self.store.upsert_fee_plan(session, org_id, user_id, tier, percent, effective)
        logger.info(
            f"Fee plan set: org={org_id} user={user_id or '-'} tier={tier} ({percent}%) "
            f"effective {effective}"
        )
        return self._from_row(row, 'user' if user_id else 'org')

    def _from_row(self, plan, source: str) -> ResolvedPlan:
        expected = TIER_PERCENTS.get(plan.tier)
        if expected is None:
            raise FeeResolutionError(f'Fee plan {plan.id} has unknown tier "{plan.tier}"')
        if plan.percent is None or not 0 <= plan.percent <= 100 or plan.percent != expected:
            raise FeeResolutionError(
                f'Fee plan {plan.id} percent {plan.percent} does not match tier '
                f'{plan.tier} ({expected}%)'
            )
        return ResolvedPlan(
            tier=plan.tier,
            percent=plan.percent,
            source=source,
            effective_date=plan.effective_date,
            user_id=plan.user_id,
        )
