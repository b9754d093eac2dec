"""
Ledger Aggregator.

Reduces the ledger entries and completed bookings of one scope (a whole org
or a single property) over one calendar month into a KPI snapshot.

Management fee fields are left empty here; the fee is applied at read time
from the plan resolved for the month (see KPISnapshot.with_fee).
"""

import logging
from dataclasses import dataclass, replace
from datetime import date
from typing import Iterable, Optional, Tuple, Dict, Any

from sqlalchemy.orm import Session

from common.date_utils import days_in_month, month_window, normalize_month

from .fees import compute_fee, compute_net_revenue

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KPISnapshot:
    """Monthly KPIs for an org or one property."""
    org_id: str
    month: date
    property_id: Optional[str] = None
    gross_revenue_minor: int = 0
    expenses_minor: int = 0
    nights_booked: int = 0
    days_in_month: int = 30
    property_count: int = 1
    fee_percent: Optional[int] = None
    plan_tier: Optional[str] = None
    management_fee_minor: int = 0

    @property
    def net_revenue_minor(self) -> int:
        return compute_net_revenue(self.gross_revenue_minor, self.expenses_minor, self.management_fee_minor)

    @property
    def occupancy_rate(self) -> float:
        return self.nights_booked / (self.days_in_month * max(self.property_count, 1))

    @property
    def vacancy_rate(self) -> float:
        return 1 - self.occupancy_rate

    def with_fee(self, percent: int, tier: Optional[str] = None) -> 'KPISnapshot':
        """Copy with the management fee computed at percent."""
        return replace(
            self,
            fee_percent=percent,
            plan_tier=tier,
            management_fee_minor=compute_fee(self.gross_revenue_minor, percent),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'org_id': self.org_id,
            'property_id': self.property_id,
            'month': self.month.isoformat(),
            'gross_revenue_minor': self.gross_revenue_minor,
            'expenses_minor': self.expenses_minor,
            'management_fee_minor': self.management_fee_minor,
            'fee_percent': self.fee_percent,
            'plan_tier': self.plan_tier,
            'net_revenue_minor': self.net_revenue_minor,
            'nights_booked': self.nights_booked,
            'days_in_month': self.days_in_month,
            'property_count': self.property_count,
            'occupancy_rate': self.occupancy_rate,
            'vacancy_rate': self.vacancy_rate,
        }


def split_amounts(amounts: Iterable[int]) -> Tuple[int, int]:
    """
    Partition signed amounts into (gross_revenue, expenses).

    Positive amounts are revenue, negative amounts are expenses (returned as
    a positive total). Zero amounts count towards neither.
    """
    gross = 0
    expenses = 0
    for amount in amounts:
        if amount > 0:
            gross += amount
        elif amount < 0:
            expenses += -amount
    return gross, expenses


def count_nights(bookings: Iterable) -> int:
    """Total nights of completed bookings. Other statuses contribute nothing."""
    return sum(b.nights for b in bookings if b.status == 'completed')


class LedgerAggregator:
    """
    Builds KPI snapshots from the store.

    Args:
        store: BillingStore
    """

    def __init__(self, store):
        self.store = store

    def aggregate(self, session: Session, org_id: str, month, property_id: str = None) -> KPISnapshot:
        """
        KPI snapshot for the scope over the month containing `month`.

        An org-wide scope spreads occupancy across all of the org's
        properties. A month with no activity yields an all-zero snapshot.

        Raises:
            NotFoundError: Unknown organization, or property not in the org
            ValidationError: Malformed month
        """
        month_start = normalize_month(month)
        start, end = month_window(month_start)

        self.store.require_organization(session, org_id)
        if property_id:
            self.store.require_property(session, org_id, property_id)
            property_count = 1
        else:
            property_count = max(self.store.count_properties(session, org_id), 1)

        entries = self.store.ledger_entries(session, org_id, start, end, property_id)
        gross, expenses = split_amounts(entry.amount_minor for entry in entries)

        bookings = self.store.completed_bookings(session, org_id, start, end, property_id)
        nights = count_nights(bookings)

        snapshot = KPISnapshot(
            org_id=org_id,
            month=month_start,
            property_id=property_id,
            gross_revenue_minor=gross,
            expenses_minor=expenses,
            nights_booked=nights,
            days_in_month=days_in_month(month_start),
            property_count=property_count,
        )
        logger.debug(
            f"Aggregated {len(entries)} entries / {len(bookings)} bookings for "
            f"org={org_id} property={property_id or '-'} {month_start:%Y-%m}"
        )
        return snapshot
