"""
Invoice Generator.

Produces the monthly management-fee invoice for (org, month[, property]),
or returns the one already stored for that key. Generation is idempotent:
the insert is a single insert-if-absent statement against the unique
(org_id, bill_month, scope_key) constraint, so concurrent calls for one
period leave exactly one row and the losing call reads the winner's row.

Fee columns are frozen into the invoice when it is generated. They only
change through reapply_fees().
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Optional, Dict, Any
from uuid import uuid4

from common.config import BillingConfig
from common.date_utils import normalize_month
from common.exceptions import ConflictError
from common.models import Invoice, ORG_SCOPE

from .aggregator import LedgerAggregator
from .fee_plans import FeePlanResolver
from .fees import compute_fee, compute_net_revenue

logger = logging.getLogger(__name__)


def make_invoice_number(prefix: str, org_id: str, bill_month: date, property_id: str = None) -> str:
    """
    Stable invoice number derived from the invoice key.

    Property invoices carry the whole property id, so two properties of one
    org never share a number for the same month.

    Example:
        >>> make_invoice_number('INV', '5f0c2a9e-...', date(2025, 3, 1))
        'INV-202503-5F0C2A9E'
    """
    number = f"{prefix}-{bill_month:%Y%m}-{org_id.replace('-', '')[:8].upper()}"
    if property_id:
        number += f"-{property_id}"
    return number


@dataclass
class GenerationResult:
    """Invoice returned by generate_or_fetch and whether this call created it."""
    invoice: Invoice
    was_newly_created: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            'invoice': self.invoice.to_dict(),
            'was_newly_created': self.was_newly_created,
        }


class InvoiceGenerator:
    """
    Orchestrates aggregation, plan resolution and fee computation into invoices.

    Args:
        store: BillingStore
        aggregator: LedgerAggregator
        resolver: FeePlanResolver
        config: BillingConfig (invoice number prefix)
    """

    def __init__(self, store, aggregator: LedgerAggregator, resolver: FeePlanResolver,
                 config: BillingConfig = None):
        self.store = store
        self.aggregator = aggregator
        self.resolver = resolver
        self.config = config or BillingConfig()

    def generate_or_fetch(self, org_id: str, month, property_id: str = None) -> GenerationResult:
        """
        Return the invoice for the period, creating it if it does not exist.

        A period without activity still gets a zero-amount invoice.

        Raises:
            ValidationError: Malformed month
            NotFoundError: Unknown organization or property
            FeeResolutionError: Stored fee plan is inconsistent
        """
        bill_month = normalize_month(month)

        with self.store.session_scope() as session:
            self.store.require_organization(session, org_id)
            owner_user_id = None
            if property_id:
                owner_user_id = self.store.require_property(session, org_id, property_id).owner_user_id

            existing = self.store.find_invoice(session, org_id, bill_month, property_id)
            if existing is not None:
                logger.debug(f"Invoice {existing.invoice_number} already exists")
                return GenerationResult(existing, False)

            snapshot = self.aggregator.aggregate(session, org_id, bill_month, property_id)
            plan = self.resolver.resolve(session, org_id, owner_user_id, bill_month)
            fee = compute_fee(snapshot.gross_revenue_minor, plan.percent)

            now = datetime.now(timezone.utc)
            values = {
                'id': str(uuid4()),
                'org_id': org_id,
                'property_id': property_id,
                'scope_key': property_id or ORG_SCOPE,
                'user_id': owner_user_id,
                'bill_month': bill_month,
                'invoice_number': make_invoice_number(
                    self.config.invoice_prefix, org_id, bill_month, property_id),
                'amount_due_minor': fee,
                'status': 'due',
                'gross_revenue_minor': snapshot.gross_revenue_minor,
                'expenses_minor': snapshot.expenses_minor,
                'fee_percent': plan.percent,
                'plan_tier': plan.tier,
                'fee_minor': fee,
                'net_revenue_minor': compute_net_revenue(
                    snapshot.gross_revenue_minor, snapshot.expenses_minor, fee),
                'created_at': now,
                'updated_at': now,
            }
            self.store.insert_invoice_if_absent(session, values)

            # Locking read so a row committed by a concurrent winner is visible
            invoice = self.store.find_invoice(session, org_id, bill_month, property_id, lock=True)
            if invoice is None:
                raise ConflictError(
                    f'Invoice for org={org_id} month={bill_month:%Y-%m} could not be stored or read back'
                )
            created = invoice.id == values['id']

        if created:
            logger.info(
                f"Invoice {invoice.invoice_number} created: org={org_id} "
                f"property={property_id or '-'} month={bill_month:%Y-%m} "
                f"fee={fee} ({plan.tier} {plan.percent}%)"
            )
        else:
            logger.info(f"Invoice {invoice.invoice_number} created concurrently; returning stored row")
        return GenerationResult(invoice, created)

    def fetch(self, org_id: str, month, property_id: str = None) -> Optional[Invoice]:
        """Stored invoice for the period, or None. Never creates."""
        bill_month = normalize_month(month)
        with self.store.session_scope() as session:
            return self.store.find_invoice(session, org_id, bill_month, property_id)

    def reapply_fees(self, org_id: str, user_id: str = None, include_paid: bool = False) -> int:
        """
        Recompute the frozen fee columns of existing invoices.

        Each invoice is re-priced with the plan effective for its own bill
        month, from the gross revenue and expenses recorded on it. Only `due`
        invoices are touched unless include_paid is set.

        Args:
            org_id: Organization whose invoices are re-priced
            user_id: Restrict to invoices billed to this user
            include_paid: Also re-price paid and void invoices

        Returns:
            int: Number of invoices whose amounts changed
        """
        changed = 0
        with self.store.session_scope() as session:
            self.store.require_organization(session, org_id)
            invoices = self.store.list_invoices(session, org_id, user_id=user_id)

            for invoice in invoices:
                if invoice.status != 'due' and not include_paid:
                    continue

                plan = self.resolver.resolve(session, org_id, invoice.user_id, invoice.bill_month)
                fee = compute_fee(invoice.gross_revenue_minor, plan.percent)
                net = compute_net_revenue(invoice.gross_revenue_minor, invoice.expenses_minor, fee)

                if (fee, plan.percent, plan.tier) == (invoice.fee_minor, invoice.fee_percent, invoice.plan_tier):
                    continue

                logger.debug(
                    f"Re-pricing {invoice.invoice_number}: {invoice.fee_percent}% -> {plan.percent}%"
                )
                invoice.fee_percent = plan.percent
                invoice.plan_tier = plan.tier
                invoice.fee_minor = fee
                invoice.net_revenue_minor = net
                invoice.amount_due_minor = fee
                changed += 1

        logger.info(f"Fees reapplied for org={org_id} user={user_id or '-'}: {changed} invoice(s) changed")
        return changed
