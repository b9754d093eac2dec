"""
Billing & KPI Aggregation Engine

Turns ledger entries and bookings into monthly KPIs, applies the tiered
management-fee schedule and maintains idempotent monthly invoices with a
payment state machine:
- Ledger aggregation per org or property and calendar month
- Fee plan resolution (user plan, org plan, default tier)
- Exactly-once invoice generation per period
- Payment recording and invoice status reconciliation
- Email/Slack notification of new invoices
"""

__version__ = '1.0.0'


def get_version():
    """Return the billing engine version."""
    return __version__


from billing.aggregator import KPISnapshot, LedgerAggregator
from billing.fee_plans import FeePlanResolver, ResolvedPlan, TIER_PERCENTS
from billing.fees import compute_fee, compute_net_revenue, format_money
from billing.invoices import GenerationResult, InvoiceGenerator
from billing.notifications import InvoiceNotice, InvoiceNotifier
from billing.payments import PaymentLedger
from billing.renderer import InvoiceDocument, TextInvoiceRenderer, build_invoice_document
from billing.service import BillingService, create_service
from billing.store import BillingStore

__all__ = [
    '__version__',
    'get_version',
    'KPISnapshot',
    'LedgerAggregator',
    'FeePlanResolver',
    'ResolvedPlan',
    'TIER_PERCENTS',
    'compute_fee',
    'compute_net_revenue',
    'format_money',
    'GenerationResult',
    'InvoiceGenerator',
    'InvoiceNotice',
    'InvoiceNotifier',
    'PaymentLedger',
    'InvoiceDocument',
    'TextInvoiceRenderer',
    'build_invoice_document',
    'BillingService',
    'create_service',
    'BillingStore',
]
