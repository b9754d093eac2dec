"""
Billing service.

Constructs every engine component around one injected BillingStore and
exposes the operations used by the HTTP API and the CLI.
"""

import logging
from datetime import date, datetime, timezone
from typing import List, Optional, Tuple

from common.config import BillingConfig, load_billing_config, load_notification_config
from common.config_loader import get_config, get_database_config
from common.date_utils import months_ending_at, normalize_month, parse_date_string
from common.exceptions import ValidationError
from common.models import Booking, Invoice, LedgerEntry, Organization, Property

from .aggregator import KPISnapshot, LedgerAggregator
from .fee_plans import FeePlanResolver, ResolvedPlan
from .invoices import GenerationResult, InvoiceGenerator
from .notifications import InvoiceNotice, InvoiceNotifier
from .payments import PaymentLedger, validate_status
from .renderer import InvoiceDocument, TextInvoiceRenderer, build_invoice_document
from .store import BillingStore

logger = logging.getLogger(__name__)


class BillingService:
    """
    Facade over the billing engine.

    Args:
        store: BillingStore shared by every component
        config: BillingConfig
        notifier: InvoiceNotifier (optional; no notifications without one)
    """

    def __init__(self, store: BillingStore, config: BillingConfig = None,
                 notifier: Optional[InvoiceNotifier] = None):
        self.store = store
        self.config = config or BillingConfig()
        self.notifier = notifier

        self.aggregator = LedgerAggregator(store)
        self.resolver = FeePlanResolver(store, self.config.default_tier)
        self.generator = InvoiceGenerator(store, self.aggregator, self.resolver, self.config)
        self.payments = PaymentLedger(store)
        self.renderer = TextInvoiceRenderer()

    # =========================================================================
    # Invoices
    # =========================================================================

    def generate_invoice(self, org_id: str, month, property_id: str = None,
                         notify: bool = True) -> GenerationResult:
        """
        Generate or fetch the invoice for the period.

        A newly created invoice is announced after its transaction has
        committed; delivery problems never undo the invoice.
        """
        result = self.generator.generate_or_fetch(org_id, month, property_id)
        if result.was_newly_created and notify:
            self.notify_invoice(result.invoice)
        return result

    def notify_invoice(self, invoice: Invoice) -> bool:
        """Send the new-invoice notice and stamp sent_at on delivery. Never raises."""
        if self.notifier is None:
            return False

        try:
            with self.store.session_scope() as session:
                organization = self.store.get_organization(session, invoice.org_id)
                notice = InvoiceNotice.from_invoice(invoice, organization, self.config)

            if not self.notifier.notify(notice):
                return False

            with self.store.session_scope() as session:
                stored = self.store.get_invoice(session, invoice.id)
                if stored is not None:
                    stored.sent_at = datetime.now(timezone.utc)
                    invoice.sent_at = stored.sent_at
        except Exception as e:
            logger.warning(f"Notification for invoice {invoice.id} failed: {e}")
            return False

        return True

    def get_invoice(self, invoice_id: str) -> Invoice:
        with self.store.session_scope() as session:
            return self.store.require_invoice(session, invoice_id)

    def list_invoices(self, org_id: str, status: str = None, month=None) -> List[Invoice]:
        if status:
            status = validate_status(status)
        bill_month = normalize_month(month) if month else None
        with self.store.session_scope() as session:
            self.store.require_organization(session, org_id)
            return self.store.list_invoices(session, org_id, status=status, bill_month=bill_month)

    def delete_invoice(self, invoice_id: str) -> Invoice:
        """Admin delete; the invoice's payments go with it."""
        with self.store.session_scope() as session:
            invoice = self.store.require_invoice(session, invoice_id)
            self.store.delete_invoice(session, invoice)
        logger.info(f"Invoice {invoice.invoice_number} deleted")
        return invoice

    def render_invoice(self, invoice_id: str) -> Tuple[InvoiceDocument, str]:
        """Document payload and its plain-text rendering."""
        with self.store.session_scope() as session:
            invoice = self.store.require_invoice(session, invoice_id)
            organization = self.store.get_organization(session, invoice.org_id)
            prop = self.store.get_property(session, invoice.property_id) if invoice.property_id else None
            document = build_invoice_document(invoice, organization, prop, self.config.currency)
        return document, self.renderer.render(document)

    def reapply_fees(self, org_id: str, user_id: str = None, include_paid: bool = False) -> int:
        return self.generator.reapply_fees(org_id, user_id=user_id, include_paid=include_paid)

    # =========================================================================
    # Payments
    # =========================================================================

    def apply_payment(self, invoice_id: str, amount_minor: int, method: str = 'bank',
                      payment_date=None) -> Invoice:
        return self.payments.apply_payment(invoice_id, amount_minor, method, payment_date)

    def remove_payment(self, payment_id: str) -> Invoice:
        return self.payments.remove_payment(payment_id)

    def set_invoice_status(self, invoice_id: str, status: str) -> Invoice:
        return self.payments.set_status(invoice_id, status)

    # =========================================================================
    # KPIs
    # =========================================================================

    def get_kpis(self, org_id: str, month=None, property_id: str = None) -> KPISnapshot:
        """
        Live KPI snapshot for the month. The fee uses the plan resolved now,
        so plan corrections show up immediately (unlike issued invoices).
        """
        month_start = normalize_month(month)
        with self.store.session_scope() as session:
            return self._snapshot(session, org_id, month_start, property_id)

    def kpi_history(self, org_id: str, months=None, until=None, property_id: str = None) -> List[KPISnapshot]:
        """
        Snapshots for the `months` months ending at `until` (default this
        month), oldest first. months is clamped to 1..history_max_months.
        """
        count = self._history_length(months)
        last_month = normalize_month(until)
        with self.store.session_scope() as session:
            return [
                self._snapshot(session, org_id, month_start, property_id)
                for month_start in months_ending_at(last_month, count)
            ]

    def _history_length(self, months) -> int:
        if months is None or months == '':
            return self.config.history_default_months
        try:
            count = int(months)
        except (TypeError, ValueError):
            raise ValidationError('months must be an integer')
        return max(1, min(count, self.config.history_max_months))

    def _snapshot(self, session, org_id: str, month_start: date, property_id: str = None) -> KPISnapshot:
        snapshot = self.aggregator.aggregate(session, org_id, month_start, property_id)
        owner_user_id = None
        if property_id:
            owner_user_id = self.store.require_property(session, org_id, property_id).owner_user_id
        plan = self.resolver.resolve(session, org_id, owner_user_id, month_start)
        return snapshot.with_fee(plan.percent, plan.tier)

    # =========================================================================
    # Fee plans
    # =========================================================================

    def set_plan(self, org_id: str, tier: str, user_id: str = None, effective_date=None) -> ResolvedPlan:
        with self.store.session_scope() as session:
            return self.resolver.set_plan(session, org_id, tier, user_id, effective_date)

    def current_plan(self, org_id: str, user_id: str = None, on=None) -> ResolvedPlan:
        target = parse_date_string(on, 'on') if on else date.today()
        with self.store.session_scope() as session:
            self.store.require_organization(session, org_id)
            return self.resolver.resolve(session, org_id, user_id, target)

    # =========================================================================
    # Tenancy & raw activity
    # =========================================================================

    def add_organization(self, name: str, billing_email: str = None, org_id: str = None) -> Organization:
        with self.store.session_scope() as session:
            org = self.store.add_organization(session, name, billing_email, org_id)
        logger.info(f"Organization {org.id} created: {name}")
        return org

    def add_property(self, org_id: str, name: str, owner_user_id: str = None,
                     property_id: str = None) -> Property:
        with self.store.session_scope() as session:
            prop = self.store.add_property(session, org_id, name, owner_user_id, property_id)
        logger.info(f"Property {prop.id} created for org {org_id}")
        return prop

    def list_organization_ids(self) -> List[str]:
        with self.store.session_scope() as session:
            return self.store.list_organization_ids(session)

    def add_ledger_entry(self, org_id: str, amount_minor: int, entry_date, property_id: str = None,
                         description: str = None) -> LedgerEntry:
        with self.store.session_scope() as session:
            return self.store.add_ledger_entry(
                session, org_id, amount_minor, entry_date, property_id, description)

    def add_booking(self, org_id: str, property_id: str, check_in, check_out,
                    status: str = 'upcoming') -> Booking:
        with self.store.session_scope() as session:
            return self.store.add_booking(session, org_id, property_id, check_in, check_out, status)


def create_service(config_dir: str = None, create_schema: bool = False) -> BillingService:
    """
    Build a BillingService from the YAML configuration.

    Args:
        config_dir: Configuration directory (default lookup when None)
        create_schema: Create missing tables on startup
    """
    app_config = get_config(config_dir)
    store = BillingStore.from_config(get_database_config('backend'), create_schema=create_schema)
    notifier = InvoiceNotifier(load_notification_config(app_config))
    return BillingService(store, load_billing_config(app_config), notifier)
