"""
Storage port for the billing engine.

BillingStore is the only component that talks to SQLAlchemy. Every method
takes the session of the caller's transaction so one engine operation runs
as one transaction. Open a transaction with session_scope().
"""

import logging
from datetime import date
from typing import List, Optional, Dict, Any

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from common.config import DatabaseConfig, DatabaseType
from common.date_utils import parse_date_string
from common.engine import create_engine_from_config
from common.exceptions import NotFoundError, ValidationError
from common.models import (
    Base, Booking, FeePlan, Invoice, LedgerEntry, Organization, Payment, Property,
    BOOKING_STATUSES, ORG_SCOPE,
)
from common.session import SessionManager
from common.upsert_strategies import UpsertFactory


logger = logging.getLogger(__name__)

INVOICE_KEY_COLUMNS = ['org_id', 'bill_month', 'scope_key']
FEE_PLAN_KEY_COLUMNS = ['org_id', 'user_scope', 'effective_date']


def _require_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f'{field_name} must be an integer number of minor units')
    return value


class BillingStore:
    """
    Typed CRUD over the billing tables plus the atomic idempotent invoice insert.

    Args:
        session_manager: SessionManager bound to the engine
        db_type: Database type (selects the upsert strategy)
    """

    def __init__(self, session_manager: SessionManager, db_type: DatabaseType):
        self.session_manager = session_manager
        self.db_type = db_type
        self.upsert_strategy = UpsertFactory.get_strategy(db_type)

    @classmethod
    def from_config(cls, db_config: DatabaseConfig, create_schema: bool = False) -> 'BillingStore':
        """Build a store (engine + session manager) from database configuration."""
        engine = create_engine_from_config(db_config)
        store = cls(SessionManager(engine), db_config.db_type)
        if create_schema:
            store.create_schema()
        return store

    @property
    def engine(self):
        return self.session_manager.engine

    def create_schema(self) -> None:
        """Create all billing tables that do not exist yet."""
        Base.metadata.create_all(self.engine)
        logger.info("Billing schema created")

    def session_scope(self):
        """Transactional scope; see SessionManager.session_scope."""
        return self.session_manager.session_scope()

    # =========================================================================
    # Organizations & properties
    # =========================================================================

    def add_organization(self, session: Session, name: str, billing_email: str = None,
                         org_id: str = None) -> Organization:
        if not name:
            raise ValidationError('organization name is required')
        org = Organization(name=name, billing_email=billing_email)
        if org_id:
            org.id = org_id
        session.add(org)
        session.flush()
        logger.debug(f"Created organization {org.id}")
        return org

    def get_organization(self, session: Session, org_id: str) -> Optional[Organization]:
        return session.get(Organization, org_id)

    def require_organization(self, session: Session, org_id: str) -> Organization:
        org = self.get_organization(session, org_id)
        if org is None:
            raise NotFoundError(f'Organization not found: {org_id}')
        return org

    def list_organization_ids(self, session: Session) -> List[str]:
        return [row.id for row in session.query(Organization.id).order_by(Organization.name).all()]

    def add_property(self, session: Session, org_id: str, name: str, owner_user_id: str = None,
                     property_id: str = None) -> Property:
        self.require_organization(session, org_id)
        if not name:
            raise ValidationError('property name is required')
        prop = Property(org_id=org_id, name=name, owner_user_id=owner_user_id)
        if property_id:
            prop.id = property_id
        session.add(prop)
        session.flush()
        logger.debug(f"Created property {prop.id} for org {org_id}")
        return prop

    def get_property(self, session: Session, property_id: str) -> Optional[Property]:
        return session.get(Property, property_id)

    def require_property(self, session: Session, org_id: str, property_id: str) -> Property:
        """A property that exists AND belongs to org_id."""
        prop = self.get_property(session, property_id)
        if prop is None or prop.org_id != org_id:
            raise NotFoundError(f'Property not found: {property_id}')
        return prop

    def count_properties(self, session: Session, org_id: str) -> int:
        return session.query(func.count(Property.id)).filter(Property.org_id == org_id).scalar() or 0

    # =========================================================================
    # Ledger entries & bookings
    # =========================================================================

    def add_ledger_entry(self, session: Session, org_id: str, amount_minor: int, entry_date,
                         property_id: str = None, description: str = None) -> LedgerEntry:
        """
        Record a signed ledger entry (positive = revenue, negative = expense).

        Raises:
            ValidationError: Non-integer amount or malformed date
            NotFoundError: Unknown organization or property
        """
        amount_minor = _require_int(amount_minor, 'amount_minor')
        entry_date = parse_date_string(entry_date, 'entry_date')
        self.require_organization(session, org_id)
        if property_id:
            self.require_property(session, org_id, property_id)

        entry = LedgerEntry(
            org_id=org_id,
            property_id=property_id,
            amount_minor=amount_minor,
            entry_date=entry_date,
            description=description,
        )
        session.add(entry)
        session.flush()
        logger.debug(f"Ledger entry {entry.id}: {amount_minor} on {entry_date} (org={org_id})")
        return entry

    def ledger_entries(self, session: Session, org_id: str, start: date, end: date,
                       property_id: str = None) -> List[LedgerEntry]:
        """Entries with start <= entry_date < end for the org or one property."""
        query = session.query(LedgerEntry).filter(
            LedgerEntry.org_id == org_id,
            LedgerEntry.entry_date >= start,
            LedgerEntry.entry_date < end,
        )
        if property_id:
            query = query.filter(LedgerEntry.property_id == property_id)
        return query.all()

    def add_booking(self, session: Session, org_id: str, property_id: str, check_in, check_out,
                    status: str = 'upcoming') -> Booking:
        """
        Record a booking.

        Raises:
            ValidationError: Malformed dates, check_out before check_in, unknown status
            NotFoundError: Property not in org
        """
        check_in = parse_date_string(check_in, 'check_in')
        check_out = parse_date_string(check_out, 'check_out')
        if check_out < check_in:
            raise ValidationError('check_out must be on or after check_in')
        status = (status or 'upcoming').lower()
        if status not in BOOKING_STATUSES:
            raise ValidationError(f'status must be one of: {", ".join(BOOKING_STATUSES)}')
        self.require_property(session, org_id, property_id)

        booking = Booking(property_id=property_id, check_in=check_in, check_out=check_out, status=status)
        session.add(booking)
        session.flush()
        logger.debug(f"Booking {booking.id}: {check_in}..{check_out} ({status})")
        return booking

    def completed_bookings(self, session: Session, org_id: str, start: date, end: date,
                           property_id: str = None) -> List[Booking]:
        """Completed bookings with start <= check_in < end for the org or one property."""
        query = session.query(Booking).join(Property, Booking.property_id == Property.id).filter(
            Property.org_id == org_id,
            Booking.status == 'completed',
            Booking.check_in >= start,
            Booking.check_in < end,
        )
        if property_id:
            query = query.filter(Booking.property_id == property_id)
        return query.all()

    # =========================================================================
    # Fee plans
    # =========================================================================

    def latest_fee_plan(self, session: Session, org_id: str, user_id: Optional[str],
                        on_or_before: date) -> Optional[FeePlan]:
        """Plan with the latest effective_date <= on_or_before for the user (or org level)."""
        user_scope = user_id or ORG_SCOPE
        return (
            session.query(FeePlan)
            .filter(
                FeePlan.org_id == org_id,
                FeePlan.user_scope == user_scope,
                FeePlan.effective_date <= on_or_before,
            )
            .order_by(FeePlan.effective_date.desc())
            .limit(1)
            .first()
        )

    def upsert_fee_plan(self, session: Session, org_id: str, user_id: Optional[str], tier: str,
                        percent: int, effective_date: date) -> FeePlan:
        """Insert the plan, or update in place the plan of the same (org, user, day)."""
        values = {
            'org_id': org_id,
            'user_id': user_id,
            'user_scope': user_id or ORG_SCOPE,
            'tier': tier,
            'percent': percent,
            'effective_date': effective_date,
        }
        self.upsert_strategy.upsert(session, FeePlan, values, FEE_PLAN_KEY_COLUMNS)
        return (
            session.query(FeePlan)
            .populate_existing()
            .filter_by(org_id=org_id, user_scope=values['user_scope'], effective_date=effective_date)
            .one()
        )

    # =========================================================================
    # Invoices
    # =========================================================================

    def find_invoice(self, session: Session, org_id: str, bill_month: date,
                     property_id: str = None, lock: bool = False) -> Optional[Invoice]:
        """
        Invoice for the exact (org, month, property-or-org-wide) key.

        lock=True reads with FOR SHARE, which sees rows committed by other
        transactions after this one took its snapshot (REPEATABLE READ).
        """
        query = (
            session.query(Invoice)
            .options(selectinload(Invoice.payments))
            .filter_by(org_id=org_id, bill_month=bill_month, scope_key=property_id or ORG_SCOPE)
            .populate_existing()
        )
        if lock:
            query = query.with_for_update(read=True)
        return query.first()

    def get_invoice(self, session: Session, invoice_id: str) -> Optional[Invoice]:
        return (
            session.query(Invoice)
            .options(selectinload(Invoice.payments))
            .filter(Invoice.id == invoice_id)
            .first()
        )

    def require_invoice(self, session: Session, invoice_id: str) -> Invoice:
        invoice = self.get_invoice(session, invoice_id)
        if invoice is None:
            raise NotFoundError(f'Invoice not found: {invoice_id}')
        return invoice

    def list_invoices(self, session: Session, org_id: str, status: str = None,
                      bill_month: date = None, user_id: str = None) -> List[Invoice]:
        query = session.query(Invoice).options(selectinload(Invoice.payments)).filter(Invoice.org_id == org_id)
        if status:
            query = query.filter(Invoice.status == status)
        if bill_month:
            query = query.filter(Invoice.bill_month == bill_month)
        if user_id:
            query = query.filter(Invoice.user_id == user_id)
        return query.order_by(Invoice.bill_month.desc(), Invoice.invoice_number).all()

    def insert_invoice_if_absent(self, session: Session, values: Dict[str, Any]) -> Optional[bool]:
        """
        Atomically insert an invoice unless its (org, month, scope) key exists.
        Read the row back by key (find_invoice with lock=True) to learn which
        call created it.
        """
        return self.upsert_strategy.insert_if_absent(session, Invoice, values, INVOICE_KEY_COLUMNS)

    def delete_invoice(self, session: Session, invoice: Invoice) -> None:
        """Delete an invoice and its payments."""
        session.delete(invoice)
        session.flush()
        logger.debug(f"Deleted invoice {invoice.id}")

    # =========================================================================
    # Payments
    # =========================================================================

    def add_payment(self, session: Session, invoice: Invoice, amount_minor: int, method: str,
                    payment_date: date) -> Payment:
        payment = Payment(
            invoice_id=invoice.id,
            amount_minor=amount_minor,
            method=method,
            payment_date=payment_date,
        )
        session.add(payment)
        session.flush()
        logger.debug(f"Payment {payment.id} of {amount_minor} on invoice {invoice.id}")
        return payment

    def get_payment(self, session: Session, payment_id: str) -> Optional[Payment]:
        return session.get(Payment, payment_id)

    def delete_payment(self, session: Session, payment: Payment) -> None:
        session.delete(payment)
        session.flush()
        logger.debug(f"Deleted payment {payment.id}")

    def list_payments(self, session: Session, invoice_id: str) -> List[Payment]:
        return (
            session.query(Payment)
            .filter(Payment.invoice_id == invoice_id)
            .order_by(Payment.payment_date, Payment.created_at)
            .all()
        )

    def count_payments(self, session: Session, invoice_id: str) -> int:
        return session.query(func.count(Payment.id)).filter(Payment.invoice_id == invoice_id).scalar() or 0
