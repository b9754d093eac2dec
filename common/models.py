"""
SQLAlchemy ORM models for the billing engine.

Nullable key parts (property_id on invoices, user_id on fee plans) are mirrored
into non-null scope columns so the uniqueness constraints hold on every
engine: SQL unique indexes treat NULLs as distinct.
"""

from datetime import datetime, date, timezone
from typing import Dict, Any
from uuid import uuid4
from sqlalchemy import (
    Column, String, Integer, BigInteger, DateTime, Date, Text, ForeignKey,
    Index, UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import declarative_base, relationship


# Declarative base for all models
Base = declarative_base()

# Scope marker for org-wide invoices and org-level fee plans
ORG_SCOPE = '*'

BOOKING_STATUSES = ('upcoming', 'completed', 'cancelled')
INVOICE_STATUSES = ('due', 'paid', 'void')
PAYMENT_METHODS = ('bank', 'card', 'cash', 'other')


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid4())


class TimestampMixin:
    """Mixin for automatic timestamp tracking"""
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)


class BaseModel:
    """Base model with common functionality"""

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert model instance to dictionary.

        Returns:
            dict: Dictionary representation of the model
        """
        result = {}
        for column in self.__table__.columns:
            value = getattr(self, column.name)
            # Convert date/datetime to ISO format string
            if isinstance(value, (datetime, date)):
                value = value.isoformat()
            result[column.name] = value
        return result

    def __repr__(self) -> str:
        """String representation of model"""
        return f"<{self.__class__.__name__}({self.to_dict()})>"


# ============================================================================
# Tenancy
# ============================================================================


class Organization(Base, BaseModel, TimestampMixin):
    """A billed member organization."""
    __tablename__ = 'organizations'

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(255), nullable=False)
    billing_email = Column(String(255), nullable=True, comment="Recipient of invoice notifications")

    properties = relationship('Property', back_populates='organization', cascade='all, delete-orphan')


class Property(Base, BaseModel, TimestampMixin):
    """A managed rental property. owner_user_id selects user-level fee plans."""
    __tablename__ = 'properties'

    id = Column(String(36), primary_key=True, default=_new_id)
    org_id = Column(String(36), ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    owner_user_id = Column(String(36), nullable=True, index=True)

    organization = relationship('Organization', back_populates='properties')


# ============================================================================
# Raw activity
# ============================================================================


class LedgerEntry(Base, BaseModel):
    """
    Signed revenue/expense entry in minor units.
    Positive amounts are revenue, negative amounts are expenses. Immutable.
    """
    __tablename__ = 'ledger_entries'

    id = Column(String(36), primary_key=True, default=_new_id)
    org_id = Column(String(36), ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False)
    property_id = Column(String(36), ForeignKey('properties.id', ondelete='CASCADE'), nullable=True)
    amount_minor = Column(BigInteger, nullable=False)
    entry_date = Column(Date, nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        Index('idx_ledger_org_date', 'org_id', 'entry_date'),
        Index('idx_ledger_property_date', 'property_id', 'entry_date'),
    )


class Booking(Base, BaseModel):
    """A stay at a property. Only completed bookings count towards KPIs."""
    __tablename__ = 'bookings'

    id = Column(String(36), primary_key=True, default=_new_id)
    property_id = Column(String(36), ForeignKey('properties.id', ondelete='CASCADE'), nullable=False)
    check_in = Column(Date, nullable=False)
    check_out = Column(Date, nullable=False)
    status = Column(String(20), nullable=False, default='upcoming')
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint('check_out >= check_in', name='ck_booking_dates'),
        CheckConstraint(
            "status IN ('upcoming', 'completed', 'cancelled')",
            name='ck_booking_status'
        ),
        Index('idx_booking_property_checkin', 'property_id', 'check_in'),
    )

    @property
    def nights(self) -> int:
        return max((self.check_out - self.check_in).days, 0)


# ============================================================================
# Billing
# ============================================================================


class FeePlan(Base, BaseModel, TimestampMixin):
    """
    Management-fee plan effective from effective_date.

    user_scope is user_id, or ORG_SCOPE for the org-level default plan.
    One row per (org_id, user_scope, effective_date).
    """
    __tablename__ = 'fee_plans'

    id = Column(Integer, primary_key=True, autoincrement=True)
    org_id = Column(String(36), ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False)
    user_id = Column(String(36), nullable=True)
    user_scope = Column(String(36), nullable=False, default=ORG_SCOPE)
    tier = Column(String(20), nullable=False)
    percent = Column(Integer, nullable=False)
    effective_date = Column(Date, nullable=False)

    __table_args__ = (
        UniqueConstraint('org_id', 'user_scope', 'effective_date', name='uq_fee_plan_day'),
        CheckConstraint('percent >= 0 AND percent <= 100', name='ck_fee_plan_percent'),
        Index('idx_fee_plan_lookup', 'org_id', 'user_scope', 'effective_date'),
    )


class Invoice(Base, BaseModel, TimestampMixin):
    """
    Monthly management-fee invoice.

    At most one row per (org_id, bill_month, scope_key) where scope_key is the
    property id, or ORG_SCOPE for an org-wide invoice. Fee columns are frozen
    at generation time and only change through an explicit fee reapply.
    """
    __tablename__ = 'invoices'

    id = Column(String(36), primary_key=True, default=_new_id)
    org_id = Column(String(36), ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False, index=True)
    property_id = Column(String(36), ForeignKey('properties.id'), nullable=True)
    scope_key = Column(String(36), nullable=False, default=ORG_SCOPE)
    user_id = Column(String(36), nullable=True, index=True)
    bill_month = Column(Date, nullable=False)
    invoice_number = Column(String(64), nullable=False)
    amount_due_minor = Column(BigInteger, nullable=False, default=0)
    status = Column(String(10), nullable=False, default='due')

    # Provenance, frozen at generation
    gross_revenue_minor = Column(BigInteger, nullable=False, default=0)
    expenses_minor = Column(BigInteger, nullable=False, default=0)
    fee_percent = Column(Integer, nullable=False)
    plan_tier = Column(String(20), nullable=True)
    fee_minor = Column(BigInteger, nullable=False, default=0)
    net_revenue_minor = Column(BigInteger, nullable=False, default=0)

    sent_at = Column(DateTime(timezone=True), nullable=True)

    payments = relationship(
        'Payment',
        back_populates='invoice',
        cascade='all, delete-orphan',
        passive_deletes=True,
        lazy='selectin',
        order_by='Payment.payment_date',
    )

    __table_args__ = (
        UniqueConstraint('org_id', 'bill_month', 'scope_key', name='uq_invoice_period'),
        UniqueConstraint('org_id', 'invoice_number', name='uq_invoice_number'),
        CheckConstraint("status IN ('due', 'paid', 'void')", name='ck_invoice_status'),
    )


class Payment(Base, BaseModel):
    """A payment recorded against exactly one invoice."""
    __tablename__ = 'invoice_payments'

    id = Column(String(36), primary_key=True, default=_new_id)
    invoice_id = Column(String(36), ForeignKey('invoices.id', ondelete='CASCADE'), nullable=False, index=True)
    amount_minor = Column(BigInteger, nullable=False)
    method = Column(String(10), nullable=False, default='bank')
    payment_date = Column(Date, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    invoice = relationship('Invoice', back_populates='payments')

    __table_args__ = (
        CheckConstraint('amount_minor > 0', name='ck_payment_positive'),
        CheckConstraint("method IN ('bank', 'card', 'cash', 'other')", name='ck_payment_method'),
    )
