"""
Payment Ledger.

Records payments against invoices and keeps invoice status in step:

- any recorded payment marks the invoice `paid` (balances are not tracked;
  a partial payment settles the invoice)
- removing the last payment puts the invoice back to `due`
- administrators may set due/paid/void directly
"""

import logging
from datetime import date

from common.date_utils import parse_date_string
from common.exceptions import NotFoundError, ValidationError
from common.models import Invoice, INVOICE_STATUSES, PAYMENT_METHODS

logger = logging.getLogger(__name__)


def validate_amount(amount_minor) -> int:
    """A strictly positive integer amount of minor units."""
    if isinstance(amount_minor, bool) or not isinstance(amount_minor, int):
        raise ValidationError('amount_minor must be a positive integer')
    if amount_minor <= 0:
        raise ValidationError('amount_minor must be a positive integer')
    return amount_minor


def validate_method(method) -> str:
    value = (method or 'bank')
    if not isinstance(value, str) or value.lower() not in PAYMENT_METHODS:
        raise ValidationError(f'method must be one of: {", ".join(PAYMENT_METHODS)}')
    return value.lower()


def validate_status(status) -> str:
    if not isinstance(status, str) or status.lower() not in INVOICE_STATUSES:
        raise ValidationError('status must be "due" | "paid" | "void"')
    return status.lower()


class PaymentLedger:
    """
    Payment recording and invoice status transitions.

    Args:
        store: BillingStore
    """

    def __init__(self, store):
        self.store = store

    def apply_payment(self, invoice_id: str, amount_minor: int, method: str = 'bank',
                      payment_date=None) -> Invoice:
        """
        Record a payment and mark the invoice paid.

        Args:
            invoice_id: Invoice being paid
            amount_minor: Positive amount in minor units
            method: bank, card, cash or other
            payment_date: YYYY-MM-DD (default today)

        Returns:
            Invoice: The updated invoice

        Raises:
            ValidationError: Bad amount, method or date
            NotFoundError: Unknown invoice
        """
        amount_minor = validate_amount(amount_minor)
        method = validate_method(method)
        paid_on = parse_date_string(payment_date, 'payment_date') if payment_date else date.today()

        with self.store.session_scope() as session:
            invoice = self.store.require_invoice(session, invoice_id)
            payment = self.store.add_payment(session, invoice, amount_minor, method, paid_on)
            previous = invoice.status
            invoice.status = 'paid'
            session.flush()
            session.refresh(invoice)

        logger.info(
            f"Payment {payment.id} of {amount_minor} ({method}) applied to "
            f"{invoice.invoice_number}: {previous} -> paid"
        )
        return invoice

    def remove_payment(self, payment_id: str) -> Invoice:
        """
        Delete a payment. The invoice reverts to `due` when no payments remain.

        Raises:
            NotFoundError: Unknown payment
        """
        with self.store.session_scope() as session:
            payment = self.store.get_payment(session, payment_id)
            if payment is None:
                raise NotFoundError(f'Payment not found: {payment_id}')

            invoice_id = payment.invoice_id
            self.store.delete_payment(session, payment)

            remaining = self.store.count_payments(session, invoice_id)
            invoice = self.store.require_invoice(session, invoice_id)
            if remaining == 0:
                invoice.status = 'due'
            session.flush()
            session.refresh(invoice)

        logger.info(
            f"Payment {payment_id} removed from {invoice.invoice_number}; "
            f"{remaining} payment(s) remain, status={invoice.status}"
        )
        return invoice

    def set_status(self, invoice_id: str, status: str) -> Invoice:
        """
        Administrative status change. Any of due/paid/void may follow any other.

        Raises:
            ValidationError: Unknown status
            NotFoundError: Unknown invoice
        """
        status = validate_status(status)

        with self.store.session_scope() as session:
            invoice = self.store.require_invoice(session, invoice_id)
            previous = invoice.status
            invoice.status = status

        logger.info(f"Invoice {invoice.invoice_number} status {previous} -> {status}")
        return invoice
