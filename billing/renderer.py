"""
Invoice documents.

build_invoice_document() turns a stored invoice into the payload handed to a
document renderer. Only a plain-text renderer ships here; PDF layout is left
to whatever consumes the payload.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional, Dict, Any

from common.date_utils import format_month

from .fees import format_money


@dataclass
class LineItem:
    label: str
    amount_minor: int


@dataclass
class InvoiceDocument:
    """Renderer-facing view of a finalized invoice."""
    invoice_id: str
    invoice_number: str
    org_id: str
    org_name: str
    property_id: Optional[str]
    property_name: Optional[str]
    bill_month: date
    issued_on: Optional[date]
    status: str
    currency: str
    line_items: List[LineItem] = field(default_factory=list)
    amount_due_minor: int = 0
    payments: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'invoice_id': self.invoice_id,
            'invoice_number': self.invoice_number,
            'org_id': self.org_id,
            'org_name': self.org_name,
            'property_id': self.property_id,
            'property_name': self.property_name,
            'bill_month': self.bill_month.isoformat(),
            'issued_on': self.issued_on.isoformat() if self.issued_on else None,
            'status': self.status,
            'currency': self.currency,
            'line_items': [
                {'label': item.label, 'amount_minor': item.amount_minor}
                for item in self.line_items
            ],
            'amount_due_minor': self.amount_due_minor,
            'payments': self.payments,
        }


def build_invoice_document(invoice, organization=None, prop=None, currency: str = 'CAD') -> InvoiceDocument:
    """
    Build the document payload from an invoice and its frozen fee columns.

    Line items: Gross Revenue, Expenses, Management Fee (p%), Net Revenue,
    Amount Due. Expenses and the fee are shown as negative amounts.
    """
    line_items = [
        LineItem('Gross Revenue', invoice.gross_revenue_minor),
        LineItem('Expenses', -invoice.expenses_minor),
        LineItem(f'Management Fee ({invoice.fee_percent}%)', -invoice.fee_minor),
        LineItem('Net Revenue', invoice.net_revenue_minor),
        LineItem('Amount Due', invoice.amount_due_minor),
    ]
    payments = [
        {
            'id': payment.id,
            'amount_minor': payment.amount_minor,
            'method': payment.method,
            'payment_date': payment.payment_date.isoformat(),
        }
        for payment in invoice.payments
    ]
    return InvoiceDocument(
        invoice_id=invoice.id,
        invoice_number=invoice.invoice_number,
        org_id=invoice.org_id,
        org_name=organization.name if organization else invoice.org_id,
        property_id=invoice.property_id,
        property_name=prop.name if prop else None,
        bill_month=invoice.bill_month,
        issued_on=invoice.created_at.date() if invoice.created_at else None,
        status=invoice.status,
        currency=currency,
        line_items=line_items,
        amount_due_minor=invoice.amount_due_minor,
        payments=payments,
    )


class TextInvoiceRenderer:
    """Fixed-width plain-text invoice."""

    width = 56

    def render(self, document: InvoiceDocument) -> str:
        lines = [
            'INVOICE'.center(self.width),
            '=' * self.width,
            f"Invoice:  {document.invoice_number}",
            f"Billed:   {document.org_name}",
        ]
        if document.property_name or document.property_id:
            lines.append(f"Property: {document.property_name or document.property_id}")
        lines.append(f"Month:    {format_month(document.bill_month)}")
        if document.issued_on:
            lines.append(f"Issued:   {document.issued_on.isoformat()}")
        lines.append(f"Status:   {document.status.upper()}")
        lines.append('-' * self.width)

        for item in document.line_items:
            if item.label == 'Amount Due':
                lines.append('-' * self.width)
            lines.append(self._row(item.label, format_money(item.amount_minor, document.currency)))

        if document.payments:
            lines.append('')
            lines.append('Payments')
            for payment in document.payments:
                label = f"{payment['payment_date']} ({payment['method']})"
                lines.append(self._row(label, format_money(payment['amount_minor'], document.currency)))

        lines.append('=' * self.width)
        return '\n'.join(lines) + '\n'

    def _row(self, label: str, amount: str) -> str:
        return f"{label:<{self.width - len(amount) - 1}} {amount}"
