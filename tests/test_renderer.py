from tests.conftest import ORG_ID, PROPERTY_ID


def test_document_line_items(service, march_ledger):
    service.set_plan(ORG_ID, 'elevate', effective_date='2025-01-01')
    invoice = service.generate_invoice(ORG_ID, '2025-03', PROPERTY_ID).invoice

    document, text = service.render_invoice(invoice.id)

    assert document.org_name == 'Maple Stays'
    assert document.property_name == 'Lakeview Cabin'
    assert [(item.label, item.amount_minor) for item in document.line_items] == [
        ('Gross Revenue', 500000),
        ('Expenses', -80000),
        ('Management Fee (18%)', -90000),
        ('Net Revenue', 330000),
        ('Amount Due', 90000),
    ]
    assert document.to_dict()['bill_month'] == '2025-03-01'

    assert invoice.invoice_number in text
    assert 'March 2025' in text
    assert '$900.00 CAD' in text
    assert '-$800.00 CAD' in text
    assert 'DUE' in text


def test_document_lists_payments(service, march_ledger):
    invoice = service.generate_invoice(ORG_ID, '2025-03').invoice
    service.apply_payment(invoice.id, 60000, 'card', '2025-04-02')

    document, text = service.render_invoice(invoice.id)

    assert document.status == 'paid'
    assert document.payments[0]['method'] == 'card'
    assert '2025-04-02 (card)' in text
    assert 'PAID' in text
