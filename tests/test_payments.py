from datetime import date

import pytest

from common.exceptions import NotFoundError, ValidationError
from tests.conftest import ORG_ID


@pytest.fixture
def invoice(service, march_ledger):
    return service.generate_invoice(ORG_ID, '2025-03').invoice


def test_any_payment_marks_paid(service, invoice):
    paid = service.apply_payment(invoice.id, 100, 'cash', '2025-04-01')

    assert paid.status == 'paid'
    assert len(paid.payments) == 1
    assert paid.payments[0].amount_minor == 100
    assert paid.payments[0].method == 'cash'


def test_payment_defaults(service, invoice):
    paid = service.apply_payment(invoice.id, 60000)
    assert paid.payments[0].method == 'bank'
    assert paid.payments[0].payment_date == date.today()


def test_removing_only_payment_reverts_to_due(service, invoice):
    paid = service.apply_payment(invoice.id, 60000)

    reverted = service.remove_payment(paid.payments[0].id)
    assert reverted.status == 'due'
    assert reverted.payments == []


def test_removing_one_of_two_payments_stays_paid(service, invoice):
    service.apply_payment(invoice.id, 30000, 'bank', '2025-04-01')
    paid = service.apply_payment(invoice.id, 30000, 'card', '2025-04-15')
    assert len(paid.payments) == 2

    after = service.remove_payment(paid.payments[0].id)
    assert after.status == 'paid'
    assert len(after.payments) == 1


def test_payment_on_void_invoice_marks_paid(service, invoice):
    service.set_invoice_status(invoice.id, 'void')
    assert service.apply_payment(invoice.id, 500).status == 'paid'


@pytest.mark.parametrize('amount', [0, -100, 12.5, '100', True, None])
def test_rejects_bad_amounts(service, invoice, amount):
    with pytest.raises(ValidationError):
        service.apply_payment(invoice.id, amount)
    assert service.get_invoice(invoice.id).payments == []


def test_rejects_unknown_method_and_bad_date(service, invoice):
    with pytest.raises(ValidationError):
        service.apply_payment(invoice.id, 100, 'cheque')
    with pytest.raises(ValidationError):
        service.apply_payment(invoice.id, 100, 'bank', '2025-13-01')


def test_unknown_invoice_or_payment(service, invoice):
    with pytest.raises(NotFoundError):
        service.apply_payment('missing-invoice', 100)
    with pytest.raises(NotFoundError):
        service.remove_payment('missing-payment')


@pytest.mark.parametrize('transitions', [
    ['void', 'due'],
    ['paid', 'void'],
    ['void', 'paid', 'due'],
])
def test_admin_status_transitions(service, invoice, transitions):
    for status in transitions:
        assert service.set_invoice_status(invoice.id, status).status == status
    assert service.get_invoice(invoice.id).status == transitions[-1]


def test_rejects_unknown_status(service, invoice):
    with pytest.raises(ValidationError):
        service.set_invoice_status(invoice.id, 'overdue')


def test_store_lists_payments_by_date(service, invoice):
    service.apply_payment(invoice.id, 200, 'card', '2025-04-20')
    service.apply_payment(invoice.id, 100, 'bank', '2025-04-02')

    with service.store.session_scope() as session:
        payments = service.store.list_payments(session, invoice.id)
        assert [p.amount_minor for p in payments] == [100, 200]
        assert service.store.count_payments(session, invoice.id) == 2
