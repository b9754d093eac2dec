from click.testing import CliRunner

import pytest

from cli.main import cli
from tests.conftest import ORG_ID, PROPERTY_ID


@pytest.fixture
def run(service):
    runner = CliRunner()

    def invoke(*args):
        return runner.invoke(cli, list(args), obj={'service': service})

    return invoke


def test_add_org_and_property(run, service):
    result = run('add-org', 'Harbour Lofts', '--email', 'billing@harbour.example', '--id', 'org-harbour')
    assert result.exit_code == 0
    assert 'Organization created: org-harbour' in result.output

    result = run('add-property', 'org-harbour', 'Pier Suite', '--owner', 'u-9', '--id', 'prop-pier')
    assert result.exit_code == 0
    assert 'Property created: prop-pier' in result.output
    assert 'org-harbour' in service.list_organization_ids()


def test_generate_twice(run, march_ledger):
    first = run('generate', ORG_ID, '--month', '2025-03')
    assert first.exit_code == 0
    assert 'Invoice created: INV-202503-5F0C2A9E' in first.output

    second = run('generate', ORG_ID, '--month', '2025-03')
    assert second.exit_code == 0
    assert 'Invoice already exists: INV-202503-5F0C2A9E' in second.output


def test_generate_unknown_org_exits_non_zero(run, org):
    result = run('generate', 'no-such-org', '--month', '2025-03')
    assert result.exit_code == 1
    assert 'Not found' in result.output


def test_generate_bad_month(run, org):
    result = run('generate', ORG_ID, '--month', '03/2025')
    assert result.exit_code == 1
    assert 'Validation error' in result.output


def test_generate_all(run, service, march_ledger):
    service.add_organization('Quiet Pines', org_id='org-pines')

    result = run('generate-all', '--month', '2025-03')
    assert result.exit_code == 0
    assert '2 created' in result.output
    assert len(service.list_invoices(ORG_ID)) == 1
    assert len(service.list_invoices('org-pines')) == 1

    again = run('generate-all', '--month', '2025-03')
    assert '0 created' in again.output
    assert '2 already existed' in again.output


def test_pay_and_unpay(run, service, march_ledger):
    invoice = service.generate_invoice(ORG_ID, '2025-03').invoice

    result = run('pay', invoice.id, '60000', '--method', 'card', '--date', '2025-04-02')
    assert result.exit_code == 0
    assert 'Payment of $600.00 CAD recorded' in result.output
    assert 'is PAID' in result.output

    payment_id = service.get_invoice(invoice.id).payments[0].id
    result = run('unpay', payment_id)
    assert result.exit_code == 0
    assert 'is DUE' in result.output


def test_pay_rejects_zero(run, service, march_ledger):
    invoice = service.generate_invoice(ORG_ID, '2025-03').invoice
    result = run('pay', invoice.id, '0')
    assert result.exit_code == 1
    assert service.get_invoice(invoice.id).status == 'due'


def test_status_and_show(run, service, march_ledger):
    invoice = service.generate_invoice(ORG_ID, '2025-03', PROPERTY_ID).invoice

    result = run('status', invoice.id, 'void')
    assert result.exit_code == 0
    assert 'is now VOID' in result.output

    shown = run('show', invoice.id)
    assert shown.exit_code == 0
    assert 'Lakeview Cabin' in shown.output
    assert 'Status:   VOID' in shown.output


def test_set_plan_and_reapply(run, service, march_ledger):
    service.generate_invoice(ORG_ID, '2025-03')

    result = run('set-plan', ORG_ID, 'maximize', '--effective', '2025-01-01')
    assert result.exit_code == 0
    assert 'Plan maximize (22%) effective 2025-01-01' in result.output

    result = run('reapply-fees', ORG_ID)
    assert result.exit_code == 0
    assert '1 invoice(s) re-priced' in result.output
    assert service.list_invoices(ORG_ID)[0].amount_due_minor == 110000


def test_plan_shows_default(run, org):
    result = run('plan', ORG_ID)
    assert result.exit_code == 0
    assert 'launch (12%) - default tier' in result.output


def test_unknown_tier_rejected_by_click(run, org):
    result = run('set-plan', ORG_ID, 'platinum')
    assert result.exit_code == 2


def test_kpis_and_history(run, march_ledger):
    result = run('kpis', ORG_ID, '--month', '2025-03')
    assert result.exit_code == 0
    assert '2025-03' in result.output

    result = run('history', ORG_ID, '--months', '3', '--until', '2025-03')
    assert result.exit_code == 0
    for month in ('2025-01', '2025-02', '2025-03'):
        assert month in result.output
