"""
Billing CLI - Main entry point.
Built with Click for a rich command-line interface.
"""

import logging
import sys
from functools import wraps

import click
from rich.console import Console
from rich.table import Table
from tqdm import tqdm

from billing.fees import format_money
from common.exceptions import BillingError

console = Console()


def get_service(ctx):
    """BillingService for this invocation, built from configuration on first use."""
    obj = ctx.find_root().obj
    if obj.get('service') is None:
        from billing.service import create_service
        obj['service'] = create_service(obj.get('config_dir'))
    return obj['service']


def billing_command(f):
    """Print engine errors in red and exit non-zero."""
    @wraps(f)
    def decorated(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except BillingError as e:
            console.print(f"[red]{e.kind}: {e.message}[/red]")
            if e.retryable:
                console.print("[yellow]The store is unavailable; retry later.[/yellow]")
            sys.exit(1)
    return decorated


def _money(ctx, amount_minor):
    return format_money(amount_minor, get_service(ctx).config.currency)


def _status_style(status):
    return {'due': 'yellow', 'paid': 'green', 'void': 'red'}.get(status, 'white')


def _print_invoice(ctx, invoice, title="Invoice"):
    table = Table(title=title)
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")

    style = _status_style(invoice.status)
    table.add_row("Invoice", invoice.invoice_number)
    table.add_row("ID", invoice.id)
    table.add_row("Organization", invoice.org_id)
    table.add_row("Property", invoice.property_id or 'org-wide')
    table.add_row("Month", invoice.bill_month.strftime('%Y-%m'))
    table.add_row("Gross Revenue", _money(ctx, invoice.gross_revenue_minor))
    table.add_row("Expenses", _money(ctx, invoice.expenses_minor))
    table.add_row(f"Fee ({invoice.plan_tier or '-'} {invoice.fee_percent}%)", _money(ctx, invoice.fee_minor))
    table.add_row("Net Revenue", _money(ctx, invoice.net_revenue_minor))
    table.add_row("Amount Due", _money(ctx, invoice.amount_due_minor))
    table.add_row("Status", f"[{style}]{invoice.status.upper()}[/{style}]")
    table.add_row("Payments", str(len(invoice.payments)))

    console.print(table)


@click.group()
@click.version_option(version='1.0.0', prog_name='billing')
@click.option('--config-dir', '-c', default=None,
              help='Directory holding the YAML configuration files')
@click.option('--verbose', '-v', is_flag=True, help='Enable debug logging')
@click.pass_context
def cli(ctx, config_dir, verbose):
    """Billing & KPI engine - invoices, payments, fee plans and KPIs."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    ctx.ensure_object(dict)
    ctx.obj['config_dir'] = config_dir


# =============================================================================
# Setup Commands
# =============================================================================

@cli.command('init-db')
@click.pass_context
@billing_command
def init_db(ctx):
    """Create the billing tables."""
    get_service(ctx).store.create_schema()
    console.print("[green]Billing schema ready[/green]")


@cli.command('add-org')
@click.argument('name')
@click.option('--email', help='Billing email for invoice notifications')
@click.option('--id', 'org_id', help='Explicit organization id')
@click.pass_context
@billing_command
def add_org(ctx, name, email, org_id):
    """Create an organization."""
    org = get_service(ctx).add_organization(name, email, org_id)
    console.print(f"[green]Organization created: {org.id}[/green]")


@cli.command('add-property')
@click.argument('org_id')
@click.argument('name')
@click.option('--owner', help='Owner user id (selects user-level fee plans)')
@click.option('--id', 'property_id', help='Explicit property id')
@click.pass_context
@billing_command
def add_property(ctx, org_id, name, owner, property_id):
    """Create a property for an organization."""
    prop = get_service(ctx).add_property(org_id, name, owner, property_id)
    console.print(f"[green]Property created: {prop.id}[/green]")


# =============================================================================
# Invoice Commands
# =============================================================================

@cli.command()
@click.argument('org_id')
@click.option('--month', '-m', required=True, help='Billing month (YYYY-MM)')
@click.option('--property', 'property_id', help='Bill a single property')
@click.option('--notify', is_flag=True, help='Send the new-invoice notification')
@click.pass_context
@billing_command
def generate(ctx, org_id, month, property_id, notify):
    """Generate (or fetch) the invoice for a month."""
    result = get_service(ctx).generate_invoice(org_id, month, property_id, notify=notify)

    if result.was_newly_created:
        console.print(f"[green]Invoice created: {result.invoice.invoice_number}[/green]")
    else:
        console.print(f"[yellow]Invoice already exists: {result.invoice.invoice_number}[/yellow]")
    _print_invoice(ctx, result.invoice)


@cli.command('generate-all')
@click.option('--month', '-m', required=True, help='Billing month (YYYY-MM)')
@click.option('--notify', is_flag=True, help='Send notifications for new invoices')
@click.pass_context
@billing_command
def generate_all(ctx, month, notify):
    """Generate the org-wide invoice of every organization for a month."""
    service = get_service(ctx)
    org_ids = service.list_organization_ids()

    created = 0
    failed = []
    for org_id in tqdm(org_ids, desc="Generating invoices", unit="org"):
        try:
            result = service.generate_invoice(org_id, month, notify=notify)
        except BillingError as e:
            failed.append((org_id, e.message))
            tqdm.write(f"  {org_id}: {e.message}")
            continue
        if result.was_newly_created:
            created += 1

    console.print(
        f"[green]{created} created[/green], "
        f"{len(org_ids) - created - len(failed)} already existed, "
        f"[red]{len(failed)} failed[/red]"
    )
    if failed:
        sys.exit(1)


@cli.command('invoices')
@click.argument('org_id')
@click.option('--status', '-s', type=click.Choice(['due', 'paid', 'void']), help='Filter by status')
@click.option('--month', '-m', help='Filter by billing month (YYYY-MM)')
@click.pass_context
@billing_command
def list_invoices(ctx, org_id, status, month):
    """List an organization's invoices."""
    invoices = get_service(ctx).list_invoices(org_id, status=status, month=month)

    table = Table(title=f"Invoices - {org_id}")
    table.add_column("Invoice", style="cyan")
    table.add_column("Month", style="yellow")
    table.add_column("Property", style="blue")
    table.add_column("Amount Due", justify="right")
    table.add_column("Status")

    for invoice in invoices:
        style = _status_style(invoice.status)
        table.add_row(
            invoice.invoice_number,
            invoice.bill_month.strftime('%Y-%m'),
            invoice.property_id or 'org-wide',
            _money(ctx, invoice.amount_due_minor),
            f"[{style}]{invoice.status.upper()}[/{style}]",
        )

    console.print(table)


@cli.command('show')
@click.argument('invoice_id')
@click.pass_context
@billing_command
def show_invoice(ctx, invoice_id):
    """Print an invoice document."""
    _, text = get_service(ctx).render_invoice(invoice_id)
    click.echo(text)


@cli.command('reapply-fees')
@click.argument('org_id')
@click.option('--user', 'user_id', help='Only invoices billed to this user')
@click.option('--include-paid', is_flag=True, help='Also re-price paid and void invoices')
@click.pass_context
@billing_command
def reapply_fees(ctx, org_id, user_id, include_paid):
    """Recompute fees of existing invoices from the current plans."""
    changed = get_service(ctx).reapply_fees(org_id, user_id=user_id, include_paid=include_paid)
    console.print(f"[green]{changed} invoice(s) re-priced[/green]")


@cli.command('status')
@click.argument('invoice_id')
@click.argument('status', type=click.Choice(['due', 'paid', 'void']))
@click.pass_context
@billing_command
def set_status(ctx, invoice_id, status):
    """Set an invoice's status."""
    invoice = get_service(ctx).set_invoice_status(invoice_id, status)
    console.print(f"[green]{invoice.invoice_number} is now {invoice.status.upper()}[/green]")


# =============================================================================
# Payment Commands
# =============================================================================

@cli.command()
@click.argument('invoice_id')
@click.argument('amount', type=int)
@click.option('--method', default='bank', type=click.Choice(['bank', 'card', 'cash', 'other']),
              help='Payment method')
@click.option('--date', 'payment_date', help='Payment date (YYYY-MM-DD, default today)')
@click.pass_context
@billing_command
def pay(ctx, invoice_id, amount, method, payment_date):
    """Record a payment of AMOUNT minor units (cents)."""
    invoice = get_service(ctx).apply_payment(invoice_id, amount, method, payment_date)
    console.print(
        f"[green]Payment of {_money(ctx, amount)} recorded; "
        f"{invoice.invoice_number} is {invoice.status.upper()}[/green]"
    )


@cli.command()
@click.argument('payment_id')
@click.pass_context
@billing_command
def unpay(ctx, payment_id):
    """Delete a payment."""
    invoice = get_service(ctx).remove_payment(payment_id)
    console.print(f"[green]Payment removed; {invoice.invoice_number} is {invoice.status.upper()}[/green]")


# =============================================================================
# KPI & Plan Commands
# =============================================================================

def _kpi_table(ctx, title, snapshots):
    table = Table(title=title)
    table.add_column("Month", style="cyan", no_wrap=True)
    table.add_column("Gross", justify="right")
    table.add_column("Expenses", justify="right")
    table.add_column("Fee", justify="right")
    table.add_column("Net", justify="right")
    table.add_column("Nights", justify="right")
    table.add_column("Occupancy", justify="right", style="magenta")

    for snapshot in snapshots:
        net_style = 'green' if snapshot.net_revenue_minor >= 0 else 'red'
        table.add_row(
            snapshot.month.strftime('%Y-%m'),
            _money(ctx, snapshot.gross_revenue_minor),
            _money(ctx, snapshot.expenses_minor),
            f"{_money(ctx, snapshot.management_fee_minor)} ({snapshot.fee_percent}%)",
            f"[{net_style}]{_money(ctx, snapshot.net_revenue_minor)}[/{net_style}]",
            str(snapshot.nights_booked),
            f"{snapshot.occupancy_rate:.1%}",
        )
    return table


@cli.command()
@click.argument('org_id')
@click.option('--month', '-m', help='Month (YYYY-MM, default current)')
@click.option('--property', 'property_id', help='Single property')
@click.pass_context
@billing_command
def kpis(ctx, org_id, month, property_id):
    """Show KPIs for one month."""
    snapshot = get_service(ctx).get_kpis(org_id, month, property_id)
    console.print(_kpi_table(ctx, f"KPIs - {org_id}", [snapshot]))


@cli.command()
@click.argument('org_id')
@click.option('--months', '-n', type=int, default=None, help='Number of months (max 36)')
@click.option('--until', help='Last month (YYYY-MM, default current)')
@click.option('--property', 'property_id', help='Single property')
@click.pass_context
@billing_command
def history(ctx, org_id, months, until, property_id):
    """Show KPIs for the last N months."""
    snapshots = get_service(ctx).kpi_history(org_id, months=months, until=until, property_id=property_id)
    console.print(_kpi_table(ctx, f"KPI History - {org_id}", snapshots))


@cli.command('set-plan')
@click.argument('org_id')
@click.argument('tier', type=click.Choice(['launch', 'elevate', 'maximize']))
@click.option('--user', 'user_id', help='User-level plan (default org-level)')
@click.option('--effective', help='Effective date (YYYY-MM-DD, default today)')
@click.pass_context
@billing_command
def set_plan(ctx, org_id, tier, user_id, effective):
    """Set the fee plan of an organization or user."""
    plan = get_service(ctx).set_plan(org_id, tier, user_id=user_id, effective_date=effective)
    console.print(
        f"[green]Plan {plan.tier} ({plan.percent}%) effective {plan.effective_date} "
        f"for {'user ' + plan.user_id if plan.user_id else 'org ' + org_id}[/green]"
    )


@cli.command('plan')
@click.argument('org_id')
@click.option('--user', 'user_id', help='Resolve for this user')
@click.option('--on', 'on_date', help='Date (YYYY-MM-DD, default today)')
@click.pass_context
@billing_command
def show_plan(ctx, org_id, user_id, on_date):
    """Show the plan in effect."""
    plan = get_service(ctx).current_plan(org_id, user_id=user_id, on=on_date)
    source = 'default tier' if plan.is_default else f"{plan.source} plan from {plan.effective_date}"
    console.print(f"[cyan]{plan.tier}[/cyan] ({plan.percent}%) - {source}")


if __name__ == '__main__':
    cli()
