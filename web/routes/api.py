"""
REST API routes for the billing engine.
"""

from datetime import datetime

from flask import Blueprint, Response, jsonify, request, current_app

from common.exceptions import ValidationError
from web.auth.jwt_auth import require_auth, require_role, require_org_access, ADMIN_ROLE
from web.utils.audit import audit_log, AuditEvent

api_bp = Blueprint('api', __name__, url_prefix='/api')


def get_service():
    """BillingService bound to the app."""
    return current_app.billing_service


def invoice_payload(invoice):
    """Invoice columns plus its payments."""
    data = invoice.to_dict()
    data['payments'] = [payment.to_dict() for payment in invoice.payments]
    return data


def _json_body():
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


def _as_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'yes')
    return bool(value)


# =============================================================================
# Status & Health
# =============================================================================

@api_bp.route('/health')
def health():
    """Health check endpoint."""
    return jsonify({
        'status': 'healthy',
        'timestamp': datetime.now().isoformat()
    })


# =============================================================================
# Invoices
# =============================================================================

@api_bp.route('/orgs/<org_id>/invoices/generate', methods=['POST'])
@require_role([ADMIN_ROLE])
def api_generate_invoice(org_id):
    """Generate the invoice for a month, or return the existing one."""
    data = _json_body()
    month = data.get('month')
    if not month:
        raise ValidationError('month is required (YYYY-MM)')

    result = get_service().generate_invoice(org_id, month, data.get('property_id') or None)

    if result.was_newly_created:
        audit_log(AuditEvent.INVOICE_GENERATED,
                  f"Invoice {result.invoice.invoice_number} for org {org_id}")

    payload = {
        'invoice': invoice_payload(result.invoice),
        'was_newly_created': result.was_newly_created,
    }
    return jsonify(payload), 201 if result.was_newly_created else 200


@api_bp.route('/orgs/<org_id>/invoices')
@require_auth
def api_list_invoices(org_id):
    """List an org's invoices, newest month first."""
    invoices = get_service().list_invoices(
        org_id,
        status=request.args.get('status') or None,
        month=request.args.get('month') or None,
    )
    return jsonify({
        'invoices': [invoice_payload(invoice) for invoice in invoices],
        'count': len(invoices),
    })


@api_bp.route('/invoices/<invoice_id>')
@require_auth
def api_get_invoice(invoice_id):
    """Get one invoice with its payments."""
    invoice = get_service().get_invoice(invoice_id)
    require_org_access(invoice.org_id)
    return jsonify(invoice_payload(invoice))


@api_bp.route('/invoices/<invoice_id>/document')
@require_auth
def api_invoice_document(invoice_id):
    """Render an invoice. Plain text by default, ?format=json for the payload."""
    document, text = get_service().render_invoice(invoice_id)
    require_org_access(document.org_id)
    if request.args.get('format') == 'json':
        return jsonify(document.to_dict())
    return Response(text, mimetype='text/plain')


@api_bp.route('/invoices/<invoice_id>', methods=['DELETE'])
@require_role([ADMIN_ROLE])
def api_delete_invoice(invoice_id):
    """Delete an invoice and its payments."""
    invoice = get_service().delete_invoice(invoice_id)
    audit_log(AuditEvent.INVOICE_DELETED,
              f"Invoice {invoice.invoice_number} ({invoice_id}) for org {invoice.org_id}",
              level='WARNING')
    return jsonify({'success': True, 'invoice_id': invoice_id})


@api_bp.route('/invoices/<invoice_id>/status', methods=['POST'])
@require_role([ADMIN_ROLE])
def api_set_invoice_status(invoice_id):
    """Set an invoice's status (due, paid or void)."""
    data = _json_body()
    invoice = get_service().set_invoice_status(invoice_id, data.get('status'))
    audit_log(AuditEvent.INVOICE_STATUS_SET,
              f"Invoice {invoice.invoice_number} status set to {invoice.status}")
    return jsonify(invoice_payload(invoice))


# =============================================================================
# Payments
# =============================================================================

@api_bp.route('/invoices/<invoice_id>/payments', methods=['POST'])
@require_role([ADMIN_ROLE])
def api_apply_payment(invoice_id):
    """Record a payment; the invoice becomes paid."""
    data = _json_body()
    invoice = get_service().apply_payment(
        invoice_id,
        data.get('amount_minor'),
        data.get('method') or 'bank',
        data.get('payment_date') or None,
    )
    audit_log(AuditEvent.PAYMENT_APPLIED,
              f"{data.get('amount_minor')} ({data.get('method') or 'bank'}) on invoice {invoice.invoice_number}")
    return jsonify(invoice_payload(invoice)), 201


@api_bp.route('/payments/<payment_id>', methods=['DELETE'])
@require_role([ADMIN_ROLE])
def api_remove_payment(payment_id):
    """Delete a payment; the invoice reverts to due when none remain."""
    invoice = get_service().remove_payment(payment_id)
    audit_log(AuditEvent.PAYMENT_REMOVED,
              f"Payment {payment_id} from invoice {invoice.invoice_number}")
    return jsonify(invoice_payload(invoice))


# =============================================================================
# KPIs
# =============================================================================

@api_bp.route('/orgs/<org_id>/kpis')
@require_auth
def api_kpis(org_id):
    """KPI snapshot for one month, with the fee of the current plan."""
    snapshot = get_service().get_kpis(
        org_id,
        request.args.get('month') or None,
        request.args.get('property_id') or None,
    )
    return jsonify(snapshot.to_dict())


@api_bp.route('/orgs/<org_id>/kpis/history')
@require_auth
def api_kpi_history(org_id):
    """KPI snapshots for the last N months, oldest first."""
    history = get_service().kpi_history(
        org_id,
        months=request.args.get('months'),
        until=request.args.get('until') or None,
        property_id=request.args.get('property_id') or None,
    )
    return jsonify({
        'org_id': org_id,
        'months': len(history),
        'history': [snapshot.to_dict() for snapshot in history],
    })


# =============================================================================
# Fee plans
# =============================================================================

@api_bp.route('/orgs/<org_id>/plan')
@require_auth
def api_current_plan(org_id):
    """Plan in effect today (or ?on=YYYY-MM-DD) for the org or one user."""
    plan = get_service().current_plan(
        org_id,
        user_id=request.args.get('user_id') or None,
        on=request.args.get('on') or None,
    )
    return jsonify(plan.to_dict())


@api_bp.route('/orgs/<org_id>/plan', methods=['POST'])
@require_role([ADMIN_ROLE])
def api_set_plan(org_id):
    """Record a fee plan from effective_date (default today)."""
    data = _json_body()
    plan = get_service().set_plan(
        org_id,
        data.get('tier'),
        user_id=data.get('user_id') or None,
        effective_date=data.get('effective_date') or None,
    )
    audit_log(AuditEvent.PLAN_SET,
              f"Org {org_id} user {plan.user_id or '-'}: {plan.tier} ({plan.percent}%) "
              f"from {plan.effective_date}")
    return jsonify(plan.to_dict())


@api_bp.route('/orgs/<org_id>/fees/reapply', methods=['POST'])
@require_role([ADMIN_ROLE])
def api_reapply_fees(org_id):
    """Recompute the fee columns of existing invoices."""
    data = _json_body()
    user_id = data.get('user_id') or None
    include_paid = _as_bool(data.get('include_paid', False))

    changed = get_service().reapply_fees(org_id, user_id=user_id, include_paid=include_paid)
    audit_log(AuditEvent.FEES_REAPPLIED,
              f"Org {org_id} user {user_id or '-'} include_paid={include_paid}: {changed} changed")
    return jsonify({'success': True, 'changed': changed})


# =============================================================================
# Raw activity
# =============================================================================

@api_bp.route('/orgs/<org_id>/ledger', methods=['POST'])
@require_role([ADMIN_ROLE])
def api_add_ledger_entry(org_id):
    """Record a signed revenue (+) or expense (-) entry."""
    data = _json_body()
    entry = get_service().add_ledger_entry(
        org_id,
        data.get('amount_minor'),
        data.get('entry_date'),
        property_id=data.get('property_id') or None,
        description=data.get('description'),
    )
    return jsonify(entry.to_dict()), 201


@api_bp.route('/orgs/<org_id>/bookings', methods=['POST'])
@require_role([ADMIN_ROLE])
def api_add_booking(org_id):
    """Record a booking for one of the org's properties."""
    data = _json_body()
    if not data.get('property_id'):
        raise ValidationError('property_id is required')

    booking = get_service().add_booking(
        org_id,
        data['property_id'],
        data.get('check_in'),
        data.get('check_out'),
        data.get('status') or 'upcoming',
    )
    payload = booking.to_dict()
    payload['nights'] = booking.nights
    return jsonify(payload), 201
