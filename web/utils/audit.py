"""
Audit logging for administrator actions.

Records payments, status changes, plan changes, fee reapplication and
invoice deletion to a dedicated audit log with actor and client IP.
"""

import logging
import os
from logging.handlers import RotatingFileHandler

from flask import g, has_request_context, request


# Configure audit logger
audit_logger = logging.getLogger('billing.audit')


def setup_audit_logging(app):
    """
    Set up audit logging for the application.

    Creates a dedicated rotating log file (10MB max, 5 backups) under
    AUDIT_LOG_DIR, or logs/ at the repository root.
    """
    log_dir = app.config.get('AUDIT_LOG_DIR') or os.path.join(
        os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))), 'logs'
    )
    os.makedirs(log_dir, exist_ok=True)
    log_file = os.path.abspath(os.path.join(log_dir, 'audit.log'))

    # One handler per file, even when several apps are created in one process
    for handler in audit_logger.handlers:
        if getattr(handler, 'baseFilename', None) == log_file:
            break
    else:
        handler = RotatingFileHandler(log_file, maxBytes=10*1024*1024, backupCount=5)
        handler.setFormatter(logging.Formatter(
            '%(asctime)s | %(levelname)s | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))
        audit_logger.addHandler(handler)

    audit_logger.setLevel(logging.INFO)


def get_client_ip():
    """Get the real client IP, handling proxies."""
    if not has_request_context():
        return 'local'
    if request.headers.get('X-Forwarded-For'):
        return request.headers.get('X-Forwarded-For').split(',')[0].strip()
    return request.remote_addr or 'unknown'


def get_current_username():
    """Token subject of the current request, or 'anonymous'."""
    if has_request_context():
        user = g.get('current_user')
        if user:
            return user.get('sub') or 'anonymous'
    return 'anonymous'


def audit_log(event_type, details, user=None, level='INFO'):
    """
    Log an audit event.

    Args:
        event_type: Type of event (e.g., 'PAYMENT_APPLIED', 'PLAN_SET')
        details: Description of what happened
        user: Actor (defaults to the token subject of the current request)
        level: Log level ('INFO', 'WARNING', 'ERROR')
    """
    username = user or get_current_username()
    ip_address = get_client_ip()

    message = f"{event_type} | User: {username} | IP: {ip_address} | {details}"

    if level == 'WARNING':
        audit_logger.warning(message)
    elif level == 'ERROR':
        audit_logger.error(message)
    else:
        audit_logger.info(message)


class AuditEvent:
    """Audit event type constants."""
    INVOICE_GENERATED = 'INVOICE_GENERATED'
    INVOICE_DELETED = 'INVOICE_DELETED'
    INVOICE_STATUS_SET = 'INVOICE_STATUS_SET'

    PAYMENT_APPLIED = 'PAYMENT_APPLIED'
    PAYMENT_REMOVED = 'PAYMENT_REMOVED'

    PLAN_SET = 'PLAN_SET'
    FEES_REAPPLIED = 'FEES_REAPPLIED'
