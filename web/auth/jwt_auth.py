"""
JWT Authentication Middleware for the Billing API.
Validates bearer tokens issued by the portal backend.

Tokens carry `sub` and `role`. Roles are `admin` and `member`; admin implies
member. Member tokens are scoped to the organizations named in their
`org_id` or `orgs` claim; admin tokens read every org. With AUTH_ENABLED
off every request acts as a local admin.
"""

import jwt
from functools import wraps
from flask import request, jsonify, g, current_app


ADMIN_ROLE = 'admin'
MEMBER_ROLE = 'member'

# Roles granted by each token role
ROLE_GRANTS = {
    ADMIN_ROLE: {ADMIN_ROLE, MEMBER_ROLE},
    MEMBER_ROLE: {MEMBER_ROLE},
}

LOCAL_USER = {'sub': 'local', 'role': ADMIN_ROLE}


class AuthError(Exception):
    """Authentication error with status code."""
    def __init__(self, message, status_code=401):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def get_token_from_header():
    """
    Extract JWT token from Authorization header.

    Returns:
        str: Token string or None
    """
    auth_header = request.headers.get('Authorization', '')

    if auth_header.startswith('Bearer '):
        return auth_header[7:]

    return None


def decode_token(token):
    """
    Decode and validate JWT token.

    Args:
        token: JWT token string

    Returns:
        dict: Decoded payload

    Raises:
        AuthError: If token is invalid
    """
    secret = current_app.config.get('JWT_SECRET')
    algorithm = current_app.config.get('JWT_ALGORITHM', 'HS256')

    if not secret:
        raise AuthError('JWT secret not configured', 500)

    try:
        return jwt.decode(token, secret, algorithms=[algorithm])
    except jwt.ExpiredSignatureError:
        raise AuthError('Token has expired')
    except jwt.InvalidTokenError as e:
        raise AuthError(f'Invalid token: {str(e)}')


def token_org_ids(payload):
    """Organizations a token is scoped to, from its `org_id` and `orgs` claims."""
    orgs = payload.get('orgs') or []
    if isinstance(orgs, str):
        orgs = [orgs]
    org_ids = set(orgs)
    if payload.get('org_id'):
        org_ids.add(payload['org_id'])
    return org_ids


def has_org_access(org_id, user):
    """Admins see every org; members only the orgs their token names."""
    if user.get('role') == ADMIN_ROLE:
        return True
    return org_id in token_org_ids(user)


def require_org_access(org_id):
    """
    Raise AuthError (403) unless the current user may read org_id.
    For routes that learn the org from a stored row (invoices).
    """
    if not has_org_access(org_id, g.get('current_user') or {}):
        raise AuthError(f'Not authorized for organization {org_id}', 403)


def _authenticate(allowed_roles, org_id=None):
    """
    Authenticate the request, check its role and, for org routes, its org.

    Returns:
        A (response, status) tuple to return instead of the view, or None.
    """
    if not current_app.config.get('AUTH_ENABLED', True):
        g.current_user = dict(LOCAL_USER)
        return None

    token = get_token_from_header()

    if not token:
        return jsonify({
            'error': 'Unauthorized',
            'message': 'Missing authentication token'
        }), 401

    try:
        payload = decode_token(token)
    except AuthError as e:
        return jsonify({
            'error': 'Authentication failed',
            'message': e.message
        }), e.status_code

    granted = ROLE_GRANTS.get(payload.get('role', ''), set())
    if not granted.intersection(allowed_roles):
        return jsonify({
            'error': 'Forbidden',
            'message': f'This endpoint requires one of: {", ".join(allowed_roles)}'
        }), 403

    if org_id is not None and not has_org_access(org_id, payload):
        return jsonify({
            'error': 'Forbidden',
            'message': f'Not authorized for organization {org_id}'
        }), 403

    g.current_user = payload
    return None


def require_auth(f):
    """
    Decorator to require an authenticated member (or admin).
    Sets g.current_user with the token payload.

    Usage:
        @api_bp.route('/orgs/<org_id>/kpis')
        @require_auth
        def kpis(org_id):
            user = g.current_user
            ...
    """
    @wraps(f)
    def decorated(*args, **kwargs):
        denied = _authenticate([MEMBER_ROLE], kwargs.get('org_id'))
        if denied is not None:
            return denied
        return f(*args, **kwargs)

    return decorated


def require_role(allowed_roles):
    """
    Decorator factory to require specific roles.

    Usage:
        @api_bp.route('/invoices/<invoice_id>', methods=['DELETE'])
        @require_role(['admin'])
        def delete_invoice(invoice_id):
            ...
    """
    def decorator(f):
        @wraps(f)
        def decorated(*args, **kwargs):
            denied = _authenticate(allowed_roles, kwargs.get('org_id'))
            if denied is not None:
                return denied
            return f(*args, **kwargs)

        return decorated
    return decorator


def init_auth(app):
    """
    Initialize authentication for Flask app.
    Adds error handlers and before_request hooks.

    Args:
        app: Flask application
    """
    @app.errorhandler(AuthError)
    def handle_auth_error(error):
        return jsonify({
            'error': 'Forbidden' if error.status_code == 403 else 'Authentication error',
            'message': error.message
        }), error.status_code

    @app.before_request
    def log_auth_info():
        token = get_token_from_header()
        if token and app.config.get('JWT_SECRET'):
            try:
                payload = decode_token(token)
                app.logger.debug(f"Authenticated request from user {payload.get('sub')} ({payload.get('role')})")
            except AuthError:
                app.logger.debug("Request with invalid token")
