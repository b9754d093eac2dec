"""
Flask Web Application for the Billing Engine.
Provides the REST API over invoices, payments, fee plans and KPIs.
"""

import logging
from datetime import datetime

from flask import Flask, request, jsonify
from flask_cors import CORS

from common.config import load_auth_config
from common.config_loader import get_config, get_flask_config
from common.exceptions import BillingError

logger = logging.getLogger(__name__)


def create_app(config=None, service=None):
    """
    Create Flask application with the API blueprint registered.

    Args:
        config: Extra Flask settings applied over the YAML ones (optional)
        service: BillingService (optional, built from configuration if not provided)

    Returns:
        Flask application
    """
    app = Flask(__name__)

    # Load Flask configuration from unified config
    app.config.update(get_flask_config())

    auth_config = load_auth_config(get_config())
    app.config['AUTH_ENABLED'] = auth_config.enabled
    app.config['JWT_SECRET'] = auth_config.jwt_secret
    app.config['JWT_ALGORITHM'] = auth_config.algorithm

    if config:
        app.config.update(config)

    if service is None:
        from billing.service import create_service
        service = create_service()

    # Shared by all blueprints
    app.billing_service = service

    # Initialize CORS
    CORS(app)

    # Initialize JWT auth for API routes
    from web.auth.jwt_auth import init_auth
    init_auth(app)

    # Track start time
    app.web_started_at = datetime.now()

    # Initialize audit logging
    from web.utils.audit import setup_audit_logging
    setup_audit_logging(app)

    @app.errorhandler(BillingError)
    def handle_billing_error(error):
        if error.status_code >= 500:
            logger.error(f"{request.method} {request.path} failed: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    # Add security headers and prevent caching of API responses
    @app.after_request
    def add_security_headers(response):
        if '/api/' in request.path:
            response.headers['Cache-Control'] = 'no-store, no-cache, must-revalidate, max-age=0'
            response.headers['Pragma'] = 'no-cache'
            response.headers['Expires'] = '0'

        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
        response.headers['Content-Security-Policy'] = "default-src 'none'; frame-ancestors 'none'"
        return response

    # Register blueprints
    from web.routes import api_bp
    app.register_blueprint(api_bp)

    return app


def run_app(host='0.0.0.0', port=5000, debug=False):
    """Run the Flask application."""
    app_config = get_config()
    app = create_app()

    # Get server settings from config
    flask_settings = app_config.app.flask
    if flask_settings:
        host = flask_settings.host or host
        port = flask_settings.port or port
        debug = flask_settings.debug if flask_settings.debug is not None else debug

    app.run(host=host, port=port, debug=debug)


if __name__ == '__main__':
    run_app(debug=True)
