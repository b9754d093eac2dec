"""Authentication module for Flask app."""
# JWT auth for API routes
from .jwt_auth import require_auth, require_role, require_org_access, init_auth, AuthError
