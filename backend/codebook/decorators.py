# Overview: Request and permission decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .errors import CodebookError
from .services import session_service


def _is_authenticated() -> bool:
    return hasattr(g, 'auth')


def current_actor():
    """AuthContext of the current request; only valid inside @require_auth."""
    return g.auth


def require_auth(f):
    """
    Require a valid bearer token and establish the request's identity.

    Sets g.auth to the AuthContext built from the token claims.

    SECURITY: Returns 401 if:
    - No Authorization header
    - Header is not "Bearer <token>"
    - Token signature invalid, malformed or expired
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        # Extract token from Authorization header
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1].strip()

        try:
            g.auth = session_service.validate_token(token)
        except CodebookError as e:
            return jsonify(e.to_dict()), e.status_code

        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """Require the authenticated caller to hold the admin role."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        # Ensure @require_auth was called first
        if not _is_authenticated():
            return jsonify({"error": "Authentication required"}), 401
        if not g.auth.is_admin:
            return jsonify({"error": "Admin access required"}), 403
        return f(*args, **kwargs)
    return decorated_function
