# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

Login and self-registration for the storefront. Both return a bearer token
and the public user document:

    {"access_token": "<jwt>", "user": {...}}

SECURITY:
- Unknown e-mail and wrong password share one 401 message
- Registration always creates role=user
"""

from flask import Blueprint, request

from ..services import auth_service


auth_bp = Blueprint("auth", __name__, url_prefix="/api")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and issue a token.

    Request body:
    {
        "email": "reader@example.com",
        "password": "secret"
    }
    """
    data = request.get_json(silent=True) or {}
    return auth_service.authenticate(data.get("email"), data.get("password"))


@auth_bp.post("/register")
def register_route():
    """
    Create a customer account and log it in.

    Request body:
    {
        "email": "reader@example.com",
        "password": "at least 6 chars",
        "name": "Reader"
    }

    Returns: 201 with token and user; 409 if the e-mail is taken.
    """
    data = request.get_json(silent=True) or {}
    result = auth_service.register(data.get("email"), data.get("password"), data.get("name"))
    return result, 201
