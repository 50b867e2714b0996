# Overview: Service-layer operations for auth; registration, login, and password hashing.

"""
Authentication Service

WHY: Customers sign up and log in with e-mail and password; admins are
ordinary users with role=admin. Every successful call returns a signed bearer
token (see session_service.py) plus the public user document.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor BCRYPT_ROUNDS, default 12)
- E-mail addresses are stored lower-cased and are unique
- Unknown e-mail and wrong password produce the same 401 message
- password_hash never leaves the service layer
"""

import re
import uuid

import bcrypt
from flask import current_app

from ..errors import Conflict, Unauthenticated, ValidationError
from ..models import ROLE_USER, VALID_ROLES
from ..time_utils import utcnow
from . import document_store, session_service
from .users_service import find_user_by_email, public_user


EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MIN_PASSWORD_LENGTH = 6


def validate_password_strength(password) -> None:
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")


def normalize_email(email) -> str:
    email = (email or "").strip().lower() if isinstance(email, str) else ""
    if not EMAIL_RE.match(email):
        raise ValidationError("A valid email is required")
    return email


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=current_app.config.get("BCRYPT_ROUNDS", 12))
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str | None) -> bool:
    """Timing-safe bcrypt comparison; malformed hashes never match."""
    if not password_hash or not isinstance(password, str):
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def create_user(email: str, password: str, name: str, role: str = ROLE_USER) -> dict:
    """
    Insert a user document. Conflict if the e-mail is already registered.
    """
    email = normalize_email(email)
    name = (name or "").strip() if isinstance(name, str) else ""
    if not name:
        raise ValidationError("Name is required")
    if role not in VALID_ROLES:
        raise ValidationError(f"Invalid role. Must be one of: {', '.join(sorted(VALID_ROLES))}")

    if find_user_by_email(email):
        raise Conflict("User with this email already exists")

    now = utcnow()
    record = {
        "id": uuid.uuid4().hex,
        "email": email,
        "name": name,
        "password_hash": hash_password(password),
        "role": role,
        "created_at": now,
        "updated_at": now,
    }
    try:
        return document_store.put("users", record, condition={"id__exists": False})
    except Conflict:
        # lost a race with another registration for the same e-mail
        raise Conflict("User with this email already exists") from None


def register(email, password, name) -> dict:
    user = create_user(email, password, name)
    current_app.logger.info("Registered user %s", user["id"])
    return {"access_token": session_service.issue_token(user), "user": public_user(user)}


def authenticate(email, password) -> dict:
    """
    Verify credentials and issue a token.

    Raises Unauthenticated if the e-mail is unknown or the password is wrong.
    """
    if not email or not password:
        raise ValidationError("Email and password are required")

    user = find_user_by_email(str(email).strip().lower())
    if user is None or not verify_password(password, user.get("password_hash")):
        raise Unauthenticated("Invalid email or password")

    return {"access_token": session_service.issue_token(user), "user": public_user(user)}
