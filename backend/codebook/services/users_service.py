# Overview: Service-layer operations for user accounts; self-service reads and admin management.

from __future__ import annotations

from flask import current_app

from ..errors import Conflict, Forbidden, NotFound, ValidationError
from ..models import VALID_ROLES
from . import audit_service, document_store


# Always-protected demo accounts; the configured guest/admin logins are added at runtime.
BUILTIN_DEMO_EMAILS = {"test@example.com", "admin@example.com"}

EDITABLE_FIELDS = ("name", "email", "role")


def public_user(user: dict | None) -> dict | None:
    if user is None:
        return None
    return {k: v for k, v in user.items() if k != "password_hash"}


def demo_emails() -> set[str]:
    cfg = current_app.config
    configured = {cfg.get("GUEST_LOGIN_EMAIL"), cfg.get("ADMIN_LOGIN_EMAIL")}
    return BUILTIN_DEMO_EMAILS | {e.strip().lower() for e in configured if e}


def is_demo_account(user: dict) -> bool:
    return (user.get("email") or "").strip().lower() in demo_emails()


def find_user_by_email(email: str) -> dict | None:
    matches = document_store.scan("users", {"email": email.strip().lower()}, limit=1)
    return matches[0] if matches else None


def _load(user_id: str) -> dict:
    user = document_store.get("users", user_id)
    if user is None:
        raise NotFound("User not found")
    return user


def get_user(actor, user_id: str) -> dict:
    """Self-service profile read."""
    if not actor.owns(user_id):
        raise Forbidden("You can only view your own profile")
    return public_user(_load(user_id))


def list_users(actor) -> list[dict]:
    if not actor.is_admin:
        raise Forbidden("Admin access required")
    return [public_user(u) for u in document_store.scan("users", order_by="-created_at")]


def get_user_for_admin(actor, user_id: str) -> dict:
    if not actor.is_admin:
        raise Forbidden("Admin access required")
    return public_user(_load(user_id))


def update_user(actor, user_id: str, data: dict) -> dict:
    """
    Admin edit of name, email, role.

    Demo accounts are read-only. E-mail must stay unique.
    """
    if not actor.is_admin:
        raise Forbidden("Admin access required")
    user = _load(user_id)
    if is_demo_account(user):
        raise Forbidden("Demo accounts cannot be modified")

    patch = {}
    if "name" in data:
        name = (data.get("name") or "").strip() if isinstance(data.get("name"), str) else ""
        if not name:
            raise ValidationError("Name cannot be empty")
        patch["name"] = name
    if "email" in data:
        email = (data.get("email") or "").strip().lower() if isinstance(data.get("email"), str) else ""
        if "@" not in email:
            raise ValidationError("A valid email is required")
        if email != user["email"]:
            other = find_user_by_email(email)
            if other and other["id"] != user_id:
                raise Conflict("Email already in use by another user")
        patch["email"] = email
    if "role" in data:
        if data.get("role") not in VALID_ROLES:
            raise ValidationError(f"Invalid role. Must be one of: {', '.join(sorted(VALID_ROLES))}")
        patch["role"] = data["role"]

    if not patch:
        raise ValidationError(f"Nothing to update. Editable fields: {', '.join(EDITABLE_FIELDS)}")

    updated = document_store.update("users", user_id, patch)
    audit_service.record(actor, audit_service.ACTION_UPDATE, audit_service.ENTITY_USER, user_id, {
        "updated_fields": sorted(patch),
        "email": updated["email"],
    })
    return public_user(updated)


def delete_user(actor, user_id: str) -> dict:
    if not actor.is_admin:
        raise Forbidden("Admin access required")
    if actor.owns(user_id):
        raise ValidationError("You cannot delete your own account")
    user = _load(user_id)
    if is_demo_account(user):
        raise Forbidden("Demo accounts cannot be deleted")

    document_store.delete("users", user_id)
    audit_service.record(actor, audit_service.ACTION_DELETE, audit_service.ENTITY_USER, user_id, {
        "email": user["email"],
        "name": user.get("name"),
    })
    return {"id": user_id, "deleted": True}
