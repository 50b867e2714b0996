# Overview: Service-layer operations for the activity log; append-only audit of privileged mutations.

"""
Activity Log

WHY: Every privileged mutation (product CRUD, user management, order status
changes, refunds) must be attributable after the fact. The log is also the
operator's guide when a payment landed but the order write did not.

RULES:
- Append-only: entries are inserted, never updated or deleted
- record() never fails the caller; the store retries contention, and an entry
  that still cannot be written is logged at ERROR with its full payload
- query() is admin-only and returns newest first, at most MAX_QUERY_LIMIT rows
"""

from __future__ import annotations

import uuid

from flask import current_app

from ..errors import CodebookError, Forbidden, ValidationError
from ..time_utils import utcnow
from . import document_store


ACTION_CREATE = "create"
ACTION_UPDATE = "update"
ACTION_DELETE = "delete"
ACTION_STATUS_CHANGE = "status_change"
VALID_ACTIONS = {ACTION_CREATE, ACTION_UPDATE, ACTION_DELETE, ACTION_STATUS_CHANGE}

ENTITY_ORDER = "order"
ENTITY_PRODUCT = "product"
ENTITY_USER = "user"
ENTITY_TICKET = "ticket"
VALID_ENTITY_TYPES = {ENTITY_ORDER, ENTITY_PRODUCT, ENTITY_USER, ENTITY_TICKET}

DEFAULT_QUERY_LIMIT = 100
MAX_QUERY_LIMIT = 500


def record(actor, action: str, entity_type: str, entity_id, details: dict | None = None) -> dict | None:
    """
    Append one entry. Returns the stored entry, or None if the write failed.
    """
    if action not in VALID_ACTIONS:
        raise ValueError(f"Unknown audit action: {action}")
    if entity_type not in VALID_ENTITY_TYPES:
        raise ValueError(f"Unknown audit entity type: {entity_type}")

    entry = {
        "id": uuid.uuid4().hex,
        "created_at": utcnow(),
        "actor_user_id": actor.user_id if actor else None,
        "actor_email": actor.email if actor else None,
        "actor_name": actor.name if actor else None,
        "action": action,
        "entity_type": entity_type,
        "entity_id": str(entity_id) if entity_id is not None else None,
        "details": details or {},
    }
    try:
        return document_store.put("activity_log", entry, condition={"id__exists": False})
    except CodebookError:
        current_app.logger.error(
            "Failed to write activity log entry %s %s/%s: %r",
            action, entity_type, entity_id, entry["details"],
            exc_info=True,
        )
        return None


def query(
    actor,
    *,
    entity_type: str | None = None,
    action: str | None = None,
    user_id: str | None = None,
    limit=DEFAULT_QUERY_LIMIT,
) -> list[dict]:
    if not actor.is_admin:
        raise Forbidden("Admin access required")

    try:
        limit = int(limit) if limit not in (None, "") else DEFAULT_QUERY_LIMIT
    except (TypeError, ValueError):
        raise ValidationError("limit must be an integer") from None
    limit = max(1, min(limit, MAX_QUERY_LIMIT))

    filters = {}
    if entity_type:
        if entity_type not in VALID_ENTITY_TYPES:
            raise ValidationError(f"Unknown entity type: {entity_type}")
        filters["entity_type"] = entity_type
    if action:
        if action not in VALID_ACTIONS:
            raise ValidationError(f"Unknown action: {action}")
        filters["action"] = action
    if user_id:
        filters["actor_user_id"] = user_id

    return document_store.scan("activity_log", filters, order_by="-created_at", limit=limit)
