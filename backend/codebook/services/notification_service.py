# Overview: Service-layer operations for the notifications badge; unread counts and read marker.

from __future__ import annotations

from datetime import datetime

from ..errors import Conflict, NotFound
from ..time_utils import parse_iso_datetime, to_utc_z, utcnow
from . import document_store
from .order_service import PAID_PAYMENT_STATUSES, STATUS_PENDING, STATUS_PROCESSING


# Orders in these states have nothing new to tell their owner
QUIET_STATUSES = [STATUS_PENDING, STATUS_PROCESSING]


def _read_marker(actor) -> datetime:
    user = document_store.get("users", actor.user_id)
    if user is None:
        raise NotFound("User not found")
    return parse_iso_datetime(user.get("notifications_read_at")) or datetime(1970, 1, 1)


def _own_updates(actor, since: datetime) -> int:
    orders = document_store.scan("orders", {"user_id": actor.user_id, "updated_at__gt": since})
    return sum(1 for o in orders if o["status"] not in QUIET_STATUSES)


def count(actor) -> dict:
    """
    Unread badge for the caller.

    Admins see paid orders placed by other users since the marker, plus
    progress on their own orders. Everyone else sees only their own orders.
    """
    since = _read_marker(actor)
    order_count = _own_updates(actor, since)
    if actor.is_admin:
        order_count += len(document_store.scan("orders", {
            "user_id__ne": actor.user_id,
            "created_at__gt": since,
            "payment_status__in": sorted(PAID_PAYMENT_STATUSES),
        }))
    return {
        "count": order_count,
        "orderCount": order_count,
        "ticketCount": 0,
        "notificationsReadAt": to_utc_z(since) if since.year > 1970 else None,
    }


def mark_read(actor) -> dict:
    """Move the read marker to now; never moves it backwards."""
    user = document_store.get("users", actor.user_id)
    if user is None:
        raise NotFound("User not found")

    now = utcnow()
    if user.get("notifications_read_at"):
        guard = {"notifications_read_at__lt": now}
    else:
        guard = {"notifications_read_at__exists": False}
    try:
        user = document_store.update("users", actor.user_id, {"notifications_read_at": now}, condition=guard)
    except Conflict:
        # a concurrent mark-read already moved it at least this far
        user = document_store.get("users", actor.user_id)
    return {"notificationsReadAt": user["notifications_read_at"]}
