# Overview: Flask API routes for the notifications badge; parses input and returns JSON responses.

from flask import Blueprint

from ..decorators import current_actor, require_auth
from ..services import notification_service


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("/count")
@require_auth
def unread_count():
    return notification_service.count(current_actor())


@notifications_bp.post("/mark-read")
@require_auth
def mark_read():
    return notification_service.mark_read(current_actor())
