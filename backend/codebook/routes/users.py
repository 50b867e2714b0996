# Overview: Flask API routes for self-service user operations; parses input and returns JSON responses.

from flask import Blueprint

from ..decorators import current_actor, require_auth
from ..services import users_service


users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("/<user_id>")
@require_auth
def get_user(user_id: str):
    """Profile of the caller. Other users' ids answer 403."""
    return users_service.get_user(current_actor(), user_id)
