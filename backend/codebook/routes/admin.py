# Overview: Flask API routes for admin operations; parses input and returns JSON responses.

"""
Admin routes for the catalog, orders, users and the activity log.

Provides endpoints for:
- Product management (list, create, update, delete)
- Order management (list, status changes, refunds, tracking, labels)
- User management (list, update, delete)
- Activity log queries

All endpoints require a bearer token with role=admin. Business rules live in
the services; handlers only unpack the request.
"""

from flask import Blueprint, request

from ..decorators import current_actor, require_admin, require_auth
from ..services import audit_service, order_service, products_service, users_service


admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


def _body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


# =============================================================================
# PRODUCT MANAGEMENT
# =============================================================================

@admin_bp.get("/products")
@require_auth
@require_admin
def list_products():
    return products_service.list_products(request.args.get("name_like"))


@admin_bp.post("/products")
@require_auth
@require_admin
def create_product():
    """
    Create a product.

    Request body: name and price required; overview, long_description, poster,
    image_local, size, rating, best_seller, featured_product, stock,
    low_stock_threshold optional.
    """
    return products_service.create_product(current_actor(), _body()), 201


@admin_bp.get("/products/<product_id>")
@require_auth
@require_admin
def get_product(product_id: str):
    return products_service.get_product(product_id)


@admin_bp.put("/products/<product_id>")
@require_auth
@require_admin
def update_product(product_id: str):
    """Partial update; only the supplied fields change."""
    return products_service.update_product(current_actor(), product_id, _body())


@admin_bp.delete("/products/<product_id>")
@require_auth
@require_admin
def delete_product(product_id: str):
    return products_service.delete_product(current_actor(), product_id)


# =============================================================================
# ORDER MANAGEMENT
# =============================================================================

@admin_bp.get("/orders")
@require_auth
@require_admin
def list_orders():
    """
    List all orders, newest first.

    Query params:
    - status: str (optional) - one of pending, processing, shipped, delivered,
      cancelled, refunded
    """
    return order_service.list_orders(current_actor(), request.args.get("status") or None)


@admin_bp.get("/orders/<order_id>")
@require_auth
@require_admin
def get_order(order_id: str):
    return order_service.get_order(current_actor(), order_id)


@admin_bp.put("/orders/<order_id>/status")
@require_auth
@require_admin
def update_order_status(order_id: str):
    """
    Move an order along its lifecycle.

    Request body:
    {
        "status": "shipped",
        "tracking_number": "9400...",    // optional, shipped only
        "tracking_carrier": "usps"       // optional
    }

    Returns: the updated order; cancelled includes _stock_restores.
    """
    data = _body()
    return order_service.update_status(
        current_actor(),
        order_id,
        data.get("status"),
        tracking_number=data.get("tracking_number"),
        tracking_carrier=data.get("tracking_carrier"),
    )


@admin_bp.post("/orders/<order_id>/refund")
@require_auth
@require_admin
def refund_order(order_id: str):
    """
    Refund an order through the payment gateway.

    Request body:
    {
        "amount": 1500,                      // optional, minor units; full refund if omitted
        "reason": "requested_by_customer"    // optional
    }
    """
    data = _body()
    return order_service.refund(current_actor(), order_id, data.get("amount"), data.get("reason"))


@admin_bp.post("/orders/<order_id>/tracking")
@require_auth
@require_admin
def add_tracking(order_id: str):
    """
    Record tracking details, optionally changing status.

    Request body:
    {
        "tracking_number": "9400...",
        "tracking_carrier": "usps",
        "status": "shipped"              // optional
    }
    """
    data = _body()
    return order_service.attach_tracking(
        current_actor(),
        order_id,
        data.get("tracking_number"),
        data.get("tracking_carrier"),
        data.get("status"),
    )


@admin_bp.post("/orders/<order_id>/generate-label")
@require_auth
@require_admin
def generate_label(order_id: str):
    """
    Buy a shipping label and mark the order shipped.

    Request body (all optional): service, to_address, length, width, height.
    """
    return order_service.generate_label(current_actor(), order_id, _body())


# =============================================================================
# USER MANAGEMENT
# =============================================================================

@admin_bp.get("/users")
@require_auth
@require_admin
def list_users():
    return users_service.list_users(current_actor())


@admin_bp.get("/users/<user_id>")
@require_auth
@require_admin
def get_user(user_id: str):
    return users_service.get_user_for_admin(current_actor(), user_id)


@admin_bp.put("/users/<user_id>")
@require_auth
@require_admin
def update_user(user_id: str):
    """Edit name, email or role. Demo accounts answer 403."""
    return users_service.update_user(current_actor(), user_id, _body())


@admin_bp.delete("/users/<user_id>")
@require_auth
@require_admin
def delete_user(user_id: str):
    return users_service.delete_user(current_actor(), user_id)


# =============================================================================
# ACTIVITY LOG
# =============================================================================

@admin_bp.get("/activity-logs")
@require_auth
@require_admin
def activity_logs():
    """
    Query the audit trail, newest first.

    Query params:
    - entityType: str (optional) - order, product, user, ticket
    - action: str (optional) - create, update, delete, status_change
    - userId: str (optional) - actor user id
    - limit: int (optional) - default 100, clamped to 1..500
    """
    return audit_service.query(
        current_actor(),
        entity_type=request.args.get("entityType") or None,
        action=request.args.get("action") or None,
        user_id=request.args.get("userId") or None,
        limit=request.args.get("limit"),
    )
