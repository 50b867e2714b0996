# Overview: Flask API routes for customer order operations; parses input and returns JSON responses.

"""
Customer order routes.

Checkout (POST /api/orders) reserves stock, persists a pending order and
sends the confirmation e-mails. Status changes are admin-only and live in
admin.py.
"""

from flask import Blueprint, request

from ..decorators import current_actor, require_auth
from ..services import order_service


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.get("")
@require_auth
def list_my_orders():
    """
    Orders of the caller, newest first.

    Query params:
    - user.id: str (required) - must be the caller's own id
    """
    return order_service.list_orders_for_user(current_actor(), request.args.get("user.id"))


@orders_bp.post("")
@require_auth
def create_order():
    """
    Place an order.

    Request body:
    {
        "cart_list": [{"product_id": "...", "name": "...", "price": 29.99, "quantity": 1}],
        "amount_paid": 29.99,
        "quantity": 1,
        "user": {"id": "...", "name": "...", "email": "..."},
        "payment_intent_id": "pi_...",       // optional
        "shipping_address": {...}            // optional
    }

    Returns: 201 with the order (including _stock_restores).
    """
    data = request.get_json(silent=True) or {}
    order = order_service.create_order(
        current_actor(),
        cart_list=data.get("cart_list"),
        amount_paid=data.get("amount_paid"),
        user=data.get("user") if isinstance(data.get("user"), dict) else None,
        quantity=data.get("quantity"),
        payment_intent_id=data.get("payment_intent_id") or None,
        shipping_address=data.get("shipping_address"),
    )
    return order, 201
