# Overview: Flask API routes for payments operations; parses input and returns JSON responses.

"""
Payment routes (Stripe).

The browser confirms the payment with the client secret returned by
create-intent; the server never sees card data. The webhook is public and
authenticated by the Stripe-Signature header instead of a bearer token.
"""

from flask import Blueprint, request

from ..decorators import current_actor, require_auth
from ..services import payment_service


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payment")


@payments_bp.post("/create-intent")
@require_auth
def create_intent():
    """
    Create a payment intent for the caller's cart.

    Request body:
    {
        "amount": 2999,              // minor units, at least 50
        "currency": "usd",           // optional
        "metadata": {...},           // optional
        "cart_list": [...]           // optional, used for the idempotency key
    }
    """
    data = request.get_json(silent=True) or {}
    return payment_service.create_intent(
        current_actor(),
        data.get("amount"),
        currency=data.get("currency"),
        metadata=data.get("metadata") if isinstance(data.get("metadata"), dict) else None,
        cart_list=data.get("cart_list"),
    )


@payments_bp.get("/verify/<intent_id>")
@require_auth
def verify_intent(intent_id: str):
    return payment_service.verify_intent(current_actor(), intent_id)


@payments_bp.post("/webhook")
def webhook():
    """Stripe event receiver. The raw body is needed for signature checks."""
    return payment_service.handle_webhook(
        request.get_data(),
        request.headers.get("Stripe-Signature"),
    )
