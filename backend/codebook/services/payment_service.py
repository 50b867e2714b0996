# Overview: Service-layer payment operations; intent creation, verification, and webhook handling.

"""
Payments

create_intent() asks the gateway for a payment intent for the caller's cart.
The idempotency key is a fingerprint of the cart, so a double-clicked
checkout returns the same intent instead of charging twice.

Webhooks only update payment_status on an existing order and send payment
e-mails; orders are always created by the client through POST /orders.
Events may be redelivered late; they never touch a refunded order.
"""

from __future__ import annotations

import hashlib

from flask import current_app

from ..errors import Conflict, Forbidden, ValidationError
from ..extensions import get_client
from . import document_store, email_service
from .order_service import normalize_cart


MIN_AMOUNT_MINOR_UNITS = 50

EVENT_SUCCEEDED = "payment_intent.succeeded"
EVENT_PROCESSING = "payment_intent.processing"
EVENT_FAILED = "payment_intent.payment_failed"
HANDLED_EVENTS = {EVENT_SUCCEEDED, EVENT_PROCESSING, EVENT_FAILED}


def cart_fingerprint(user_id: str, cart_list: list[dict], amount: int) -> str:
    """SHA-256 over the user, the ordered (product_id, quantity) pairs and the amount."""
    parts = [str(user_id)]
    parts.extend(f"{item['product_id']}:{item['quantity']}" for item in cart_list)
    parts.append(str(amount))
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()


def _amount(value) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError("amount must be an integer number of minor units")
    try:
        amount = int(value)
    except (ValueError, OverflowError):
        raise ValidationError("amount must be an integer number of minor units") from None
    if amount != value:
        raise ValidationError("amount must be an integer number of minor units")
    if amount < MIN_AMOUNT_MINOR_UNITS:
        raise ValidationError(f"amount must be at least {MIN_AMOUNT_MINOR_UNITS}")
    return amount


def create_intent(actor, amount, currency=None, metadata=None, cart_list=None) -> dict:
    amount = _amount(amount)
    currency = (currency or current_app.config["PAYMENT_CURRENCY"]).lower()

    items = normalize_cart(cart_list) if cart_list else []
    details = {
        **(metadata or {}),
        "userId": actor.user_id,
        "userEmail": actor.email,
        "userName": actor.name,
        "itemCount": sum(i["quantity"] for i in items) or None,
    }
    key = cart_fingerprint(actor.user_id, items, amount) if items else None

    intent = get_client("payments").create_intent(amount, currency, details, idempotency_key=key)
    current_app.logger.info("Created payment intent %s for user %s", intent["intent_id"], actor.user_id)
    return {
        "clientSecret": intent["client_secret"],
        "client_secret": intent["client_secret"],
        "paymentIntentId": intent["intent_id"],
        "intent_id": intent["intent_id"],
        "amount": intent["amount"],
        "currency": intent["currency"],
        "status": intent["status"],
    }


def verify_intent(actor, intent_id: str) -> dict:
    intent = get_client("payments").verify(intent_id)
    owner = intent["metadata"].get("userId")
    if owner != actor.user_id and not actor.is_admin:
        raise Forbidden("Payment intent belongs to another user")
    return {
        "intent_id": intent["intent_id"],
        "status": intent["status"],
        "amount": intent["amount"],
        "currency": intent["currency"],
        "succeeded": intent["status"] == "succeeded",
    }


def _order_for_intent(intent_id: str) -> dict | None:
    matches = document_store.scan("orders", {"payment_intent_id": intent_id}, order_by="created_at", limit=1)
    return matches[0] if matches else None


def _payment_email_data(order: dict | None, intent: dict, **extra) -> dict:
    metadata = intent.get("metadata") or {}
    customer = (order or {}).get("user") or {}
    return {
        "order": order,
        "order_id": order["id"] if order else intent.get("id"),
        "customer_name": customer.get("name") or metadata.get("userName") or "Customer",
        "customer_email": customer.get("email") or metadata.get("userEmail"),
        "payment_intent_id": intent.get("id"),
        "amount": (intent.get("amount") or 0) / 100,
        **extra,
    }


def _set_payment_status(order: dict, payment_status: str) -> bool:
    try:
        document_store.update(
            "orders", order["id"], {"payment_status": payment_status},
            condition={"status__ne": "refunded"},
        )
    except Conflict:
        current_app.logger.info(
            "Ignoring late %s event for refunded order %s", payment_status, order["id"]
        )
        return False
    return True


def handle_webhook(payload: bytes, signature: str | None) -> dict:
    """
    Apply a signed gateway event.

    Returns {"received": True, "handled": bool}. Unknown event types and
    intents with no matching order are acknowledged and ignored.
    """
    event = get_client("payments").parse_event(payload, signature)
    event_type = event["type"]
    if event_type not in HANDLED_EVENTS:
        current_app.logger.info("Ignoring webhook event %s (%s)", event["id"], event_type)
        return {"received": True, "handled": False}

    intent = event["object"]
    intent_id = intent.get("id")
    order = _order_for_intent(intent_id) if intent_id else None

    if event_type == EVENT_SUCCEEDED:
        if order is None:
            current_app.logger.info("Payment %s succeeded with no order yet", intent_id)
            return {"received": True, "handled": False}
        return {"received": True, "handled": _set_payment_status(order, "succeeded")}

    data = _payment_email_data(order, intent)
    recipient = data["customer_email"]

    if event_type == EVENT_PROCESSING:
        email_service.notify(recipient, "payment-processing", data)
        return {"received": True, "handled": True}

    error = (intent.get("last_payment_error") or {}).get("message") or "Payment failed"
    data["error_message"] = error
    if order is not None and not _set_payment_status(order, "failed"):
        return {"received": True, "handled": False}
    current_app.logger.warning("Payment %s failed: %s", intent_id, error)
    email_service.notify(recipient, "payment-failed", data)
    email_service.notify_admin("admin-payment-failure", data)
    return {"received": True, "handled": True}
