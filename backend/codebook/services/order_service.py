# Overview: Service-layer operations for orders; checkout, lifecycle transitions, refunds, and tracking.

"""
CodeBook Order Lifecycle

================================================================================
PURPOSE: Turn a cart into an order and drive it to delivery or to a refund
================================================================================

STATE MACHINE:
    pending -> processing -> shipped -> delivered
    pending | processing -> cancelled
    pending | processing | shipped | cancelled -> refunded

    delivered is terminal for the forward path; refunded is terminal overall.
    Re-entering the current state is rejected.

RULES (NON-NEGOTIABLE):
1. Every status write is conditional on the status that was loaded
   (UPDATE ... WHERE status = :loaded). On a guard failure the order is
   reloaded once and the transition reattempted if still allowed; otherwise
   the caller gets Conflict. No in-memory locks.
2. Side effects of a transition (stock restore, e-mails, audit) run only after
   the guarded write landed, so each one happens exactly once per transition.
3. Stock reserved for a cart that does not become an order is given back.
4. Refunds go to the gateway first. A gateway error aborts with no writes;
   the terminal refunded status prevents a second refund.
5. E-mails are best-effort and never undo a transition.

IDEMPOTENCY:
- create_order with the same (user_id, payment_intent_id) returns the
  existing order.
- refund on an already refunded order is a Conflict.
================================================================================
"""

from __future__ import annotations

import uuid
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from flask import current_app

from ..errors import CodebookError, Conflict, Forbidden, NotFound, Throttled, Unavailable, ValidationError
from ..extensions import get_client
from ..time_utils import utcnow
from . import audit_service, document_store, email_service, stock_service
from .payment_gateway import REFUND_REASONS


STATUS_PENDING = "pending"
STATUS_PROCESSING = "processing"
STATUS_SHIPPED = "shipped"
STATUS_DELIVERED = "delivered"
STATUS_CANCELLED = "cancelled"
STATUS_REFUNDED = "refunded"

VALID_STATUSES = {
    STATUS_PENDING,
    STATUS_PROCESSING,
    STATUS_SHIPPED,
    STATUS_DELIVERED,
    STATUS_CANCELLED,
    STATUS_REFUNDED,
}

ALLOWED_TRANSITIONS = {
    (STATUS_PENDING, STATUS_PROCESSING),
    (STATUS_PENDING, STATUS_CANCELLED),
    (STATUS_PENDING, STATUS_REFUNDED),
    (STATUS_PROCESSING, STATUS_SHIPPED),
    (STATUS_PROCESSING, STATUS_CANCELLED),
    (STATUS_PROCESSING, STATUS_REFUNDED),
    (STATUS_SHIPPED, STATUS_DELIVERED),
    (STATUS_SHIPPED, STATUS_REFUNDED),
    (STATUS_CANCELLED, STATUS_REFUNDED),
}

# Payment statuses that count as money received
PAID_PAYMENT_STATUSES = {"succeeded", "paid"}

DEFAULT_CARRIER = "usps"
TRACKING_URL_TEMPLATES = {
    "usps": "https://tools.usps.com/go/TrackConfirmAction?tLabels={}",
    "ups": "https://www.ups.com/track?tracknum={}",
    "fedex": "https://www.fedex.com/fedextrack/?trknbr={}",
    "dhl": "https://www.dhl.com/en/express/tracking.html?AWB={}",
}

AMOUNT_TOLERANCE = Decimal("0.01")
ORDER_ID_ATTEMPTS = 3
DEFAULT_REFUND_REASON = "requested_by_customer"


class InvalidTransition(Conflict):
    """Raised when a status change is not in the allowed edge set."""


# =============================================================================
# HELPERS
# =============================================================================

def can_transition(from_status: str, to_status: str) -> bool:
    return (from_status, to_status) in ALLOWED_TRANSITIONS


def validate_status(status) -> str:
    normalized = (status or "").strip().lower() if isinstance(status, str) else None
    if normalized not in VALID_STATUSES:
        raise ValidationError(
            f"Invalid status. Must be one of: {', '.join(sorted(VALID_STATUSES))}"
        )
    return normalized


def _check_transition(current: str, new: str) -> None:
    if current == STATUS_REFUNDED:
        raise InvalidTransition("Refunded orders cannot change status")
    if current == new:
        raise InvalidTransition(f"Order is already {current}")
    if not can_transition(current, new):
        raise InvalidTransition(f"Cannot transition order from {current} to {new}")


def to_minor_units(amount) -> int:
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _money(value, field: str) -> Decimal:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number") from None
    if not amount.is_finite() or amount < 0:
        raise ValidationError(f"{field} must be a non-negative amount")
    return amount


def _positive_int(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValidationError(f"{field} must be a positive integer")
    try:
        number = int(value)
        exact = number == float(value)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError(f"{field} must be a positive integer") from None
    if not exact or number <= 0:
        raise ValidationError(f"{field} must be a positive integer")
    return number


def normalize_cart(cart_list) -> list[dict]:
    """Validate cart lines and return them in canonical form."""
    if not isinstance(cart_list, list) or not cart_list:
        raise ValidationError("Cart is empty")

    items = []
    for index, raw in enumerate(cart_list):
        if not isinstance(raw, dict):
            raise ValidationError(f"cart_list[{index}] must be an object")
        product_id = raw.get("product_id", raw.get("id"))
        if product_id in (None, ""):
            raise ValidationError(f"cart_list[{index}] is missing product_id")
        items.append({
            "product_id": str(product_id),
            "name": raw.get("name"),
            "price": float(_money(raw.get("price", 0), f"cart_list[{index}].price")),
            "quantity": _positive_int(raw.get("quantity", 1), f"cart_list[{index}].quantity"),
        })
    return items


def cart_total(items: list[dict]) -> Decimal:
    return sum((Decimal(str(i["price"])) * i["quantity"] for i in items), Decimal("0"))


def tracking_url_for(carrier: str | None, tracking_number: str) -> str | None:
    template = TRACKING_URL_TEMPLATES.get((carrier or DEFAULT_CARRIER).lower())
    return template.format(tracking_number) if template else None


def _require_admin(actor) -> None:
    if not actor.is_admin:
        raise Forbidden("Admin access required")


def _customer(order: dict) -> dict:
    return order.get("user") or {}


def _email_data(order: dict, **extra) -> dict:
    customer = _customer(order)
    return {
        "order": order,
        "order_id": order["id"],
        "customer_name": customer.get("name") or "Customer",
        "customer_email": customer.get("email"),
        **extra,
    }


def _notify_customer(order: dict, template_id: str, **extra) -> None:
    email_service.notify(_customer(order).get("email"), template_id, _email_data(order, **extra))


def _notify_admin(order: dict, template_id: str, **extra) -> None:
    email_service.notify_admin(template_id, _email_data(order, **extra))


def _load(order_id: str) -> dict:
    order = document_store.get("orders", order_id)
    if order is None:
        raise NotFound("Order not found")
    return order


# =============================================================================
# QUERIES
# =============================================================================

def get_order(actor, order_id: str) -> dict:
    _require_admin(actor)
    return _load(order_id)


def list_orders(actor, status: str | None = None) -> list[dict]:
    _require_admin(actor)
    filters = {"status": validate_status(status)} if status else None
    return document_store.scan("orders", filters, order_by="-created_at")


def list_orders_for_user(actor, user_id: str | None) -> list[dict]:
    if not user_id:
        raise ValidationError("user.id is required")
    if not actor.owns(user_id):
        raise Forbidden("You can only view your own orders")
    return document_store.scan("orders", {"user_id": actor.user_id}, order_by="-created_at")


def find_order_by_intent(user_id: str, payment_intent_id: str) -> dict | None:
    matches = document_store.scan(
        "orders",
        {"user_id": user_id, "payment_intent_id": payment_intent_id},
        order_by="created_at",
        limit=1,
    )
    return matches[0] if matches else None


# =============================================================================
# CHECKOUT
# =============================================================================

def _verify_payment(actor, payment_intent_id: str, amount: Decimal) -> str | None:
    """
    Ask the gateway for the intent's status.

    With REQUIRE_VERIFIED_PAYMENT the intent must have succeeded for the exact
    order amount. Without it, a gateway outage leaves payment_status unset
    rather than blocking the order.
    """
    strict = current_app.config.get("REQUIRE_VERIFIED_PAYMENT", False)
    try:
        intent = get_client("payments").verify(payment_intent_id)
    except (Throttled, Unavailable):
        if strict:
            raise
        current_app.logger.warning("Could not verify payment intent %s; order continues unverified", payment_intent_id)
        return None

    owner = intent["metadata"].get("userId")
    if owner and owner != actor.user_id:
        raise Forbidden("Payment intent belongs to another user")

    if strict:
        if intent["status"] != "succeeded":
            raise ValidationError(f"Payment not completed (status: {intent['status']})")
        if intent["amount"] != to_minor_units(amount):
            raise ValidationError("Payment amount does not match order total")
    return intent["status"]


def _insert_order(record: dict) -> tuple[dict, bool]:
    """
    Insert the order under a fresh id.

    Returns (order, created). created is False when a parallel checkout for
    the same payment intent won the unique (user_id, payment_intent_id) key.
    """
    for _ in range(ORDER_ID_ATTEMPTS):
        record["id"] = uuid.uuid4().hex
        try:
            return document_store.put("orders", record, condition={"id__exists": False}), True
        except Conflict:
            if record.get("payment_intent_id"):
                existing = find_order_by_intent(record["user_id"], record["payment_intent_id"])
                if existing:
                    return existing, False
            current_app.logger.warning("Order id collision on %s; allocating another", record["id"])
    raise Conflict("Could not allocate an order id")


def create_order(
    actor,
    *,
    cart_list,
    amount_paid,
    user: dict | None = None,
    quantity=None,
    payment_intent_id: str | None = None,
    shipping_address: dict | None = None,
) -> dict:
    """
    Checkout: validate, reserve stock, persist a pending order, audit, notify.

    Raises:
        ValidationError: empty cart, bad quantities, totals that do not add up
        Forbidden: declared user is not the caller
        InsufficientStock: a tracked product cannot cover its line
        NotFound: a cart line names an unknown product
    """
    items = normalize_cart(cart_list)
    total_quantity = sum(i["quantity"] for i in items)
    if quantity is not None and _positive_int(quantity, "quantity") != total_quantity:
        raise ValidationError("quantity must equal the sum of item quantities")

    amount = _money(amount_paid, "amount_paid")
    if abs(amount - cart_total(items)) >= AMOUNT_TOLERANCE:
        raise ValidationError(
            "amount_paid does not match cart total",
            details={"expected": float(cart_total(items)), "received": float(amount)},
        )

    declared = user or {}
    if declared.get("id") is not None and not actor.owns(declared.get("id")):
        raise Forbidden("Order user does not match the authenticated user")

    payment_status = None
    if payment_intent_id:
        existing = find_order_by_intent(actor.user_id, payment_intent_id)
        if existing:
            return {**existing, "_stock_restores": []}
        payment_status = _verify_payment(actor, payment_intent_id, amount)
    elif current_app.config.get("REQUIRE_VERIFIED_PAYMENT", False):
        raise ValidationError("payment_intent_id is required")

    reservations = stock_service.reserve_all(items)

    now = utcnow()
    record = {
        "user_id": actor.user_id,
        "user": {
            "id": actor.user_id,
            "name": declared.get("name") or actor.name,
            "email": declared.get("email") or actor.email,
        },
        "cart_list": items,
        "quantity": total_quantity,
        "amount_paid": amount,
        "shipping_address": shipping_address,
        "status": STATUS_PENDING,
        "payment_intent_id": payment_intent_id,
        "payment_status": payment_status,
        "created_at": now,
        "updated_at": now,
    }
    try:
        order, created = _insert_order(record)
    except CodebookError as exc:
        stock_service.release(reservations)
        current_app.logger.error(
            "Order write failed for user %s (payment intent %s); stock released",
            actor.user_id, payment_intent_id,
        )
        if payment_intent_id:
            exc.details = {**(exc.details or {}), "payment_intent_id": payment_intent_id}
        raise

    if not created:
        stock_service.release(reservations)
        current_app.logger.info(
            "Order for payment intent %s already placed as %s; stock released",
            payment_intent_id, order["id"],
        )
        return {**order, "_stock_restores": []}

    stock_service.send_alerts(reservations)

    audit_service.record(actor, audit_service.ACTION_CREATE, audit_service.ENTITY_ORDER, order["id"], {
        "amount_paid": order["amount_paid"],
        "quantity": order["quantity"],
        "item_count": len(items),
        "payment_intent_id": payment_intent_id,
    })

    _notify_customer(order, "order-confirmation")
    _notify_admin(order, "admin-new-order")

    return {**order, "_stock_restores": []}


# =============================================================================
# TRANSITIONS
# =============================================================================

def _guarded_write(order: dict, patch: dict, new_status: str) -> tuple[dict, dict]:
    """
    Apply `patch` only if the order still has the status we loaded.

    Returns (previous, updated). On a guard failure the order is reloaded once;
    if the transition is still allowed from the fresh status it is retried.
    """
    try:
        updated = document_store.update("orders", order["id"], patch, condition={"status": order["status"]})
        return order, updated
    except Conflict:
        current = _load(order["id"])

    if not can_transition(current["status"], new_status):
        raise Conflict(
            f"Order changed concurrently (now {current['status']})",
            details={"status": current["status"]},
        )
    try:
        updated = document_store.update("orders", current["id"], patch, condition={"status": current["status"]})
    except Conflict:
        raise Conflict("Order was modified concurrently, retry the request") from None
    return current, updated


def _transition(actor, order: dict, new_status: str, extra_patch: dict | None = None) -> dict:
    _check_transition(order["status"], new_status)

    patch = {"status": new_status, **(extra_patch or {})}
    previous, updated = _guarded_write(order, patch, new_status)

    restores = []
    if new_status == STATUS_SHIPPED:
        _notify_customer(updated, "shipping-notification")
    elif new_status == STATUS_DELIVERED:
        _notify_customer(updated, "delivery-confirmation")
    elif new_status == STATUS_CANCELLED:
        restores = stock_service.restore_all(updated["cart_list"])
        _notify_customer(updated, "order-canceled")

    details = {"previous_status": previous["status"], "new_status": new_status}
    for key in ("tracking_number", "tracking_carrier", "label_url"):
        if key in patch:
            details[key] = patch[key]
    if restores:
        details["stock_restores"] = restores
    audit_service.record(actor, audit_service.ACTION_STATUS_CHANGE, audit_service.ENTITY_ORDER, updated["id"], details)

    return {**updated, "_stock_restores": restores}


def _tracking_patch(tracking_number: str, carrier: str | None, tracking_url: str | None = None) -> dict:
    carrier = (carrier or DEFAULT_CARRIER).strip().lower()
    return {
        "tracking_number": tracking_number,
        "tracking_carrier": carrier,
        "tracking_url": tracking_url or tracking_url_for(carrier, tracking_number),
    }


def update_status(
    actor,
    order_id: str,
    new_status,
    *,
    tracking_number: str | None = None,
    tracking_carrier: str | None = None,
) -> dict:
    """
    Admin status change.

    shipped accepts tracking details; cancelled restores stock for every line
    and reports the outcome in _stock_restores; refunded goes through refund().
    """
    _require_admin(actor)
    new_status = validate_status(new_status)
    if new_status == STATUS_REFUNDED:
        return refund(actor, order_id)

    order = _load(order_id)
    extra = None
    if new_status == STATUS_SHIPPED and tracking_number:
        extra = _tracking_patch(str(tracking_number).strip(), tracking_carrier)
    return _transition(actor, order, new_status, extra)


def refund(actor, order_id: str, amount=None, reason: str | None = None) -> dict:
    """
    Refund an order's payment (full, or partial in minor units) and close it.

    Raises:
        Conflict: already refunded
        ValidationError: nothing to refund or amount out of range
        InvalidTransition: order is delivered
        PaymentError / Throttled / Unavailable: gateway refused; nothing written
    """
    _require_admin(actor)
    order = _load(order_id)

    if order["status"] == STATUS_REFUNDED:
        raise Conflict("Order has already been refunded", details={"refund_id": order.get("refund_id")})
    intent_id = order.get("payment_intent_id")
    if not intent_id:
        raise ValidationError("Order has no payment intent to refund")
    _check_transition(order["status"], STATUS_REFUNDED)

    paid_minor = to_minor_units(order["amount_paid"])
    if amount is not None:
        amount = _positive_int(amount, "amount")
        if amount > paid_minor:
            raise ValidationError(
                f"Refund amount ({amount}) cannot exceed order total ({paid_minor})"
            )
    reason = reason or DEFAULT_REFUND_REASON
    if reason not in REFUND_REASONS:
        raise ValidationError(f"Invalid refund reason. Must be one of: {', '.join(sorted(REFUND_REASONS))}")

    result = get_client("payments").refund(
        intent_id,
        amount=amount,
        reason=reason,
        idempotency_key=f"refund-{order_id}-{amount or 'full'}",
    )
    refund_amount = result.get("amount_refunded") or amount or paid_minor

    patch = {
        "status": STATUS_REFUNDED,
        "payment_status": "refunded",
        "refund_id": result["refund_id"],
        "refund_amount": refund_amount,
        "refunded_at": utcnow(),
    }
    try:
        previous, updated = _guarded_write(order, patch, STATUS_REFUNDED)
    except Conflict as exc:
        current_app.logger.error(
            "Refund %s issued for order %s but the order could not be updated",
            result["refund_id"], order_id,
        )
        exc.details = {**(exc.details or {}), "refund_id": result["refund_id"], "payment_intent_id": intent_id}
        raise

    restores = []
    if previous["status"] != STATUS_CANCELLED:
        restores = stock_service.restore_all(updated["cart_list"])

    audit_service.record(actor, audit_service.ACTION_STATUS_CHANGE, audit_service.ENTITY_ORDER, order_id, {
        "previous_status": previous["status"],
        "new_status": STATUS_REFUNDED,
        "refund_id": result["refund_id"],
        "refund_amount": refund_amount,
        "payment_intent_id": intent_id,
        "reason": reason,
    })

    dollars = refund_amount / 100
    _notify_customer(updated, "order-refunded", refund_amount=dollars)
    _notify_admin(updated, "admin-refund-processed", refund_amount=dollars)

    return {**updated, "_stock_restores": restores}


def attach_tracking(
    actor,
    order_id: str,
    tracking_number,
    tracking_carrier: str | None = None,
    status: str | None = None,
    *,
    label_url: str | None = None,
    tracking_url: str | None = None,
) -> dict:
    """
    Record shipment tracking, optionally moving the order to a new status.

    Without a (different) status the order status is left untouched. The
    customer gets a shipping-notification when tracking appears for the
    first time.
    """
    _require_admin(actor)
    tracking_number = tracking_number.strip() if isinstance(tracking_number, str) else ""
    if not tracking_number:
        raise ValidationError("tracking_number is required")
    new_status = validate_status(status) if status else None

    order = _load(order_id)
    newly_tracked = not order.get("tracking_number")
    patch = _tracking_patch(tracking_number, tracking_carrier, tracking_url)
    if label_url:
        patch["label_url"] = label_url

    if new_status and new_status != order["status"]:
        if new_status == STATUS_REFUNDED:
            raise ValidationError("Use the refund endpoint to refund an order")
        updated = _transition(actor, order, new_status, patch)
        if newly_tracked and new_status != STATUS_SHIPPED:
            _notify_customer(updated, "shipping-notification")
        return updated

    if order["status"] == STATUS_REFUNDED:
        raise InvalidTransition("Refunded orders cannot be changed")
    updated = document_store.update("orders", order_id, patch, condition={"status": order["status"]})
    if newly_tracked:
        _notify_customer(updated, "shipping-notification")
    audit_service.record(actor, audit_service.ACTION_UPDATE, audit_service.ENTITY_ORDER, order_id, {
        "tracking_number": patch["tracking_number"],
        "tracking_carrier": patch["tracking_carrier"],
        "label_url": patch.get("label_url"),
    })
    return {**updated, "_stock_restores": []}


def generate_label(actor, order_id: str, options: dict | None = None) -> dict:
    """Buy a shipping label from the shipping provider and mark the order shipped."""
    _require_admin(actor)
    order = _load(order_id)
    if order["status"] != STATUS_SHIPPED and not can_transition(order["status"], STATUS_SHIPPED):
        raise InvalidTransition(f"Cannot ship an order that is {order['status']}")

    label = get_client("shipping").create_label(order, options or {})
    return attach_tracking(
        actor,
        order_id,
        label["tracking_number"],
        label.get("carrier"),
        STATUS_SHIPPED,
        label_url=label.get("label_url"),
        tracking_url=label.get("tracking_url"),
    )
