# Overview: Service-layer transactional email; renders templates and posts them to Brevo.

"""
Transactional Email (Notifier)

Fire-and-forget from the core's point of view: send() returns an ack flag and
never raises for transport problems. A failed e-mail must not roll back the
order transition that triggered it, so callers ignore the flag.

Templates are a closed set. Subjects live here; bodies are Jinja templates in
templates/email/<template_id>.txt rendered with the same data mapping.
"""

from __future__ import annotations

import httpx
from flask import current_app, render_template

from ..extensions import get_client


CUSTOMER_TEMPLATES = {
    "order-confirmation": "Order Confirmation - Order #{order_id}",
    "payment-processing": "Payment Processing - Order #{order_id}",
    "payment-failed": "Payment Failed - Order #{order_id}",
    "shipping-notification": "Your Order #{order_id} Has Shipped!",
    "delivery-confirmation": "Your Order #{order_id} Has Been Delivered",
    "order-canceled": "Your Order #{order_id} Has Been Canceled",
    "order-refunded": "Refund Processed - Order #{order_id}",
}

ADMIN_TEMPLATES = {
    "admin-new-order": "New Order Received - Order #{order_id}",
    "admin-low-stock": "Low Stock Alert - {product_name}",
    "admin-out-of-stock": "Out of Stock Alert - {product_name}",
    "admin-payment-failure": "Payment Failure - Order #{order_id}",
    "admin-refund-processed": "Refund Processed - Order #{order_id}",
}

TEMPLATES = {**CUSTOMER_TEMPLATES, **ADMIN_TEMPLATES}


class BrevoNotifier:
    """Notifier backed by the Brevo SMTP API."""

    def __init__(self, *, api_key, base_url, sender_email, sender_name, timeout=10.0, transport=None):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.sender_email = sender_email
        self.sender_name = sender_name
        self.timeout = timeout
        self.transport = transport

    def render(self, template_id: str, data: dict) -> tuple[str, str]:
        if template_id not in TEMPLATES:
            raise ValueError(f"Unknown email template: {template_id}")
        context = {"app_base_url": current_app.config["APP_BASE_URL"], **data}
        subject = TEMPLATES[template_id].format_map(context)
        body = render_template(f"email/{template_id}.txt", **context)
        return subject, body

    def send(self, recipient: str, template_id: str, data: dict) -> bool:
        subject, body = self.render(template_id, data)

        if not self.api_key:
            current_app.logger.info("Email disabled (no BREVO_API_KEY); skipped %s to %s", template_id, recipient)
            return False

        payload = {
            "sender": {"name": self.sender_name, "email": self.sender_email},
            "to": [{"email": recipient}],
            "subject": subject,
            "textContent": body,
        }
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(
                    f"{self.base_url}/smtp/email",
                    json=payload,
                    headers={"api-key": self.api_key, "accept": "application/json"},
                )
                response.raise_for_status()
        except httpx.HTTPError:
            current_app.logger.warning("Failed to send %s email to %s", template_id, recipient, exc_info=True)
            return False
        return True


def notify(recipient: str | None, template_id: str, data: dict) -> bool:
    """Send a customer e-mail through the app's notifier; no recipient means no-op."""
    if not recipient:
        current_app.logger.info("No recipient for %s email; skipped", template_id)
        return False
    return get_client("notifier").send(recipient, template_id, data)


def notify_admin(template_id: str, data: dict) -> bool:
    if template_id not in ADMIN_TEMPLATES:
        raise ValueError(f"Not an admin template: {template_id}")
    return notify(current_app.config.get("ADMIN_NOTIFICATION_EMAIL"), template_id, data)
