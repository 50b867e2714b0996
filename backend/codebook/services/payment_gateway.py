# Overview: Service-layer adapter to Stripe; payment intents, verification, refunds, webhooks.

"""
Payment Gateway (Stripe)

The gateway owns the money; this module never sees card data. Each call
passes the API key explicitly so several apps (or tests) can coexist in one
process without touching stripe's module-level settings.

ERROR MAPPING:
- CardError / InvalidRequestError  -> PaymentError (400)
- RateLimitError                   -> Throttled (429)
- APIConnectionError, APIError,
  AuthenticationError, not configured -> Unavailable (503)
"""

from __future__ import annotations

import stripe

from ..errors import Throttled, Unavailable, ValidationError


class PaymentError(ValidationError):
    """Raised when the processor rejects a payment operation."""


# Intent statuses reported by the processor
INTENT_STATUSES = {
    "requires_payment_method",
    "requires_confirmation",
    "requires_action",
    "processing",
    "requires_capture",
    "succeeded",
    "canceled",
}

REFUND_REASONS = {"duplicate", "fraudulent", "requested_by_customer"}


def _translate(exc: stripe.StripeError) -> Exception:
    message = getattr(exc, "user_message", None) or str(exc)
    if isinstance(exc, (stripe.CardError, stripe.InvalidRequestError)):
        return PaymentError(message)
    if isinstance(exc, stripe.RateLimitError):
        return Throttled("Payment service is rate limited, retry later")
    return Unavailable("Payment service unavailable")


def _intent_view(intent) -> dict:
    return {
        "intent_id": intent.id,
        "client_secret": getattr(intent, "client_secret", None),
        "status": intent.status,
        "amount": intent.amount,
        "currency": intent.currency,
        "metadata": dict(getattr(intent, "metadata", None) or {}),
    }


class StripeGateway:

    def __init__(self, *, api_key: str | None, webhook_secret: str | None = None):
        self.api_key = api_key
        self.webhook_secret = webhook_secret

    def _require_key(self) -> str:
        if not self.api_key:
            raise Unavailable("Payment service not configured")
        return self.api_key

    def create_intent(
        self,
        amount_minor_units: int,
        currency: str,
        metadata: dict,
        idempotency_key: str | None = None,
    ) -> dict:
        try:
            intent = stripe.PaymentIntent.create(
                amount=amount_minor_units,
                currency=currency,
                metadata={k: str(v) for k, v in metadata.items() if v is not None},
                automatic_payment_methods={"enabled": True},
                api_key=self._require_key(),
                idempotency_key=idempotency_key,
            )
        except stripe.StripeError as exc:
            raise _translate(exc) from exc
        return _intent_view(intent)

    def verify(self, intent_id: str) -> dict:
        try:
            intent = stripe.PaymentIntent.retrieve(intent_id, api_key=self._require_key())
        except stripe.StripeError as exc:
            raise _translate(exc) from exc
        return _intent_view(intent)

    def refund(
        self,
        intent_id: str,
        amount: int | None = None,
        reason: str | None = None,
        idempotency_key: str | None = None,
    ) -> dict:
        params = {"payment_intent": intent_id}
        if amount is not None:
            params["amount"] = amount
        if reason:
            params["reason"] = reason
        try:
            refund = stripe.Refund.create(
                **params,
                api_key=self._require_key(),
                idempotency_key=idempotency_key,
            )
        except stripe.StripeError as exc:
            raise _translate(exc) from exc
        return {
            "refund_id": refund.id,
            "amount_refunded": refund.amount,
            "status": refund.status,
        }

    def parse_event(self, payload: bytes, signature: str | None) -> dict:
        """Verify a webhook signature and return the event."""
        if not self.webhook_secret:
            raise Unavailable("Webhook secret not configured")
        try:
            event = stripe.Webhook.construct_event(payload, signature or "", self.webhook_secret)
        except ValueError:
            raise ValidationError("Invalid webhook payload") from None
        except stripe.SignatureVerificationError:
            raise ValidationError("Invalid webhook signature") from None
        return {
            "id": event.id,
            "type": event.type,
            "object": dict(event.data.object),
        }
