"""
Outbound integration tests (Brevo e-mail, Shippo labels) against httpx.MockTransport.
"""

import json

import httpx
import pytest

from codebook.errors import Throttled, Unavailable, ValidationError
from codebook.services.email_service import BrevoNotifier, TEMPLATES
from codebook.services.shipping_service import ShippoClient


ORDER = {
    "id": "o1",
    "user": {"id": "u1", "name": "Reader One", "email": "reader@example.com"},
    "cart_list": [
        {"product_id": "p1", "name": "Book", "price": 10.0, "quantity": 3},
    ],
    "quantity": 3,
    "amount_paid": 30.0,
    "payment_intent_id": "pi_1",
    "shipping_address": {"street1": "1 Main St", "city": "Springfield", "state": "IL", "zip": "62701"},
    "tracking_number": "1Z999",
    "tracking_carrier": "ups",
    "tracking_url": "https://www.ups.com/track?tracknum=1Z999",
    "refund_id": "re_1",
}


# =============================================================================
# BREVO
# =============================================================================

class TestBrevoNotifier:

    def _notifier(self, handler, api_key="brevo-key"):
        return BrevoNotifier(
            api_key=api_key,
            base_url="https://api.brevo.test/v3",
            sender_email="noreply@codebook.test",
            sender_name="CodeBook",
            transport=httpx.MockTransport(handler),
        )

    def test_sends_rendered_email(self, app):
        captured = {}

        def handler(request):
            captured["url"] = str(request.url)
            captured["key"] = request.headers["api-key"]
            captured["body"] = json.loads(request.content)
            return httpx.Response(201, json={"messageId": "m1"})

        sent = self._notifier(handler).send("reader@example.com", "order-confirmation", {
            "order": ORDER, "order_id": "o1", "customer_name": "Reader One",
        })

        assert sent is True
        assert captured["url"] == "https://api.brevo.test/v3/smtp/email"
        assert captured["key"] == "brevo-key"
        assert captured["body"]["to"] == [{"email": "reader@example.com"}]
        assert captured["body"]["subject"] == "Order Confirmation - Order #o1"
        assert "Reader One" in captured["body"]["textContent"]

    def test_transport_failure_returns_false(self, app):
        def handler(request):
            return httpx.Response(500, json={"message": "boom"})

        assert self._notifier(handler).send("reader@example.com", "order-refunded", {
            "order": ORDER, "order_id": "o1", "customer_name": "R", "refund_amount": 30.0,
        }) is False

    def test_no_api_key_skips(self, app):
        def handler(request):
            raise AssertionError("should not be called")

        assert self._notifier(handler, api_key=None).send("r@example.com", "delivery-confirmation", {
            "order": ORDER, "order_id": "o1", "customer_name": "R",
        }) is False

    def test_unknown_template(self, app):
        with pytest.raises(ValueError):
            self._notifier(lambda r: httpx.Response(201)).send("r@example.com", "newsletter", {})

    @pytest.mark.parametrize("template_id", sorted(TEMPLATES))
    def test_every_template_renders(self, app, template_id):
        notifier = self._notifier(lambda r: httpx.Response(201))
        subject, body = notifier.render(template_id, {
            "order": ORDER,
            "order_id": "o1",
            "customer_name": "Reader One",
            "customer_email": "reader@example.com",
            "refund_amount": 30.0,
            "amount": 30.0,
            "payment_intent_id": "pi_1",
            "error_message": "Declined",
            "product_id": "p1",
            "product_name": "Book",
            "stock": 0,
            "threshold": 10,
        })
        assert subject
        assert body.strip()


# =============================================================================
# SHIPPO
# =============================================================================

def _shippo(handler, api_key="shippo_live_key"):
    return ShippoClient(
        api_key=api_key,
        base_url="https://api.shippo.test",
        from_address={"name": "CodeBook", "street1": "123 Main St", "city": "New York", "state": "NY", "zip": "10001", "country": "US"},
        transport=httpx.MockTransport(handler),
    )


def _rate(object_id, provider, token):
    return {"object_id": object_id, "provider": provider, "servicelevel": {"token": token}}


class TestShippoClient:

    def test_buys_requested_service(self, app):
        calls = []

        def handler(request):
            calls.append((request.method, request.url.path, json.loads(request.content or b"null")))
            assert request.headers["Authorization"] == "ShippoToken shippo_live_key"
            if request.url.path == "/shipments":
                return httpx.Response(201, json={
                    "object_id": "shp_1",
                    "rates": [_rate("r1", "UPS", "ups_ground"), _rate("r2", "USPS", "usps_priority")],
                })
            return httpx.Response(201, json={
                "object_id": "txn_1",
                "status": "SUCCESS",
                "tracking_number": "9400111",
                "label_url": "https://labels/1.pdf",
                "tracking_url_provider": "https://track/9400111",
            })

        label = _shippo(handler).create_label(ORDER, {"service": "usps_priority"})

        assert label == {
            "tracking_number": "9400111",
            "carrier": "usps",
            "label_url": "https://labels/1.pdf",
            "tracking_url": "https://track/9400111",
            "transaction_id": "txn_1",
        }
        shipment = calls[0][2]
        assert shipment["parcels"][0]["weight"] == "1.5"
        assert shipment["address_to"]["name"] == "Reader One"
        assert calls[1][2] == {"rate": "r2", "async": False}

    def test_incomplete_address_rejected_in_live_mode(self, app):
        order = {**ORDER, "shipping_address": {"city": "Nowhere"}}
        with pytest.raises(ValidationError):
            _shippo(lambda r: httpx.Response(201, json={})).create_label(order, {})

    def test_test_mode_uses_usps_and_test_recipient(self, app):
        seen = {}

        def handler(request):
            body = json.loads(request.content)
            if request.url.path == "/shipments":
                seen["to"] = body["address_to"]
                return httpx.Response(201, json={"rates": [_rate("r1", "UPS", "ups_ground"), _rate("r2", "USPS", "usps_ground")]})
            seen["rate"] = body["rate"]
            return httpx.Response(201, json={"object_id": "txn_abc123", "status": "SUCCESS"})

        order = {**ORDER, "shipping_address": None}
        label = _shippo(handler, api_key="shippo_test_key").create_label(order, {})

        assert seen["to"]["city"] == "San Francisco"
        assert seen["rate"] == "r2"
        assert label["tracking_number"] == "TEST-TXNABC123"

    def test_minimum_parcel_weight(self):
        assert ShippoClient.parcel_for({"cart_list": [{"quantity": 1}]}, {})["weight"] == "1.0"

    @pytest.mark.parametrize("status,error", [(429, Throttled), (502, Unavailable), (400, ValidationError)])
    def test_error_mapping(self, app, status, error):
        with pytest.raises(error):
            _shippo(lambda r: httpx.Response(status, json={"detail": "nope"})).create_label(ORDER, {})

    def test_not_configured(self, app):
        with pytest.raises(Unavailable):
            _shippo(lambda r: httpx.Response(201), api_key=None).create_label(ORDER, {})
