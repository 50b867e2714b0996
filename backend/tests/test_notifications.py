"""
Notification badge tests.
"""

import pytest

from codebook.services import document_store, notification_service, order_service


@pytest.fixture
def order_for(make_product, cart_line, gateway):
    def _order(ctx, *, paid=False):
        product = make_product(price=10.00)
        intent_id = gateway.add_intent(1000, user_id=ctx.user_id) if paid else None
        return order_service.create_order(
            ctx,
            cart_list=[cart_line(product)],
            amount_paid=10.00,
            payment_intent_id=intent_id,
        )
    return _order


class TestCount:

    def test_customer_counts_progress_on_own_orders(self, client, customer_ctx, admin_ctx, customer_headers, order_for):
        order = order_for(customer_ctx)
        assert client.get("/api/notifications/count", headers=customer_headers).get_json()["count"] == 0

        order_service.update_status(admin_ctx, order["id"], "processing")
        assert client.get("/api/notifications/count", headers=customer_headers).get_json()["count"] == 0

        order_service.update_status(admin_ctx, order["id"], "shipped")
        body = client.get("/api/notifications/count", headers=customer_headers).get_json()
        assert body == {"count": 1, "orderCount": 1, "ticketCount": 0, "notificationsReadAt": None}

    def test_admin_counts_paid_orders_from_customers(self, customer_ctx, admin_ctx, order_for):
        order_for(customer_ctx, paid=True)
        order_for(customer_ctx, paid=False)
        order_for(admin_ctx, paid=True)

        assert notification_service.count(admin_ctx)["count"] == 1


class TestMarkRead:

    def test_mark_read_resets_count(self, client, customer_ctx, admin_ctx, customer_headers, order_for):
        order = order_for(customer_ctx)
        order_service.update_status(admin_ctx, order["id"], "cancelled")
        assert notification_service.count(customer_ctx)["count"] == 1

        resp = client.post("/api/notifications/mark-read", headers=customer_headers)

        assert resp.status_code == 200
        marker = resp.get_json()["notificationsReadAt"]
        assert marker.endswith("Z")
        counted = notification_service.count(customer_ctx)
        assert counted["count"] == 0
        assert counted["notificationsReadAt"] == marker

    def test_marker_only_moves_forward(self, customer_ctx, customer):
        document_store.update("users", customer["id"], {"notifications_read_at": "2999-01-01T00:00:00Z"})

        result = notification_service.mark_read(customer_ctx)

        assert result["notificationsReadAt"] == "2999-01-01T00:00:00.000Z"

    def test_mark_read_twice(self, customer_ctx):
        first = notification_service.mark_read(customer_ctx)["notificationsReadAt"]
        second = notification_service.mark_read(customer_ctx)["notificationsReadAt"]
        assert second >= first
