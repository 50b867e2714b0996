"""
Stock service tests.

Verifies:
- Tracked stock never goes negative
- Untracked products (stock = NULL) never block and never alert
- Cart reservation is all-or-nothing
- Low / out-of-stock alerts fire on the right thresholds
"""

import pytest

from codebook.errors import NotFound
from codebook.services import document_store, stock_service
from codebook.services.stock_service import InsufficientStock


class TestReserve:

    def test_decrements_tracked_stock(self, make_product):
        make_product(id="p1", stock=5)
        reservation = stock_service.reserve("p1", 2, alert=False)
        assert reservation.reserved
        assert reservation.new_stock == 3
        assert document_store.get("products", "p1")["stock"] == 3

    def test_insufficient_stock_leaves_stock_unchanged(self, make_product):
        make_product(id="p1", name="Scarce", stock=1)
        with pytest.raises(InsufficientStock) as exc:
            stock_service.reserve("p1", 2)
        assert exc.value.status_code == 409
        assert exc.value.details["available"] == 1
        assert exc.value.details["requested"] == 2
        assert document_store.get("products", "p1")["stock"] == 1

    def test_untracked_product_is_not_touched(self, make_product, notifier):
        make_product(id="p1", stock=None)
        reservation = stock_service.reserve("p1", 100)
        assert not reservation.reserved
        assert document_store.get("products", "p1")["stock"] is None
        assert notifier.sent == []

    def test_unknown_product(self, db_session):
        with pytest.raises(NotFound):
            stock_service.reserve("ghost", 1)


class TestAlerts:

    def test_out_of_stock_alert(self, make_product, notifier):
        make_product(id="p1", name="Last Copy", stock=1)
        stock_service.reserve("p1", 1)
        assert notifier.templates() == ["admin-out-of-stock"]
        assert notifier.sent[0]["to"] == "ops@codebook.test"
        assert "Last Copy" in notifier.sent[0]["subject"]

    def test_low_stock_alert_at_threshold(self, make_product, notifier):
        make_product(id="p1", stock=6, low_stock_threshold=5)
        stock_service.reserve("p1", 1)
        assert notifier.templates() == ["admin-low-stock"]

    def test_no_alert_above_threshold(self, make_product, notifier):
        make_product(id="p1", stock=20, low_stock_threshold=5)
        stock_service.reserve("p1", 1)
        assert notifier.sent == []


class TestCartReservation:

    def test_all_or_nothing(self, make_product):
        make_product(id="a", stock=5)
        make_product(id="b", stock=1)
        cart = [{"product_id": "a", "quantity": 2}, {"product_id": "b", "quantity": 3}]

        with pytest.raises(InsufficientStock):
            stock_service.reserve_all(cart)

        assert document_store.get("products", "a")["stock"] == 5
        assert document_store.get("products", "b")["stock"] == 1

    def test_reserve_all_does_not_alert(self, make_product, notifier):
        make_product(id="a", stock=1)
        stock_service.reserve_all([{"product_id": "a", "quantity": 1}])
        assert notifier.sent == []


class TestRestore:

    def test_restore_reports_outcome(self, make_product):
        make_product(id="p1", name="Back", stock=0)
        outcome = stock_service.restore("p1", 2)
        assert outcome["success"] is True
        assert outcome["new_stock"] == 2
        assert document_store.get("products", "p1")["in_stock"] is True

    def test_restore_missing_product_does_not_raise(self, db_session):
        outcome = stock_service.restore("gone", 1, product_name="Gone Book")
        assert outcome["success"] is False
        assert outcome["error"] == "Product not found"
        assert outcome["product_name"] == "Gone Book"

    def test_restore_untracked_is_success(self, make_product):
        make_product(id="p1", stock=None)
        outcome = stock_service.restore("p1", 3)
        assert outcome["success"] is True
        assert document_store.get("products", "p1")["stock"] is None
