"""
Activity log tests.
"""

import pytest

from codebook.errors import Forbidden, Unavailable
from codebook.services import audit_service, document_store


class TestRecord:

    def test_record_and_query_newest_first(self, admin_ctx):
        audit_service.record(admin_ctx, "create", "product", "p1", {"name": "A"})
        audit_service.record(admin_ctx, "update", "product", "p1", {"updated_fields": ["name"]})
        audit_service.record(admin_ctx, "delete", "user", "u9")

        entries = audit_service.query(admin_ctx)
        assert [e["action"] for e in entries] == ["delete", "update", "create"]
        assert entries[0]["actor_email"] == admin_ctx.email
        assert entries[0]["details"] == {}

    def test_unknown_action_is_programming_error(self, admin_ctx):
        with pytest.raises(ValueError):
            audit_service.record(admin_ctx, "explode", "product", "p1")

    def test_store_failure_is_logged_not_raised(self, admin_ctx, monkeypatch, caplog):
        def broken_put(*args, **kwargs):
            raise Unavailable("Store is unavailable")

        monkeypatch.setattr(document_store, "put", broken_put)

        assert audit_service.record(admin_ctx, "create", "order", "o1", {"amount_paid": 10}) is None
        assert "Failed to write activity log entry" in caplog.text


class TestQuery:

    def test_filters(self, client, admin_headers, admin_ctx, customer_ctx):
        audit_service.record(admin_ctx, "create", "product", "p1")
        audit_service.record(admin_ctx, "status_change", "order", "o1")
        audit_service.record(customer_ctx, "create", "order", "o2")

        by_type = client.get("/api/admin/activity-logs?entityType=order", headers=admin_headers).get_json()
        assert {e["entity_id"] for e in by_type} == {"o1", "o2"}

        by_action = client.get("/api/admin/activity-logs?action=create", headers=admin_headers).get_json()
        assert {e["entity_id"] for e in by_action} == {"p1", "o2"}

        by_user = client.get(f"/api/admin/activity-logs?userId={customer_ctx.user_id}", headers=admin_headers).get_json()
        assert [e["entity_id"] for e in by_user] == ["o2"]

    def test_limit_is_clamped(self, client, admin_headers, admin_ctx):
        for i in range(3):
            audit_service.record(admin_ctx, "create", "product", f"p{i}")

        assert len(client.get("/api/admin/activity-logs?limit=0", headers=admin_headers).get_json()) == 1
        assert len(client.get("/api/admin/activity-logs?limit=9999", headers=admin_headers).get_json()) == 3
        assert client.get("/api/admin/activity-logs?limit=abc", headers=admin_headers).status_code == 400

    def test_unknown_entity_type(self, client, admin_headers):
        assert client.get("/api/admin/activity-logs?entityType=invoice", headers=admin_headers).status_code == 400

    def test_admin_only(self, customer_ctx):
        with pytest.raises(Forbidden):
            audit_service.query(customer_ctx)
