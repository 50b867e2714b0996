"""
Document store tests.

Verifies:
- Insert-only puts refuse existing keys
- Conditional updates compile to guarded writes (Conflict / NotFound)
- Increment patches are applied by the database
- Filters, ordering and batch writes
"""

import pytest
from sqlalchemy.exc import OperationalError

from codebook.errors import Conflict, NotFound, Throttled, Unavailable
from codebook.services import document_store
from codebook.services.concurrency import run_with_retry
from codebook.services.document_store import increment


class TestPut:

    def test_insert_only_conflicts_on_existing_key(self, make_product):
        make_product(id="p1")
        with pytest.raises(Conflict):
            document_store.put("products", {"id": "p1", "name": "Dup", "price": 1}, condition={"id__exists": False})

    def test_plain_put_replaces(self, make_product):
        make_product(id="p1", name="Old")
        doc = document_store.put("products", {"id": "p1", "name": "New", "price": 3})
        assert doc["name"] == "New"
        assert doc["price"] == 3.0

    def test_unknown_attribute_rejected(self, db_session):
        with pytest.raises(ValueError):
            document_store.put("products", {"id": "p1", "name": "X", "price": 1, "colour": "red"})

    def test_unique_email_is_conflict(self, customer):
        with pytest.raises(Conflict):
            document_store.put("users", {
                "id": "another",
                "email": customer["email"],
                "name": "Copy",
                "password_hash": "x",
            }, condition={"id__exists": False})


class TestUpdate:

    def test_preserves_unspecified_attributes(self, make_product):
        make_product(id="p1", name="Keep", overview="Stays", stock=4)
        doc = document_store.update("products", "p1", {"name": "Renamed"})
        assert doc["overview"] == "Stays"
        assert doc["stock"] == 4

    def test_missing_key_is_not_found(self, db_session):
        with pytest.raises(NotFound):
            document_store.update("products", "nope", {"name": "x"})

    def test_failed_condition_is_conflict(self, make_product):
        make_product(id="p1", stock=1)
        with pytest.raises(Conflict):
            document_store.update("products", "p1", {"stock": increment(-2)}, condition={"stock__gte": 2})
        assert document_store.get("products", "p1")["stock"] == 1

    def test_increment_keeps_in_stock_in_sync(self, make_product):
        make_product(id="p1", stock=2)
        doc = document_store.update("products", "p1", {"stock": increment(-2)}, condition={"stock__gte": 2})
        assert doc["stock"] == 0
        assert doc["in_stock"] is False

        doc = document_store.update("products", "p1", {"stock": increment(3)})
        assert doc["stock"] == 3
        assert doc["in_stock"] is True

    def test_update_sets_updated_at(self, make_product):
        before = make_product(id="p1")["updated_at"]
        doc = document_store.update("products", "p1", {"name": "Touched"})
        assert doc["updated_at"] >= before


class TestScan:

    def test_filters_and_order(self, make_product):
        make_product(id="a", name="Alpha Python", stock=1)
        make_product(id="b", name="Beta Rust", stock=None)
        make_product(id="c", name="Gamma python", stock=9)

        names = [p["name"] for p in document_store.scan("products", {"name__contains": "PYTHON"}, order_by="name")]
        assert names == ["Alpha Python", "Gamma python"]

        tracked = document_store.scan("products", {"stock__exists": True}, order_by="-name")
        assert [p["id"] for p in tracked] == ["c", "a"]

        assert [p["id"] for p in document_store.scan("products", {"id__in": ["b", "c"]}, order_by="id")] == ["b", "c"]

    def test_limit(self, make_product):
        for i in range(5):
            make_product(id=f"p{i}")
        assert len(document_store.scan("products", limit=2)) == 2

    def test_unsupported_lookup(self, db_session):
        with pytest.raises(ValueError):
            document_store.scan("products", {"name__startswith": "x"})


class TestBatchPut:

    def test_writes_in_chunks(self, db_session):
        records = [{"id": f"b{i}", "name": f"Book {i}", "price": i} for i in range(60)]
        assert document_store.batch_put("products", records) == 60
        assert len(document_store.scan("products")) == 60


class TestRetry:

    def _locked(self):
        return OperationalError("UPDATE products", {}, Exception("database is locked"))

    def test_contention_retried_then_throttled(self, db_session):
        calls = []

        def op():
            calls.append(1)
            raise self._locked()

        with pytest.raises(Throttled):
            run_with_retry(op, attempts=3, backoff_base=0)
        assert len(calls) == 3

    def test_other_operational_error_is_unavailable(self, db_session):
        def op():
            raise OperationalError("SELECT 1", {}, Exception("unable to open database file"))

        with pytest.raises(Unavailable):
            run_with_retry(op, attempts=2, backoff_base=0)

    def test_recovers_after_transient_failure(self, db_session):
        calls = []

        def op():
            calls.append(1)
            if len(calls) == 1:
                raise self._locked()
            return "ok"

        assert run_with_retry(op, attempts=3, backoff_base=0) == "ok"
