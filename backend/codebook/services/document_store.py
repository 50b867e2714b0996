# Overview: Service-layer document store over the four logical tables; conditional writes and scans.

"""
Document store

The rest of the core reads and writes plain dict documents addressed by
logical table name and primary key. Mutual exclusion is never done in
memory: every guarded write compiles to a single UPDATE ... WHERE (or an
INSERT that relies on the primary key), so concurrent requests are
serialised by the database.

CONDITIONS / FILTERS:
    {"status": "pending"}            equality (None means IS NULL)
    {"status__ne": "pending"}        inequality
    {"stock__gte": 2}                gt / gte / lt / lte
    {"status__in": [...]}            membership
    {"stock__exists": True}          attribute present (NOT NULL)
    {"id__exists": False}            put only: insert, Conflict if the key exists
    {"name__contains": "python"}     case-insensitive substring

ERRORS:
    NotFound     conditional update on a key that does not exist
    Conflict     condition failed or unique key violated
    Throttled    lock contention after bounded retries
    Unavailable  store unreachable
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..errors import Conflict, NotFound
from ..extensions import db
from ..models import TABLES
from ..time_utils import utcnow
from .concurrency import run_with_retry


# Vendor limit for one batched write
BATCH_LIMIT = 25


@dataclass(frozen=True)
class Increment:
    """Patch value meaning `attribute := attribute + amount`."""
    amount: int


def increment(amount: int) -> Increment:
    return Increment(amount)


def _model(table: str):
    try:
        return TABLES[table]
    except KeyError:
        raise ValueError(f"Unknown table: {table}") from None


def _criteria(model, conditions: dict | None) -> list:
    clauses = []
    for key, value in (conditions or {}).items():
        field, _, op = key.partition("__")
        if field not in model.field_names():
            raise ValueError(f"Unknown attribute for {model.__tablename__}: {field}")
        column = getattr(model, field)
        op = op or "eq"

        if op == "exists":
            clauses.append(column.isnot(None) if value else column.is_(None))
        elif op == "contains":
            clauses.append(column.ilike(f"%{value}%"))
        elif op == "in":
            clauses.append(column.in_([model.coerce_value(field, v) for v in value]))
        elif op == "eq":
            coerced = model.coerce_value(field, value)
            clauses.append(column.is_(None) if coerced is None else column == coerced)
        elif op == "ne":
            coerced = model.coerce_value(field, value)
            clauses.append(column.isnot(None) if coerced is None else or_(column != coerced, column.is_(None)))
        elif op in ("gt", "gte", "lt", "lte"):
            coerced = model.coerce_value(field, value)
            clauses.append({
                "gt": column > coerced,
                "gte": column >= coerced,
                "lt": column < coerced,
                "lte": column <= coerced,
            }[op])
        else:
            raise ValueError(f"Unsupported lookup: {key}")
    return clauses


def _patch_values(model, patch: dict) -> dict:
    expanded = {}
    for key, value in patch.items():
        if isinstance(value, Increment):
            expanded[key] = getattr(model, key) + value.amount
        else:
            expanded[key] = value
    values = model.column_values(model.canonicalize(expanded))
    values.pop("id", None)
    if "updated_at" in model.field_names() and "updated_at" not in values:
        values["updated_at"] = utcnow()
    return values


def get(table: str, key: str) -> dict | None:
    model = _model(table)

    def _op():
        return db.session.get(model, key, populate_existing=True)

    row = run_with_retry(_op)
    return row.to_dict() if row is not None else None


def put(table: str, record: dict, condition: dict | None = None) -> dict:
    """
    Write a whole document.

    With `{"id__exists": False}` the write is an insert and fails with Conflict
    when the key (or a unique attribute) is taken. Any other condition turns
    the write into a guarded replace of the existing document.
    """
    model = _model(table)
    values = model.column_values(model.canonicalize(record))
    key = values.get("id")
    if not key:
        raise ValueError(f"{table} documents require an id")

    condition = dict(condition or {})
    insert_only = condition.pop("id__exists", None) is False

    def _op():
        if insert_only:
            db.session.add(model(**values))
        elif condition:
            count = (
                db.session.query(model)
                .filter(model.id == key, *_criteria(model, condition))
                .update(values, synchronize_session=False)
            )
            if count == 0:
                db.session.rollback()
                raise Conflict(f"Condition failed for {table}/{key}")
        else:
            db.session.merge(model(**values))
        db.session.commit()

    try:
        run_with_retry(_op)
    except IntegrityError as exc:
        db.session.rollback()
        raise Conflict(f"{table}/{key} violates a unique constraint") from exc
    return get(table, key)


def update(table: str, key: str, patch: dict, condition: dict | None = None) -> dict:
    """
    Partially update a document and return the new version.

    Unspecified attributes are preserved. NotFound when the key does not
    exist; Conflict when it exists but the condition does not hold.
    """
    model = _model(table)
    values = _patch_values(model, patch)
    criteria = _criteria(model, condition)

    def _op():
        count = (
            db.session.query(model)
            .filter(model.id == key, *criteria)
            .update(values, synchronize_session=False)
        )
        if count == 0:
            db.session.rollback()
            if db.session.get(model, key) is None:
                raise NotFound(f"{table}/{key} not found")
            raise Conflict(f"Condition failed for {table}/{key}")
        db.session.commit()

    try:
        run_with_retry(_op)
    except IntegrityError as exc:
        db.session.rollback()
        raise Conflict(f"{table}/{key} violates a constraint") from exc
    return get(table, key)


def delete(table: str, key: str) -> None:
    model = _model(table)

    def _op():
        db.session.query(model).filter(model.id == key).delete(synchronize_session=False)
        db.session.commit()

    run_with_retry(_op)


def scan(
    table: str,
    filters: dict | None = None,
    *,
    order_by: str | None = None,
    limit: int | None = None,
) -> list[dict]:
    """
    Full-table read with an optional filter.

    Unindexed; used for admin views and
    the e-mail lookup on login/registration.
    """
    model = _model(table)
    query = db.session.query(model).filter(*_criteria(model, filters))
    if order_by:
        descending = order_by.startswith("-")
        column = getattr(model, order_by.lstrip("-"))
        query = query.order_by(column.desc() if descending else column.asc())
    if limit is not None:
        query = query.limit(limit)
    query = query.execution_options(populate_existing=True)

    def _op():
        return query.all()

    return [row.to_dict() for row in run_with_retry(_op)]


def batch_put(table: str, records: list[dict]) -> int:
    """
    Upsert documents in groups of BATCH_LIMIT.

    Each group commits on its own and is retried on contention; a group that
    still fails raises and leaves earlier groups written.
    """
    model = _model(table)
    documents = [model.column_values(model.canonicalize(r)) for r in records]
    written = 0
    for start in range(0, len(documents), BATCH_LIMIT):
        chunk = documents[start:start + BATCH_LIMIT]

        def _op(chunk=chunk):
            for values in chunk:
                db.session.merge(model(**values))
            db.session.commit()

        run_with_retry(_op)
        written += len(chunk)
    return written
