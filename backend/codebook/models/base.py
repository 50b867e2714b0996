from __future__ import annotations

from decimal import Decimal

from sqlalchemy import inspect
from sqlalchemy.sql.elements import ClauseElement

from ..extensions import db
from ..time_utils import parse_iso_datetime


class DocumentMixin:
    """
    Maps a row to and from the plain dict documents the store hands out.

    Records written by older code may lack optional attributes; readers fill
    defaults through the column definitions, writers go through canonicalize().
    """

    @classmethod
    def field_names(cls) -> set[str]:
        return {attr.key for attr in inspect(cls).column_attrs}

    @classmethod
    def canonicalize(cls, record: dict) -> dict:
        return dict(record)

    @classmethod
    def coerce_value(cls, key: str, value):
        if value is None or isinstance(value, ClauseElement):
            return value
        column = inspect(cls).column_attrs[key].columns[0]
        if isinstance(column.type, db.DateTime):
            return parse_iso_datetime(value)
        if isinstance(column.type, db.Numeric):
            return Decimal(str(value))
        return value

    @classmethod
    def column_values(cls, record: dict) -> dict:
        """Convert a document into column values, rejecting unknown attributes."""
        names = cls.field_names()
        unknown = sorted(k for k in record if k not in names and not k.startswith("_"))
        if unknown:
            raise ValueError(f"Unknown attributes for {cls.__tablename__}: {', '.join(unknown)}")
        values = {}
        for key, value in record.items():
            if key not in names:
                continue
            # absent and NULL are the same for readers; let NOT NULL columns take their default
            if value is None and not inspect(cls).column_attrs[key].columns[0].nullable:
                continue
            values[key] = cls.coerce_value(key, value)
        return values
