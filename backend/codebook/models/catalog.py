from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from .base import DocumentMixin


DEFAULT_LOW_STOCK_THRESHOLD = 10


class Product(DocumentMixin, db.Model):
    """
    Catalog entry.

    STOCK: `stock` is optional. NULL means the product is not tracked: it never
    blocks an order and never triggers stock alerts. When tracked, `in_stock`
    always mirrors `stock > 0` and the check constraint keeps stock non-negative.

    FEATURED: `featured_product` is stored as 0/1. At most three products carry
    the flag; products_service enforces the cap.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock IS NULL OR stock >= 0", name="ck_products_stock_nonnegative"),
        db.Index("ix_products_featured", "featured_product"),
    )

    id = db.Column(db.String(64), primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    overview = db.Column(db.Text, nullable=True)
    long_description = db.Column(db.Text, nullable=True)
    price = db.Column(db.Numeric(10, 2), nullable=False, default=0)

    poster = db.Column(db.String(512), nullable=True)
    image_local = db.Column(db.String(512), nullable=True)
    size = db.Column(db.Integer, nullable=True)
    rating = db.Column(db.Integer, nullable=True)
    best_seller = db.Column(db.Boolean, nullable=False, default=False)
    featured_product = db.Column(db.Integer, nullable=False, default=0)

    stock = db.Column(db.Integer, nullable=True)
    low_stock_threshold = db.Column(db.Integer, nullable=False, default=DEFAULT_LOW_STOCK_THRESHOLD)
    in_stock = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime, nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime, nullable=True)

    @classmethod
    def canonicalize(cls, record: dict) -> dict:
        record = dict(record)
        if "featured_product" in record:
            record["featured_product"] = 1 if record["featured_product"] in (1, True, "1", "true") else 0
        if "low_stock_threshold" in record and record["low_stock_threshold"] is None:
            record["low_stock_threshold"] = DEFAULT_LOW_STOCK_THRESHOLD
        if "stock" in record:
            record.update(cls.derived_values({"stock": record["stock"]}))
        return record

    @classmethod
    def derived_values(cls, values: dict) -> dict:
        if "stock" not in values:
            return {}
        stock = values["stock"]
        if stock is None:
            return {"in_stock": True}
        # stock may be a SQL expression (increment); SET clauses see the pre-update row
        return {"in_stock": stock > 0}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "overview": self.overview,
            "long_description": self.long_description,
            "price": float(self.price) if self.price is not None else 0.0,
            "poster": self.poster,
            "image_local": self.image_local,
            "size": self.size,
            "rating": self.rating,
            "best_seller": bool(self.best_seller),
            "featured_product": 1 if self.featured_product else 0,
            "stock": self.stock,
            "low_stock_threshold": (
                self.low_stock_threshold
                if self.low_stock_threshold is not None
                else DEFAULT_LOW_STOCK_THRESHOLD
            ),
            "in_stock": bool(self.in_stock) if self.stock is None else self.stock > 0,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
