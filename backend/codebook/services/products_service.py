# Overview: Service-layer operations for the catalog; public reads and audited admin CRUD.

"""
Products Service

RULES:
- At most MAX_FEATURED products carry featured_product = 1. Turning the flag
  on for one more is a ValidationError and leaves the product unchanged.
- stock is optional (untracked when absent) and never negative.
- Every admin write leaves exactly one activity log entry.
"""

from __future__ import annotations

import uuid
from decimal import Decimal, InvalidOperation

from ..errors import Forbidden, NotFound, ValidationError
from ..time_utils import utcnow
from . import audit_service, document_store


MAX_FEATURED = 3

PRODUCT_MUTABLE_FIELDS = {
    "name",
    "overview",
    "long_description",
    "price",
    "poster",
    "image_local",
    "size",
    "rating",
    "best_seller",
    "featured_product",
    "stock",
    "low_stock_threshold",
}


def _require_admin(actor) -> None:
    if not actor.is_admin:
        raise Forbidden("Admin access required")


def _optional_int(value, field: str, *, minimum: int | None = None, maximum: int | None = None):
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    try:
        number = int(value)
        exact = number == float(value)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError(f"{field} must be an integer") from None
    if not exact:
        raise ValidationError(f"{field} must be an integer")
    if minimum is not None and number < minimum:
        raise ValidationError(f"{field} must be at least {minimum}")
    if maximum is not None and number > maximum:
        raise ValidationError(f"{field} must be at most {maximum}")
    return number


def clean_product_payload(data: dict, *, partial: bool) -> dict:
    """Validate admin input and return only known fields in canonical form."""
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")

    unknown = sorted(k for k in data if k not in PRODUCT_MUTABLE_FIELDS and k != "id")
    if unknown:
        raise ValidationError(f"Unknown product fields: {', '.join(unknown)}")

    cleaned = {k: v for k, v in data.items() if k in PRODUCT_MUTABLE_FIELDS}

    if "name" in cleaned or not partial:
        name = cleaned.get("name")
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("Product name is required")
        cleaned["name"] = name.strip()

    if "price" in cleaned or not partial:
        try:
            price = Decimal(str(cleaned.get("price")))
        except (InvalidOperation, ValueError):
            raise ValidationError("price must be a number") from None
        if not price.is_finite() or price < 0:
            raise ValidationError("price must be a non-negative number")
        cleaned["price"] = price

    if "stock" in cleaned:
        cleaned["stock"] = _optional_int(cleaned["stock"], "stock", minimum=0)
    if "low_stock_threshold" in cleaned:
        cleaned["low_stock_threshold"] = _optional_int(cleaned["low_stock_threshold"], "low_stock_threshold", minimum=0)
    if "rating" in cleaned:
        cleaned["rating"] = _optional_int(cleaned["rating"], "rating", minimum=1, maximum=5)
    if "size" in cleaned:
        cleaned["size"] = _optional_int(cleaned["size"], "size", minimum=0)
    if "best_seller" in cleaned:
        cleaned["best_seller"] = bool(cleaned["best_seller"])
    if "featured_product" in cleaned:
        cleaned["featured_product"] = 1 if cleaned["featured_product"] in (1, True, "1", "true") else 0

    return cleaned


def _check_featured_cap(product_id: str | None) -> None:
    featured = document_store.scan("products", {"featured_product": 1})
    others = [p for p in featured if p["id"] != product_id]
    if len(others) >= MAX_FEATURED:
        raise ValidationError(
            f"At most {MAX_FEATURED} products can be featured. Unfeature another product first."
        )


def _feature(product_id: str) -> None:
    """
    Turn the featured flag on for one product.

    The cap is checked before the write and recounted after it. If a
    concurrent admin overran the cap in between, our own flag is backed out
    and the caller gets the same ValidationError as the up-front check.
    """
    _check_featured_cap(product_id)
    document_store.update("products", product_id, {"featured_product": 1})
    featured = document_store.scan("products", {"featured_product": 1})
    if len(featured) > MAX_FEATURED:
        document_store.update("products", product_id, {"featured_product": 0})
        raise ValidationError(
            f"At most {MAX_FEATURED} products can be featured. Unfeature another product first."
        )


def featured_slots(exclude_ids=()) -> int:
    """How many more products may be featured, ignoring `exclude_ids`."""
    featured = document_store.scan("products", {"featured_product": 1})
    return max(MAX_FEATURED - len([p for p in featured if p["id"] not in set(exclude_ids)]), 0)


def _load(product_id: str) -> dict:
    product = document_store.get("products", product_id)
    if product is None:
        raise NotFound("Product not found")
    return product


# =============================================================================
# PUBLIC READS
# =============================================================================

def list_products(name_like: str | None = None) -> list[dict]:
    if not name_like:
        return document_store.scan("products", order_by="name")

    term = name_like.strip()
    by_name = document_store.scan("products", {"name__contains": term}, order_by="name")
    by_overview = document_store.scan("products", {"overview__contains": term}, order_by="name")
    seen = {p["id"] for p in by_name}
    return by_name + [p for p in by_overview if p["id"] not in seen]


def get_product(product_id: str) -> dict:
    return _load(product_id)


def featured_products() -> list[dict]:
    return document_store.scan("products", {"featured_product": 1}, order_by="name", limit=MAX_FEATURED)


# =============================================================================
# ADMIN WRITES
# =============================================================================

def create_product(actor, data: dict) -> dict:
    _require_admin(actor)
    cleaned = clean_product_payload(data, partial=False)
    featured = cleaned.get("featured_product") == 1
    if featured:
        _check_featured_cap(None)

    now = utcnow()
    record = {
        **cleaned,
        "id": str(data.get("id") or uuid.uuid4().hex),
        "featured_product": 0,
        "created_at": now,
        "updated_at": now,
    }
    product = document_store.put("products", record, condition={"id__exists": False})
    if featured:
        try:
            _feature(product["id"])
        except ValidationError:
            document_store.delete("products", product["id"])
            raise
        product = _load(product["id"])
    audit_service.record(actor, audit_service.ACTION_CREATE, audit_service.ENTITY_PRODUCT, product["id"], {
        "name": product["name"],
        "price": product["price"],
        "stock": product["stock"],
    })
    return product


def update_product(actor, product_id: str, data: dict) -> dict:
    _require_admin(actor)
    product = _load(product_id)
    cleaned = clean_product_payload(data, partial=True)
    if not cleaned:
        raise ValidationError("No product fields to update")

    if cleaned.get("featured_product") == 1 and product["featured_product"] != 1:
        _feature(product_id)

    updated = document_store.update("products", product_id, cleaned)
    audit_service.record(actor, audit_service.ACTION_UPDATE, audit_service.ENTITY_PRODUCT, product_id, {
        "name": updated["name"],
        "updated_fields": sorted(cleaned),
    })
    return updated


def delete_product(actor, product_id: str) -> dict:
    _require_admin(actor)
    product = _load(product_id)
    document_store.delete("products", product_id)
    audit_service.record(actor, audit_service.ACTION_DELETE, audit_service.ENTITY_PRODUCT, product_id, {
        "name": product["name"],
    })
    return {"id": product_id, "deleted": True}
