# Overview: Service-layer operations for product stock; atomic reserve/restore with stock alerts.

"""
Stock invariants (authoritative)

- Products with stock = NULL are untracked: reserve/restore succeed without
  touching them and they never raise stock alerts.
- Tracked stock never goes below zero. reserve() is a single conditional
  UPDATE (stock := stock - qty WHERE stock >= qty), so concurrent orders for
  the same product are serialised by the store.
- in_stock always mirrors stock > 0 for tracked products (see Product).
- After a committed reservation, new stock 0 alerts admin-out-of-stock;
  otherwise new stock <= low_stock_threshold alerts admin-low-stock.
- Cart reservation is all-or-nothing: on the first failure every earlier
  reservation of the same cart is restored before the error propagates.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..errors import CodebookError, Conflict, NotFound, Throttled, Unavailable
from ..models import DEFAULT_LOW_STOCK_THRESHOLD
from . import document_store, email_service
from .document_store import increment


class InsufficientStock(Conflict):
    """Raised when a tracked product cannot cover the requested quantity."""

    def __init__(self, product_id: str, requested: int, available: int | None, product_name: str | None = None):
        label = product_name or product_id
        super().__init__(
            f"Insufficient stock for {label}",
            details={
                "product_id": product_id,
                "product_name": product_name,
                "requested": requested,
                "available": available,
            },
        )
        self.product_id = product_id


@dataclass
class Reservation:
    product_id: str
    quantity: int
    reserved: bool
    new_stock: int | None = None
    product: dict | None = None


def reserve(product_id: str, qty: int, *, alert: bool = True) -> Reservation:
    """
    Take `qty` units of a product.

    Raises InsufficientStock or NotFound. A product that cannot be read
    because the store is busy or down is let through unreserved. With
    alert=False the caller is responsible for send_alerts().
    """
    try:
        product = document_store.get("products", product_id)
    except (Throttled, Unavailable):
        current_app.logger.warning(
            "Could not read product %s while reserving %s; continuing without reservation",
            product_id, qty, exc_info=True,
        )
        return Reservation(product_id, qty, reserved=False)

    if product is None:
        raise NotFound(f"Product {product_id} not found")
    if product.get("stock") is None:
        return Reservation(product_id, qty, reserved=False)

    try:
        updated = document_store.update(
            "products",
            product_id,
            {"stock": increment(-qty)},
            condition={"stock__exists": True, "stock__gte": qty},
        )
    except Conflict:
        current = document_store.get("products", product_id) or product
        raise InsufficientStock(product_id, qty, current.get("stock"), product.get("name")) from None

    reservation = Reservation(product_id, qty, reserved=True, new_stock=updated["stock"], product=updated)
    if alert:
        send_alerts([reservation])
    return reservation


def send_alerts(reservations: list[Reservation]) -> None:
    for reservation in reservations:
        if reservation.reserved:
            _alert_if_low(reservation.product, reservation.new_stock)


def _alert_if_low(product: dict, new_stock: int) -> None:
    threshold = product.get("low_stock_threshold")
    if threshold is None:
        threshold = DEFAULT_LOW_STOCK_THRESHOLD
    data = {
        "product_id": product["id"],
        "product_name": product.get("name") or product["id"],
        "stock": new_stock,
        "threshold": threshold,
    }
    if new_stock == 0:
        email_service.notify_admin("admin-out-of-stock", data)
    elif new_stock <= threshold:
        email_service.notify_admin("admin-low-stock", data)


def restore(product_id: str, qty: int, product_name: str | None = None) -> dict:
    """
    Give `qty` units back. Never raises; the outcome is reported per product.
    """
    outcome = {
        "product_id": product_id,
        "product_name": product_name,
        "quantity": qty,
        "new_stock": None,
        "success": False,
        "error": None,
    }
    try:
        updated = document_store.update(
            "products",
            product_id,
            {"stock": increment(qty)},
            condition={"stock__exists": True},
        )
    except NotFound:
        outcome["error"] = "Product not found"
        return outcome
    except Conflict:
        # untracked: nothing to give back
        outcome["success"] = True
        return outcome
    except (Throttled, Unavailable) as exc:
        current_app.logger.error("Failed to restore %s units of product %s", qty, product_id, exc_info=True)
        outcome["error"] = exc.message
        return outcome

    outcome["product_name"] = product_name or updated.get("name")
    outcome["new_stock"] = updated["stock"]
    outcome["success"] = True
    return outcome


def reserve_all(cart_list: list[dict]) -> list[Reservation]:
    """
    Reserve every cart line in order; compensate and re-raise on the first failure.

    Stock alerts are not sent here: the caller sends them once the reservations
    are committed to an order, so a rolled-back cart never alerts.
    """
    reservations = []
    for item in cart_list:
        try:
            reservations.append(reserve(item["product_id"], item["quantity"], alert=False))
        except CodebookError:
            release(reservations)
            raise
    return reservations


def release(reservations: list[Reservation]) -> list[dict]:
    """Undo reservations taken by reserve_all (only those that touched stock)."""
    return [restore(r.product_id, r.quantity) for r in reversed(reservations) if r.reserved]


def restore_all(cart_list: list[dict]) -> list[dict]:
    return [
        restore(item["product_id"], item["quantity"], product_name=item.get("name"))
        for item in cart_list
    ]
