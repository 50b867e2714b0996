# Overview: Flask API routes for products operations; parses input and returns JSON responses.

"""
Public catalog routes.

No authentication. Writes live under /api/admin/products.
"""
from flask import Blueprint, request

from ..services import products_service


products_bp = Blueprint("products", __name__, url_prefix="/api")


@products_bp.get("/products")
def list_products():
    """
    List the catalog.

    Query params:
    - name_like: str (optional) - case-insensitive match on name or overview
    """
    return products_service.list_products(request.args.get("name_like"))


@products_bp.get("/products/<product_id>")
def get_product(product_id: str):
    return products_service.get_product(product_id)


@products_bp.get("/featured-products")
def featured_products():
    """Up to three products flagged featured_product = 1."""
    return products_service.featured_products()
