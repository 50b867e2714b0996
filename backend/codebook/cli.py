# Overview: Flask CLI command group for bootstrap and inspection.

# backend/codebook/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Schema:
# - python -m flask db upgrade
#   Apply migrations (Flask-Migrate).
# - python -m flask codebook init-db [--reset --yes]
#   Create tables directly; --reset drops everything first (DEV/TEST only).
#
# Demo data:
# - python -m flask codebook seed-demo
#   Idempotent: creates the guest and admin demo accounts and a small catalog.
#
# Inspection:
# - python -m flask codebook list-orders [--status pending] [--limit 20]
#   List recent orders, newest first.

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import Conflict
from .extensions import db
from .models import ROLE_ADMIN, ROLE_USER
from .services import document_store, products_service
from .services.auth_service import create_user
from .services.order_service import VALID_STATUSES
from .time_utils import utcnow


DEMO_CATALOG = [
    {
        "id": "10001",
        "name": "Basics To Advanced In React",
        "overview": "Build modern front ends with React, hooks and context.",
        "price": 29,
        "rating": 5,
        "best_seller": True,
        "featured_product": 1,
        "size": 5,
        "stock": 25,
    },
    {
        "id": "10002",
        "name": "Django Framework for Beginners",
        "overview": "From models to deployment with Django.",
        "price": 19,
        "rating": 4,
        "best_seller": False,
        "featured_product": 1,
        "size": 3,
        "stock": 12,
    },
    {
        "id": "10003",
        "name": "The Future of Design Systems",
        "overview": "Tokens, components and the teams that maintain them.",
        "price": 99,
        "rating": 4,
        "best_seller": False,
        "featured_product": 1,
        "size": 8,
        "stock": 4,
    },
    {
        "id": "10004",
        "name": "Python Data Pipelines",
        "overview": "Reliable batch and streaming pipelines in Python.",
        "price": 39,
        "rating": 5,
        "best_seller": True,
        "featured_product": 0,
        "size": 6,
    },
]


@click.group('codebook')
def codebook_group():
    """CodeBook bootstrap and inspection commands."""


@codebook_group.command('init-db')
@click.option('--reset', is_flag=True, help='Drop all tables first')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def init_db(reset, yes):
    """Create all tables without running migrations."""
    if reset:
        if not yes:
            click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)
        click.echo("DELETE  Dropping all tables...")
        db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()
    click.echo("PASS Database ready.")


@codebook_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """Create the demo accounts and catalog. Safe to run repeatedly."""
    cfg = current_app.config
    accounts = [
        (cfg["GUEST_LOGIN_EMAIL"], cfg["GUEST_LOGIN_PASSWORD"], "Guest Reader", ROLE_USER),
        (cfg["ADMIN_LOGIN_EMAIL"], cfg["ADMIN_LOGIN_PASSWORD"], "Store Admin", ROLE_ADMIN),
    ]
    for email, password, name, role in accounts:
        try:
            user = create_user(email, password, name, role=role)
            click.echo(f"PASS Created {role} {user['email']}")
        except Conflict:
            click.echo(f"SKIP {email} already exists")

    click.echo(f"PASS Upserted {seed_catalog()} products")


def seed_catalog() -> int:
    """Upsert DEMO_CATALOG, featuring only as many books as the cap leaves room for."""
    slots = products_service.featured_slots(exclude_ids=[p["id"] for p in DEMO_CATALOG])
    now = utcnow()
    records = []
    for product in DEMO_CATALOG:
        record = {**product, "created_at": now, "updated_at": now}
        if record["featured_product"] == 1:
            if slots > 0:
                slots -= 1
            else:
                click.echo(f"WARN Featured cap reached; {record['name']} seeded unfeatured")
                record["featured_product"] = 0
        records.append(record)
    return document_store.batch_put("products", records)


@codebook_group.command('list-orders')
@click.option('--status', type=click.Choice(sorted(VALID_STATUSES)), help='Filter by status')
@click.option('--limit', type=int, default=20, show_default=True, help='Maximum rows')
@with_appcontext
def list_orders(status, limit):
    """List recent orders, newest first."""
    filters = {"status": status} if status else None
    orders = document_store.scan("orders", filters, order_by="-created_at", limit=limit)

    if not orders:
        click.echo("No orders found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<34} {'Status':<12} {'Amount':>10} {'Qty':>4}  {'Customer':<30} {'Created'}")
    click.echo("="*100)

    for order in orders:
        customer = (order.get("user") or {}).get("email") or order["user_id"]
        click.echo(
            f"{order['id']:<34} {order['status']:<12} {order['amount_paid']:>10.2f} "
            f"{order['quantity']:>4}  {customer:<30} {order['created_at']}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(codebook_group)
