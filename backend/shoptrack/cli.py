# Overview: Flask CLI command group for bootstrap, inspection, and maintenance.

# backend/shoptrack/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask shoptrack <command> [options]
#
# - python -m flask shoptrack db-init [--drop --yes]
#   Create all tables (optionally drop them first; deletes all data).
# - python -m flask shoptrack seed
#   Insert a sample catalog (categories, a supplier, products). Idempotent by SKU.
# - python -m flask shoptrack grant-admin <user_id> [--email admin@example.com]
#   Grant the admin role, creating the account first if it does not exist.
# - python -m flask shoptrack reconcile
#   Compare every stock counter with initial_stock + logged deltas. Exit 1 on drift.
# - python -m flask shoptrack release-stale-carts [--older-than-minutes 60]
#   Release cart reservations untouched for longer than the TTL.

from datetime import timedelta

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .errors import ConflictError
from .models import Category, Supplier, Product, Profile
from .models.accounts import ROLE_ADMIN
from .services import account_service, cart_service, catalog_service, ledger_service
from .services.access_service import SYSTEM
from .time_utils import utcnow


SAMPLE_CATALOG = {
    "Electronics": [
        {"sku": "ELC-001", "name": "Wireless Mouse", "price": "799.00", "stock": 40, "reorder_point": 10},
        {"sku": "ELC-002", "name": "USB-C Charger 65W", "price": "2499.00", "stock": 25, "discount_percentage": "10"},
    ],
    "Home": [
        {"sku": "HOM-001", "name": "Steel Water Bottle", "price": "449.00", "stock": 60},
        {"sku": "HOM-002", "name": "Cotton Bath Towel", "price": "599.00", "stock": 8, "reorder_point": 15},
    ],
}


@click.group('shoptrack')
def shoptrack_group():
    """ShopTrack bootstrap and maintenance commands."""


@shoptrack_group.command('db-init')
@click.option('--drop', is_flag=True, help='Drop all tables first')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def db_init(drop, yes):
    """Create all tables."""
    if drop:
        if not yes:
            click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)
        click.echo("DELETE  Dropping all tables...")
        db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()
    click.echo("PASS Database ready.")


@shoptrack_group.command('seed')
@with_appcontext
def seed():
    """Insert a small sample catalog."""
    created = 0
    supplier = Supplier.query.filter_by(name="Acme Wholesale").first()
    if supplier is None:
        supplier = catalog_service.create_supplier(SYSTEM, {
            "name": "Acme Wholesale",
            "contact_person": "Priya Nair",
            "email": "orders@acme.example",
            "rating": 4,
        })

    for category_name, products in SAMPLE_CATALOG.items():
        category = Category.query.filter_by(name=category_name).first()
        if category is None:
            category = catalog_service.create_category(SYSTEM, {"name": category_name})
        for fields in products:
            if Product.query.filter_by(sku=fields["sku"]).first() is not None:
                continue
            catalog_service.create_product(SYSTEM, {
                **fields,
                "category_id": category.id,
                "supplier_id": supplier.id,
            })
            created += 1

    click.echo(f"PASS Seeded {created} product(s).")


@shoptrack_group.command('grant-admin')
@click.argument('user_id')
@click.option('--email', default=None, help='Email used if the account must be created')
@with_appcontext
def grant_admin(user_id, email):
    """Grant the admin role to USER_ID."""
    if db.session.get(Profile, user_id) is None:
        if not email:
            raise click.ClickException(f"Account {user_id} does not exist; pass --email to create it")
        account_service.create_account(user_id, email)
        click.echo(f"CREATE Account {user_id}")

    try:
        account_service.grant_role(SYSTEM, user_id, ROLE_ADMIN)
    except ConflictError:
        click.echo(f"SKIP  {user_id} is already an admin")
        return
    click.echo(f"PASS  {user_id} is now an admin")


@shoptrack_group.command('reconcile')
@with_appcontext
def reconcile():
    """Check every product's stock against its inventory log."""
    drifted = ledger_service.reconcile_all()
    if not drifted:
        click.echo("PASS All stock counters match their inventory logs.")
        return

    for row in drifted:
        click.echo(
            f"FAIL {row['product_id']}: initial={row['initial_stock']} "
            f"logged={row['log_sum']:+d} expected={row['expected']} actual={row['actual']}"
        )
    raise SystemExit(1)


@shoptrack_group.command('release-stale-carts')
@click.option('--older-than-minutes', type=int, default=None,
              help='Override CART_RESERVATION_TTL_MINUTES')
@with_appcontext
def release_stale_carts(older_than_minutes):
    """Release reservations held by abandoned carts."""
    minutes = older_than_minutes
    if minutes is None:
        minutes = current_app.config.get("CART_RESERVATION_TTL_MINUTES", 60)
    cutoff = utcnow() - timedelta(minutes=minutes)
    released = cart_service.release_stale_carts(SYSTEM, older_than=cutoff)
    click.echo(f"PASS Released {released} stale cart line(s).")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(shoptrack_group)
