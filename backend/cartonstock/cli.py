# Overview: Flask CLI command groups for bootstrap, the daily snapshot jobs and inspection.

# backend/cartonstock/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init [--no-seed]
#   Idempotent: creates tables, the central store, the default shops and the starter catalog.
#
# Daily snapshot jobs (schedule these; both are safe to re-run):
# - python -m flask snapshots rollover [--date 2026-03-01]
#   Create the day's opening rows for every stock entry. No-op if the day already has rows.
# - python -m flask snapshots reconcile
#   Rewrite drifted closing values of non-overridden rows to live stock.
#
# Inspection:
# - python -m flask locations list
#   List stores and shops.
# - python -m flask stock show --location-id 1
#   Live cartons per product at a location.

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import LedgerError
from .extensions import db
from .models import Location, Product
from .models.catalog import LOCATION_TYPE_SHOP, LOCATION_TYPE_STORE
from .services import snapshot_service, stock_ledger
from .services.catalog_service import active_products
from .time_utils import business_today, parse_iso_date

DEFAULT_STORE = "Main Store"
DEFAULT_SHOPS = ("Shop 1", "Shop 2")

# Starter catalog: (name, price per carton in kobo)
DEFAULT_CATALOG = (
    ("Cream Crackers", 450000),
    ("Digestive Biscuits", 520000),
    ("Cabin Biscuits", 380000),
    ("Shortbread", 610000),
)


def _parse_date_option(value):
    if not value:
        return None
    try:
        return parse_iso_date(value)
    except ValueError:
        raise click.BadParameter("expected YYYY-MM-DD", param_hint="--date")


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@click.option('--seed/--no-seed', default=True, help='Seed the starter catalog')
@with_appcontext
def init_system(seed):
    """
    Initialize cartonstock.

    Safe to run multiple times - creates only what is missing.
    """
    click.echo("START Initializing cartonstock...")
    db.create_all()
    click.echo("PASS Tables ready")

    store = db.session.query(Location).filter_by(type=LOCATION_TYPE_STORE).order_by(Location.id.asc()).first()
    if store is None:
        store = Location(name=DEFAULT_STORE, type=LOCATION_TYPE_STORE)
        db.session.add(store)
        db.session.commit()
        click.echo(f"PASS Created store: {store.name} (ID: {store.id})")
    else:
        click.echo(f"PASS Using existing store: {store.name} (ID: {store.id})")

    for shop_name in DEFAULT_SHOPS:
        if db.session.query(Location).filter_by(name=shop_name).first() is None:
            shop = Location(name=shop_name, type=LOCATION_TYPE_SHOP)
            db.session.add(shop)
            db.session.commit()
            click.echo(f"PASS Created shop: {shop.name} (ID: {shop.id})")

    if seed:
        created = 0
        for name, price in DEFAULT_CATALOG:
            if db.session.query(Product).filter_by(name=name).first() is None:
                db.session.add(Product(name=name, price_per_carton_cents=price))
                created += 1
        db.session.commit()
        click.echo(f"PASS Catalog: {created} products created")

    configured = current_app.config.get("STORE_LOCATION_ID")
    if configured and int(configured) != store.id:
        click.echo(f"WARN  STORE_LOCATION_ID={configured} but the first store is ID {store.id}")

    click.echo("DONE cartonstock initialized")


@click.group('snapshots')
def snapshots_group():
    """Daily reconciliation jobs."""


@snapshots_group.command('rollover')
@click.option('--date', 'day', default=None, help='Business date (YYYY-MM-DD), default today')
@with_appcontext
def rollover(day):
    """Create opening rows for the day (no-op if any exist)."""
    day = _parse_date_option(day) or business_today()
    try:
        inserted = snapshot_service.run_daily_rollover(day)
    except LedgerError as e:
        click.echo(f"FAIL Rollover for {day}: {e.message}")
        return
    if inserted:
        click.echo(f"PASS Rollover for {day}: {inserted} rows created")
    else:
        click.echo(f"PASS Rollover for {day}: already done, nothing to create")


@snapshots_group.command('reconcile')
@click.option('--date', 'day', default=None, help='Business date (YYYY-MM-DD), default today')
@with_appcontext
def reconcile(day):
    """Repair non-overridden closing values that drifted from live stock."""
    day = _parse_date_option(day) or business_today()
    try:
        repaired = snapshot_service.reconcile_closing(day)
    except LedgerError as e:
        click.echo(f"FAIL Reconcile for {day}: {e.message}")
        return
    for row in repaired:
        click.echo(
            f"FIX  product {row['product_id']} @ location {row['location_id']}: "
            f"closing {row['previous_closing']} -> {row['closing']}"
        )
    click.echo(f"PASS Reconcile for {day}: {len(repaired)} rows repaired")


@click.group('locations')
def locations_group():
    """Location inspection."""


@locations_group.command('list')
@with_appcontext
def list_locations():
    locations = db.session.query(Location).order_by(Location.type.asc(), Location.name.asc()).all()
    if not locations:
        click.echo("No locations found. Run: python -m flask system init")
        return

    click.echo("\n" + "="*50)
    click.echo(f"{'ID':<5} {'Name':<30} {'Type'}")
    click.echo("="*50)
    for loc in locations:
        click.echo(f"{loc.id:<5} {loc.name:<30} {loc.type}")
    click.echo("="*50 + "\n")


@click.group('stock')
def stock_group():
    """Stock inspection."""


@stock_group.command('show')
@click.option('--location-id', type=int, required=True, help='Location ID')
@with_appcontext
def show_stock(location_id):
    location = db.session.get(Location, location_id)
    if location is None:
        click.echo(f"FAIL Location {location_id} not found")
        return

    live = stock_ledger.stock_by_product(location_id)
    threshold = int(current_app.config.get("LOW_STOCK_THRESHOLD", 10))

    click.echo(f"\n{location.name} ({location.type})")
    click.echo("="*50)
    click.echo(f"{'ID':<5} {'Product':<30} {'Cartons'}")
    click.echo("="*50)
    for product in active_products():
        cartons = live.get(product.id, 0)
        flag = "  LOW" if cartons < threshold else ""
        click.echo(f"{product.id:<5} {product.name:<30} {cartons}{flag}")
    click.echo("="*50 + "\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(snapshots_group)
    app.cli.add_command(locations_group)
    app.cli.add_command(stock_group)
