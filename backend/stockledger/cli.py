# Overview: Flask CLI command groups for bootstrap and stock reconciliation.

# backend/stockledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Schema:
# - No migrations/ directory ships; init-db / reset-db create the schema.
# - Flask-Migrate is registered so a migration history can be started with
#   python -m flask db init, then db migrate / db upgrade for later changes.
#
# Stock reconciliation:
# - python -m flask stock sync-all
#   Recompute every product's cached counter from the ledger.
# - python -m flask stock sync-product 12
#   Same for one product.
# - python -m flask stock breakdown 12 [--as-of 2024-01-31T23:59:59Z]
#   Per-kind decomposition of a product's stock. With --as-of the cached
#   counter is not shown (it only describes the present).
# - python -m flask stock drift
#   Read-only report of products whose cached counter is off.

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import reconciliation_service, stock_calculator
from .services.exceptions import StockError
from .time_utils import parse_iso_datetime


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables."""
    db.create_all()
    click.echo("Database tables created.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm destructive reset')
@with_appcontext
def reset_db(yes):
    """Drop and recreate all tables. DEV/TEST only."""
    if not yes:
        click.echo("Refusing to reset without --yes")
        raise SystemExit(1)
    db.drop_all()
    db.create_all()
    click.echo("Database reset complete.")


@click.group('stock')
def stock_group():
    """Stock ledger reconciliation commands."""


@stock_group.command('sync-all')
@with_appcontext
def sync_all():
    """Recompute and overwrite every product's cached counter."""
    summary = reconciliation_service.sync_all()
    for result in summary.results:
        if not result.synchronized:
            click.echo(f"  FAILED product {result.product_id}: {result.error}")
        elif result.drift_detected:
            click.echo(
                f"  product {result.product_id} ({result.product_name}): "
                f"{result.previous} -> {result.recalculated} ({result.delta:+d})"
            )
    click.echo(
        f"Synced {summary.successful}/{summary.total_products} products "
        f"({summary.drifted} drifted, {summary.failed} failed)"
    )
    if summary.failed:
        raise SystemExit(1)


@stock_group.command('sync-product')
@click.argument('product_id', type=int)
@with_appcontext
def sync_product(product_id):
    try:
        result = reconciliation_service.sync_product(product_id)
    except StockError as e:
        raise click.ClickException(str(e))
    click.echo(
        f"{result.product_name}: {result.previous} -> {result.recalculated} "
        f"({'drift corrected' if result.drift_detected else 'in sync'})"
    )


@stock_group.command('breakdown')
@click.argument('product_id', type=int)
@click.option('--as-of', default=None, help='ISO-8601 cutoff (inclusive)')
@with_appcontext
def breakdown(product_id, as_of):
    """Show how a product's stock is made up."""
    try:
        cutoff = parse_iso_datetime(as_of) if as_of else None
    except ValueError:
        raise click.BadParameter("must be an ISO-8601 datetime", param_hint="--as-of")
    try:
        b = stock_calculator.get_stock_breakdown(product_id, cutoff)
    except StockError as e:
        raise click.ClickException(str(e))

    click.echo(f"{b.product_name} (id={b.product_id})")
    for label, value in (
        ("received from purchases", b.received_from_purchases),
        ("sold", b.sold),
        ("employee sold", b.employee_sold),
        ("deposits", b.deposits),
        ("refills", b.refills),
        ("cylinder returns", b.cylinder_returns),
        ("assigned issued", b.assigned_issued),
        ("assigned returned", b.assigned_returned),
        ("held by employees", b.assigned_outstanding),
        ("adjustments", b.adjustments),
    ):
        click.echo(f"  {label:<24} {value}")
    click.echo(f"  {'calculated stock':<24} {b.calculated_stock}")
    if b.cached_stock is not None:
        click.echo(f"  {'cached stock':<24} {b.cached_stock}")
    for note in b.diagnostics:
        click.echo(f"  ! {note}")


@stock_group.command('drift')
@with_appcontext
def drift():
    """List products whose cached counter disagrees with the ledger."""
    drifted = reconciliation_service.find_drift()
    if not drifted:
        click.echo("No drift.")
        return
    for r in drifted:
        click.echo(f"  product {r.product_id} ({r.product_name}): cached {r.previous}, ledger {r.recalculated}")


def register_commands(app):
    app.cli.add_command(system_group)
    app.cli.add_command(stock_group)
