# Overview: Flask CLI command groups for bootstrap, stock maintenance, and sale/audit administration.

# backend/sale_engine/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Use: python -m flask --app sale_engine <group> <command> [options]
# - ENGINE_ENVIRONMENT=test selects TEST_DATABASE_URL instead of DATABASE_URL.
#
# System bootstrap/repair:
# - python -m flask --app sale_engine system init-db
#   Create any missing tables (prefer `flask db upgrade` for managed databases).
# - python -m flask --app sale_engine system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Stock:
# - python -m flask --app sale_engine stock move 3 entry 10 --reason "Supplier delivery" --actor-id 1
#   Register a stock entry or exit for product 3.
# - python -m flask --app sale_engine stock low
#   List products at or below their minimum stock.
#
# Sales:
# - python -m flask --app sale_engine sales delete 42 --actor-id 1
#   Delete sale 42 and return its quantity to stock.
#
# Audit:
# - python -m flask --app sale_engine audit purge --confirmation deletare --actor-id 1
#   Delete every audit entry (requires the configured confirmation phrase).

import click
from flask.cli import with_appcontext

from .extensions import db
from .models.inventory import MOVEMENT_TYPES
from .services import audit_service, sales_service, stock_service
from .services.exceptions import (
    BadConfirmationError,
    InsufficientStockError,
    NotFoundError,
    PartialFailureError,
    SaleEngineError,
    ValidationError,
)


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Tables created.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


@click.group('stock')
def stock_group():
    """Stock ledger commands."""


@stock_group.command('move')
@click.argument('product_id', type=int)
@click.argument('movement_type', type=click.Choice(MOVEMENT_TYPES))
@click.argument('quantity', type=int)
@click.option('--reason', default=None, help='Free-text reason recorded on the movement')
@click.option('--actor-id', type=int, default=None, help='Administrator performing the movement')
@with_appcontext
def move_stock_cli(product_id, movement_type, quantity, reason, actor_id):
    """Register a stock entry or exit."""
    try:
        new_stock = stock_service.register_stock_movement(
            product_id, movement_type, quantity, reason=reason, actor_id=actor_id
        )
    except InsufficientStockError as e:
        raise click.ClickException(f"{e} (available: {e.available})")
    except (ValidationError, SaleEngineError) as e:
        raise click.ClickException(str(e))

    click.echo(f"PASS Product {product_id} stock is now {new_stock}")


@stock_group.command('low')
@with_appcontext
def low_stock_cli():
    """List products at or below their minimum stock."""
    products = stock_service.list_low_stock_products()

    if not products:
        click.echo("No products are low on stock.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<6} {'Code':<16} {'Name':<36} {'Stock':<8} {'Minimum'}")
    click.echo("="*80)

    for p in products:
        click.echo(f"{p.id:<6} {p.product_code:<16} {p.name[:36]:<36} {p.stock_quantity:<8} {p.minimum_stock}")

    click.echo("="*80 + "\n")


@click.group('sales')
def sales_group():
    """Sale administration commands."""


@sales_group.command('delete')
@click.argument('sale_id', type=int)
@click.option('--actor-id', type=int, default=None, help='Administrator performing the deletion')
@with_appcontext
def delete_sale_cli(sale_id, actor_id):
    """Delete a sale and restore its stock."""
    try:
        outcome = sales_service.delete_sale(sale_id, actor_id=actor_id)
    except NotFoundError as e:
        raise click.ClickException(str(e))
    except PartialFailureError as e:
        level = "CRITICAL" if e.critical else "ERROR"
        raise click.ClickException(f"{level} {e} (failed step: {e.failed_step})")

    click.echo(f"PASS Deleted sale {sale_id}; stock now {outcome.stock_after}")
    for warning in outcome.warnings:
        click.echo(f"WARN {warning}")


@click.group('audit')
def audit_group():
    """Audit log commands."""


@audit_group.command('purge')
@click.option('--confirmation', prompt='Type the confirmation phrase', help='Configured purge confirmation phrase')
@click.option('--actor-id', type=int, default=None, help='Administrator performing the purge')
@with_appcontext
def purge_audit_cli(confirmation, actor_id):
    """Delete every audit entry."""
    try:
        deleted = audit_service.purge_all(confirmation, user_id=actor_id)
    except BadConfirmationError as e:
        raise click.ClickException(str(e))

    click.echo(f"PASS Deleted {deleted} audit entries.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(sales_group)
    app.cli.add_command(audit_group)
