# Overview: Flask CLI command groups for bootstrap, stock inspection, and deposit maintenance.

# backend/deposit_engine/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (idempotent). Prefer `flask db upgrade` once migrations are in use.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Stock:
# - python -m flask stock receive --product-id 1 --quantity 5 --unit-cost-cents 1200
#   Record a purchase receipt.
# - python -m flask stock show --product-id 1
#   Print on-hand, reserved, and available units.
#
# Deposits:
# - python -m flask deposits list [--status active]
#   List deposit orders with paid and balance due.
# - python -m flask deposits expire-overdue [--grace-days 30] [--as-of 2026-10-01]
#   Expire active orders whose expected date is past the grace window.
# - python -m flask deposits reconcile
#   Report ledger/order inconsistencies; exits 1 when anything is found.

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import DepositEngineError
from .extensions import db
from .services import deposit_service, reconciliation_service, stock_ledger_service
from .time_utils import parse_iso_date


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA, including the stock ledger and payments!
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


@stock_group.command('receive')
@click.option('--product-id', type=int, required=True)
@click.option('--quantity', type=int, required=True)
@click.option('--unit-cost-cents', type=int, default=None)
@click.option('--note', default=None)
@with_appcontext
def receive_stock(product_id, quantity, unit_cost_cents, note):
    """Record a purchase receipt for a product."""
    try:
        movement = stock_ledger_service.receive_stock(
            product_id=product_id,
            quantity=quantity,
            unit_cost_cents=unit_cost_cents,
            note=note,
        )
    except DepositEngineError as e:
        raise click.ClickException(e.message)

    summary = stock_ledger_service.get_stock_summary(product_id)
    click.echo(
        f"PASS Received {quantity} x {summary['sku']} (movement {movement.id}); "
        f"on hand {summary['on_hand']}, available {summary['available']}"
    )


@stock_group.command('show')
@click.option('--product-id', type=int, required=True)
@with_appcontext
def show_stock(product_id):
    """Print the derived stock figures for a product."""
    try:
        summary = stock_ledger_service.get_stock_summary(product_id)
    except DepositEngineError as e:
        raise click.ClickException(e.message)

    click.echo(f"{summary['sku']}  {summary['name']}")
    click.echo(f"  on hand:   {summary['on_hand']}")
    click.echo(f"  reserved:  {summary['reserved']}")
    click.echo(f"  available: {summary['available']}")


@click.group('deposits')
def deposits_group():
    """Deposit order maintenance commands."""


@deposits_group.command('list')
@click.option('--status', default=None, help='active|completed|cancelled|voided|expired')
@with_appcontext
def list_deposits(status):
    """List deposit orders, newest first."""
    try:
        orders = deposit_service.list_orders(status=status)
    except DepositEngineError as e:
        raise click.ClickException(e.message)

    if not orders:
        click.echo("No deposit orders found.")
        return

    for order in orders:
        summary = deposit_service.order_summary(order)
        click.echo(
            f"#{order.id:<6} {order.status:<10} {order.customer_name:<30} "
            f"total={summary['total_amount_cents']} paid={summary['amount_paid_cents']} "
            f"due={summary['balance_due_cents']}"
        )


@deposits_group.command('expire-overdue')
@click.option('--grace-days', type=int, default=None, help='Defaults to DEPOSIT_EXPIRY_GRACE_DAYS')
@click.option('--as-of', default=None, help='Reference date (YYYY-MM-DD), defaults to today (UTC)')
@with_appcontext
def expire_overdue(grace_days, as_of):
    """Expire active orders whose expected date is past the grace window."""
    try:
        as_of_date = parse_iso_date(as_of)
    except ValueError:
        raise click.BadParameter("must be YYYY-MM-DD", param_hint="--as-of")

    expired = deposit_service.expire_overdue_orders(as_of=as_of_date, grace_days=grace_days)
    if not expired:
        click.echo("No overdue deposit orders.")
        return
    click.echo(f"PASS Expired {len(expired)} order(s): {', '.join(str(i) for i in expired)}")


@deposits_group.command('reconcile')
@with_appcontext
def reconcile():
    """Report reservation and stock inconsistencies."""
    findings = (
        reconciliation_service.find_reservation_discrepancies()
        + reconciliation_service.find_negative_availability()
    )
    if not findings:
        click.echo("PASS No discrepancies found.")
        return

    for finding in findings:
        current_app.logger.warning("Reconciliation finding: %s", finding)
        detail = " ".join(f"{k}={v}" for k, v in finding.items() if k != "kind")
        click.echo(f"FAIL {finding['kind']}: {detail}")
    click.echo(f"{len(findings)} discrepancy(ies) found.")
    click.get_current_context().exit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(deposits_group)
