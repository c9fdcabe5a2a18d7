# Overview: Flask CLI command groups for bootstrap, inventory inspection and the offline queue.

# backend/batchpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create remote tables that do not exist yet (use `flask db upgrade` for migrations).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all remote tables (deletes all data).
#
# Inventory:
# - python -m flask inventory batches 3
#   Show a product's batches in FIFO order with ledger vs cached stock.
# - python -m flask inventory restock 3 --qty 10 --cost 500 --price 1500
#   Add a purchase batch and raise product stock.
# - python -m flask inventory reconcile [--fix]
#   Compare Product.stock with the ledger sum for every product.
#
# Offline queue:
# - python -m flask queue list [--status failed]
# - python -m flask queue sync [--id <queued id>]
# - python -m flask queue reset-stale [--threshold-seconds 120]
# - python -m flask queue delete <queued id>

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import PosError
from .extensions import db
from .models import Batch, Product, QueueStatus
from .services import ledger_service, sync_service
from .services.queue_service import get_sale_queue


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing remote tables."""
    db.create_all()
    click.echo("PASS Remote schema ready.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all remote tables and recreate schema.

    The local offline queue is not touched.
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


@click.group('inventory')
def inventory_group():
    """Batch ledger inspection and maintenance."""


@inventory_group.command('batches')
@click.argument('product_id', type=int)
@with_appcontext
def list_batches_cli(product_id):
    """Show a product's batches in FIFO order."""
    product = db.session.get(Product, product_id)
    if product is None:
        click.echo(f"FAIL Product {product_id} not found")
        return

    batches = ledger_service.list_batches(product_id)
    ledger_stock = ledger_service.get_ledger_stock(product_id)

    click.echo("\n" + "="*80)
    click.echo(f"{product.name} (id={product.id})  cached stock={product.stock}  ledger stock={ledger_stock}")
    click.echo("="*80)
    click.echo(f"{'ID':<6} {'Created':<22} {'Cost':>10} {'Price':>10} {'Qty':>6} {'Left':>6}")
    for b in batches:
        click.echo(
            f"{b.id:<6} {str(b.created_at):<22} {b.bought_price_cents:>10} "
            f"{b.selling_price_cents:>10} {b.quantity:>6} {b.remaining_quantity:>6}"
        )
    click.echo("="*80 + "\n")


@inventory_group.command('restock')
@click.argument('product_id', type=int)
@click.option('--qty', 'quantity', type=int, required=True, help='Units received')
@click.option('--cost', 'bought_price_cents', type=int, required=True, help='Unit cost in cents')
@click.option('--price', 'selling_price_cents', type=int, required=True, help='Unit selling price in cents')
@with_appcontext
def restock_cli(product_id, quantity, bought_price_cents, selling_price_cents):
    """Add a purchase batch."""
    try:
        batch = ledger_service.add_stock_batch(product_id, bought_price_cents, quantity, selling_price_cents)
    except PosError as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(f"PASS Batch {batch.id} created with {batch.quantity} units")


@inventory_group.command('reconcile')
@click.option('--fix', is_flag=True, help='Rewrite drifted Product.stock from the ledger')
@with_appcontext
def reconcile_cli(fix):
    """Compare cached product stock with the batch ledger."""
    drifted = 0
    for product in db.session.query(Product).order_by(Product.id).all():
        ledger_stock = int(
            db.session.query(db.func.coalesce(db.func.sum(Batch.remaining_quantity), 0))
            .filter(Batch.product_id == product.id)
            .scalar()
            or 0
        )
        if ledger_stock == product.stock:
            continue
        drifted += 1
        click.echo(f"DRIFT product {product.id}: cached={product.stock} ledger={ledger_stock}")
        if fix:
            ledger_service.reconcile_product_stock(product.id)

    if not drifted:
        click.echo("PASS Product stock matches the ledger.")
    elif fix:
        click.echo(f"PASS Repaired {drifted} product(s).")


@click.group('queue')
def queue_group():
    """Offline sales queue commands."""


@queue_group.command('list')
@click.option('--status', type=click.Choice([s.value for s in QueueStatus]), default=None)
@with_appcontext
def list_queue_cli(status):
    """List queued sales."""
    entries = get_sale_queue().list(status=status)
    if not entries:
        click.echo("No queued sales.")
        return

    click.echo(f"{'ID':<38} {'Created':<22} {'Total':>10} {'Items':>6} {'Status':<8} Error")
    for entry in entries:
        s = entry.sale
        click.echo(
            f"{s.id:<38} {str(s.created_at)[:19]:<22} {s.total_cents:>10} "
            f"{s.items_count:>6} {s.status:<8} {s.error or ''}"
        )


@queue_group.command('sync')
@click.option('--id', 'queued_id', default=None, help='Only sync this entry')
@with_appcontext
def sync_queue_cli(queued_id):
    """Run one synchronization cycle."""
    report = sync_service.sync_all(get_sale_queue(), target_id=queued_id)
    click.echo(f"Synced: {len(report.synced)}  Failed: {len(report.failed)}  Skipped: {len(report.skipped)}")
    for err in report.failed:
        click.echo(f"FAIL {err.queued_id}: {err}")
    if report.aborted:
        click.echo("WARN Remote store unreachable; cycle stopped early.")


@queue_group.command('reset-stale')
@click.option('--threshold-seconds', type=float, default=None)
@with_appcontext
def reset_stale_cli(threshold_seconds):
    """Return entries stuck in 'syncing' to 'queued'."""
    if threshold_seconds is None:
        threshold_seconds = current_app.config["SYNC_STALE_THRESHOLD_SECONDS"]
    reset = get_sale_queue().reset_stale(threshold_seconds)
    click.echo(f"Reset {reset} stale entr{'y' if reset == 1 else 'ies'}.")


@queue_group.command('delete')
@click.argument('queued_id')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def delete_queue_cli(queued_id, yes):
    """Drop a queued sale without syncing it."""
    if not yes:
        click.confirm(f"WARN Queued sale {queued_id} will be lost. Continue?", abort=True)
    if get_sale_queue().delete(queued_id):
        click.echo(f"PASS Deleted {queued_id}")
    else:
        click.echo(f"Nothing to delete for {queued_id}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(queue_group)
