# Overview: Flask CLI command groups for bootstrap, maintenance and bulk import.

# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables, seeds config/main and the walk-in client
#   in the remote store (add --demo to seed the local store instead).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data, both stores).
#
# Maintenance:
# - python -m flask maintenance clear-sales --yes [--demo]
# - python -m flask maintenance clear-expenses --yes [--demo]
#   Delete the whole sales / expenses history in bounded batches.
#
# Catalog:
# - python -m flask products import inventario.xlsx [--demo]
#   Import products from a CSV/XLSX/JSON file with auto-detected column mapping.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models.records import CATEGORIES, PRODUCTS
from .services import import_service, maintenance_service
from .services.import_service import ImportError
from .services.notification_service import Notifier
from .services.session_service import OWNER, Identity, SessionContext
from .services.settings_service import ensure_defaults, load_config
from .stores import StoreError, get_stores


def _cli_context(demo: bool) -> SessionContext:
    """Owner context for command-line work against one of the stores."""
    store = get_stores().for_mode(demo)
    notifier = Notifier(sinks=[lambda n: click.echo(f"[{n.severity}] {n.message}")])
    return SessionContext(
        identity=Identity(uid="cli", name="CLI", role=OWNER, is_demo=demo),
        store=store,
        config=load_config(store),
        notifier=notifier,
    )


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--demo', is_flag=True, help='Seed the local demo store')
@with_appcontext
def init_system(demo):
    """Create tables and seed the business config and walk-in client."""
    click.echo("START Initializing Bodega...")
    db.create_all()
    store = get_stores().for_mode(demo)
    if ensure_defaults(store):
        click.echo(f"PASS Seeded defaults in the {store.kind} store")
    else:
        click.echo(f"PASS {store.kind} store already initialized")


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
    get_stores().local.forget()

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('clear-sales')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@click.option('--demo', is_flag=True, help='Use the local demo store')
@with_appcontext
def clear_sales_cli(yes, demo):
    """Delete the whole sales history."""
    if not yes:
        click.confirm("WARN This deletes every sale. Are you sure?", abort=True)
    deleted = maintenance_service.clear_sales_history(_cli_context(demo))
    click.echo(f"Deleted {deleted} sales.")


@maintenance_group.command('clear-expenses')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@click.option('--demo', is_flag=True, help='Use the local demo store')
@with_appcontext
def clear_expenses_cli(yes, demo):
    """Delete the whole expenses history."""
    if not yes:
        click.confirm("WARN This deletes every expense. Are you sure?", abort=True)
    deleted = maintenance_service.clear_expenses_history(_cli_context(demo))
    click.echo(f"Deleted {deleted} expenses.")


@click.group('products')
def products_group():
    """Catalog commands."""


@products_group.command('import')
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@click.option('--demo', is_flag=True, help='Import into the local demo store')
@with_appcontext
def import_products_cli(path, demo):
    """Import products from a CSV, JSON or Excel file."""
    ctx = _cli_context(demo)
    try:
        with open(path, "rb") as stream:
            headers, rows = import_service.read_tabular(stream, path)
        mapping = import_service.auto_map_headers(headers)
        click.echo(f"Mapping: {mapping}")
        result = import_service.import_products(ctx, headers, rows, mapping)
    except ImportError as e:
        raise click.ClickException(str(e))
    except StoreError as e:
        raise click.ClickException(f"Store error: {e}")

    click.echo(
        f"Added {result.added}, updated {result.updated}, "
        f"errors {result.errors}, skipped {result.skipped}"
    )
    click.echo(
        f"Catalog now holds {len(ctx.store.list(PRODUCTS))} products "
        f"in {len(ctx.store.list(CATEGORIES))} categories."
    )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(maintenance_group)
    app.cli.add_command(products_group)
