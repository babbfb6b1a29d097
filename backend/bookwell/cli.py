# Overview: Flask CLI command groups for bootstrap and maintenance.

# backend/bookwell/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Catalog:
# - python -m flask catalog seed-demo
#   Idempotent demo locations, staff, services and products.
# - python -m flask catalog list
#   Show locations and their active staff.
#
# Maintenance:
# - python -m flask maintenance cleanup-changes --hours-to-keep 24
#   Delete change-log records older than the retention window.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import Location
from .services import catalog_service
from .services import change_tracker
from .services.availability_service import active_staff_for_location


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


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

    click.echo("PASS Database reset complete. Run 'python -m flask catalog seed-demo' for demo data.")


@click.group('catalog')
def catalog_group():
    """Catalog inspection and demo data."""


@catalog_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """Create the demo catalog (safe to run repeatedly)."""
    created = catalog_service.seed_demo_catalog()
    for kind, count in created.items():
        click.echo(f"PASS {kind}: {count} created")


@catalog_group.command('list')
@with_appcontext
def list_catalog():
    """List locations with their active staff."""
    locations = db.session.query(Location).order_by(Location.id).all()

    if not locations:
        click.echo("No locations found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<10} {'Active':<8} {'Staff'}")
    click.echo("="*80)

    for loc in locations:
        staff = active_staff_for_location(loc.id)
        active_str = "Yes" if loc.is_active else "No"
        names = ", ".join(s.name for s in staff) or "-"
        click.echo(f"{loc.id:<5} {loc.name:<30} {loc.code or '-':<10} {active_str:<8} {names}")

    click.echo("="*80 + "\n")


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('cleanup-changes')
@click.option('--hours-to-keep', type=int, default=None, help='Defaults to CHANGE_RETENTION_HOURS')
@with_appcontext
def cleanup_changes_cli(hours_to_keep):
    """
    Cleanup old change-log records.

    Clients that have not polled within the window must resync fully.
    """
    if hours_to_keep is None:
        hours_to_keep = current_app.config["CHANGE_RETENTION_HOURS"]
    deleted = change_tracker.cleanup_older_than(hours_to_keep)
    click.echo(f"Deleted {deleted} change records older than {hours_to_keep} hours.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(maintenance_group)
