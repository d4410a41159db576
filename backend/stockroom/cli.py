# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/stockroom/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--admin-password "Password123"]
#   Idempotent bootstrap: creates tables, default zones (R/M/L) and an admin user.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list
# - python -m flask users create --username staff1 --email staff1@stockroom.local --name "Staff One" --password "Password123" --role staff
#
# Locations:
# - python -m flask locations list
# - python -m flask locations add-shelf --zone R --chamber 1 --shelf 3
#   Creates chamber/shelf as needed; prints the location code (R-C01-S03).
#
# Stock:
# - python -m flask stock reconcile
#   Check stock_levels against purchase/sale records. Exits 1 on violations.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User, ROLES, ROLE_ADMIN
from .errors import LedgerError
from .services.auth_service import create_user, list_users
from .services import location_service
from .services import stock_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-username', default='admin', show_default=True)
@click.option('--admin-email', default='admin@stockroom.local', show_default=True)
@click.option('--admin-password', default='Password123', show_default=True)
@with_appcontext
def init_system(admin_username, admin_email, admin_password):
    """
    Initialize the stockroom: schema, default zones and an admin user.

    SECURITY: Change the admin password immediately in production!
    """
    click.echo("START Initializing stockroom...")

    db.create_all()
    click.echo("PASS Tables ready")

    zones = location_service.seed_default_zones()
    click.echo(f"PASS Zones: {', '.join(f'{z.code} ({z.name})' for z in zones)}")

    existing = db.session.query(User).filter_by(username=admin_username).first()
    if existing:
        click.echo(f"PASS Using existing admin user: {existing.username}")
    else:
        try:
            create_user(
                username=admin_username,
                email=admin_email,
                password=admin_password,
                name="Administrator",
                role=ROLE_ADMIN,
            )
        except LedgerError as e:
            click.echo(f"FAIL Could not create admin user: {e}")
            raise click.exceptions.Exit(1)
        click.echo(f"PASS Created admin user: {admin_username} ({admin_email})")

    click.echo("DONE Stockroom initialized.")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--name', default=None, help='Display name (defaults to username)')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(ROLES)), default='staff', show_default=True, help='Role')
@with_appcontext
def create_user_cli(username, email, name, password, role):
    """
    Create a new user.

    Password must be 8+ chars with uppercase, lowercase and a digit.
    """
    try:
        user = create_user(username=username, email=email, password=password, name=name, role=role)
    except LedgerError as e:
        click.echo(f"FAIL Failed to create user: {e}")
        raise click.exceptions.Exit(1)

    click.echo(f"PASS Created user: {user.username} ({user.email}) with role '{user.role}'")


@users_group.command('list')
@with_appcontext
def list_users_cli():
    """List all users with their roles."""
    users = list_users()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<35} {'Role':<8} {'Active'}")
    click.echo("="*90)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.username:<20} {user.email:<35} {user.role:<8} {active_str}")

    click.echo("="*90 + "\n")


@click.group('locations')
def locations_group():
    """Shelf location setup."""


@locations_group.command('add-shelf')
@click.option('--zone', required=True, help='Zone code, e.g. R')
@click.option('--chamber', type=int, required=True, help='Chamber number')
@click.option('--shelf', type=int, required=True, help='Shelf number')
@with_appcontext
def add_shelf_cli(zone, chamber, shelf):
    """Create the chamber and shelf if missing; print the location code."""
    try:
        location = location_service.ensure_shelf(zone, chamber, shelf)
    except LedgerError as e:
        click.echo(f"FAIL {e}")
        raise click.exceptions.Exit(1)

    click.echo(f"PASS Shelf {location.code} (ID: {location.shelf_id})")


@locations_group.command('list')
@click.option('--all', 'include_inactive', is_flag=True, help='Include inactive shelves')
@with_appcontext
def list_locations_cli(include_inactive):
    locations = location_service.list_locations(include_inactive=include_inactive)

    if not locations:
        click.echo("No shelves found. Use 'flask locations add-shelf' to create one.")
        return

    click.echo(f"{'ID':<5} {'Code':<12} {'Label'}")
    click.echo("-"*60)
    for loc in locations:
        click.echo(f"{loc['id']:<5} {loc['code']:<12} {loc['label']}")


@click.group('stock')
def stock_group():
    """Stock ledger maintenance."""


@stock_group.command('reconcile')
@with_appcontext
def reconcile_cli():
    """
    Check invariants against purchase/sale records.

    Read-only. Exits 1 when any violation is found.
    """
    report = stock_service.reconcile_stock_levels()

    if report["ok"]:
        click.echo(f"PASS {report['checked']} product(s) reconciled, no violations")
        return

    click.echo(f"FAIL {len(report['violations'])} violation(s) across {report['checked']} product(s):")
    for v in report["violations"]:
        extra = {k: val for k, val in v.items() if k not in ("product_id", "rule")}
        click.echo(f"  product {v['product_id']:<6} {v['rule']:<24} {extra}")
    raise click.exceptions.Exit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(locations_group)
    app.cli.add_command(stock_group)
