# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/konta/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--admin-email admin@konta.local]
#   Idempotent bootstrap: creates tables and a default administrator.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list [--role seller]
#   List all users with role and active status.
# - python -m flask users create --email ana@konta.local --full-name "Ana Ruiz" --role seller
#   Create a user (prompts if options are omitted).
#
# Catalog inspection:
# - python -m flask products list [--search cafe]
#   List active products with price and stock.
# - python -m flask products low-stock --threshold 5
#   List active products at or below the threshold.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .models.users import ROLE_ADMIN, ROLES
from .services import products_service, user_service
from .validation import ConflictError, ValidationError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-email', default='admin@konta.local', help='Email of the default administrator')
@click.option('--admin-name', default='Administrador', help='Full name of the default administrator')
@with_appcontext
def init_system(admin_email, admin_name):
    """
    Initialize KONTA: create tables and a default administrator.

    Safe to run more than once.
    """
    click.echo("START Initializing KONTA...")
    db.create_all()
    click.echo("PASS Tables ready")

    admin = db.session.query(User).filter_by(role=ROLE_ADMIN).first()
    if admin:
        click.echo(f"PASS Using existing administrator: {admin.email} (ID: {admin.id})")
        return

    user = user_service.create_user(admin_email, admin_name, ROLE_ADMIN)
    click.echo(f"PASS Created administrator: {user.email} (ID: {user.id})")
    click.echo("Send it as the X-User-Id header when calling the API.")


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


@users_group.command('list')
@click.option('--role', type=click.Choice(ROLES), default=None, help='Filter by role')
@with_appcontext
def list_users(role):
    """List users with role and active status."""
    users = user_service.list_users(role=role)
    if not users:
        click.echo("No users found.")
        return

    click.echo(f"{'ID':<5} {'Email':<32} {'Name':<28} {'Role':<8} {'Active':<6}")
    click.echo("-" * 82)
    for u in users:
        click.echo(f"{u.id:<5} {u.email:<32} {u.full_name:<28} {u.role:<8} {'yes' if u.is_active else 'no':<6}")


@users_group.command('create')
@click.option('--email', prompt=True, help='Login email')
@click.option('--full-name', prompt=True, help='Full name')
@click.option('--role', type=click.Choice(ROLES), default='seller', show_default=True)
@with_appcontext
def create_user_cmd(email, full_name, role):
    """Create an administrator or seller."""
    try:
        user = user_service.create_user(email, full_name, role)
    except (ValidationError, ConflictError) as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created user {user.email} (ID: {user.id}, role: {user.role})")


@click.group('products')
def products_group():
    """Catalog inspection commands."""


def _echo_products(products):
    click.echo(f"{'ID':<5} {'SKU':<16} {'Name':<32} {'Price':>12} {'Stock':>6}")
    click.echo("-" * 75)
    for p in products:
        click.echo(f"{p['id']:<5} {p['sku']:<16} {p['name'][:32]:<32} {p['price_cents'] / 100:>12,.2f} {p['stock']:>6}")


@products_group.command('list')
@click.option('--search', default=None, help='Filter by name or SKU')
@with_appcontext
def list_products(search):
    result = products_service.list_products(search=search)
    if not result["items"]:
        click.echo("No products found.")
        return
    _echo_products(result["items"])


@products_group.command('low-stock')
@click.option('--threshold', default=5, show_default=True, type=int)
@with_appcontext
def low_stock(threshold):
    """List active products at or below the stock threshold."""
    products = products_service.list_low_stock(threshold)
    if not products:
        click.echo(f"No products at or below {threshold} units.")
        return
    _echo_products([p.to_dict() for p in products])


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(products_group)
