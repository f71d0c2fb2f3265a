# Overview: Flask CLI command groups for bootstrap and tenant administration.

# backend/storeledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to "storeledger:create_app".
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables that do not exist yet (dev only; use `flask db upgrade` otherwise).
#
# Tenant onboarding:
# - python -m flask tenants create --name "Corner Shop" --owner-name "Ana" --owner-email ana@shop.test
#   Create a tenant and its OWNER user (prompts for the password).
# - python -m flask tenants list
#   List all tenants.
# - python -m flask tenants set-max-sessions --tenant-id 1 --max 2
#   Change how many cash sessions may be open at once.
#
# Users:
# - python -m flask users create --tenant-id 1 --name "Bia" --email bia@shop.test --role ATTENDANT
# - python -m flask users set-pin --tenant-id 1 --user-id 2 --pin 4321
#   Set (or with --clear, remove) a supervisor PIN.
#
# Stock:
# - python -m flask stock create-location --tenant-id 1 --name "Shop floor" --sale-source

import click
from flask.cli import with_appcontext

from .errors import DomainError
from .extensions import db
from .models.auth import ROLES
from .services import inventory_service, tenant_service
from .services.tenant_context import tenant_scope


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create tables directly from model metadata (DEV/TEST only)."""
    db.create_all()
    click.echo("PASS Tables created")


@click.group('tenants')
def tenants_group():
    """Tenant onboarding and settings."""


@tenants_group.command('create')
@click.option('--name', required=True, help='Tenant (store) name')
@click.option('--email', default=None, help='Tenant contact email (unique)')
@click.option('--tax-id', default=None, help='Tax registration id (unique)')
@click.option('--owner-name', required=True, help='OWNER user display name')
@click.option('--owner-email', required=True, help='OWNER user email')
@click.option('--owner-password', prompt=True, hide_input=True, confirmation_prompt=True, help='OWNER password')
@click.option('--owner-pin', default=None, help='Optional supervisor PIN (4-8 digits)')
@click.option('--max-open-sessions', default=1, type=int, help='Concurrent open cash sessions allowed')
@with_appcontext
def create_tenant(name, email, tax_id, owner_name, owner_email, owner_password, owner_pin, max_open_sessions):
    """Create a tenant together with its OWNER user."""
    try:
        tenant, owner = tenant_service.create_tenant_with_owner(
            name=name,
            email=email,
            tax_id=tax_id,
            owner_name=owner_name,
            owner_email=owner_email,
            owner_password=owner_password,
            owner_pin=owner_pin,
            max_open_cash_sessions=max_open_sessions,
        )
    except DomainError as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)
    click.echo(f"PASS Created tenant: {tenant.name} (ID: {tenant.id})")
    click.echo(f"     Owner: {owner.email} (user ID: {owner.id})")


@tenants_group.command('list')
@with_appcontext
def list_tenants():
    """List all tenants."""
    tenants = tenant_service.list_tenants()
    if not tenants:
        click.echo("No tenants found.")
        return

    click.echo("\n" + "=" * 72)
    click.echo(f"{'ID':<5} {'Name':<30} {'Tax ID':<18} {'Active':<8} {'Max open'}")
    click.echo("=" * 72)
    for t in tenants:
        active_str = "Yes" if t.is_active else "No"
        click.echo(f"{t.id:<5} {t.name:<30} {t.tax_id or '-':<18} {active_str:<8} {t.max_open_cash_sessions}")
    click.echo("=" * 72 + "\n")


@tenants_group.command('set-max-sessions')
@click.option('--tenant-id', type=int, required=True)
@click.option('--max', 'max_open', type=int, required=True)
@with_appcontext
def set_max_sessions(tenant_id, max_open):
    """Change the open cash session cap for a tenant."""
    try:
        tenant = tenant_service.set_max_open_sessions(tenant_id, max_open)
    except DomainError as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)
    click.echo(f"PASS {tenant.name}: max_open_cash_sessions = {tenant.max_open_cash_sessions}")


@click.group('users')
def users_group():
    """Operator accounts inside a tenant."""


@users_group.command('create')
@click.option('--tenant-id', type=int, required=True)
@click.option('--name', prompt=True)
@click.option('--email', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--role', type=click.Choice(ROLES), prompt=True)
@click.option('--pin', default=None, help='Optional supervisor PIN (4-8 digits)')
@with_appcontext
def create_user(tenant_id, name, email, password, role, pin):
    """Create an operator in a tenant."""
    try:
        with tenant_scope(tenant_id):
            user = tenant_service.create_user(name=name, email=email, password=password, role=role, pin=pin)
    except DomainError as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)
    click.echo(f"PASS Created user: {user.email} (ID: {user.id}) with role '{user.role}'")


@users_group.command('set-pin')
@click.option('--tenant-id', type=int, required=True)
@click.option('--user-id', type=int, required=True)
@click.option('--pin', default=None)
@click.option('--clear', is_flag=True, help='Remove the PIN instead of setting one')
@with_appcontext
def set_pin(tenant_id, user_id, pin, clear):
    """Set or clear a supervisor PIN."""
    if not clear and not pin:
        click.echo("FAIL Provide --pin or --clear")
        raise SystemExit(1)
    try:
        with tenant_scope(tenant_id):
            user = tenant_service.set_supervisor_pin(user_id, None if clear else pin)
    except DomainError as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)
    click.echo(f"PASS PIN {'cleared' if clear else 'updated'} for {user.email}")


@click.group('stock')
def stock_group():
    """Stock location setup."""


@stock_group.command('create-location')
@click.option('--tenant-id', type=int, required=True)
@click.option('--name', required=True)
@click.option('--sale-source', is_flag=True, help='Preferred location for sales')
@with_appcontext
def create_location(tenant_id, name, sale_source):
    """Create a stock location in a tenant."""
    try:
        with tenant_scope(tenant_id):
            location = inventory_service.create_location(name, is_sale_source=sale_source)
    except DomainError as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)
    click.echo(f"PASS Created location: {location.name} (ID: {location.id})")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(tenants_group)
    app.cli.add_command(users_group)
    app.cli.add_command(stock_group)
