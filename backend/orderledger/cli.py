# Overview: Flask CLI command groups for bootstrap and inspection.

# backend/orderledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables (development; production uses `flask db upgrade`).
# - python -m flask system reset-db --yes
#   Drop and recreate all tables.
#
# Users (local mirror of the identity provider):
# - python -m flask users create --username alice --full-name "Alice" --access sales=read-write
#   Create a user and grant module access (repeat --access).
# - python -m flask users list
#
# Inventory inspection:
# - python -m flask inventory balance 3 --as-of 2026-01-31
#   Ledger balance of a stock item.
#
# Orders inspection:
# - python -m flask orders audit 12
#   Audit trail of an order, newest first.
# - python -m flask orders permanently-locked
#   Orders whose unlock window has passed.

import click
from flask.cli import with_appcontext

from .errors import OrderLedgerError
from .extensions import db
from .models import User, UserModuleAccess
from .services import audit_service, inventory_service, lock_service, user_service
from .time_utils import parse_iso_date, to_utc_z


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database schema created.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA, including the append-only ledgers.
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


@click.group('users')
def users_group():
    """User and module access commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--full-name', default=None, help='Display name')
@click.option('--email', default=None, help='Email address')
@click.option('--access', 'access', multiple=True, help='module=level, e.g. sales=read-write (repeatable)')
@with_appcontext
def create_user_cli(username, full_name, email, access):
    """Create a user and optionally grant module access."""
    grants = []
    for entry in access:
        module, sep, level = entry.partition("=")
        if not sep:
            raise click.BadParameter(f"expected module=level, got {entry!r}", param_hint="--access")
        grants.append((module.strip(), level.strip()))

    try:
        user = user_service.create_user(username=username, full_name=full_name, email=email)
        for module, level in grants:
            user_service.grant_module_access(user_id=user.id, module_name=module, access_level=level)
    except OrderLedgerError as e:
        click.echo(f"FAIL {e.message}", err=True)
        raise SystemExit(1)

    click.echo(f"PASS Created user {user.username} (ID: {user.id})")
    for module, level in grants:
        click.echo(f"     {module}: {level}")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their module access."""
    users = db.session.query(User).order_by(User.id.asc()).all()
    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 90)
    click.echo(f"{'ID':<5} {'Username':<20} {'Name':<25} {'Active':<8} {'Access'}")
    click.echo("=" * 90)
    for user in users:
        grants = db.session.query(UserModuleAccess).filter_by(user_id=user.id).all()
        access_str = ", ".join(f"{g.module_name}={g.access_level.value}" for g in grants) or "none"
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.username:<20} {user.display_name:<25} {active_str:<8} {access_str}")
    click.echo("=" * 90 + "\n")


@click.group('inventory')
def inventory_group():
    """Inventory inspection commands."""


@inventory_group.command('balance')
@click.argument('stock_item_id', type=int)
@click.option('--as-of', default=None, help='Business date YYYY-MM-DD (default today)')
@with_appcontext
def inventory_balance(stock_item_id, as_of):
    """Print the ledger balance of a stock item."""
    try:
        as_of_date = parse_iso_date(as_of)
    except ValueError:
        raise click.BadParameter("expected YYYY-MM-DD", param_hint="--as-of")

    try:
        item = inventory_service.get_stock_item(stock_item_id)
        balance = inventory_service.get_stock_balance(stock_item_id, as_of=as_of_date)
    except OrderLedgerError as e:
        click.echo(f"FAIL {e.message}", err=True)
        raise SystemExit(1)

    label = as_of_date.isoformat() if as_of_date else "today"
    click.echo(f"{item.name} (lot {item.lot_id}) as of {label}: {balance} {item.unit}")


@click.group('orders')
def orders_group():
    """Order inspection commands."""


@orders_group.command('audit')
@click.argument('order_id', type=int)
@with_appcontext
def order_audit(order_id):
    """Print an order's audit trail, newest first."""
    try:
        events = audit_service.get_order_audit_log(order_id)
    except OrderLedgerError as e:
        click.echo(f"FAIL {e.message}", err=True)
        raise SystemExit(1)

    if not events:
        click.echo("No audit events.")
        return
    for ev in events:
        click.echo(f"{ev['performed_at']}  {ev['event_type']:<18} {ev['performed_by_name']:<20} {ev['description'] or ''}")


@orders_group.command('permanently-locked')
@with_appcontext
def permanently_locked():
    """List orders whose unlock window has passed."""
    orders = lock_service.list_permanently_locked()
    if not orders:
        click.echo("No permanently locked orders.")
        return
    for order in orders:
        click.echo(f"{order.id:<6} {order.order_number:<12} locked {to_utc_z(order.locked_at)}  "
                   f"window ended {to_utc_z(order.can_unlock_until)}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(orders_group)
