# Overview: Flask CLI command groups for bootstrap and inspection.

# backend/farmpro/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users create --username root --email root@farm.local --name "Root" --role super_admin
#   Create a user (prompts for the password). Bootstrap path: no acting admin.
# - python -m flask users list
#
# Farms:
# - python -m flask farms create --as root --name "Fazenda Boa Vista" --location "Goias" [--admin maria]
# - python -m flask farms assign --as root --farm-id 1 --username joao --role worker [--defaults]
#
# Inventory:
# - python -m flask inventory critical [--farm-id 1]
#   List items at or below their minimum level.

import click
from flask.cli import with_appcontext

from .errors import FarmProError
from .extensions import db
from .models import User
from .permissions import MembershipRole, Role, parse_enum
from .services import farm_service, inventory_service
from .services.auth_service import create_user, PasswordValidationError


def _fail(message: str) -> None:
    click.echo(f"FAIL {message}")
    raise SystemExit(1)


def _user_by_username(username: str) -> User:
    user = db.session.query(User).filter_by(username=username).first()
    if user is None:
        _fail(f"User '{username}' not found")
    return user


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created")


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


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--name', prompt=True, help='Display name')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice([r.value for r in Role]), default=Role.EMPLOYEE.value, show_default=True)
@with_appcontext
def create_user_cli(username, email, name, password, role):
    """
    Create a user without an acting admin (bootstrap).

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    """
    try:
        user = create_user(
            username=username,
            email=email,
            name=name,
            password=password,
            role=Role(role),
        )
    except PasswordValidationError as e:
        _fail(f"Password validation failed: {e.message}")
    except FarmProError as e:
        _fail(e.message)

    click.echo(f"PASS Created user: {user.username} (ID: {user.id}) with role '{user.role.value}'")
    click.echo("SECURITY Password securely hashed with bcrypt")


@users_group.command('list')
@click.option('--all', 'include_inactive', is_flag=True, help='Include deactivated users')
@with_appcontext
def list_users(include_inactive):
    """List users with their global roles."""
    query = db.session.query(User)
    if not include_inactive:
        query = query.filter(User.is_active.is_(True))
    users = query.order_by(User.username).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 80)
    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<30} {'Active':<8} {'Role'}")
    click.echo("=" * 80)
    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.username:<20} {user.email:<30} {active_str:<8} {user.role.value}")
    click.echo("=" * 80 + "\n")


@click.group('farms')
def farms_group():
    """Farm and membership bootstrap commands."""


@farms_group.command('create')
@click.option('--as', 'actor_username', required=True, help='Acting super admin or farm admin')
@click.option('--name', required=True)
@click.option('--location', required=True)
@click.option('--admin', 'admin_username', default=None, help='Username of the farm admin')
@with_appcontext
def create_farm_cli(actor_username, name, location, admin_username):
    """Create a farm attributed to the acting admin."""
    actor = _user_by_username(actor_username)
    admin_id = _user_by_username(admin_username).id if admin_username else None
    try:
        farm = farm_service.create_farm(actor=actor, name=name, location=location, admin_id=admin_id)
    except FarmProError as e:
        _fail(e.message)

    click.echo(f"PASS Created farm: {farm.name} (ID: {farm.id}, admin_id: {farm.admin_id})")


@farms_group.command('assign')
@click.option('--as', 'actor_username', required=True, help='Acting super admin or farm admin')
@click.option('--farm-id', type=int, required=True)
@click.option('--username', required=True, help='User to add to the farm')
@click.option('--role', type=click.Choice([r.value for r in MembershipRole]), default=MembershipRole.MEMBER.value, show_default=True)
@click.option('--defaults', 'apply_defaults', is_flag=True, help='Seed default module permissions for the role')
@with_appcontext
def assign_user_cli(actor_username, farm_id, username, role, apply_defaults):
    """Add a user to a farm."""
    actor = _user_by_username(actor_username)
    user = _user_by_username(username)
    try:
        membership = farm_service.assign_user_to_farm(
            actor=actor,
            farm_id=farm_id,
            user_id=user.id,
            role=parse_enum(MembershipRole, role, "role"),
            apply_defaults=apply_defaults,
        )
    except FarmProError as e:
        _fail(e.message)

    click.echo(f"PASS {user.username} joined farm {farm_id} as {membership.role.value}")


@click.group('inventory')
def inventory_group():
    """Inventory inspection commands."""


@inventory_group.command('critical')
@click.option('--farm-id', type=int, default=None, help='Limit to one farm')
@with_appcontext
def critical_cli(farm_id):
    """List items at or below their minimum level."""
    items = inventory_service.get_critical_items(farm_id)
    if not items:
        click.echo("No critical items.")
        return

    click.echo(f"{'ID':<5} {'Farm':<5} {'Name':<30} {'Quantity':>12} {'Minimum':>12} {'Unit'}")
    for item in items:
        click.echo(
            f"{item.id:<5} {item.farm_id:<5} {item.name:<30} "
            f"{float(item.quantity):>12.3f} {float(item.minimum_level):>12.3f} {item.unit}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(farms_group)
    app.cli.add_command(inventory_group)
