# Overview: Flask CLI command groups for bootstrap and maintenance.

# backend/stockflow/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP=stockflow and CREDENTIAL_SIGNING_KEY.
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Create all tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Locations:
# - python -m flask locations create --name "Main Store" --type Store
# - python -m flask locations list
#
# Users:
# - python -m flask users create --username admin --email admin@stockflow.local --password "Password123!" --role admin
# - python -m flask users create --username clerk --email clerk@stockflow.local --password "Password123!" --role staff --location-id 1 --location-id 2
# - python -m flask users list
#
# Credentials:
# - python -m flask credentials issue --username admin
#   Print a bearer credential for scripting against the API.

import click
from flask.cli import with_appcontext

from .errors import StockflowError
from .extensions import db
from .models import Location, User
from .models.auth import ROLES
from .models.catalog import LOCATION_TYPES
from .services.auth_service import create_user
from .services.credential_service import issue_credential


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """Create every table that does not exist yet."""
    click.echo("START Initializing stockflow schema...")
    db.create_all()
    click.echo("PASS Schema ready")


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


@click.group('locations')
def locations_group():
    """Location management commands."""


@locations_group.command('create')
@click.option('--name', prompt=True, help='Location name (unique)')
@click.option('--type', 'location_type', type=click.Choice(list(LOCATION_TYPES)), default='Store',
              show_default=True, help='Location type')
@click.option('--address', default=None, help='Street address')
@with_appcontext
def create_location_cli(name, location_type, address):
    """Create a location."""
    name = name.strip()
    if db.session.query(Location).filter_by(name=name).first():
        raise click.ClickException(f"Location '{name}' already exists")

    location = Location(name=name, type=location_type, address=address, is_active=True)
    db.session.add(location)
    db.session.commit()
    click.echo(f"PASS Created location {location.name} (ID: {location.id}, Type: {location.type})")


@locations_group.command('list')
@with_appcontext
def list_locations():
    """List all locations."""
    locations = db.session.query(Location).order_by(Location.id).all()
    if not locations:
        click.echo("No locations found.")
        return

    click.echo(f"{'ID':<5} {'Name':<30} {'Type':<20} {'Active'}")
    for loc in locations:
        click.echo(f"{loc.id:<5} {loc.name:<30} {loc.type:<20} {'yes' if loc.is_active else 'no'}")


@click.group('users')
def users_group():
    """User management commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(ROLES)), prompt=True, help='Role')
@click.option('--location-id', 'location_ids', type=int, multiple=True,
              help='Grant access to a location (repeatable)')
@with_appcontext
def create_user_cli(username, email, password, role, location_ids):
    """
    Create a new user.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character
    """
    try:
        user = create_user(username, email, password, role=role, location_ids=list(location_ids))
    except StockflowError as e:
        db.session.rollback()
        raise click.ClickException(e.message)

    click.echo(f"PASS Created user {user.username} (ID: {user.id}, Role: {user.role})")
    if user.location_ids():
        click.echo(f"     Locations: {', '.join(str(i) for i in user.location_ids())}")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their roles and locations."""
    users = db.session.query(User).order_by(User.id).all()
    if not users:
        click.echo("No users found.")
        return

    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<30} {'Role':<8} {'Active':<8} {'Locations'}")
    for user in users:
        locations = ",".join(str(i) for i in user.location_ids()) or "-"
        click.echo(
            f"{user.id:<5} {user.username:<20} {user.email:<30} {user.role:<8} "
            f"{'yes' if user.is_active else 'no':<8} {locations}"
        )


@click.group('credentials')
def credentials_group():
    """Bearer credential commands."""


@credentials_group.command('issue')
@click.option('--username', prompt=True, help='Username')
@with_appcontext
def issue_credential_cli(username):
    """Print a signed credential for an active user."""
    user = db.session.query(User).filter_by(username=username).first()
    if user is None or not user.is_active:
        raise click.ClickException(f"No active user '{username}'")
    click.echo(issue_credential(user))


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(locations_group)
    app.cli.add_command(users_group)
    app.cli.add_command(credentials_group)
