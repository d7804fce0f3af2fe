# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/voucherdesk/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that don't exist yet (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users create --username admin --email admin@voucherdesk.local --password "Password123!" --role admin
#   Create a user (prompts if options are omitted).
# - python -m flask users list
#
# Sequences:
# - python -m flask sequences show
#   Show the display-id counter per document type next to the stored document count.

import click
from flask.cli import with_appcontext

from .errors import DomainError
from .extensions import db
from .models import ROLES, User
from .services.auth_service import create_user
from .services.sequence_service import sequence_status


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables. Existing data is left untouched."""
    db.create_all()
    click.echo("PASS Database tables created.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA, including the display-id counters.
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask users create' to add an admin.")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(ROLES)), prompt=True, help='Role')
@with_appcontext
def create_user_cli(username, email, password, role):
    """
    Create a new user.

    Password must meet strength requirements: 8+ chars, uppercase,
    lowercase, digit, special char.
    """
    try:
        user = create_user(username=username, email=email, password=password, role=role)
    except DomainError as e:
        raise click.ClickException(e.message)

    click.echo(f"PASS Created user: {user.username} ({user.email}) with role '{user.role}'")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their roles."""
    users = db.session.query(User).order_by(User.id.asc()).all()
    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 80)
    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<30} {'Active':<8} {'Role'}")
    click.echo("=" * 80)
    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.username:<20} {user.email:<30} {active_str:<8} {user.role}")
    click.echo("=" * 80 + "\n")


@click.group('sequences')
def sequences_group():
    """Display-id counter inspection."""


@sequences_group.command('show')
@with_appcontext
def show_sequences():
    """Counter per document type; '-' means no document of that type was created yet."""
    click.echo(f"{'Type':<18} {'Prefix':<7} {'Next':<6} {'Stored'}")
    for row in sequence_status():
        next_number = row["next_number"] if row["next_number"] is not None else "-"
        click.echo(f"{row['document_type']:<18} {row['prefix']:<7} {next_number!s:<6} {row['stored_documents']}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(sequences_group)
