# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/dinepos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Admins:
# - python -m flask admins create-superadmin --name "Ops" --email ops@dinepos.local --password "secret1"
#   Bootstrap the first superadmin (prompts if options are omitted).
# - python -m flask admins list
#
# Restaurants:
# - python -m flask restaurants list [--active-only]
#
# Maintenance:
# - python -m flask maintenance cleanup-sessions
#   Delete expired POS sessions.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import AdminUser
from .services import admin_service, session_service, tenant_service
from .validation import ValidationError, ConflictError
from .time_utils import utcnow, format_date


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables (idempotent)."""
    db.create_all()
    click.echo("PASS Database tables created.")


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

    click.echo("PASS Database reset complete. Run 'python -m flask admins create-superadmin' next.")


@click.group('admins')
def admins_group():
    """Platform admin bootstrap and inspection."""


@admins_group.command('create-superadmin')
@click.option('--name', prompt=True, help='Display name')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@with_appcontext
def create_superadmin_cli(name, email, password):
    """Create a superadmin without needing an existing one."""
    try:
        admin = admin_service.provision_admin({
            "name": name,
            "email": email,
            "password": password,
            "role": "superadmin",
        })
    except (ValidationError, ConflictError) as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)

    click.echo(f"PASS Created superadmin: {admin.name} ({admin.email})")
    click.echo(f"     Admin ID: {admin.id}")


@admins_group.command('list')
@with_appcontext
def list_admins_cli():
    """List all admins with their roles."""
    admins = db.session.query(AdminUser).order_by(AdminUser.id.asc()).all()
    if not admins:
        click.echo("No admins found.")
        return

    click.echo("\n" + "=" * 80)
    click.echo(f"{'ID':<6} {'Role':<12} {'Name':<25} {'Email'}")
    click.echo("=" * 80)
    for admin in admins:
        click.echo(f"{admin.id:<6} {admin.role:<12} {admin.name:<25} {admin.email}")
    click.echo("=" * 80 + "\n")


@click.group('restaurants')
def restaurants_group():
    """Restaurant (tenant) inspection."""


@restaurants_group.command('list')
@click.option('--active-only', is_flag=True, help='Only restaurants with is_active set')
@with_appcontext
def list_restaurants_cli(active_only):
    """List restaurants with their sign-in window."""
    restaurants = tenant_service.list_restaurants(active_only=active_only)
    if not restaurants:
        click.echo("No restaurants found.")
        return

    now = utcnow()
    click.echo("\n" + "=" * 100)
    click.echo(f"{'ID':<6} {'Name':<25} {'Email':<30} {'Window':<24} {'Can login'}")
    click.echo("=" * 100)
    for r in restaurants:
        window = f"{format_date(r.activation_date)}..{format_date(r.expiry_date)}"
        can = "Yes" if tenant_service.can_login(r, now) else "No"
        click.echo(f"{r.id:<6} {r.name[:24]:<25} {r.email[:29]:<30} {window:<24} {can}")
    click.echo("=" * 100 + "\n")


@click.group('maintenance')
def maintenance_group():
    """Periodic maintenance tasks."""


@maintenance_group.command('cleanup-sessions')
@with_appcontext
def cleanup_sessions_cli():
    """Delete expired POS and impersonation sessions."""
    deleted = session_service.cleanup_expired_sessions()
    click.echo(f"PASS Deleted {deleted} expired session(s).")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(admins_group)
    app.cli.add_command(restaurants_group)
    app.cli.add_command(maintenance_group)
