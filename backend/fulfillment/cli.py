# Overview: Flask CLI command groups for bootstrap, user management, stock sweeps and maintenance.

# backend/fulfillment/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py.
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables and seed the platform service catalog (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users create --email admin@sjfs.local --password "Password123!" --role PLATFORM_ADMIN
#   Create a user (prompts if options are omitted). Merchant roles need --merchant-id.
# - python -m flask users list [--merchant-id 1]
#   List users with role and active status.
#
# Stock:
# - python -m flask stock sweep
#   Run one stock sweep (low / out-of-stock / expired) and print the report.
#
# Maintenance:
# - python -m flask maintenance purge-notifications [--retention-days 30]
#   Delete read notifications older than the retention window.
# - python -m flask maintenance cleanup-sessions [--retention-days 30]
#   Delete expired or revoked sessions older than the retention window.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import Service, User
from .roles import ALL_ROLES
from .errors import DomainError
from .services import auth_service, notification_service, session_service, stock_monitor_service


# Daily prices in minor units
DEFAULT_SERVICES = [
    ("Inventory Management", 50_000),
    ("Order Processing", 30_000),
    ("Warehouse Management", 40_000),
    ("Delivery Tracking", 20_000),
    ("Returns Management", 15_000),
    ("Analytics Dashboard", 25_000),
    ("Staff Management", 10_000),
    ("API Access", 35_000),
]


def seed_services() -> int:
    """Create any missing catalog services. Returns the number created."""
    existing = {name for (name,) in db.session.query(Service.name).all()}
    created = 0
    for name, price_cents in DEFAULT_SERVICES:
        if name in existing:
            continue
        db.session.add(Service(name=name, price_cents=price_cents, is_active=True))
        created += 1
    db.session.commit()
    return created


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create tables and seed the service catalog."""
    db.create_all()
    created = seed_services()
    click.echo(f"PASS Database ready ({current_app.config['SQLALCHEMY_DATABASE_URI']})")
    click.echo(f"PASS Seeded {created} service(s)")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm destructive reset')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        click.echo("FAIL Refusing to reset without --yes")
        raise SystemExit(1)
    db.drop_all()
    db.create_all()
    seed_services()
    click.echo("PASS Database reset")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--email', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--role', type=click.Choice(ALL_ROLES), prompt=True)
@click.option('--merchant-id', type=int, default=None)
@click.option('--first-name', default=None)
@click.option('--last-name', default=None)
@with_appcontext
def create_user_cmd(email, password, role, merchant_id, first_name, last_name):
    """Create a user with a bcrypt-hashed password."""
    try:
        user = auth_service.create_user(
            email=email,
            password=password,
            role=role,
            merchant_id=merchant_id,
            first_name=first_name,
            last_name=last_name,
        )
    except DomainError as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)
    click.echo(f"PASS Created user {user.email} (ID: {user.id}) with role {user.role}")


@users_group.command('list')
@click.option('--merchant-id', type=int, default=None)
@with_appcontext
def list_users(merchant_id):
    q = db.session.query(User)
    if merchant_id is not None:
        q = q.filter(User.merchant_id == merchant_id)
    for u in q.order_by(User.id).all():
        status = "active" if u.is_active else "inactive"
        click.echo(f"{u.id:>5}  {u.email:<40} {u.role:<18} merchant={u.merchant_id}  {status}")


@click.group('stock')
def stock_group():
    """Stock monitoring commands."""


@stock_group.command('sweep')
@with_appcontext
def stock_sweep():
    report = stock_monitor_service.sweep()
    for key, value in report.to_dict().items():
        click.echo(f"{key}: {value}")


@click.group('maintenance')
def maintenance_group():
    """Retention and cleanup jobs."""


@maintenance_group.command('purge-notifications')
@click.option('--retention-days', type=int, default=None, help='Defaults to NOTIFICATION_RETENTION_DAYS')
@with_appcontext
def purge_notifications(retention_days):
    deleted = notification_service.purge_read_notifications(retention_days)
    click.echo(f"PASS Deleted {deleted} read notification(s)")


@maintenance_group.command('cleanup-sessions')
@click.option('--retention-days', type=int, default=30)
@with_appcontext
def cleanup_sessions(retention_days):
    deleted = session_service.cleanup_expired_sessions(retention_days)
    click.echo(f"PASS Deleted {deleted} session(s)")


def register_commands(app):
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(maintenance_group)
