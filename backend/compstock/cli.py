# Overview: Flask CLI command groups for bootstrap, inspection, alerts and maintenance.

# backend/compstock/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables and one default user per role.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list [--role engineer]
#   List users with role and active status.
# - python -m flask users create --username jdoe --name "Jane Doe" --email jdoe@lab.local --role engineer
#   Create a user (prompts if options are omitted).
#
# Alerts:
# - python -m flask alerts check
#   Run the low-stock and old-stock scans once.
#
# Inventory:
# - python -m flask inventory export --output components.csv
#   Write active components to CSV (stdout when --output is omitted).
# - python -m flask inventory import components.csv --username admin
#   Create components from CSV, attributed to the given user.
#
# Maintenance:
# - python -m flask maintenance purge-notifications --grace-days 30
#   Delete notifications that expired more than grace-days ago.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .models.enums import Role
from .services import alert_service, csv_service, maintenance_service, user_service
from .validation import ConflictError, ValidationError


DEFAULT_USERS = [
    ("admin", "Administrator", "admin@compstock.local", Role.ADMIN.value),
    ("user", "Lab User", "user@compstock.local", Role.USER.value),
    ("researcher", "Researcher", "researcher@compstock.local", Role.RESEARCHER.value),
    ("engineer", "Engineer", "engineer@compstock.local", Role.ENGINEER.value),
]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize the inventory system: schema and default users.

    Creates:
    - All tables (no-op for tables that already exist)
    - Users: admin, user, researcher, engineer (one per role)
    """
    click.echo("START Initializing compstock...")

    db.create_all()
    click.echo("PASS Schema ready")

    click.echo("\nUSERS Creating default users...")
    for username, name, email, role in DEFAULT_USERS:
        existing = db.session.query(User).filter_by(username=username).first()
        if existing:
            click.echo(f"WARN  User '{username}' already exists, skipping...")
            continue
        try:
            user_service.create_user({"username": username, "name": name, "email": email, "role": role})
            click.echo(f"PASS Created user: {username} ({email}) with role '{role}'")
        except (ValidationError, ConflictError) as e:
            click.echo(f"FAIL Failed to create user '{username}': {str(e)}")

    click.echo("\nDONE compstock initialized.")


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
@click.option('--name', prompt=True, help='Display name')
@click.option('--email', prompt=True, help='Email address')
@click.option('--role', type=click.Choice(sorted(Role.values())), prompt=True, help='Role')
@with_appcontext
def create_user_cli(username, name, email, role):
    """Create a user."""
    try:
        user = user_service.create_user({"username": username, "name": name, "email": email, "role": role})
    except (ValidationError, ConflictError) as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created user {user.username} (ID: {user.id}) with role '{user.role}'")


@users_group.command('list')
@click.option('--role', type=click.Choice(sorted(Role.values())), help='Filter by role')
@with_appcontext
def list_users(role):
    """List all users with their roles."""
    query = db.session.query(User)
    if role:
        query = query.filter_by(role=role)

    users = query.order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<35} {'Active':<8} {'Role'}")
    click.echo("="*90)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.username:<20} {user.email:<35} {active_str:<8} {user.role}")

    click.echo("="*90 + "\n")


@click.group('alerts')
def alerts_group():
    """Alert engine commands."""


@alerts_group.command('check')
@with_appcontext
def check_alerts_cli():
    """Run low-stock and old-stock scans."""
    report = alert_service.check_alerts()
    click.echo(
        f"Created {len(report.low_stock)} low stock and "
        f"{len(report.old_stock)} old stock alert(s)."
    )


@click.group('inventory')
def inventory_group():
    """Component import/export commands."""


@inventory_group.command('export')
@click.option('--output', type=click.Path(dir_okay=False, writable=True), help='Output file (default stdout)')
@with_appcontext
def export_inventory_cli(output):
    """Export active components to CSV."""
    body = csv_service.export_components_csv()
    if output:
        with open(output, "w", newline="", encoding="utf-8") as fh:
            fh.write(body)
        click.echo(f"Wrote {output}")
    else:
        click.echo(body, nl=False)


@inventory_group.command('import')
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@click.option('--username', required=True, help='User the new components are attributed to')
@with_appcontext
def import_inventory_cli(path, username):
    """Create components from a CSV file."""
    actor = db.session.query(User).filter_by(username=username, is_active=True).first()
    if actor is None:
        raise click.ClickException(f"Active user '{username}' not found")

    with open(path, encoding="utf-8") as fh:
        text = fh.read()

    try:
        report = csv_service.import_components_csv(text, actor)
    except ValidationError as e:
        raise click.ClickException(str(e))

    click.echo(f"Created {len(report.created)} component(s), {len(report.errors)} row(s) rejected.")
    for error in report.errors:
        click.echo(f"  row {error['row']}: {error['error']}")


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('purge-notifications')
@click.option('--grace-days', type=int, default=None, help='Days past expiry before deletion (default from config)')
@with_appcontext
def purge_notifications_cli(grace_days):
    """
    Delete notifications long past their expiry.
    """
    deleted = maintenance_service.purge_expired_notifications(grace_days=grace_days)
    click.echo(f"Deleted {deleted} expired notification(s).")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(alerts_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(maintenance_group)
