# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/configurator/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--admin-email admin@configurator.local] [--password "Password123!"]
#   Idempotent bootstrap: creates tables, default roles, and the admin user.
# - python -m flask system init-roles
#   Create default roles only.
# - python -m flask system seed-demo
#   Create a demo machine group, machine, tabs, and configurations.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list
#   List all users with roles and active status.
# - python -m flask users create --email sales@configurator.local --password "Password123!" --role SALES
#   Create a user (prompts if options are omitted).
#
# Role inspection/repair:
# - python -m flask roles list
#   List roles with grant counts.
# - python -m flask roles sync sales@configurator.local SALES SALES_MANAGER
#   Replace the system-assigned roles of a user.
#
# Maintenance:
# - python -m flask maintenance cleanup-tokens --retention-days 30
#   Delete refresh tokens expired or revoked before the retention window.
# - python -m flask maintenance expire-quotations
#   Mark SENT quotations past their valid_until date as EXPIRED.

import click
from flask.cli import with_appcontext

from .errors import BadRequestError
from .extensions import db
from .models import Role, User, UserRole
from .services.auth_service import create_user, find_user_by_email, PasswordValidationError
from .services import maintenance_service
from .services import role_service
from .services.seed_service import seed_demo_catalog


DEFAULT_ROLES = ["USER", "ADMIN", "SALES", "SALES_MANAGER", "TECHNICAL_SPECIALIST", "MODERATOR"]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-email', default='admin@configurator.local', show_default=True, help='Admin e-mail')
@click.option('--password', default='Password123!', show_default=True, help='Password for the admin user')
@with_appcontext
def init_system(admin_email, password):
    """
    Initialize the configurator: schema, roles, and an admin user.

    Creates:
    - All tables (no-op for existing tables)
    - Roles: USER, ADMIN, SALES, SALES_MANAGER, TECHNICAL_SPECIALIST, MODERATOR
    - User: admin@configurator.local with roles ADMIN and USER

    SECURITY: Change the admin password immediately in production!
    """
    click.echo("START Initializing configurator...")

    db.create_all()
    click.echo("PASS Schema ready")

    role_ids = role_service.get_role_ids_by_names(DEFAULT_ROLES)
    click.echo(f"PASS Roles ready ({len(role_ids)} active)")

    admin = find_user_by_email(admin_email)
    if admin:
        click.echo(f"PASS Using existing admin: {admin.email} (ID: {admin.id})")
    else:
        try:
            admin = create_user(
                email=admin_email,
                password=password,
                display_name="Administrator",
                roles=["ADMIN", "USER"],
            )
        except PasswordValidationError as e:
            click.echo(f"FAIL Password validation failed: {str(e)}")
            return
        click.echo(f"PASS Created admin: {admin.email} (ID: {admin.id})")

    click.echo("DONE System initialized")


@system_group.command('init-roles')
@with_appcontext
def init_roles():
    """Create the default roles (idempotent)."""
    role_ids = role_service.get_role_ids_by_names(DEFAULT_ROLES)
    click.echo(f"PASS {len(role_ids)} default roles present")


@system_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """Seed a demo catalog (idempotent)."""
    machine = seed_demo_catalog()
    click.echo(f"PASS Demo machine ready: {machine.name} (ID: {machine.id})")


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

    click.echo("PASS Database reset. Run 'python -m flask system init' next.")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--first-name', default=None, help='First name')
@click.option('--last-name', default=None, help='Last name')
@click.option('--role', 'roles', multiple=True, default=['USER'], show_default=True, help='Role name (repeatable)')
@with_appcontext
def create_user_cli(email, password, first_name, last_name, roles):
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
        user = create_user(
            email=email,
            password=password,
            first_name=first_name,
            last_name=last_name,
            roles=[r.upper() for r in roles],
        )
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
        return
    except (BadRequestError, ValueError) as e:
        click.echo(f"FAIL Failed to create user: {str(e)}")
        return

    click.echo(f"PASS Created user: {user.email} (ID: {user.id}) with roles {', '.join(roles)}")
    click.echo("SECURITY Password securely hashed with bcrypt")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their roles."""
    users = db.session.query(User).order_by(User.id).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<5} {'Email':<40} {'Name':<25} {'Active':<8} {'Roles'}")
    click.echo("="*100)

    for user in users:
        role_names = role_service.get_user_roles(user.id)
        roles_str = ", ".join(role_names) if role_names else "none"
        active_str = "Yes" if user.is_active else "No"
        name = user.display_name or ""

        click.echo(f"{user.id:<5} {user.email:<40} {name:<25} {active_str:<8} {roles_str}")

    click.echo("="*100 + "\n")


@click.group('roles')
def roles_group():
    """Role inspection and repair commands."""


@roles_group.command('list')
@with_appcontext
def list_roles_cli():
    """List roles with active grant counts."""
    roles = db.session.query(Role).order_by(Role.name).all()
    if not roles:
        click.echo("No roles found. Run 'python -m flask system init-roles'.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'Name':<25} {'Display name':<30} {'Active':<8} {'Grants'}")
    click.echo("="*80)
    for role in roles:
        grants = db.session.query(UserRole).filter_by(role_id=role.id, is_active=True).count()
        active_str = "Yes" if role.is_active else "No"
        click.echo(f"{role.name:<25} {(role.display_name or ''):<30} {active_str:<8} {grants}")
    click.echo("="*80 + "\n")


@roles_group.command('sync')
@click.argument('email')
@click.argument('role_names', nargs=-1, required=True)
@with_appcontext
def sync_roles_cli(email, role_names):
    """Replace the system-assigned roles of EMAIL with ROLE_NAMES."""
    user = find_user_by_email(email)
    if not user:
        click.echo(f"FAIL User '{email}' not found")
        return

    result = role_service.sync_user_role_names(user.id, [name.upper() for name in role_names])
    click.echo(f"PASS Synced roles for {user.email}: removed {result['removed']}, added {result['added']}")
    click.echo(f"     Current roles: {', '.join(role_service.get_user_roles(user.id)) or 'none'}")


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('cleanup-tokens')
@click.option('--retention-days', type=int, default=30, show_default=True)
@with_appcontext
def cleanup_tokens_cli(retention_days):
    """
    Cleanup expired and revoked refresh tokens.

    Default retention: 30 days.
    """
    deleted = maintenance_service.cleanup_tokens(retention_days=retention_days)
    click.echo(f"Deleted {deleted} refresh tokens older than {retention_days} days.")


@maintenance_group.command('expire-quotations')
@with_appcontext
def expire_quotations_cli():
    """Mark SENT quotations past valid_until as EXPIRED."""
    expired = maintenance_service.expire_quotations()
    click.echo(f"Expired {expired} quotations.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(roles_group)
    app.cli.add_command(maintenance_group)
