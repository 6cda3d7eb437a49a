# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/repairdesk/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Tenants:
# - python -m flask tenants list
# - python -m flask tenants create --name "Taller Norte" --industry automotive [--timezone America/Mexico_City]
#
# Users (local mirror of identity-provider profiles):
# - python -m flask users list [--tenant-id 1]
# - python -m flask users create --tenant-id 1 --email owner@shop.test --name "Ana" --role owner
#   Portal customers: --role customer without --tenant-id.
# - python -m flask users token 3
#   Print an actor token for user 3 (development and integration testing).
#
# Inventory:
# - python -m flask inventory reconcile [--tenant-id 1] [--fix]
#   Compare cached Product.quantity against the ledger; --fix resets drifted caches.
#
# Webhooks:
# - python -m flask webhooks logs --webhook-id 2 --limit 20

import click
from flask.cli import with_appcontext

from .errors import WorkflowError
from .extensions import db
from .identity import issue_actor_token
from .models import Tenant, User, Webhook, WebhookLog
from .models.tenancy import INDUSTRIES, USER_ROLES
from .services import inventory_service, tenant_service
from .time_utils import to_utc_z


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm destructive reset')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        click.echo("FAIL Refusing to reset without --yes")
        return
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


@click.group('tenants')
def tenants_group():
    """Tenant (repair shop) management commands."""


@tenants_group.command('list')
@with_appcontext
def list_tenants():
    """List all tenants."""
    tenants = db.session.query(Tenant).order_by(Tenant.id).all()

    if not tenants:
        click.echo("No tenants found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<30} {'Industry':<13} {'Timezone':<22} {'Active':<7} {'Users'}")
    click.echo("="*80)

    for tenant in tenants:
        user_count = db.session.query(User).filter_by(tenant_id=tenant.id).count()
        active_str = "Yes" if tenant.is_active else "No"
        click.echo(
            f"{tenant.id:<5} {tenant.name:<30} {tenant.industry:<13} {tenant.timezone:<22} {active_str:<7} {user_count}"
        )

    click.echo("="*80 + "\n")


@tenants_group.command('create')
@click.option('--name', required=True, help='Shop name')
@click.option('--industry', required=True, type=click.Choice(INDUSTRIES), help='Fixed at creation')
@click.option('--timezone', default='UTC', show_default=True, help='IANA timezone for day buckets')
@with_appcontext
def create_tenant_cli(name, industry, timezone):
    """Create a new tenant and seed its folio sequences."""
    try:
        tenant = tenant_service.create_tenant(name=name, industry=industry, timezone=timezone)
    except WorkflowError as e:
        click.echo(f"FAIL {e.message}")
        return
    click.echo(f"PASS Created tenant: {tenant.name} (ID: {tenant.id}, Industry: {tenant.industry})")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@click.option('--tenant-id', type=int, help='Only users of this tenant')
@with_appcontext
def list_users(tenant_id):
    q = db.session.query(User)
    if tenant_id is not None:
        q = q.filter_by(tenant_id=tenant_id)
    users = q.order_by(User.id).all()
    if not users:
        click.echo("No users found.")
        return
    for user in users:
        active_str = "active" if user.is_active else "inactive"
        click.echo(f"{user.id:<5} {user.email:<35} {user.role:<11} tenant={user.tenant_id or '-':<5} {active_str}")


@users_group.command('create')
@click.option('--tenant-id', type=int, help='Tenant ID (omit for portal customers)')
@click.option('--email', prompt=True, help='Email address')
@click.option('--name', 'full_name', default=None, help='Full name')
@click.option('--role', type=click.Choice(USER_ROLES), prompt=True, help='Role')
@with_appcontext
def create_user_cli(tenant_id, email, full_name, role):
    """Mirror an identity-provider user locally."""
    try:
        user = tenant_service.create_user(email=email, full_name=full_name, role=role, tenant_id=tenant_id)
    except WorkflowError as e:
        click.echo(f"FAIL {e.message}")
        return
    click.echo(f"PASS Created user: {user.email} (ID: {user.id}) with role '{user.role}'")


@users_group.command('token')
@click.argument('user_id', type=int)
@with_appcontext
def user_token(user_id):
    """Print a signed actor token for a user."""
    user = db.session.get(User, user_id)
    if user is None:
        click.echo(f"FAIL User ID {user_id} not found")
        return
    click.echo(issue_actor_token(user.id))


@click.group('inventory')
def inventory_group():
    """Stock ledger maintenance commands."""


@inventory_group.command('reconcile')
@click.option('--tenant-id', type=int, help='Limit to one tenant')
@click.option('--fix', is_flag=True, help='Reset drifted cached quantities to the ledger value')
@with_appcontext
def reconcile(tenant_id, fix):
    """Compare cached stock counters against the ledger."""
    drift = inventory_service.reconcile_stock(tenant_id, fix=fix)
    if not drift:
        click.echo("PASS All cached quantities match the ledger")
        return
    for row in drift:
        click.echo(
            f"{'FIXED' if fix else 'DRIFT'} product {row['product_id']} ({row['name']}) "
            f"tenant={row['tenant_id']} cached={row['cached']} ledger={row['ledger']}"
        )
    click.echo(f"{len(drift)} product(s) {'fixed' if fix else 'drifted'}")


@click.group('webhooks')
def webhooks_group():
    """Webhook delivery inspection."""


@webhooks_group.command('logs')
@click.option('--webhook-id', type=int, required=True)
@click.option('--limit', type=int, default=20, show_default=True)
@with_appcontext
def webhook_logs(webhook_id, limit):
    hook = db.session.get(Webhook, webhook_id)
    if hook is None:
        click.echo(f"FAIL Webhook ID {webhook_id} not found")
        return
    logs = (
        db.session.query(WebhookLog)
        .filter_by(webhook_id=hook.id)
        .order_by(WebhookLog.id.desc())
        .limit(limit)
        .all()
    )
    click.echo(f"Webhook {hook.id} -> {hook.url} [{hook.event_type}]")
    for log in logs:
        state = "PASS" if log.success else "FAIL"
        click.echo(f"{state} {to_utc_z(log.created_at)} {log.event_type:<22} status={log.response_status}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(tenants_group)
    app.cli.add_command(users_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(webhooks_group)
