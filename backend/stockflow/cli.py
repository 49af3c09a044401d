# Overview: Flask CLI command groups for bootstrap, tenants, and ledger maintenance.

# backend/stockflow/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to "stockflow:create_app".
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--org "Org Name"] [--org-code CODE] [--store "Main Store"]
#   Idempotent bootstrap: creates tables, a default organization and its first store.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Organization management:
# - python -m flask orgs list
# - python -m flask orgs create --name "Acme Corp" --code "ACME"
#
# Store management:
# - python -m flask stores add --org-id 1 --name "Downtown" [--code DT] [--location "..."]
# - python -m flask stores list --org-id 1
#
# Ledger maintenance:
# - python -m flask ledger summary --org-id 1
# - python -m flask ledger export --org-id 1 [--output ledger.json]
# - python -m flask ledger import --org-id 1 ledger.json
#   Accepts current snapshots and the legacy camelCase layout; repairs on the way in.
# - python -m flask ledger repair --org-id 1
#   Re-run the repair pass over the stored ledger and persist any fixes.

import json

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Organization, Store
from .services import ledger_service, tenant_service


def _echo_report(report) -> None:
    if report.fell_back_to_empty:
        click.echo(f"WARN Repair failed ({report.error}); ledger started empty")
    if report.legacy_migrated:
        click.echo("INFO Legacy layout migrated")
    click.echo(f"PASS {len(report.fixes)} fix(es) applied")
    for fix in report.fixes:
        click.echo(f"  - {fix}")


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--org', 'org_name', default='Default Organization', help='Organization name')
@click.option('--org-code', default='DEFAULT', help='Organization code')
@click.option('--store', 'store_name', default='Main Store', help='First store name')
@with_appcontext
def init_system(org_name, org_code, store_name):
    """Create tables, a default organization and its first store (idempotent)."""
    click.echo("START Initializing StockFlow...")
    db.create_all()

    org = db.session.query(Organization).first()
    if not org:
        org = tenant_service.create_organization(org_name, org_code)
        click.echo(f"PASS Created default organization: {org.name} (ID: {org.id}, Code: {org.code})")
    else:
        click.echo(f"PASS Using existing organization: {org.name} (ID: {org.id})")

    store = db.session.query(Store).filter_by(org_id=org.id).first()
    if not store:
        store = tenant_service.create_store(org.id, store_name)
        click.echo(f"PASS Created default store: {store.name} (ID: {store.id}, Org: {org.name})")
    else:
        click.echo(f"PASS Using existing store: {store.name} (ID: {store.id})")

    ledger = ledger_service.get_ledger(org.id)
    click.echo(f"PASS Ledger ready: {len(ledger.catalog.products)} product(s)")


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
    ledger_service.get_registry().clear()

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


# =============================================================================
# ORGANIZATIONS & STORES
# =============================================================================

@click.group('orgs')
def orgs_group():
    """Organization (tenant) management commands."""


@orgs_group.command('list')
@with_appcontext
def list_orgs():
    """List all organizations."""
    orgs = tenant_service.list_organizations()

    if not orgs:
        click.echo("No organizations found.")
        return

    click.echo("\n" + "="*70)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<15} {'Active':<8} {'Stores'}")
    click.echo("="*70)

    for org in orgs:
        store_count = db.session.query(Store).filter_by(org_id=org.id).count()
        active_str = "Yes" if org.is_active else "No"
        click.echo(f"{org.id:<5} {org.name:<30} {org.code or '-':<15} {active_str:<8} {store_count}")

    click.echo("="*70 + "\n")


@orgs_group.command('create')
@click.option('--name', required=True, help='Organization name')
@click.option('--code', required=True, help='Short code (unique)')
@with_appcontext
def create_org_cli(name, code):
    """Create a new organization (tenant)."""
    try:
        org = tenant_service.create_organization(name, code)
    except tenant_service.TenantError as exc:
        click.echo(f"FAIL {exc.message}")
        return
    click.echo(f"PASS Created organization: {org.name} (ID: {org.id}, Code: {org.code})")


@click.group('stores')
def stores_group():
    """Store management commands."""


@stores_group.command('add')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@click.option('--name', required=True, help='Store name')
@click.option('--code', help='Store code (unique within org)')
@click.option('--location', help='Store location')
@with_appcontext
def add_store_cli(org_id, name, code, location):
    """Add a store to an organization."""
    try:
        store = tenant_service.create_store(org_id, name, code=code, location=location)
    except tenant_service.TenantError as exc:
        click.echo(f"FAIL {exc.message}")
        return
    click.echo(f"PASS Created store: {store.name} (ID: {store.id}) in org {org_id}")


@stores_group.command('list')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@with_appcontext
def list_stores_cli(org_id):
    """List the stores of an organization."""
    try:
        stores = tenant_service.list_stores(org_id)
    except tenant_service.TenantError as exc:
        click.echo(f"FAIL {exc.message}")
        return
    if not stores:
        click.echo("No stores found.")
        return
    for store in stores:
        click.echo(f"{store.id:<5} {store.name:<30} {store.code or '-':<10} {store.location or '-'}")


# =============================================================================
# LEDGER MAINTENANCE
# =============================================================================

@click.group('ledger')
def ledger_group():
    """Inventory ledger inspection and maintenance."""


@ledger_group.command('summary')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@with_appcontext
def ledger_summary(org_id):
    """Print headline counts for an organization's ledger."""
    try:
        summary = ledger_service.get_ledger(org_id).summary()
    except tenant_service.TenantError as exc:
        click.echo(f"FAIL {exc.message}")
        return
    click.echo(f"Products: {summary['products']}")
    click.echo(f"SKUs:     {summary['skus']}")
    click.echo(f"Layers:   {summary['layers']}")
    bills = summary["bills"]
    click.echo(f"Bills:    purchase={bills['purchase']} sale={bills['sale']} return={bills['return']}")
    click.echo(f"Inventory value: {summary['inventory_value_cents'] / 100:,.2f}")


@ledger_group.command('export')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@click.option('--output', type=click.File('w'), default='-', help='Output file (default: stdout)')
@with_appcontext
def ledger_export(org_id, output):
    """Write an organization's ledger snapshot as JSON."""
    try:
        data = ledger_service.export_state(org_id)
    except tenant_service.TenantError as exc:
        click.echo(f"FAIL {exc.message}", err=True)
        return
    json.dump(data, output, indent=2, sort_keys=True)
    output.write("\n")


@ledger_group.command('import')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@click.argument('source', type=click.File('r'))
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def ledger_import(org_id, source, yes):
    """Replace an organization's ledger with a JSON document."""
    try:
        raw = json.load(source)
    except json.JSONDecodeError as exc:
        click.echo(f"FAIL Invalid JSON: {exc}")
        return
    if not yes:
        click.confirm(f"WARN This replaces the ledger of organization {org_id}. Continue?", abort=True)
    try:
        report = ledger_service.import_state(org_id, raw)
    except (tenant_service.TenantError, ledger_service.LedgerServiceError) as exc:
        click.echo(f"FAIL {exc.message}")
        return
    except ValueError as exc:
        click.echo(f"FAIL {exc}")
        return
    _echo_report(report)


@ledger_group.command('repair')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@with_appcontext
def ledger_repair(org_id):
    """Run the repair pass over an organization's ledger and persist fixes."""
    try:
        report = ledger_service.repair_ledger(org_id)
    except (tenant_service.TenantError, ledger_service.LedgerServiceError) as exc:
        click.echo(f"FAIL {exc.message}")
        return
    _echo_report(report)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(orgs_group)
    app.cli.add_command(stores_group)
    app.cli.add_command(ledger_group)
