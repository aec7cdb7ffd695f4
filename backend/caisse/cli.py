# Overview: Flask CLI command groups for bootstrap, stock operations, and inspection.

# backend/caisse/cli.py
# Commands Legend (run from the backend directory):
# - flask --app caisse <group> <command> [options]
#
# System bootstrap:
# - flask --app caisse system init-db
#   Create missing tables (use `flask db upgrade` for migrated databases).
# - flask --app caisse system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Stock (mutating commands check the actor's permissions):
# - flask --app caisse stock adjust --reason "broken bottles" --actor 1 3 -- -2
# - flask --app caisse stock count 3 18 --actor 1
# - flask --app caisse stock history 3 --limit 20
# - flask --app caisse stock audit [--product-id 3]
#
# Cash sessions:
# - flask --app caisse sessions pending [--supervisor-id 2]
# - flask --app caisse sessions summary 7
#
# Permissions:
# - flask --app caisse perms check 4 caisse.encaisser

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import LedgerError
from .extensions import db
from .permissions import Perm


def _services():
    return current_app.extensions["caisse"]


def _fail(exc: LedgerError):
    click.echo(f"FAIL {exc.message}", err=True)
    raise SystemExit(1)


def _cents(value) -> str:
    if value is None:
        return "-"
    sign = "-" if value < 0 else ""
    return f"{sign}{abs(value) // 100}.{abs(value) % 100:02d}"


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("OK  Tables created")


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
    click.echo("OK  Database reset")


@click.group('stock')
def stock_group():
    """Stock ledger commands."""


@stock_group.command('adjust')
@click.argument('product_id', type=int)
@click.argument('delta', type=int)
@click.option('--reason', required=True, help='Why the stock is corrected')
@click.option('--actor', 'actor_id', type=int, required=True, help='User id performing the adjustment')
@with_appcontext
def stock_adjust(product_id, delta, reason, actor_id):
    """Apply a signed stock adjustment."""
    services = _services()
    try:
        services.oracle.require(actor_id, Perm.ADJUST_STOCK)
        movement = services.catalog.adjust_stock(product_id, delta, reason, actor_id=actor_id)
    except LedgerError as exc:
        _fail(exc)
    click.echo(
        f"OK  Movement {movement.id}: product {product_id} "
        f"{movement.stock_before} -> {movement.stock_after}"
    )


@stock_group.command('count')
@click.argument('product_id', type=int)
@click.argument('counted', type=int)
@click.option('--actor', 'actor_id', type=int, required=True, help='User id performing the count')
@click.option('--comment', default=None)
@with_appcontext
def stock_count(product_id, counted, actor_id, comment):
    """Reconcile a product's stock with a physical count."""
    services = _services()
    try:
        services.oracle.require(actor_id, Perm.COUNT_STOCK)
        movement = services.catalog.record_count(product_id, counted, actor_id=actor_id, comment=comment)
    except LedgerError as exc:
        _fail(exc)
    if movement is None:
        click.echo(f"OK  Product {product_id} count matches ({counted})")
    else:
        click.echo(
            f"OK  Movement {movement.id}: product {product_id} "
            f"{movement.stock_before} -> {movement.stock_after} ({movement.quantity_delta:+d})"
        )


@stock_group.command('history')
@click.argument('product_id', type=int)
@click.option('--limit', type=int, default=20, show_default=True)
@with_appcontext
def stock_history(product_id, limit):
    """Show recent movements of a product."""
    try:
        movements = _services().stock.product_movements(product_id, limit=limit)
    except LedgerError as exc:
        _fail(exc)
    if not movements:
        click.echo("No movements")
        return
    for m in movements:
        click.echo(
            f"{m.id:>6}  {m.created_at:%Y-%m-%d %H:%M}  {m.kind:<16} {m.quantity_delta:>+6d}  "
            f"{m.stock_before:>5} -> {m.stock_after:<5} {m.reference or ''}"
        )


@stock_group.command('audit')
@click.option('--product-id', type=int, default=None)
@with_appcontext
def stock_audit(product_id):
    """Verify stock levels against the movement ledger."""
    stock = _services().stock
    try:
        if product_id is not None:
            report = stock.audit_product(product_id)
            mismatches = [] if report["consistent"] else [report]
        else:
            mismatches = stock.audit_all()
    except LedgerError as exc:
        _fail(exc)

    if not mismatches:
        click.echo("PASS Stock matches the movement ledger")
        return
    for r in mismatches:
        click.echo(
            f"FAIL product {r['product_id']} ({r['product_name']}): stock {r['stock_actuel']}, "
            f"ledger {r['ledger_stock']}, net {r['movement_net']}, broken {r['broken_movements']}"
        )
    raise SystemExit(1)


@click.group('sessions')
def sessions_group():
    """Cash session inspection commands."""


@sessions_group.command('pending')
@click.option('--supervisor-id', type=int, default=None)
@with_appcontext
def sessions_pending(supervisor_id):
    """List sessions awaiting validation, oldest closing first."""
    sessions = _services().sessions.pending_validation(supervisor_id)
    if not sessions:
        click.echo("No sessions pending validation")
        return
    for s in sessions:
        click.echo(
            f"{s.id:>5}  cashier {s.cashier_id:<5} supervisor {s.supervisor_id:<5} "
            f"expected {_cents(s.expected_cents):>10}  declared {_cents(s.declared_cents):>10}  "
            f"variance {_cents(s.variance_cents):>9}"
        )


@sessions_group.command('summary')
@click.argument('session_id', type=int)
@with_appcontext
def sessions_summary(session_id):
    """Show a session's totals and variance."""
    try:
        summary = _services().sessions.session_summary(session_id)
    except LedgerError as exc:
        _fail(exc)
    session = summary["session"]
    click.echo(f"Session {session['id']} ({session['status']}) cashier {session['cashier_id']}")
    click.echo(f"  Initial fund: {_cents(session['initial_fund_cents'])}")
    for kind, bucket in sorted(summary["by_payment_kind"].items()):
        click.echo(f"  {kind:<14} {bucket['count']:>4} tx  {_cents(bucket['total_cents']):>10}")
    click.echo(f"  Cancelled: {summary['cancelled_count']}")
    click.echo(f"  Expected: {_cents(summary['expected_cents'])}")
    click.echo(f"  Declared: {_cents(summary['declared_cents'])}")
    click.echo(f"  Variance: {_cents(summary['variance_cents'])}")


@click.group('perms')
def perms_group():
    """Permission inspection commands."""


@perms_group.command('check')
@click.argument('user_id', type=int)
@click.argument('permission_code')
@with_appcontext
def check_permission_cli(user_id, permission_code):
    """Check if a user has a specific permission."""
    oracle = _services().oracle

    if oracle.user_can(user_id, permission_code):
        click.echo(f"PASS User {user_id} HAS permission '{permission_code}'")
    else:
        click.echo(f"FAIL User {user_id} DOES NOT HAVE permission '{permission_code}'")

    roles = oracle.roles_for(user_id)
    click.echo(f"\nUser roles: {', '.join(roles) if roles else '(none)'}")
    click.echo(f"Effective permissions: {', '.join(sorted(oracle.permissions_for(user_id))) or '(none)'}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(sessions_group)
    app.cli.add_command(perms_group)
