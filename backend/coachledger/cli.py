# Overview: Flask CLI command groups for bootstrap, coach setup, and aggregate maintenance.

# backend/coachledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--coach-name "Deniz" --branch "Main"]
#   Idempotent bootstrap: creates missing tables and, optionally, a first coach.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Coach management:
# - python -m flask coaches list [--branch Main] [--all]
#   List coaches with their aggregates.
# - python -m flask coaches create --name "Deniz" --branch "Main"
#   Create a coach.
#
# Aggregate maintenance:
# - python -m flask aggregates verify [--coach-id 1]
#   Compare stored commission totals and member counts with recomputed values.
# - python -m flask aggregates rebuild [--coach-id 1] --yes
#   Reconcile drifted aggregates back onto the recomputed values.

import sys

import click
from flask.cli import with_appcontext

from .extensions import db
from .errors import NotFoundError, ValidationError
from .models import Coach
from .services import aggregate_service, coach_service


def _format_cents(cents: int) -> str:
    return f"{cents / 100:,.2f}"


def _coach_ids(coach_id):
    if coach_id is not None:
        return [coach_id]
    return [c.id for c in db.session.query(Coach).order_by(Coach.id).all()]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--coach-name', default=None, help='Create a first coach with this name')
@click.option('--branch', default=coach_service.DEFAULT_BRANCH, show_default=True, help='Branch of the first coach')
@with_appcontext
def init_system(coach_name, branch):
    """
    Initialize the database.

    Creates any missing tables. With --coach-name, also creates a coach
    unless one with that name already exists.
    """
    click.echo("START Initializing coach ledger...")

    db.create_all()
    click.echo("PASS Tables ready")

    if coach_name:
        existing = db.session.query(Coach).filter_by(name=coach_name).first()
        if existing:
            click.echo(f"PASS Using existing coach: {existing.name} (ID: {existing.id})")
        else:
            coach = coach_service.create_coach(coach_name, branch)
            click.echo(f"PASS Created coach: {coach.name} (ID: {coach.id}, Branch: {coach.branch})")

    click.echo("DONE System initialized.")


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


@click.group('coaches')
def coaches_group():
    """Coach management commands."""


@coaches_group.command('list')
@click.option('--branch', default=None, help='Filter by branch')
@click.option('--all', 'include_inactive', is_flag=True, help='Include deactivated coaches')
@with_appcontext
def list_coaches(branch, include_inactive):
    """List coaches with their aggregates."""
    coaches = coach_service.list_coaches(branch=branch, include_inactive=include_inactive)

    if not coaches:
        click.echo("No coaches found.")
        return

    click.echo("\n" + "="*88)
    click.echo(f"{'ID':<5} {'Name':<24} {'Branch':<14} {'Active':<8} {'Members':<9} {'Sessions':<10} {'Commission'}")
    click.echo("="*88)

    for coach in coaches:
        active_str = "Yes" if coach.is_active else "No"
        click.echo(
            f"{coach.id:<5} {coach.name:<24} {coach.branch:<14} {active_str:<8} "
            f"{coach.active_member_count:<9} {coach.total_sessions_delivered:<10} "
            f"{_format_cents(coach.company_cut_total_cents)}"
        )

    click.echo("="*88 + "\n")


@coaches_group.command('create')
@click.option('--name', required=True, help='Coach name')
@click.option('--branch', default=coach_service.DEFAULT_BRANCH, show_default=True, help='Branch')
@with_appcontext
def create_coach_cli(name, branch):
    """Create a coach."""
    try:
        coach = coach_service.create_coach(name, branch)
    except ValidationError as e:
        click.echo(f"FAIL {e}")
        sys.exit(1)

    click.echo(f"PASS Created coach: {coach.name} (ID: {coach.id}, Branch: {coach.branch})")


@click.group('aggregates')
def aggregates_group():
    """Coach aggregate verification and repair."""


@aggregates_group.command('verify')
@click.option('--coach-id', type=int, default=None, help='Only verify this coach')
@with_appcontext
def verify_aggregates(coach_id):
    """Report drift between stored and recomputed aggregates. Exits 1 on drift."""
    drifted = 0
    for cid in _coach_ids(coach_id):
        try:
            report = aggregate_service.verify_coach_aggregate(cid)
        except NotFoundError as e:
            click.echo(f"FAIL {e}")
            sys.exit(1)

        if report["consistent"]:
            click.echo(
                f"PASS Coach {cid}: commission {_format_cents(report['stored_company_cut_total_cents'])}, "
                f"members {report['stored_active_member_count']}"
            )
        else:
            drifted += 1
            click.echo(
                f"FAIL Coach {cid}: commission stored {report['stored_company_cut_total_cents']} "
                f"vs computed {report['computed_company_cut_total_cents']} (drift {report['drift_cents']:+d}), "
                f"members stored {report['stored_active_member_count']} "
                f"vs computed {report['computed_active_member_count']}"
            )

    if drifted:
        click.echo(f"WARN {drifted} coach(es) drifted. Run 'python -m flask aggregates rebuild --yes' to repair.")
        sys.exit(1)


@aggregates_group.command('rebuild')
@click.option('--coach-id', type=int, default=None, help='Only rebuild this coach')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def rebuild_aggregates(coach_id, yes):
    """Reconcile stored aggregates onto the recomputed values."""
    if not yes:
        click.confirm("WARN This rewrites coach aggregates. Continue?", abort=True)

    for cid in _coach_ids(coach_id):
        try:
            report = aggregate_service.rebuild_coach_aggregate(cid)
        except NotFoundError as e:
            click.echo(f"FAIL {e}")
            sys.exit(1)
        click.echo(
            f"PASS Coach {cid}: commission {_format_cents(report['stored_company_cut_total_cents'])}, "
            f"members {report['stored_active_member_count']}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(coaches_group)
    app.cli.add_command(aggregates_group)
