# Overview: Flask CLI command groups for database bootstrap and cylinder maintenance.

# backend/lpgtrack/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create missing tables (idempotent). Use "flask db upgrade" for migrated deployments.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Cylinders:
# - python -m flask cylinders normalize "Q.C PASSED   05285AWI1ES04"
#   Show the normalized QR code and full identifier for a raw scan.
# - python -m flask cylinders issue "05285AWI1ES04" --weight 11 --cost 950 --supplier "Petron Corporation"
#   Issue a new cylinder (status available).
# - python -m flask cylinders list [--status available] [--weight 11]
#   List cylinders.
# - python -m flask cylinders transition LPG-05285AWI1ES04 sold --type sale --reason "Walk-in"
#   Move a cylinder to a new status and record the movement.
# - python -m flask cylinders history LPG-05285AWI1ES04
#   Show movement history for a cylinder.

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import cylinder_service, qr_service
from .services.lifecycle_service import VALID_STATUSES, LifecycleError
from .validation import ConflictError, NotFoundError, ValidationError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables ready.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA, including the movement audit trail!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


@click.group('cylinders')
def cylinders_group():
    """Cylinder inspection and maintenance commands."""


@cylinders_group.command('normalize')
@click.argument('raw')
def normalize(raw):
    """Print the normalized QR code and identifier for RAW."""
    click.echo(f"qr_code:    {qr_service.normalize_qr_code(raw)}")
    click.echo(f"identifier: {qr_service.derive_full_identifier(raw)}")


@cylinders_group.command('issue')
@click.argument('qr_code')
@click.option('--weight', 'weight_kg', required=True, help='Cylinder size in kg')
@click.option('--cost', 'unit_cost', required=True, help='Unit cost')
@click.option('--supplier', default=None, help='Supplier name')
@with_appcontext
def issue(qr_code, weight_kg, unit_cost, supplier):
    """Issue a new cylinder from QR_CODE."""
    try:
        cylinder = cylinder_service.issue_cylinder(
            qr_code, weight_kg=weight_kg, unit_cost=unit_cost, supplier=supplier
        )
    except (ValidationError, ConflictError) as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Issued {cylinder.identifier} ({cylinder.weight_kg} kg, {cylinder.status})")


@cylinders_group.command('list')
@click.option('--status', type=click.Choice(sorted(VALID_STATUSES)), default=None)
@click.option('--weight', 'weight_kg', default=None, help='Cylinder size in kg')
@with_appcontext
def list_cylinders(status, weight_kg):
    """List cylinders."""
    try:
        result = cylinder_service.list_cylinders(status=status, weight_kg=weight_kg)
    except ValidationError as e:
        raise click.ClickException(str(e))

    if not result["items"]:
        click.echo("No cylinders found.")
        return

    click.echo(f"{'IDENTIFIER':<28} {'KG':>6} {'STATUS':<12} SUPPLIER")
    click.echo("-" * 64)
    for c in result["items"]:
        click.echo(f"{c['identifier']:<28} {c['weight_kg']:>6} {c['status']:<12} {c['supplier'] or ''}")
    click.echo(f"\nTotal: {result['count']}")


@cylinders_group.command('transition')
@click.argument('identifier')
@click.argument('to_status', type=click.Choice(sorted(VALID_STATUSES)))
@click.option('--type', 'movement_type', default='status_change', show_default=True)
@click.option('--reason', default=None)
@click.option('--notes', default=None)
@click.option('--reference', 'reference_number', default=None)
@click.option('--expect', 'expected_status', type=click.Choice(sorted(VALID_STATUSES)), default=None,
              help='Fail unless the cylinder is currently in this status')
@with_appcontext
def transition(identifier, to_status, movement_type, reason, notes, reference_number, expected_status):
    """Move IDENTIFIER to TO_STATUS."""
    try:
        movement = cylinder_service.transition_cylinder(
            identifier,
            to_status,
            movement_type,
            expected_status=expected_status,
            reason=reason,
            notes=notes,
            reference_number=reference_number,
        )
    except (NotFoundError, LifecycleError, ValidationError, ConflictError) as e:
        raise click.ClickException(str(e))
    click.echo(
        f"PASS {movement.product_identifier}: {movement.from_status} -> {movement.to_status} "
        f"({movement.movement_type})"
    )


@cylinders_group.command('history')
@click.argument('identifier')
@click.option('--limit', default=50, show_default=True)
@with_appcontext
def history(identifier, limit):
    """Show movement history for IDENTIFIER."""
    movements = cylinder_service.list_movements(identifier=identifier, limit=limit)
    if not movements:
        click.echo("No movements recorded.")
        return
    for m in movements:
        click.echo(
            f"{m.to_dict()['occurred_at']}  {m.from_status:>11} -> {m.to_status:<11} "
            f"{m.movement_type:<14} {m.reason or ''}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(cylinders_group)
