# Overview: Flask CLI command groups for bootstrap and sync queue operations.

# backend/possync/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to possync (PowerShell: $env:FLASK_APP="possync").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables that do not exist yet (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Sync queue:
# - python -m flask sync drain
#   Replay every queued operation now and print the batch result.
# - python -m flask sync queue
#   List pending operations in replay order with retry counts.
# - python -m flask sync dead-letters
#   List dead-lettered operations.
# - python -m flask sync requeue <op_id>
#   Move a dead-lettered operation back into the queue with a fresh retry budget.
# - python -m flask sync purge-dead-letters --older-than-days 30 --yes
#   Delete dead letters parked before the cutoff.

import click
from flask.cli import with_appcontext

from . import get_engine
from .errors import NotFoundError
from .extensions import db


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create tables for products, users, sales, purchases and the sync queue."""
    db.create_all()
    click.echo("PASS Database tables created.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA, including queued operations!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


@click.group('sync')
def sync_group():
    """Sync queue commands."""


@sync_group.command('drain')
@with_appcontext
def drain_cli():
    """Replay the whole queue once."""
    result = get_engine().process_all()
    click.echo(f"Applied: {len(result.applied)}")
    if result.ok:
        click.echo("PASS Queue drained.")
        return
    click.echo(f"Deferred: {len(result.deferred)}")
    click.echo(f"Exhausted: {len(result.exhausted)}")
    click.echo(f"Rejected: {len(result.rejected)}")
    if result.dead_lettered:
        click.echo(f"Dead-lettered: {len(result.dead_lettered)}")
    click.echo(f"FAIL {result.message}")
    for op_id in result.failed:
        click.echo(f"  {op_id}: {result.errors.get(op_id, '-')}")


@sync_group.command('queue')
@with_appcontext
def queue_cli():
    """List pending operations."""
    engine = get_engine()
    ops = engine.queue.list_all()

    if not ops:
        click.echo("Queue is empty.")
        return

    click.echo("\n" + "="*110)
    click.echo(f"{'ID':<38} {'Type':<10} {'Entity':<24} {'Retries':<8} {'Queued':<20} {'Device'}")
    click.echo("="*110)

    for op in ops:
        retries = f"{op.retry_count}/{engine.max_retries}"
        click.echo(f"{op.id:<38} {op.entity_type:<10} {(op.entity_id or '-'):<24} {retries:<8} "
                   f"{str(op.created_at)[:19]:<20} {op.device_id or '-'}")

    click.echo("="*110 + "\n")


@sync_group.command('dead-letters')
@with_appcontext
def dead_letters_cli():
    """List dead-lettered operations."""
    parked = get_engine().queue.list_dead_letters()

    if not parked:
        click.echo("No dead letters.")
        return

    for op in parked:
        click.echo(f"{op.id}  {op.entity_type}  retries={op.retry_count}  "
                   f"parked={str(op.dead_lettered_at)[:19]}  {op.last_error or '-'}")


@sync_group.command('requeue')
@click.argument('op_id')
@with_appcontext
def requeue_cli(op_id):
    """Move a dead-lettered operation back into the queue."""
    try:
        get_engine().queue.requeue_dead_letter(op_id)
    except NotFoundError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Requeued {op_id}.")


@sync_group.command('purge-dead-letters')
@click.option('--older-than-days', type=int, default=None, help='Only purge entries parked longer than this')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def purge_dead_letters_cli(older_than_days, yes):
    """Permanently delete dead-lettered operations."""
    if not yes:
        click.confirm("WARN Dead-lettered operations will be lost. Continue?", abort=True)
    deleted = get_engine().queue.purge_dead_letters(older_than_days=older_than_days)
    click.echo(f"Deleted {deleted} dead-lettered operation(s).")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(sync_group)
