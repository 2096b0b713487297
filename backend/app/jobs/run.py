"""CLI entry point for job execution."""

import sys
from datetime import timedelta

import click

from app.core.logging import get_logger, setup_logging
from app.core.redis_lock import redis_lock
from app.db.session import session_scope
from app.jobs.unconfirmed_sweep import JOB_KEY as UNCONFIRMED_SWEEP, sweep_unconfirmed_accounts

logger = get_logger(__name__)

JOB_LOCK_TTL = 3600


@click.command()
@click.argument("job_key")
@click.option("--older-than-hours", type=int, default=None, help="Override the account age cutoff.")
@click.option("--dry-run", is_flag=True, help="Report what would be done without changing anything.")
def run(job_key: str, older_than_hours: int | None, dry_run: bool):
    """
    Run a maintenance job.

    Example:
        python -m app.jobs.run unconfirmed_account_sweep
    """
    setup_logging()

    if job_key != UNCONFIRMED_SWEEP:
        click.echo(f"Unknown job key: {job_key}", err=True)
        sys.exit(1)

    with redis_lock(f"job:{job_key}", ttl_seconds=JOB_LOCK_TTL) as acquired:
        if not acquired:
            click.echo(f"Job {job_key} skipped: already running", err=True)
            sys.exit(0)
        try:
            with session_scope() as db:
                result = sweep_unconfirmed_accounts(
                    db,
                    older_than=timedelta(hours=older_than_hours) if older_than_hours else None,
                    dry_run=dry_run,
                )
        except Exception as e:
            logger.error(f"Job failed: {e}", exc_info=True)
            click.echo(f"Job failed: {e}", err=True)
            sys.exit(1)

    click.echo(f"Job completed: {result}")


if __name__ == "__main__":
    run()
