"""CLI entry point: repowatch.

Subcommands:
    repowatch check-trackers        # Run one tracker check cycle
    repowatch send-notifications    # Drain the notification queue once
    repowatch queue-length          # Show pending notification jobs
    repowatch init-db               # Create the tables
    repowatch serve                 # Run the HTTP API
"""

from __future__ import annotations

import asyncio
import json
import sys
from dataclasses import asdict

import click

from repowatch.api import deps
from repowatch.core.logging import setup_logging


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging")
def main(verbose: bool) -> None:
    """repowatch: GitHub repository activity tracker."""
    setup_logging(level="DEBUG" if verbose else None)


@main.command("check-trackers")
@click.option("--json", "as_json", is_flag=True, help="Print the run report as JSON")
def check_trackers(as_json: bool) -> None:
    """Run one lock-guarded check cycle over all active trackers."""

    async def _run():
        factory = deps.init_runtime()
        try:
            return await deps.get_check_runner().run(factory, deps.get_github_client())
        finally:
            await deps.shutdown_runtime()

    report = asyncio.run(_run())

    if as_json:
        payload = asdict(report)
        payload.update(
            processed=report.processed,
            succeeded=report.succeeded,
            errored=report.errored,
            total_events=report.total_events,
        )
        click.echo(json.dumps(payload, indent=2, default=str))
        return

    if report.skipped:
        click.echo(f"Skipped: {report.message}")
        return
    click.echo(f"{report.message} in {report.duration_ms}ms")
    click.echo(f"  Processed: {report.processed}")
    click.echo(f"  Succeeded: {report.succeeded}")
    click.echo(f"  Errored:   {report.errored}")
    click.echo(f"  Events:    {report.total_events}")
    for r in report.results:
        if r.error:
            click.echo(f"  [!] {r.repo_full_name or r.tracker_id}: {r.error}")
        elif r.events_detected:
            click.echo(f"  [+] {r.repo_full_name}: {r.events_detected} new event(s)")


@main.command("send-notifications")
def send_notifications() -> None:
    """Deliver up to one batch of queued notification jobs."""

    async def _run():
        factory = deps.init_runtime()
        try:
            return await deps.get_notification_runner().run(factory)
        finally:
            await deps.shutdown_runtime()

    report = asyncio.run(_run())
    if report.skipped:
        click.echo("Skipped: job already running")
        return
    click.echo(
        f"Sent {report.processed}, failed {report.errors} in {report.duration_ms}ms"
    )
    if report.errors:
        sys.exit(1)


@main.command("queue-length")
def queue_length() -> None:
    """Print the number of pending notification jobs."""

    async def _run() -> int:
        deps.init_runtime()
        try:
            return await deps.get_queue().length()
        finally:
            await deps.shutdown_runtime()

    click.echo(asyncio.run(_run()))


@main.command("init-db")
def init_db() -> None:
    """Create all tables that do not exist yet."""
    from repowatch.core.database import Base, create_engine
    from repowatch.models import EventLog, TrackedRepo, User  # noqa: F401

    async def _run() -> None:
        engine = create_engine(deps.get_settings().database_url)
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        finally:
            await engine.dispose()

    asyncio.run(_run())
    click.echo("Tables created.")


@main.command("serve")
@click.option("--host", default="127.0.0.1", help="Bind address")
@click.option("--port", default=8000, type=int, help="Bind port")
def serve(host: str, port: int) -> None:
    """Run the HTTP API (cron triggers + tracker management)."""
    import uvicorn

    uvicorn.run("repowatch.api:create_app", factory=True, host=host, port=port, log_config=None)


if __name__ == "__main__":
    main()
