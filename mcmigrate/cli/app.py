"""
mcmigrate CLI Application - Built with Click.

Daemon:
    mcmigrate run                       # Scheduler + restart recovery until SIGTERM

Jobs:
    mcmigrate submit SRC DST            # Run a migration in the foreground
    mcmigrate submit SRC DST --at ISO   # Persist a scheduled migration for the daemon
    mcmigrate cancel ID
    mcmigrate reschedule ID ISO

Inspection:
    mcmigrate list / status / logs / report / scheduled / stats
"""

import asyncio
import json
import shutil
import sys
from collections.abc import Awaitable, Callable
from typing import Any

import click
from rich.console import Console
from rich.json import JSON
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from mcmigrate import __version__
from mcmigrate.core.clock import parse_datetime
from mcmigrate.core.config import MigratorConfig, configure
from mcmigrate.core.exceptions import MigrationError, MissingDependencyError
from mcmigrate.monitoring.logging import setup_logging
from mcmigrate.service import MigrationService
from mcmigrate.types import Migration, MigrationOptions, MigrationStatus

console = Console()

_STATUS_STYLES = {
    MigrationStatus.SCHEDULED: "cyan",
    MigrationStatus.STARTING: "blue",
    MigrationStatus.RUNNING: "blue",
    MigrationStatus.COMPLETED: "green",
    MigrationStatus.RECONCILING: "yellow",
    MigrationStatus.VERIFIED: "bold green",
    MigrationStatus.COMPLETED_WITH_DIFFERENCES: "yellow",
    MigrationStatus.FAILED: "red",
    MigrationStatus.CANCELLED: "dim",
}


# ============================================================================
# CLI Group
# ============================================================================


class OrderedGroup(click.Group):
    """Click Group that lists commands in the order they were added."""

    def list_commands(self, ctx):
        return list(self.commands.keys())


@click.group(cls=OrderedGroup)
@click.version_option(version=__version__, prog_name="mcmigrate")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="YAML configuration file (default: MCMIGRATE_* environment variables)",
)
@click.option("--db", "db_path", help="Job repository path (overrides configuration)")
@click.pass_context
def cli(ctx, config_path, db_path):
    """
    mcmigrate - Object storage bucket migrations with verification.

    \b
    Commands:
      Daemon:
        run              Run the scheduler until interrupted
    \b
      Jobs:
        submit           Submit a migration (now or --at a time)
        cancel           Cancel a scheduled or running migration
        reschedule       Move a scheduled migration
    \b
      Inspection:
        list             List migrations
        status           Show one migration
        logs             Show the log of a migration
        report           Show the reconciliation report
        scheduled        List scheduled migrations
        stats            Repository and scheduler statistics
    """
    config = MigratorConfig.from_file(config_path) if config_path else MigratorConfig.from_env()
    if db_path:
        config.db_path = db_path

    setup_logging(config.log_level_value, json_format=config.json_logs)
    configure(config)
    ctx.obj = config


# ============================================================================
# Helpers
# ============================================================================


def _run(
    config: MigratorConfig,
    action: Callable[[MigrationService], Awaitable[Any]],
    *,
    start_scheduler: bool = False,
) -> Any:
    """Run ``action`` against a service that neither recovers nor schedules."""

    async def runner():
        service = MigrationService(config)
        await service.start(recover=False, schedule=start_scheduler)
        try:
            return await action(service)
        finally:
            await service.stop()

    try:
        return asyncio.run(runner())
    except MigrationError as e:
        console.print(f"[red]✗ {escape(str(e))}[/red]")
        sys.exit(1)


def _require_tool(config: MigratorConfig) -> None:
    if shutil.which(config.tool_path) is None:
        error = MissingDependencyError("mc", "running transfers and reconciliation")
        console.print(f"[red]{error}[/red]")
        sys.exit(1)


def _parse_time(value: str) -> Any:
    try:
        return parse_datetime(value)
    except ValueError as e:
        raise click.BadParameter(f"not an ISO-8601 timestamp: {value}") from e


def _status_text(status: MigrationStatus) -> str:
    style = _STATUS_STYLES.get(status, "white")
    return f"[{style}]{status.value}[/{style}]"


def _migrations_table(migrations: list[Migration], title: str) -> Table:
    table = Table(title=title)
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Source")
    table.add_column("Destination")
    table.add_column("Status")
    table.add_column("Progress", justify="right")
    table.add_column("Scheduled")
    table.add_column("Created")

    for migration in migrations:
        table.add_row(
            migration.id,
            str(migration.source),
            str(migration.destination),
            _status_text(migration.status),
            f"{migration.progress}%",
            migration.scheduled_time.isoformat() if migration.scheduled_time else "-",
            migration.created_at.strftime("%Y-%m-%d %H:%M:%S"),
        )
    return table


def _print_migration(migration: Migration) -> None:
    lines = [
        f"[bold]{migration.source} → {migration.destination}[/bold]",
        "",
        f"ID: {migration.id}",
        f"Status: {_status_text(migration.status)}",
        f"Progress: {migration.progress}%",
        f"Objects: {migration.stats.transferred_objects}/{migration.stats.total_objects}",
    ]
    if migration.duration is not None:
        lines.append(f"Duration: {migration.duration:.1f}s")
    if migration.reconciliation and migration.reconciliation.summary:
        summary = migration.reconciliation.summary
        lines.append(
            f"Reconciliation: objects match={summary.object_count_match}, "
            f"size match={summary.total_size_match}, "
            f"differences={migration.reconciliation.counts.total_differences}"
        )
    elif migration.reconciliation and migration.reconciliation.error:
        lines.append(f"Reconciliation: [red]{escape(migration.reconciliation.error)}[/red]")
    for error in migration.errors[-5:]:
        lines.append(f"[red]! {escape(error)}[/red]")

    console.print(Panel("\n".join(lines), title="Migration", border_style="blue"))


# ============================================================================
# mcmigrate run
# ============================================================================


@cli.command("run")
@click.pass_obj
def run_cmd(config: MigratorConfig):
    """
    Run the migration service until SIGINT/SIGTERM.

    Fails migrations orphaned by a previous run, then promotes scheduled
    migrations as they fall due.
    """
    _require_tool(config)
    console.print(
        Panel.fit(
            f"[bold blue]mcmigrate service[/bold blue]\n"
            f"Repository: {config.db_path}\n"
            f"Poll interval: {config.poll_interval_seconds:g}s",
            border_style="blue",
        )
    )
    try:
        asyncio.run(MigrationService(config).run_forever())
    except MigrationError as e:
        console.print(f"[red]✗ {escape(str(e))}[/red]")
        sys.exit(1)


# ============================================================================
# mcmigrate submit
# ============================================================================


@cli.command("submit")
@click.argument("source")
@click.argument("destination")
@click.option("--at", "at", help="Start at this ISO-8601 time instead of now")
@click.option("--overwrite", is_flag=True, help="Overwrite objects on the destination")
@click.option("--remove", is_flag=True, help="Remove extraneous destination objects")
@click.option("--exclude", multiple=True, help="Exclude objects matching pattern (repeatable)")
@click.option("--checksum", help="Checksum algorithm passed to the tool")
@click.option("--preserve", is_flag=True, help="Preserve attributes")
@click.option("--retry", is_flag=True, help="Let the tool retry failed objects")
@click.option("--dry-run", is_flag=True, help="Simulate the transfer")
@click.option("--watch", is_flag=True, help="Keep watching the source for changes")
@click.pass_obj
def submit_cmd(config: MigratorConfig, source, destination, at, exclude, **flags):
    """
    Submit a migration from SOURCE to DESTINATION (alias/bucket[/path]).

    \b
    Without --at the migration runs in the foreground until it is verified,
    fails or is cancelled. With --at it is stored for `mcmigrate run`.
    """
    options = MigrationOptions(exclude=list(exclude), **flags)
    scheduled_time = _parse_time(at) if at else None

    if scheduled_time is None:
        _require_tool(config)

    async def action(service: MigrationService) -> Migration:
        migration = await service.submit(source, destination, options, scheduled_time)
        if migration.status is MigrationStatus.SCHEDULED:
            return migration
        return await service.wait(migration.id)

    migration = _run(config, action)
    _print_migration(migration)

    if migration.status in (MigrationStatus.FAILED, MigrationStatus.CANCELLED):
        sys.exit(1)


# ============================================================================
# Inspection
# ============================================================================


@cli.command("list")
@click.option(
    "--status",
    type=click.Choice([status.value for status in MigrationStatus]),
    help="Only migrations in this status",
)
@click.option("--limit", default=50, show_default=True, help="Maximum rows")
@click.pass_obj
def list_cmd(config: MigratorConfig, status, limit):
    """List migrations, newest first."""
    wanted = MigrationStatus(status) if status else None
    migrations = _run(config, lambda service: service.list_migrations(wanted, limit=limit))

    if not migrations:
        console.print("[yellow]No migrations found[/yellow]")
        return
    console.print(_migrations_table(migrations, "Migrations"))


@cli.command("status")
@click.argument("migration_id")
@click.option("--json", "as_json", is_flag=True, help="Print the full record as JSON")
@click.pass_obj
def status_cmd(config: MigratorConfig, migration_id, as_json):
    """Show one migration."""
    migration = _run(config, lambda service: service.get_migration(migration_id))
    if as_json:
        console.print(JSON(json.dumps(migration.to_dict())))
    else:
        _print_migration(migration)


@cli.command("logs")
@click.argument("migration_id")
@click.option("--limit", type=int, help="Only the last N lines")
@click.pass_obj
def logs_cmd(config: MigratorConfig, migration_id, limit):
    """Show the persisted log of a migration."""
    lines = _run(config, lambda service: service.get_logs(migration_id, limit))
    for line in lines:
        click.echo(line)


@cli.command("report")
@click.argument("migration_id")
@click.pass_obj
def report_cmd(config: MigratorConfig, migration_id):
    """Show the reconciliation report of a migration."""
    report = _run(config, lambda service: service.get_report(migration_id))
    if report is None:
        console.print("[yellow]No reconciliation report for this migration[/yellow]")
        sys.exit(1)

    summary = report["summary"]
    table = Table(title="Reconciliation")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Objects compared", str(summary["total_objects_compared"]))
    table.add_row("Perfect matches", str(summary["perfect_matches"]))
    table.add_row("Differences", str(summary["total_differences"]))
    table.add_row("Success rate", f"{summary['success_rate']}%")
    for kind, count in report["breakdown"].items():
        table.add_row(kind.replace("_", " ").capitalize(), str(count))
    console.print(table)

    for recommendation in report["recommendations"]:
        console.print(
            f"[bold]{recommendation['severity'].upper()}[/bold] "
            f"{recommendation['message']} → {recommendation['action']}"
        )


# ============================================================================
# Control
# ============================================================================


@cli.command("cancel")
@click.argument("migration_id")
@click.pass_obj
def cancel_cmd(config: MigratorConfig, migration_id):
    """Cancel a scheduled, starting or running migration."""
    if _run(config, lambda service: service.cancel(migration_id)):
        console.print(f"[green]✓ Migration {migration_id} cancelled[/green]")
    else:
        console.print(f"[yellow]Migration {migration_id} could not be cancelled[/yellow]")
        sys.exit(1)


@cli.command("reschedule")
@click.argument("migration_id")
@click.argument("when")
@click.pass_obj
def reschedule_cmd(config: MigratorConfig, migration_id, when):
    """Move a scheduled migration to WHEN (ISO-8601)."""
    new_time = _parse_time(when)
    migration = _run(config, lambda service: service.reschedule(migration_id, new_time))
    _print_migration(migration)


@cli.command("scheduled")
@click.pass_obj
def scheduled_cmd(config: MigratorConfig):
    """List scheduled migrations by due time."""
    migrations = _run(config, lambda service: service.list_scheduled())
    if not migrations:
        console.print("[yellow]No scheduled migrations[/yellow]")
        return
    console.print(_migrations_table(migrations, "Scheduled migrations"))


@cli.command("stats")
@click.pass_obj
def stats_cmd(config: MigratorConfig):
    """Repository and scheduler statistics."""

    async def action(service: MigrationService) -> dict[str, Any]:
        statistics = await service.get_statistics()
        return {
            "migrations": statistics.to_dict(),
            "scheduler": await service.scheduler_stats(),
            "health": (await service.health_check()).to_dict(),
        }

    console.print(JSON(json.dumps(_run(config, action), default=str)))
