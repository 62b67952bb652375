"""CLI entrypoint for selfpatch.

The project root holds three things the pipeline reads:
1. "workspace" - the bot's source tree that runs may rewrite
2. "prompts" - the directive template and the pool of task prompts
3. "config" - selfpatch.yaml with proposer, workspace and guard settings

Credentials and the notification channel come from the environment.
"""

from __future__ import annotations

import logging
import random
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import __version__
from .config import Config
from .errors import ConfigError
from .pipeline import Pipeline, PipelineState
from .reports import STATUS_PENDING, STATUS_PROCESSED, ReportQueue
from .tokens import format_token_count

# Initialize Typer app
app = typer.Typer(
    name="selfpatch",
    help="Self-modifying patch pipeline for a Discord community bot.",
    add_completion=False,
)

console = Console()

STATUS_ICONS = {STATUS_PENDING: "⏳", STATUS_PROCESSED: "✅"}


def setup_logging(verbose: bool = False, level: str = "INFO") -> None:
    """Configure logging with Rich handler.

    Args:
        verbose: If True, set DEBUG level; otherwise use ``level``.
        level: Level name used when not verbose.
    """
    log_level = logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"selfpatch version {__version__}")
        raise typer.Exit()


def _reports_queue(root: Path) -> ReportQueue:
    config = Config.from_env(root)
    return ReportQueue(config.reports_path)


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """Self-modifying patch pipeline for a Discord community bot."""
    pass


@app.command()
def run(
    root: Path = typer.Option(
        Path.cwd(),
        "--root",
        "-r",
        help="Project root containing workspace/, prompts/ and config/.",
    ),
    config_dir: Optional[Path] = typer.Option(
        None,
        "--config-dir",
        "-c",
        help="Directory containing selfpatch.yaml (default: <root>/config).",
    ),
    mock: bool = typer.Option(
        False,
        "--mock",
        "-m",
        help="Run with a mock proposer (no API calls, no changes).",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Assemble the directive and show its size without calling the API.",
    ),
    seed: Optional[int] = typer.Option(
        None,
        "--seed",
        help="Seed for task selection, for reproducible runs.",
    ),
    commit: Optional[bool] = typer.Option(
        None,
        "--commit/--no-commit",
        help="Commit rewritten files with git (default from SELFPATCH_AUTO_COMMIT).",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-V",
        help="Enable debug logging.",
    ),
) -> None:
    """Run one self-modification cycle."""
    root = root.resolve()
    if not root.exists():
        console.print(f"[red]Error:[/red] Project root does not exist: {root}")
        raise typer.Exit(1)

    try:
        config = Config.from_env(root, config_dir)
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    setup_logging(verbose, config.log_level)

    config.mock_mode = config.mock_mode or mock
    config.dry_run = dry_run
    if commit is not None:
        config.auto_commit = commit

    errors = config.validate()
    if errors:
        console.print("[red]Configuration errors:[/red]")
        for error in errors:
            console.print(f"  - {error}")
        raise typer.Exit(1)

    if dry_run:
        console.print("\n[bold yellow]*** DRY RUN: No external API calls will be made. ***[/bold yellow]\n")

    console.print(f"[bold]{'[DRY-RUN] ' if dry_run else ''}Starting self-modification run[/bold]")
    console.print(f"[dim]Workspace:[/dim] {config.workspace_dir}")
    console.print(f"[dim]Task prompts:[/dim] {config.tasks_dir}")
    console.print(f"[dim]Template:[/dim] {config.template_path}")
    console.print(f"[dim]Model:[/dim] {config.pipeline.proposer.model}")
    console.print(f"[dim]Mock mode:[/dim] {'enabled' if config.mock_mode else 'disabled'}")
    console.print(f"[dim]Discord:[/dim] {'enabled' if config.discord_enabled else 'log only'}")
    console.print()

    try:
        pipeline = Pipeline.from_config(
            config,
            rng=random.Random(seed) if seed is not None else None,
        )
    except (ConfigError, ValueError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    result = pipeline.run()

    if pipeline.run_logger:
        pipeline.run_logger.print_summary(console)

    if result.state is PipelineState.FAILED:
        console.print(f"\n[red]Run failed during {result.failed_phase.value}:[/red] {result.error}")
        raise typer.Exit(1)

    if dry_run:
        console.print(
            f"Directive: {len(result.directive):,} characters, "
            f"~{format_token_count(result.directive_tokens)}"
        )
        return

    report = result.apply_report
    if report is not None:
        for failure in report.failed + report.unknown_files:
            console.print(f"[yellow]Skipped job {failure.index}:[/yellow] {failure.job.describe()} ({failure.reason})")
        for name, reason in report.blocked.items():
            console.print(f"[yellow]Not written:[/yellow] {name} ({reason})")
    if result.files_written:
        console.print(f"[green]Updated {len(result.files_written)} file(s):[/green] {', '.join(result.files_written)}")
    else:
        console.print("[dim]No files changed.[/dim]")
    if result.commit and result.commit.commit_hash:
        console.print(f"[green]Committed:[/green] {result.commit.commit_hash}")


@app.command()
def report(
    description: str = typer.Argument(..., help="What went wrong."),
    user: str = typer.Option("user", "--user", "-u", help="Reporter name."),
    root: Path = typer.Option(Path.cwd(), "--root", "-r", help="Project root."),
) -> None:
    """Queue an error report for the next run to fix."""
    queue = _reports_queue(root)
    try:
        new_report = queue.add(description, user)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        console.print('[dim]Usage: selfpatch report "Error description" --user NAME[/dim]')
        raise typer.Exit(1)

    console.print("[green]Error report submitted successfully![/green]")
    console.print(f"[dim]ID:[/dim] {new_report.id}")
    console.print(f"[dim]Description:[/dim] {new_report.description}")
    console.print(f"[dim]Reporter:[/dim] {new_report.username}")
    console.print("[dim]Status:[/dim] pending (will be processed in the next run)")

    pending_count = len(queue.pending())
    console.print(f"\nTotal pending reports: {pending_count}")


@app.command("reports")
def list_reports(
    status: Optional[str] = typer.Argument(
        None,
        help="Only show reports with this status (pending or processed).",
    ),
    root: Path = typer.Option(Path.cwd(), "--root", "-r", help="Project root."),
) -> None:
    """List queued error reports grouped by status."""
    queue = _reports_queue(root)
    all_reports = queue.list()

    if not all_reports:
        console.print("[yellow]No error reports found.[/yellow]")
        return

    shown = queue.list(status)
    if not shown:
        console.print(f"[yellow]No reports with status '{status}' found.[/yellow]")
        return

    grouped: dict[str, list] = {}
    for item in shown:
        grouped.setdefault(item.status, []).append(item)

    for group_status, items in grouped.items():
        icon = STATUS_ICONS.get(group_status, "❓")
        table = Table(title=f"{icon} {group_status.upper()} ({len(items)})")
        table.add_column("ID", style="cyan")
        table.add_column("Reporter")
        table.add_column("Description")
        table.add_column("Submitted", style="dim")
        table.add_column("Fixed", style="dim")
        for item in items:
            table.add_row(item.short_id, item.username, item.description, item.timestamp, item.fixed_at or "")
        console.print(table)

    pending_count = sum(1 for r in all_reports if r.status == STATUS_PENDING)
    processed_count = sum(1 for r in all_reports if r.status == STATUS_PROCESSED)
    console.print("\n[bold]Summary:[/bold]")
    console.print(f"  Total reports: {len(all_reports)}")
    console.print(f"  Pending: {pending_count}")
    console.print(f"  Processed: {processed_count}")
    if pending_count:
        console.print(f"\nNext run will process {pending_count} pending report(s)")


@app.command("clear-reports")
def clear_reports(
    root: Path = typer.Option(Path.cwd(), "--root", "-r", help="Project root."),
) -> None:
    """Remove processed reports from the queue."""
    removed = _reports_queue(root).clear_processed()
    console.print(f"Removed {removed} processed report(s).")


if __name__ == "__main__":
    app()
