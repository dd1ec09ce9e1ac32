"""
galedi ingest / galedi export - One sync pass.

Runs a single ingestion or handshake/export pass for all enabled partners
(or one partner) and prints the per-partner outcome.
"""

from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from galedi.core.initialization import initialize
from galedi.exceptions import GalediError
from galedi.sync.export import run_export
from galedi.sync.ingest import run_ingestion
from galedi.utils.logging import get_logger

logger = get_logger("galedi.cli.run")

console = Console()

ingest_app = typer.Typer(name="ingest", help="Run one ingestion pass", invoke_without_command=True)
export_app = typer.Typer(name="export", help="Run one handshake/export pass", invoke_without_command=True)

INGEST_COLUMNS = ("status", "lines", "inserted", "duplicates", "rejected", "failed")
EXPORT_COLUMNS = ("status", "action", "exported", "marked_delivered")


def _run_pass(purpose: str, partner: str | None, env: str | None, project_dir: Path, verbose: bool) -> dict[str, Any]:
    try:
        config, store = initialize(project_dir, env=env, verbose=verbose)
    except GalediError as e:
        logger.error(f"Initialization failed: {e}")
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None

    if partner is not None:
        try:
            partners = (config.partner(partner),)
        except KeyError:
            typer.echo(f"Error: unknown partner {partner}", err=True)
            raise typer.Exit(1) from None
    else:
        partners = config.enabled_partners()

    runner = run_ingestion if purpose == "ingest" else run_export
    try:
        return runner(partners, store=store, work_dir=config.work_dir)
    finally:
        store.close()


def _print_summary(summary: dict[str, Any], columns: tuple[str, ...]) -> None:
    table = Table(title=f"{summary['purpose']} ({summary['duration_seconds']}s)")
    table.add_column("partner", style="cyan")
    for column in columns:
        table.add_column(column.replace("_", " "))
    table.add_column("error", style="red")

    for pid, result in summary["partners"].items():
        table.add_row(pid, *(str(result.get(c, "-")) for c in columns), result.get("error", ""))
    console.print(table)


def _exit_code(summary: dict[str, Any]) -> int:
    return 1 if any(r.get("status") == "failed" for r in summary["partners"].values()) else 0


@ingest_app.callback()
def ingest(
    ctx: typer.Context,
    partner: str | None = typer.Option(None, "--partner", "-p", help="Only this partner (e.g. MFR-H)"),
    env: str | None = typer.Option(None, help="Environment (dev, staging, prod)"),
    project_dir: Path = typer.Option(Path.cwd(), "--project-dir", "-d", help="Project directory"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
) -> None:
    """
    Download each partner's raw data file and store the new records.
    """
    if ctx.invoked_subcommand is None:
        summary = _run_pass("ingest", partner, env, project_dir, verbose)
        _print_summary(summary, INGEST_COLUMNS)
        raise typer.Exit(_exit_code(summary))


@export_app.callback()
def export(
    ctx: typer.Context,
    partner: str | None = typer.Option(None, "--partner", "-p", help="Only this partner (e.g. MFR-H)"),
    env: str | None = typer.Option(None, help="Environment (dev, staging, prod)"),
    project_dir: Path = typer.Option(Path.cwd(), "--project-dir", "-d", help="Project directory"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
) -> None:
    """
    Check request/feedback files and upload pending records where requested.
    """
    if ctx.invoked_subcommand is None:
        summary = _run_pass("export", partner, env, project_dir, verbose)
        _print_summary(summary, EXPORT_COLUMNS)
        raise typer.Exit(_exit_code(summary))
