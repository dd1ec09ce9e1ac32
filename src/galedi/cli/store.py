"""
galedi store - Record store maintenance.
"""

from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from galedi.core.initialization import initialize
from galedi.core.store import TABLE_NAME
from galedi.exceptions import GalediError

app = typer.Typer(name="store", help="Inspect and prepare the record store")

console = Console()


def _open(env: str | None, project_dir: Path):
    try:
        return initialize(project_dir, env=env)
    except GalediError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from None


@app.command("init")
def init_store(
    env: str | None = typer.Option(None, help="Environment (dev, staging, prod)"),
    project_dir: Path = typer.Option(Path.cwd(), "--project-dir", "-d", help="Project directory"),
) -> None:
    """Create the galedi schema and records table if missing."""
    config, store = _open(env, project_dir)
    store.close()
    console.print(f"[green]Record store ready[/green]: {TABLE_NAME} ({config.store.type})")


@app.command("pending")
def pending(
    env: str | None = typer.Option(None, help="Environment (dev, staging, prod)"),
    project_dir: Path = typer.Option(Path.cwd(), "--project-dir", "-d", help="Project directory"),
) -> None:
    """Show the number of records waiting for export, per partner."""
    config, store = _open(env, project_dir)
    table = Table(title="Pending records")
    table.add_column("partner", style="cyan")
    table.add_column("enabled")
    table.add_column("pending", justify="right")
    try:
        for partner in config.partners:
            count = store.pending_count(partner.partner_id)
            table.add_row(partner.partner_id, "yes" if partner.enabled else "no", str(count))
    except GalediError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from None
    finally:
        store.close()
    console.print(table)
