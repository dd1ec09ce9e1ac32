"""
galedi serve - Long-running agent.

Runs the ingestion and export jobs on their intervals, plus the HTTP API:
- GET /health, GET /status
- POST /sync/ingest/run_once, POST /sync/export/run_once
"""

from pathlib import Path

import typer

from galedi.exceptions import GalediError
from galedi.service.server import run_service

app = typer.Typer(name="serve", help="Run the sync agent until stopped", invoke_without_command=True)


@app.callback()
def serve(
    ctx: typer.Context,
    env: str | None = typer.Option(None, help="Environment (dev, staging, prod)"),
    host: str | None = typer.Option(None, help="Host to bind to (default: service.host)"),
    port: int | None = typer.Option(None, help="Port to bind to (default: service.port)"),
    no_http: bool = typer.Option(False, "--no-http", help="Run the sync jobs without the HTTP API"),
    project_dir: Path = typer.Option(Path.cwd(), "--project-dir", "-d", help="Project directory"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
) -> None:
    """
    Run the sync agent until stopped.

    Ingestion and export run on the intervals from the schedule section of
    config.yaml. Ctrl+C cancels in-flight work and exits.
    """
    if ctx.invoked_subcommand is None:
        try:
            run_service(
                project_dir=project_dir,
                env=env,
                host=host,
                port=port,
                verbose=verbose,
                enable_http=False if no_http else None,
            )
        except GalediError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(1) from None
