"""
``galedi`` command line: run the agent, trigger single passes, inspect config and store.
"""

import typer

from galedi import __version__
from galedi.cli import config, run, serve, store

app = typer.Typer(
    name="galedi",
    help="Sync agent moving partner logistics (LE) records between FTP/SFTP drop sites and the record store.",
    invoke_without_command=True,
)

app.add_typer(serve.app, name="serve")
app.add_typer(run.ingest_app, name="ingest")
app.add_typer(run.export_app, name="export")
app.add_typer(config.app, name="config")
app.add_typer(store.app, name="store")


def _print_version(value: bool) -> None:
    if value:
        typer.echo(f"galedi version {__version__}")
        raise typer.Exit()


@app.callback()
def entrypoint(
    ctx: typer.Context,
    version: bool = typer.Option(
        False, "--version", "-V", callback=_print_version, is_eager=True, help="Show version and exit."
    ),
):
    """Run 'galedi <command> --help' for help on a specific command."""
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())


def main():
    app()


if __name__ == "__main__":
    main()
