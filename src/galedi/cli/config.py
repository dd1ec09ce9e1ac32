"""
galedi config - Validate and display the resolved configuration.
"""

from pathlib import Path

import typer
import yaml
from rich.console import Console
from rich.markup import escape
from rich.syntax import Syntax

from galedi.config.loader import load_config
from galedi.exceptions import ConfigurationError

app = typer.Typer(name="config", help="Validate and show the agent configuration", invoke_without_command=True)

console = Console()


@app.callback()
def config(
    ctx: typer.Context,
    env: str | None = typer.Option(None, envvar="GALEDI_ENV", help="Environment (dev, staging, prod)"),
    project_dir: Path = typer.Option(Path.cwd(), "--project-dir", "-d", help="Project directory"),
):
    """
    Validate config.yaml (plus config.<env>.yaml) and print it with secrets masked.
    """
    if ctx.invoked_subcommand is None:
        try:
            cfg = load_config(project_dir, env=env)
        except ConfigurationError as e:
            if e.problems:
                console.print("[red]Invalid configuration:[/red]")
                for problem in e.problems:
                    console.print(f"  - {escape(problem)}")
            else:
                console.print(f"[red]Invalid configuration:[/red] {escape(str(e))}")
            raise typer.Exit(1) from None

        console.print(f"\n[bold]Configuration ({cfg.env})[/bold]\n")
        content = yaml.safe_dump(cfg.masked(), sort_keys=False)
        console.print(Syntax(content, "yaml", theme="monokai", line_numbers=False))
        enabled = ", ".join(p.partner_id for p in cfg.enabled_partners())
        console.print(f"[green]Configuration is valid[/green] (enabled partners: {enabled})")
