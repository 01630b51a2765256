"""racelab CLI: reproducible race conditions and their remedies."""

from pathlib import Path

import typer
from rich.table import Table

from racelab import __version__

from .commands import demo_app, init, lock_app, worker_app
from .commands.common import set_config_path
from .logging import configure_logging
from .output import OutputContext, get_output_context, set_output_context


def _version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"racelab {__version__}")
        raise typer.Exit()


app = typer.Typer(
    name="racelab",
    help="Make race conditions reproducible, then remove them with a file lock",
    no_args_is_help=True,
)

app.add_typer(demo_app, name="demo")
app.add_typer(lock_app, name="lock")
app.add_typer(worker_app, name="worker", hidden=True)

app.command()(init)


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase verbosity (-v, -vv)",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Suppress non-error output",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output in JSON format for automation",
    ),
    no_color: bool = typer.Option(
        False,
        "--no-color",
        help="Disable colored output",
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Enable debug logging with timestamps and source paths",
    ),
    config: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Config file (defaults to ./racelab.toml if present)",
    ),
) -> None:
    """racelab - race condition demonstrations."""
    console = configure_logging(
        verbosity=verbose,
        quiet=quiet,
        no_color=no_color,
        debug=debug,
    )
    set_output_context(OutputContext(console=console, json_mode=json_output))
    set_config_path(config)


@app.command("list")
def list_demos() -> None:
    """List available demos."""
    ctx = get_output_context()
    demos = {
        "counter": "Lost updates on a shared counter (read-modify-write)",
        "bank": "Overdraft from concurrent withdrawals (check-then-act)",
        "inventory": "Overselling from concurrent purchases (check-then-act)",
        "buffer": "Lost or doubly consumed items in a bounded producer-consumer buffer",
        "transfer": "Money moved between SQLite rows, with and without transactions",
        "all": "Every demo, unprotected and then with its remedy",
    }
    if ctx.json_mode:
        ctx.print_json({"demos": demos})
        return

    table = Table(title="Demos")
    table.add_column("Name", style="bold")
    table.add_column("Shows")
    for name, description in demos.items():
        table.add_row(name, description)
    ctx.console.print(table)
    ctx.console.print("\nRun with: racelab demo <name> [--lock | --both]")


if __name__ == "__main__":
    app()
