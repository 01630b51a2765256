"""Lock inspection and manual cleanup commands.

Locks are never cleared automatically. A worker that crashes while holding
a lock leaves its marker behind; ``racelab lock cleanup`` is the only way
to remove it.
"""

import typer

from ..constants import EXIT_USAGE
from ..core import FileLock, inspect_lock
from ..output import get_output_context
from .common import get_config

lock_app = typer.Typer(help="Inspect or clear lock markers")


@lock_app.command("status")
def status(name: str = typer.Argument(..., help="Lock name (e.g. counter-mutex)")) -> None:
    """Show whether a lock is held, by whom, and whether the owner is alive."""
    ctx = get_output_context()
    config = get_config()
    try:
        lock_status = inspect_lock(name, config.paths.get_lock_dir())
    except ValueError as e:
        ctx.error(str(e))
        raise typer.Exit(EXIT_USAGE) from None

    if ctx.json_mode:
        ctx.print_json({**lock_status.model_dump(mode="json"), "stale": lock_status.stale})
        return

    ctx.console.print(f"[bold]Lock:[/bold] {lock_status.name}")
    ctx.console.print(f"[bold]Marker:[/bold] {lock_status.path}")
    if not lock_status.held:
        ctx.console.print("[green]Free[/green]")
        return
    ctx.console.print(f"[bold]Owner:[/bold] {lock_status.owner}")
    if lock_status.stale:
        ctx.console.print("[yellow]Stale: owner process is not running[/yellow]")
        ctx.console.print(f"  Clear with: racelab lock cleanup {name}")
    elif lock_status.owner_alive:
        ctx.console.print("[cyan]Held by a running process[/cyan]")


@lock_app.command("cleanup")
def cleanup(
    name: str = typer.Argument(..., help="Lock name (e.g. counter-mutex)"),
    force: bool = typer.Option(
        False, "--force", "-f", help="Remove even if the owner is still running"
    ),
) -> None:
    """Remove a lock marker, bypassing the ownership check."""
    ctx = get_output_context()
    config = get_config()
    lock_dir = config.paths.get_lock_dir()
    try:
        lock_status = inspect_lock(name, lock_dir)
    except ValueError as e:
        ctx.error(str(e))
        raise typer.Exit(EXIT_USAGE) from None

    if not lock_status.held:
        ctx.success(f"Lock {name} is not held", {"removed": False})
        return
    if lock_status.owner_alive and not force:
        ctx.error(
            f"Lock {name} is held by running process {lock_status.owner}; use --force to remove",
            {"owner": lock_status.owner},
        )
        raise typer.Exit(EXIT_USAGE)

    FileLock(name, lock_dir).cleanup()
    ctx.success(f"Removed lock {name} (owner {lock_status.owner})", {"removed": True})
