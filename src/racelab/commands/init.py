"""Init command: write a config template."""

from pathlib import Path

import typer

from ..config import write_config_template
from ..constants import CONFIG_FILENAME
from ..output import get_output_context


def init(
    directory: Path = typer.Option(
        Path("."), "--dir", "-d", help="Directory to write racelab.toml into"
    ),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing config"),
) -> None:
    """Write a racelab.toml config template."""
    ctx = get_output_context()
    config_path = directory / CONFIG_FILENAME
    if config_path.exists() and not force:
        ctx.print(f"[yellow]Config already exists:[/yellow] {config_path}")
        return

    directory.mkdir(parents=True, exist_ok=True)
    written = write_config_template(directory)
    ctx.success(f"Created config template: {written}", {"path": str(written)})
