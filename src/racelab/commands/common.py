"""Helpers shared by CLI commands."""

from pathlib import Path

import typer

from ..config import ConfigError, RacelabConfig, load_config
from ..constants import EXIT_CONFIG
from ..output import get_output_context

# Set by cli.py main callback from --config
_config_path: Path | None = None


def set_config_path(path: Path | None) -> None:
    """Remember the --config path for commands that load configuration."""
    global _config_path
    _config_path = path


def get_config() -> RacelabConfig:
    """Load configuration, exiting with EXIT_CONFIG if it is invalid."""
    try:
        return load_config(_config_path)
    except ConfigError as e:
        get_output_context().error(str(e))
        raise typer.Exit(EXIT_CONFIG) from None
