"""Logging configuration for racelab."""

import logging
import sys
from enum import IntEnum
from typing import TextIO

from rich.console import Console
from rich.logging import RichHandler

WORKER_FORMAT = "[%(asctime)s.%(msecs)03d] [PID %(process)d] %(levelname)s %(message)s"
WORKER_DATEFMT = "%H:%M:%S"


class LogLevel(IntEnum):
    """Log level enumeration."""

    QUIET = logging.WARNING
    NORMAL = logging.INFO
    VERBOSE = logging.DEBUG


def level_for(verbosity: int = 0, quiet: bool = False, debug: bool = False) -> int:
    """Map CLI flags to a log level.

    Flag precedence: quiet > debug > verbosity.
    """
    if quiet:
        return LogLevel.QUIET
    if debug or verbosity >= 1:
        return LogLevel.VERBOSE
    return LogLevel.NORMAL


def configure_logging(
    verbosity: int = 0,
    quiet: bool = False,
    no_color: bool = False,
    debug: bool = False,
) -> Console:
    """Configure logging for the orchestrating CLI process.

    Args:
        verbosity: Number of -v flags (0=normal, 1+=debug)
        quiet: Suppress non-error output (takes precedence over debug/verbosity)
        no_color: Disable colored output
        debug: Enable debug logging (equivalent to -vv, ignored if quiet is set)

    Returns:
        Configured Rich console for output
    """
    level = level_for(verbosity, quiet, debug)

    console = Console(
        stderr=True,
        force_terminal=not no_color,
        no_color=no_color,
    )

    handler = RichHandler(
        console=console,
        show_time=debug or verbosity >= 2,
        show_path=debug or verbosity >= 2,
    )

    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[handler],
        force=True,
    )

    return console


def configure_worker_logging(level: int | str = logging.INFO, stream: TextIO = sys.stderr) -> None:
    """Configure logging inside a worker process.

    Worker lines interleave with their siblings on a shared terminal, so
    each one carries a millisecond timestamp and the worker's PID.
    """
    handler = logging.StreamHandler(stream)
    handler.setFormatter(logging.Formatter(WORKER_FORMAT, datefmt=WORKER_DATEFMT))
    logging.basicConfig(level=level, handlers=[handler], force=True)
