"""CLI command implementations for racelab.

This package contains the implementation of each CLI command,
separated from the CLI framework setup in cli.py.
"""

from .demo import demo_app
from .init import init
from .lock import lock_app
from .worker import worker_app

__all__ = [
    "demo_app",
    "init",
    "lock_app",
    "worker_app",
]
