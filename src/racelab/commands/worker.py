"""Worker process entry points (``racelab worker ...``).

The harness spawns one process per worker with these commands. Logs go to
stderr; the last stdout line is the WorkerOutcome JSON the harness parses.
Exit status is 0 on normal completion and 1 when a lock acquisition was
exhausted or an unrecoverable error occurred.
"""

import logging
import os
import sqlite3
from pathlib import Path

import typer

from ..constants import DEFAULT_BUFFER_ATTEMPTS, DEFAULT_MAX_RETRIES, DEFAULT_RETRY_DELAY_MS
from ..core import (
    DelayWindow,
    FileBufferStore,
    FileLock,
    FileResourceStore,
    ResourceError,
    TransferError,
    run_buffer_worker,
    run_worker,
    transfer_transactional,
    transfer_unprotected,
)
from ..logging import configure_worker_logging
from ..models import WorkerOutcome, WorkerShape, WorkerSpec

logger = logging.getLogger(__name__)

worker_app = typer.Typer(help="Run one worker process (spawned by the harness)")


def _finish(outcome: WorkerOutcome) -> None:
    typer.echo(outcome.model_dump_json())
    if not outcome.ok:
        raise typer.Exit(1)


def _shared_lock(
    lock_name: str | None, lock_dir: Path, max_retries: int, retry_delay_ms: float
) -> FileLock | None:
    if not lock_name:
        return None
    return FileLock(lock_name, lock_dir, max_retries=max_retries, retry_delay=retry_delay_ms / 1000)


def _run_shape(
    shape: WorkerShape,
    worker_id: str,
    repetitions: int,
    amount: int,
    store: Path,
    window: DelayWindow,
    pause: DelayWindow,
    lock_name: str | None,
    lock_dir: Path | None,
    max_retries: int,
    retry_delay_ms: float,
) -> None:
    lock = _shared_lock(lock_name, lock_dir or store.parent, max_retries, retry_delay_ms)
    spec = WorkerSpec(worker_id=worker_id, repetitions=repetitions, amount=amount)
    try:
        outcome = run_worker(spec, shape, FileResourceStore(store), window, pause, lock)
    except ResourceError as e:
        logger.error("%s error: %s", worker_id, e)
        raise typer.Exit(1) from None
    _finish(outcome)


def _run_buffer_role(
    shape: WorkerShape,
    worker_id: str,
    repetitions: int,
    store: Path,
    window: DelayWindow,
    pause: DelayWindow,
    lock_name: str | None,
    lock_dir: Path | None,
    max_retries: int,
    retry_delay_ms: float,
    max_attempts: int,
) -> None:
    lock = _shared_lock(lock_name, lock_dir or store.parent, max_retries, retry_delay_ms)
    spec = WorkerSpec(worker_id=worker_id, repetitions=repetitions, shape=shape)
    try:
        outcome = run_buffer_worker(
            spec, shape, FileBufferStore(store), window, pause, lock, max_attempts
        )
    except ResourceError as e:
        logger.error("%s error: %s", worker_id, e)
        raise typer.Exit(1) from None
    _finish(outcome)


# Options shared by the worker commands
_ID = typer.Option(..., "--id", help="Worker identity")
_REPETITIONS = typer.Option(1, "--repetitions", "-n", min=1, help="Cycles to run")
_AMOUNT = typer.Option(1, "--amount", "-a", help="Delta or quantity per cycle")
_STORE = typer.Option(..., "--store", help="Resource file")
_WINDOW_MIN = typer.Option(0.0, "--window-min-ms", min=0, help="Min delay inside the window")
_WINDOW_MAX = typer.Option(0.0, "--window-max-ms", min=0, help="Max delay inside the window")
_PAUSE_MIN = typer.Option(0.0, "--pause-min-ms", min=0, help="Min delay between cycles")
_PAUSE_MAX = typer.Option(0.0, "--pause-max-ms", min=0, help="Max delay between cycles")
_LOCK_NAME = typer.Option(None, "--lock-name", help="Shared lock name (omit for no lock)")
_LOCK_DIR = typer.Option(None, "--lock-dir", help="Lock marker directory")
_MAX_RETRIES = typer.Option(
    DEFAULT_MAX_RETRIES, "--max-retries", min=1, help="Lock acquire attempts"
)
_RETRY_DELAY = typer.Option(
    float(DEFAULT_RETRY_DELAY_MS), "--retry-delay-ms", min=0, help="Delay between attempts"
)
_LOG_LEVEL = typer.Option("INFO", "--log-level", help="Worker log level")
_MAX_ATTEMPTS = typer.Option(
    DEFAULT_BUFFER_ATTEMPTS, "--max-attempts", min=1, help="Tries per item on full/empty"
)


@worker_app.command("rmw")
def rmw(
    worker_id: str = _ID,
    repetitions: int = _REPETITIONS,
    amount: int = _AMOUNT,
    store: Path = _STORE,
    window_min_ms: float = _WINDOW_MIN,
    window_max_ms: float = _WINDOW_MAX,
    pause_min_ms: float = _PAUSE_MIN,
    pause_max_ms: float = _PAUSE_MAX,
    lock_name: str | None = _LOCK_NAME,
    lock_dir: Path | None = _LOCK_DIR,
    max_retries: int = _MAX_RETRIES,
    retry_delay_ms: float = _RETRY_DELAY,
    log_level: str = _LOG_LEVEL,
) -> None:
    """Read-modify-write worker: add AMOUNT to the resource REPETITIONS times."""
    configure_worker_logging(log_level.upper())
    _run_shape(
        WorkerShape.READ_MODIFY_WRITE,
        worker_id,
        repetitions,
        amount,
        store,
        DelayWindow(window_min_ms, window_max_ms),
        DelayWindow(pause_min_ms, pause_max_ms),
        lock_name,
        lock_dir,
        max_retries,
        retry_delay_ms,
    )


@worker_app.command("cta")
def cta(
    worker_id: str = _ID,
    repetitions: int = _REPETITIONS,
    amount: int = _AMOUNT,
    store: Path = _STORE,
    window_min_ms: float = _WINDOW_MIN,
    window_max_ms: float = _WINDOW_MAX,
    pause_min_ms: float = _PAUSE_MIN,
    pause_max_ms: float = _PAUSE_MAX,
    lock_name: str | None = _LOCK_NAME,
    lock_dir: Path | None = _LOCK_DIR,
    max_retries: int = _MAX_RETRIES,
    retry_delay_ms: float = _RETRY_DELAY,
    log_level: str = _LOG_LEVEL,
) -> None:
    """Check-then-act worker: take AMOUNT from the resource if enough is left."""
    configure_worker_logging(log_level.upper())
    _run_shape(
        WorkerShape.CHECK_THEN_ACT,
        worker_id,
        repetitions,
        amount,
        store,
        DelayWindow(window_min_ms, window_max_ms),
        DelayWindow(pause_min_ms, pause_max_ms),
        lock_name,
        lock_dir,
        max_retries,
        retry_delay_ms,
    )


@worker_app.command("produce")
def produce(
    worker_id: str = _ID,
    repetitions: int = _REPETITIONS,
    store: Path = _STORE,
    window_min_ms: float = _WINDOW_MIN,
    window_max_ms: float = _WINDOW_MAX,
    pause_min_ms: float = _PAUSE_MIN,
    pause_max_ms: float = _PAUSE_MAX,
    lock_name: str | None = _LOCK_NAME,
    lock_dir: Path | None = _LOCK_DIR,
    max_retries: int = _MAX_RETRIES,
    retry_delay_ms: float = _RETRY_DELAY,
    max_attempts: int = _MAX_ATTEMPTS,
    log_level: str = _LOG_LEVEL,
) -> None:
    """Producer: add REPETITIONS items to the buffer, waiting while it is full."""
    configure_worker_logging(log_level.upper())
    _run_buffer_role(
        WorkerShape.PRODUCE,
        worker_id,
        repetitions,
        store,
        DelayWindow(window_min_ms, window_max_ms),
        DelayWindow(pause_min_ms, pause_max_ms),
        lock_name,
        lock_dir,
        max_retries,
        retry_delay_ms,
        max_attempts,
    )


@worker_app.command("consume")
def consume(
    worker_id: str = _ID,
    repetitions: int = _REPETITIONS,
    store: Path = _STORE,
    window_min_ms: float = _WINDOW_MIN,
    window_max_ms: float = _WINDOW_MAX,
    pause_min_ms: float = _PAUSE_MIN,
    pause_max_ms: float = _PAUSE_MAX,
    lock_name: str | None = _LOCK_NAME,
    lock_dir: Path | None = _LOCK_DIR,
    max_retries: int = _MAX_RETRIES,
    retry_delay_ms: float = _RETRY_DELAY,
    max_attempts: int = _MAX_ATTEMPTS,
    log_level: str = _LOG_LEVEL,
) -> None:
    """Consumer: take REPETITIONS items from the buffer, waiting while it is empty."""
    configure_worker_logging(log_level.upper())
    _run_buffer_role(
        WorkerShape.CONSUME,
        worker_id,
        repetitions,
        store,
        DelayWindow(window_min_ms, window_max_ms),
        DelayWindow(pause_min_ms, pause_max_ms),
        lock_name,
        lock_dir,
        max_retries,
        retry_delay_ms,
        max_attempts,
    )


@worker_app.command("transfer")
def transfer(
    worker_id: str = _ID,
    db: Path = typer.Option(..., "--db", help="SQLite database file"),
    source: str = typer.Option("Alice", "--source", help="Account to debit"),
    dest: str = typer.Option("Bob", "--dest", help="Account to credit"),
    amount: int = typer.Option(100, "--amount", "-a", min=1, help="Amount to move"),
    busy_timeout: float = typer.Option(30.0, "--busy-timeout", help="SQLite lock wait (s)"),
    window_min_ms: float = _WINDOW_MIN,
    window_max_ms: float = _WINDOW_MAX,
    transactional: bool = typer.Option(
        False, "--transactional/--no-transaction", help="Wrap the transfer in a transaction"
    ),
    log_level: str = _LOG_LEVEL,
) -> None:
    """Database transfer worker: move AMOUNT from SOURCE to DEST once."""
    configure_worker_logging(log_level.upper())
    window = DelayWindow(window_min_ms, window_max_ms)
    do_transfer = transfer_transactional if transactional else transfer_unprotected
    logger.info(
        "%s: moving $%d from %s to %s (%s)",
        worker_id,
        amount,
        source,
        dest,
        "transaction" if transactional else "no transaction",
    )

    outcome = WorkerOutcome(worker_id=worker_id, pid=os.getpid(), attempted=1)
    try:
        if do_transfer(db, source, dest, amount, window, busy_timeout):
            outcome.applied = 1
        else:
            outcome.rejected = 1
    except (TransferError, sqlite3.Error) as e:
        logger.error("%s transfer error: %s", worker_id, e)
        raise typer.Exit(1) from None
    _finish(outcome)
