"""Money transfers between two rows of a SQLite database.

The database engine is the collaborator here: the transactional transfer
delegates all mutual exclusion to its transaction boundary (BEGIN IMMEDIATE
before any read, COMMIT to publish, ROLLBACK on insufficient funds or any
error). The unprotected transfer reads both balances, sleeps, and writes
absolute values back with no transaction, so concurrent transfers
overwrite each other.
"""

import logging
import sqlite3
from collections.abc import Iterator, Sequence
from contextlib import closing, contextmanager
from pathlib import Path

from ..models import RunReport, TransferVerification
from .delay import DelayWindow

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE accounts (
    id INTEGER PRIMARY KEY,
    name TEXT NOT NULL UNIQUE,
    balance INTEGER NOT NULL DEFAULT 0,
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
)
"""


class TransferError(Exception):
    """Transfer could not be carried out."""


@contextmanager
def _connect(db_path: Path, busy_timeout: float = 30.0) -> Iterator[sqlite3.Connection]:
    # isolation_level=None: no implicit transactions, BEGIN/COMMIT are explicit
    conn = sqlite3.connect(db_path, timeout=busy_timeout, isolation_level=None)
    with closing(conn):
        yield conn


def _balance(conn: sqlite3.Connection, name: str) -> int:
    rows = conn.execute("SELECT balance FROM accounts WHERE name = ?", (name,)).fetchall()
    if not rows:
        raise TransferError(f"Account not found: {name}")
    return int(rows[0][0])


def _db_files(db_path: Path) -> list[Path]:
    return [db_path, *(db_path.with_name(db_path.name + s) for s in ("-journal", "-wal", "-shm"))]


class AccountsStore:
    """SQLite database holding the accounts, in the harness resource shape.

    Args:
        db_path: Database file
        accounts: Account names, each created with the initial balance
    """

    def __init__(self, db_path: Path, accounts: Sequence[str] = ("Alice", "Bob")) -> None:
        self.db_path = db_path
        self.accounts = list(accounts)

    def initialize(self, value: int) -> dict[str, int]:
        """Recreate the database with every account at ``value``."""
        self.teardown()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with _connect(self.db_path) as conn:
            conn.execute(SCHEMA)
            conn.executemany(
                "INSERT INTO accounts (name, balance) VALUES (?, ?)",
                [(name, value) for name in self.accounts],
            )
        return self.read()

    def read(self) -> dict[str, int]:
        """Current balances keyed by account name."""
        if not self.db_path.exists():
            raise TransferError(f"Database not found: {self.db_path}")
        with _connect(self.db_path) as conn:
            rows = conn.execute("SELECT name, balance FROM accounts ORDER BY id").fetchall()
        return {name: int(balance) for name, balance in rows}

    def teardown(self) -> None:
        for path in _db_files(self.db_path):
            path.unlink(missing_ok=True)

    def describe(self) -> str:
        return "\n".join(f"{name}: ${balance}" for name, balance in self.read().items())


def transfer_unprotected(
    db_path: Path,
    source: str,
    dest: str,
    amount: int,
    window: DelayWindow,
    busy_timeout: float = 30.0,
) -> bool:
    """Move money with separate statements and no transaction.

    Returns:
        True if the transfer was written, False for insufficient funds
    """
    with _connect(db_path, busy_timeout) as conn:
        source_balance = _balance(conn, source)
        logger.info("%s balance: $%d", source, source_balance)
        window.wait()
        if source_balance < amount:
            logger.warning("Insufficient funds in %s", source)
            return False

        dest_balance = _balance(conn, dest)
        window.wait()

        conn.execute(
            "UPDATE accounts SET balance = ?, updated_at = CURRENT_TIMESTAMP WHERE name = ?",
            (source_balance - amount, source),
        )
        logger.info("Deducted $%d from %s", amount, source)
        window.wait()
        conn.execute(
            "UPDATE accounts SET balance = ?, updated_at = CURRENT_TIMESTAMP WHERE name = ?",
            (dest_balance + amount, dest),
        )
        logger.info("Added $%d to %s", amount, dest)
    return True


def transfer_transactional(
    db_path: Path,
    source: str,
    dest: str,
    amount: int,
    window: DelayWindow,
    busy_timeout: float = 30.0,
) -> bool:
    """Move money inside one transaction.

    BEGIN IMMEDIATE takes the database write lock before the balance is
    read, so the check and both updates form one atomic unit.

    Returns:
        True if committed, False if rolled back for insufficient funds

    Raises:
        TransferError: If an account is missing (after rollback)
        sqlite3.Error: On database errors (after rollback)
    """
    with _connect(db_path, busy_timeout) as conn:
        conn.execute("BEGIN IMMEDIATE")
        logger.debug("Transaction started")
        try:
            source_balance = _balance(conn, source)
            _balance(conn, dest)
            logger.info("%s balance: $%d", source, source_balance)
            if source_balance < amount:
                conn.execute("ROLLBACK")
                logger.warning("Insufficient funds in %s, rolled back", source)
                return False

            window.wait()
            conn.execute(
                "UPDATE accounts SET balance = balance - ?, updated_at = CURRENT_TIMESTAMP "
                "WHERE name = ?",
                (amount, source),
            )
            logger.info("Deducted $%d from %s", amount, source)
            window.wait()
            conn.execute(
                "UPDATE accounts SET balance = balance + ?, updated_at = CURRENT_TIMESTAMP "
                "WHERE name = ?",
                (amount, dest),
            )
            logger.info("Added $%d to %s", amount, dest)
            conn.execute("COMMIT")
            logger.info("Transaction committed")
        except Exception:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
                logger.warning("Transaction rolled back due to error")
            raise
    return True


def verify_transfer(
    initial: int, balances: dict[str, int], report: RunReport, source: str, dest: str
) -> TransferVerification:
    """Compare final balances with the transfers workers reported as applied.

    Money is conserved in a correct run: the two balances always sum to
    twice the initial balance, and each side moved by exactly the reported
    transfers.
    """
    moved = sum(r.outcome.applied * r.spec.amount for r in report.runs if r.outcome is not None)
    expected_source = initial - moved
    expected_dest = initial + moved
    actual_source = balances.get(source, 0)
    actual_dest = balances.get(dest, 0)
    expected_total = 2 * initial
    actual_total = actual_source + actual_dest
    race = (
        actual_source != expected_source
        or actual_dest != expected_dest
        or actual_total != expected_total
    )
    return TransferVerification(
        initial=initial,
        expected_source=expected_source,
        expected_dest=expected_dest,
        actual_source=actual_source,
        actual_dest=actual_dest,
        expected_total=expected_total,
        actual_total=actual_total,
        lost_money=expected_total - actual_total,
        succeeded_count=report.total("applied"),
        race_detected=race,
        inconclusive=not report.all_succeeded,
    )
