"""SQLite transactional executor adapter.

Implements TransactionExecutorPort by wrapping each party's steps in one
SQLite transaction. Both parties may share a single executor instance:
the connection is bound to the party's thread, and steps reach it through
``executor.connection()``.

The connection and its ``BEGIN`` are opened lazily, on the first
``connection()`` call made by a step. A party therefore only contends for
database locks inside the step that first touches the database, which is
what lets a blocking probe observe a writer waiting on its peer.
"""

import logging
import sqlite3
import threading
from collections.abc import Iterable, Sequence
from contextlib import closing
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, TypeAlias

from lockstep.core.models import ActionStep, Party, PartyContext
from lockstep.core.ports import TransactionExecutorPort

logger = logging.getLogger(__name__)

BeginMode: TypeAlias = Literal["DEFERRED", "IMMEDIATE", "EXCLUSIVE"]

_BEGIN_MODES = {"DEFERRED", "IMMEDIATE", "EXCLUSIVE"}


@dataclass
class _Session:
    """Per-thread transaction state for one ``run()`` call."""

    party: Party
    connection: sqlite3.Connection | None = None


class SQLiteTransactionExecutor(TransactionExecutorPort):
    """Runs a party's steps inside a single SQLite transaction.

    Commits after the last step, rolls back if any step raises, and always
    closes the connection. With ``begin_mode=None`` every statement runs in
    autocommit mode, i.e. without an enclosing transaction.
    """

    def __init__(
        self,
        db_path: str | Path,
        begin_mode: BeginMode | None = "DEFERRED",
        busy_timeout: float = 5.0,
    ):
        """Initialize the executor.

        Args:
            db_path: Path to the SQLite database file.
            begin_mode: Transaction begin mode, or None for autocommit.
            busy_timeout: Seconds a statement waits on a locked database
                before failing with ``sqlite3.OperationalError``.

        Raises:
            ValueError: If begin_mode or busy_timeout is invalid.
        """
        if begin_mode is not None and begin_mode not in _BEGIN_MODES:
            raise ValueError(
                f"begin_mode must be one of {sorted(_BEGIN_MODES)} or None, got {begin_mode!r}"
            )
        if busy_timeout <= 0:
            raise ValueError(f"busy_timeout must be positive, got {busy_timeout}")
        self.db_path = Path(db_path)
        self.begin_mode = begin_mode
        self.busy_timeout = busy_timeout
        self.committed: list[Party] = []
        self.rolled_back: list[Party] = []
        self._local = threading.local()

    def connection(self) -> sqlite3.Connection:
        """Return the calling party's connection, beginning its transaction.

        Raises:
            RuntimeError: If called outside a step run by this executor.
            sqlite3.OperationalError: If the transaction cannot begin
                within the busy timeout.
        """
        session: _Session | None = getattr(self._local, "session", None)
        if session is None:
            raise RuntimeError(
                "No party is running on this thread; connection() must be "
                "called from a step executed by this executor"
            )
        if session.connection is None:
            conn = sqlite3.connect(
                str(self.db_path), timeout=self.busy_timeout, isolation_level=None
            )
            conn.row_factory = sqlite3.Row
            if self.begin_mode is not None:
                try:
                    conn.execute(f"BEGIN {self.begin_mode}")
                except sqlite3.Error:
                    conn.close()
                    raise
                logger.debug(f"Party {session.party.value}: BEGIN {self.begin_mode}")
            session.connection = conn
        return session.connection

    def run(self, steps: Sequence[ActionStep], context: PartyContext) -> None:
        """Run the steps, then commit, or roll back and re-raise."""
        if getattr(self._local, "session", None) is not None:
            raise RuntimeError("SQLiteTransactionExecutor.run() is not reentrant")

        session = _Session(party=context.party)
        self._local.session = session
        try:
            for step in steps:
                step()
        except BaseException:
            self._finish(session, commit=False)
            raise
        else:
            self._finish(session, commit=True)
        finally:
            self._local.session = None

    def _finish(self, session: _Session, commit: bool) -> None:
        conn = session.connection
        if conn is None:
            return
        try:
            if conn.in_transaction:
                if commit:
                    conn.execute("COMMIT")
                    self.committed.append(session.party)
                    logger.info(f"Party {session.party.value}: committed")
                else:
                    conn.execute("ROLLBACK")
                    self.rolled_back.append(session.party)
                    logger.info(f"Party {session.party.value}: rolled back")
        finally:
            conn.close()
            session.connection = None


def prepare_database(
    db_path: str | Path, statements: Iterable[str], wal: bool = True
) -> None:
    """Create or reset a database by running ``statements`` in autocommit mode.

    Args:
        db_path: Path to the SQLite database file. Parent directories are
            created as needed.
        statements: SQL statements to run in order.
        wal: Switch the database to write-ahead logging, so readers keep
            their snapshot while a writer commits.
    """
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with closing(sqlite3.connect(str(path), isolation_level=None)) as conn:
        if wal:
            conn.execute("PRAGMA journal_mode=WAL")
        for statement in statements:
            conn.execute(statement)
    logger.debug(f"Prepared database at {path}")
