"""Integration tests for the SQLite transactional executor."""

import sqlite3
from contextlib import closing
from pathlib import Path

import pytest

from lockstep.adapters.executor.sqlite import SQLiteTransactionExecutor, prepare_database
from lockstep.core.models import ActionStep, Party, PartyContext, PartyRun
from lockstep.core.sequenced import SequencedActionList
from lockstep.core.step_lock import StepLock
from lockstep.core.witness import OrderWitness

SCHEMA = (
    "DROP TABLE IF EXISTS accounts",
    "CREATE TABLE accounts (id INTEGER PRIMARY KEY, balance INTEGER NOT NULL)",
    "INSERT INTO accounts (id, balance) VALUES (1, 100)",
)


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """Create a prepared database with one account holding 100."""
    path = tmp_path / "lockstep.db"
    prepare_database(path, SCHEMA)
    return path


def _context(party: Party) -> PartyContext:
    return PartyContext(party=party, lock=StepLock(), run=PartyRun(party))


def _balance(db_path: Path) -> int:
    with closing(sqlite3.connect(str(db_path))) as conn:
        return conn.execute("SELECT balance FROM accounts WHERE id = 1").fetchone()[0]


def _deposit(executor: SQLiteTransactionExecutor, amount: int):
    def deposit() -> None:
        executor.connection().execute(
            "UPDATE accounts SET balance = balance + ? WHERE id = 1", (amount,)
        )

    return deposit


# ============================================================================
# Construction and transaction lifecycle
# ============================================================================


def test_rejects_unknown_begin_mode(db_path: Path) -> None:
    with pytest.raises(ValueError, match="begin_mode must be one of"):
        SQLiteTransactionExecutor(db_path, begin_mode="EVENTUALLY")  # type: ignore[arg-type]


def test_rejects_non_positive_busy_timeout(db_path: Path) -> None:
    with pytest.raises(ValueError, match="busy_timeout must be positive"):
        SQLiteTransactionExecutor(db_path, busy_timeout=0)


def test_connection_outside_run_raises(db_path: Path) -> None:
    executor = SQLiteTransactionExecutor(db_path)
    with pytest.raises(RuntimeError, match="No party is running on this thread"):
        executor.connection()


def test_commits_after_last_step(db_path: Path) -> None:
    executor = SQLiteTransactionExecutor(db_path)

    executor.run([ActionStep(_deposit(executor, 25), Party.A)], _context(Party.A))

    assert _balance(db_path) == 125
    assert executor.committed == [Party.A]
    assert executor.rolled_back == []


def test_rolls_back_when_step_raises(db_path: Path) -> None:
    executor = SQLiteTransactionExecutor(db_path)

    def fail() -> None:
        raise ValueError("insufficient funds")

    steps = [ActionStep(_deposit(executor, 25), Party.B), ActionStep(fail, Party.B)]
    with pytest.raises(ValueError, match="insufficient funds"):
        executor.run(steps, _context(Party.B))

    assert _balance(db_path) == 100
    assert executor.rolled_back == [Party.B]
    assert executor.committed == []


def test_autocommit_keeps_statements_after_failure(db_path: Path) -> None:
    """Without a transaction each statement is durable on its own."""
    executor = SQLiteTransactionExecutor(db_path, begin_mode=None)

    def fail() -> None:
        raise ValueError("late failure")

    steps = [ActionStep(_deposit(executor, 25), Party.A), ActionStep(fail, Party.A)]
    with pytest.raises(ValueError):
        executor.run(steps, _context(Party.A))

    assert _balance(db_path) == 125
    assert executor.rolled_back == []


def test_transaction_begins_lazily(db_path: Path) -> None:
    """Steps that never touch the database open no connection."""
    executor = SQLiteTransactionExecutor(db_path, begin_mode="EXCLUSIVE")

    executor.run([ActionStep(lambda: None, Party.A)], _context(Party.A))

    assert executor.committed == []


def test_connection_reused_within_run(db_path: Path) -> None:
    executor = SQLiteTransactionExecutor(db_path)
    connections: list[sqlite3.Connection] = []

    steps = [
        ActionStep(lambda: connections.append(executor.connection()), Party.A),
        ActionStep(lambda: connections.append(executor.connection()), Party.A),
    ]
    executor.run(steps, _context(Party.A))

    assert connections[0] is connections[1]


def test_rows_are_addressable_by_column(db_path: Path) -> None:
    executor = SQLiteTransactionExecutor(db_path)
    rows: list[sqlite3.Row] = []

    def read() -> None:
        rows.append(
            executor.connection().execute("SELECT balance FROM accounts").fetchone()
        )

    executor.run([ActionStep(read, Party.A)], _context(Party.A))

    assert rows[0]["balance"] == 100


def test_run_is_not_reentrant(db_path: Path) -> None:
    executor = SQLiteTransactionExecutor(db_path)

    def nested() -> None:
        executor.run([], _context(Party.A))

    with pytest.raises(RuntimeError, match="not reentrant"):
        executor.run([ActionStep(nested, Party.A)], _context(Party.A))


def test_prepare_database_enables_wal(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "dir" / "fresh.db"
    prepare_database(path, SCHEMA)

    with closing(sqlite3.connect(str(path))) as conn:
        mode = conn.execute("PRAGMA journal_mode").fetchone()[0]
    assert mode == "wal"
    assert _balance(path) == 100


# ============================================================================
# Scripted interleavings
# ============================================================================


def test_blocked_writer_waits_for_peer_commit(db_path: Path) -> None:
    """B's write cannot start until A commits its own write."""
    executor = SQLiteTransactionExecutor(db_path, begin_mode="IMMEDIATE")
    witness = OrderWitness()
    deposit_30 = _deposit(executor, 30)

    def blocked_deposit() -> None:
        deposit_30()
        witness.mark_potential_block_point()

    (
        SequencedActionList()
        .add_for_a(_deposit(executor, 10))
        .add_blocking_probe_for_b(blocked_deposit)
        .add_for_a(witness.mark_ran_first)
        .execute(executor, executor)
    )

    assert witness.was_correct_order() is True
    assert _balance(db_path) == 140
    assert sorted(executor.committed, key=lambda p: p.value) == [Party.A, Party.B]


def test_reader_keeps_snapshot_inside_transaction(db_path: Path) -> None:
    reader = SQLiteTransactionExecutor(db_path, begin_mode="DEFERRED")
    writer = SQLiteTransactionExecutor(db_path, begin_mode="IMMEDIATE")
    balances: list[int] = []

    def read() -> None:
        row = reader.connection().execute("SELECT balance FROM accounts").fetchone()
        balances.append(row["balance"])

    (
        SequencedActionList()
        .add_for_a(read)
        .add_for_b(_deposit(writer, 50))
        .add_for_a(read)
        .execute(reader, writer)
    )

    assert balances == [100, 100]
    assert _balance(db_path) == 150


def test_failing_party_rolls_back_while_peer_commits(db_path: Path) -> None:
    executor = SQLiteTransactionExecutor(db_path, begin_mode="IMMEDIATE")

    def fail() -> None:
        raise RuntimeError("abort")

    script = (
        SequencedActionList()
        .add_for_a(fail)
        .add_for_b(_deposit(executor, 5))
    )
    with pytest.raises(RuntimeError, match="abort"):
        script.execute(executor, executor)

    assert _balance(db_path) == 105
    assert executor.committed == [Party.B]
