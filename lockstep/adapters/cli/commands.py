"""CLI command implementations for the built-in scenarios.

Each scenario scripts a classic two-transaction race and reports what the
database actually did. Results are plain dictionaries ready to be printed
as JSON; failures are reported as ``{"status": "error"}`` results rather
than raised.
"""

import logging
import sqlite3
import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from contextlib import closing
from functools import partial
from pathlib import Path
from typing import Any

from lockstep.adapters.executor.expected import ExpectedFailureExecutor
from lockstep.adapters.executor.sqlite import (
    BeginMode,
    SQLiteTransactionExecutor,
    prepare_database,
)
from lockstep.core.errors import HarnessError
from lockstep.core.models import ActionStep, Party, PartyContext, PartyRun, StepKind
from lockstep.core.sequenced import DEFAULT_PROBE_DELAY, SequencedActionList
from lockstep.core.step_lock import StepLock
from lockstep.core.witness import OrderWitness

logger = logging.getLogger(__name__)

_ACCOUNT_SCHEMA = (
    "DROP TABLE IF EXISTS accounts",
    "CREATE TABLE accounts (id INTEGER PRIMARY KEY, balance INTEGER NOT NULL)",
    "INSERT INTO accounts (id, balance) VALUES (1, 100)",
)

_EMPTY_COMPANY_SCHEMA = (
    "DROP TABLE IF EXISTS companies",
    "CREATE TABLE companies (id INTEGER PRIMARY KEY, name TEXT NOT NULL UNIQUE)",
)

_COMPANY_SCHEMA = (
    *_EMPTY_COMPANY_SCHEMA,
    "INSERT INTO companies (id, name) VALUES (1, 'COMPANY 1')",
)

# Seconds an inserting transaction is given to commit after its last step
DEFAULT_COMMIT_GRACE = 0.2


class ScenarioCommandHandler:
    """Runs the demonstration scenarios on behalf of the CLI."""

    def __init__(
        self,
        db_path: str | Path,
        busy_timeout: float = 5.0,
        probe_delay: float = DEFAULT_PROBE_DELAY,
        rounds: int = 4,
        commit_grace: float = DEFAULT_COMMIT_GRACE,
    ):
        """Initialize the scenario handler.

        Args:
            db_path: SQLite database file the database scenarios reset and use.
            busy_timeout: Seconds a statement waits on a locked database.
            probe_delay: Delay in seconds used by blocking probes.
            rounds: Number of rounds for the ping-pong scenario.
            commit_grace: Seconds the inserting party of count-while-inserting
                is given to commit before its peer is released.

        Raises:
            ValueError: If rounds, probe_delay or commit_grace is not positive.
        """
        if rounds <= 0:
            raise ValueError(f"rounds must be positive, got {rounds}")
        if probe_delay <= 0:
            raise ValueError(f"probe_delay must be positive, got {probe_delay}")
        if commit_grace <= 0:
            raise ValueError(f"commit_grace must be positive, got {commit_grace}")
        self.db_path = Path(db_path)
        self.busy_timeout = busy_timeout
        self.probe_delay = probe_delay
        self.rounds = rounds
        self.commit_grace = commit_grace
        self._scenarios: dict[str, tuple[str, Callable[[], dict[str, Any]]]] = {
            "ping-pong": (
                "Two threads alternate strictly over a bare StepLock",
                self._ping_pong,
            ),
            "lost-update": (
                "Two autocommit read-modify-write cycles; the first increment is lost",
                self._lost_update,
            ),
            "blocking-write": (
                "B's write blocks on A's write lock until A commits",
                self._blocking_write,
            ),
            "snapshot-read": (
                "A re-reads inside one transaction and keeps its snapshot",
                self._snapshot_read,
            ),
            "non-repeatable-read": (
                "A re-reads without a transaction and sees B's committed update",
                self._non_repeatable_read,
            ),
            "count-while-inserting": (
                "A counts while B inserts; B's row only shows up once B has committed",
                self._count_while_inserting,
            ),
            "unique-violation": (
                "B's duplicate insert blocks on A and fails once A commits",
                self._unique_violation,
            ),
        }

    def list_scenarios(self) -> dict[str, Any]:
        """Describe the available scenarios."""
        return {
            "status": "success",
            "operation": "list",
            "scenarios": {
                name: description for name, (description, _) in self._scenarios.items()
            },
        }

    def run_scenario(self, name: str) -> dict[str, Any]:
        """Run a scenario by name.

        Returns:
            Dictionary with status, scenario name and the scenario's
            observations, or an error message.
        """
        if name not in self._scenarios:
            return {
                "status": "error",
                "operation": "run",
                "scenario": name,
                "message": f"Unknown scenario: {name}",
            }

        _, scenario = self._scenarios[name]
        try:
            observations = scenario()
        except (HarnessError, sqlite3.Error) as e:
            logger.error(f"Scenario {name} failed: {e}")
            return {
                "status": "error",
                "operation": "run",
                "scenario": name,
                "message": str(e),
            }

        return {
            "status": "success",
            "operation": "run",
            "scenario": name,
            **observations,
        }

    # ========================================================================
    # Scenarios
    # ========================================================================

    def _ping_pong(self) -> dict[str, Any]:
        lock = StepLock()
        log: list[str] = []

        def pongs() -> None:
            lock.take(Party.B)
            for i in range(self.rounds):
                log.append(f"pong {i}")
                lock.handoff(Party.B)
            lock.terminate()

        thread = threading.Thread(target=pongs, name="lockstep-pong")
        thread.start()
        for i in range(self.rounds):
            log.append(f"ping {i}")
            lock.handoff(Party.A)
        lock.terminate()
        thread.join()

        return {"rounds": self.rounds, "log": log}

    def _read_balance(self, executor: SQLiteTransactionExecutor) -> int:
        row = executor.connection().execute(
            "SELECT balance FROM accounts WHERE id = 1"
        ).fetchone()
        return row["balance"]

    def _read_name(self, executor: SQLiteTransactionExecutor) -> str:
        row = executor.connection().execute(
            "SELECT name FROM companies WHERE id = 1"
        ).fetchone()
        return row["name"]

    def _final_value(self, query: str) -> Any:
        with closing(sqlite3.connect(str(self.db_path))) as conn:
            return conn.execute(query).fetchone()[0]

    def _lost_update(self) -> dict[str, Any]:
        prepare_database(self.db_path, _ACCOUNT_SCHEMA)
        executor = SQLiteTransactionExecutor(
            self.db_path, begin_mode=None, busy_timeout=self.busy_timeout
        )
        seen: dict[Party, int] = {}

        def read(party: Party) -> None:
            seen[party] = self._read_balance(executor)

        def write(party: Party, amount: int) -> None:
            executor.connection().execute(
                "UPDATE accounts SET balance = ? WHERE id = 1", (seen[party] + amount,)
            )

        (
            SequencedActionList(probe_delay=self.probe_delay)
            .add_for_a(lambda: read(Party.A))
            .add_for_b(lambda: read(Party.B))
            .add_for_a(lambda: write(Party.A, 10))
            .add_for_b(lambda: write(Party.B, 30))
            .execute(executor, executor)
        )

        balance = self._final_value("SELECT balance FROM accounts WHERE id = 1")
        return {
            "read_by_a": seen[Party.A],
            "read_by_b": seen[Party.B],
            "balance": balance,
            "serial_balance": 140,
            "lost_update": balance != 140,
        }

    def _blocking_write(self) -> dict[str, Any]:
        prepare_database(self.db_path, _ACCOUNT_SCHEMA)
        executor = SQLiteTransactionExecutor(
            self.db_path, begin_mode="IMMEDIATE", busy_timeout=self.busy_timeout
        )
        witness = OrderWitness()

        def deposit(amount: int) -> None:
            executor.connection().execute(
                "UPDATE accounts SET balance = balance + ? WHERE id = 1", (amount,)
            )

        def blocked_deposit() -> None:
            deposit(30)
            witness.mark_potential_block_point()

        report = (
            SequencedActionList(probe_delay=self.probe_delay)
            .add_for_a(lambda: deposit(10))
            .add_blocking_probe_for_b(blocked_deposit)
            .add_for_a(witness.mark_ran_first)
            .execute(executor, executor)
        )

        return {
            "balance": self._final_value("SELECT balance FROM accounts WHERE id = 1"),
            "b_waited_for_a": witness.was_correct_order(),
            "elapsed_seconds": round(report.elapsed_seconds, 3),
        }

    def _rename_race(self, reader_mode: BeginMode | None) -> dict[str, Any]:
        prepare_database(self.db_path, _COMPANY_SCHEMA)
        reader = SQLiteTransactionExecutor(
            self.db_path, begin_mode=reader_mode, busy_timeout=self.busy_timeout
        )
        writer = SQLiteTransactionExecutor(
            self.db_path, begin_mode="IMMEDIATE", busy_timeout=self.busy_timeout
        )
        names: list[str] = []

        def rename() -> None:
            writer.connection().execute(
                "UPDATE companies SET name = 'ENTERPRISE' WHERE id = 1"
            )

        (
            SequencedActionList(probe_delay=self.probe_delay)
            .add_for_a(lambda: names.append(self._read_name(reader)))
            .add_for_b(rename)
            .add_for_a(lambda: names.append(self._read_name(reader)))
            .execute(reader, writer)
        )

        return {
            "names_read_by_a": names,
            "committed_name": self._final_value("SELECT name FROM companies WHERE id = 1"),
            "repeatable": names[0] == names[1],
        }

    def _snapshot_read(self) -> dict[str, Any]:
        return self._rename_race("DEFERRED")

    def _non_repeatable_read(self) -> dict[str, Any]:
        return self._rename_race(None)

    def _count_companies(self, executor: SQLiteTransactionExecutor) -> int:
        return executor.connection().execute("SELECT COUNT(*) FROM companies").fetchone()[0]

    @staticmethod
    def _terminate_on_failure(
        lock: StepLock,
        executor: SQLiteTransactionExecutor,
        steps: list[ActionStep],
        context: PartyContext,
    ) -> None:
        try:
            executor.run(steps, context)
        except BaseException:
            lock.terminate()
            raise

    def _count_while_inserting(self) -> dict[str, Any]:
        """A counts before and after B's insert commits.

        B commits only after its last step, so no step of B can hand the
        turn back once the row is visible. B schedules the lock's termination
        instead, and A's second handoff waits for it, by which point B has
        committed.
        """
        prepare_database(self.db_path, _EMPTY_COMPANY_SCHEMA)
        counter = SQLiteTransactionExecutor(
            self.db_path, begin_mode=None, busy_timeout=self.busy_timeout
        )
        inserter = SQLiteTransactionExecutor(
            self.db_path, begin_mode="IMMEDIATE", busy_timeout=self.busy_timeout
        )
        lock = StepLock()
        counts: list[int] = []

        def count() -> None:
            counts.append(self._count_companies(counter))

        def insert() -> None:
            inserter.connection().execute(
                "INSERT INTO companies (name) VALUES ('COMPANY 1')"
            )

        def end_after_commit() -> None:
            lock.deferred_terminate(self.commit_grace)

        counting = [
            ActionStep(partial(lock.handoff, Party.A), Party.A, StepKind.HANDOFF, "handoff"),
            ActionStep(count, Party.A),
            ActionStep(partial(lock.handoff, Party.A), Party.A, StepKind.HANDOFF, "handoff"),
            ActionStep(count, Party.A),
        ]
        inserting = [
            ActionStep(partial(lock.take, Party.B), Party.B, StepKind.AWAIT_TURN, "await_turn"),
            ActionStep(insert, Party.B),
            ActionStep(partial(lock.handoff, Party.B), Party.B, StepKind.HANDOFF, "handoff"),
            ActionStep(end_after_commit, Party.B),
        ]

        with ThreadPoolExecutor(max_workers=1, thread_name_prefix="lockstep-inserter") as pool:
            inserted = pool.submit(
                self._terminate_on_failure,
                lock,
                inserter,
                inserting,
                PartyContext(party=Party.B, lock=lock, run=PartyRun(Party.B)),
            )
            try:
                counter.run(
                    counting, PartyContext(party=Party.A, lock=lock, run=PartyRun(Party.A))
                )
            finally:
                lock.terminate()
        inserted.result()

        return {
            "counts_read_by_a": counts,
            "committed_count": self._final_value("SELECT COUNT(*) FROM companies"),
            "saw_uncommitted_insert": counts[0] != 0,
        }

    def _unique_violation(self) -> dict[str, Any]:
        prepare_database(self.db_path, _EMPTY_COMPANY_SCHEMA)
        executor = SQLiteTransactionExecutor(
            self.db_path, begin_mode="IMMEDIATE", busy_timeout=self.busy_timeout
        )
        expecting = ExpectedFailureExecutor(executor, sqlite3.IntegrityError)
        witness = OrderWitness()

        def insert() -> None:
            executor.connection().execute(
                "INSERT INTO companies (name) VALUES ('COMPANY 1')"
            )

        def insert_duplicate() -> None:
            try:
                insert()
            except sqlite3.IntegrityError:
                witness.mark_potential_block_point()
                raise

        (
            SequencedActionList(probe_delay=self.probe_delay)
            .add_for_a(insert)
            .add_blocking_probe_for_b(insert_duplicate)
            .add_for_a(witness.mark_ran_first)
            .execute(executor, expecting)
        )

        return {
            "b_waited_for_a": witness.was_correct_order(),
            "b_error": type(expecting.caught).__name__,
            "committed_count": self._final_value("SELECT COUNT(*) FROM companies"),
        }
