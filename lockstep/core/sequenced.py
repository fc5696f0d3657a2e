"""Alternating two-party script builder and executor.

A test declares a strictly alternating chain of operations for parties A
and B. Each declared operation is followed by a handoff marker, so at run
time party A executes its first operation, hands the turn to B, waits to
be handed back, and so on. ``execute()`` runs both step lists on two real
threads, each through a caller-supplied executor that wraps the steps in
the party's own transaction.

Example::

    witness = OrderWitness()

    def blocked_update():
        repo.update_balance(1, 30)  # waits for A's row lock
        witness.mark_potential_block_point()

    (
        SequencedActionList()
        .add_for_a(lambda: repo.update_balance(1, 10))
        .add_blocking_probe_for_b(blocked_update)
        .add_for_a(witness.mark_ran_first)
        .execute(executor_a, executor_b)
    )
    assert witness.was_correct_order()

Deadlocks are not detected. A step that never reaches its handoff point
(because it blocks on something the peer holds) hangs the script unless
it was declared as a blocking probe.
"""

import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Any

from .errors import ScriptConsumed, SequenceViolation
from .models import (
    ActionStep,
    ExecutionReport,
    Party,
    PartyContext,
    PartyFailure,
    PartyRun,
    StepKind,
)
from .ports import StepExecutor
from .step_lock import StepLock

logger = logging.getLogger(__name__)

# Seconds a blocking probe waits before forcing the peer's turn
DEFAULT_PROBE_DELAY = 0.1


class StepHandle:
    """Passed to handle-based operations so they can yield mid-step.

    Each ``next()`` hands the turn to the peer and returns once the peer
    hands it back.
    """

    def __init__(self, party: Party, handoff: Callable[[], None]):
        self.party = party
        self._handoff = handoff
        self.handoffs = 0

    def next(self) -> None:
        self.handoffs += 1
        self._handoff()


class _Probe:
    """Delayed signal to the peer, armed right before a probed operation.

    The probe is disarmed as soon as the operation returns. If the
    operation blocked long enough for the timer to fire, the peer already
    got its turn; otherwise no stray permit is left behind. The armed flag
    is checked under the same mutex that ``disarm`` takes, so a timer that
    wakes up while the operation is returning cannot signal after
    ``disarm`` has run.
    """

    def __init__(self, lock: StepLock, target: Party, delay: float):
        self.lock = lock
        self.target = target
        self.delay = delay
        self.fired = False
        self._mutex = threading.Lock()
        self._armed = False
        self._timer: threading.Timer | None = None

    def arm(self) -> None:
        self.disarm()
        logger.debug(f"Probe armed: signal {self.target.value} in {self.delay}s")
        with self._mutex:
            self._armed = True
        timer = threading.Timer(self.delay, self._fire)
        timer.daemon = True
        timer.name = f"lockstep-signal-{self.target.value}"
        self._timer = timer
        timer.start()

    def _fire(self) -> None:
        with self._mutex:
            if not self._armed:
                return
            self._armed = False
            self.fired = True
            self.lock.signal(self.target)

    def disarm(self) -> None:
        with self._mutex:
            self._armed = False
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None


class SequencedActionList:
    """Builder for an alternating A/B script, executed exactly once.

    Party A always opens the script. Consecutive steps for the same party
    are rejected when they are declared, before anything runs.
    """

    def __init__(
        self,
        lock: StepLock | None = None,
        probe_delay: float = DEFAULT_PROBE_DELAY,
    ):
        """Initialize an empty script.

        Args:
            lock: StepLock shared by both parties. A fresh one is created
                when omitted.
            probe_delay: Default delay in seconds for blocking probes.

        Raises:
            ValueError: If probe_delay is not positive.
        """
        if probe_delay <= 0:
            raise ValueError(f"probe_delay must be positive, got {probe_delay}")
        self.lock = lock if lock is not None else StepLock()
        self.probe_delay = probe_delay
        self.report: ExecutionReport | None = None
        self._current_turn: Party | None = None
        self._steps: dict[Party, list[ActionStep]] = {Party.A: [], Party.B: []}
        self._runs: dict[Party, PartyRun] = {party: PartyRun(party) for party in Party}
        self._probes: list[_Probe] = []
        self._declared = 0
        self._consumed = False

    @property
    def current_turn(self) -> Party | None:
        """Owner of the most recently declared step, None for an empty script."""
        return self._current_turn

    @property
    def declared_steps(self) -> int:
        return self._declared

    @property
    def consumed(self) -> bool:
        return self._consumed

    def run_state(self, party: Party) -> PartyRun:
        return self._runs[party]

    # ========================================================================
    # Builder surface
    # ========================================================================

    def add_for_a(self, operation: Callable[[], Any]) -> "SequencedActionList":
        """Append an operation for party A followed by a handoff to B."""
        return self._add(Party.A, operation)

    def add_for_b(self, operation: Callable[[], Any]) -> "SequencedActionList":
        """Append an operation for party B followed by a handoff to A."""
        return self._add(Party.B, operation)

    def add_for_a_with_handle(
        self, operation: Callable[[StepHandle], Any]
    ) -> "SequencedActionList":
        """Append a party A operation that receives a StepHandle.

        The operation may call ``handle.next()`` to yield to B part-way
        through and resume when B hands back.
        """
        return self._add(Party.A, operation, with_handle=True)

    def add_for_b_with_handle(
        self, operation: Callable[[StepHandle], Any]
    ) -> "SequencedActionList":
        """Append a party B operation that receives a StepHandle."""
        return self._add(Party.B, operation, with_handle=True)

    def add_blocking_probe_for_a(
        self, operation: Callable[[], Any], delay: float | None = None
    ) -> "SequencedActionList":
        """Append a party A operation expected to block on a resource B holds.

        Before the operation starts, a deferred signal is armed so B gets
        its turn after ``delay`` seconds even though A never reaches its
        handoff. Record ``OrderWitness.mark_potential_block_point()``
        inside the operation to prove the block actually happened.
        """
        if delay is None:
            delay = self.probe_delay
        return self._add(Party.A, operation, probe_delay=delay)

    def add_blocking_probe_for_b(
        self, operation: Callable[[], Any], delay: float | None = None
    ) -> "SequencedActionList":
        """Append a party B operation expected to block on a resource A holds."""
        if delay is None:
            delay = self.probe_delay
        return self._add(Party.B, operation, probe_delay=delay)

    def _check_turn(self, party: Party) -> None:
        if self._consumed:
            raise ScriptConsumed("Script has already been executed")
        if self._current_turn is None and party is Party.B:
            raise SequenceViolation("Party A must open the script")
        if self._current_turn is party:
            raise SequenceViolation(
                f"A step for party {party.value} must be preceded by a step "
                f"for party {party.other.value}"
            )

    def _add(
        self,
        party: Party,
        operation: Callable[..., Any],
        with_handle: bool = False,
        probe_delay: float | None = None,
    ) -> "SequencedActionList":
        self._check_turn(party)
        if not callable(operation):
            raise TypeError(f"operation must be callable, got {operation!r}")

        run = self._runs[party]
        steps = self._steps[party]
        label = getattr(operation, "__name__", "action")

        if with_handle:
            handle = StepHandle(party, partial(self._handoff, run))
            operation = partial(operation, handle)

        probe: _Probe | None = None
        if probe_delay is not None:
            if probe_delay <= 0:
                raise ValueError(f"probe delay must be positive, got {probe_delay}")
            probe = _Probe(self.lock, party.other, probe_delay)
            self._probes.append(probe)
            steps.append(
                ActionStep(probe.arm, party, StepKind.DEFERRED_PROBE, "deferred_probe")
            )

        steps.append(
            ActionStep(self._action(run, operation, probe), party, StepKind.ACTION, label)
        )
        steps.append(
            ActionStep(partial(self._handoff, run), party, StepKind.HANDOFF, "handoff")
        )

        self._current_turn = party
        self._declared += 1
        logger.debug(f"Declared step #{self._declared} for party {party.value}: {label}")
        return self

    # ========================================================================
    # Step bodies
    # ========================================================================

    @staticmethod
    def _action(
        run: PartyRun, operation: Callable[[], Any], probe: _Probe | None
    ) -> Callable[[], Any]:
        def perform() -> Any:
            try:
                result = operation()
            finally:
                if probe is not None:
                    probe.disarm()
            run.record_operation()
            return result

        return perform

    def _handoff(self, run: PartyRun) -> None:
        run.mark_waiting()
        run.record_handoff()
        self.lock.handoff(run.party)
        run.mark_resumed()

    def _await_turn(self, run: PartyRun) -> None:
        run.mark_waiting()
        self.lock.take(run.party)
        run.mark_resumed()

    # ========================================================================
    # Execution
    # ========================================================================

    def _finalize(self, party: Party) -> tuple[ActionStep, ...]:
        """Freeze one party's list for execution.

        Party B first waits for A to hand over the opening turn. The
        trailing handoff of each list is dropped: the party's completion
        terminates the lock instead.
        """
        steps = list(self._steps[party])
        if steps and steps[-1].kind is StepKind.HANDOFF:
            steps.pop()
        if party is Party.B:
            steps.insert(
                0,
                ActionStep(
                    partial(self._await_turn, self._runs[party]),
                    party,
                    StepKind.AWAIT_TURN,
                    "await_turn",
                ),
            )
        return tuple(steps)

    def _drive(
        self, party: Party, steps: tuple[ActionStep, ...], executor: StepExecutor
    ) -> None:
        run = self._runs[party]
        context = PartyContext(party=party, lock=self.lock, run=run)
        run.mark_running()
        logger.debug(f"Party {party.value} started with {len(steps)} steps")
        try:
            executor(steps, context)
        finally:
            self.lock.terminate()
            run.mark_completed()
            logger.debug(f"Party {party.value} completed")

    def execute(self, run_a: StepExecutor, run_b: StepExecutor) -> ExecutionReport:
        """Run both parties concurrently and wait for both to finish.

        Args:
            run_a: Executor for party A's steps (callable or
                TransactionExecutorPort).
            run_b: Executor for party B's steps.

        Returns:
            ExecutionReport for the run. Also stored on ``self.report``.

        Raises:
            ScriptConsumed: If the script was already executed.
            SequenceViolation: If no step was declared.
            Exception: The first exception raised by a party (A before B),
                re-raised after both parties have finished.
        """
        if self._consumed:
            raise ScriptConsumed("Script has already been executed")
        if self._declared == 0:
            raise SequenceViolation("Script has no steps")
        if not callable(run_a) or not callable(run_b):
            raise TypeError("run_a and run_b must be callable")
        self._consumed = True

        steps_a = self._finalize(Party.A)
        steps_b = self._finalize(Party.B)
        logger.info(
            f"Executing script with {self._declared} declared steps "
            f"(A: {len(steps_a)} entries, B: {len(steps_b)} entries)"
        )

        started = time.monotonic()
        try:
            with ThreadPoolExecutor(
                max_workers=2, thread_name_prefix="lockstep-party"
            ) as pool:
                futures = {
                    Party.A: pool.submit(self._drive, Party.A, steps_a, run_a),
                    Party.B: pool.submit(self._drive, Party.B, steps_b, run_b),
                }
        finally:
            for probe in self._probes:
                probe.disarm()
        elapsed = time.monotonic() - started

        failures = []
        for party, future in futures.items():
            error = future.exception()
            if error is not None:
                failures.append(PartyFailure(party=party, error=error))

        self.report = ExecutionReport(
            operations_run={party: run.operations_run for party, run in self._runs.items()},
            handoffs={party: run.handoffs for party, run in self._runs.items()},
            statuses={party: run.status for party, run in self._runs.items()},
            elapsed_seconds=elapsed,
            failures=tuple(failures),
        )

        if failures:
            for failure in failures[1:]:
                logger.warning(
                    f"Party {failure.party.value} also failed: "
                    f"{failure.error_type}: {failure.error}"
                )
            first = failures[0]
            logger.info(
                f"Script failed after {elapsed:.3f}s in party {first.party.value}: "
                f"{first.error_type}"
            )
            first.error.add_note(f"Raised by party {first.party.value}")
            raise first.error

        logger.info(
            f"Script finished in {elapsed:.3f}s "
            f"(A ran {self.report.operations_run[Party.A]} operations, "
            f"B ran {self.report.operations_run[Party.B]})"
        )
        return self.report
