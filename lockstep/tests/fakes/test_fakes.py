"""Tests for the fake port implementations themselves."""

import pytest

from lockstep.core.models import ActionStep, Party, PartyContext, PartyRun, StepKind
from lockstep.core.step_lock import StepLock
from lockstep.tests.fakes import FakeTransactionExecutor


def _context(party: Party) -> PartyContext:
    return PartyContext(party=party, lock=StepLock(), run=PartyRun(party))


class TestFakeTransactionExecutor:
    """FakeTransactionExecutor records what it was asked to run."""

    def test_runs_steps_in_order_and_commits(self) -> None:
        """Steps run in list order between begin and commit."""
        executor = FakeTransactionExecutor()
        calls: list[str] = []
        steps = [
            ActionStep(lambda: calls.append("first"), Party.A),
            ActionStep(lambda: calls.append("second"), Party.A),
        ]

        executor.run(steps, _context(Party.A))

        assert calls == ["first", "second"]
        assert executor.events[Party.A] == ["begin", "commit"]
        assert executor.committed(Party.A)
        assert executor.kinds(Party.A) == [StepKind.ACTION, StepKind.ACTION]

    def test_rolls_back_and_reraises(self) -> None:
        """A failing step is recorded as a rollback and propagates."""
        executor = FakeTransactionExecutor()

        def fail() -> None:
            raise ValueError("step failed")

        with pytest.raises(ValueError, match="step failed"):
            executor.run([ActionStep(fail, Party.B)], _context(Party.B))

        assert executor.rolled_back(Party.B)
        assert executor.events[Party.A] == []

    def test_fail_before_steps(self) -> None:
        """Configured failure happens before any step runs."""
        executor = FakeTransactionExecutor()
        executor.set_should_fail_before_steps(Party.A)
        calls: list[str] = []

        with pytest.raises(RuntimeError, match="party A"):
            executor.run([ActionStep(lambda: calls.append("x"), Party.A)], _context(Party.A))

        assert calls == []

    def test_is_callable_like_a_plain_executor(self) -> None:
        """Ports can be passed anywhere a run(steps, context) callable is expected."""
        executor = FakeTransactionExecutor()
        executor([], _context(Party.A))
        assert executor.events[Party.A] == ["begin", "commit"]

    def test_reset(self) -> None:
        """reset() clears recorded history."""
        executor = FakeTransactionExecutor()
        executor.run([], _context(Party.A))
        executor.reset()
        assert executor.events == {Party.A: [], Party.B: []}
        assert executor.received_steps == {}
