"""After-the-fact proof that one party ran before another blocked."""

import threading


class OrderWitness:
    """Records whether ``mark_ran_first`` happened before a block point.

    Call ``mark_ran_first()`` in the step expected to run first and
    ``mark_potential_block_point()`` right after the operation expected to
    have been forced to wait for it. Assert ``was_correct_order()`` once
    both parties have finished; no assertion runs while they race.
    """

    def __init__(self) -> None:
        self._raised = threading.Event()
        self._captured_before = False

    @property
    def ran_first(self) -> bool:
        return self._raised.is_set()

    def mark_ran_first(self) -> None:
        """Raise the flag. Only the first call changes anything."""
        self._raised.set()

    def mark_potential_block_point(self) -> None:
        """Snapshot whether the flag had been raised by now."""
        self._captured_before = self._raised.is_set()

    def was_correct_order(self) -> bool:
        return self._captured_before
