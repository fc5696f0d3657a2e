"""Tests for OrderWitness."""

import threading

from lockstep.core.witness import OrderWitness


def test_ran_first_before_block_point_is_correct_order() -> None:
    witness = OrderWitness()
    witness.mark_ran_first()
    witness.mark_potential_block_point()
    assert witness.was_correct_order() is True


def test_block_point_before_ran_first_is_wrong_order() -> None:
    witness = OrderWitness()
    witness.mark_potential_block_point()
    witness.mark_ran_first()
    assert witness.was_correct_order() is False
    assert witness.ran_first is True


def test_fresh_witness_reports_wrong_order() -> None:
    witness = OrderWitness()
    assert witness.was_correct_order() is False
    assert witness.ran_first is False


def test_mark_ran_first_is_one_shot() -> None:
    witness = OrderWitness()
    witness.mark_ran_first()
    witness.mark_ran_first()
    witness.mark_potential_block_point()
    assert witness.was_correct_order() is True


def test_latest_block_point_snapshot_wins() -> None:
    witness = OrderWitness()
    witness.mark_potential_block_point()
    witness.mark_ran_first()
    witness.mark_potential_block_point()
    assert witness.was_correct_order() is True


def test_happens_before_across_threads() -> None:
    """A real wait on another thread's signal makes the order observable."""
    witness = OrderWitness()
    resource = threading.Lock()
    resource.acquire()

    def blocked() -> None:
        with resource:
            witness.mark_potential_block_point()

    thread = threading.Thread(target=blocked, daemon=True)
    thread.start()
    witness.mark_ran_first()
    resource.release()
    thread.join(2)

    assert witness.was_correct_order() is True
