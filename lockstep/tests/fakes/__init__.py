"""Fake/mock implementations of core ports for testing.

These in-memory implementations allow core logic to be tested without a
database:

- FakeTransactionExecutor: Records begin/commit/rollback and the step
  lists handed to each party
"""

from .executor import FakeTransactionExecutor

__all__ = [
    "FakeTransactionExecutor",
]
