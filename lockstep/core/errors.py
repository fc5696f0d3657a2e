"""Exception taxonomy for the lockstep harness.

Scripted operations that fail are not wrapped: the harness re-raises the
original exception so tests can assert on the persistence layer's own
error types. The classes here cover mistakes in how a script is built or
used.
"""


class HarnessError(Exception):
    """Base class for errors raised by the harness itself."""


class SequenceViolation(HarnessError, ValueError):
    """Raised when a script breaks strict A/B alternation.

    Always raised at build time (or at ``execute()`` for an empty script),
    before any scripted operation has run.
    """


class ScriptConsumed(HarnessError, RuntimeError):
    """Raised when a script is modified or executed after ``execute()``."""


class MissingExpectedFailure(HarnessError, AssertionError):
    """Raised when a party expected to fail ran to completion instead."""


__all__ = [
    "HarnessError",
    "MissingExpectedFailure",
    "ScriptConsumed",
    "SequenceViolation",
]
