"""Core domain logic for the lockstep harness.

This package contains zero external dependencies: the handoff lock, the
order witness and the alternating script builder. Transactional executors
and the CLI live in the adapters package.
"""

from .errors import (
    HarnessError,
    MissingExpectedFailure,
    ScriptConsumed,
    SequenceViolation,
)
from .models import (
    ActionStep,
    ExecutionReport,
    Party,
    PartyContext,
    PartyFailure,
    PartyRun,
    PartyStatus,
    StepKind,
)
from .ports import StepExecutor, TransactionExecutorPort
from .sequenced import DEFAULT_PROBE_DELAY, SequencedActionList, StepHandle
from .step_lock import Permit, StepLock
from .witness import OrderWitness

__all__ = [
    "DEFAULT_PROBE_DELAY",
    "ActionStep",
    "ExecutionReport",
    "HarnessError",
    "MissingExpectedFailure",
    "OrderWitness",
    "Party",
    "PartyContext",
    "PartyFailure",
    "PartyRun",
    "PartyStatus",
    "Permit",
    "ScriptConsumed",
    "SequenceViolation",
    "SequencedActionList",
    "StepExecutor",
    "StepHandle",
    "StepLock",
    "TransactionExecutorPort",
]
