"""Domain models for the lockstep harness.

All models in this module use only Python standard library types,
ensuring zero external dependencies in the core domain.
"""

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .step_lock import StepLock


class Party(Enum):
    """One of the two logical transactions being scripted."""

    A = "A"
    B = "B"

    @property
    def other(self) -> "Party":
        """The peer party."""
        return Party.B if self is Party.A else Party.A


class StepKind(Enum):
    """What an entry in a finalized step list does.

    - ACTION: a user operation declared on the script
    - HANDOFF: yield to the peer and wait to be handed back
    - AWAIT_TURN: wait for the first turn (party B only)
    - DEFERRED_PROBE: arm a delayed signal to the peer before a probed action
    """

    ACTION = "action"
    HANDOFF = "handoff"
    AWAIT_TURN = "await_turn"
    DEFERRED_PROBE = "deferred_probe"


@dataclass(frozen=True)
class ActionStep:
    """A single entry in a party's ordered step list.

    Steps are zero-argument callables so executors can simply iterate the
    list and call each one.
    """

    operation: Callable[[], Any]
    owner: Party
    kind: StepKind = StepKind.ACTION
    label: str = ""

    def __post_init__(self) -> None:
        """Validate the operation and derive a label when none is given."""
        if not callable(self.operation):
            raise ValueError(f"operation must be callable, got {self.operation!r}")
        if not self.label:
            object.__setattr__(
                self, "label", getattr(self.operation, "__name__", self.kind.value)
            )

    def __call__(self) -> Any:
        return self.operation()

    @property
    def is_marker(self) -> bool:
        """True for synchronization markers embedded by the harness."""
        return self.kind is not StepKind.ACTION


class PartyStatus(Enum):
    """Lifecycle states for one party during ``execute()``.

    State transitions:
    - NOT_STARTED → RUNNING (mark_running)
    - RUNNING → WAITING_FOR_PEER (mark_waiting)
    - WAITING_FOR_PEER → RUNNING (mark_resumed)
    - RUNNING / WAITING_FOR_PEER → COMPLETED (mark_completed, exactly once)
    """

    NOT_STARTED = "not_started"
    RUNNING = "running"
    WAITING_FOR_PEER = "waiting_for_peer"
    COMPLETED = "completed"


@dataclass
class PartyRun:
    """Mutable execution state of one party.

    Only the party's own worker thread mutates an instance; other threads
    read it after the worker has been joined.
    """

    party: Party
    status: PartyStatus = PartyStatus.NOT_STARTED
    operations_run: int = 0
    handoffs: int = 0

    def mark_running(self) -> None:
        """Transition from NOT_STARTED to RUNNING."""
        if self.status != PartyStatus.NOT_STARTED:
            raise ValueError(
                f"Cannot start party {self.party.value} in {self.status} status"
            )
        self.status = PartyStatus.RUNNING

    def mark_waiting(self) -> None:
        """Transition from RUNNING to WAITING_FOR_PEER."""
        if self.status != PartyStatus.RUNNING:
            raise ValueError(
                f"Party {self.party.value} can only wait while RUNNING, "
                f"current status: {self.status}"
            )
        self.status = PartyStatus.WAITING_FOR_PEER

    def mark_resumed(self) -> None:
        """Transition from WAITING_FOR_PEER back to RUNNING."""
        if self.status != PartyStatus.WAITING_FOR_PEER:
            raise ValueError(
                f"Party {self.party.value} can only resume while WAITING_FOR_PEER, "
                f"current status: {self.status}"
            )
        self.status = PartyStatus.RUNNING

    def mark_completed(self) -> None:
        """Enter the terminal COMPLETED state."""
        if self.status not in {PartyStatus.RUNNING, PartyStatus.WAITING_FOR_PEER}:
            raise ValueError(
                f"Cannot complete party {self.party.value} in {self.status} status"
            )
        self.status = PartyStatus.COMPLETED

    def record_operation(self) -> None:
        """Count one finished user operation."""
        self.operations_run += 1

    def record_handoff(self) -> None:
        """Count one handoff to the peer."""
        self.handoffs += 1


@dataclass(frozen=True)
class PartyContext:
    """What the harness injects into each executor call."""

    party: Party
    lock: "StepLock"
    run: PartyRun


@dataclass(frozen=True)
class PartyFailure:
    """An exception raised while a party's executor was running."""

    party: Party
    error: BaseException

    @property
    def error_type(self) -> str:
        return type(self.error).__name__


@dataclass(frozen=True)
class ExecutionReport:
    """Summary of a finished ``execute()`` call."""

    operations_run: Mapping[Party, int]
    handoffs: Mapping[Party, int]
    statuses: Mapping[Party, PartyStatus]
    elapsed_seconds: float
    failures: tuple[PartyFailure, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        """Convert mutable dicts to immutable proxies."""
        object.__setattr__(self, "operations_run", MappingProxyType(dict(self.operations_run)))
        object.__setattr__(self, "handoffs", MappingProxyType(dict(self.handoffs)))
        object.__setattr__(self, "statuses", MappingProxyType(dict(self.statuses)))

    @property
    def total_operations(self) -> int:
        return sum(self.operations_run.values())

    @property
    def succeeded(self) -> bool:
        return not self.failures
