"""Port interfaces for the lockstep harness.

The harness core drives two parties but knows nothing about how their
steps are wrapped in a transaction. That seam is a single driven port:

- TransactionExecutorPort: run a party's finalized step list, in order,
  inside whatever transactional/session context the party represents.

Implementations live in the adapters/ package. Plain callables with the
same ``(steps, context)`` signature are accepted wherever a port is.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from typing import Any, TypeAlias

from .models import ActionStep, PartyContext

StepExecutor: TypeAlias = Callable[[Sequence[ActionStep], PartyContext], Any]


class TransactionExecutorPort(ABC):
    """Port for running one party's steps inside its transactional context.

    Implementations must:
    - Call every step exactly once, strictly in list order
    - Call steps synchronously on the calling thread
    - Let exceptions from steps propagate after cleaning up their own
      transaction (rollback, close)
    """

    @abstractmethod
    def run(self, steps: Sequence[ActionStep], context: PartyContext) -> None:
        """Execute the finalized step list for one party.

        Args:
            steps: Ordered step list, synchronization markers included.
            context: Party identity, the shared StepLock and the party's
                run state.

        Raises:
            Exception: Whatever a step raised. The harness re-raises it to
                the caller of ``execute()``.
        """

    def __call__(self, steps: Sequence[ActionStep], context: PartyContext) -> None:
        self.run(steps, context)
