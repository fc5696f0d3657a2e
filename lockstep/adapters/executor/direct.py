"""Executor adapter that runs steps without any transaction."""

import logging
from collections.abc import Sequence

from lockstep.core.models import ActionStep, PartyContext
from lockstep.core.ports import TransactionExecutorPort

logger = logging.getLogger(__name__)


class DirectExecutor(TransactionExecutorPort):
    """Calls each step in order on the party's thread, nothing more.

    Useful for scripts that only exercise in-memory state, and as the
    "no transaction" counterpart to the database-backed executors.
    """

    def run(self, steps: Sequence[ActionStep], context: PartyContext) -> None:
        logger.debug(f"Party {context.party.value}: running {len(steps)} steps directly")
        for step in steps:
            step()
