"""Executor decorator for parties that are expected to fail."""

import logging
from collections.abc import Sequence

from lockstep.core.errors import MissingExpectedFailure
from lockstep.core.models import ActionStep, PartyContext
from lockstep.core.ports import StepExecutor, TransactionExecutorPort

logger = logging.getLogger(__name__)


class ExpectedFailureExecutor(TransactionExecutorPort):
    """Runs a party through ``inner`` and requires it to raise ``expected``.

    The expected exception is caught after the inner executor has cleaned
    up its transaction, and kept on ``caught``. Any other exception
    propagates unchanged. A run that raises nothing fails with
    MissingExpectedFailure.
    """

    def __init__(
        self,
        inner: StepExecutor,
        expected: type[BaseException] | tuple[type[BaseException], ...],
    ):
        self.inner = inner
        self.expected = expected
        self.caught: BaseException | None = None

    def run(self, steps: Sequence[ActionStep], context: PartyContext) -> None:
        try:
            self.inner(steps, context)
        except self.expected as e:
            self.caught = e
            logger.info(
                f"Party {context.party.value}: failed as expected with "
                f"{type(e).__name__}: {e}"
            )
            return
        raise MissingExpectedFailure(
            f"Party {context.party.value} was expected to raise {self._expected_names()}"
        )

    def _expected_names(self) -> str:
        if isinstance(self.expected, tuple):
            return " or ".join(e.__name__ for e in self.expected)
        return self.expected.__name__
