"""Two-party handoff lock.

Two execution contexts interleave in an exact order by passing a turn back
and forth. The lock starts with both permits held: party A runs first and
party B waits until A hands over. Each handoff grants the peer's permit and
then blocks until the caller's own permit is granted back.

Termination opens both permits for good, so whichever party outlives its
peer runs the rest of its steps without waiting on a partner that will
never answer.
"""

import logging
import threading

from .models import Party

logger = logging.getLogger(__name__)


class Permit:
    """Binary token with two states: available or held.

    ``signal`` makes the token available, ``take`` blocks until it is
    available and consumes it. Signalling an available permit is a no-op,
    so at most one grant is ever outstanding. ``open`` latches the permit
    in the available state; takes on an open permit never block and never
    consume it.
    """

    def __init__(self, name: str):
        self.name = name
        self._condition = threading.Condition()
        self._available = False
        self._open = False

    @property
    def available(self) -> bool:
        with self._condition:
            return self._available

    @property
    def is_open(self) -> bool:
        with self._condition:
            return self._open

    def signal(self) -> None:
        """Make the permit available without blocking."""
        with self._condition:
            self._available = True
            self._condition.notify()

    def take(self) -> None:
        """Block until the permit is available, then consume it.

        The wait has no timeout. Wake-ups that find the permit still held
        are absorbed and the wait is retried.
        """
        with self._condition:
            while not self._available:
                self._condition.wait()
            if not self._open:
                self._available = False

    def open(self) -> None:
        """Latch the permit available and release every waiter."""
        with self._condition:
            self._open = True
            self._available = True
            self._condition.notify_all()

    def __repr__(self) -> str:
        state = "open" if self._open else ("available" if self._available else "held")
        return f"Permit({self.name!r}, {state})"


class StepLock:
    """Strict blocking handoff between exactly two execution contexts."""

    def __init__(self) -> None:
        self.permit_a = Permit("A")
        self.permit_b = Permit("B")

    def _permit(self, party: Party) -> Permit:
        return self.permit_a if party is Party.A else self.permit_b

    @property
    def terminated(self) -> bool:
        return self.permit_a.is_open and self.permit_b.is_open

    def signal(self, party: Party) -> None:
        """Grant ``party`` permission to proceed."""
        logger.debug(f"Signal {party.value}")
        self._permit(party).signal()

    def take(self, party: Party) -> None:
        """Wait until ``party`` has been granted permission, then consume it."""
        self._permit(party).take()
        logger.debug(f"{party.value} received turn")

    def handoff(self, party: Party) -> None:
        """Yield from ``party`` to its peer and wait to be handed back."""
        self.signal(party.other)
        self.take(party)

    def signal_a(self) -> None:
        self.signal(Party.A)

    def signal_b(self) -> None:
        self.signal(Party.B)

    def take_a(self) -> None:
        self.take(Party.A)

    def take_b(self) -> None:
        self.take(Party.B)

    def handoff_a(self) -> None:
        self.handoff(Party.A)

    def handoff_b(self) -> None:
        self.handoff(Party.B)

    def terminate(self) -> None:
        """Release both parties unconditionally. Safe to call repeatedly."""
        if not self.terminated:
            logger.debug("Terminating step lock")
        self.permit_a.open()
        self.permit_b.open()

    def deferred_signal(self, party: Party, delay: float) -> threading.Timer:
        """Signal ``party`` from a background timer after ``delay`` seconds.

        Returns:
            The started timer. Callers may ignore it or ``cancel()`` it
            before it fires.
        """
        timer = threading.Timer(delay, self.signal, args=(party,))
        timer.daemon = True
        timer.name = f"lockstep-signal-{party.value}"
        timer.start()
        return timer

    def deferred_terminate(self, delay: float) -> threading.Timer:
        """Call ``terminate()`` from a background timer after ``delay`` seconds.

        Used when no code path can itself tell when it is safe to end.
        """
        timer = threading.Timer(delay, self.terminate)
        timer.daemon = True
        timer.name = "lockstep-terminate"
        timer.start()
        return timer

    def __repr__(self) -> str:
        return f"StepLock({self.permit_a!r}, {self.permit_b!r})"
