"""Restart state machine: quiet-period debounce over admitted change notifications."""

import logging
import time
from collections.abc import Callable

from watchrun_core.models import Idle, PendingSince, RestartDue, Status

logger = logging.getLogger(__name__)


class RestartStateMachine:
    """Turn a bursty stream of admitted changes into single restart decisions.

    Starts in RestartDue so the command runs once on startup. Every admitted
    change moves to PendingSince(now), resetting the debounce clock; a timeout
    tick with the window expired moves to RestartDue. The supervisor consumes
    RestartDue back to Idle. Owns no process handles.
    """

    def __init__(self, debounce: float, clock: Callable[[], float] = time.monotonic):
        """Initialize machine.

        Args:
            debounce: Quiet period in seconds
            clock: Monotonic clock, injectable for tests
        """
        self.debounce = debounce
        self._clock = clock
        self.status: Status = RestartDue()

    @property
    def restart_due(self) -> bool:
        return isinstance(self.status, RestartDue)

    def on_change(self) -> None:
        """An admitted change arrived, whatever the current state."""
        self.status = PendingSince(self._clock())

    def on_timeout(self) -> None:
        """The loop's wait timed out without an event."""
        if isinstance(self.status, PendingSince):
            if self._clock() - self.status.since >= self.debounce:
                logger.debug("Debounce window elapsed, restart due")
                self.status = RestartDue()

    def consume(self) -> None:
        """The supervisor acted on (or dropped) the due restart."""
        self.status = Idle()

    def next_timeout(self) -> float | None:
        """Seconds until the debounce window closes, or None when no window is open."""
        if isinstance(self.status, PendingSince):
            remaining = self.status.since + self.debounce - self._clock()
            return max(remaining, 0.0)
        return None
