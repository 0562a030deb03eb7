"""OS signal delivery as an event source for the control loop."""

import asyncio
import logging
import signal
from collections.abc import Callable

logger = logging.getLogger(__name__)

TERMINATION_SIGNALS = (signal.SIGINT, signal.SIGHUP, signal.SIGTERM)


class SignalSource:
    """Turns termination signals into calls on the event loop thread."""

    def __init__(self, on_terminate: Callable[[int], None], signals=TERMINATION_SIGNALS):
        """Initialize source.

        Args:
            on_terminate: Called with the signal number on the loop thread
            signals: Signals that request termination
        """
        self.on_terminate = on_terminate
        self.signals = tuple(signals)
        self._loop: asyncio.AbstractEventLoop | None = None

    def install(self, loop: asyncio.AbstractEventLoop) -> None:
        """Register handlers on the running loop."""
        if self._loop is not None:
            return
        for sig in self.signals:
            loop.add_signal_handler(sig, self._handle, sig)
        self._loop = loop

    def remove(self) -> None:
        """Restore default handling."""
        if self._loop is None:
            return
        for sig in self.signals:
            self._loop.remove_signal_handler(sig)
        self._loop = None

    def _handle(self, signum: int) -> None:
        logger.debug(f"Received {signal.Signals(signum).name}")
        self.on_terminate(signum)
