"""User-facing status messages from the control loop.

The loop reports what the user should see (child exit status, external kills,
watch paths it will ignore) through a Notifier instead of writing to stderr
itself, so an embedding host decides where those messages go.
"""

import logging
from typing import Protocol


class Notifier(Protocol):
    """Receives status messages; the CLI logs them, embedders may show them elsewhere."""

    def info(self, message: str) -> None:
        """Routine status, such as the command's exit status."""
        ...

    def warning(self, message: str) -> None:
        """Something the user likely did not intend, such as an external kill."""
        ...

    def error(self, message: str) -> None:
        """A failure the loop recovered from, such as a watcher that would not stop."""
        ...


class NoOpNotifier:
    """Discards every message. Default for RunController."""

    def info(self, message: str) -> None:
        pass

    def warning(self, message: str) -> None:
        pass

    def error(self, message: str) -> None:
        pass


class LoggingNotifier:
    """Forwards messages to a logger at the matching level."""

    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or logging.getLogger("watchrun")

    def info(self, message: str) -> None:
        self.logger.info(message)

    def warning(self, message: str) -> None:
        self.logger.warning(message)

    def error(self, message: str) -> None:
        self.logger.error(message)
