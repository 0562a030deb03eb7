"""Shared data models for watchrun_core."""

import signal
from dataclasses import dataclass
from enum import Enum, IntEnum

from watchrun_core.errors import ConfigError


class BusyAction(Enum):
    """What to do when a restart is due while the previous child still runs."""

    RESTART = "signal"
    """Signal the running child, wait for it to exit, then restart."""

    QUEUE = "queue"
    """Keep the restart pending until the running child exits on its own."""

    DO_NOTHING = "do-nothing"
    """Drop the restart."""

    @classmethod
    def from_name(cls, name: str) -> "BusyAction":
        """Parse a policy name as given on the command line.

        Args:
            name: One of "signal", "queue", "do-nothing"

        Returns:
            Matching BusyAction

        Raises:
            ConfigError: If the name is not a known policy
        """
        for action in cls:
            if action.value == name.lower():
                return action
        choices = ", ".join(a.value for a in cls)
        raise ConfigError(f"Invalid on-busy-update '{name}'. Choices are: {choices}")


# Signals that may be forwarded to the child group.
FORWARDABLE_SIGNALS = {
    "SIGHUP": signal.SIGHUP,
    "SIGINT": signal.SIGINT,
    "SIGQUIT": signal.SIGQUIT,
    "SIGTERM": signal.SIGTERM,
}


def parse_signal(name: str) -> signal.Signals:
    """Resolve a signal name, case-insensitive, with or without the SIG prefix.

    Raises:
        ConfigError: If the signal is not one of FORWARDABLE_SIGNALS
    """
    key = name.strip().upper()
    if not key.startswith("SIG"):
        key = f"SIG{key}"
    try:
        return FORWARDABLE_SIGNALS[key]
    except KeyError:
        choices = ", ".join(FORWARDABLE_SIGNALS)
        raise ConfigError(f"Invalid signal '{name}'. Choices are: {choices}") from None


# Restart status ---------------------------------------------------------


@dataclass(frozen=True)
class Idle:
    """No restart scheduled."""


@dataclass(frozen=True)
class RestartDue:
    """A restart must happen now."""


@dataclass(frozen=True)
class PendingSince:
    """A qualifying change was seen; the debounce window is open."""

    since: float
    """Monotonic timestamp of the most recent admitted change."""


Status = Idle | RestartDue | PendingSince


# Events posted into the control loop -----------------------------------


@dataclass(frozen=True)
class FileChanged:
    """Raw change notification from the filesystem event source."""

    path: str


@dataclass(frozen=True)
class TerminateRequested:
    """The user asked the whole program to stop."""

    signum: int


@dataclass(frozen=True)
class ChildExited:
    """The supervised child exited on its own."""

    pid: int
    returncode: int


@dataclass(frozen=True)
class ChildSignaled:
    """The supervised child died from a signal, directly or relayed via its exit status."""

    pid: int
    signum: int

    requested: bool = False
    """True when the supervisor itself sent the stop signal."""


Event = FileChanged | TerminateRequested | ChildExited | ChildSignaled


def signal_from_returncode(returncode: int | None) -> int | None:
    """Return the signal number a child died from, or None for a voluntary exit.

    A negative return code means the child was killed by that signal. Shells and
    other wrappers that catch a signal often relay it as exit status 128 + n.
    """
    if returncode is None:
        return None
    if returncode < 0:
        return -returncode
    if 128 < returncode < 128 + signal.NSIG:
        return returncode - 128
    return None


class RestartDecision(Enum):
    """Outcome of applying the busy-action policy to a due restart."""

    SPAWNED = "spawned"
    DROPPED = "dropped"
    DEFERRED = "deferred"


class TerminateOutcome(Enum):
    """How a terminate request ended."""

    NOT_RUNNING = "not_running"
    """There was no live child."""

    EXITED = "exited"
    """The group exited after the graceful signal."""

    KILLED = "killed"
    """The grace period expired and the group was killed."""


class ExitCode(IntEnum):
    """Exit status of the watchrun process itself."""

    SHUTDOWN = 1
    FATAL = 2

    @staticmethod
    def for_signal(signum: int) -> int:
        """Conventional 128 + n status for a child killed by signal n."""
        return 128 + signum
