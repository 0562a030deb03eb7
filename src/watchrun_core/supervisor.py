"""Process supervision: one child process group at a time.

The supervisor spawns the command as the leader of a new process group so that
signals reach everything the command forks. Stopping the group sends the
configured signal, polls for exit and escalates to SIGKILL once the grace
period runs out.
"""

import asyncio
import logging
import os
import shlex
import signal
import sys
from collections.abc import Callable, Sequence

from watchrun_core.errors import ConfigError, SpawnError
from watchrun_core.models import (
    BusyAction,
    ChildExited,
    ChildSignaled,
    Event,
    RestartDecision,
    TerminateOutcome,
    signal_from_returncode,
)

logger = logging.getLogger(__name__)

CLEAR_SEQUENCE = "\x1b[2J\x1b[3J\x1b[H"

DEFAULT_GRACE_PERIOD = 5.0
DEFAULT_POLL_INTERVAL = 0.05


def clear_screen() -> None:
    """Clear the terminal and its scrollback."""
    sys.stdout.write(CLEAR_SEQUENCE)
    sys.stdout.flush()


class ProcessSupervisor:
    """Owns the lifecycle of the single supervised child process group."""

    def __init__(
        self,
        command: Sequence[str],
        busy_action: BusyAction = BusyAction.RESTART,
        stop_signal: int = signal.SIGTERM,
        clear: bool = False,
        grace_period: float = DEFAULT_GRACE_PERIOD,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        on_event: Callable[[Event], None] | None = None,
    ):
        """Initialize supervisor.

        Args:
            command: Program and arguments
            busy_action: Policy for restarts that arrive while the child runs
            stop_signal: Signal sent to the group before restarting or on shutdown
            clear: Clear the terminal before each spawn
            grace_period: Seconds to wait after stop_signal before SIGKILL
            poll_interval: Seconds between exit checks while waiting
            on_event: Receives ChildExited/ChildSignaled when a child ends

        Raises:
            ConfigError: If command is empty
        """
        if not command:
            raise ConfigError("No command given")
        self.command = list(command)
        self.busy_action = busy_action
        self.stop_signal = stop_signal
        self.clear = clear
        self.grace_period = grace_period
        self.poll_interval = poll_interval
        self._on_event = on_event
        self._process: asyncio.subprocess.Process | None = None
        self._reapers: set[asyncio.Task] = set()
        self._signaled_pids: set[int] = set()
        self.last_returncode: int | None = None
        self.spawn_count = 0

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process else None

    @property
    def is_alive(self) -> bool:
        return self._process is not None and self._process.returncode is None

    def was_signaled(self, pid: int) -> bool:
        """True if the supervisor itself signaled the child with this pid."""
        return pid in self._signaled_pids

    async def handle_restart_due(self, cancelled: Callable[[], bool] | None = None) -> RestartDecision:
        """Apply the busy-action policy to a due restart.

        Args:
            cancelled: Checked right before spawning; if it returns True the
                restart is dropped (termination was requested meanwhile)

        Returns:
            SPAWNED if a new child was started, DROPPED if the restart was
            discarded, DEFERRED if it must be retried later

        Raises:
            SpawnError: If the command cannot be started
        """
        if self.is_alive:
            if self.busy_action is BusyAction.DO_NOTHING:
                logger.debug("Command still running, dropping restart")
                return RestartDecision.DROPPED
            if self.busy_action is BusyAction.QUEUE:
                return RestartDecision.DEFERRED
            logger.debug("Waiting for process to exit...")
            await self.terminate()
            logger.debug("Exited")
        elif self._process is not None:
            # leader already reaped; stop any descendants it left in the group
            await self.terminate()

        if cancelled is not None and cancelled():
            return RestartDecision.DROPPED
        await self.spawn()
        return RestartDecision.SPAWNED

    async def spawn(self) -> None:
        """Start the command as a new process group leader.

        Raises:
            RuntimeError: If a child is still alive
            SpawnError: If the command cannot be executed
        """
        if self.is_alive:
            raise RuntimeError("A child process group is already running")

        logger.debug(shlex.join(self.command))
        if self.clear:
            clear_screen()

        try:
            process = await asyncio.create_subprocess_exec(*self.command, process_group=0)
        except FileNotFoundError as e:
            raise SpawnError(f"{self.command[0]}: command not found") from e
        except PermissionError as e:
            raise SpawnError(f"{self.command[0]}: permission denied") from e
        except OSError as e:
            raise SpawnError(f"{self.command[0]}: {e.strerror or e}") from e

        self._process = process
        self.spawn_count += 1
        task = asyncio.create_task(self._watch_exit(process))
        self._reapers.add(task)
        task.add_done_callback(self._reapers.discard)

    async def _watch_exit(self, process: asyncio.subprocess.Process) -> None:
        returncode = await process.wait()
        signum = signal_from_returncode(returncode)
        if signum is not None:
            event = ChildSignaled(pid=process.pid, signum=signum, requested=self.was_signaled(process.pid))
        else:
            event = ChildExited(pid=process.pid, returncode=returncode)
        self._signaled_pids.discard(process.pid)
        if self._on_event:
            self._on_event(event)

    async def terminate(self, sig: int | None = None) -> TerminateOutcome:
        """Stop the child group: signal, poll, then SIGKILL after the grace period.

        Args:
            sig: Signal to send; defaults to the configured stop signal

        Returns:
            NOT_RUNNING if there was nothing to stop, EXITED if the group exited
            after the signal, KILLED if it had to be force-killed
        """
        process = self._process
        if process is None:
            return TerminateOutcome.NOT_RUNNING
        if process.returncode is not None and not self._group_alive(process.pid):
            self._retire()
            return TerminateOutcome.NOT_RUNNING

        sig = self.stop_signal if sig is None else sig
        if process.returncode is None:
            self._signaled_pids.add(process.pid)
        delivered = self._signal_group(process.pid, sig)

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.grace_period
        while delivered and loop.time() < deadline:
            if process.returncode is not None and not self._group_alive(process.pid):
                self._retire()
                return TerminateOutcome.EXITED
            await asyncio.sleep(self.poll_interval)

        logger.warning(
            f"Command did not exit within {self.grace_period:g}s after {signal.Signals(sig).name}.\n"
            f"Sending SIGKILL to process group {process.pid}."
        )
        self._signal_group(process.pid, signal.SIGKILL)
        # the leader may be gone already while other group members linger
        await process.wait()
        self._retire()
        return TerminateOutcome.KILLED

    def _signal_group(self, pgid: int, sig: int) -> bool:
        try:
            os.killpg(pgid, sig)
        except ProcessLookupError:
            # already gone
            return True
        except OSError as e:
            logger.error(f"Failed to send {signal.Signals(sig).name} to process group {pgid}: {e}")
            return False
        return True

    @staticmethod
    def _group_alive(pgid: int) -> bool:
        try:
            os.killpg(pgid, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            return True
        return True

    def _retire(self) -> None:
        if self._process is not None:
            self.last_returncode = self._process.returncode
            self._process = None

    async def aclose(self) -> None:
        """Stop any live child and wait for pending exit notifications."""
        if self.is_alive:
            await self.terminate()
        if self._reapers:
            await asyncio.gather(*self._reapers, return_exceptions=True)
