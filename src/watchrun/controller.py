"""Control loop for watchrun. Primary embed point.

One coroutine owns every decision. Filesystem changes (from the watchdog
thread), termination signals and child exit notifications are all posted into
one asyncio.Queue; the loop takes them one at a time, in arrival order, with a
timeout that drives the debounce state machine.
"""

import asyncio
import logging
import signal
from pathlib import Path

from watchrun_core.config import RunSettings, build_filter_rules
from watchrun_core.errors import WatcherDisconnected
from watchrun_core.file_watcher import WatchdogEventSource
from watchrun_core.filter import admit
from watchrun_core.models import (
    ChildExited,
    ChildSignaled,
    Event,
    ExitCode,
    FileChanged,
    RestartDecision,
    TerminateOutcome,
    TerminateRequested,
    signal_from_returncode,
)
from watchrun_core.notifier import NoOpNotifier, Notifier
from watchrun_core.state_machine import RestartStateMachine
from watchrun_core.supervisor import ProcessSupervisor
from watchrun_core.watchers import ChangeSource, build_watch_specs

from watchrun.signals import SignalSource

logger = logging.getLogger(__name__)

# How long the loop blocks when no debounce window is open; bounds how late
# a dead watcher thread is noticed.
IDLE_TICK = 0.5


class RunController:
    """Watches paths and re-runs the command; owns restart state and the child.

    Usage (Embedded):
        controller = RunController(settings, install_signal_handlers=False)
        task = asyncio.create_task(controller.run())
        ...
        controller.request_terminate(signal.SIGINT)
        exit_code = await task
    """

    def __init__(
        self,
        settings: RunSettings,
        notifier: Notifier | None = None,
        source: ChangeSource | None = None,
        working_directory: str | Path | None = None,
        install_signal_handlers: bool = True,
    ):
        """Initialize controller.

        Args:
            settings: Validated run settings
            notifier: Optional notification handler (defaults to NoOpNotifier - silent)
            source: Filesystem event source (defaults to watchdog)
            working_directory: Base for filtering (defaults to the current directory)
            install_signal_handlers: Register SIGINT/SIGHUP/SIGTERM handlers on run()

        Raises:
            ConfigError: If settings are invalid
            WatchError: If a watch path does not exist
        """
        settings.validate()
        self.settings = settings
        self.notifier = notifier or NoOpNotifier()
        self.working_directory = Path(working_directory or Path.cwd()).resolve()

        self.specs = build_watch_specs(settings.paths)
        self.rules = build_filter_rules(settings, self.specs, self.working_directory)
        self.machine = RestartStateMachine(settings.debounce)
        self.supervisor = ProcessSupervisor(
            settings.command,
            busy_action=settings.busy_action,
            stop_signal=settings.signal,
            clear=settings.clear_screen,
            grace_period=settings.grace_period,
            poll_interval=settings.poll_interval,
            on_event=self.post,
        )
        self.source = source or WatchdogEventSource()
        self.signals = SignalSource(self.request_terminate) if install_signal_handlers else None

        self._loop: asyncio.AbstractEventLoop | None = None
        self._events: asyncio.Queue[Event] | None = None
        self._terminating = False

    @property
    def terminating(self) -> bool:
        return self._terminating

    # ========================================================================
    # Event posting
    # ========================================================================

    def post(self, event: Event) -> None:
        """Queue an event. Must be called on the loop thread."""
        if self._events is None:
            logger.debug(f"Dropping {event} - controller not attached")
            return
        self._events.put_nowait(event)

    def request_terminate(self, signum: int = signal.SIGTERM) -> None:
        """Ask the loop to stop the child and exit. Must be called on the loop thread."""
        self._terminating = True
        self.post(TerminateRequested(signum))

    def _on_path_changed(self, path: str) -> None:
        # Runs on the watchdog observer thread.
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(self.post, FileChanged(path))

    # ========================================================================
    # Lifecycle
    # ========================================================================

    def attach(self, loop: asyncio.AbstractEventLoop) -> None:
        """Create the event queue, install signal handlers and start watching.

        Raises:
            RuntimeError: If already attached
            WatchError: If a watch cannot be registered
        """
        if self._loop is not None:
            raise RuntimeError("Controller already attached")

        self._loop = loop
        self._events = asyncio.Queue()

        for spec in self.specs:
            if not spec.path.is_relative_to(self.working_directory):
                self.notifier.warning(
                    f"{spec.path}: outside working directory {self.working_directory}, changes will be ignored"
                )
            self.source.add_watch(spec)

        if self.signals is not None:
            self.signals.install(loop)
        try:
            self.source.start(self._on_path_changed)
        except Exception:
            self.detach()
            raise
        logger.debug("Controller attached to event loop")

    def detach(self) -> None:
        """Stop watching and restore signal handling."""
        try:
            self.source.stop()
        except Exception as e:
            self.notifier.error(f"Error stopping file watcher: {e}")
        if self.signals is not None:
            self.signals.remove()
        self._loop = None
        logger.debug("Controller detached from event loop")

    async def run(self) -> int:
        """Run until termination is requested.

        Returns:
            Exit status for the watchrun process

        Raises:
            SpawnError: If the command cannot be started
            WatcherDisconnected: If the event source dies
        """
        self.attach(asyncio.get_running_loop())
        try:
            return await self._run_loop()
        finally:
            await self.supervisor.aclose()
            self.detach()

    # ========================================================================
    # Loop
    # ========================================================================

    async def _run_loop(self) -> int:
        while True:
            timeout = self.machine.next_timeout()
            if self.machine.restart_due and not self._terminating:
                decision = await self.supervisor.handle_restart_due(cancelled=lambda: self._terminating)
                if decision is RestartDecision.DEFERRED:
                    timeout = self.settings.queue_backoff
                else:
                    self.machine.consume()
                    timeout = None
            if timeout is None:
                timeout = IDLE_TICK

            event = await self._next_event(timeout)
            if event is None:
                self._check_source()
                self.machine.on_timeout()
                continue

            if isinstance(event, TerminateRequested):
                return await self._shutdown(event)
            self._dispatch(event)
            # A steady stream of rejected events must not starve an expired window
            if self.machine.next_timeout() == 0.0:
                self.machine.on_timeout()

    async def _next_event(self, timeout: float) -> Event | None:
        assert self._events is not None
        try:
            return self._events.get_nowait()
        except asyncio.QueueEmpty:
            pass
        try:
            return await asyncio.wait_for(self._events.get(), timeout)
        except TimeoutError:
            return None

    def _check_source(self) -> None:
        if not self.source.is_alive():
            raise WatcherDisconnected("File watcher stopped unexpectedly")

    def _dispatch(self, event: Event) -> None:
        if isinstance(event, FileChanged):
            self._on_file_changed(event.path)
        elif isinstance(event, ChildSignaled):
            name = _signal_name(event.signum)
            if event.requested:
                logger.debug(f"Command (pid {event.pid}) ended by {name}")
            else:
                self.notifier.warning(f"Command (pid {event.pid}) was killed by {name}")
        elif isinstance(event, ChildExited):
            if event.pid == self.supervisor.pid:
                self.notifier.info(f"Command exited with status {event.returncode}")
            else:
                logger.debug(f"Previous command (pid {event.pid}) exited with status {event.returncode}")

    def _on_file_changed(self, path: str) -> None:
        if self._terminating:
            return
        if not admit(path, self.rules):
            logger.debug(f"{path}: Ignored")
            return
        logger.debug(f"{path}: File modified. Queuing restart.")
        self.machine.on_change()

    async def _shutdown(self, request: TerminateRequested) -> int:
        self._terminating = True
        self.notifier.info(f"Received {_signal_name(request.signum)}, stopping")
        outcome = await self.supervisor.terminate()
        if outcome is TerminateOutcome.KILLED:
            return ExitCode.for_signal(signal.SIGKILL)
        signum = signal_from_returncode(self.supervisor.last_returncode)
        if signum is not None:
            return ExitCode.for_signal(signum)
        return ExitCode.SHUTDOWN


def _signal_name(signum: int) -> str:
    if signum in signal.valid_signals():
        return signal.Signals(signum).name
    return f"signal {signum}"
