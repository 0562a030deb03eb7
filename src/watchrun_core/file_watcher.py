"""Filesystem event source using watchdog."""

import logging
import os
from collections.abc import Callable

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from watchrun_core.errors import WatchError
from watchrun_core.watchers import WatchSpec

logger = logging.getLogger(__name__)


class _ChangeHandler(FileSystemEventHandler):
    """Forward file (not directory) changes to a callback."""

    def __init__(self, callback: Callable[[str], None], only: str | None = None):
        """Initialize handler.

        Args:
            callback: Receives the absolute changed path
            only: If set, forward events for this path only (single-file watch)
        """
        self.callback = callback
        self.only = only

    def _forward(self, path: bytes | str) -> None:
        path = os.path.abspath(os.fsdecode(path))
        if self.only is not None and path != self.only:
            return
        self.callback(path)

    def on_modified(self, event: FileSystemEvent) -> None:
        """Handle file modification events (content and metadata)."""
        if event.is_directory:
            return
        self._forward(event.src_path)

    def on_created(self, event: FileSystemEvent) -> None:
        """Handle file creation events."""
        if event.is_directory:
            return
        self._forward(event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        """Handle renames; editors that save atomically land here."""
        if event.is_directory:
            return
        self._forward(event.dest_path)


class WatchdogEventSource:
    """Delivers changed paths from a watchdog Observer thread."""

    def __init__(self, observer_factory: Callable[[], Observer] = Observer):
        self.observer = observer_factory()
        self.specs: list[WatchSpec] = []
        self.handlers: list[_ChangeHandler] = []

    def add_watch(self, spec: WatchSpec) -> None:
        """Register a path; takes effect on start()."""
        self.specs.append(spec)

    def start(self, callback: Callable[[str], None]) -> None:
        """Start the observer and schedule every registered path.

        Raises:
            WatchError: If the observer or any watch cannot be started
        """
        try:
            self.observer.start()
        except OSError as e:
            raise WatchError(f"Failed to start file watcher: {e}") from e

        for spec in self.specs:
            if spec.is_file:
                handler = _ChangeHandler(callback, only=str(spec.path))
                target = spec.path.parent
                logger.debug(f"{spec.path}: Watching file")
            else:
                handler = _ChangeHandler(callback)
                target = spec.path
                logger.debug(f"{spec.path}: Watching directory")
            try:
                self.observer.schedule(handler, str(target), recursive=spec.recursive)
            except OSError as e:
                self.stop()
                raise WatchError(f"{spec.path}: Failed to watch: {e}") from e
            self.handlers.append(handler)

    def stop(self) -> None:
        """Stop the observer thread."""
        if self.observer.is_alive():
            self.observer.stop()
            self.observer.join(timeout=2.0)

    def is_alive(self) -> bool:
        return self.observer.is_alive()
