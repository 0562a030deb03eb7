"""Abstract event source protocol and watch registration specs."""

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from watchrun_core.errors import WatchError


@dataclass(frozen=True)
class WatchSpec:
    """One path to register with the filesystem event source."""

    path: Path
    """Canonical absolute path."""

    recursive: bool = True
    """True for directories; False for an individually watched file."""

    @property
    def is_file(self) -> bool:
        return not self.recursive


def build_watch_specs(paths: Iterable[str | Path]) -> list[WatchSpec]:
    """Turn user-supplied paths into watch specs.

    Directories are watched recursively, files on their own.

    Raises:
        WatchError: If a path does not exist
    """
    specs = []
    for raw in paths:
        path = Path(raw).expanduser()
        if not path.exists():
            raise WatchError(f"{raw}: No such file or directory")
        path = path.resolve()
        specs.append(WatchSpec(path=path, recursive=path.is_dir()))
    return specs


class ChangeSource(Protocol):
    """Protocol for filesystem event sources."""

    def add_watch(self, spec: WatchSpec) -> None:
        """Register a path."""
        ...

    def start(self, callback: Callable[[str], None]) -> None:
        """Start delivering changed paths to callback (from any thread)."""
        ...

    def stop(self) -> None:
        """Stop watching."""
        ...

    def is_alive(self) -> bool:
        """False once the source has died."""
        ...
