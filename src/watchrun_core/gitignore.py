"""Gitignore-style rule sets used by the filter engine.

Pattern semantics (negation, anchoring, last match wins) come from pathspec's
GitIgnoreSpec. This module adds the parts git itself does around the patterns:
matching relative to the directory that holds the ignore file, treating an
ignored directory as ignoring everything below it, and locating the project
and global ignore files.
"""

import logging
import os
import subprocess
from pathlib import Path

import pathspec

logger = logging.getLogger(__name__)


class GitIgnore:
    """A compiled set of gitignore patterns rooted at a directory."""

    def __init__(self, root: Path, lines: list[str], source: Path | None = None):
        """Initialize rule set.

        Args:
            root: Directory the patterns are relative to
            lines: Raw lines of the ignore file
            source: File the lines were read from, for diagnostics
        """
        self.root = Path(root)
        self.source = source
        self._spec = pathspec.GitIgnoreSpec.from_lines(lines)

    @classmethod
    def from_file(cls, path: Path, root: Path | None = None) -> "GitIgnore":
        """Load an ignore file. The root defaults to the file's directory."""
        path = Path(path)
        lines = path.read_text(errors="replace").splitlines()
        return cls(root if root is not None else path.parent, lines, source=path)

    def __len__(self) -> int:
        return len(self._spec.patterns)

    def _relative(self, path: Path) -> Path | None:
        try:
            rel = Path(path).relative_to(self.root)
        except ValueError:
            return None
        if not rel.parts:
            return None
        return rel

    def matched(self, path: Path, is_dir: bool = False) -> bool:
        """Return True if the path itself is ignored."""
        rel = self._relative(path)
        if rel is None:
            return False
        candidate = rel.as_posix() + ("/" if is_dir else "")
        return self._spec.match_file(candidate)

    def matched_path_or_any_parents(self, path: Path, is_dir: bool = False) -> bool:
        """Return True if the path or any directory above it (below root) is ignored."""
        rel = self._relative(path)
        if rel is None:
            return False
        parts = rel.parts
        for i in range(1, len(parts)):
            if self._spec.match_file("/".join(parts[:i]) + "/"):
                return True
        return self._spec.match_file(rel.as_posix() + ("/" if is_dir else ""))


def find_project_gitignore(start: Path) -> GitIgnore | None:
    """Find the nearest .gitignore at or above start.

    The walk stops at the first directory containing a .gitignore, or at a
    directory containing a .git marker, or at the filesystem root.
    """
    path = Path(start).resolve()
    while True:
        candidate = path / ".gitignore"
        if candidate.is_file():
            return _load(candidate)
        if (path / ".git").exists() or path.parent == path:
            return None
        path = path.parent


def global_excludes_file() -> Path:
    """Location of the user's global ignore file (git's core.excludesFile)."""
    try:
        result = subprocess.run(
            ["git", "config", "--global", "--get", "core.excludesFile"],
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError:
        result = None
    if result is not None and result.returncode == 0 and result.stdout.strip():
        return Path(os.path.expanduser(result.stdout.strip()))

    xdg = os.environ.get("XDG_CONFIG_HOME")
    base = Path(xdg) if xdg else Path.home() / ".config"
    return base / "git" / "ignore"


def load_global_gitignore(root: Path) -> GitIgnore | None:
    """Load the global ignore file, matching relative to root."""
    path = global_excludes_file()
    if not path.is_file():
        logger.debug(f"No global ignore file at {path}")
        return None
    return _load(path, root=Path(root))


def _load(path: Path, root: Path | None = None) -> GitIgnore | None:
    try:
        ignore = GitIgnore.from_file(path, root=root)
    except OSError as e:
        logger.warning(f"Failed to read ignore file {path}: {e}")
        return None
    logger.debug(f"Loaded {len(ignore)} ignore pattern(s) from {path}")
    return ignore
