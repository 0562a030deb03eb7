"""Path filtering: decides whether a changed path should trigger a restart.

Rules are evaluated in a fixed order and the first decisive rule wins:

1. paths outside the working directory are rejected
2. individually watched files are admitted
3. ignore globs reject
4. a non-empty extension list admits or rejects on its own
5. the project .gitignore rejects
6. the global ignore file rejects

Anything left is admitted.
"""

import fnmatch
import os
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath

from watchrun_core.errors import ConfigError
from watchrun_core.gitignore import GitIgnore

DEFAULT_IGNORE_GLOBS = ("*~", ".DS_Store", ".git")


class IgnoreGlob:
    """A shell-style glob matched against paths relative to the working directory.

    A pattern without a "/" is matched against every component of the path, so
    ".git" ignores the whole .git tree and "*.pyc" ignores compiled files at
    any depth. A pattern containing "/" is matched against the relative path
    and each of its ancestor directories; a leading "/" is accepted and only
    marks the pattern as anchored, which it already is. A leading "**/" matches
    zero or more directories, so "**/*.log" also ignores "debug.log" at the root.
    """

    def __init__(self, pattern: str):
        body = pattern.strip("/")
        _validate_glob(pattern, body)
        self.pattern = pattern
        self.floating = False
        while body.startswith("**/"):
            body = body[3:]
            self.floating = True
        self.bare = "/" not in body
        self._regex = re.compile(fnmatch.translate(body))

    def __repr__(self) -> str:
        return f"IgnoreGlob({self.pattern!r})"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, IgnoreGlob) and other.pattern == self.pattern

    def __hash__(self) -> int:
        return hash(self.pattern)

    def matches(self, rel: PurePosixPath) -> bool:
        """Check a path relative to the working directory."""
        parts = rel.parts
        if self.bare:
            return any(self._regex.match(part) for part in parts)
        starts = range(len(parts)) if self.floating else (0,)
        for start in starts:
            for end in range(start + 1, len(parts) + 1):
                if self._regex.match("/".join(parts[start:end])):
                    return True
        return False


def _validate_glob(pattern: str, body: str) -> None:
    if not body:
        raise ConfigError(f"Invalid ignore glob '{pattern}': pattern is empty")
    if "***" in body:
        raise ConfigError(f"Invalid ignore glob '{pattern}': invalid wildcard '***'")
    for segment in body.split("/"):
        if "**" in segment and segment != "**":
            raise ConfigError(f"Invalid ignore glob '{pattern}': '**' must be a whole path component")
    i = 0
    while i < len(body):
        if body[i] == "[":
            # a "]" right after "[" or "[!" is literal
            j = i + 1
            if j < len(body) and body[j] == "!":
                j += 1
            if j < len(body) and body[j] == "]":
                j += 1
            close = body.find("]", j)
            if close == -1:
                raise ConfigError(f"Invalid ignore glob '{pattern}': unclosed character class")
            i = close
        i += 1


def normalize_extension(ext: str) -> str:
    """Strip whitespace and leading dots: ".rs" and "rs" are the same filter."""
    return ext.strip().lstrip(".")


def path_extensions(name: str) -> set[str]:
    """Extensions a filename can match.

    The last suffix and the full multi-part suffix both count, so "a.tar.gz"
    yields {"gz", "tar.gz"}. A dotfile with no other dot uses its name, so
    ".env" yields {"env"}.
    """
    dotfile = name.startswith(".")
    stem = name[1:] if dotfile else name
    if "." not in stem:
        return {stem} if dotfile and stem else set()
    return {stem.split(".", 1)[1], stem.rsplit(".", 1)[1]} - {""}


@dataclass(frozen=True)
class FilterRules:
    """Immutable rule set built once per run."""

    working_directory: Path
    """Absolute base path; matching is relative to it."""

    watched_files: frozenset[str] = frozenset()
    """Canonical absolute paths of individually watched files."""

    extensions: frozenset[str] = frozenset()
    """When non-empty, only these extensions are admitted."""

    ignore_globs: tuple[IgnoreGlob, ...] = ()
    """Globs that reject matching paths."""

    project_ignore: GitIgnore | None = field(default=None, compare=False)
    global_ignore: GitIgnore | None = field(default=None, compare=False)

    @classmethod
    def create(
        cls,
        working_directory: str | Path,
        watched_files: Iterable[str | Path] = (),
        extensions: Iterable[str] = (),
        ignore_globs: Iterable[str] = (),
        default_ignore: bool = True,
        project_ignore: GitIgnore | None = None,
        global_ignore: GitIgnore | None = None,
    ) -> "FilterRules":
        """Build a rule set from raw configuration values.

        Raises:
            ConfigError: If an ignore glob is invalid
        """
        patterns = list(ignore_globs)
        if default_ignore:
            patterns.extend(DEFAULT_IGNORE_GLOBS)
        exts = {normalize_extension(e) for item in extensions for e in item.split(",")}
        return cls(
            working_directory=Path(os.path.abspath(working_directory)),
            watched_files=frozenset(str(Path(p).resolve()) for p in watched_files),
            extensions=frozenset(e for e in exts if e),
            ignore_globs=tuple(IgnoreGlob(p) for p in patterns),
            project_ignore=project_ignore,
            global_ignore=global_ignore,
        )


def admit(path: str | Path, rules: FilterRules) -> bool:
    """Decide whether a change to path should trigger a restart."""
    path = Path(os.path.abspath(path))
    try:
        rel = PurePosixPath(path.relative_to(rules.working_directory).as_posix())
    except ValueError:
        return False

    if str(path) in rules.watched_files:
        return True

    for glob in rules.ignore_globs:
        if glob.matches(rel):
            return False

    if rules.extensions:
        return not rules.extensions.isdisjoint(path_extensions(path.name))

    is_dir = path.is_dir()
    if rules.project_ignore and rules.project_ignore.matched_path_or_any_parents(path, is_dir):
        return False
    if rules.global_ignore and rules.global_ignore.matched_path_or_any_parents(path, is_dir):
        return False

    return True
