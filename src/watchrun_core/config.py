"""Run configuration: settings model, TOML config file, filter rule construction."""

import logging
import tomllib
from dataclasses import dataclass, field, fields
from pathlib import Path
from signal import Signals
from typing import Any

from watchrun_core.errors import ConfigError
from watchrun_core.filter import FilterRules
from watchrun_core.gitignore import find_project_gitignore, load_global_gitignore
from watchrun_core.models import BusyAction, parse_signal
from watchrun_core.watchers import WatchSpec

logger = logging.getLogger(__name__)

CONFIG_TABLE = "watchrun"


@dataclass
class RunSettings:
    """Every value of the configuration surface, after defaults are applied."""

    command: list[str] = field(default_factory=list)
    """Program and arguments to run."""

    paths: list[str] = field(default_factory=lambda: ["."])
    """Paths to watch: directories recursively, files on their own."""

    debounce_ms: int = 100
    """Quiet period between the last change and the restart."""

    clear_screen: bool = False
    ignore_globs: list[str] = field(default_factory=list)
    extensions: list[str] = field(default_factory=list)
    busy_action: BusyAction = BusyAction.RESTART
    signal: Signals = Signals.SIGTERM
    default_ignore: bool = True
    global_ignore: bool = True
    project_ignore: bool = True
    verbose: bool = False

    grace_period: float = 5.0
    """Seconds between the stop signal and SIGKILL."""

    poll_interval: float = 0.05
    """Seconds between exit checks while stopping the child."""

    queue_backoff: float = 0.05
    """Seconds between retries of a queued restart."""

    @property
    def debounce(self) -> float:
        return self.debounce_ms / 1000.0

    def validate(self) -> None:
        """Check values that cannot be caught by type alone.

        Raises:
            ConfigError: On the first invalid value
        """
        if not self.command:
            raise ConfigError("No command given")
        if self.debounce_ms < 0:
            raise ConfigError(f"Invalid debounce {self.debounce_ms}: must not be negative")
        if self.grace_period < 0:
            raise ConfigError(f"Invalid grace period {self.grace_period}: must not be negative")
        if self.poll_interval <= 0 or self.queue_backoff <= 0:
            raise ConfigError("Poll interval and queue backoff must be positive")
        if not self.paths:
            raise ConfigError("No paths to watch")


# Config file keys that differ from the field names (CLI flag spellings).
_ALIASES = {
    "debounce": "debounce_ms",
    "clear": "clear_screen",
    "ignore": "ignore_globs",
    "exts": "extensions",
    "on_busy_update": "busy_action",
}

_LIST_KEYS = {"command", "paths", "ignore_globs", "extensions"}
_BOOL_KEYS = {"clear_screen", "default_ignore", "global_ignore", "project_ignore", "verbose"}
_NUMBER_KEYS = {"debounce_ms", "grace_period", "poll_interval", "queue_backoff"}


def load_config_file(path: str | Path) -> dict[str, Any]:
    """Load RunSettings values from a TOML file.

    Values live in a [watchrun] table, or [tool.watchrun] in pyproject.toml.

    Args:
        path: Path to TOML config file

    Returns:
        Mapping of RunSettings field names to parsed values

    Raises:
        ConfigError: If the file is missing, malformed or has invalid values
    """
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    try:
        raw = tomllib.loads(path.read_text())
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"Failed to parse config file {path}: {e}") from e

    if path.name == "pyproject.toml":
        raw = raw.get("tool", {})
    table = raw.get(CONFIG_TABLE, {})
    if not isinstance(table, dict):
        raise ConfigError(f"{path}: [{CONFIG_TABLE}] must be a table")

    values = _coerce(table, source=str(path))
    logger.debug(f"Loaded {len(values)} setting(s) from {path}")
    return values


def _coerce(table: dict[str, Any], source: str) -> dict[str, Any]:
    known = {f.name for f in fields(RunSettings)}
    values: dict[str, Any] = {}
    for raw_key, value in table.items():
        key = raw_key.replace("-", "_")
        key = _ALIASES.get(key, key)
        if key not in known:
            raise ConfigError(f"{source}: unknown setting '{raw_key}'")

        if key in _LIST_KEYS:
            if isinstance(value, str) and key != "command":
                value = [value]
            if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
                raise ConfigError(f"{source}: '{raw_key}' must be a list of strings")
        elif key in _BOOL_KEYS:
            if not isinstance(value, bool):
                raise ConfigError(f"{source}: '{raw_key}' must be true or false")
        elif key in _NUMBER_KEYS:
            if isinstance(value, bool) or not isinstance(value, int | float):
                raise ConfigError(f"{source}: '{raw_key}' must be a number")
            if key == "debounce_ms":
                value = int(value)
        elif key == "busy_action":
            value = BusyAction.from_name(str(value))
        elif key == "signal":
            value = parse_signal(str(value))
        values[key] = value
    return values


def build_filter_rules(
    settings: RunSettings,
    specs: list[WatchSpec],
    working_directory: Path,
) -> FilterRules:
    """Assemble the filter rule set for a run, loading ignore files once.

    Raises:
        ConfigError: If an ignore glob is invalid
    """
    project_ignore = find_project_gitignore(working_directory) if settings.project_ignore else None
    global_ignore = load_global_gitignore(working_directory) if settings.global_ignore else None
    rules = FilterRules.create(
        working_directory=working_directory,
        watched_files=[spec.path for spec in specs if spec.is_file],
        extensions=settings.extensions,
        ignore_globs=settings.ignore_globs,
        default_ignore=settings.default_ignore,
        project_ignore=project_ignore,
        global_ignore=global_ignore,
    )
    logger.debug(f"Only check extensions: {sorted(rules.extensions)}")
    return rules
