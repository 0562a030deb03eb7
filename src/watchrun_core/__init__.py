"""watchrun-core: path filtering, restart debouncing and process supervision."""

__version__ = "0.1.0"

# Models
from watchrun_core.config import RunSettings, build_filter_rules, load_config_file
from watchrun_core.errors import (
    ConfigError,
    SpawnError,
    WatchError,
    WatcherDisconnected,
    WatchrunError,
)

# Filtering
from watchrun_core.filter import DEFAULT_IGNORE_GLOBS, FilterRules, IgnoreGlob, admit
from watchrun_core.gitignore import GitIgnore, find_project_gitignore, load_global_gitignore
from watchrun_core.models import (
    BusyAction,
    ExitCode,
    Idle,
    PendingSince,
    RestartDecision,
    RestartDue,
    TerminateOutcome,
)

# Restart and supervision
from watchrun_core.state_machine import RestartStateMachine
from watchrun_core.supervisor import ProcessSupervisor

__all__ = [
    "__version__",
    # Models
    "BusyAction",
    "ExitCode",
    "Idle",
    "PendingSince",
    "RestartDue",
    "RestartDecision",
    "TerminateOutcome",
    # Config
    "RunSettings",
    "load_config_file",
    "build_filter_rules",
    # Errors
    "WatchrunError",
    "ConfigError",
    "WatchError",
    "SpawnError",
    "WatcherDisconnected",
    # Filtering
    "FilterRules",
    "IgnoreGlob",
    "DEFAULT_IGNORE_GLOBS",
    "admit",
    "GitIgnore",
    "find_project_gitignore",
    "load_global_gitignore",
    # Restart and supervision
    "RestartStateMachine",
    "ProcessSupervisor",
]
