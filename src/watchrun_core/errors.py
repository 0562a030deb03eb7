"""Project-level exception hierarchy."""


class WatchrunError(Exception):
    """Base for all watchrun exceptions."""


class ConfigError(WatchrunError):
    """Invalid configuration: bad glob, signal, policy or missing command."""


class WatchError(WatchrunError):
    """A watch path does not exist or could not be registered."""


class SpawnError(WatchrunError):
    """The command could not be started."""


class WatcherDisconnected(WatchrunError):
    """The filesystem event source stopped unexpectedly."""
