"""watchrun: re-run a command whenever watched files change."""

__version__ = "0.1.0"

# Public API
from watchrun.controller import RunController

__all__ = [
    "__version__",
    # Primary components
    "RunController",
]
