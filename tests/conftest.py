"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Add src directory to Python path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))


@pytest.fixture
def ready_file(tmp_path):
    """Marker file a child creates once its signal handler is installed."""
    return tmp_path / "ready"


@pytest.fixture
def run_log(tmp_path):
    """File the RUN_LOGGER child appends to on every start."""
    return tmp_path / "runs.log"
