"""Shared helpers for tests that run real child processes."""

import asyncio
import os
import sys
import time
from pathlib import Path


def python_command(code: str, *args: str) -> list[str]:
    """Command line running a snippet with the current interpreter."""
    return [sys.executable, "-c", code, *args]


# Appends a line to argv[1] each time it starts, then sleeps argv[2] seconds.
RUN_LOGGER = (
    "import sys, time\n"
    "with open(sys.argv[1], 'a') as f:\n"
    "    f.write('run\\n')\n"
    "time.sleep(float(sys.argv[2]))"
)

# Ignores SIGTERM, touches argv[1] once the handler is in place, then sleeps.
IGNORE_TERM = (
    "import signal, sys, time\n"
    "signal.signal(signal.SIGTERM, signal.SIG_IGN)\n"
    "open(sys.argv[1], 'w').close()\n"
    "time.sleep(30)"
)

# Catches SIGTERM and exits with argv[2] instead of dying from it.
EXIT_ON_TERM = (
    "import signal, sys, time\n"
    "signal.signal(signal.SIGTERM, lambda *a: sys.exit(int(sys.argv[2])))\n"
    "open(sys.argv[1], 'w').close()\n"
    "time.sleep(30)"
)

SLEEPER = "import time; time.sleep(30)"


async def wait_until(predicate, timeout: float = 5.0, interval: float = 0.02) -> bool:
    """Poll predicate until it is true or the timeout passes."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        await asyncio.sleep(interval)
    return predicate()


def count_runs(log: Path) -> int:
    """Number of times RUN_LOGGER started."""
    if not log.exists():
        return 0
    return len(log.read_text().splitlines())


# Forks a grandchild that writes its pid to argv[1] (atomically, once its
# SIGTERM disposition is set), then the leader sleeps argv[3] seconds.
# argv[2] is "ignore" to make the grandchild ignore SIGTERM.
FORKING_LEADER = (
    "import os, signal, sys, time\n"
    "if os.fork() == 0:\n"
    "    if sys.argv[2] == 'ignore':\n"
    "        signal.signal(signal.SIGTERM, signal.SIG_IGN)\n"
    "    with open(sys.argv[1] + '.tmp', 'w') as f:\n"
    "        f.write(str(os.getpid()))\n"
    "    os.replace(sys.argv[1] + '.tmp', sys.argv[1])\n"
    "    time.sleep(30)\n"
    "    os._exit(0)\n"
    "time.sleep(float(sys.argv[3]))"
)


def process_gone(pid: int) -> bool:
    """True once pid no longer exists or is a zombie awaiting its reaper."""
    stat = Path(f"/proc/{pid}/stat")
    if Path("/proc").is_dir():
        try:
            state = stat.read_text().rsplit(")", 1)[1].split()[0]
        except FileNotFoundError:
            return True
        return state == "Z"
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return True
    return False
