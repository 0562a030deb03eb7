"""CLI entry point for watchrun: parse arguments and run the control loop."""

import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence

from watchrun import __version__
from watchrun.controller import RunController
from watchrun_core.config import RunSettings, load_config_file
from watchrun_core.errors import ConfigError, WatchrunError
from watchrun_core.models import BusyAction, ExitCode, FORWARDABLE_SIGNALS, parse_signal
from watchrun_core.notifier import LoggingNotifier

PROG = "watchrun"


def _signal_arg(value: str):
    try:
        return parse_signal(value)
    except ConfigError as e:
        raise argparse.ArgumentTypeError(str(e)) from None


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser. Options default to None so config file values show through."""
    parser = argparse.ArgumentParser(
        prog=PROG,
        usage="%(prog)s [options] [PATH ...] -- COMMAND [ARG ...]",
        description="Run a command, and run it again whenever watched files change.",
        epilog="Examples:\n"
        "  watchrun -- pytest -x                 # Watch the current directory\n"
        "  watchrun -e py,toml src -- pytest     # Only .py and .toml files under src\n"
        "  watchrun --on-busy-update queue -- make\n",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-v", "--verbose", action="store_true", default=None, help="Print diagnostics")
    parser.add_argument(
        "-d",
        "--debounce",
        type=int,
        dest="debounce_ms",
        metavar="MS",
        help="Time between a detected change and running the command (default: 100)",
    )
    parser.add_argument(
        "-L",
        "--clear",
        action="store_true",
        default=None,
        dest="clear_screen",
        help="Clear the screen before running the command",
    )
    parser.add_argument(
        "-i",
        "--ignore",
        action="append",
        dest="ignore_globs",
        metavar="GLOB",
        help="Ignore paths matching the pattern",
    )
    parser.add_argument(
        "-e",
        "--exts",
        action="append",
        dest="extensions",
        metavar="EXT",
        help="Only react to these file extensions (comma-separated or repeated)",
    )
    parser.add_argument(
        "--on-busy-update",
        choices=[a.value for a in BusyAction],
        dest="busy_action",
        help="What to do when files change while the command is running (default: signal)",
    )
    parser.add_argument(
        "--signal",
        type=_signal_arg,
        metavar="{" + ",".join(FORWARDABLE_SIGNALS) + "}",
        help="Signal sent to the command when restarting or stopping (default: SIGTERM)",
    )
    parser.add_argument(
        "--no-default-ignore",
        action="store_false",
        default=None,
        dest="default_ignore",
        help="Do not use the default ignore globs (*~, .DS_Store, .git)",
    )
    parser.add_argument(
        "--no-global-ignore",
        action="store_false",
        default=None,
        dest="global_ignore",
        help="Skip the global git ignore file",
    )
    parser.add_argument(
        "--no-project-ignore",
        action="store_false",
        default=None,
        dest="project_ignore",
        help="Skip auto-loading of the project .gitignore",
    )
    parser.add_argument(
        "--grace-period",
        type=float,
        metavar="SECONDS",
        help="Time the command gets to exit after the signal before it is killed (default: 5)",
    )
    parser.add_argument("-c", "--config", help="Read defaults from a TOML file ([watchrun] table)")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("paths", nargs="*", metavar="PATH", help="Paths to watch (default: .)")
    return parser


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Everything after the first "--" is the command.

    Returns:
        Parsed arguments namespace, with the command in args.command
    """
    argv = list(sys.argv[1:] if argv is None else argv)
    parser = build_parser()
    if not argv:
        parser.print_help(sys.stderr)
        sys.exit(ExitCode.FATAL)

    if "--" in argv:
        split = argv.index("--")
        options, command = argv[:split], argv[split + 1 :]
    else:
        options, command = argv, []

    args = parser.parse_args(options)
    if not command:
        parser.error("the following arguments are required: COMMAND (after --)")
    args.command = command
    return args


def settings_from_args(args: argparse.Namespace) -> RunSettings:
    """Merge config file values and command-line flags; flags win.

    Raises:
        ConfigError: If the config file or a value is invalid
    """
    values = load_config_file(args.config) if args.config else {}
    overrides = {
        key: value
        for key, value in vars(args).items()
        if key not in ("config", "paths") and value is not None
    }
    if args.paths:
        overrides["paths"] = args.paths
    if "busy_action" in overrides:
        overrides["busy_action"] = BusyAction.from_name(overrides["busy_action"])
    values.update(overrides)
    settings = RunSettings(**values)
    settings.validate()
    return settings


def configure_logging(verbose: bool) -> None:
    """Send watchrun diagnostics to stderr; DEBUG when verbose."""
    logging.basicConfig(stream=sys.stderr, format=f"{PROG}: %(message)s")
    level = logging.DEBUG if verbose else logging.INFO
    for name in ("watchrun", "watchrun_core"):
        logging.getLogger(name).setLevel(level)


def main(argv: Sequence[str] | None = None) -> None:
    """
    Main entry point for the watchrun CLI.

    Handles:
    - Argument parsing and config file merging
    - Running the control loop
    - Error reporting and exit codes
    """
    args = parse_args(argv)

    try:
        settings = settings_from_args(args)
        configure_logging(settings.verbose)
        controller = RunController(settings, notifier=LoggingNotifier())
        exit_code = asyncio.run(controller.run())
    except WatchrunError as e:
        print(f"{PROG}: error: {e}", file=sys.stderr)
        sys.exit(ExitCode.FATAL)
    except KeyboardInterrupt:
        sys.exit(ExitCode.SHUTDOWN)

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
