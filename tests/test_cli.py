"""Tests for watchrun.cli module."""

import logging
import signal
import sys
from io import StringIO
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from watchrun.cli import build_parser, configure_logging, main, parse_args, settings_from_args
from watchrun_core.errors import ConfigError, SpawnError
from watchrun_core.models import BusyAction, ExitCode


class TestParseArgs:
    """Tests for parse_args function."""

    def test_command_after_separator(self):
        """Test everything after -- is the command."""
        args = parse_args(["--", "cargo", "test", "--", "--nocapture"])
        assert args.command == ["cargo", "test", "--", "--nocapture"]
        assert args.paths == []

    def test_paths_before_separator(self):
        """Test positional paths before --."""
        args = parse_args(["src", "Cargo.toml", "--", "make"])
        assert args.paths == ["src", "Cargo.toml"]
        assert args.command == ["make"]

    def test_options_default_to_none(self):
        """Test unset options stay None so config values show through."""
        args = parse_args(["--", "make"])
        for name in ("verbose", "debounce_ms", "clear_screen", "ignore_globs", "extensions", "busy_action", "signal"):
            assert getattr(args, name) is None

    def test_short_flags(self):
        """Test -v, -d, -L, -i and -e."""
        args = parse_args(["-v", "-d", "250", "-L", "-i", "*.tmp", "-i", "build", "-e", "rs,toml", "--", "make"])
        assert args.verbose is True
        assert args.debounce_ms == 250
        assert args.clear_screen is True
        assert args.ignore_globs == ["*.tmp", "build"]
        assert args.extensions == ["rs,toml"]

    def test_repeated_options_do_not_swallow_paths(self):
        """Test -i takes one value so following paths stay positional."""
        args = parse_args(["-i", "*.log", "src", "--", "make"])
        assert args.ignore_globs == ["*.log"]
        assert args.paths == ["src"]

    def test_busy_action_and_signal(self):
        """Test --on-busy-update and --signal."""
        args = parse_args(["--on-busy-update", "queue", "--signal", "hup", "--", "make"])
        assert args.busy_action == "queue"
        assert args.signal == signal.SIGHUP

    def test_ignore_toggles(self):
        """Test the --no-*-ignore flags."""
        args = parse_args(["--no-default-ignore", "--no-global-ignore", "--no-project-ignore", "--", "make"])
        assert args.default_ignore is False
        assert args.global_ignore is False
        assert args.project_ignore is False

    def test_invalid_signal_rejected(self):
        """Test an unsupported signal is a usage error."""
        with patch("sys.stderr", new_callable=StringIO), pytest.raises(SystemExit) as exc_info:
            parse_args(["--signal", "SIGKILL", "--", "make"])
        assert exc_info.value.code == 2

    def test_invalid_busy_action_rejected(self):
        """Test --on-busy-update only accepts known policies."""
        with patch("sys.stderr", new_callable=StringIO), pytest.raises(SystemExit) as exc_info:
            parse_args(["--on-busy-update", "restart", "--", "make"])
        assert exc_info.value.code == 2

    def test_missing_command(self):
        """Test a usage error without a command."""
        with patch("sys.stderr", new_callable=StringIO) as stderr, pytest.raises(SystemExit) as exc_info:
            parse_args(["src"])
        assert exc_info.value.code == 2
        assert "COMMAND" in stderr.getvalue()

    def test_no_arguments_prints_help(self):
        """Test running with no arguments prints usage and exits."""
        with (
            patch.object(sys, "argv", ["watchrun"]),
            patch("sys.stderr", new_callable=StringIO) as stderr,
            pytest.raises(SystemExit) as exc_info,
        ):
            parse_args()
        assert exc_info.value.code == ExitCode.FATAL
        assert "usage:" in stderr.getvalue()

    def test_version_flag(self):
        """Test --version flag exits with version."""
        with patch("sys.stdout", new_callable=StringIO) as stdout, pytest.raises(SystemExit) as exc_info:
            parse_args(["--version"])
        assert exc_info.value.code == 0
        assert "watchrun" in stdout.getvalue()

    def test_help_flag(self):
        """Test --help flag exits with help."""
        with patch("sys.stdout", new_callable=StringIO), pytest.raises(SystemExit) as exc_info:
            parse_args(["--help"])
        assert exc_info.value.code == 0

    def test_parser_lists_busy_actions(self):
        """Test the help text offers every busy action."""
        help_text = build_parser().format_help()
        for action in BusyAction:
            assert action.value in help_text


class TestSettingsFromArgs:
    """Tests for merging config file values with flags."""

    def test_defaults(self):
        """Test defaults when only a command is given."""
        settings = settings_from_args(parse_args(["--", "make", "test"]))
        assert settings.command == ["make", "test"]
        assert settings.paths == ["."]
        assert settings.debounce_ms == 100
        assert settings.busy_action is BusyAction.RESTART
        assert settings.signal == signal.SIGTERM
        assert settings.default_ignore is True

    def test_flags_converted(self):
        """Test flag values are converted to settings types."""
        settings = settings_from_args(parse_args(["--on-busy-update", "do-nothing", "--", "make"]))
        assert settings.busy_action is BusyAction.DO_NOTHING

    def test_config_file_values_used(self, tmp_path):
        """Test values come from the config file when no flag is given."""
        config = tmp_path / "watchrun.toml"
        config.write_text(
            """
[watchrun]
debounce = 300
exts = ["py"]
on-busy-update = "queue"
"""
        )
        settings = settings_from_args(parse_args(["-c", str(config), "--", "pytest"]))
        assert settings.debounce_ms == 300
        assert settings.extensions == ["py"]
        assert settings.busy_action is BusyAction.QUEUE

    def test_flags_override_config_file(self, tmp_path):
        """Test command-line flags win over the config file."""
        config = tmp_path / "watchrun.toml"
        config.write_text('[watchrun]\ndebounce = 300\npaths = ["lib"]\nclear = true\n')
        settings = settings_from_args(parse_args(["-c", str(config), "-d", "50", "src", "--", "pytest"]))
        assert settings.debounce_ms == 50
        assert settings.paths == ["src"]
        assert settings.clear_screen is True

    def test_missing_config_file(self, tmp_path):
        """Test a missing config file is a configuration error."""
        with pytest.raises(ConfigError):
            settings_from_args(parse_args(["-c", str(tmp_path / "nope.toml"), "--", "make"]))

    def test_negative_debounce_rejected(self):
        """Test invalid values are caught by validation."""
        with pytest.raises(ConfigError):
            settings_from_args(parse_args(["-d", "-5", "--", "make"]))


class TestConfigureLogging:
    """Tests for configure_logging."""

    @pytest.fixture(autouse=True)
    def restore_levels(self):
        loggers = [logging.getLogger(name) for name in ("watchrun", "watchrun_core")]
        levels = [logger.level for logger in loggers]
        yield
        for logger, level in zip(loggers, levels):
            logger.setLevel(level)

    def test_verbose_enables_debug(self):
        configure_logging(verbose=True)
        assert logging.getLogger("watchrun_core.supervisor").isEnabledFor(logging.DEBUG)

    def test_quiet_by_default(self):
        configure_logging(verbose=False)
        assert not logging.getLogger("watchrun.controller").isEnabledFor(logging.DEBUG)
        assert logging.getLogger("watchrun").isEnabledFor(logging.INFO)


class TestMain:
    """Tests for main function."""

    @pytest.fixture(autouse=True)
    def no_logging_setup(self):
        with patch("watchrun.cli.configure_logging") as mock_configure:
            yield mock_configure

    def test_main_exits_with_controller_status(self):
        """Test the controller's exit status becomes the process status."""
        with patch("watchrun.cli.RunController") as mock_controller:
            mock_instance = MagicMock()
            mock_instance.run = AsyncMock(return_value=143)
            mock_controller.return_value = mock_instance

            with pytest.raises(SystemExit) as exc_info:
                main(["--", "make"])

        assert exc_info.value.code == 143
        settings = mock_controller.call_args[0][0]
        assert settings.command == ["make"]
        mock_instance.run.assert_awaited_once()

    def test_main_verbose_configures_debug(self, no_logging_setup):
        """Test -v reaches logging setup."""
        with patch("watchrun.cli.RunController") as mock_controller:
            mock_instance = MagicMock()
            mock_instance.run = AsyncMock(return_value=ExitCode.SHUTDOWN)
            mock_controller.return_value = mock_instance
            with pytest.raises(SystemExit):
                main(["-v", "--", "make"])
        no_logging_setup.assert_called_once_with(True)

    def test_main_keyboard_interrupt(self):
        """Test handling of KeyboardInterrupt (Ctrl+C)."""
        with (
            patch("watchrun.cli.RunController"),
            patch("watchrun.cli.asyncio.run", side_effect=KeyboardInterrupt()),
            pytest.raises(SystemExit) as exc_info,
        ):
            main(["--", "make"])

        assert exc_info.value.code == ExitCode.SHUTDOWN

    def test_main_startup_error(self):
        """Test errors are reported on stderr with the fatal status."""
        with (
            patch("watchrun.cli.RunController") as mock_controller,
            patch("sys.stderr", new_callable=StringIO) as stderr,
            pytest.raises(SystemExit) as exc_info,
        ):
            mock_instance = MagicMock()
            mock_instance.run = AsyncMock(side_effect=SpawnError("nosuchcmd: command not found"))
            mock_controller.return_value = mock_instance
            main(["--", "nosuchcmd"])

        assert exc_info.value.code == ExitCode.FATAL
        assert stderr.getvalue() == "watchrun: error: nosuchcmd: command not found\n"

    def test_main_missing_watch_path(self, tmp_path):
        """Test a missing path is fatal before anything runs."""
        with (
            patch("sys.stderr", new_callable=StringIO) as stderr,
            pytest.raises(SystemExit) as exc_info,
        ):
            main([str(tmp_path / "missing"), "--", "make"])

        assert exc_info.value.code == ExitCode.FATAL
        assert "No such file or directory" in stderr.getvalue()
