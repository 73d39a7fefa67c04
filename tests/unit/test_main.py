"""
Unit tests for peerchat.main module.

Created by orpheus497

Tests command line parsing and logging setup.
"""

import logging
import runpy
import sys
from logging.handlers import RotatingFileHandler

import pytest

from peerchat.config import Config
from peerchat.constants import LOG_FILENAME
from peerchat.main import build_parser, main, setup_logging


@pytest.fixture
def clean_logger():
    """Remove handlers that setup_logging installs on the package logger."""
    logger = logging.getLogger("peerchat")
    level = logger.level
    yield logger
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(level)


class TestArgumentParsing:
    """Test the command line interface."""

    def test_defaults(self):
        """Test options default to None so the config decides."""
        args = build_parser().parse_args([])

        assert args.name is None
        assert args.port is None
        assert args.connect is None
        assert args.debug is False

    def test_all_options(self):
        """Test every option is parsed."""
        args = build_parser().parse_args(
            [
                "--name", "alice",
                "--host", "0.0.0.0",
                "--port", "5001",
                "--connect", "127.0.0.1:5000",
                "--config", "/tmp/c.toml",
                "--data-dir", "/tmp/pc",
                "--debug",
            ]
        )

        assert args.name == "alice"
        assert args.host == "0.0.0.0"
        assert args.port == 5001
        assert args.connect == "127.0.0.1:5000"
        assert args.config == "/tmp/c.toml"
        assert args.data_dir == "/tmp/pc"
        assert args.debug is True

    def test_version(self, capsys):
        """Test --version prints the version and exits."""
        with pytest.raises(SystemExit) as exc_info:
            main(["--version"])

        assert exc_info.value.code == 0
        assert "PeerChat" in capsys.readouterr().out

    def test_bad_config_exits_with_error(self, temp_dir, capsys):
        """Test an unreadable config file stops startup."""
        path = temp_dir / "config.toml"
        path.write_text("[broken")

        assert main(["--config", str(path), "--data-dir", str(temp_dir)]) == 1
        assert "Configuration error" in capsys.readouterr().err

    def test_module_entry_point_propagates_exit_code(self, temp_dir, monkeypatch, capsys):
        """Test python -m peerchat exits with the status main returns."""
        path = temp_dir / "config.toml"
        path.write_text("[broken")
        monkeypatch.setattr(
            sys, "argv", ["peerchat", "--config", str(path), "--data-dir", str(temp_dir)]
        )

        with pytest.raises(SystemExit) as exc_info:
            runpy.run_module("peerchat", run_name="__main__")

        assert exc_info.value.code == 1

    def test_invalid_port(self, temp_dir):
        """Test a port outside the allowed range is a usage error."""
        with pytest.raises(SystemExit):
            main(["--port", "80", "--data-dir", str(temp_dir)])


class TestLoggingSetup:
    """Test logging configuration."""

    def test_file_logging(self, temp_dir, clean_logger):
        """Test a rotating file handler is installed in the data directory."""
        config = Config(temp_dir / "missing.toml")

        log_path = setup_logging(config, temp_dir)

        assert log_path == temp_dir / LOG_FILENAME
        assert any(isinstance(h, RotatingFileHandler) for h in clean_logger.handlers)
        assert clean_logger.level == logging.INFO

        logging.getLogger("peerchat.session").info("written to file")
        for handler in clean_logger.handlers:
            handler.flush()
        assert "written to file" in log_path.read_text()

    def test_debug_and_no_file(self, temp_dir, clean_logger):
        """Test debug raises the level and disabling files leaves no file handler."""
        config = Config(temp_dir / "missing.toml")
        config.set("logging", "file_logging", False)

        assert setup_logging(config, temp_dir, debug=True) is None
        assert clean_logger.level == logging.DEBUG
        assert not any(isinstance(h, RotatingFileHandler) for h in clean_logger.handlers)

    def test_repeated_setup_does_not_duplicate(self, temp_dir, clean_logger):
        """Test calling setup twice keeps a single file handler."""
        config = Config(temp_dir / "missing.toml")

        setup_logging(config, temp_dir)
        setup_logging(config, temp_dir)

        handlers = [h for h in clean_logger.handlers if isinstance(h, RotatingFileHandler)]
        assert len(handlers) == 1
