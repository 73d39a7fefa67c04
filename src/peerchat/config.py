"""
PeerChat - Configuration Management

Settings come from three layers, later ones winning:
built-in defaults, a TOML file, and PEERCHAT_SECTION_KEY environment
variables. Values are checked by Config.validate() before the
application uses them.

Author: orpheus497
Version: 1.0.0
"""

import copy
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

# Python 3.11+ has tomllib built-in, older versions need tomli
if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from .constants import (
    CONFIG_FILENAME,
    CONNECT_TIMEOUT,
    DEFAULT_DATA_DIR,
    DEFAULT_HOST,
    DEFAULT_LISTEN_PORT,
    MAX_DISPLAY_NAME_LENGTH,
    TYPING_IDLE_TIMEOUT,
    UI_TIMESTAMP_FORMAT,
)
from .errors import ConfigError, ErrorCode
from .utils import validate_hostname, validate_port

logger = logging.getLogger(__name__)

ENV_PREFIX = "PEERCHAT"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
TRUE_STRINGS = ("true", "1", "yes", "on")

DEFAULT_CONFIG: Dict[str, Dict[str, Any]] = {
    "identity": {
        "display_name": "",
    },
    "network": {
        "host": DEFAULT_HOST,
        "port": DEFAULT_LISTEN_PORT,
        "connect_timeout": float(CONNECT_TIMEOUT),
    },
    "presence": {
        "typing_timeout": TYPING_IDLE_TIMEOUT,
    },
    "logging": {
        "level": "INFO",
        "file_logging": True,
        "console_logging": False,
    },
    "ui": {
        "timestamp_format": UI_TIMESTAMP_FORMAT,
    },
}


def _coerce(raw: str, current: Any) -> Any:
    """Convert an environment string to the type of the value it replaces."""
    if isinstance(current, bool):
        return raw.strip().lower() in TRUE_STRINGS
    if isinstance(current, int):
        return int(raw)
    if isinstance(current, float):
        return float(raw)
    return raw


def _toml_value(value: Any) -> Optional[str]:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, str):
        escaped = value.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return None


def _dump_toml(data: Dict[str, Any]) -> str:
    """Render a two-level settings dictionary as TOML."""
    lines: List[str] = []
    for section, settings in data.items():
        if not isinstance(settings, dict):
            continue
        lines.append(f"[{section}]")
        for key, value in settings.items():
            rendered = _toml_value(value)
            if rendered is not None:
                lines.append(f"{key} = {rendered}")
        lines.append("")
    return "\n".join(lines)


class Config:
    """Configuration manager for PeerChat.

    Attributes:
        config_path: Path to the configuration file
        data: Merged settings, section -> key -> value
    """

    def __init__(self, config_path: Optional[Path] = None):
        """Load configuration.

        Args:
            config_path: Path to configuration file (optional)
                Defaults to config.toml in the data directory

        Raises:
            ConfigError: If the file exists but cannot be read or parsed
        """
        if config_path is None:
            config_path = Path(DEFAULT_DATA_DIR).expanduser() / CONFIG_FILENAME

        self.config_path = Path(config_path)
        self.data = copy.deepcopy(DEFAULT_CONFIG)

        file_settings = self._read_file()
        if file_settings:
            self._merge(self.data, file_settings)
        self._apply_environment()

    @property
    def data_dir(self) -> Path:
        """Directory that holds the configuration file."""
        return self.config_path.parent

    def _read_file(self) -> Dict[str, Any]:
        if not self.config_path.exists():
            logger.debug(f"No configuration file at {self.config_path}, using defaults")
            return {}

        try:
            with open(self.config_path, "rb") as f:
                return tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(
                ErrorCode.E704_CONFIG_PARSE_ERROR,
                f"Failed to parse configuration file: {e}",
                {"path": str(self.config_path), "error": str(e)},
            )
        except OSError as e:
            raise ConfigError(
                ErrorCode.E701_CONFIG_LOAD_FAILED,
                f"Failed to read configuration file: {e}",
                {"path": str(self.config_path), "error": str(e)},
            )

    @staticmethod
    def _merge(target: Dict[str, Any], source: Dict[str, Any]) -> None:
        """Merge file settings into target in place, section by section."""
        for key, value in source.items():
            if isinstance(value, dict) and isinstance(target.get(key), dict):
                Config._merge(target[key], value)
            else:
                target[key] = value

    def _apply_environment(self) -> None:
        """Apply PEERCHAT_SECTION_KEY overrides, e.g. PEERCHAT_NETWORK_PORT=5001."""
        for section, settings in self.data.items():
            if not isinstance(settings, dict):
                continue

            for key, current in settings.items():
                env_var = f"{ENV_PREFIX}_{section.upper()}_{key.upper()}"
                raw = os.environ.get(env_var)
                if raw is None:
                    continue
                try:
                    settings[key] = _coerce(raw, current)
                except ValueError:
                    logger.warning(f"Ignoring {env_var}={raw!r}: expected {type(current).__name__}")

    def validate(self) -> None:
        """Check that settings are usable.

        Raises:
            ConfigError: E703 naming every invalid setting
        """
        problems = []

        if not validate_hostname(str(self.get("network", "host", ""))):
            problems.append("network.host is not a valid hostname or address")

        port = self.get("network", "port")
        if not isinstance(port, int) or isinstance(port, bool) or not validate_port(port):
            problems.append("network.port must be 0 or between 1024 and 65535")

        for section, key in (("network", "connect_timeout"), ("presence", "typing_timeout")):
            value = self.get(section, key)
            if not isinstance(value, (int, float)) or isinstance(value, bool) or value <= 0:
                problems.append(f"{section}.{key} must be a positive number")

        name = self.get("identity", "display_name", "")
        if not isinstance(name, str) or len(name) > MAX_DISPLAY_NAME_LENGTH:
            problems.append(
                f"identity.display_name must be text of at most {MAX_DISPLAY_NAME_LENGTH} characters"
            )

        if str(self.get("logging", "level", "")).upper() not in LOG_LEVELS:
            problems.append(f"logging.level must be one of {', '.join(LOG_LEVELS)}")

        if problems:
            raise ConfigError(
                ErrorCode.E703_INVALID_CONFIG,
                f"Invalid configuration: {'; '.join(problems)}",
                {"path": str(self.config_path), "problems": problems},
            )

    def get(self, section: str, key: str, default: Any = None) -> Any:
        """Get a configuration value, or default if the key is unknown."""
        return self.data.get(section, {}).get(key, default)

    def set(self, section: str, key: str, value: Any) -> None:
        """Set a configuration value, creating the section if needed."""
        self.data.setdefault(section, {})[key] = value

    def save(self) -> None:
        """Write the current settings back to config_path.

        Raises:
            ConfigError: If saving fails
        """
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            self.config_path.write_text(_dump_toml(self.data), encoding="utf-8")
        except OSError as e:
            raise ConfigError(
                ErrorCode.E702_CONFIG_SAVE_FAILED,
                f"Failed to save configuration: {e}",
                {"path": str(self.config_path), "error": str(e)},
            )
        logger.info(f"Configuration saved to {self.config_path}")

    def to_dict(self) -> Dict[str, Any]:
        """Get a deep copy of the settings."""
        return copy.deepcopy(self.data)

    @classmethod
    def create_example(cls, path: Path) -> None:
        """Write a commented example file holding the defaults.

        Raises:
            ConfigError: If file creation fails
        """
        header = "# PeerChat Configuration File\n# Generated example configuration\n\n"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(header + _dump_toml(DEFAULT_CONFIG), encoding="utf-8")
        except OSError as e:
            raise ConfigError(
                ErrorCode.E702_CONFIG_SAVE_FAILED,
                f"Failed to create example configuration: {e}",
                {"path": str(path), "error": str(e)},
            )
