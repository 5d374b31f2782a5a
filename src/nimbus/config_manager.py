"""Configuration management module.

Persistent user configuration stored as TOML at ``~/.nimbus/config.toml``
(or ``$NIMBUS_CONFIG_DIR/config.toml``). Holds the command ``mode`` that
selects which mode subtree of ``nimbus.commands`` is loaded, plus free-form
user settings.

Security:
- Config directory permissions: 0700
- Config file permissions: 0600 (owner read/write only)
- Atomic writes through a temporary file
"""

import logging
import os
import tomllib
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import tomlkit

from nimbus.errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_DIR_ENV = "NIMBUS_CONFIG_DIR"

# Mode subtrees under nimbus/commands
MODE_ASM = "asm"
DEFAULT_MODE = MODE_ASM


@dataclass
class NimbusConfig:
    """nimbus configuration data."""

    mode: str = DEFAULT_MODE
    settings: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"mode": self.mode}
        if self.settings:
            data["settings"] = dict(self.settings)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "NimbusConfig":
        settings = data.get("settings", {})
        return cls(
            mode=data.get("mode", DEFAULT_MODE),
            settings={str(key): str(value) for key, value in settings.items()},
        )


class ConfigManager:
    """Manage the nimbus configuration file."""

    CONFIG_FILE_NAME = "config.toml"

    @classmethod
    def config_dir(cls) -> Path:
        """Configuration directory, honoring ``$NIMBUS_CONFIG_DIR``."""
        override = os.environ.get(CONFIG_DIR_ENV)
        if override:
            return Path(override).expanduser()
        return Path.home() / ".nimbus"

    @classmethod
    def get_config_path(cls) -> Path:
        return cls.config_dir() / cls.CONFIG_FILE_NAME

    @classmethod
    def ensure_config_dir(cls) -> Path:
        """Ensure config directory exists with secure permissions.

        Raises:
            ConfigError: If directory creation fails
        """
        config_dir = cls.config_dir()
        try:
            config_dir.mkdir(parents=True, exist_ok=True)
            os.chmod(config_dir, 0o700)
            logger.debug(f"Config directory ready: {config_dir}")
            return config_dir
        except OSError as e:
            raise ConfigError(f"Failed to create config directory: {e}") from e

    @classmethod
    def load_config(cls) -> NimbusConfig:
        """Load configuration from file, or defaults when there is none.

        Raises:
            ConfigError: If the file exists but cannot be read or parsed
        """
        config_path = cls.get_config_path()
        if not config_path.exists():
            logger.debug("Config file not found, using defaults")
            return NimbusConfig()

        try:
            mode = config_path.stat().st_mode & 0o777
            if mode & 0o077:
                logger.warning(
                    f"Config file has insecure permissions: {oct(mode)}. Fixing to 0600..."
                )
                os.chmod(config_path, 0o600)

            with open(config_path, "rb") as f:
                data = tomllib.load(f)

            logger.debug(f"Loaded config from: {config_path}")
            return NimbusConfig.from_dict(data)

        except (OSError, tomllib.TOMLDecodeError) as e:
            raise ConfigError(f"Failed to load config: {e}") from e

    @classmethod
    def save_config(cls, config: NimbusConfig) -> None:
        """Save configuration to file.

        Raises:
            ConfigError: If saving fails
        """
        temp_path: Path | None = None
        try:
            cls.ensure_config_dir()
            config_path = cls.get_config_path()
            temp_path = config_path.with_suffix(".tmp")

            doc = tomlkit.document()
            for key, value in config.to_dict().items():
                doc[key] = value

            with open(temp_path, "w") as f:
                tomlkit.dump(doc, f)

            os.chmod(temp_path, 0o600)
            temp_path.replace(config_path)

            logger.debug(f"Saved config to: {config_path}")

        except OSError as e:
            if temp_path and temp_path.exists():
                temp_path.unlink()
            raise ConfigError(f"Failed to save config: {e}") from e

    @classmethod
    def get_setting(cls, name: str) -> str | None:
        return cls.load_config().settings.get(name)

    @classmethod
    def set_setting(cls, name: str, value: str) -> NimbusConfig:
        if name == "mode":
            raise ConfigError("Use 'nimbus config mode <mode>' to change the command mode")
        config = cls.load_config()
        config.settings[name] = value
        cls.save_config(config)
        return config

    @classmethod
    def delete_setting(cls, name: str) -> bool:
        """Remove a setting. Returns False when it was not set."""
        config = cls.load_config()
        if name not in config.settings:
            return False
        del config.settings[name]
        cls.save_config(config)
        return True

    @classmethod
    def get_mode(cls, available: Iterable[str]) -> str:
        """Configured mode, reset to the default when no such subtree exists."""
        available = set(available)
        try:
            config = cls.load_config()
        except ConfigError as e:
            logger.warning(f"{e}. Using mode '{DEFAULT_MODE}'.")
            return DEFAULT_MODE

        if config.mode in available or config.mode == DEFAULT_MODE:
            return config.mode

        logger.error(f"Invalid config mode {config.mode}. Resetting to {DEFAULT_MODE}.")
        config.mode = DEFAULT_MODE
        try:
            cls.save_config(config)
        except ConfigError as e:
            logger.warning(str(e))
        return DEFAULT_MODE

    @classmethod
    def set_mode(cls, mode: str, available: Iterable[str]) -> NimbusConfig:
        """Persist a new command mode.

        Raises:
            ConfigError: If ``mode`` has no command subtree
        """
        choices = sorted(available)
        if mode not in choices:
            raise ConfigError(f"Invalid mode '{mode}'. Choose one of: {', '.join(choices)}")
        config = cls.load_config()
        config.mode = mode
        cls.save_config(config)
        return config
