"""Unit tests for the configuration manager."""

import os

import pytest

from nimbus.config_manager import DEFAULT_MODE, ConfigManager, NimbusConfig
from nimbus.errors import ConfigError

MODES = ["arm", "asm"]


class TestConfigLocation:
    def test_config_dir_from_environment(self, config_dir):
        assert ConfigManager.config_dir() == config_dir
        assert ConfigManager.get_config_path() == config_dir / "config.toml"

    def test_default_config_dir(self, monkeypatch, tmp_path):
        monkeypatch.delenv("NIMBUS_CONFIG_DIR")
        monkeypatch.setenv("HOME", str(tmp_path))

        assert ConfigManager.config_dir() == tmp_path / ".nimbus"


class TestLoadSave:
    """Test reading and writing config.toml."""

    def test_defaults_without_file(self):
        config = ConfigManager.load_config()

        assert config == NimbusConfig(mode=DEFAULT_MODE, settings={})

    def test_round_trip(self):
        ConfigManager.save_config(NimbusConfig(mode="arm", settings={"region": "westus"}))

        assert ConfigManager.load_config() == NimbusConfig(mode="arm", settings={"region": "westus"})

    def test_secure_permissions(self, config_dir):
        ConfigManager.save_config(NimbusConfig())

        assert ConfigManager.get_config_path().stat().st_mode & 0o777 == 0o600
        assert config_dir.stat().st_mode & 0o777 == 0o700

    def test_insecure_permissions_fixed(self):
        ConfigManager.save_config(NimbusConfig())
        path = ConfigManager.get_config_path()
        os.chmod(path, 0o644)

        ConfigManager.load_config()

        assert path.stat().st_mode & 0o777 == 0o600

    def test_invalid_toml_raises(self):
        ConfigManager.ensure_config_dir()
        ConfigManager.get_config_path().write_text("mode = [unterminated")

        with pytest.raises(ConfigError, match="Failed to load config"):
            ConfigManager.load_config()


class TestSettings:
    """Test free-form settings."""

    def test_set_and_get(self):
        ConfigManager.set_setting("region", "westus")

        assert ConfigManager.get_setting("region") == "westus"
        assert ConfigManager.get_setting("other") is None

    def test_delete(self):
        ConfigManager.set_setting("region", "westus")

        assert ConfigManager.delete_setting("region") is True
        assert ConfigManager.delete_setting("region") is False
        assert ConfigManager.get_setting("region") is None

    def test_mode_is_not_a_setting(self):
        with pytest.raises(ConfigError, match="config mode"):
            ConfigManager.set_setting("mode", "arm")


class TestMode:
    """Test command mode selection."""

    def test_default_mode(self):
        assert ConfigManager.get_mode(MODES) == DEFAULT_MODE

    def test_set_mode(self):
        ConfigManager.set_mode("arm", MODES)

        assert ConfigManager.get_mode(MODES) == "arm"

    def test_set_unknown_mode_rejected(self):
        with pytest.raises(ConfigError, match="Invalid mode 'classic'"):
            ConfigManager.set_mode("classic", MODES)

    def test_invalid_stored_mode_reset(self, caplog):
        ConfigManager.save_config(NimbusConfig(mode="classic"))

        assert ConfigManager.get_mode(MODES) == DEFAULT_MODE
        assert ConfigManager.load_config().mode == DEFAULT_MODE
        assert "Invalid config mode classic" in caplog.text

    def test_unreadable_config_falls_back(self):
        ConfigManager.ensure_config_dir()
        ConfigManager.get_config_path().write_text("not toml = = =")

        assert ConfigManager.get_mode(MODES) == DEFAULT_MODE
