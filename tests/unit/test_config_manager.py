"""Unit tests for config_manager module."""

import os
from pathlib import Path

import pytest

from azcompose.config_manager import AzComposeConfig, ConfigError, ConfigManager


class TestAzComposeConfig:
    """Tests for AzComposeConfig dataclass."""

    def test_default_values(self):
        """Test default configuration values."""
        config = AzComposeConfig()
        assert config.catalog_path is None
        assert config.default_tenant is None
        assert config.output_format == "table"
        assert config.strict is False
        assert config.allow_unknown_parameters is False

    def test_to_dict_drops_none(self):
        """Test None values are not serialized."""
        config = AzComposeConfig(catalog_path="/srv/catalog")
        data = config.to_dict()
        assert data["catalog_path"] == "/srv/catalog"
        assert "default_tenant" not in data
        assert data["strict"] is False

    def test_from_dict_partial(self):
        """Test creation from partial dictionary."""
        config = AzComposeConfig.from_dict({"default_tenant": "contoso"})
        assert config.default_tenant == "contoso"
        assert config.output_format == "table"  # Default

    def test_from_dict_invalid_output_format(self):
        with pytest.raises(ConfigError, match="Invalid output_format 'yaml'"):
            AzComposeConfig.from_dict({"output_format": "yaml"})

    def test_from_dict_invalid_bool(self):
        with pytest.raises(ConfigError, match="'strict' must be true or false"):
            AzComposeConfig.from_dict({"strict": "yes"})


class TestConfigManager:
    """Tests for ConfigManager class."""

    def test_get_config_path_default(self, isolated_config):
        """Test default config path."""
        assert ConfigManager.get_config_path() == isolated_config / "config.toml"

    def test_get_config_path_env_var(self, tmp_path, monkeypatch):
        """Test AZCOMPOSE_CONFIG overrides the default path."""
        custom = tmp_path / "custom.toml"
        monkeypatch.setenv("AZCOMPOSE_CONFIG", str(custom))
        assert ConfigManager.get_config_path() == custom.resolve()

    def test_get_config_path_outside_allowed_dirs(self, monkeypatch, tmp_path):
        """Test config paths outside the allowed directories are rejected."""
        monkeypatch.chdir(tmp_path)
        monkeypatch.setattr("tempfile.gettempdir", lambda: str(tmp_path))
        with pytest.raises(ConfigError, match="outside allowed directories"):
            ConfigManager.get_config_path("/etc/azcompose.toml")

    def test_load_config_not_exists(self):
        """Test loading config when file doesn't exist."""
        config = ConfigManager.load_config()
        assert config == AzComposeConfig()

    def test_save_and_load_round_trip(self, isolated_config):
        config = AzComposeConfig(catalog_path="~/catalog", default_tenant="contoso", strict=True)

        path = ConfigManager.save_config(config)
        loaded = ConfigManager.load_config()

        assert path == isolated_config / "config.toml"
        assert loaded == config

    def test_save_sets_secure_permissions(self):
        path = ConfigManager.save_config(AzComposeConfig(default_tenant="contoso"))
        assert path.stat().st_mode & 0o777 == 0o600

    def test_save_preserves_comments(self):
        path = ConfigManager.save_config(AzComposeConfig())
        path.write_text("# team catalog\n" + path.read_text())

        ConfigManager.update_config(default_environment="prod")

        text = path.read_text()
        assert text.startswith("# team catalog")
        assert 'default_environment = "prod"' in text

    def test_save_removes_unset_keys(self):
        ConfigManager.save_config(AzComposeConfig(default_tenant="contoso"))
        ConfigManager.update_config(default_tenant=None)

        assert "default_tenant" not in ConfigManager.get_config_path().read_text()

    def test_load_fixes_insecure_permissions(self):
        path = ConfigManager.save_config(AzComposeConfig())
        os.chmod(path, 0o644)

        ConfigManager.load_config()

        assert path.stat().st_mode & 0o777 == 0o600

    def test_load_invalid_toml(self, isolated_config):
        isolated_config.mkdir(parents=True)
        (isolated_config / "config.toml").write_text("catalog_path = [unclosed\n")

        with pytest.raises(ConfigError, match="Failed to load config"):
            ConfigManager.load_config()

    def test_update_unknown_key(self):
        with pytest.raises(ConfigError, match="Unknown config key: colour"):
            ConfigManager.update_config(colour="red")


class TestParseValue:
    """Tests for command-line value parsing."""

    @pytest.mark.parametrize("raw,expected", [("true", True), ("Yes", True), ("0", False), ("off", False)])
    def test_bool_values(self, raw, expected):
        assert ConfigManager.parse_value("strict", raw) is expected

    def test_invalid_bool(self):
        with pytest.raises(ConfigError, match="must be true or false"):
            ConfigManager.parse_value("allow_unknown_parameters", "maybe")

    def test_output_format(self):
        assert ConfigManager.parse_value("output_format", "json") == "json"
        with pytest.raises(ConfigError, match="Invalid output_format"):
            ConfigManager.parse_value("output_format", "xml")

    def test_unknown_key(self):
        with pytest.raises(ConfigError, match="Unknown config key"):
            ConfigManager.parse_value("region", "westeurope")


class TestCatalogPath:
    """Tests for catalog path precedence."""

    def test_cli_value_wins(self, monkeypatch):
        monkeypatch.setenv("AZCOMPOSE_CATALOG", "/from/env")
        assert ConfigManager.get_catalog_path("/from/cli") == Path("/from/cli")

    def test_env_over_config(self, monkeypatch):
        ConfigManager.save_config(AzComposeConfig(catalog_path="/from/config"))
        monkeypatch.setenv("AZCOMPOSE_CATALOG", "/from/env")
        assert ConfigManager.get_catalog_path() == Path("/from/env")

    def test_config_over_cwd(self):
        ConfigManager.save_config(AzComposeConfig(catalog_path="/from/config"))
        assert ConfigManager.get_catalog_path() == Path("/from/config")

    def test_falls_back_to_cwd(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert ConfigManager.get_catalog_path() == tmp_path
