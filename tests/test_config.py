from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from cpmkeeper.config import (
    CpmKeeperConfig,
    _parse_section,
    _read_toml,
    discover_config_file,
    load_config,
)
from cpmkeeper.exceptions import ConfigError


@pytest.mark.unit
class TestCpmKeeperConfig:
    """Tests for CpmKeeperConfig dataclass."""

    def test_default_initialization(self) -> None:
        config = CpmKeeperConfig()

        assert config.dotnet_path == "dotnet"
        assert config.command_timeout == 120
        assert config.cache_ttl_minutes == 10
        assert config.vulnerability_db_ttl_minutes == 60
        assert config.enable_vulnerability_scan is True
        assert config.source_path is None

    def test_to_log_dict(self) -> None:
        config = CpmKeeperConfig(
            dotnet_path="/opt/dotnet/dotnet",
            enable_vulnerability_scan=False,
            source_path=Path("/test/cpmkeeper.toml"),
        )

        result = config.to_log_dict()

        assert result == {
            "dotnet_path": "/opt/dotnet/dotnet",
            "command_timeout": 120,
            "cache_ttl_minutes": 10,
            "vulnerability_db_ttl_minutes": 60,
            "enable_vulnerability_scan": False,
        }
        assert "source_path" not in result


@pytest.mark.unit
class TestDiscoverConfigFile:
    """Tests for discover_config_file."""

    def test_explicit_path_priority(self, tmp_path: Path) -> None:
        config_file = tmp_path / "custom.toml"
        config_file.write_text("[cpmkeeper]\n", encoding="utf-8")
        (tmp_path / "cpmkeeper.toml").write_text("[cpmkeeper]\n", encoding="utf-8")

        with patch("cpmkeeper.config.Path.cwd", return_value=tmp_path):
            result = discover_config_file(config_file)

        assert result == config_file.resolve()

    def test_explicit_path_not_found_raises_error(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Configuration file not found"):
            discover_config_file(tmp_path / "missing.toml")

    def test_discovers_cpmkeeper_toml(self, tmp_path: Path) -> None:
        config_file = tmp_path / "cpmkeeper.toml"
        config_file.write_text("[cpmkeeper]\n", encoding="utf-8")

        with patch("cpmkeeper.config.Path.cwd", return_value=tmp_path):
            assert discover_config_file() == config_file

    def test_returns_none_when_no_config_found(self, tmp_path: Path) -> None:
        with patch("cpmkeeper.config.Path.cwd", return_value=tmp_path):
            assert discover_config_file() is None


@pytest.mark.unit
class TestReadToml:
    def test_reads_valid_toml(self, tmp_path: Path) -> None:
        path = tmp_path / "cpmkeeper.toml"
        path.write_text('[cpmkeeper]\ndotnet_path = "dotnet"\n', encoding="utf-8")

        assert _read_toml(path) == {"cpmkeeper": {"dotnet_path": "dotnet"}}

    def test_invalid_toml(self, tmp_path: Path) -> None:
        path = tmp_path / "cpmkeeper.toml"
        path.write_text("[cpmkeeper\n", encoding="utf-8")

        with pytest.raises(ConfigError, match="Invalid TOML"):
            _read_toml(path)

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Cannot read configuration file"):
            _read_toml(tmp_path / "missing.toml")


@pytest.mark.unit
class TestParseSection:
    """Tests for _parse_section validation."""

    def test_empty_section(self) -> None:
        assert _parse_section({}, config_path="c.toml") == CpmKeeperConfig()

    def test_all_options(self) -> None:
        config = _parse_section(
            {
                "dotnet_path": "/usr/share/dotnet/dotnet",
                "command_timeout": 300,
                "cache_ttl_minutes": 0,
                "vulnerability_db_ttl_minutes": 30,
                "enable_vulnerability_scan": False,
            },
            config_path="c.toml",
        )

        assert config.dotnet_path == "/usr/share/dotnet/dotnet"
        assert config.command_timeout == 300
        assert config.cache_ttl_minutes == 0
        assert config.vulnerability_db_ttl_minutes == 30
        assert config.enable_vulnerability_scan is False

    def test_unknown_keys(self) -> None:
        with pytest.raises(ConfigError, match="Unknown configuration keys: a, b"):
            _parse_section({"b": 1, "a": 2}, config_path="c.toml")

    def test_wrong_type(self) -> None:
        with pytest.raises(ConfigError, match="command_timeout must be an integer") as exc:
            _parse_section({"command_timeout": "120"}, config_path="c.toml")

        assert exc.value.option == "command_timeout"

    def test_bool_rejected_for_integer(self) -> None:
        with pytest.raises(ConfigError, match="must be an integer, got bool"):
            _parse_section({"cache_ttl_minutes": True}, config_path="c.toml")

    def test_string_rejected_for_bool(self) -> None:
        with pytest.raises(ConfigError, match="must be a boolean"):
            _parse_section({"enable_vulnerability_scan": "yes"}, config_path="c.toml")

    def test_below_minimum(self) -> None:
        with pytest.raises(ConfigError, match="command_timeout must be at least 1"):
            _parse_section({"command_timeout": 0}, config_path="c.toml")


@pytest.mark.integration
class TestLoadConfig:
    """Tests for load_config end to end."""

    def test_defaults_when_no_config(self, tmp_path: Path) -> None:
        with patch("cpmkeeper.config.Path.cwd", return_value=tmp_path):
            config = load_config()

        assert config == CpmKeeperConfig()

    def test_loads_discovered_file(self, tmp_path: Path) -> None:
        path = tmp_path / "cpmkeeper.toml"
        path.write_text("[cpmkeeper]\ncache_ttl_minutes = 5\n", encoding="utf-8")

        with patch("cpmkeeper.config.Path.cwd", return_value=tmp_path):
            config = load_config()

        assert config.cache_ttl_minutes == 5
        assert config.source_path == path

    def test_loads_explicit_path(self, tmp_path: Path) -> None:
        path = tmp_path / "ci.toml"
        path.write_text("[cpmkeeper]\nenable_vulnerability_scan = false\n", "utf-8")

        config = load_config(path)

        assert config.enable_vulnerability_scan is False
        assert config.source_path == path.resolve()

    def test_missing_section_uses_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "cpmkeeper.toml"
        path.write_text("[other]\nkey = 1\n", encoding="utf-8")

        config = load_config(path)

        assert config.command_timeout == 120
        assert config.source_path == path.resolve()

    def test_section_must_be_table(self, tmp_path: Path) -> None:
        path = tmp_path / "cpmkeeper.toml"
        path.write_text('cpmkeeper = "yes"\n', encoding="utf-8")

        with pytest.raises(ConfigError, match="must be a table"):
            load_config(path)

    def test_invalid_values_propagate(self, tmp_path: Path) -> None:
        path = tmp_path / "cpmkeeper.toml"
        path.write_text("[cpmkeeper]\nretries = 3\n", encoding="utf-8")

        with pytest.raises(ConfigError, match="Unknown configuration keys"):
            load_config(path)
