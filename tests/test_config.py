"""
Configuration Tests
-------------------
Defaults, YAML file, environment precedence and parse errors.
"""

import pytest
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent))

from infra.config import ENV_VARS, BridgeConfig, ConfigError, load_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for env_var in ENV_VARS.values():
        monkeypatch.delenv(env_var, raising=False)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "bridge.yaml"
    path.write_text(
        "cache:\n"
        "  enabled: false\n"
        "  ttl: 30\n"
        "rate_limit:\n"
        "  max_requests: 5\n"
        "  window: 10\n"
        "audit:\n"
        "  enabled: true\n"
        "  db: /tmp/bridge-test.db\n"
        "logging:\n"
        "  level: debug\n"
    )
    return path


class TestLoadConfig:
    def test_defaults(self):
        assert load_config() == BridgeConfig()

    def test_file_values(self, config_file):
        config = load_config(config_file)

        assert config.cache_enabled is False
        assert config.cache_ttl == 30.0
        assert config.rate_limit_max_requests == 5
        assert config.rate_limit_window == 10.0
        assert config.audit_enabled is True
        assert config.audit_db == "/tmp/bridge-test.db"
        assert config.log_level == "DEBUG"
        assert config.cache_max_entries is None

    def test_environment_wins(self, config_file, monkeypatch):
        monkeypatch.setenv("BRIDGE_CACHE_ENABLED", "yes")
        monkeypatch.setenv("BRIDGE_RATE_LIMIT_MAX_REQUESTS", "99")
        monkeypatch.setenv("BRIDGE_CACHE_MAX_ENTRIES", "500")

        config = load_config(config_file)

        assert config.cache_enabled is True
        assert config.rate_limit_max_requests == 99
        assert config.cache_max_entries == 500
        assert config.cache_ttl == 30.0

    def test_missing_file_uses_defaults(self, tmp_path):
        assert load_config(tmp_path / "missing.yaml") == BridgeConfig()

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")

        assert load_config(path) == BridgeConfig()


class TestConfigErrors:
    def test_non_mapping_file(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ConfigError):
            load_config(path)

    @pytest.mark.parametrize("env_var,value", [
        ("BRIDGE_CACHE_ENABLED", "maybe"),
        ("BRIDGE_CACHE_TTL", "five"),
        ("BRIDGE_RATE_LIMIT_MAX_REQUESTS", "1.5"),
    ])
    def test_bad_environment_value(self, monkeypatch, env_var, value):
        monkeypatch.setenv(env_var, value)

        with pytest.raises(ConfigError):
            load_config()

    def test_config_error_is_value_error(self):
        assert issubclass(ConfigError, ValueError)
