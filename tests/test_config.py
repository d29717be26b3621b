"""Tests for runtime configuration loading."""

import pytest

from livemix.config import (
    REWIRE_POLICY_ENV_VAR,
    TICK_INTERVAL_ENV_VAR,
    RuntimeConfig,
    load_config,
)
from livemix.errors import ConfigError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv(TICK_INTERVAL_ENV_VAR, raising=False)
    monkeypatch.delenv(REWIRE_POLICY_ENV_VAR, raising=False)


class TestRuntimeConfig:
    """Tests for RuntimeConfig defaults and validation."""

    def test_defaults(self):
        config = load_config()

        assert config == RuntimeConfig()
        assert config.tick_interval_ms == 10.0
        assert config.tick_interval_s == pytest.approx(0.01)
        assert config.rewire_policy == "rewire"
        assert config.terminal_events == ["end"]

    def test_rejects_non_positive_tick(self):
        with pytest.raises(ValueError):
            RuntimeConfig(tick_interval_ms=0)


class TestLoadConfig:
    """Tests for layering YAML files and environment variables."""

    def test_yaml_file(self, tmp_path):
        path = tmp_path / "livemix.yaml"
        path.write_text("rewire_policy: error\nterminal_events: [end, eos]\n")

        config = load_config(path)

        assert config.rewire_policy == "error"
        assert config.terminal_events == ["end", "eos"]
        assert config.tick_interval_ms == 10.0

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / "livemix.yaml"
        path.write_text("tick_interval_ms: 50\nrewire_policy: error\n")
        monkeypatch.setenv(TICK_INTERVAL_ENV_VAR, "25")
        monkeypatch.setenv(REWIRE_POLICY_ENV_VAR, " Rewire ")

        config = load_config(path)

        assert config.tick_interval_ms == 25.0
        assert config.rewire_policy == "rewire"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "nope.yaml")

    def test_unknown_key(self, tmp_path):
        path = tmp_path / "livemix.yaml"
        path.write_text("tick_rate: 5\n")

        with pytest.raises(ConfigError, match="Invalid runtime config"):
            load_config(path)

    def test_invalid_env_value(self, monkeypatch):
        monkeypatch.setenv(REWIRE_POLICY_ENV_VAR, "sometimes")

        with pytest.raises(ConfigError):
            load_config()

    def test_invalid_tick_from_env(self, monkeypatch):
        monkeypatch.setenv(TICK_INTERVAL_ENV_VAR, "fast")

        with pytest.raises(ConfigError):
            load_config()
