"""Unit tests for configuration management."""

import pytest
import yaml
from pydantic import ValidationError

from src.models.config import AnalyzerSettings, BridgeConfig, ConfigManager


def test_bridge_config_defaults():
    """Test that BridgeConfig has correct default values."""
    config = BridgeConfig()

    # Analyzer
    assert config.analyzer.direct_max_parameters == 8
    assert config.analyzer.hybrid_max_parameters == 12
    assert config.analyzer.direct_confidence == 0.99
    assert config.analyzer.unknown_confidence == 0.5

    # Circuit breaker
    assert config.circuit_breaker_failure_threshold == 5
    assert config.circuit_breaker_open_duration == 60.0
    assert config.circuit_breaker_scope == "pool"

    # Pool
    assert config.pool_max_size == 3
    assert config.pool_acquire_timeout == 30.0

    # Retry policy
    assert config.max_retries == 3
    assert config.retry_base_delay == 0.5
    assert config.retry_max_delay == 4.0

    # Scripts
    assert config.script_module == "Module1"
    assert config.script_path is None


@pytest.mark.parametrize("overrides", [
    {"pool_max_size": 0},
    {"circuit_breaker_failure_threshold": -1},
    {"pool_acquire_timeout": 0},
    {"max_retries": -1},
    {"call_timeout": 0},
    {"circuit_breaker_scope": "global"},
    {"log_level": "LOUD"},
])
def test_invalid_values_rejected(overrides):
    with pytest.raises(ValidationError):
        BridgeConfig(**overrides)


def test_analyzer_thresholds_must_be_ordered():
    with pytest.raises(ValidationError):
        AnalyzerSettings(direct_max_parameters=10, hybrid_max_parameters=9)


def test_log_level_is_normalized():
    assert BridgeConfig(log_level="debug").log_level == "DEBUG"


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("CADBRIDGE_POOL_SIZE", "7")
    monkeypatch.setenv("CADBRIDGE_CB_SCOPE", "handle")
    monkeypatch.setenv("CADBRIDGE_CALL_TIMEOUT", "2.5")

    config = BridgeConfig.from_env()

    assert config.pool_max_size == 7
    assert config.circuit_breaker_scope == "handle"
    assert config.call_timeout == 2.5


def test_config_precedence(tmp_path, monkeypatch):
    """CLI > ENV > YAML > defaults."""
    config_file = tmp_path / "config.yaml"
    config_file.write_text(yaml.safe_dump({
        "pool_max_size": 4,
        "max_retries": 1,
        "circuit_breaker_open_duration": 30.0,
        "analyzer": {"direct_max_parameters": 6},
    }))
    monkeypatch.setenv("CADBRIDGE_MAX_RETRIES", "2")
    monkeypatch.setenv("CADBRIDGE_CB_OPEN_DURATION", "45")

    manager = ConfigManager(config_file)
    config = manager.load_config({"circuit_breaker_open_duration": 5.0, "log_level": None})

    assert config.pool_max_size == 4
    assert config.max_retries == 2
    assert config.circuit_breaker_open_duration == 5.0
    assert config.analyzer.direct_max_parameters == 6
    assert config.log_level == "INFO"
    assert manager.config is config


def test_missing_file_uses_defaults(tmp_path):
    config = ConfigManager(tmp_path / "absent.yaml").load_config()
    assert config == BridgeConfig()
