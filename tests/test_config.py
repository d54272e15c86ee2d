"""
Tests for configuration loading and validation
"""

import pytest

from bsmon.common.config import (
    MonitorConfig,
    load_config,
    load_config_file,
    validate_config,
)
from bsmon.common.exceptions import ConfigError


def test_empty_config_uses_defaults():
    config = load_config({})

    assert config.controller.port == 502
    assert config.controller.read_timeout_s == 5.0
    assert config.heater.port == 6680
    assert config.heater.ping_interval_s == 60.0
    assert config.reconnect.base_delay_ms == 1000
    assert config.reconnect.cap_delay_ms == 300000
    assert config.logging.log_dir == "static"
    assert config.log_interval_s == 900


def test_none_config_uses_defaults():
    assert load_config(None).health_port == 8085


def test_sections_override_defaults():
    config = load_config({
        "controller": {"host": "10.0.0.5", "slave_id": 3, "use_fake_controller": True},
        "heater": {"enabled": False},
        "reconnect": {"base_delay_ms": 500, "cap_delay_ms": 60000},
        "logging": {"log_dir": "/var/lib/bsmon", "log_entry_minutes": 5},
        "health_port": 9000,
    })

    assert config.controller.host == "10.0.0.5"
    assert config.controller.slave_id == 3
    assert config.controller.use_fake_controller is True
    assert config.heater.enabled is False
    assert config.reconnect.base_delay_ms == 500
    assert config.logging.log_dir == "/var/lib/bsmon"
    assert config.log_interval_s == 300
    assert config.health_port == 9000


def test_invalid_values_raise_config_error():
    with pytest.raises(ConfigError) as exc_info:
        load_config({
            "logging": {"log_entry_minutes": 0},
            "reconnect": {"base_delay_ms": 2000, "cap_delay_ms": 1000},
        })

    message = str(exc_info.value)
    assert "log_entry_minutes" in message
    assert "cap_delay_ms" in message
    assert exc_info.value.recoverable is False


def test_section_must_be_mapping():
    with pytest.raises(ConfigError):
        load_config({"controller": ["not", "a", "mapping"]})


def test_validate_requires_host_unless_fake():
    config = MonitorConfig()
    config.controller.host = ""
    with pytest.raises(ConfigError):
        validate_config(config)

    config.controller.use_fake_controller = True
    config.heater.enabled = False
    validate_config(config)


def test_load_config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "controller:\n"
        "  host: 192.168.1.20\n"
        "logging:\n"
        "  poll_interval_s: 5\n",
        encoding="utf-8",
    )

    config = load_config_file(path)

    assert config.controller.host == "192.168.1.20"
    assert config.logging.poll_interval_s == 5.0


def test_load_config_file_missing(tmp_path):
    with pytest.raises(ConfigError):
        load_config_file(tmp_path / "missing.yaml")


def test_load_config_file_invalid_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("controller: [unclosed\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_config_file(path)


def test_load_config_file_not_a_mapping(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_config_file(path)
