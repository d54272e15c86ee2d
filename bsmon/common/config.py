"""
Configuration Dataclasses

Type-safe configuration structures for the monitor.
Loaded from a YAML file; every key is optional and falls back to the
defaults below.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigError


@dataclass
class ControllerSettings:
    """Chemical dosing controller (Modbus TCP)"""
    host: str = "192.168.86.5"
    port: int = 502
    slave_id: int = 1
    use_fake_controller: bool = False
    read_timeout_s: float = 5.0  # A stuck read must not hang the poll loop
    connect_timeout_s: float = 5.0
    max_consecutive_timeouts: int = 3  # Failed reads before the link is dropped
    alarm_poll_timeout_s: float = 10.0


@dataclass
class HeaterSettings:
    """Pool heating controller (JSON over WebSocket)"""
    enabled: bool = True
    host: str = "192.168.86.6"
    port: int = 6680
    ping_interval_s: float = 60.0
    connect_timeout_s: float = 10.0


@dataclass
class ReconnectSettings:
    """Backoff policy shared by both device clients"""
    base_delay_ms: int = 1000
    cap_delay_ms: int = 5 * 60 * 1000


@dataclass
class LoggingSettings:
    """Log file configuration"""
    log_dir: str = "static"
    log_entry_minutes: float = 15.0
    poll_interval_s: float = 10.0


@dataclass
class MonitorConfig:
    """Complete monitor configuration"""
    controller: ControllerSettings = field(default_factory=ControllerSettings)
    heater: HeaterSettings = field(default_factory=HeaterSettings)
    reconnect: ReconnectSettings = field(default_factory=ReconnectSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    health_port: int = 8085

    @property
    def log_interval_s(self) -> float:
        return self.logging.log_entry_minutes * 60


def _section(data: dict, name: str) -> dict:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"Section '{name}' must be a mapping")
    return section


# Helper function to load config from dict
def load_config(data: dict | None) -> MonitorConfig:
    """Load MonitorConfig from dictionary (e.g., parsed YAML)"""
    data = data or {}

    controller_data = _section(data, "controller")
    controller = ControllerSettings(
        host=controller_data.get("host", ControllerSettings.host),
        port=int(controller_data.get("port", 502)),
        slave_id=int(controller_data.get("slave_id", 1)),
        use_fake_controller=bool(controller_data.get("use_fake_controller", False)),
        read_timeout_s=float(controller_data.get("read_timeout_s", 5.0)),
        connect_timeout_s=float(controller_data.get("connect_timeout_s", 5.0)),
        max_consecutive_timeouts=int(controller_data.get("max_consecutive_timeouts", 3)),
        alarm_poll_timeout_s=float(controller_data.get("alarm_poll_timeout_s", 10.0)),
    )

    heater_data = _section(data, "heater")
    heater = HeaterSettings(
        enabled=bool(heater_data.get("enabled", True)),
        host=heater_data.get("host", HeaterSettings.host),
        port=int(heater_data.get("port", 6680)),
        ping_interval_s=float(heater_data.get("ping_interval_s", 60.0)),
        connect_timeout_s=float(heater_data.get("connect_timeout_s", 10.0)),
    )

    reconnect_data = _section(data, "reconnect")
    reconnect = ReconnectSettings(
        base_delay_ms=int(reconnect_data.get("base_delay_ms", 1000)),
        cap_delay_ms=int(reconnect_data.get("cap_delay_ms", 5 * 60 * 1000)),
    )

    logging_data = _section(data, "logging")
    logging_settings = LoggingSettings(
        log_dir=str(logging_data.get("log_dir", "static")),
        log_entry_minutes=float(logging_data.get("log_entry_minutes", 15.0)),
        poll_interval_s=float(logging_data.get("poll_interval_s", 10.0)),
    )

    config = MonitorConfig(
        controller=controller,
        heater=heater,
        reconnect=reconnect,
        logging=logging_settings,
        health_port=int(data.get("health_port", 8085)),
    )
    validate_config(config)
    return config


def validate_config(config: MonitorConfig) -> None:
    """Raise ConfigError listing every invalid setting"""
    errors = []

    if config.logging.log_entry_minutes <= 0:
        errors.append("logging.log_entry_minutes must be positive")
    if config.logging.poll_interval_s <= 0:
        errors.append("logging.poll_interval_s must be positive")
    if config.controller.read_timeout_s <= 0:
        errors.append("controller.read_timeout_s must be positive")
    if config.controller.max_consecutive_timeouts < 1:
        errors.append("controller.max_consecutive_timeouts must be at least 1")
    if config.reconnect.base_delay_ms <= 0:
        errors.append("reconnect.base_delay_ms must be positive")
    if config.reconnect.cap_delay_ms < config.reconnect.base_delay_ms:
        errors.append("reconnect.cap_delay_ms must not be below base_delay_ms")
    if not config.controller.use_fake_controller and not config.controller.host:
        errors.append("controller.host is required unless use_fake_controller is set")
    if config.heater.enabled and not config.heater.host:
        errors.append("heater.host is required when the heater is enabled")

    if errors:
        raise ConfigError("; ".join(errors))


def find_config_path() -> str:
    """Find configuration file"""
    possible_paths = [
        "/etc/bsmon/config.yaml",
        "/opt/bsmon/config.yaml",
        Path(__file__).parent.parent.parent / "config.yaml",
    ]

    for path in possible_paths:
        path = Path(path)
        if path.exists():
            return str(path)

    return str(possible_paths[0])


def load_config_file(config_path: str | Path) -> MonitorConfig:
    """Read and parse a YAML configuration file"""
    path = Path(config_path)
    if not path.exists():
        raise ConfigError(f"Configuration file not found: {config_path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            data: Any = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}")

    if data is not None and not isinstance(data, dict):
        raise ConfigError(f"{config_path} must contain a mapping")

    return load_config(data)
