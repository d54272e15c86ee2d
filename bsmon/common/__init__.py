"""
Common Utilities

Shared modules used across all services:
- config.py - Configuration dataclasses
- exceptions.py - Custom exception classes
- fields.py - Telemetry field registry and log columns
- logging_setup.py - Structured logging setup
- scheduler.py - Fixed-rate, non-overlapping poll loop
- timestamp.py - Log timestamp format and day/bucket arithmetic
"""

from .config import (
    MonitorConfig,
    ControllerSettings,
    HeaterSettings,
    ReconnectSettings,
    LoggingSettings,
    load_config,
    load_config_file,
    find_config_path,
)
from .exceptions import (
    BsmonError,
    ConfigError,
    DeviceError,
    TransientReadError,
    DeviceConnectionError,
    PersistenceError,
    MalformedHistoryError,
)
from .fields import (
    Aggregation,
    FieldSpec,
    FloatField,
    TextField,
    BitmaskField,
    FIELDS,
    LOGGED_FIELDS,
    CANONICAL_HEADER,
)
from .logging_setup import (
    setup_logging,
    get_service_logger,
    set_log_level,
    log_device_read,
    log_flush,
)

__all__ = [
    # Config
    "MonitorConfig",
    "ControllerSettings",
    "HeaterSettings",
    "ReconnectSettings",
    "LoggingSettings",
    "load_config",
    "load_config_file",
    "find_config_path",
    # Exceptions
    "BsmonError",
    "ConfigError",
    "DeviceError",
    "TransientReadError",
    "DeviceConnectionError",
    "PersistenceError",
    "MalformedHistoryError",
    # Fields
    "Aggregation",
    "FieldSpec",
    "FloatField",
    "TextField",
    "BitmaskField",
    "FIELDS",
    "LOGGED_FIELDS",
    "CANONICAL_HEADER",
    # Logging
    "setup_logging",
    "get_service_logger",
    "set_log_level",
    "log_device_read",
    "log_flush",
]
