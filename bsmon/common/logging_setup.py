"""
Structured Logging Setup

Every module logs through get_service_logger(name), which returns an
adapter over the "bsmon.<name>" logger. Output goes to stdout, one JSON
object per line by default (BSMON_LOG_FORMAT=text for a console format).
Timestamps are local time, matching the Time column of the CSV logs.

Extra fields passed via `extra=` land as top-level JSON keys.
"""

import json
import logging
import os
import sys
from datetime import datetime
from typing import Any

LOGGER_PREFIX = "bsmon"

# Attributes every LogRecord carries; anything else came in through `extra`
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    "message", "asctime", "service",
}

_loggers: dict[str, "ServiceLoggerAdapter"] = {}


class JsonFormatter(logging.Formatter):
    """One JSON object per record"""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "time": datetime.fromtimestamp(record.created).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "service": getattr(record, "service", record.name),
            "message": record.getMessage(),
        }
        entry.update(
            (key, value) for key, value in vars(record).items()
            if key not in _RECORD_ATTRS
        )
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class ServiceLoggerAdapter(logging.LoggerAdapter):
    """Stamps the service name on every record, merging with caller extras"""

    def process(self, msg: str, kwargs: dict) -> tuple[str, dict]:
        kwargs["extra"] = {**kwargs.get("extra", {}), "service": self.extra["service"]}
        return msg, kwargs


def _level(name: str) -> int:
    level = getattr(logging, name.upper(), None)
    return level if isinstance(level, int) else logging.INFO


def setup_logging(
    service_name: str,
    log_level: str = "INFO",
    json_format: bool = True,
) -> logging.Logger:
    """
    Configure the "bsmon.<service_name>" logger with a single stdout handler.

    Args:
        service_name: Dotted service name (e.g. "device.chem", "history")
        log_level: Level name; unknown names fall back to INFO
        json_format: JSON lines when True, console text otherwise

    Returns:
        The configured logger (does not propagate to the root logger)
    """
    logger = logging.getLogger(f"{LOGGER_PREFIX}.{service_name}")
    logger.setLevel(_level(log_level))
    logger.propagate = False

    handler = logging.StreamHandler(sys.stdout)
    if json_format:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)-7s [%(service)s] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))

    logger.handlers[:] = [handler]
    return logger


def get_service_logger(service_name: str) -> ServiceLoggerAdapter:
    """Adapter for `service_name`; created once, level/format from BSMON_LOG_*"""
    adapter = _loggers.get(service_name)
    if adapter is None:
        logger = setup_logging(
            service_name,
            os.environ.get("BSMON_LOG_LEVEL", "INFO"),
            os.environ.get("BSMON_LOG_FORMAT", "json").lower() != "text",
        )
        adapter = _loggers[service_name] = ServiceLoggerAdapter(logger, {"service": service_name})
    return adapter


def set_log_level(log_level: str) -> None:
    """Apply a level to every service logger created so far (e.g. --verbose)"""
    for adapter in _loggers.values():
        adapter.logger.setLevel(_level(log_level))


def log_device_read(
    logger: logging.LoggerAdapter,
    device_name: str,
    field: str,
    value: Any,
    success: bool = True,
) -> None:
    """Debug line for a good read, warning for a failed one"""
    extra = {"device": device_name, "field": field}
    if success:
        logger.debug(f"{device_name}.{field} = {value}", extra={**extra, "value": value})
    else:
        logger.warning(f"{device_name}.{field} read failed", extra=extra)


def log_flush(
    logger: logging.LoggerAdapter,
    path: str,
    sample_count: int,
    timeout_count: int,
    service_uptime_s: float,
) -> None:
    """Info line for one appended log row"""
    logger.info(
        f"Appended row to {path} ({sample_count} samples, {timeout_count} timeouts, "
        f"{service_uptime_s:.0f}s)",
        extra={
            "path": path,
            "sample_count": sample_count,
            "timeout_count": timeout_count,
            "service_uptime_s": round(service_uptime_s, 1),
        },
    )
