#!/usr/bin/env python3
"""
Pool Monitor - Main Entry Point

Loads the configuration and runs the logging service.

Usage:
    bsmon                       # Use the first config.yaml found
    bsmon --config my.yaml      # Use custom config file
    bsmon --dry-run             # Print config and exit
    bsmon --status              # Print one controller status report and exit

The monitor will:
1. Connect to the chemical controller (Modbus TCP) and the pool heater (WebSocket)
2. Sample the controller every poll interval
3. Append an averaged row to the monthly CSV log every log interval
"""

import argparse
import asyncio
import sys

from bsmon.common.config import MonitorConfig, find_config_path, load_config_file
from bsmon.common.exceptions import BsmonError, ConfigError, DeviceError
from bsmon.common.logging_setup import get_service_logger, set_log_level
from bsmon.services.device.source import ChemControllerSource, format_status_report
from bsmon.services.logging.service import LoggingService

logger = get_service_logger("main")


def print_config_summary(config: MonitorConfig):
    """Print a summary of the configuration."""
    print("\n" + "=" * 60)
    print("  POOL CHEMISTRY & HEATER MONITOR")
    print("=" * 60)

    controller = config.controller
    if controller.use_fake_controller:
        print("\n  Chemical Controller: FAKE (built-in register values)")
    else:
        print(f"\n  Chemical Controller: {controller.host}:{controller.port} "
              f"(slave {controller.slave_id})")
    print(f"    - Read Timeout: {controller.read_timeout_s}s")
    print(f"    - Max Consecutive Timeouts: {controller.max_consecutive_timeouts}")

    heater = config.heater
    if heater.enabled:
        print(f"\n  Heater: ws://{heater.host}:{heater.port} (ping {heater.ping_interval_s}s)")
    else:
        print("\n  Heater: Disabled")

    print(f"\n  Reconnect: {config.reconnect.base_delay_ms}ms steps, "
          f"capped at {config.reconnect.cap_delay_ms}ms")

    logging_settings = config.logging
    print(f"\n  Logging:")
    print(f"    - Directory: {logging_settings.log_dir}")
    print(f"    - Poll Interval: {logging_settings.poll_interval_s}s")
    print(f"    - Log Entry Interval: {logging_settings.log_entry_minutes} min")
    print(f"\n  Health Port: {config.health_port}")

    print("=" * 60 + "\n")


async def print_status(config: MonitorConfig) -> int:
    """Connect once, print the controller status report and alarm list"""
    source = ChemControllerSource(config.controller, config.reconnect)
    try:
        if not await source.supervisor.connect():
            print(f"Cannot connect to {config.controller.host}:{config.controller.port}")
            return 1

        status = await source.read_status()
        try:
            alarms = await source.get_alarm_data()
        except DeviceError as e:
            logger.warning(f"Alarm list unavailable: {e.message}")
            alarms = None

        print(format_status_report(status, alarms), end="")
        return 0
    except DeviceError as e:
        print(f"Status read failed: {e.message}")
        return 1
    finally:
        await source.stop()


async def main_async(config: MonitorConfig):
    """Run the logging service until shutdown"""
    service = LoggingService(config)

    try:
        await service.start()
    except asyncio.CancelledError:
        logger.info("Monitor cancelled")
    finally:
        await service.stop()


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Pool chemistry and heater telemetry logger"
    )
    parser.add_argument(
        "--config", "-c",
        type=str,
        default=None,
        help="Path to configuration file (default: first config.yaml found)"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print configuration and exit without starting the monitor"
    )
    parser.add_argument(
        "--status",
        action="store_true",
        help="Print the chemical controller status and alarm list, then exit"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (debug) logging"
    )

    args = parser.parse_args()

    if args.verbose:
        set_log_level("DEBUG")

    config_path = args.config or find_config_path()
    try:
        config = load_config_file(config_path)
    except ConfigError as e:
        logger.error(e.message)
        sys.exit(1)

    logger.info(f"Loaded configuration from {config_path}")
    print_config_summary(config)

    if args.dry_run:
        print("Dry run mode - exiting without starting monitor")
        sys.exit(0)

    if args.status:
        sys.exit(asyncio.run(print_status(config)))

    logger.info("Starting monitor...")
    print("Press Ctrl+C to stop\n")

    try:
        asyncio.run(main_async(config))
    except KeyboardInterrupt:
        print("\nStopped by user")
    except BsmonError as e:
        logger.error(f"Monitor error: {e.message}")
        sys.exit(1)


if __name__ == "__main__":
    main()
