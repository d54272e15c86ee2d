#!/usr/bin/env python3
"""
Historical Data CLI

Query the monthly CSV logs from the command line.

Resolution follows the range length (raw rows up to 72 hours, then 30
minute, 2 hour and 24 hour buckets).

Usage:
    bsmon-history query --start 2024-01-10T00:00:00 --end 2024-01-12T00:00:00
    bsmon-history query --last-24h --log-dir /var/lib/bsmon
    bsmon-history metrics --start 2024-01-01 --end 2024-01-31
    bsmon-history tag --start 2024-01-01 --end 2024-01-31

Output: CSV (query), JSON (metrics) or the cache tag (tag) on stdout
"""

import argparse
import json
import sys
from datetime import datetime, timedelta
from pathlib import Path

from bsmon.common.config import find_config_path, load_config_file
from bsmon.common.exceptions import ConfigError
from bsmon.history.cache import CacheValidator
from bsmon.history.metrics import heater_duty_cycle, heater_uptime, sample_uptime
from bsmon.history.query import HistoricalQueryEngine

DEFAULT_LOG_DIR = "static"
DEFAULT_POLL_INTERVAL_S = 10.0


def parse_datetime(value: str) -> datetime:
    """argparse type for ISO dates and datetimes (local time)"""
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Not an ISO date/time: {value}")


def resolve_settings(args: argparse.Namespace) -> tuple[str, float]:
    """Log dir and poll interval from flags, else the config file, else defaults"""
    log_dir = DEFAULT_LOG_DIR
    poll_interval_s = DEFAULT_POLL_INTERVAL_S

    config_path = args.config or find_config_path()
    if Path(config_path).exists():
        try:
            config = load_config_file(config_path)
            log_dir = config.logging.log_dir
            poll_interval_s = config.logging.poll_interval_s
        except ConfigError as e:
            print(f"Ignoring {config_path}: {e.message}", file=sys.stderr)

    return args.log_dir or log_dir, poll_interval_s


def resolve_range(args: argparse.Namespace) -> tuple[datetime, datetime]:
    if args.last_24h:
        end = datetime.now()
        return end - timedelta(hours=24), end
    if args.start is None or args.end is None:
        raise SystemExit("--start and --end are required unless --last-24h is given")
    return args.start, args.end


def round_or_none(value: float | None) -> int | None:
    return None if value is None else round(value)


def add_range_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--start", type=parse_datetime, help="Start datetime (ISO, local time)")
    parser.add_argument("--end", type=parse_datetime, help="End datetime (ISO, local time)")
    parser.add_argument("--last-24h", action="store_true", help="Query the last 24 hours")
    parser.add_argument("--log-dir", help="Directory holding log-<YYYY>-<M>.csv files")
    parser.add_argument("--config", "-c", help="Config file to take log_dir from")


def main():
    parser = argparse.ArgumentParser(description="Query the pool monitor's CSV logs (read-only)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    query_parser = subparsers.add_parser("query", help="Print rows for a range as CSV")
    add_range_arguments(query_parser)

    metrics_parser = subparsers.add_parser("metrics", help="Print duty cycle and uptime as JSON")
    add_range_arguments(metrics_parser)

    tag_parser = subparsers.add_parser("tag", help="Print the cache tag for a range")
    add_range_arguments(tag_parser)

    args = parser.parse_args()

    log_dir, poll_interval_s = resolve_settings(args)
    start, end = resolve_range(args)
    engine = HistoricalQueryEngine(log_dir)

    if end < start:
        print("--end is before --start", file=sys.stderr)
        sys.exit(2)

    if args.command == "query":
        sys.stdout.write(engine.query_csv(start, end))

    elif args.command == "metrics":
        result = engine.query(start, end)
        print(json.dumps({
            "start": start.isoformat(),
            "end": end.isoformat(),
            "aggregation": result.policy.name,
            "rows": len(result.rows),
            "skipped_rows": result.skipped_rows,
            "heater_duty_cycle_pct": round_or_none(heater_duty_cycle(result)),
            "heater_uptime_pct": round_or_none(heater_uptime(result)),
            "sample_uptime_pct": round_or_none(sample_uptime(result, poll_interval_s)),
        }))

    elif args.command == "tag":
        print(CacheValidator(engine).compute_tag(start, end))


if __name__ == "__main__":
    main()
