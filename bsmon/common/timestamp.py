"""
Timestamp Utilities

Log rows carry local wall-clock time in a spreadsheet-friendly format
("1/5/2024 9:03:07"). Bucket boundaries and day rollover are computed on
that same local clock.
"""

from datetime import datetime, timedelta

LOG_TIME_FORMAT = "%m/%d/%Y %H:%M:%S"

SECONDS_PER_DAY = 24 * 60 * 60


def format_log_time(ts: datetime) -> str:
    """
    Format a timestamp for a log row.

    Month, day and hour are not zero-padded; minutes and seconds are.

    Example:
        datetime(2024, 1, 5, 9, 3, 7) -> "1/5/2024 9:03:07"
    """
    return f"{ts.month}/{ts.day}/{ts.year} {ts.hour}:{ts.minute:02d}:{ts.second:02d}"


def parse_log_time(value: str) -> datetime:
    """
    Parse a log row timestamp.

    Raises:
        ValueError: if the text is not a log timestamp
    """
    return datetime.strptime(value.strip(), LOG_TIME_FORMAT)


def bucket_start(ts: datetime, bucket_seconds: int) -> datetime:
    """
    Truncate a timestamp to its bucket boundary.

    Seconds since local midnight are floor-divided by the bucket size, so
    the result depends only on the timestamp itself. Bucket sizes must
    divide a day evenly.

    Examples:
        14:47:12 with 1800s  -> 14:30:00
        15:45:00 with 7200s  -> 14:00:00
        15:45:00 with 86400s -> 00:00:00
    """
    midnight = ts.replace(hour=0, minute=0, second=0, microsecond=0)
    offset = int((ts - midnight).total_seconds())
    return midnight + timedelta(seconds=(offset // bucket_seconds) * bucket_seconds)


def next_midnight(ts: datetime) -> datetime:
    """Start of the calendar day after ts"""
    midnight = ts.replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight + timedelta(days=1)


def month_key(ts: datetime) -> tuple[int, int]:
    return ts.year, ts.month


def iter_months(start: datetime, end: datetime) -> list[tuple[int, int]]:
    """Every (year, month) from start's month through end's month, in order"""
    months = []
    year, month = start.year, start.month
    while (year, month) <= (end.year, end.month):
        months.append((year, month))
        month += 1
        if month > 12:
            year, month = year + 1, 1
    return months


def format_duration_label(seconds: float) -> str:
    """Human time window: minutes below two hours, hours above"""
    if seconds < 2 * 60 * 60:
        return f"{int(seconds // 60)} minutes"
    return f"{int(seconds // 3600)} hours"
