"""
Log Metrics

Summary figures computed from query results:
- heater duty cycle: total HeaterOnSeconds / total PentairSeconds
- heater link uptime: PentairSeconds over the span of the rows
- controller sample uptime: SuccessCount over the samples expected

Percentages above 100 are returned as-is. More samples (or connected
seconds) than the interval allows points at clock or logging trouble,
and clamping would hide it.
"""

from datetime import datetime

from bsmon.common.fields import TIME_COLUMN
from bsmon.common.timestamp import parse_log_time
from .query import QueryResult


def _number(record: dict[str, str], column: str) -> float | None:
    text = record.get(column, "").strip()
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def _timestamp(record: dict[str, str]) -> datetime | None:
    try:
        return parse_log_time(record.get(TIME_COLUMN, ""))
    except ValueError:
        return None


def heater_duty_cycle(result: QueryResult) -> float | None:
    """Percent of heater-connected time the heater was on"""
    heater_on = 0.0
    connected = 0.0
    for record in result.records():
        on_s = _number(record, "HeaterOnSeconds")
        link_s = _number(record, "PentairSeconds")
        if on_s is None or link_s is None:
            continue
        heater_on += on_s
        connected += link_s

    if connected == 0:
        return None
    return heater_on / connected * 100


def heater_uptime(result: QueryResult) -> float | None:
    """
    Percent of the covered span the heater link was up.

    Each row's PentairSeconds covers the interval since the row before it,
    so the first row is left out: its interval starts before the span.
    """
    records = result.records()
    if len(records) < 2:
        return None

    first = _timestamp(records[0])
    last = _timestamp(records[-1])
    if first is None or last is None:
        return None

    span_s = (last - first).total_seconds()
    if span_s <= 0:
        return None

    connected = sum(_number(record, "PentairSeconds") or 0.0 for record in records[1:])
    return connected / span_s * 100


def sample_uptime(result: QueryResult, poll_interval_s: float) -> float | None:
    """Percent of expected controller samples that succeeded"""
    expected = 0.0
    succeeded = 0.0
    for record in result.records():
        period_s = _number(record, "serviceUptimeSeconds")
        if period_s is None:
            continue
        expected += period_s / poll_interval_s
        succeeded += _number(record, "SuccessCount") or 0.0

    if expected == 0:
        return None
    return succeeded / expected * 100
