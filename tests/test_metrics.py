"""
Tests for duty cycle and uptime metrics over query results
"""

import pytest

from bsmon.common.fields import CANONICAL_HEADER
from bsmon.history.metrics import heater_duty_cycle, heater_uptime, sample_uptime
from bsmon.history.query import RAW, QueryResult


def result_of(*rows):
    return QueryResult(
        policy=RAW,
        rows=[[str(row.get(column, "")) for column in CANONICAL_HEADER] for row in rows],
    )


def test_heater_duty_cycle():
    result = result_of(
        {"Time": "1/15/2024 10:00:00", "HeaterOnSeconds": 300, "PentairSeconds": 900},
        {"Time": "1/15/2024 10:15:00", "HeaterOnSeconds": 600, "PentairSeconds": 900},
    )
    assert heater_duty_cycle(result) == pytest.approx(50.0)


def test_heater_duty_cycle_skips_rows_without_heater_data():
    result = result_of(
        {"Time": "1/15/2024 10:00:00", "HeaterOnSeconds": 450, "PentairSeconds": 900},
        {"Time": "1/15/2024 10:15:00"},
    )
    assert heater_duty_cycle(result) == pytest.approx(50.0)


def test_heater_duty_cycle_without_connection_time():
    assert heater_duty_cycle(result_of({"Time": "1/15/2024 10:00:00"})) is None


def test_heater_uptime_skips_first_row():
    result = result_of(
        {"Time": "1/15/2024 10:00:00", "PentairSeconds": 5000},
        {"Time": "1/15/2024 10:15:00", "PentairSeconds": 900},
        {"Time": "1/15/2024 10:30:00", "PentairSeconds": 450},
    )
    assert heater_uptime(result) == pytest.approx(75.0)


def test_heater_uptime_is_not_clamped():
    result = result_of(
        {"Time": "1/15/2024 10:00:00", "PentairSeconds": 900},
        {"Time": "1/15/2024 10:15:00", "PentairSeconds": 1000},
        {"Time": "1/15/2024 10:30:00", "PentairSeconds": 1000},
    )
    assert heater_uptime(result) == pytest.approx(2000 / 1800 * 100)


def test_heater_uptime_needs_two_rows():
    assert heater_uptime(result_of({"Time": "1/15/2024 10:00:00", "PentairSeconds": 900})) is None


def test_sample_uptime():
    result = result_of(
        {"Time": "1/15/2024 10:15:00", "SuccessCount": 90, "serviceUptimeSeconds": 900},
        {"Time": "1/15/2024 10:30:00", "SuccessCount": 45, "serviceUptimeSeconds": 900},
    )
    assert sample_uptime(result, poll_interval_s=10) == pytest.approx(75.0)


def test_sample_uptime_above_100_is_kept():
    result = result_of(
        {"Time": "1/15/2024 10:15:00", "SuccessCount": 99, "serviceUptimeSeconds": 900},
    )
    assert sample_uptime(result, poll_interval_s=10) == pytest.approx(110.0)


def test_sample_uptime_without_rows():
    assert sample_uptime(result_of(), poll_interval_s=10) is None
