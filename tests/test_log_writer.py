"""
Tests for LogWriter: row formatting, month rotation and failure handling
"""

import asyncio

import pytest

from bsmon.common.exceptions import PersistenceError, TransientReadError
from bsmon.common.fields import CANONICAL_HEADER
from bsmon.services.logging.accumulator import SampleAccumulator
from bsmon.services.logging.log_writer import LogWriter

HEADER_LINE = ",".join(CANONICAL_HEADER)


def read_rows(path):
    lines = path.read_text(encoding="utf-8").splitlines()
    assert lines[0] == HEADER_LINE
    return [dict(zip(CANONICAL_HEADER, line.split(","))) for line in lines[1:]]


def tick(acc, source, **values):
    source.values.update(values)
    return asyncio.run(acc.record_tick(source))


# ============================================================================
# Row contents
# ============================================================================

def test_flush_writes_mean_at_field_precision(log_dir, clock, stub_source):
    acc = SampleAccumulator()
    writer = LogWriter(log_dir, 900, started_at=clock())

    tick(acc, stub_source, ClValue=2.0)
    tick(acc, stub_source, ClValue=4.0)
    path = writer.flush_if_due(acc, clock.advance(900))

    assert path == log_dir / "log-2024-1.csv"
    row = read_rows(path)[0]
    assert row["Time"] == "1/15/2024 10:15:00"
    assert row["ClValue"] == "3.00"
    assert row["ORPValue"] == "1"
    assert row["PhYout"] == "1.0"
    assert row["SuccessCount"] == "2"
    assert row["TimeoutCount"] == "0"
    assert row["serviceUptimeSeconds"] == "900"


def test_flush_not_due(log_dir, clock, stub_source):
    acc = SampleAccumulator()
    writer = LogWriter(log_dir, 900, started_at=clock())
    tick(acc, stub_source)

    assert writer.flush_if_due(acc, clock.advance(899)) is None
    assert list(log_dir.iterdir()) == []
    assert acc.sample_count == 1


def test_zero_samples_leaves_means_empty(log_dir, clock, stub_source):
    acc = SampleAccumulator()
    writer = LogWriter(log_dir, 900, started_at=clock())
    stub_source.values["ClValue"] = TransientReadError("timeout", timed_out=True)

    for _ in range(3):
        with pytest.raises(TransientReadError):
            asyncio.run(acc.record_tick(stub_source))

    row = read_rows(writer.flush_if_due(acc, clock.advance(900)))[0]

    assert row["ClValue"] == ""
    assert row["TempValue"] == ""
    assert row["SuccessCount"] == "0"
    assert row["TimeoutCount"] == "3"
    assert row["serviceUptimeSeconds"] == "900"


def test_flush_resets_accumulator(log_dir, clock, stub_source):
    acc = SampleAccumulator()
    writer = LogWriter(log_dir, 900, started_at=clock())
    tick(acc, stub_source)

    writer.flush_if_due(acc, clock.advance(900))

    assert acc.sample_count == 0
    assert writer.last_flush == clock()
    assert writer.flush_count == 1


def test_second_flush_appends_without_header(log_dir, clock, stub_source):
    acc = SampleAccumulator()
    writer = LogWriter(log_dir, 900, started_at=clock())

    tick(acc, stub_source, ClValue=1.0)
    writer.flush_if_due(acc, clock.advance(900))
    tick(acc, stub_source, ClValue=2.0)
    path = writer.flush_if_due(acc, clock.advance(900))

    rows = read_rows(path)
    assert [row["ClValue"] for row in rows] == ["1.00", "2.00"]
    assert path.read_text(encoding="utf-8").count("Time,") == 1


def test_new_month_starts_new_file(log_dir, clock, stub_source):
    clock.now = clock.now.replace(month=1, day=31, hour=23, minute=50)
    acc = SampleAccumulator()
    writer = LogWriter(log_dir, 900, started_at=clock())

    tick(acc, stub_source)
    path = writer.flush_if_due(acc, clock.advance(900))

    assert path.name == "log-2024-2.csv"
    assert read_rows(path)[0]["Time"] == "2/1/2024 0:05:00"
    assert not (log_dir / "log-2024-1.csv").exists()


# ============================================================================
# Failure handling
# ============================================================================

def test_failed_write_keeps_state_for_next_flush(tmp_path, clock, stub_source):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")

    acc = SampleAccumulator()
    writer = LogWriter(blocker, 900, started_at=clock())
    tick(acc, stub_source, ClValue=2.0)

    with pytest.raises(PersistenceError):
        writer.flush_if_due(acc, clock.advance(900))

    assert acc.sample_count == 1
    assert writer.failed_flush_count == 1

    # Storage comes back; the missed period is folded into the next row
    writer.log_dir = tmp_path / "static"
    tick(acc, stub_source, ClValue=4.0)
    row = read_rows(writer.flush_if_due(acc, clock.advance(900)))[0]

    assert row["ClValue"] == "3.00"
    assert row["SuccessCount"] == "2"
    assert row["serviceUptimeSeconds"] == "1800"


# ============================================================================
# Companion (heater) columns
# ============================================================================

def test_no_companion_leaves_heater_columns_empty(log_dir, clock, stub_source):
    acc = SampleAccumulator()
    writer = LogWriter(log_dir, 900, started_at=clock())
    tick(acc, stub_source)

    row = read_rows(writer.flush_if_due(acc, clock.advance(900)))[0]

    for column in ("HeaterOnSeconds", "setpoint", "waterTemp", "PentairSeconds"):
        assert row[column] == ""


def test_companion_counters_are_deltas(log_dir, clock, stub_source, companion):
    acc = SampleAccumulator()
    writer = LogWriter(log_dir, 900, companion=companion, started_at=clock())
    companion.setpoint = 84.0
    companion.water_temp = 80.4

    companion.heater_on, companion.connection = 100.0, 600.0
    writer.flush_if_due(acc, clock.advance(900))
    companion.heater_on, companion.connection = 250.0, 1500.0
    path = writer.flush_if_due(acc, clock.advance(900))

    first, second = read_rows(path)
    assert first["HeaterOnSeconds"] == "100"
    assert first["PentairSeconds"] == "600"
    assert first["setpoint"] == "84"
    assert first["waterTemp"] == "80"
    assert second["HeaterOnSeconds"] == "150"
    assert second["PentairSeconds"] == "900"


def test_disconnected_companion_row_is_empty(log_dir, clock, stub_source, companion):
    acc = SampleAccumulator()
    writer = LogWriter(log_dir, 900, companion=companion, started_at=clock())

    companion.heater_on, companion.connection = 100.0, 600.0
    writer.flush_if_due(acc, clock.advance(900))

    companion.connected = False
    companion.heater_on, companion.connection = 300.0, 1600.0
    writer.flush_if_due(acc, clock.advance(900))

    companion.connected = True
    companion.heater_on, companion.connection = 400.0, 1700.0
    path = writer.flush_if_due(acc, clock.advance(900))

    rows = read_rows(path)
    assert rows[1]["HeaterOnSeconds"] == ""
    assert rows[1]["PentairSeconds"] == ""
    assert rows[2]["HeaterOnSeconds"] == "100"
    assert rows[2]["PentairSeconds"] == "100"
