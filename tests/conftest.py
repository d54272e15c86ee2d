"""
Shared test fixtures: a controllable clock, stub device sources and a
helper for writing log files by hand.
"""

from datetime import datetime, timedelta

import pytest

from bsmon.common.fields import CANONICAL_HEADER


class Clock:
    """Callable clock for now_fn parameters"""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


class StubSource:
    """Chemical controller stand-in; a value that is an exception is raised on read"""

    name = "chem"

    def __init__(self, values=None, connected=True):
        self.values = dict(values or {})
        self.connected = connected
        self.reads = []

    def is_connected(self):
        return self.connected

    async def read_field(self, name):
        self.reads.append(name)
        value = self.values.get(name, 1.0)
        if isinstance(value, Exception):
            raise value
        return value

    def get_stats(self):
        return {"state": "connected" if self.connected else "disconnected"}


class StubCompanion:
    """Heater stand-in exposing cumulative counters"""

    def __init__(self):
        self.connected = True
        self.heater_on = 0.0
        self.connection = 0.0
        self.setpoint = None
        self.water_temp = None

    def is_connected(self):
        return self.connected

    def total_heater_on_seconds(self):
        return self.heater_on

    def total_connection_seconds(self):
        return self.connection

    def get_stats(self):
        return {}


@pytest.fixture
def clock():
    return Clock(datetime(2024, 1, 15, 10, 0, 0))


@pytest.fixture
def stub_source():
    return StubSource()


@pytest.fixture
def companion():
    return StubCompanion()


@pytest.fixture
def log_dir(tmp_path):
    path = tmp_path / "static"
    path.mkdir()
    return path


@pytest.fixture
def write_log(log_dir):
    """write_log(name, rows, header=CANONICAL_HEADER) -> path"""

    def _write(name, rows, header=CANONICAL_HEADER):
        path = log_dir / name
        lines = [",".join(header)] + list(rows)
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path

    return _write


def canonical_row(**values):
    """Log line in canonical column order; Time is required"""
    return ",".join(str(values.get(column, "")) for column in CANONICAL_HEADER)


@pytest.fixture
def make_row():
    return canonical_row
