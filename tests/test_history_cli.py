"""
Tests for the bsmon-history command line
"""

import json
import sys

import pytest

from bsmon import history_cli


def run_cli(monkeypatch, tmp_path, *args):
    argv = ["bsmon-history", *args, "--config", str(tmp_path / "missing.yaml")]
    monkeypatch.setattr(sys, "argv", argv)
    history_cli.main()


@pytest.fixture
def logs(write_log, make_row):
    return write_log("log-2024-1.csv", [
        make_row(Time="1/15/2024 10:00:00", ClValue="1.00", HeaterOnSeconds="300",
                 PentairSeconds="900", SuccessCount="90", serviceUptimeSeconds="900"),
        make_row(Time="1/15/2024 10:15:00", ClValue="2.00", HeaterOnSeconds="600",
                 PentairSeconds="900", SuccessCount="90", serviceUptimeSeconds="900"),
    ])


def test_query_prints_csv(monkeypatch, tmp_path, log_dir, logs, capsys):
    run_cli(monkeypatch, tmp_path, "query", "--start", "2024-01-15T00:00:00",
            "--end", "2024-01-16T00:00:00", "--log-dir", str(log_dir))

    assert capsys.readouterr().out == logs.read_text(encoding="utf-8")


def test_metrics_prints_json(monkeypatch, tmp_path, log_dir, logs, capsys):
    run_cli(monkeypatch, tmp_path, "metrics", "--start", "2024-01-15",
            "--end", "2024-01-16", "--log-dir", str(log_dir))

    metrics = json.loads(capsys.readouterr().out)
    assert metrics["aggregation"] == "raw"
    assert metrics["rows"] == 2
    assert metrics["heater_duty_cycle_pct"] == 50
    assert metrics["heater_uptime_pct"] == 100
    assert metrics["sample_uptime_pct"] == 100


def test_tag_prints_hex_digest(monkeypatch, tmp_path, log_dir, logs, capsys):
    run_cli(monkeypatch, tmp_path, "tag", "--start", "2024-01-15",
            "--end", "2024-01-16", "--log-dir", str(log_dir))

    tag = capsys.readouterr().out.strip()
    assert len(tag) == 32
    int(tag, 16)


def test_end_before_start_exits(monkeypatch, tmp_path, log_dir):
    with pytest.raises(SystemExit) as exc_info:
        run_cli(monkeypatch, tmp_path, "query", "--start", "2024-01-16",
                "--end", "2024-01-15", "--log-dir", str(log_dir))

    assert exc_info.value.code == 2
