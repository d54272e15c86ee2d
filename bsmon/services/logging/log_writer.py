"""
Monthly Log Writer

Turns the accumulated window into one CSV row and appends it to the
current month's log file (log-<YYYY>-<M>.csv).

Averaged columns are written as mean values at field precision, or left
empty when the window has no samples. Counters are written as-is even
then, so a period where the controller was unreachable still shows up
as a row with SuccessCount 0.
"""

from datetime import datetime
from pathlib import Path
from typing import Protocol

from bsmon.common.exceptions import PersistenceError
from bsmon.common.fields import (
    CANONICAL_HEADER,
    LOGGED_FIELDS,
    column_precision,
    format_value,
    log_file_name,
)
from bsmon.common.logging_setup import get_service_logger, log_flush
from bsmon.common.timestamp import format_log_time
from .accumulator import SampleAccumulator

logger = get_service_logger("logging.writer")


class CompanionSource(Protocol):
    """Heater-side counters recorded alongside each row"""

    setpoint: float | None
    water_temp: float | None

    def is_connected(self) -> bool: ...

    def total_heater_on_seconds(self) -> float: ...

    def total_connection_seconds(self) -> float: ...


def _optional(value: float | None, precision: int = 0) -> str:
    return "" if value is None else format_value(value, precision)


class LogWriter:
    """
    Appends one row per log interval.

    State changes (last flush time, accumulator reset, companion
    baselines) happen only after the row is on disk, so a failed append
    is retried with the combined window at the next flush.
    """

    def __init__(
        self,
        log_dir: str | Path,
        interval_s: float,
        companion: CompanionSource | None = None,
        started_at: datetime | None = None,
    ):
        self.log_dir = Path(log_dir)
        self.interval_s = interval_s
        self.companion = companion
        self.last_flush = started_at or datetime.now()

        self._heater_on_baseline = 0.0
        self._connection_baseline = 0.0

        self.flush_count = 0
        self.failed_flush_count = 0
        self.last_error: str | None = None

    def file_path_for(self, ts: datetime) -> Path:
        return self.log_dir / log_file_name(ts.year, ts.month)

    def is_due(self, now: datetime) -> bool:
        return (now - self.last_flush).total_seconds() >= self.interval_s

    def _companion_columns(self) -> tuple[list[str], tuple[float, float] | None]:
        """Heater column values plus the baselines to keep if the write succeeds"""
        if self.companion is None:
            return [""] * 4, None

        heater_on = self.companion.total_heater_on_seconds()
        connected = self.companion.total_connection_seconds()
        baselines = (heater_on, connected)

        if not self.companion.is_connected():
            return [""] * 4, baselines

        return [
            format_value(heater_on - self._heater_on_baseline, 0),
            _optional(self.companion.setpoint),
            _optional(self.companion.water_temp),
            format_value(connected - self._connection_baseline, 0),
        ], baselines

    def format_row(
        self,
        now: datetime,
        accumulator: SampleAccumulator,
        elapsed_s: float,
        companion_columns: list[str],
    ) -> str:
        """One log line in canonical column order (no newline)"""
        means = accumulator.means()
        columns = [format_log_time(now)]

        for name in LOGGED_FIELDS:
            if means is None:
                columns.append("")
            else:
                columns.append(format_value(means[name], column_precision(name)))

        columns.append(str(accumulator.sample_count))
        columns.append(str(accumulator.timeout_count))
        columns.extend(companion_columns)
        columns.append(str(int(round(elapsed_s))))
        return ",".join(columns)

    def flush_if_due(self, accumulator: SampleAccumulator, now: datetime) -> Path | None:
        """
        Append a row if the log interval has elapsed.

        Returns:
            Path of the file written, or None if no flush was due

        Raises:
            PersistenceError: the file could not be created or appended to;
            accumulator state is left untouched
        """
        if not self.is_due(now):
            return None

        elapsed_s = (now - self.last_flush).total_seconds()
        companion_columns, baselines = self._companion_columns()
        row = self.format_row(now, accumulator, elapsed_s, companion_columns)
        path = self.file_path_for(now)

        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            new_file = not path.exists() or path.stat().st_size == 0
            text = row + "\n"
            if new_file:
                text = ",".join(CANONICAL_HEADER) + "\n" + text
                logger.info(f"Starting new log file {path}")
            with open(path, "a", encoding="utf-8", newline="") as f:
                f.write(text)
        except OSError as e:
            self.failed_flush_count += 1
            self.last_error = str(e)
            raise PersistenceError(f"Cannot append to {path}: {e}", path=str(path))

        log_flush(logger, str(path), accumulator.sample_count,
                  accumulator.timeout_count, elapsed_s)

        self.last_flush = now
        accumulator.reset()
        if baselines is not None:
            self._heater_on_baseline, self._connection_baseline = baselines
        self.flush_count += 1
        self.last_error = None
        return path

    def get_stats(self) -> dict:
        return {
            "log_dir": str(self.log_dir),
            "interval_s": self.interval_s,
            "last_flush": self.last_flush.isoformat(),
            "flushes": self.flush_count,
            "failed_flushes": self.failed_flush_count,
            "last_error": self.last_error,
        }
