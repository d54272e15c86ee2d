"""
Heater Duty Tracker

Tracks heater on/off intervals and per-day on-time totals.

Day rollover is computed from explicit next-midnight boundaries: an
interval still open at midnight is split so the seconds before midnight
count to the closing day and the rest to the new day.
"""

from dataclasses import dataclass
from datetime import datetime

from bsmon.common.timestamp import SECONDS_PER_DAY, format_duration_label, next_midnight


@dataclass
class DutyCycle:
    """Fraction of time the heater was on, over a labelled window"""
    ratio: float
    label: str

    @property
    def percent(self) -> float:
        return self.ratio * 100


class HeaterDutyTracker:
    """
    Heater on-time accounting.

    Call update() with every heating status report; the first thing it
    does is roll over any midnights crossed since the previous call.
    """

    def __init__(self, started_at: datetime):
        self.started_at = started_at
        self.day_on_seconds = 0.0
        self.yesterday_on_seconds: float | None = None
        self.on_since: datetime | None = None
        self.last_check = started_at
        self._lifetime_closed_s = 0.0

    @property
    def is_on(self) -> bool:
        return self.on_since is not None

    def check_rollover(self, now: datetime) -> None:
        """Finalize every calendar day that ended before now"""
        boundary = next_midnight(self.last_check)
        while boundary <= now:
            if self.on_since is not None:
                self._close_interval(boundary)
                self.on_since = boundary
            self.yesterday_on_seconds = self.day_on_seconds
            self.day_on_seconds = 0.0
            self.last_check = boundary
            boundary = next_midnight(boundary)

        if now > self.last_check:
            self.last_check = now

    def update(self, heating: bool, now: datetime) -> None:
        self.check_rollover(now)

        if heating and self.on_since is None:
            self.on_since = now
        elif not heating and self.on_since is not None:
            self._close_interval(now)
            self.on_since = None

    def _close_interval(self, end: datetime) -> None:
        elapsed = max((end - self.on_since).total_seconds(), 0.0)
        self.day_on_seconds += elapsed
        self._lifetime_closed_s += elapsed

    def _open_seconds(self, now: datetime) -> float:
        if self.on_since is None:
            return 0.0
        return max((now - self.on_since).total_seconds(), 0.0)

    def today_on_seconds(self, now: datetime) -> float:
        """Day-scope total including the live open interval"""
        self.check_rollover(now)
        return self.day_on_seconds + self._open_seconds(now)

    def lifetime_on_seconds(self, now: datetime) -> float:
        """Cumulative on-time since construction, never reset by rollover"""
        return self._lifetime_closed_s + self._open_seconds(now)

    def duty_cycle(self, now: datetime) -> DutyCycle:
        """
        Duty cycle for display.

        After a full day of running this is yesterday's total over a day;
        before that it is all on-time since start over the time running, so
        a midnight crossed in between does not shrink the numerator.
        """
        self.check_rollover(now)
        running_s = (now - self.started_at).total_seconds()

        if running_s >= SECONDS_PER_DAY:
            return DutyCycle((self.yesterday_on_seconds or 0.0) / SECONDS_PER_DAY, "yesterday")

        label = format_duration_label(max(running_s, 0.0))
        if running_s <= 0:
            return DutyCycle(0.0, label)
        return DutyCycle(self.lifetime_on_seconds(now) / running_s, label)
