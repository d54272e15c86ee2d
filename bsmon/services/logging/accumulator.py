"""
Sample Accumulator

Running sums for the averaged log columns. One tick reads every logged
field once; a tick either contributes all of its values or none.
"""

import math
from typing import Protocol

from bsmon.common.exceptions import DeviceConnectionError, TransientReadError
from bsmon.common.fields import LOGGED_FIELDS
from bsmon.common.logging_setup import get_service_logger

logger = get_service_logger("logging.accumulator")


class FieldSource(Protocol):
    """Device that can be sampled by the accumulator"""

    name: str

    def is_connected(self) -> bool: ...

    async def read_field(self, name: str) -> float | str: ...


class SampleAccumulator:
    """
    Accumulation state for the current log window.

    Owned by the polling task. The window id changes on every reset, so a
    tick that straddles a flush can tell its readings belong to a window
    that no longer exists.
    """

    def __init__(self, fields: tuple[str, ...] = LOGGED_FIELDS):
        self.fields = fields
        self.sums: dict[str, float] = {name: 0.0 for name in fields}
        self.sample_count = 0
        self.timeout_count = 0
        self.window_id = 0
        self.skipped_count = 0

    async def record_tick(self, source: FieldSource) -> bool:
        """
        Read every field once and fold the values into the running sums.

        Returns:
            True if the sample was recorded, False if the tick was skipped
            because the device is disconnected or the window changed

        Raises:
            TransientReadError: a field read failed; nothing was accumulated
        """
        if not source.is_connected():
            self.skipped_count += 1
            logger.debug(f"{source.name} disconnected, skipping tick")
            return False

        window_id = self.window_id
        values: dict[str, float] = {}
        try:
            for name in self.fields:
                value = await source.read_field(name)
                if not isinstance(value, (int, float)) or math.isnan(value):
                    raise TransientReadError(
                        f"Invalid value for {name}: {value!r}",
                        device_name=source.name,
                        field_name=name,
                    )
                values[name] = float(value)
        except DeviceConnectionError:
            # Dropped mid-tick; the supervisor owns reconnection
            self.skipped_count += 1
            return False
        except TransientReadError:
            if window_id == self.window_id:
                self.timeout_count += 1
            raise

        if window_id != self.window_id:
            logger.warning("Accumulation window changed during tick, discarding sample")
            self.skipped_count += 1
            return False

        for name, value in values.items():
            self.sums[name] += value
        self.sample_count += 1
        return True

    def means(self) -> dict[str, float] | None:
        """Per-field means, or None when nothing was sampled"""
        if self.sample_count == 0:
            return None
        return {name: total / self.sample_count for name, total in self.sums.items()}

    def reset(self) -> None:
        """Start a new window; only called after a successful flush"""
        self.sums = {name: 0.0 for name in self.fields}
        self.sample_count = 0
        self.timeout_count = 0
        self.window_id += 1

    def get_stats(self) -> dict:
        return {
            "window_id": self.window_id,
            "sample_count": self.sample_count,
            "timeout_count": self.timeout_count,
            "skipped_ticks": self.skipped_count,
        }
