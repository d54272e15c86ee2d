"""
Fixed-Rate Poll Loop

ScheduledLoop awaits a callback once per interval on the event loop's
monotonic clock, so wall-clock changes (NTP sync, DST) never stretch or
bunch up polls.

Ticks never overlap: when a callback runs past the next deadline, the
deadlines it covered are dropped and counted as overruns.

Usage:
    scheduler = ScheduledLoop(10.0, service.tick, name="poll")
    await scheduler.start()
    ...
    scheduler.stop()
"""

import asyncio
from typing import Awaitable, Callable

from .logging_setup import get_service_logger

logger = get_service_logger("scheduler")


class ScheduledLoop:
    """Run an async callback every `interval_seconds`, first run immediately"""

    def __init__(
        self,
        interval_seconds: float,
        callback: Callable[[], Awaitable[None]],
        name: str = "loop",
    ):
        if interval_seconds <= 0:
            raise ValueError(f"interval must be positive, got {interval_seconds}")
        self.interval = interval_seconds
        self.callback = callback
        self.name = name

        self._task: asyncio.Task | None = None

        self._tick_count = 0
        self._error_count = 0
        self._overrun_count = 0
        self._last_duration_s = 0.0
        self._max_duration_s = 0.0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=f"scheduled-{self.name}")

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time()

        while True:
            started = loop.time()
            await self._invoke()
            finished = loop.time()

            self._last_duration_s = finished - started
            self._max_duration_s = max(self._max_duration_s, self._last_duration_s)

            deadline += self.interval
            if finished > deadline:
                missed = int((finished - deadline) // self.interval) + 1
                self._overrun_count += missed
                deadline += missed * self.interval
                logger.warning(
                    f"'{self.name}' tick took {self._last_duration_s:.2f}s, "
                    f"dropped {missed} tick(s)"
                )

            await asyncio.sleep(deadline - loop.time())

    async def _invoke(self) -> None:
        self._tick_count += 1
        try:
            await self.callback()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # A failing tick must not end the loop
            self._error_count += 1
            logger.exception(f"'{self.name}' callback failed: {e}")

    def get_stats(self) -> dict:
        return {
            "name": self.name,
            "interval_s": self.interval,
            "running": self.running,
            "ticks": self._tick_count,
            "errors": self._error_count,
            "overruns": self._overrun_count,
            "last_duration_s": round(self._last_duration_s, 3),
            "max_duration_s": round(self._max_duration_s, 3),
        }
