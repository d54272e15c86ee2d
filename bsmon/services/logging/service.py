"""
Logging Service - Poll Loop

Responsible for:
- Sampling the chemical controller every poll interval
- Appending one averaged row per log interval to the monthly CSV log
- Keeping both device connections alive (backoff reconnects)
- Serving /health and /stats on localhost

Architecture:
    ChemControllerSource --(every poll_interval_s)--> SampleAccumulator
                                                          |
    HeaterClient (companion counters) ----------> LogWriter (every log_entry_minutes)
                                                          |
                                                  log-<YYYY>-<M>.csv
"""

import asyncio
import signal
from datetime import datetime
from typing import Callable

from aiohttp import web

from bsmon.common.config import MonitorConfig
from bsmon.common.exceptions import PersistenceError, TransientReadError
from bsmon.common.logging_setup import get_service_logger
from bsmon.common.scheduler import ScheduledLoop
from bsmon.services.device.source import ChemControllerSource
from bsmon.services.heater.client import HeaterClient
from .accumulator import SampleAccumulator
from .log_writer import LogWriter

logger = get_service_logger("logging")

# Alert after this many consecutive discarded ticks
ALERT_CONSECUTIVE_ERRORS = 3


class LoggingService:
    """
    Single cooperative loop: tick -> accumulate -> maybe flush.

    Nothing here terminates the process. Read failures discard the tick,
    write failures keep the window for the next attempt.
    """

    def __init__(
        self,
        config: MonitorConfig,
        chem: ChemControllerSource | None = None,
        heater: HeaterClient | None = None,
        now_fn: Callable[[], datetime] = datetime.now,
    ):
        self.config = config
        self._now = now_fn
        self._start_time = now_fn()

        self.chem = chem or ChemControllerSource(config.controller, config.reconnect, now_fn=now_fn)
        if heater is None and config.heater.enabled:
            heater = HeaterClient(config.heater, config.reconnect, now_fn=now_fn)
        self.heater = heater

        self.accumulator = SampleAccumulator()
        self.writer = LogWriter(
            config.logging.log_dir,
            config.log_interval_s,
            companion=self.heater,
            started_at=self._start_time,
        )

        self._running = False
        self._shutdown_event = asyncio.Event()
        self._poll_scheduler: ScheduledLoop | None = None
        self._health_runner: web.AppRunner | None = None

        # Observability
        self._last_tick: datetime | None = None
        self._read_error_count = 0
        self._consecutive_read_errors = 0
        self._flush_error_count = 0

    async def tick(self) -> None:
        """One poll: sample, then append a row if the log interval has passed"""
        self._last_tick = self._now()

        try:
            await self.accumulator.record_tick(self.chem)
            self._consecutive_read_errors = 0
        except TransientReadError as e:
            self._read_error_count += 1
            self._consecutive_read_errors += 1
            logger.warning(f"Tick discarded: {e.message}")
            if self._consecutive_read_errors == ALERT_CONSECUTIVE_ERRORS:
                logger.error(f"{ALERT_CONSECUTIVE_ERRORS} consecutive ticks discarded")

        try:
            self.writer.flush_if_due(self.accumulator, self._now())
        except PersistenceError as e:
            self._flush_error_count += 1
            logger.error(f"[ERROR] Log flush failed, keeping window for retry: {e.message}")

    async def start(self) -> None:
        """Start the service and run until a shutdown signal"""
        logger.info("Starting Logging Service")
        self._running = True

        await self._start_health_server()

        await self.chem.start()
        if self.heater is not None:
            await self.heater.start()

        self._poll_scheduler = ScheduledLoop(
            self.config.logging.poll_interval_s,
            self.tick,
            name="poll",
        )
        await self._poll_scheduler.start()

        logger.info(
            f"Logging Service started (poll: {self.config.logging.poll_interval_s}s, "
            f"log entry: {self.config.logging.log_entry_minutes}min, "
            f"log dir: {self.config.logging.log_dir})"
        )

        self._setup_signal_handlers()
        await self._shutdown_event.wait()

    async def stop(self) -> None:
        """Stop polling and close both device connections"""
        logger.info("Stopping Logging Service")
        self._running = False

        if self._poll_scheduler:
            self._poll_scheduler.stop()

        await self.chem.stop()
        if self.heater is not None:
            await self.heater.disconnect()

        await self._stop_health_server()
        logger.info("Logging Service stopped")

    def _setup_signal_handlers(self) -> None:
        """Setup graceful shutdown signal handlers"""
        loop = asyncio.get_event_loop()

        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, self._handle_shutdown)
            except NotImplementedError:
                signal.signal(sig, lambda s, f: self._handle_shutdown())

    def _handle_shutdown(self) -> None:
        """Handle shutdown signal"""
        logger.info("Received shutdown signal")
        self._shutdown_event.set()

    async def _start_health_server(self) -> None:
        """Start the health check HTTP server"""
        app = web.Application()
        app.router.add_get("/health", self._health_handler)
        app.router.add_get("/stats", self._stats_handler)

        self._health_runner = web.AppRunner(app)
        await self._health_runner.setup()

        site = web.TCPSite(self._health_runner, "127.0.0.1", self.config.health_port)
        await site.start()

        logger.info(f"Health server started on port {self.config.health_port}")

    async def _stop_health_server(self) -> None:
        if self._health_runner:
            await self._health_runner.cleanup()
            self._health_runner = None

    async def _health_handler(self, request: web.Request) -> web.Response:
        now = self._now()
        return web.json_response({
            "status": "healthy" if self._running else "unhealthy",
            "service": "logging",
            "uptime": int((now - self._start_time).total_seconds()),
            "timestamp": now.isoformat(),
        })

    async def _stats_handler(self, request: web.Request) -> web.Response:
        return web.json_response(self.get_stats())

    def get_stats(self) -> dict:
        return {
            "devices": {
                "chem": self.chem.get_stats(),
                "heater": self.heater.get_stats() if self.heater else None,
            },
            "accumulator": self.accumulator.get_stats(),
            "writer": self.writer.get_stats(),
            "timing": {
                "last_tick": self._last_tick.isoformat() if self._last_tick else None,
                "poll_interval_s": self.config.logging.poll_interval_s,
                "log_interval_s": self.config.log_interval_s,
            },
            "scheduler": self._poll_scheduler.get_stats() if self._poll_scheduler else None,
            "errors": {
                "read_errors": self._read_error_count,
                "consecutive_read_errors": self._consecutive_read_errors,
                "flush_errors": self._flush_error_count,
            },
        }
