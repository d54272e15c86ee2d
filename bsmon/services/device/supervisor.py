"""
Connection Supervisor

Per-device connect/retry state machine with capped linear backoff.

    DISCONNECTED --connect()--> CONNECTING --ok--> CONNECTED
         ^                          |                  |
         +------ failed (attempts+1, reschedule) ------+-- closed (reschedule)

Reconnect delay = min(max(attempts, 1) * base_delay, cap_delay).
At most one reconnect timer is pending per device. Uptime and downtime
are derived from the last transition timestamp when asked for.
"""

import asyncio
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable

from bsmon.common.logging_setup import get_service_logger

logger = get_service_logger("device.supervisor")


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class ConnectionSupervisor:
    """
    Drives the connection lifecycle of one device.

    The connect callable performs the handshake and raises on failure.
    on_connected runs right after the CONNECTED transition; work that may
    report a close (reader tasks) belongs there, not in the handshake.
    Transport owners report a lost link through notify_closed().
    """

    def __init__(
        self,
        name: str,
        connect_fn: Callable[[], Awaitable[None]],
        base_delay_ms: int = 1000,
        cap_delay_ms: int = 5 * 60 * 1000,
        connect_timeout_s: float | None = None,
        on_connected: Callable[[], None] | None = None,
        now_fn: Callable[[], datetime] = datetime.now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.name = name
        self._connect_fn = connect_fn
        self.base_delay_ms = base_delay_ms
        self.cap_delay_ms = cap_delay_ms
        self.connect_timeout_s = connect_timeout_s
        self._on_connected = on_connected
        self._now = now_fn
        self._sleep = sleep

        self._state = ConnectionState.DISCONNECTED
        self._attempts = 0
        self._created_at = now_fn()
        self._last_transition = self._created_at
        self._connected_at: datetime | None = None
        self._disconnected_at: datetime | None = None
        self._closed_connected_s = 0.0
        self._last_error: str | None = None

        self._reconnect_task: asyncio.Task | None = None
        self._connected_event = asyncio.Event()
        self._stopped = False

        # Observability
        self.last_delay_ms: int | None = None
        self.scheduled_count = 0

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    def _transition(self, state: ConnectionState) -> None:
        if state == self._state:
            return
        logger.info(
            f"{self.name}: {self._state.value} -> {state.value}",
            extra={"device": self.name, "state": state.value, "attempts": self._attempts},
        )
        self._state = state
        self._last_transition = self._now()
        if state == ConnectionState.CONNECTED:
            self._connected_event.set()
        else:
            self._connected_event.clear()

    async def connect(self) -> bool:
        """
        Attempt one handshake.

        Returns:
            True if the device is connected afterwards
        """
        if self._stopped:
            return False
        if self._state != ConnectionState.DISCONNECTED:
            return self._state == ConnectionState.CONNECTED

        self._cancel_reconnect()
        self._transition(ConnectionState.CONNECTING)

        try:
            if self.connect_timeout_s:
                await asyncio.wait_for(self._connect_fn(), self.connect_timeout_s)
            else:
                await self._connect_fn()
        except asyncio.CancelledError:
            self._transition(ConnectionState.DISCONNECTED)
            raise
        except Exception as e:
            self._attempts += 1
            self._last_error = str(e) or type(e).__name__
            self._transition(ConnectionState.DISCONNECTED)
            logger.warning(
                f"{self.name}: connect attempt {self._attempts} failed: {self._last_error}"
            )
            self._schedule_reconnect()
            return False

        if self._stopped:
            # stop() raced the handshake
            return False

        self._attempts = 0
        self._last_error = None
        self._connected_at = self._now()
        self._transition(ConnectionState.CONNECTED)
        if self._on_connected is not None:
            self._on_connected()
        return True

    def notify_closed(self, reason: str = "closed") -> None:
        """Report a transport close or error"""
        if self._state == ConnectionState.CONNECTED:
            now = self._now()
            self._closed_connected_s += (now - self._connected_at).total_seconds()
            self._disconnected_at = now
            self._last_error = reason
            self._transition(ConnectionState.DISCONNECTED)
            logger.warning(f"{self.name}: connection lost ({reason})")
        elif self._state == ConnectionState.CONNECTING:
            # The pending handshake reports its own failure
            return

        self._schedule_reconnect()

    def reconnect_delay_ms(self) -> int:
        return min(max(self._attempts, 1) * self.base_delay_ms, self.cap_delay_ms)

    def _schedule_reconnect(self) -> None:
        if self._stopped:
            return
        if self.reconnect_pending:
            logger.debug(f"{self.name}: reconnect already pending")
            return

        delay_ms = self.reconnect_delay_ms()
        self.last_delay_ms = delay_ms
        self.scheduled_count += 1
        logger.info(f"{self.name}: reconnecting in {delay_ms}ms")
        self._reconnect_task = asyncio.create_task(self._reconnect_after(delay_ms))

    async def _reconnect_after(self, delay_ms: int) -> None:
        await self._sleep(delay_ms / 1000)
        self._reconnect_task = None
        await self.connect()

    def _cancel_reconnect(self) -> None:
        task = self._reconnect_task
        if task is not None and task is not asyncio.current_task():
            task.cancel()
        self._reconnect_task = None

    async def wait_connected(self, timeout: float | None = None) -> bool:
        try:
            await asyncio.wait_for(self._connected_event.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def stop(self) -> None:
        """Cancel any pending reconnect and stop counting connected time"""
        self._stopped = True
        task = self._reconnect_task
        self._cancel_reconnect()
        if task is not None and task is not asyncio.current_task():
            try:
                await task
            except asyncio.CancelledError:
                pass

        if self._state == ConnectionState.CONNECTED:
            now = self._now()
            self._closed_connected_s += (now - self._connected_at).total_seconds()
            self._disconnected_at = now
        self._transition(ConnectionState.DISCONNECTED)

    def uptime(self) -> float:
        """Seconds since the current connection was established (0 if down)"""
        if self._state != ConnectionState.CONNECTED:
            return 0.0
        return (self._now() - self._connected_at).total_seconds()

    def downtime(self) -> float:
        """Seconds since the link was lost, or since construction if never up"""
        if self._state == ConnectionState.CONNECTED:
            return 0.0
        since = self._disconnected_at or self._created_at
        return (self._now() - since).total_seconds()

    def total_connected_seconds(self) -> float:
        """Closed connected intervals plus the open one"""
        return self._closed_connected_s + self.uptime()

    def get_stats(self) -> dict:
        return {
            "state": self._state.value,
            "attempts": self._attempts,
            "last_transition": self._last_transition.isoformat(),
            "uptime_s": round(self.uptime(), 1),
            "downtime_s": round(self.downtime(), 1),
            "reconnect_pending": self.reconnect_pending,
            "last_delay_ms": self.last_delay_ms,
            "last_error": self._last_error,
        }
