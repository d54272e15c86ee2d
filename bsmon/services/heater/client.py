"""
Pool Heater Client

WebSocket client for the pool automation controller. Subscribes to the
heater body's parameters and turns its status notifications into heater
on/off edges for the duty tracker.

Message flow:
    -> RequestParamList (B1101: HTMODE, TEMP, LOTMP)   once per connection
    -> {"command": "ping"}                              every ping interval
    <- NotifyList (B1101 params)                        on every change
A socket silent for ping interval + 5s is closed and reconnected.
"""

import asyncio
import json
import uuid
from datetime import datetime
from typing import Any, Callable

import aiohttp

from bsmon.common.config import HeaterSettings, ReconnectSettings
from bsmon.common.logging_setup import get_service_logger
from bsmon.services.device.supervisor import ConnectionSupervisor
from .duty import DutyCycle, HeaterDutyTracker

logger = get_service_logger("device.heater")

HEATER_BODY = "B1101"
SUBSCRIBED_KEYS = ["HTMODE", "TEMP", "LOTMP"]
HEARTBEAT_GRACE_S = 5.0


def _to_float(value: Any) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class HeaterClient:
    """
    Companion device source for the pool heater.

    Exposes cumulative heater on-time and connection time (the log writer
    records per-row deltas of both) plus the current setpoint and water
    temperature.
    """

    name = "heater"

    def __init__(
        self,
        settings: HeaterSettings,
        reconnect: ReconnectSettings | None = None,
        now_fn: Callable[[], datetime] = datetime.now,
        session: aiohttp.ClientSession | None = None,
    ):
        self.settings = settings
        self.url = f"ws://{settings.host}:{settings.port}"
        self._now = now_fn
        reconnect = reconnect or ReconnectSettings()

        self.tracker = HeaterDutyTracker(now_fn())
        self.supervisor = ConnectionSupervisor(
            self.name,
            self._handshake,
            base_delay_ms=reconnect.base_delay_ms,
            cap_delay_ms=reconnect.cap_delay_ms,
            connect_timeout_s=settings.connect_timeout_s,
            on_connected=self._start_session,
            now_fn=now_fn,
        )

        self.setpoint: float | None = None
        self.water_temp: float | None = None
        self.message_count = 0

        self._session = session
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._reader_task: asyncio.Task | None = None
        self._ping_task: asyncio.Task | None = None

    @property
    def heartbeat_timeout_s(self) -> float:
        return self.settings.ping_interval_s + HEARTBEAT_GRACE_S

    @property
    def heating(self) -> bool:
        return self.tracker.is_on

    def is_connected(self) -> bool:
        return self.supervisor.is_connected

    # Connection lifecycle

    async def start(self) -> None:
        await self.supervisor.connect()

    async def _handshake(self) -> None:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()

        ws = await self._session.ws_connect(self.url, autoping=True)
        try:
            await self._subscribe(ws)
        except (Exception, asyncio.CancelledError):
            # Failed subscribe or connect timeout: nothing else owns this socket
            await ws.close()
            raise
        self._ws = ws

    def _start_session(self) -> None:
        """Runs once the supervisor reports CONNECTED"""
        ws = self._ws
        if ws is None:
            return
        self._reader_task = asyncio.create_task(self._read_loop(ws))
        self._ping_task = asyncio.create_task(self._ping_loop(ws))
        logger.info(f"Connected to heater at {self.url}")

    async def _subscribe(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        await ws.send_json({
            "command": "RequestParamList",
            "messageID": str(uuid.uuid4()),
            "objectList": [{"objnam": HEATER_BODY, "keys": SUBSCRIBED_KEYS}],
        })

    async def _ping_loop(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        while not ws.closed:
            await asyncio.sleep(self.settings.ping_interval_s)
            if ws.closed:
                break
            try:
                await ws.send_json({"command": "ping"})
            except (aiohttp.ClientError, ConnectionResetError) as e:
                logger.warning(f"Heater ping failed: {e}")
                break

    async def _read_loop(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        reason = "closed by peer"
        try:
            while True:
                msg = await ws.receive(timeout=self.heartbeat_timeout_s)
                if msg.type == aiohttp.WSMsgType.TEXT:
                    self.handle_message(msg.data)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    reason = f"error: {ws.exception()}"
                    break
                elif msg.type in (
                    aiohttp.WSMsgType.CLOSE,
                    aiohttp.WSMsgType.CLOSING,
                    aiohttp.WSMsgType.CLOSED,
                ):
                    break
        except aiohttp.ClientError as e:
            reason = f"receive failed: {e}"
        except asyncio.TimeoutError:
            reason = f"no message for {self.heartbeat_timeout_s:.0f}s"

        await self._close_transport()
        self._reader_task = None
        self._on_link_lost(reason)

    def _on_link_lost(self, reason: str) -> None:
        # An open heater interval cannot be observed while disconnected
        self.tracker.update(False, self._now())
        self.supervisor.notify_closed(reason)

    async def _close_transport(self) -> None:
        ping_task, self._ping_task = self._ping_task, None
        if ping_task is not None and ping_task is not asyncio.current_task():
            ping_task.cancel()

        ws, self._ws = self._ws, None
        if ws is not None and not ws.closed:
            await ws.close()

    async def disconnect(self) -> None:
        """Close the socket and stop reconnecting"""
        await self.supervisor.stop()

        reader_task, self._reader_task = self._reader_task, None
        if reader_task is not None and reader_task is not asyncio.current_task():
            reader_task.cancel()
            try:
                await reader_task
            except asyncio.CancelledError:
                pass

        await self._close_transport()
        if self._session is not None:
            await self._session.close()
            self._session = None

        self.tracker.update(False, self._now())
        logger.info("Disconnected from heater")

    # Status handling

    def handle_message(self, data: str | dict) -> None:
        """Apply one message from the controller"""
        if isinstance(data, str):
            try:
                message = json.loads(data)
            except ValueError:
                logger.warning(f"Ignoring non-JSON heater message: {data[:80]!r}")
                return
        else:
            message = data

        self.message_count += 1
        if not isinstance(message, dict) or message.get("command") != "NotifyList":
            return

        object_list = message.get("objectList")
        if not isinstance(object_list, list) or not object_list:
            return
        body = object_list[0]
        if not isinstance(body, dict) or body.get("objnam") != HEATER_BODY:
            return

        params = body.get("params") or {}
        if not isinstance(params, dict):
            logger.warning(f"Ignoring heater notification with params {params!r}")
            return
        mode = params.get("HTMODE")
        if mode:
            if mode not in ("0", "1"):
                logger.warning(f"Unexpected HTMODE value: {mode}")
            self.tracker.update(mode == "1", self._now())

        setpoint = _to_float(params.get("LOTMP"))
        if setpoint is not None:
            self.setpoint = setpoint

        water_temp = _to_float(params.get("TEMP"))
        if water_temp is not None:
            self.water_temp = water_temp

    # Counters

    def total_heater_on_seconds(self) -> float:
        return self.tracker.lifetime_on_seconds(self._now())

    def total_connection_seconds(self) -> float:
        return self.supervisor.total_connected_seconds()

    def duty_cycle(self) -> DutyCycle:
        return self.tracker.duty_cycle(self._now())

    def get_stats(self) -> dict:
        duty = self.duty_cycle()
        return {
            **self.supervisor.get_stats(),
            "heating": self.heating,
            "setpoint": self.setpoint,
            "water_temp": self.water_temp,
            "duty_cycle_pct": round(duty.percent, 1),
            "duty_cycle_window": duty.label,
            "messages": self.message_count,
        }
