"""
Chemical Controller Source

Typed field reads plus connection status for the chemical dosing
controller. Every register read is bounded by a timeout; a read that
times out is cancelled, so its response can never be applied later.
Repeated timeouts drop the link and hand reconnection to the supervisor.
"""

import asyncio
from datetime import datetime
from typing import Any, Callable

import httpx

from bsmon.common.config import ControllerSettings, ReconnectSettings
from bsmon.common.exceptions import DeviceConnectionError, DeviceError, TransientReadError
from bsmon.common.fields import FIELDS, FieldSpec, FloatField
from bsmon.common.logging_setup import get_service_logger, log_device_read
from .fake_controller import FakeControllerClient
from .modbus_client import ModbusClient
from .supervisor import ConnectionSupervisor

logger = get_service_logger("device.chem")

# Display groups for the status report: (label, value, unit, setpoint, yout)
REGISTER_SETS: tuple[tuple[str, str, str, str | None, str | None], ...] = (
    ("Chlorine", "ClValue", "ClUnit", "ClSet", "ClYout"),
    ("pH", "PhValue", "PhUnit", "PhSet", "PhYout"),
    ("ORP", "ORPValue", "ORPUnit", None, None),
    ("Temperature", "TempValue", "TempUnit", None, None),
)
STATUS_BITMASKS = ("Alarms", "ClMode", "PhMode", "ClError", "PhError", "ORPError", "TempError")

FAKE_ALARM_DATA = {
    "alarms": 1,
    "messages": [
        {
            "id": 8,
            "rdate": "2025-05-01T19:19",
            "prio": 3,
            "groupID": 1,
            "ack": False,
            "sourceID": 0,
            "sourceTxt": "Alarm",
            "msgTxt": "Chlorine High",
        }
    ],
}


class ChemControllerSource:
    """Device source for the chemical dosing controller"""

    name = "chem"

    def __init__(
        self,
        settings: ControllerSettings,
        reconnect: ReconnectSettings | None = None,
        client: ModbusClient | None = None,
        now_fn: Callable[[], datetime] = datetime.now,
    ):
        self.settings = settings
        reconnect = reconnect or ReconnectSettings()

        if client is not None:
            self.client = client
        elif settings.use_fake_controller:
            self.client = FakeControllerClient()
        else:
            self.client = ModbusClient(
                host=settings.host,
                port=settings.port,
                slave_id=settings.slave_id,
                timeout=settings.read_timeout_s,
            )

        self.supervisor = ConnectionSupervisor(
            self.name,
            self._handshake,
            base_delay_ms=reconnect.base_delay_ms,
            cap_delay_ms=reconnect.cap_delay_ms,
            connect_timeout_s=settings.connect_timeout_s,
            now_fn=now_fn,
        )
        self._consecutive_failures = 0
        self.read_count = 0
        self.failure_count = 0

    async def _handshake(self) -> None:
        if not await self.client.connect():
            raise DeviceConnectionError(
                f"Cannot reach {self.settings.host}:{self.settings.port}",
                device_name=self.name,
                host=self.settings.host,
                port=self.settings.port,
            )

    async def start(self) -> None:
        """Connect, scheduling retries in the background on failure"""
        await self.supervisor.connect()

    async def stop(self) -> None:
        await self.supervisor.stop()
        await self.client.disconnect()

    def is_connected(self) -> bool:
        if self.supervisor.is_connected and not self.client.is_connected:
            # Transport went away underneath us
            self.supervisor.notify_closed("transport closed")
        return self.supervisor.is_connected

    def uptime(self) -> float:
        return self.supervisor.uptime()

    def downtime(self) -> float:
        return self.supervisor.downtime()

    async def read_field(self, name: str) -> float | str:
        """
        Read one field.

        Raises:
            DeviceConnectionError: device is not connected
            TransientReadError: the read failed, timed out or decoded badly
        """
        spec = FIELDS[name]
        if not self.is_connected():
            raise DeviceConnectionError(f"{self.name} not connected", device_name=self.name)

        self.read_count += 1
        try:
            result = await asyncio.wait_for(
                self.client.read_field(spec),
                self.settings.read_timeout_s,
            )
        except asyncio.TimeoutError:
            await self._record_failure(spec, "Read timeout", link_failure=True)
            raise TransientReadError(
                f"Timed out reading {name}",
                device_name=self.name,
                field_name=name,
                timed_out=True,
            )

        if not result.success:
            await self._record_failure(spec, result.error or "", link_failure=result.is_connection_error)
            raise TransientReadError(
                f"Failed to read {name}: {result.error}",
                device_name=self.name,
                field_name=name,
                timed_out=result.is_connection_error,
            )

        self._consecutive_failures = 0
        log_device_read(logger, self.name, name, result.value, success=True)
        return result.value

    async def _record_failure(self, spec: FieldSpec, error: str, link_failure: bool) -> None:
        self.failure_count += 1
        log_device_read(logger, self.name, spec.name, None, success=False)
        if not link_failure:
            # Device answered with an exception response; the link is fine
            return

        self._consecutive_failures += 1
        if self._consecutive_failures >= self.settings.max_consecutive_timeouts:
            logger.warning(
                f"{self._consecutive_failures} consecutive read failures ({error}), "
                f"dropping connection"
            )
            self._consecutive_failures = 0
            await self.client.disconnect()
            self.supervisor.notify_closed(f"repeated read failures: {error}")

    async def read_status(self) -> dict[str, float | str]:
        """Read every known field, formatted for display"""
        status: dict[str, float | str] = {}
        for name, spec in FIELDS.items():
            value = await self.read_field(name)
            if isinstance(spec.kind, FloatField) and isinstance(value, float):
                value = round(value, spec.kind.precision)
            status[name] = value
        return status

    async def get_alarm_data(self) -> dict[str, Any]:
        """
        Fetch the controller's alarm message list.

        Alarms such as low chlorine can be present here without any
        indication in the registers.
        """
        if self.settings.use_fake_controller:
            return FAKE_ALARM_DATA

        url = f"http://{self.settings.host}/ajax_dataAlarms.json"
        try:
            async with httpx.AsyncClient(timeout=self.settings.alarm_poll_timeout_s) as client:
                response = await client.get(url)
                response.raise_for_status()
                return response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise DeviceError(f"Alarm fetch from {url} failed: {e}", device_name=self.name)

    def get_stats(self) -> dict:
        return {
            **self.supervisor.get_stats(),
            "reads": self.read_count,
            "failures": self.failure_count,
            "consecutive_failures": self._consecutive_failures,
        }


def format_status_report(status: dict[str, Any], alarm_data: dict[str, Any] | None = None) -> str:
    """Render a status snapshot and alarm list as plain text"""
    lines = [f"System: {status.get('System', '')}"]

    for label, value_name, unit_name, set_name, yout_name in REGISTER_SETS:
        line = f"{label}: {status.get(value_name)} {status.get(unit_name, '')}"
        if set_name:
            line += f", setpoint: {status.get(set_name)}"
        if yout_name:
            line += f", yout: {status.get(yout_name)}%"
        lines.append(line)

    for name in STATUS_BITMASKS:
        lines.append(f"{name}: {status.get(name)}")

    if alarm_data is not None:
        messages = alarm_data.get("messages", [])
        lines.append(f"Alarm Messages: {alarm_data.get('alarms', len(messages))}")
        for message in messages:
            lines.append(
                f"  {message.get('sourceTxt')}: {message.get('msgTxt')} [{message.get('rdate')}]"
            )

    return "\n".join(lines) + "\n"
