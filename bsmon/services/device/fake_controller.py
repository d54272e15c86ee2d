"""
Fake Chemical Controller

Serves fixed register values through the same interface as ModbusClient.
Used for development when the real chemical controller is offline
(controller.use_fake_controller in the config file).

Responses are keyed by the start address of each field in the registry,
since the text fields sit one address early and overlap the float words
before them.
"""

import struct

from bsmon.common.fields import FIELDS, FloatField, TextField, BitmaskField
from bsmon.common.logging_setup import get_service_logger
from .modbus_client import ModbusClient

logger = get_service_logger("device.fake")

DEFAULT_VALUES: dict[str, float | str | int] = {
    "System": "FAKE-CONTROLLER",
    "ClValue": 1.5,
    "ClUnit": "ppm",
    "ClSet": 1.0,
    "ClYout": 5.0,
    "PhValue": 7.2,
    "PhUnit": "pH",
    "PhSet": 7.4,
    "PhYout": 3.0,
    "ORPValue": 750.0,
    "ORPUnit": "mV",
    "TempValue": 26.5,
    "TempUnit": "°C",
    "Alarms": 0,
    "ClMode": 2,  # Auto
    "PhMode": 2,
    "ClError": 0,
    "PhError": 0,
    "ORPError": 0,
    "TempError": 0,
}


def float_to_registers(value: float) -> list[int]:
    """Convert a float32 to two big-endian 16-bit register values"""
    high_word, low_word = struct.unpack(">HH", struct.pack(">f", value))
    return [high_word, low_word]


def text_to_registers(text: str, length: int) -> list[int]:
    """Pack text into byte-swapped 16-bit registers, null padded"""
    raw = text.encode("latin-1")[:length].ljust(length, b"\x00")
    return [int.from_bytes(raw[i:i + 2], byteorder="little") for i in range(0, length, 2)]


def int_to_registers(value: int, width: int) -> list[int]:
    if width == 32:
        return [(value >> 16) & 0xFFFF, value & 0xFFFF]
    return [value & 0xFFFF]


class FakeControllerClient(ModbusClient):
    """In-memory stand-in for the chemical controller"""

    def __init__(self, values: dict[str, float | str | int] | None = None):
        super().__init__(host="fake", port=0)
        self._blocks: dict[int, list[int]] = {}
        self._values = dict(DEFAULT_VALUES)
        if values:
            self._values.update(values)
        self._update_registers()

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> bool:
        self._connected = True
        logger.info("Fake controller connected")
        return True

    async def disconnect(self) -> None:
        self._connected = False

    def set_value(self, name: str, value: float | str | int) -> None:
        """Change a simulated field value"""
        self._values[name] = value
        self._update_registers()

    def _update_registers(self) -> None:
        """Rebuild the per-field responses from the current values"""
        self._blocks.clear()
        for name, value in self._values.items():
            spec = FIELDS[name]
            kind = spec.kind
            if isinstance(kind, FloatField):
                words = float_to_registers(float(value))
            elif isinstance(kind, TextField):
                words = text_to_registers(str(value), kind.length)
            elif isinstance(kind, BitmaskField):
                words = int_to_registers(int(value), kind.width)
            else:
                continue
            self._blocks[spec.address] = words

    async def _read_registers(self, address: int, count: int) -> list[int]:
        if not self._connected:
            raise ConnectionError("Fake controller not connected")
        # Unknown addresses read as 0
        words = self._blocks.get(address, [])[:count]
        return words + [0] * (count - len(words))
