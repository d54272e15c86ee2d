"""
Async Modbus Client

Wrapper around pymodbus for the chemical controller's Modbus TCP link,
with decoding of the controller's register formats.
"""

import asyncio
import math
import struct
from dataclasses import dataclass

from pymodbus.client import AsyncModbusTcpClient
from pymodbus.exceptions import ModbusException

from bsmon.common.fields import FieldSpec, FloatField, TextField, BitmaskField, decode_bits
from bsmon.common.logging_setup import get_service_logger

logger = get_service_logger("device.modbus")


@dataclass
class ReadResult:
    """Result of a field read operation"""
    success: bool
    value: float | str | None = None
    raw_registers: list[int] | None = None
    error: str | None = None
    is_connection_error: bool = False


class ModbusClient:
    """
    Async Modbus TCP client for the chemical controller.

    Handles:
    - Modbus TCP connection lifecycle
    - float32 values (big-endian, high word first)
    - text values (byte-swapped 16-bit registers, null terminated)
    - bitmask values decoded into label lists
    """

    def __init__(
        self,
        host: str,
        port: int = 502,
        slave_id: int = 1,
        timeout: float = 3.0,
    ):
        self.host = host
        self.port = port
        self.slave_id = slave_id
        self.timeout = timeout

        self._client: AsyncModbusTcpClient | None = None
        self._lock = asyncio.Lock()
        self._connected = False

    @property
    def is_connected(self) -> bool:
        if self._client is not None and not self._client.connected:
            return False
        return self._connected and self._client is not None

    async def connect(self) -> bool:
        """Establish connection to Modbus device"""
        async with self._lock:
            if self._connected:
                return True

            try:
                self._client = AsyncModbusTcpClient(
                    host=self.host,
                    port=self.port,
                    timeout=self.timeout,
                    retries=0,
                )

                await self._client.connect()
                self._connected = self._client.connected

                if self._connected:
                    logger.debug(f"Connected to Modbus device at {self.host}:{self.port}")
                else:
                    logger.warning(f"Failed to connect to Modbus device at {self.host}:{self.port}")

                return self._connected

            except Exception as e:
                logger.error(f"Connection error to {self.host}:{self.port}: {e}")
                self._connected = False
                return False

    async def disconnect(self) -> None:
        """Close connection"""
        async with self._lock:
            if self._client:
                self._client.close()
                self._client = None
            self._connected = False
            logger.debug(f"Disconnected from {self.host}:{self.port}")

    async def _read_registers(self, address: int, count: int) -> list[int]:
        """Read raw holding registers; raises on any failure"""
        if not self.is_connected:
            raise ConnectionError(f"Not connected to {self.host}:{self.port}")

        response = await self._client.read_holding_registers(
            address=address,
            count=count,
            device_id=self.slave_id,
        )
        if response.isError():
            raise ModbusException(f"Modbus error: {response}")
        return list(response.registers)

    async def read_field(self, spec: FieldSpec) -> ReadResult:
        """
        Read and decode one field.

        Args:
            spec: Field definition from the registry

        Returns:
            ReadResult with the decoded value
        """
        try:
            registers = await self._read_registers(spec.address, spec.kind.register_count)
        except ModbusException as e:
            return ReadResult(success=False, error=f"Modbus exception: {e}")
        except asyncio.TimeoutError:
            return ReadResult(success=False, error="Read timeout", is_connection_error=True)
        except (ConnectionError, OSError) as e:
            return ReadResult(success=False, error=str(e), is_connection_error=True)

        value = decode_registers(registers, spec)
        if value is None:
            return ReadResult(
                success=False,
                raw_registers=registers,
                error=f"Invalid value for {spec.name}: {registers}",
            )

        return ReadResult(success=True, value=value, raw_registers=registers)


def decode_registers(registers: list[int], spec: FieldSpec) -> float | str | None:
    """Convert raw registers to the field's typed value"""
    kind = spec.kind
    if len(registers) < kind.register_count:
        return None

    try:
        if isinstance(kind, FloatField):
            packed = struct.pack(">HH", registers[0], registers[1])
            value = struct.unpack(">f", packed)[0]
            if math.isnan(value) or math.isinf(value):
                return None
            return value

        if isinstance(kind, TextField):
            # Each register holds two characters, low byte first
            raw_bytes = b"".join(reg.to_bytes(2, byteorder="little") for reg in registers)
            end = raw_bytes.find(b"\x00")
            if end == -1:
                end = len(raw_bytes)
            return raw_bytes[:end].decode("latin-1")

        if isinstance(kind, BitmaskField):
            if kind.width == 32:
                raw = (registers[0] << 16) | registers[1]
            else:
                raw = registers[0]
            return decode_bits(raw, kind.labels)

    except (struct.error, OverflowError) as e:
        logger.warning(f"Error converting registers for {spec.name}: {e}")

    return None
