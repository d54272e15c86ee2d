"""
Device Service

Chemical controller access over Modbus TCP and the connection
supervisor shared by both device clients.
"""

from .fake_controller import FakeControllerClient
from .modbus_client import ModbusClient, ReadResult
from .source import ChemControllerSource, format_status_report
from .supervisor import ConnectionState, ConnectionSupervisor

__all__ = [
    "ModbusClient",
    "ReadResult",
    "FakeControllerClient",
    "ChemControllerSource",
    "format_status_report",
    "ConnectionSupervisor",
    "ConnectionState",
]
