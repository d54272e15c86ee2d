"""
Heater Service

WebSocket client for the pool heater and its duty-cycle accounting.
"""

from .client import HeaterClient
from .duty import DutyCycle, HeaterDutyTracker

__all__ = [
    "HeaterClient",
    "HeaterDutyTracker",
    "DutyCycle",
]
