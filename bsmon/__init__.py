"""
bsmon - pool chemistry and heater telemetry logger
"""

__version__ = "1.0.0"
