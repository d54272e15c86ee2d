"""
Logging Service - sampling accumulator and monthly CSV log writer
"""

from .accumulator import SampleAccumulator
from .log_writer import LogWriter
from .service import LoggingService

__all__ = ["SampleAccumulator", "LogWriter", "LoggingService"]
