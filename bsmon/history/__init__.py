"""
History - range queries over the monthly log files
"""

from .cache import CacheValidator
from .metrics import heater_duty_cycle, heater_uptime, sample_uptime
from .query import (
    BucketPolicy,
    HistoricalQueryEngine,
    QueryResult,
    policy_for_range,
)

__all__ = [
    "HistoricalQueryEngine",
    "QueryResult",
    "BucketPolicy",
    "policy_for_range",
    "CacheValidator",
    "heater_duty_cycle",
    "heater_uptime",
    "sample_uptime",
]
