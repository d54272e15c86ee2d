"""
Cache Validator

Computes a validation tag for a query range. Equal tags for the same
range guarantee equal query output; a tag may change without the output
changing (e.g. an append outside the range), never the other way round.
"""

import hashlib
import json
from datetime import datetime

from bsmon.common.fields import CANONICAL_HEADER
from .query import HistoricalQueryEngine, policy_for_range


class CacheValidator:
    """Tag = hash of bucket policy, header and per-file (name, mtime, size)"""

    def __init__(self, engine: HistoricalQueryEngine):
        self.engine = engine

    def file_signature(self, start: datetime, end: datetime) -> list[tuple[str, int, int]]:
        signature = []
        for path in self.engine.files_for_range(start, end):
            try:
                stat = path.stat()
            except FileNotFoundError:
                continue
            signature.append((path.name, stat.st_mtime_ns, stat.st_size))
        return signature

    def compute_tag(self, start: datetime, end: datetime) -> str:
        content = {
            "policy": policy_for_range(start, end).name,
            "header": list(CANONICAL_HEADER),
            "files": self.file_signature(start, end),
        }
        content_str = json.dumps(content, sort_keys=True)
        return hashlib.md5(content_str.encode()).hexdigest()
