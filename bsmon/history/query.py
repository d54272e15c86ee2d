"""
Historical Query Engine

Rebuilds a time range from the monthly CSV logs.

Resolution is reduced for long ranges so the response size stays bounded
no matter how often the monitor polls:

    range <= 72 hours  -> raw rows as written
    range <= 7 days    -> 30 minute buckets
    range <= 30 days   -> 2 hour buckets
    longer             -> 24 hour buckets

Every file is read with its own header as schema, so files written
before a column was added still line up with the current header.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Iterable, Iterator

from bsmon.common.exceptions import MalformedHistoryError
from bsmon.common.fields import (
    CANONICAL_HEADER,
    TIME_COLUMN,
    Aggregation,
    column_aggregation,
    column_precision,
    format_value,
    log_file_name,
)
from bsmon.common.logging_setup import get_service_logger
from bsmon.common.timestamp import bucket_start, iter_months, parse_log_time

logger = get_service_logger("history")

HOUR_S = 60 * 60
DAY_S = 24 * HOUR_S


@dataclass(frozen=True)
class BucketPolicy:
    """Bucket size chosen for a query range (0 = raw rows)"""
    name: str
    bucket_seconds: int
    max_range_s: float | None

    @property
    def is_raw(self) -> bool:
        return self.bucket_seconds == 0


RAW = BucketPolicy("raw", 0, 72 * HOUR_S)
THIRTY_MINUTES = BucketPolicy("30m", 30 * 60, 7 * DAY_S)
TWO_HOURS = BucketPolicy("2h", 2 * HOUR_S, 30 * DAY_S)
ONE_DAY = BucketPolicy("24h", DAY_S, None)

POLICIES = (RAW, THIRTY_MINUTES, TWO_HOURS, ONE_DAY)


def policy_for_range(start: datetime, end: datetime) -> BucketPolicy:
    """Bucketing depends only on the range length, never on data density"""
    range_s = (end - start).total_seconds()
    for policy in POLICIES:
        if policy.max_range_s is None or range_s <= policy.max_range_s:
            return policy
    return ONE_DAY


@dataclass
class LogRow:
    """One stored row, keyed by the column names of its file"""
    timestamp: datetime
    values: dict[str, str]
    cells: list[str]
    verbatim: bool  # file header is the canonical header

    def canonical_cells(self) -> list[str]:
        if self.verbatim:
            return self.cells
        return [self.values.get(column, "") for column in CANONICAL_HEADER]


@dataclass
class QueryResult:
    """Rows in canonical column order, header first when rendered"""
    policy: BucketPolicy
    rows: list[list[str]] = field(default_factory=list)
    header: tuple[str, ...] = CANONICAL_HEADER
    skipped_rows: int = 0

    def to_csv(self) -> str:
        lines = [",".join(self.header)]
        lines.extend(",".join(row) for row in self.rows)
        return "\n".join(lines) + "\n"

    def records(self) -> list[dict[str, str]]:
        """Rows as column -> text mappings"""
        return [
            {column: row[i] if i < len(row) else "" for i, column in enumerate(self.header)}
            for row in self.rows
        ]


class _Bucket:
    """Running sum and count per column for one open bucket"""

    def __init__(self, start: datetime):
        self.start = start
        self.last_time = ""
        self.sums: dict[str, float] = {}
        self.counts: dict[str, int] = {}

    def add(self, row: LogRow) -> None:
        self.last_time = row.values.get(TIME_COLUMN, "")
        for column in CANONICAL_HEADER[1:]:
            text = row.values.get(column, "").strip()
            if not text:
                continue
            try:
                value = float(text)
            except ValueError:
                continue
            self.sums[column] = self.sums.get(column, 0.0) + value
            self.counts[column] = self.counts.get(column, 0) + 1

    def finalize(self) -> list[str]:
        cells = [self.last_time]
        for column in CANONICAL_HEADER[1:]:
            count = self.counts.get(column, 0)
            if count == 0:
                # Absent from every row, never synthesized
                cells.append("")
            elif column_aggregation(column) == Aggregation.SUM:
                cells.append(format_value(self.sums[column], 0))
            else:
                cells.append(format_value(self.sums[column] / count, column_precision(column)))
        return cells


def bucket_rows(rows: Iterable[LogRow], bucket_seconds: int) -> list[list[str]]:
    """
    Combine chronologically ordered rows into buckets.

    A row joins the open bucket when it has the same bucket start;
    otherwise the open bucket is emitted and a new one opened.
    """
    out: list[list[str]] = []
    current: _Bucket | None = None

    for row in rows:
        start = bucket_start(row.timestamp, bucket_seconds)
        if current is None or current.start != start:
            if current is not None:
                out.append(current.finalize())
            current = _Bucket(start)
        current.add(row)

    if current is not None:
        out.append(current.finalize())
    return out


class HistoricalQueryEngine:
    """Read-only access to the monthly log files in log_dir"""

    def __init__(self, log_dir: str | Path):
        self.log_dir = Path(log_dir)

    def files_for_range(self, start: datetime, end: datetime) -> list[Path]:
        """Existing log files overlapping the range, oldest first"""
        paths = []
        for year, month in iter_months(start, end):
            path = self.log_dir / log_file_name(year, month)
            if path.is_file():
                paths.append(path)
        return paths

    def query(self, start: datetime, end: datetime) -> QueryResult:
        """
        Rows with start <= Time <= end.

        Raises:
            ValueError: if end is before start
        """
        if end < start:
            raise ValueError(f"Query end {end} is before start {start}")

        policy = policy_for_range(start, end)
        result = QueryResult(policy=policy)

        def in_range() -> Iterator[LogRow]:
            for path in self.files_for_range(start, end):
                for row in self._read_file(path, result):
                    if start <= row.timestamp <= end:
                        yield row

        if policy.is_raw:
            result.rows = [row.canonical_cells() for row in in_range()]
        else:
            result.rows = bucket_rows(in_range(), policy.bucket_seconds)

        logger.debug(
            f"Query {start} .. {end}: {len(result.rows)} rows ({policy.name}), "
            f"{result.skipped_rows} skipped"
        )
        return result

    def query_csv(self, start: datetime, end: datetime) -> str:
        return self.query(start, end).to_csv()

    def last_24_hours(self, now: datetime | None = None) -> QueryResult:
        now = now or datetime.now()
        return self.query(now - timedelta(hours=24), now)

    def _read_file(self, path: Path, result: QueryResult) -> Iterator[LogRow]:
        """Parse one log file, skipping malformed rows with a warning"""
        with open(path, "r", encoding="utf-8", newline="") as f:
            header = tuple(f.readline().rstrip("\r\n").split(","))
            verbatim = header == CANONICAL_HEADER
            # Rows may outgrow a header that predates newer trailing columns
            extendable = CANONICAL_HEADER[:len(header)] == header

            for line_number, line in enumerate(f, start=2):
                line = line.rstrip("\r\n")
                if not line.strip():
                    continue
                try:
                    yield self._parse_row(line, header, verbatim, extendable, path, line_number)
                except MalformedHistoryError as e:
                    result.skipped_rows += 1
                    logger.warning(e.message, extra={"path": str(path), "line": line_number})

    @staticmethod
    def _parse_row(
        line: str,
        header: tuple[str, ...],
        verbatim: bool,
        extendable: bool,
        path: Path,
        line_number: int,
    ) -> LogRow:
        cells = line.split(",")

        if len(cells) > len(header):
            if not extendable or len(cells) > len(CANONICAL_HEADER):
                raise MalformedHistoryError(
                    f"found {len(cells)} columns, but only headers for {len(header)}",
                    path=str(path),
                    line_number=line_number,
                )
            columns = CANONICAL_HEADER[:len(cells)]
        else:
            columns = header[:len(cells)]

        try:
            timestamp = parse_log_time(cells[0])
        except ValueError:
            raise MalformedHistoryError(
                f"unparsable timestamp {cells[0]!r}",
                path=str(path),
                line_number=line_number,
            )

        return LogRow(
            timestamp=timestamp,
            values=dict(zip(columns, cells)),
            cells=cells,
            verbatim=verbatim,
        )
