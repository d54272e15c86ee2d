"""
Field Registry

Static registry of the chemical controller's telemetry fields and the
columns of the monthly log files.

Each field has a decode kind (a closed set of variants resolved once at
import time) and an aggregation kind used when rows are combined into
coarser buckets.
"""

from dataclasses import dataclass
from enum import Enum


class Aggregation(str, Enum):
    """How a column is combined across rows"""
    AVERAGE = "average"
    SUM = "sum"


@dataclass(frozen=True)
class FloatField:
    """IEEE-754 float32 spread over two big-endian registers"""
    precision: int = 0

    register_count = 2


@dataclass(frozen=True)
class TextField:
    """Null-terminated latin-1 text with byte-swapped 16-bit registers"""
    length: int = 10

    @property
    def register_count(self) -> int:
        return self.length // 2


@dataclass(frozen=True)
class BitmaskField:
    """Unsigned 16/32-bit integer decoded into the labels of its set bits"""
    labels: tuple[str | None, ...]
    width: int = 16

    @property
    def register_count(self) -> int:
        return self.width // 16


FieldKind = FloatField | TextField | BitmaskField


@dataclass(frozen=True)
class FieldSpec:
    """One named telemetry value"""
    name: str
    register: int
    kind: FieldKind
    aggregation: Aggregation = Aggregation.AVERAGE

    @property
    def address(self) -> int:
        # Text registers start one address before the documented number
        if isinstance(self.kind, TextField):
            return self.register - 1
        return self.register

    @property
    def precision(self) -> int:
        if isinstance(self.kind, FloatField):
            return self.kind.precision
        return 0


MODE_BITS: tuple[str | None, ...] = (
    "Manual", "Auto", "Controller Aus", "Adaption running", None, "Controller stop",
    "Controller freeze", "Controller Yout=100%", None, None, None, "Eco mode switching",
    "Controller standby",
)
ERROR_BITS: tuple[str | None, ...] = (
    "Zero point calibration", "DPD calibration", "pH7 calibration", "phX calibration",
    "Error calibration eg. ORP", "Offset calibration", None, "Cell error",
    "Factory calibraiton error", None, None, "Setpoint error", "Limit error", "HOCL error",
    None, "Overfeed", "Auto tune error",
)
ALARM_BITS: tuple[str | None, ...] = (
    "1-Master", "2-Normal", "3-Normal", "4-Normal", "5-Normal", "6-Unknown",
    "7-Unknown", "8-Unknown",
)


def _registry(*specs: FieldSpec) -> dict[str, FieldSpec]:
    return {spec.name: spec for spec in specs}


# Register map of the chemical dosing controller
FIELDS: dict[str, FieldSpec] = _registry(
    FieldSpec("System", 1, TextField(20)),
    FieldSpec("ClValue", 100, FloatField(2)),
    FieldSpec("ClUnit", 102, TextField(10)),
    FieldSpec("ClSet", 111, FloatField(1)),
    FieldSpec("ClYout", 113, FloatField(2)),
    FieldSpec("PhValue", 115, FloatField(2)),
    FieldSpec("PhUnit", 117, TextField(10)),
    FieldSpec("PhSet", 126, FloatField(1)),
    FieldSpec("PhYout", 128, FloatField(1)),
    FieldSpec("ORPValue", 130, FloatField(0)),
    FieldSpec("ORPUnit", 132, TextField(10)),
    FieldSpec("TempValue", 160, FloatField(1)),
    FieldSpec("TempUnit", 162, TextField(10)),
    # Only alarm 1 is meaningful, 2-5 are always set
    FieldSpec("Alarms", 300, BitmaskField(ALARM_BITS, 16)),
    # ClMode stays 0 even under a low chlorine error
    FieldSpec("ClMode", 304, BitmaskField(MODE_BITS, 16)),
    FieldSpec("PhMode", 305, BitmaskField(MODE_BITS, 16)),
    FieldSpec("ClError", 310, BitmaskField(ERROR_BITS, 32)),
    FieldSpec("PhError", 314, BitmaskField(ERROR_BITS, 32)),
    FieldSpec("ORPError", 318, BitmaskField(ERROR_BITS, 32)),
    FieldSpec("TempError", 328, BitmaskField(ERROR_BITS, 32)),
)

# Fields averaged into every log row, in column order
LOGGED_FIELDS: tuple[str, ...] = (
    "ClValue", "PhValue", "ORPValue", "TempValue", "ClSet", "PhSet", "ClYout", "PhYout",
)

# Companion (heater) columns, in column order
HEATER_COLUMNS: tuple[str, ...] = ("HeaterOnSeconds", "setpoint", "waterTemp", "PentairSeconds")

TIME_COLUMN = "Time"

# Counters are totalled across rows, never averaged
SUMMED_COLUMNS: frozenset[str] = frozenset({
    "SuccessCount",
    "TimeoutCount",
    "HeaterOnSeconds",
    "PentairSeconds",
    "serviceUptimeSeconds",
})

CANONICAL_HEADER: tuple[str, ...] = (
    TIME_COLUMN,
    *LOGGED_FIELDS,
    "SuccessCount",
    "TimeoutCount",
    *HEATER_COLUMNS,
    "serviceUptimeSeconds",
)


def logged_field_specs() -> list[FieldSpec]:
    """Field specs of the averaged log columns"""
    return [FIELDS[name] for name in LOGGED_FIELDS]


def column_aggregation(column: str) -> Aggregation:
    return Aggregation.SUM if column in SUMMED_COLUMNS else Aggregation.AVERAGE


def column_precision(column: str) -> int:
    """Decimal places a column is written with"""
    spec = FIELDS.get(column)
    if spec is not None:
        return spec.precision
    return 0


def decode_bits(value: int, labels: tuple[str | None, ...]) -> str:
    """
    Decode a bitmask into the labels of its set bits.

    Zero decodes to "0"; bits without a label are ignored.

    Examples:
        decode_bits(2, MODE_BITS) -> "Auto"
        decode_bits(0b11, ALARM_BITS) -> "1-Master, 2-Normal"
    """
    if not value:
        return "0"

    out = []
    for i, label in enumerate(labels):
        if label and value & (1 << i):
            out.append(label)
    return ", ".join(out)


def format_value(value: float, precision: int) -> str:
    """Fixed-point formatting used for every numeric column"""
    return f"{value:.{precision}f}"


def log_file_name(year: int, month: int) -> str:
    """Monthly log file name; the month is not zero-padded"""
    return f"log-{year}-{month}.csv"
