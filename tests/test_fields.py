"""
Tests for the field registry and register decoding
"""

import asyncio

import pytest

from bsmon.common.fields import (
    ALARM_BITS,
    CANONICAL_HEADER,
    ERROR_BITS,
    FIELDS,
    MODE_BITS,
    Aggregation,
    column_aggregation,
    column_precision,
    decode_bits,
    format_value,
    log_file_name,
)
from bsmon.services.device.fake_controller import (
    FakeControllerClient,
    float_to_registers,
    int_to_registers,
    text_to_registers,
)
from bsmon.services.device.modbus_client import decode_registers


# ============================================================================
# Registry
# ============================================================================

def test_canonical_header_order():
    assert ",".join(CANONICAL_HEADER) == (
        "Time,ClValue,PhValue,ORPValue,TempValue,ClSet,PhSet,ClYout,PhYout,"
        "SuccessCount,TimeoutCount,HeaterOnSeconds,setpoint,waterTemp,"
        "PentairSeconds,serviceUptimeSeconds"
    )


def test_text_fields_start_one_address_early():
    assert FIELDS["ClUnit"].address == 101
    assert FIELDS["System"].address == 0
    assert FIELDS["ClValue"].address == 100


def test_register_counts():
    assert FIELDS["System"].kind.register_count == 10
    assert FIELDS["ClUnit"].kind.register_count == 5
    assert FIELDS["ClValue"].kind.register_count == 2
    assert FIELDS["ClMode"].kind.register_count == 1
    assert FIELDS["ClError"].kind.register_count == 2


def test_column_precision_and_aggregation():
    assert column_precision("ClValue") == 2
    assert column_precision("PhSet") == 1
    assert column_precision("ORPValue") == 0
    assert column_precision("waterTemp") == 0
    assert column_aggregation("TimeoutCount") == Aggregation.SUM
    assert column_aggregation("PentairSeconds") == Aggregation.SUM
    assert column_aggregation("ClValue") == Aggregation.AVERAGE
    assert column_aggregation("setpoint") == Aggregation.AVERAGE


def test_format_value_fixed_point():
    assert format_value(3.0, 2) == "3.00"
    assert format_value(749.6, 0) == "750"


def test_log_file_name_month_not_padded():
    assert log_file_name(2024, 3) == "log-2024-3.csv"
    assert log_file_name(2024, 11) == "log-2024-11.csv"


# ============================================================================
# Bitmask labels
# ============================================================================

def test_decode_bits_zero():
    assert decode_bits(0, MODE_BITS) == "0"


def test_decode_bits_single_and_multiple():
    assert decode_bits(2, MODE_BITS) == "Auto"
    assert decode_bits(0b11, ALARM_BITS) == "1-Master, 2-Normal"


def test_decode_bits_ignores_unlabelled_bits():
    # Bit 4 has no mode label
    assert decode_bits(0b10010, MODE_BITS) == "Auto"


# ============================================================================
# Register decoding
# ============================================================================

def test_decode_float():
    value = decode_registers(float_to_registers(1.5), FIELDS["ClValue"])
    assert value == pytest.approx(1.5)


def test_decode_float_nan_is_invalid():
    assert decode_registers([0x7FC0, 0x0000], FIELDS["ClValue"]) is None


def test_decode_text_byte_swapped():
    registers = text_to_registers("ppm", 10)
    assert decode_registers(registers, FIELDS["ClUnit"]) == "ppm"


def test_decode_text_without_terminator():
    registers = text_to_registers("ABCDEFGHIJ", 10)
    assert decode_registers(registers, FIELDS["ClUnit"]) == "ABCDEFGHIJ"


def test_decode_bitmask16():
    assert decode_registers([0b11], FIELDS["Alarms"]) == "1-Master, 2-Normal"


def test_decode_bitmask32_uses_both_words():
    assert decode_registers(int_to_registers(1 << 7, 32), FIELDS["ClError"]) == ERROR_BITS[7]
    assert decode_registers(int_to_registers(1 << 16, 32), FIELDS["ClError"]) == "Auto tune error"


def test_decode_short_response_is_invalid():
    assert decode_registers([0x3FC0], FIELDS["ClValue"]) is None


# ============================================================================
# Fake controller
# ============================================================================

def test_fake_controller_serves_every_field():
    async def read_all():
        client = FakeControllerClient()
        await client.connect()
        return {name: await client.read_field(spec) for name, spec in FIELDS.items()}

    results = asyncio.run(read_all())

    assert all(result.success for result in results.values())
    assert results["System"].value == "FAKE-CONTROLLER"
    assert results["ClValue"].value == pytest.approx(1.5)
    assert results["ClUnit"].value == "ppm"
    assert results["ClMode"].value == "Auto"
    assert results["ClError"].value == "0"


def test_fake_controller_set_value():
    async def read_ph():
        client = FakeControllerClient()
        await client.connect()
        client.set_value("PhValue", 7.6)
        return await client.read_field(FIELDS["PhValue"])

    assert asyncio.run(read_ph()).value == pytest.approx(7.6)


def test_fake_controller_read_when_disconnected():
    async def read():
        client = FakeControllerClient()
        return await client.read_field(FIELDS["ClValue"])

    result = asyncio.run(read())
    assert not result.success
    assert result.is_connection_error
