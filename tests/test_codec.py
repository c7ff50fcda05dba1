"""Tests for register decoding and number formatting."""

import math
import struct

import pytest

from pycolossal_modbus.codec import (
    decode,
    decode_coil,
    decode_integer,
    decode_real,
    encode_real,
    format_number,
    register_count,
)
from pycolossal_modbus.types import BooleanValue, ChannelType, IntegerValue, RealValue


def test_decode_integer_is_identity() -> None:
    assert decode_integer(0) == IntegerValue(0)
    assert decode_integer(1234) == IntegerValue(1234)
    assert decode_integer(65535) == IntegerValue(65535)


def test_decode_integer_rejects_out_of_range() -> None:
    with pytest.raises(ValueError):
        decode_integer(65536)
    with pytest.raises(ValueError):
        decode_integer(-1)


@pytest.mark.parametrize(
    ("words", "expected"),
    [
        ((0x4040, 0x0000), 3.0),
        ((0x3F80, 0x0000), 1.0),
        ((0xC2F6, 0xE979), -123.456),
        ((0x0000, 0x0000), 0.0),
    ],
)
def test_decode_real_high_word_first_big_endian(words: tuple[int, int], expected: float) -> None:
    value = decode_real(*words)
    assert isinstance(value, RealValue)
    assert value.value == pytest.approx(expected, rel=1e-6)


def test_decode_real_does_not_depend_on_word_swap() -> None:
    # Swapping the words must give a different value: order is fixed, not native.
    assert decode_real(0x4040, 0x0000).value == 3.0
    assert decode_real(0x0000, 0x4040).value != 3.0


@pytest.mark.parametrize(
    "words",
    [(0x0000, 0x0001), (0x1234, 0x5678), (0x4049, 0x0FDB), (0xBF80, 0x0000), (0x7F7F, 0xFFFF), (0x0080, 0x0000)],
)
def test_real_round_trip_preserves_bit_pattern(words: tuple[int, int]) -> None:
    assert encode_real(decode_real(*words).value) == words


def test_decode_real_special_values() -> None:
    assert math.isinf(decode_real(0x7F80, 0x0000).value)
    assert math.isnan(decode_real(0x7FC0, 0x0000).value)


def test_decode_coil_nonzero_is_true() -> None:
    assert decode_coil(0) == BooleanValue(False)
    assert decode_coil(1) == BooleanValue(True)
    assert decode_coil(0xFF00) == BooleanValue(True)


def test_register_count_by_type() -> None:
    assert register_count(ChannelType.INTEGER) == 1
    assert register_count(ChannelType.REAL) == 2
    assert register_count(ChannelType.COIL) == 1


def test_decode_dispatch_and_short_response() -> None:
    assert decode(ChannelType.INTEGER, [7]) == IntegerValue(7)
    assert decode(ChannelType.REAL, [0x4040, 0]) == RealValue(3.0)
    assert decode(ChannelType.COIL, [1]) == BooleanValue(True)
    with pytest.raises(ValueError, match="needs 2 registers"):
        decode(ChannelType.REAL, [0x4040])


@pytest.mark.parametrize(
    ("value", "real", "expected"),
    [
        (3, False, "3"),
        (0, False, "0"),
        (3.0, True, "3.0"),
        (-3.0, True, "(-3.0)"),
        (2.5, True, "2.5"),
        (1e-05, False, "0.00001"),
        (1e20, False, "100000000000000000000.0"),
    ],
)
def test_format_number_plain_decimal(value: float, real: bool, expected: str) -> None:
    assert format_number(value, real=real) == expected


def test_format_number_shortest_binary32_text() -> None:
    as_f32 = struct.unpack(">f", struct.pack(">f", 0.1))[0]
    assert format_number(as_f32, real=True) == "0.1"


def test_format_number_rejects_non_finite() -> None:
    with pytest.raises(ValueError):
        format_number(float("nan"))
    with pytest.raises(ValueError):
        format_number(float("inf"), real=True)
