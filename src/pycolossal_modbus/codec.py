"""
Register codec: pure functions mapping holding-register words to typed tag values.

Byte order is fixed, never the host's: a REAL occupies two consecutive registers,
the first register is the high word, and each word is big-endian on the wire
(Modbus "ABCD" order). The 32-bit pattern is reinterpreted as IEEE-754 binary32.
"""

import math
import struct
from decimal import Decimal
from typing import Sequence

from .types import BooleanValue, ChannelType, IntegerValue, RealValue, TagValue

_WORD_MAX = 0xFFFF


def _check_word(word: int) -> int:
    if not 0 <= word <= _WORD_MAX:
        raise ValueError(f"register word out of range 0-65535: {word}")
    return word


def decode_integer(word: int) -> IntegerValue:
    """Identity mapping of the first register of a one-register read."""
    return IntegerValue(_check_word(word))


def decode_real(word0: int, word1: int) -> RealValue:
    """Concatenate word0 (high) and word1 (low) and reinterpret as big-endian binary32."""
    packed = struct.pack(">HH", _check_word(word0), _check_word(word1))
    return RealValue(struct.unpack(">f", packed)[0])


def encode_real(value: float) -> tuple[int, int]:
    """Inverse of decode_real: split a binary32 value into (high word, low word)."""
    word0, word1 = struct.unpack(">HH", struct.pack(">f", value))
    return word0, word1


def decode_coil(word: int) -> BooleanValue:
    """A coil mapped onto a holding register: any non-zero word is True."""
    return BooleanValue(_check_word(word) != 0)


def register_count(channel_type: ChannelType) -> int:
    """Number of consecutive holding registers read for a channel type."""
    if channel_type == ChannelType.INTEGER:
        return 1
    if channel_type == ChannelType.REAL:
        return 2
    if channel_type == ChannelType.COIL:
        return 1
    raise ValueError(f"Unknown channel type: {channel_type!r}")


def decode(channel_type: ChannelType, registers: Sequence[int]) -> TagValue:
    """Decode a register read for the given channel type."""
    needed = register_count(channel_type)
    if len(registers) < needed:
        raise ValueError(f"{channel_type} needs {needed} registers, got {len(registers)}")
    if channel_type == ChannelType.INTEGER:
        return decode_integer(registers[0])
    if channel_type == ChannelType.REAL:
        return decode_real(registers[0], registers[1])
    if channel_type == ChannelType.COIL:
        return decode_coil(registers[0])
    raise ValueError(f"Unknown channel type: {channel_type!r}")


def _shortest_real_text(value: float) -> str:
    # Fewest significant digits that still round-trip the binary32 pattern.
    target = struct.pack(">f", value)
    for digits in range(1, 10):
        text = f"{value:.{digits}g}"
        if struct.pack(">f", float(text)) == target:
            return text
    return repr(value)


def format_number(value: int | float, *, real: bool = False) -> str:
    """
    Format a number as a plain decimal literal for textual substitution.

    No exponent notation. Reals use the shortest text that reproduces the binary32
    value. Negative numbers are parenthesised so that substitution cannot change
    operator precedence (e.g. ``MB1 ** 2`` with MB1 = -3).
    """
    if isinstance(value, bool):
        raise TypeError("booleans are not numbers here")
    if isinstance(value, float) and not math.isfinite(value):
        raise ValueError(f"non-finite value: {value!r}")
    if isinstance(value, int):
        text = str(value)
    else:
        raw = _shortest_real_text(value) if real else repr(value)
        text = format(Decimal(raw), "f")
        if "." not in text:
            text += ".0"
    if text.startswith("-"):
        return f"({text})"
    return text
