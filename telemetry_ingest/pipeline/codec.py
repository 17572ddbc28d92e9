"""
Modbus register codec: reassemble 16-bit register words into one integer.

Each register word is serialised big-endian (2 bytes), the flat byte sequence
is re-ordered according to the read's endianness, and the result is read back
as an unsigned big-endian integer. Python integers are unbounded, so 64-bit
values stay exact; conversion to float only happens later, at calibration.

Byte-order schemes for a 4-byte value ``A B C D`` as delivered on the wire:

    ABCD / NONE  ->  A B C D   (identity)
    CDAB         ->  C D A B   (swap adjacent 16-bit words)
    BADC         ->  B A D C   (swap bytes inside each word)
    DCBA         ->  D C B A   (full byte reversal)

Every transform is its own inverse, which ``encode_registers`` relies on.

This module is pure: no I/O, no clock, no logging.

CHANGELOG:
- 2026-10-16: Accept hex/decimal string register words from older firmware
- 2026-10-16: Initial creation

TODO:
- None
"""

from __future__ import annotations

from collections.abc import Sequence

from telemetry_ingest.errors import (
    InsufficientRegistersError,
    RegisterValueError,
    UnsupportedBitWidthError,
)
from telemetry_ingest.models import SUPPORTED_BIT_WIDTHS, Endianness

_WORD_MAX = 0xFFFF

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def required_word_count(bits_to_read: int) -> int:
    """Return the number of 16-bit words needed for *bits_to_read* bits.

    Raises:
        UnsupportedBitWidthError: If the width is not 8, 16, 32 or 64.
    """
    if bits_to_read not in SUPPORTED_BIT_WIDTHS:
        raise UnsupportedBitWidthError(bits_to_read)
    return (bits_to_read + 15) // 16


def parse_register_word(value: int | str) -> int:
    """Normalise one register word to an int in 0..65535.

    Devices report words as integers; some older firmware sends them as
    strings, either ``"0x1A2B"`` hex or plain decimal.

    Raises:
        RegisterValueError: If the value is not an integer/string word or is
            outside the 16-bit range.
    """
    if isinstance(value, bool):
        raise RegisterValueError(value)
    if isinstance(value, str):
        text = value.strip()
        try:
            word = int(text, 16) if text.lower().startswith("0x") else int(text, 10)
        except ValueError:
            raise RegisterValueError(value) from None
    elif isinstance(value, int):
        word = value
    else:
        raise RegisterValueError(value)

    if word < 0 or word > _WORD_MAX:
        raise RegisterValueError(value, f"Register word out of range 0..65535: {value!r}")
    return word


def registers_to_hex(words: Sequence[int]) -> list[str]:
    """Render register words as ``0xABCD`` strings for the audit trail."""
    return [f"0x{word:04X}" for word in words]


def _words_to_bytes(words: Sequence[int]) -> bytes:
    return b"".join(word.to_bytes(2, "big") for word in words)


def _bytes_to_words(data: bytes) -> list[int]:
    return [int.from_bytes(data[i : i + 2], "big") for i in range(0, len(data), 2)]


def apply_byte_order(data: bytes, endianness: Endianness | str) -> bytes:
    """Re-order a flat big-endian word byte sequence per *endianness*.

    For CDAB an unpaired trailing word (single-register reads) is left in
    place.
    """
    order = Endianness(endianness)

    if order in (Endianness.ABCD, Endianness.NONE):
        return bytes(data)

    if order is Endianness.CDAB:
        out = bytearray(data)
        for i in range(0, len(data) - 3, 4):
            out[i : i + 2] = data[i + 2 : i + 4]
            out[i + 2 : i + 4] = data[i : i + 2]
        return bytes(out)

    if order is Endianness.BADC:
        out = bytearray(len(data))
        out[0::2] = data[1::2]
        out[1::2] = data[0::2]
        return bytes(out)

    # DCBA
    return bytes(reversed(data))


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def decode_registers(
    words: Sequence[int | str],
    bits_to_read: int,
    endianness: Endianness | str = Endianness.NONE,
) -> int:
    """Decode register words into one unsigned integer.

    Only the first ``ceil(bits_to_read / 16)`` words are used; any extra
    words are ignored.

    For ``bits_to_read == 8`` the result is the low byte of the first word
    *after* the byte-order transform.

    Args:
        words: Raw 16-bit register words in wire order.
        bits_to_read: Width of the value: 8, 16, 32 or 64.
        endianness: Byte-order scheme of the read.

    Returns:
        int: The reassembled unsigned value.

    Raises:
        UnsupportedBitWidthError: If *bits_to_read* is not supported.
        InsufficientRegistersError: If fewer words than required are given.
        RegisterValueError: If a word is not a valid 16-bit value.
    """
    required = required_word_count(bits_to_read)
    if len(words) < required:
        raise InsufficientRegistersError(bits_to_read, required, len(words))

    parsed = [parse_register_word(word) for word in words[:required]]
    ordered = apply_byte_order(_words_to_bytes(parsed), endianness)

    if bits_to_read == 8:
        return ordered[1]
    return int.from_bytes(ordered, "big")


def encode_registers(
    value: int,
    bits_to_read: int,
    endianness: Endianness | str = Endianness.NONE,
) -> list[int]:
    """Encode an unsigned integer into register words (inverse of decode).

    Raises:
        UnsupportedBitWidthError: If *bits_to_read* is not supported.
        ValueError: If *value* does not fit in *bits_to_read* bits.
    """
    required = required_word_count(bits_to_read)
    if value < 0 or value >= 1 << bits_to_read:
        raise ValueError(f"Value {value} does not fit in {bits_to_read} bits")

    if bits_to_read == 8:
        ordered = bytes([0, value])
    else:
        ordered = value.to_bytes(required * 2, "big")
    return _bytes_to_words(apply_byte_order(ordered, endianness))
