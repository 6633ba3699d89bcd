"""Sortable byte encodings for indexed primitives.

Numeric values are encoded so that unsigned byte order matches numeric order:
integers are offset by their sign bit, floating point values are first mapped
to sortable integers (the IEEE bits with the magnitude flipped for negatives).
Decoding is the exact inverse for the whole domain of each kind.
"""

from __future__ import annotations

from collections.abc import Callable
import struct
import sys
from typing import Any

from docs_search_mapping.mapping.definition import ValueKind


INT_MIN = -(2**31)
INT_MAX = 2**31 - 1
LONG_MIN = -(2**63)
LONG_MAX = 2**63 - 1
FLOAT_MAX = 3.4028234663852886e38
DOUBLE_MAX = sys.float_info.max

_INT_BIAS = 2**31
_LONG_BIAS = 2**63


def double_to_sortable_long(value: float) -> int:
    bits = struct.unpack(">q", struct.pack(">d", value))[0]
    return bits ^ ((bits >> 63) & 0x7FFFFFFFFFFFFFFF)


def sortable_long_to_double(encoded: int) -> float:
    bits = encoded ^ ((encoded >> 63) & 0x7FFFFFFFFFFFFFFF)
    return struct.unpack(">d", struct.pack(">q", bits))[0]


def float_to_sortable_int(value: float) -> int:
    bits = struct.unpack(">i", struct.pack(">f", value))[0]
    return bits ^ ((bits >> 31) & 0x7FFFFFFF)


def sortable_int_to_float(encoded: int) -> float:
    bits = encoded ^ ((encoded >> 31) & 0x7FFFFFFF)
    return struct.unpack(">f", struct.pack(">i", bits))[0]


def encode_int(value: int) -> bytes:
    return struct.pack(">I", value + _INT_BIAS)


def decode_int(raw: bytes) -> int:
    return struct.unpack(">I", raw)[0] - _INT_BIAS


def encode_long(value: int) -> bytes:
    return struct.pack(">Q", value + _LONG_BIAS)


def decode_long(raw: bytes) -> int:
    return struct.unpack(">Q", raw)[0] - _LONG_BIAS


def encode_float(value: float) -> bytes:
    return encode_int(float_to_sortable_int(value))


def decode_float(raw: bytes) -> float:
    return sortable_int_to_float(decode_int(raw))


def encode_double(value: float) -> bytes:
    return encode_long(double_to_sortable_long(value))


def decode_double(raw: bytes) -> float:
    return sortable_long_to_double(decode_long(raw))


def encode_geo(point: tuple[float, float]) -> bytes:
    latitude, longitude = point
    return encode_double(latitude) + encode_double(longitude)


def decode_geo(raw: bytes) -> tuple[float, float]:
    if len(raw) != 16:
        raise struct.error("geo point encoding must be 16 bytes")
    return decode_double(raw[:8]), decode_double(raw[8:])


def encode_text(value: str) -> bytes:
    return value.encode("utf-8")


def decode_text(raw: bytes) -> str:
    return raw.decode("utf-8")


_CODECS: dict[ValueKind, tuple[Callable[[Any], bytes], Callable[[bytes], Any]]] = {
    ValueKind.TEXT: (encode_text, decode_text),
    ValueKind.STRING: (encode_text, decode_text),
    ValueKind.INTEGER: (encode_int, decode_int),
    ValueKind.LONG: (encode_long, decode_long),
    ValueKind.FLOAT: (encode_float, decode_float),
    ValueKind.DOUBLE: (encode_double, decode_double),
    ValueKind.GEO_POINT: (encode_geo, decode_geo),
}


def encode(kind: ValueKind, value: Any) -> bytes:
    """Encode an already converted value of the given kind."""
    encoder, _ = _CODECS[kind]
    return encoder(value)


def decode(kind: ValueKind, raw: bytes | None) -> Any:
    """Best-effort inverse of ``encode``: None for missing or unconvertible input."""
    if raw is None:
        return None
    _, decoder = _CODECS[kind]
    try:
        return decoder(bytes(raw))
    except (struct.error, UnicodeDecodeError, TypeError, ValueError):
        return None


def sortable_long(kind: ValueKind, value: int | float) -> int:
    """Numeric doc-value representation: a signed 64-bit integer preserving order."""
    if kind in (ValueKind.INTEGER, ValueKind.LONG):
        return int(value)
    if kind is ValueKind.FLOAT:
        return float_to_sortable_int(value)
    if kind is ValueKind.DOUBLE:
        return double_to_sortable_long(value)
    raise ValueError(f"No sortable numeric representation for {kind.value}")


def from_sortable_long(kind: ValueKind, encoded: int) -> int | float:
    if kind in (ValueKind.INTEGER, ValueKind.LONG):
        return encoded
    if kind is ValueKind.FLOAT:
        return sortable_int_to_float(encoded)
    if kind is ValueKind.DOUBLE:
        return sortable_long_to_double(encoded)
    raise ValueError(f"No sortable numeric representation for {kind.value}")


def numeric_bounds(kind: ValueKind) -> tuple[int | float, int | float]:
    """Minimum and maximum value of a numeric kind, used as open range sentinels."""
    if kind is ValueKind.INTEGER:
        return INT_MIN, INT_MAX
    if kind is ValueKind.LONG:
        return LONG_MIN, LONG_MAX
    if kind is ValueKind.FLOAT:
        return -FLOAT_MAX, FLOAT_MAX
    if kind is ValueKind.DOUBLE:
        return -DOUBLE_MAX, DOUBLE_MAX
    raise ValueError(f"{kind.value} is not a numeric kind")
