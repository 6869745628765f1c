"""Payload decoders keyed by the declared GDSII data type.

Data types:
  0 no data, 1 bit array (2 bytes), 2 int16, 3 int32,
  4 real32 / 5 real64 (excess-64, base-16, sign-magnitude), 6 ASCII text.

All multi-byte values are big-endian. Decoders raise MalformedField when the
payload length does not fit the data type's element width.
"""
from __future__ import annotations

import math
import struct
from typing import Callable, Union

from gdsdump.stream import constants as c
from gdsdump.stream.enums import DATA_TYPE_NAMES, lookup_enum
from gdsdump.stream.errors import MalformedField

FieldValue = Union[None, int, str, tuple]

_UINT16 = struct.Struct(">H")

_MANTISSA_MASK = 0x00FFFFFFFFFFFFFF


def real64_from_bits(bits: int) -> float:
    """Decode one excess-64 base-16 real from its 64-bit pattern.

    bit 63 is the sign, bits 62-56 the exponent E (excess 64) and bits 55-0
    the mantissa fraction M: value = (M / 2**56) * 16**(E - 64).
    """
    mantissa = bits & _MANTISSA_MASK
    if mantissa == 0:
        return 0.0
    exponent = (bits >> 56) & 0x7F
    # 16**(E-64) / 2**56 == 2**(4*(E-64) - 56); ldexp keeps this exact
    value = math.ldexp(float(mantissa), 4 * (exponent - 64) - 56)
    return -value if bits >> 63 else value


def decode_real64(payload: bytes) -> tuple[float, ...]:
    _check_width(payload, 8, c.DT_REAL64)
    count = len(payload) // 8
    return tuple(real64_from_bits(b) for b in struct.unpack(f">{count}Q", payload))


def decode_real32(payload: bytes) -> tuple[float, ...]:
    """Decode 4-byte reals as the top half of a real64 with a zero low word."""
    _check_width(payload, 4, c.DT_REAL32)
    count = len(payload) // 4
    return tuple(real64_from_bits(w << 32) for w in struct.unpack(f">{count}I", payload))


def decode_int16(payload: bytes) -> tuple[int, ...]:
    _check_width(payload, 2, c.DT_INT16)
    return struct.unpack(f">{len(payload) // 2}h", payload)


def decode_int32(payload: bytes) -> tuple[int, ...]:
    _check_width(payload, 4, c.DT_INT32)
    return struct.unpack(f">{len(payload) // 4}i", payload)


def decode_bits(payload: bytes) -> int:
    """Return a bit array word as an unsigned integer, undecoded."""
    if len(payload) != 2:
        raise MalformedField(f"bit_array payload must be 2 bytes, got {len(payload)}")
    return _UINT16.unpack(payload)[0]


def decode_text(payload: bytes) -> str:
    """Decode ASCII text, cutting at the first NUL (even-length padding)."""
    end = payload.find(b"\x00")
    if end != -1:
        payload = payload[:end]
    return payload.decode("ascii", errors="replace")


def decode_none(payload: bytes) -> None:
    if payload:
        raise MalformedField(f"no_data record carries {len(payload)} payload bytes")
    return None


_DECODERS: dict[int, Callable[[bytes], FieldValue]] = {
    c.DT_NONE: decode_none,
    c.DT_BITARRAY: decode_bits,
    c.DT_INT16: decode_int16,
    c.DT_INT32: decode_int32,
    c.DT_REAL32: decode_real32,
    c.DT_REAL64: decode_real64,
    c.DT_ASCII: decode_text,
}


def decode_field(data_type: int, payload: bytes) -> FieldValue:
    """Decode a payload according to its declared data type."""
    decoder = _DECODERS.get(data_type)
    if decoder is None:
        raise MalformedField(f"unknown data type {data_type}")
    return decoder(payload)


def _check_width(payload: bytes, width: int, data_type: int) -> None:
    size = len(payload)
    if size == 0 or size % width:
        name = lookup_enum(DATA_TYPE_NAMES, data_type)
        raise MalformedField(
            f"{name} payload must be a positive multiple of {width} bytes, got {size}"
        )
