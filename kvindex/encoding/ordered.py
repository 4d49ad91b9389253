"""
Order-preserving key encoding
=============================

Encodes scalars and tuples into byte strings whose memcmp order matches the
natural order of the values, so that an ordered KV store iterates composite
keys such as ``(index_value, primary_key)`` in value order.

Type order (smallest first), one tag byte per item:

  0x01  None
  0x02  False
  0x03  True
  0x04  number   8 bytes, IEEE 754 double with the sortable transform
  0x05  bytes    escaped payload, 0x00 terminator
  0x06  str      UTF-8, escaped payload, 0x00 terminator
  0x07  tuple    encoded items, 0x00 terminator
  0xFF  HIGH     upper-bound sentinel, encode only

Escaping: every 0x00 inside a bytes/str payload is written as 0x00 0xFF, so a
bare 0x00 always terminates. A shorter string therefore sorts before any
string it prefixes, and a shorter tuple before any tuple it prefixes.

Numbers: ints and floats share one tag so that ``1 < 1.5 < 2`` holds across
types. Ints must be exactly representable as a double; NaN is rejected. -0.0
is normalized to 0.0. Integral finite numbers decode as ``int``.

Example
-------
>>> lo, hi = encode(("red",)), encode(("red", HIGH))
>>> lo < encode(("red", "k1")) < encode(("red", "k2")) < hi
True
"""

from __future__ import annotations

import math
import struct
from typing import Any, List, Tuple

from ..errors import DecodingError, EncodingError

TAG_END = 0x00
TAG_NONE = 0x01
TAG_FALSE = 0x02
TAG_TRUE = 0x03
TAG_NUMBER = 0x04
TAG_BYTES = 0x05
TAG_STR = 0x06
TAG_TUPLE = 0x07
TAG_HIGH = 0xFF

_ESCAPE = 0xFF
_MAX_EXACT_INT = 1 << 53


class _High:
    """Sentinel that encodes above every other value."""

    __slots__ = ()
    _instance = None

    def __new__(cls) -> "_High":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "HIGH"

    def __reduce__(self):
        return (_High, ())


HIGH = _High()


# ─── Encode ─────────────────────────────────────────────────────────────────


def encode(value: Any) -> bytes:
    """Encode `value` into an order-preserving byte string."""
    out = bytearray()
    _encode_into(out, value)
    return bytes(out)


def _encode_into(out: bytearray, value: Any) -> None:
    if value is None:
        out.append(TAG_NONE)
    elif value is HIGH:
        out.append(TAG_HIGH)
    elif isinstance(value, bool):
        out.append(TAG_TRUE if value else TAG_FALSE)
    elif isinstance(value, (int, float)):
        out.append(TAG_NUMBER)
        out.extend(_encode_number(value))
    elif isinstance(value, (bytes, bytearray, memoryview)):
        out.append(TAG_BYTES)
        _escape_into(out, bytes(value))
    elif isinstance(value, str):
        out.append(TAG_STR)
        _escape_into(out, value.encode("utf-8"))
    elif isinstance(value, (tuple, list)):
        out.append(TAG_TUPLE)
        for item in value:
            _encode_into(out, item)
        out.append(TAG_END)
    else:
        raise EncodingError(
            "value type is not supported by the ordered encoding",
            type=type(value).__name__,
        )


def _encode_number(value: int | float) -> bytes:
    if isinstance(value, int):
        if abs(value) > _MAX_EXACT_INT:
            try:
                exact = float(value) == value
            except OverflowError:
                exact = False
            if not exact:
                raise EncodingError("integer is not exactly representable as a double", value=value)
        fval = float(value)
    else:
        fval = value
        if math.isnan(fval):
            raise EncodingError("NaN cannot be encoded")
    if fval == 0.0:
        fval = 0.0
    raw = bytearray(struct.pack(">d", fval))
    if raw[0] & 0x80:
        for i in range(8):
            raw[i] ^= 0xFF
    else:
        raw[0] ^= 0x80
    return bytes(raw)


def _escape_into(out: bytearray, payload: bytes) -> None:
    if 0 in payload:
        out.extend(payload.replace(b"\x00", b"\x00\xff"))
    else:
        out.extend(payload)
    out.append(TAG_END)


# ─── Decode ─────────────────────────────────────────────────────────────────


def decode(data: bytes) -> Any:
    """Decode a byte string produced by `encode`. The whole buffer must be consumed."""
    data = bytes(data)
    value, offset = _decode_at(data, 0)
    if offset != len(data):
        raise DecodingError("trailing bytes after ordered value", offset=offset, size=len(data))
    return value


def _decode_at(data: bytes, offset: int) -> Tuple[Any, int]:
    if offset >= len(data):
        raise DecodingError("unexpected end of ordered value", offset=offset)
    tag = data[offset]
    offset += 1
    if tag == TAG_NONE:
        return None, offset
    if tag == TAG_FALSE:
        return False, offset
    if tag == TAG_TRUE:
        return True, offset
    if tag == TAG_NUMBER:
        return _decode_number(data, offset)
    if tag == TAG_BYTES:
        return _unescape_at(data, offset)
    if tag == TAG_STR:
        raw, offset = _unescape_at(data, offset)
        try:
            return raw.decode("utf-8"), offset
        except UnicodeDecodeError as e:
            raise DecodingError("invalid UTF-8 in ordered string", offset=offset) from e
    if tag == TAG_TUPLE:
        items: List[Any] = []
        while True:
            if offset >= len(data):
                raise DecodingError("unterminated ordered tuple", offset=offset)
            if data[offset] == TAG_END:
                return tuple(items), offset + 1
            item, offset = _decode_at(data, offset)
            items.append(item)
    raise DecodingError(f"unknown ordered type tag 0x{tag:02X}", offset=offset - 1)


def _decode_number(data: bytes, offset: int) -> Tuple[int | float, int]:
    raw = bytearray(data[offset : offset + 8])
    if len(raw) != 8:
        raise DecodingError("truncated ordered number", offset=offset)
    if raw[0] & 0x80:
        raw[0] ^= 0x80
    else:
        for i in range(8):
            raw[i] ^= 0xFF
    fval = struct.unpack(">d", bytes(raw))[0]
    if math.isfinite(fval) and fval.is_integer():
        return int(fval), offset + 8
    return fval, offset + 8


def _unescape_at(data: bytes, offset: int) -> Tuple[bytes, int]:
    out = bytearray()
    i = offset
    n = len(data)
    while i < n:
        b = data[i]
        if b == TAG_END:
            if i + 1 < n and data[i + 1] == _ESCAPE:
                out.append(0x00)
                i += 2
                continue
            return bytes(out), i + 1
        out.append(b)
        i += 1
    raise DecodingError("unterminated ordered string", offset=offset)


__all__ = ["HIGH", "encode", "decode"]
