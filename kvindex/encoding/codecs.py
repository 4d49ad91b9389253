"""
Named key/value encodings used by namespaces.

Every encoding exposes ``name``, ``tuple_keys`` (True when it can encode the
composite ``(index_value, primary_key)`` tuples an index namespace stores, in
an order-preserving way) and ``encode`` / ``decode``.

Built-ins:

- ``ordered``: order-preserving tuple encoding (kvindex.encoding.ordered)
- ``utf8``:    str <-> UTF-8 bytes
- ``binary``:  bytes passthrough
- ``json``:    deterministic JSON (sorted keys, compact separators)
- ``cbor``:    canonical CBOR via cbor2 (default record encoding)
- ``msgpack``: MessagePack via msgspec
"""

from __future__ import annotations

import json
from typing import Any, Dict, Protocol, Union, runtime_checkable

import cbor2
import msgspec

from ..errors import DecodingError, EncodingError
from . import ordered


@runtime_checkable
class Encoding(Protocol):
    name: str
    tuple_keys: bool

    def encode(self, value: Any) -> bytes: ...
    def decode(self, data: bytes) -> Any: ...


class OrderedEncoding:
    name = "ordered"
    tuple_keys = True

    def encode(self, value: Any) -> bytes:
        return ordered.encode(value)

    def decode(self, data: bytes) -> Any:
        return ordered.decode(data)


class Utf8Encoding:
    name = "utf8"
    tuple_keys = False

    def encode(self, value: Any) -> bytes:
        if isinstance(value, (bytes, bytearray, memoryview)):
            return bytes(value)
        if not isinstance(value, str):
            raise EncodingError("utf8 encoding expects str", type=type(value).__name__)
        return value.encode("utf-8")

    def decode(self, data: bytes) -> str:
        try:
            return bytes(data).decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodingError("invalid UTF-8", error=str(e)) from e


class BinaryEncoding:
    name = "binary"
    tuple_keys = False

    def encode(self, value: Any) -> bytes:
        if isinstance(value, str):
            return value.encode("utf-8")
        if not isinstance(value, (bytes, bytearray, memoryview)):
            raise EncodingError("binary encoding expects bytes", type=type(value).__name__)
        return bytes(value)

    def decode(self, data: bytes) -> bytes:
        return bytes(data)


class JSONEncoding:
    name = "json"
    tuple_keys = False

    def encode(self, value: Any) -> bytes:
        try:
            return json.dumps(value, sort_keys=True, separators=(",", ":")).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise EncodingError("value is not JSON-serializable", error=str(e)) from e

    def decode(self, data: bytes) -> Any:
        try:
            return json.loads(bytes(data))
        except ValueError as e:
            raise DecodingError("invalid JSON", error=str(e)) from e


class CBOREncoding:
    name = "cbor"
    tuple_keys = False

    def encode(self, value: Any) -> bytes:
        try:
            # canonical=True keeps map ordering deterministic.
            return cbor2.dumps(value, canonical=True)
        except cbor2.CBOREncodeError as e:
            raise EncodingError("value is not CBOR-serializable", error=str(e)) from e

    def decode(self, data: bytes) -> Any:
        try:
            return cbor2.loads(bytes(data))
        except cbor2.CBORDecodeError as e:
            raise DecodingError("invalid CBOR", error=str(e)) from e


class MsgpackEncoding:
    name = "msgpack"
    tuple_keys = False

    def encode(self, value: Any) -> bytes:
        try:
            return msgspec.msgpack.encode(value)
        except (TypeError, msgspec.EncodeError) as e:
            raise EncodingError("value is not msgpack-serializable", error=str(e)) from e

    def decode(self, data: bytes) -> Any:
        try:
            return msgspec.msgpack.decode(bytes(data))
        except msgspec.DecodeError as e:
            raise DecodingError("invalid msgpack", error=str(e)) from e


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

_REGISTRY: Dict[str, Encoding] = {}

EncodingLike = Union[str, Encoding]


def register_encoding(enc: Encoding, *, replace: bool = False) -> Encoding:
    """Make `enc` resolvable by name."""
    if not isinstance(enc, Encoding):
        raise EncodingError("object does not implement the Encoding protocol", type=type(enc).__name__)
    if enc.name in _REGISTRY and not replace:
        raise EncodingError(f"encoding {enc.name!r} is already registered", name=enc.name)
    _REGISTRY[enc.name] = enc
    return enc


def get_encoding(enc: EncodingLike) -> Encoding:
    """Resolve an encoding name (or pass an Encoding object through)."""
    if isinstance(enc, str):
        try:
            return _REGISTRY[enc]
        except KeyError:
            raise EncodingError(
                f"unknown encoding {enc!r}", name=enc, available=sorted(_REGISTRY)
            ) from None
    if isinstance(enc, Encoding):
        return enc
    raise EncodingError("expected an encoding name or Encoding object", type=type(enc).__name__)


def available_encodings() -> list[str]:
    return sorted(_REGISTRY)


for _enc in (
    OrderedEncoding(),
    Utf8Encoding(),
    BinaryEncoding(),
    JSONEncoding(),
    CBOREncoding(),
    MsgpackEncoding(),
):
    register_encoding(_enc)
del _enc


__all__ = [
    "Encoding",
    "EncodingLike",
    "OrderedEncoding",
    "Utf8Encoding",
    "BinaryEncoding",
    "JSONEncoding",
    "CBOREncoding",
    "MsgpackEncoding",
    "register_encoding",
    "get_encoding",
    "available_encodings",
]
