"""
kvindex.encoding
================

Key and value encodings for namespaces. Index namespaces default to the
order-preserving ``ordered`` encoding; primary namespaces default to ``utf8``
keys and ``cbor`` values.
"""

from __future__ import annotations

from .codecs import (
    BinaryEncoding,
    CBOREncoding,
    Encoding,
    EncodingLike,
    JSONEncoding,
    MsgpackEncoding,
    OrderedEncoding,
    Utf8Encoding,
    available_encodings,
    get_encoding,
    register_encoding,
)
from .ordered import HIGH

DEFAULT_INDEX_ENCODING = "ordered"

__all__ = [
    "HIGH",
    "DEFAULT_INDEX_ENCODING",
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
