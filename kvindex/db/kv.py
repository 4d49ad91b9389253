from __future__ import annotations

"""
KV interface & range helpers
============================

Backend-agnostic byte Key–Value interface used by the namespace layer
(`kvindex.db.level`). Backends (sqlite, rocksdb) implement these protocols and
the batch semantics. This file is *pure interface + helpers* and contains no
I/O.

Ordering
--------
Keys are raw bytes compared lexicographically (memcmp). `iter_range` and
`iter_prefix` yield ascending `(key, value)` pairs.

Range bounds
------------
`iter_range(lo, hi, lo_inclusive=True, hi_inclusive=False, limit=None)`:
``None`` for `lo` / `hi` means unbounded on that side.

>>> list(kv.iter_range(b"a", b"c"))          # a <= k < c
>>> list(kv.iter_range(b"a", b"c", lo_inclusive=False, hi_inclusive=True))  # a < k <= c

Batching
--------
`KV.batch()` returns a context manager. Writes inside it are applied
atomically when the block exits cleanly and discarded if an exception escapes:

>>> with kv.batch() as b:
...     b.put(b"!users!alice", b"...")
...     b.delete(b"!users!bob")
"""

from typing import (Iterable, Iterator, List, Optional, Protocol, Sequence,
                    Tuple, runtime_checkable)


def prefix_hi(prefix: bytes) -> Optional[bytes]:
    """
    Return the smallest byte string that is strictly greater than all keys that
    have `prefix` as a prefix. If no such value exists (empty prefix, or prefix
    all 0xFF), return None.

    Example: b"ab\x01" -> b"ab\x02"; b"\xff\xff" -> None
    """
    p = bytearray(prefix)
    for i in range(len(p) - 1, -1, -1):
        if p[i] != 0xFF:
            p[i] += 1
            del p[i + 1 :]
            return bytes(p)
    return None


def in_range(
    key: bytes,
    lo: Optional[bytes],
    hi: Optional[bytes],
    lo_inclusive: bool = True,
    hi_inclusive: bool = False,
) -> bool:
    """True if `key` lies within the given bounds."""
    if lo is not None and (key < lo or (key == lo and not lo_inclusive)):
        return False
    if hi is not None and (key > hi or (key == hi and not hi_inclusive)):
        return False
    return True


# ---------------------------------------------------------------------------
# KV protocols & Batch
# ---------------------------------------------------------------------------


@runtime_checkable
class ReadOnlyKV(Protocol):
    """Minimal read-only KV surface."""

    def get(self, key: bytes) -> Optional[bytes]:
        """Fetch value or None if missing."""
        ...

    def get_many(self, keys: Sequence[bytes]) -> List[Optional[bytes]]:
        """Fetch many values; result[i] belongs to keys[i] (None if missing)."""
        ...

    def has(self, key: bytes) -> bool:
        """Return True if key exists."""
        ...

    def iter_prefix(self, prefix: bytes) -> Iterator[Tuple[bytes, bytes]]:
        """Iterate (key, value) pairs whose key begins with `prefix`, ascending."""
        ...

    def iter_range(
        self,
        lo: Optional[bytes],
        hi: Optional[bytes],
        *,
        lo_inclusive: bool = True,
        hi_inclusive: bool = False,
        limit: Optional[int] = None,
    ) -> Iterator[Tuple[bytes, bytes]]:
        """Iterate (key, value) pairs within the bounds, ascending by key."""
        ...

    def close(self) -> None:
        """Close resources."""
        ...


@runtime_checkable
class Batch(Protocol):
    """
    A write-batch context manager. Backend guarantees atomicity when exiting
    the context without exception. If an exception escapes, the batch is rolled back.
    """

    def put(self, key: bytes, value: bytes) -> None: ...
    def delete(self, key: bytes) -> None: ...
    def commit(self) -> None: ...
    def rollback(self) -> None: ...

    def __enter__(self) -> "Batch": ...
    def __exit__(self, exc_type, exc, tb) -> Optional[bool]: ...


@runtime_checkable
class KV(ReadOnlyKV, Protocol):
    """Full RW KV surface."""

    def put(self, key: bytes, value: bytes) -> None:
        """Persist (key,value). Overwrites if exists."""
        ...

    def delete(self, key: bytes) -> None:
        """Remove key if present (idempotent)."""
        ...

    def batch(self) -> Batch:
        """Return a new write batch."""
        ...


# ---------------------------------------------------------------------------
# Portable helpers built atop the interface
# ---------------------------------------------------------------------------


def delete_many(kv: KV, keys: Iterable[bytes]) -> None:
    """Delete many keys using a single batch."""
    with kv.batch() as b:
        for k in keys:
            b.delete(k)


__all__ = [
    "ReadOnlyKV",
    "KV",
    "Batch",
    "prefix_hi",
    "in_range",
    "delete_many",
]
