"""
Namespaces over a byte KV
=========================

`Database` wraps one synchronous KV backend (`kvindex.db.kv.KV`) and exposes
named, independently-encoded namespaces (`Sublevel`) plus an atomic
multi-namespace `ChainedBatch`.

Key layout
----------
- Namespace "users" owns every raw key starting with ``b"!users!"``; the rest
  of the key is the namespace's key encoding of the caller's key.
- Namespace metadata lives under ``b"\\x00meta!" + name`` as canonical CBOR
  ``{"key_encoding", "value_encoding", "owner"}``. It is written the first time
  a namespace is opened and checked on every later open.

Async model
-----------
Every backend call runs in a worker thread via `asyncio.to_thread`, under a
single lock per database so statements never interleave on the backend
connection. Iterators fetch `scan_page_size` entries per step and resume after
the last key they returned.

    db = Database.open("sqlite:///data/app.db")
    users = db.sublevel("users")
    ages = db.sublevel("ages", key_encoding="ordered", value_encoding="utf8")

    batch = db.batch()
    batch.put("alice", {"age": 30}, sublevel=users)
    batch.put((30, "alice"), "", sublevel=ages)
    await batch.write()

    async for key, _ in ages.iterator(gt=(30,), lt=(30, HIGH)):
        ...
"""

from __future__ import annotations

import asyncio
import threading
from typing import (Any, AsyncIterator, Callable, Dict, List, Optional,
                    Sequence, Tuple, TypeVar)

import cbor2

from ..config import DEFAULT_SCAN_PAGE_SIZE
from ..encoding import Encoding, EncodingLike, get_encoding
from ..errors import DatabaseClosed, DatabaseError, DecodingError, NamespaceConflict
from ..logging import get_logger
from .kv import KV, delete_many, prefix_hi

log = get_logger(__name__)

R = TypeVar("R")

SEPARATOR = "!"
META_PREFIX = b"\x00meta!"

_Op = Tuple[str, bytes, Optional[bytes]]


class _Missing:
    """Marks an absent key where None is a legitimate stored value."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


def _validate_name(name: Any) -> str:
    if not isinstance(name, str) or not name:
        raise ValueError("namespace name must be a non-empty string")
    if SEPARATOR in name:
        raise ValueError(f"namespace name must not contain {SEPARATOR!r}: {name!r}")
    return name


class Database:
    """Async facade over a KV backend with namespaces and atomic batches."""

    def __init__(
        self,
        kv: KV,
        *,
        scan_page_size: int = DEFAULT_SCAN_PAGE_SIZE,
    ) -> None:
        if scan_page_size < 1:
            raise ValueError("scan_page_size must be >= 1")
        self._kv = kv
        self._lock = threading.Lock()
        self._closed = False
        self._sublevels: Dict[str, Sublevel] = {}
        self.scan_page_size = scan_page_size

    @classmethod
    def open(
        cls,
        uri: str = "memory://",
        *,
        create: bool = True,
        scan_page_size: int = DEFAULT_SCAN_PAGE_SIZE,
    ) -> "Database":
        from . import open_kv

        return cls(open_kv(uri, create=create), scan_page_size=scan_page_size)

    @classmethod
    def from_config(cls, cfg: Any) -> "Database":
        """Open the database described by `kvindex.config.Config.db`."""
        return cls.open(cfg.db.uri, create=cfg.db.create, scan_page_size=cfg.db.scan_page_size)

    @property
    def kv(self) -> KV:
        return self._kv

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def sublevels(self) -> Tuple[str, ...]:
        """Names of the namespaces opened through this handle."""
        return tuple(self._sublevels)

    # --- backend access ---

    def _call_sync(self, fn: Callable[..., R], *args: Any, **kwargs: Any) -> R:
        with self._lock:
            if self._closed:
                raise DatabaseClosed()
            return fn(*args, **kwargs)

    async def _call(self, fn: Callable[..., R], *args: Any, **kwargs: Any) -> R:
        if self._closed:
            raise DatabaseClosed()
        return await asyncio.to_thread(self._call_sync, fn, *args, **kwargs)

    def _apply(self, ops: Sequence[_Op]) -> None:
        with self._kv.batch() as b:
            for op, key, value in ops:
                if op == "put":
                    b.put(key, value)
                else:
                    b.delete(key)

    # --- namespaces ---

    def sublevel(
        self,
        name: str,
        *,
        key_encoding: EncodingLike = "utf8",
        value_encoding: EncodingLike = "cbor",
        owner: Optional[str] = None,
    ) -> "Sublevel":
        """
        Open (or create) the namespace `name`.

        Idempotent: reopening with the same encodings and owner returns a
        namespace over the same data. Persists metadata on first open.

        Raises:
            ValueError if the name is empty or contains "!".
            NamespaceConflict if stored metadata disagrees with the request.
        """
        name = _validate_name(name)
        ke = get_encoding(key_encoding)
        ve = get_encoding(value_encoding)
        meta = {"key_encoding": ke.name, "value_encoding": ve.name, "owner": owner}

        cached = self._sublevels.get(name)
        if cached is not None:
            if cached.meta != meta:
                raise NamespaceConflict(name, cached.meta, meta)
            return cached

        meta_key = META_PREFIX + name.encode("utf-8")
        raw = self._call_sync(self._kv.get, meta_key)
        if raw is None:
            self._call_sync(self._kv.put, meta_key, cbor2.dumps(meta, canonical=True))
            log.debug("created namespace", extra={"namespace": name, **meta})
        else:
            try:
                stored = cbor2.loads(raw)
            except cbor2.CBORDecodeError as exc:
                raise DecodingError(
                    "corrupt namespace metadata", namespace=name
                ).with_cause(exc) from exc
            if stored != meta:
                raise NamespaceConflict(name, stored, meta)
            log.debug("opened namespace", extra={"namespace": name})

        sub = Sublevel(self, name, ke, ve, owner=owner)
        self._sublevels[name] = sub
        return sub

    async def namespaces(self) -> Dict[str, Dict[str, Any]]:
        """Return persisted metadata of every namespace in the store."""

        def _scan() -> List[Tuple[bytes, bytes]]:
            return list(self._kv.iter_prefix(META_PREFIX))

        rows = await self._call(_scan)
        return {k[len(META_PREFIX) :].decode("utf-8"): cbor2.loads(v) for k, v in rows}

    def batch(self) -> "ChainedBatch":
        if self._closed:
            raise DatabaseClosed()
        return ChainedBatch(self)

    # --- lifecycle ---

    def _close_sync(self) -> None:
        with self._lock:
            if not self._closed:
                self._closed = True
                self._kv.close()

    async def close(self) -> None:
        if self._closed:
            return
        await asyncio.to_thread(self._close_sync)

    async def __aenter__(self) -> "Database":
        return self

    async def __aexit__(self, et, ev, tb) -> None:
        await self.close()


class Sublevel:
    """A named namespace with its own key and value encodings."""

    def __init__(
        self,
        db: Database,
        name: str,
        key_encoding: Encoding,
        value_encoding: Encoding,
        *,
        owner: Optional[str] = None,
    ) -> None:
        self.db = db
        self.name = name
        self.prefix = f"{SEPARATOR}{name}{SEPARATOR}"
        self.key_encoding = key_encoding
        self.value_encoding = value_encoding
        self.owner = owner
        self._raw_prefix = self.prefix.encode("utf-8")
        self._raw_hi = prefix_hi(self._raw_prefix)

    def __repr__(self) -> str:
        return (
            f"Sublevel({self.name!r}, key_encoding={self.key_encoding.name!r}, "
            f"value_encoding={self.value_encoding.name!r})"
        )

    @property
    def meta(self) -> Dict[str, Any]:
        return {
            "key_encoding": self.key_encoding.name,
            "value_encoding": self.value_encoding.name,
            "owner": self.owner,
        }

    # --- codec helpers ---

    def encode_key(self, key: Any) -> bytes:
        return self._raw_prefix + self.key_encoding.encode(key)

    def decode_key(self, raw: bytes) -> Any:
        return self.key_encoding.decode(raw[len(self._raw_prefix) :])

    def encode_value(self, value: Any) -> bytes:
        return self.value_encoding.encode(value)

    def decode_value(self, raw: bytes) -> Any:
        return self.value_encoding.decode(raw)

    # --- point operations ---

    async def get(self, key: Any, default: Any = None) -> Any:
        """
        Return the decoded value at `key`, or `default` if absent.

        Pass `default=MISSING` to tell an absent key from a stored None.
        """
        raw = await self.db._call(self.db.kv.get, self.encode_key(key))
        return default if raw is None else self.decode_value(raw)

    async def get_many(self, keys: Sequence[Any], default: Any = None) -> List[Any]:
        """Decoded values for `keys` in input order; `default` where absent."""
        if not keys:
            return []
        raws = await self.db._call(self.db.kv.get_many, [self.encode_key(k) for k in keys])
        return [default if raw is None else self.decode_value(raw) for raw in raws]

    async def has(self, key: Any) -> bool:
        return await self.db._call(self.db.kv.has, self.encode_key(key))

    async def put(self, key: Any, value: Any) -> None:
        await self.db._call(self.db.kv.put, self.encode_key(key), self.encode_value(value))

    async def delete(self, key: Any) -> None:
        await self.db._call(self.db.kv.delete, self.encode_key(key))

    # --- range operations ---

    def _bounds(
        self, gt: Any, gte: Any, lt: Any, lte: Any
    ) -> Tuple[bytes, bool, Optional[bytes], bool]:
        if gt is not None and gte is not None:
            raise ValueError("pass at most one of gt / gte")
        if lt is not None and lte is not None:
            raise ValueError("pass at most one of lt / lte")

        if gt is not None:
            lo, lo_incl = self.encode_key(gt), False
        elif gte is not None:
            lo, lo_incl = self.encode_key(gte), True
        else:
            lo, lo_incl = self._raw_prefix, True

        if lt is not None:
            hi, hi_incl = self.encode_key(lt), False
        elif lte is not None:
            hi, hi_incl = self.encode_key(lte), True
        else:
            hi, hi_incl = self._raw_hi, False
        return lo, lo_incl, hi, hi_incl

    async def iterator(
        self,
        *,
        gt: Any = None,
        gte: Any = None,
        lt: Any = None,
        lte: Any = None,
        limit: Optional[int] = None,
    ) -> AsyncIterator[Tuple[Any, Any]]:
        """
        Iterate decoded ``(key, value)`` pairs in ascending key order.

        Bounds are in the namespace's key space. Entries are fetched
        `db.scan_page_size` at a time; each page is one backend call.
        """
        lo, lo_incl, hi, hi_incl = self._bounds(gt, gte, lt, lte)
        kv = self.db.kv
        remaining = limit
        page_size = self.db.scan_page_size

        def _page(lo: bytes, lo_incl: bool, n: int) -> List[Tuple[bytes, bytes]]:
            return list(
                kv.iter_range(lo, hi, lo_inclusive=lo_incl, hi_inclusive=hi_incl, limit=n)
            )

        while remaining is None or remaining > 0:
            n = page_size if remaining is None else min(page_size, remaining)
            page = await self.db._call(_page, lo, lo_incl, n)
            for raw_key, raw_value in page:
                yield self.decode_key(raw_key), self.decode_value(raw_value)
            if len(page) < n:
                return
            if remaining is not None:
                remaining -= len(page)
            lo, lo_incl = page[-1][0], False

    async def keys(self, **bounds: Any) -> List[Any]:
        return [k async for k, _ in self.iterator(**bounds)]

    async def clear(self) -> int:
        """Delete every entry of this namespace in one atomic batch. Returns the count."""
        kv = self.db.kv

        def _clear() -> int:
            keys = [k for k, _ in kv.iter_range(self._raw_prefix, self._raw_hi)]
            delete_many(kv, keys)
            return len(keys)

        return await self.db._call(_clear)


class ChainedBatch:
    """
    Accumulates put/delete operations across namespaces of one database and
    applies them as one atomic backend batch on `write()`.

    Keys and values are encoded when an operation is added, so encoding
    errors surface before anything is written.
    """

    def __init__(self, db: Database) -> None:
        self._db = db
        self._ops: List[_Op] = []
        self._written = False

    @property
    def length(self) -> int:
        return len(self._ops)

    def __len__(self) -> int:
        return len(self._ops)

    def _check(self, sublevel: Sublevel) -> None:
        if self._written:
            raise DatabaseError("batch has already been written")
        if sublevel.db is not self._db:
            raise DatabaseError(
                "sublevel belongs to a different database", namespace=sublevel.name
            )

    def put(self, key: Any, value: Any, *, sublevel: Sublevel) -> "ChainedBatch":
        self._check(sublevel)
        self._ops.append(("put", sublevel.encode_key(key), sublevel.encode_value(value)))
        return self

    def delete(self, key: Any, *, sublevel: Sublevel) -> "ChainedBatch":
        self._check(sublevel)
        self._ops.append(("del", sublevel.encode_key(key), None))
        return self

    def clear(self) -> "ChainedBatch":
        self._ops.clear()
        return self

    async def write(self) -> None:
        """Commit all operations atomically; a batch can be written once."""
        if self._written:
            raise DatabaseError("batch has already been written")
        self._written = True
        if not self._ops:
            return
        ops, self._ops = self._ops, []
        await self._db._call(self._db._apply, ops)


__all__ = ["Database", "Sublevel", "ChainedBatch", "MISSING", "META_PREFIX", "SEPARATOR"]
