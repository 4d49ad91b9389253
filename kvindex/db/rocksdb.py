from __future__ import annotations

"""
RocksDB-backed KV (optional)
===========================

A high-throughput KV using python-rocksdb when available. If the module or
native library is missing, `open_rocksdb_kv` falls back to SQLite beside the
requested path (when allowed) or raises a helpful error.

Features
- Binary keys & values (bytes in, bytes out)
- Range scans via iterator seek(lo) with an upper-bound guard
- Bulk reads via multi_get
- Batched writes using WriteBatch (atomic per write call)

Contract
--------
Implements the KV / ReadOnlyKV / Batch protocols from `kvindex.db.kv`.
"""

import os
from typing import Iterator, List, Optional, Sequence, Tuple, Union

try:
    import rocksdb  # type: ignore
    _ROCKS_OK = True
except ImportError:
    rocksdb = None  # type: ignore
    _ROCKS_OK = False

from .kv import KV, Batch, in_range, prefix_hi
from .sqlite import open_sqlite_kv


def _err_help(path: str) -> RuntimeError:
    return RuntimeError(
        "RocksDB backend unavailable. Install native lib & wheel:\n"
        "  • Debian/Ubuntu: sudo apt-get install -y librocksdb-dev\n"
        "  • Python: pip install 'kvindex[rocksdb]'\n"
        f"Requested path: {path}\n"
        "Alternatively pass fallback_to_sqlite=True to auto-fallback."
    )


class RocksBatch(Batch):
    __slots__ = ("_db", "_wb", "_open")

    def __init__(self, db: "rocksdb.DB") -> None:  # type: ignore[name-defined]
        self._db = db
        self._wb = rocksdb.WriteBatch()
        self._open = False

    def __enter__(self) -> "RocksBatch":
        if self._open:
            raise RuntimeError("batch already open")
        self._open = True
        return self

    def put(self, key: bytes, value: bytes) -> None:
        if not self._open:
            raise RuntimeError("batch not open")
        self._wb.put(key, value)

    def delete(self, key: bytes) -> None:
        if not self._open:
            raise RuntimeError("batch not open")
        self._wb.delete(key)

    def commit(self) -> None:
        if not self._open:
            return
        self._db.write(self._wb)
        self._wb = rocksdb.WriteBatch()
        self._open = False

    def rollback(self) -> None:
        if not self._open:
            return
        # Nothing reached the DB yet; dropping the WriteBatch discards it.
        self._wb = rocksdb.WriteBatch()
        self._open = False

    def __exit__(self, et, ev, tb):
        try:
            if et is None:
                self.commit()
            else:
                self.rollback()
        finally:
            self._open = False
        return None


class RocksKV(KV):
    """RocksDB-backed KV satisfying the KV / ReadOnlyKV protocols."""

    __slots__ = ("_db", "_ro")

    def __init__(self, db: "rocksdb.DB", read_only: bool) -> None:  # type: ignore[name-defined]
        self._db = db
        self._ro = read_only

    # --- ReadOnlyKV ---

    def get(self, key: bytes) -> Optional[bytes]:
        v = self._db.get(key)
        return v if v is None else bytes(v)

    def get_many(self, keys: Sequence[bytes]) -> List[Optional[bytes]]:
        keys = [bytes(k) for k in keys]
        found = self._db.multi_get(keys)
        return [None if found.get(k) is None else bytes(found[k]) for k in keys]

    def has(self, key: bytes) -> bool:
        return self._db.get(key) is not None

    def iter_range(
        self,
        lo: Optional[bytes],
        hi: Optional[bytes],
        *,
        lo_inclusive: bool = True,
        hi_inclusive: bool = False,
        limit: Optional[int] = None,
    ) -> Iterator[Tuple[bytes, bytes]]:
        it = self._db.iteritems()
        if lo is None:
            it.seek_to_first()
        else:
            it.seek(lo)
        n = 0
        for k, v in it:
            k = bytes(k)
            if hi is not None and (k > hi or (k == hi and not hi_inclusive)):
                break
            if not in_range(k, lo, None, lo_inclusive):
                continue
            yield k, bytes(v)
            n += 1
            if limit is not None and n >= limit:
                break

    def iter_prefix(self, prefix: bytes) -> Iterator[Tuple[bytes, bytes]]:
        return self.iter_range(prefix or None, prefix_hi(prefix))

    def close(self) -> None:
        # python-rocksdb has no explicit close; dropping the handle releases it.
        self._db = None

    # --- KV (write methods) ---

    def put(self, key: bytes, value: bytes) -> None:
        if self._ro:
            raise PermissionError("DB is read-only")
        self._db.put(key, value)

    def delete(self, key: bytes) -> None:
        if self._ro:
            raise PermissionError("DB is read-only")
        self._db.delete(key)

    def batch(self) -> Batch:
        if self._ro:
            raise PermissionError("DB is read-only")
        return RocksBatch(self._db)


def _default_options() -> "rocksdb.Options":  # type: ignore[name-defined]
    """Defaults for point lookups, short range scans and write bursts."""
    opts = rocksdb.Options()
    opts.create_if_missing = True
    opts.max_open_files = 512
    opts.compression = rocksdb.CompressionType.lz4_compression
    opts.table_factory = rocksdb.BlockBasedTableFactory(
        block_cache=rocksdb.LRUCache(64 * 1024 * 1024),
        filter_policy=rocksdb.BloomFilterPolicy(10),
    )
    return opts


def open_rocksdb_kv(
    path: Union[str, "os.PathLike[str]"],
    *,
    create: bool = True,
    readonly: bool = False,
    fallback_to_sqlite: bool = True,
    options: Optional["rocksdb.Options"] = None,  # type: ignore[name-defined]
) -> KV:
    """
    Open a RocksDB KV at `path`.

    Args:
        create: create if missing (ignored when readonly)
        readonly: open in read-only mode
        fallback_to_sqlite: if RocksDB is unavailable, return a SQLiteKV at path+".sqlite"
        options: custom rocksdb.Options

    Raises:
        RuntimeError if RocksDB is unavailable and fallback_to_sqlite=False
    """
    db_path = os.fspath(path)

    if not _ROCKS_OK:
        if fallback_to_sqlite:
            return open_sqlite_kv(db_path + ".sqlite", create=create, readonly=readonly)
        raise _err_help(db_path)

    if not readonly and create:
        os.makedirs(os.path.abspath(db_path), exist_ok=True)

    opts = options or _default_options()
    if not create:
        opts.create_if_missing = False
    db = rocksdb.DB(db_path, opts, read_only=readonly)
    return RocksKV(db, read_only=readonly)


def rocks_available() -> bool:
    return _ROCKS_OK


__all__ = [
    "open_rocksdb_kv",
    "rocks_available",
    "RocksKV",
    "RocksBatch",
]
