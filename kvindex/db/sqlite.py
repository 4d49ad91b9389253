from __future__ import annotations

"""
SQLite-backed KV store
======================

A small embedded KV using SQLite (BLOB keys & values), implementing the
`KV` / `ReadOnlyKV` / `Batch` protocols from `kvindex.db.kv`.

- Table schema: kv(k BLOB PRIMARY KEY, v BLOB NOT NULL)
- Keys/values are raw bytes; ordering is lexicographic (memcmp), which is
  SQLite's native BLOB collation.
- Range scans translate directly into `k > ? AND k < ?` predicates over the
  primary key and are served in key order.

Pragmas: WAL journal, NORMAL sync, in-memory temp store.

Threading:
- `check_same_thread=False`; the caller serializes access (the async
  `Database` facade runs every call under one lock). Batches execute inside a
  single `BEGIN IMMEDIATE` transaction.
"""

import os
import sqlite3
from typing import Iterator, List, Optional, Sequence, Tuple, Union

from .kv import KV, Batch, prefix_hi

DEFAULT_PRAGMAS = {
    "journal_mode": "WAL",
    "synchronous": "NORMAL",
    "temp_store": "MEMORY",
    "foreign_keys": "OFF",
}

# SQLite's default SQLITE_MAX_VARIABLE_NUMBER is 999 on older builds.
_GET_MANY_CHUNK = 500

_UPSERT = "INSERT INTO kv(k, v) VALUES(?, ?) ON CONFLICT(k) DO UPDATE SET v=excluded.v"


def _apply_pragmas(conn: sqlite3.Connection, pragmas: Optional[dict] = None) -> None:
    p = dict(DEFAULT_PRAGMAS)
    if pragmas:
        p.update(pragmas)
    cur = conn.cursor()
    for name, value in p.items():
        cur.execute(f"PRAGMA {name}={value}")
    cur.close()


def _migrate(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS kv (
            k BLOB PRIMARY KEY,
            v BLOB NOT NULL
        )
        """
    )


class SQLiteBatch(Batch):
    __slots__ = ("_conn", "_open")

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        self._open = False

    def __enter__(self) -> "SQLiteBatch":
        if self._open:
            raise RuntimeError("batch already open (nested batches not supported)")
        # BEGIN IMMEDIATE takes the write lock up front; readers are not blocked under WAL.
        self._conn.execute("BEGIN IMMEDIATE")
        self._open = True
        return self

    def put(self, key: bytes, value: bytes) -> None:
        if not self._open:
            raise RuntimeError("batch not open")
        self._conn.execute(_UPSERT, (memoryview(key), memoryview(value)))

    def delete(self, key: bytes) -> None:
        if not self._open:
            raise RuntimeError("batch not open")
        self._conn.execute("DELETE FROM kv WHERE k = ?", (memoryview(key),))

    def commit(self) -> None:
        if not self._open:
            return
        self._conn.execute("COMMIT")
        self._open = False

    def rollback(self) -> None:
        if not self._open:
            return
        self._conn.execute("ROLLBACK")
        self._open = False

    def __exit__(self, exc_type, exc, tb) -> Optional[bool]:
        try:
            if exc_type is None:
                self.commit()
            else:
                self.rollback()
        finally:
            self._open = False
        return None


def _open_connection(
    path: Union[str, "os.PathLike[str]"],
    *,
    pragmas: Optional[dict] = None,
    create: bool = True,
    readonly: bool = False,
) -> sqlite3.Connection:
    uri_mode = False
    path_str = os.fspath(path)
    if path_str.startswith("sqlite:///"):
        path_str = path_str[len("sqlite:///") :] or ":memory:"
    if path_str != ":memory:":
        if readonly:
            path_str = f"file:{path_str}?mode=ro"
            uri_mode = True
        elif not create and not os.path.exists(path_str):
            raise FileNotFoundError(f"SQLite KV not found at {path_str}")
        elif create:
            parent = os.path.dirname(os.path.abspath(path_str))
            os.makedirs(parent, exist_ok=True)

    conn = sqlite3.connect(
        path_str,
        detect_types=0,
        isolation_level=None,  # autocommit; batches BEGIN explicitly
        check_same_thread=False,
        uri=uri_mode,
    )
    if readonly:
        conn.execute("PRAGMA query_only=ON")
    else:
        _apply_pragmas(conn, pragmas)
        _migrate(conn)
    return conn


def _range_sql(
    lo: Optional[bytes],
    hi: Optional[bytes],
    lo_inclusive: bool,
    hi_inclusive: bool,
    limit: Optional[int],
) -> Tuple[str, tuple]:
    where: List[str] = []
    args: List[object] = []
    if lo is not None:
        where.append("k >= ?" if lo_inclusive else "k > ?")
        args.append(memoryview(lo))
    if hi is not None:
        where.append("k <= ?" if hi_inclusive else "k < ?")
        args.append(memoryview(hi))
    sql = "SELECT k, v FROM kv"
    if where:
        sql += " WHERE " + " AND ".join(where)
    sql += " ORDER BY k"
    if limit is not None:
        sql += " LIMIT ?"
        args.append(int(limit))
    return sql, tuple(args)


class SQLiteKV(KV):
    """
    SQLite-backed KV. Use `open_sqlite_kv(path)` to construct.
    """

    __slots__ = ("_conn",)

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    # --- ReadOnlyKV ---

    def get(self, key: bytes) -> Optional[bytes]:
        cur = self._conn.execute("SELECT v FROM kv WHERE k = ?", (memoryview(key),))
        row = cur.fetchone()
        cur.close()
        return bytes(row[0]) if row is not None else None

    def get_many(self, keys: Sequence[bytes]) -> List[Optional[bytes]]:
        found = {}
        unique = list(dict.fromkeys(bytes(k) for k in keys))
        for i in range(0, len(unique), _GET_MANY_CHUNK):
            chunk = unique[i : i + _GET_MANY_CHUNK]
            marks = ",".join("?" * len(chunk))
            cur = self._conn.execute(
                f"SELECT k, v FROM kv WHERE k IN ({marks})",
                tuple(memoryview(k) for k in chunk),
            )
            for k, v in cur:
                found[bytes(k)] = bytes(v)
            cur.close()
        return [found.get(bytes(k)) for k in keys]

    def has(self, key: bytes) -> bool:
        cur = self._conn.execute("SELECT 1 FROM kv WHERE k = ? LIMIT 1", (memoryview(key),))
        row = cur.fetchone()
        cur.close()
        return row is not None

    def iter_range(
        self,
        lo: Optional[bytes],
        hi: Optional[bytes],
        *,
        lo_inclusive: bool = True,
        hi_inclusive: bool = False,
        limit: Optional[int] = None,
    ) -> Iterator[Tuple[bytes, bytes]]:
        sql, args = _range_sql(lo, hi, lo_inclusive, hi_inclusive, limit)
        cur = self._conn.execute(sql, args)
        try:
            for k, v in cur:
                yield bytes(k), bytes(v)
        finally:
            cur.close()

    def iter_prefix(self, prefix: bytes) -> Iterator[Tuple[bytes, bytes]]:
        return self.iter_range(prefix or None, prefix_hi(prefix))

    def close(self) -> None:
        self._conn.close()

    # --- KV ---

    def put(self, key: bytes, value: bytes) -> None:
        self._conn.execute(_UPSERT, (memoryview(key), memoryview(value)))

    def delete(self, key: bytes) -> None:
        self._conn.execute("DELETE FROM kv WHERE k = ?", (memoryview(key),))

    def batch(self) -> Batch:
        return SQLiteBatch(self._conn)


def open_sqlite_kv(
    path: Union[str, "os.PathLike[str]"],
    *,
    pragmas: Optional[dict] = None,
    create: bool = True,
    readonly: bool = False,
) -> SQLiteKV:
    """
    Open (or create) a SQLite KV at `path` (":memory:" for a private in-memory DB).

    - `readonly=True` opens the file with mode=ro.
    - `create=False` raises FileNotFoundError if the DB file does not exist.
    """
    conn = _open_connection(path, pragmas=pragmas, create=create, readonly=readonly)
    return SQLiteKV(conn)


__all__ = [
    "SQLiteKV",
    "SQLiteBatch",
    "open_sqlite_kv",
]
