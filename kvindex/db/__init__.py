from __future__ import annotations

"""
kvindex.db
==========

Thin facade for the key–value backends and the async namespace layer.

Backends
--------
- SQLite (default, always available)
- RocksDB (optional; used if python-rocksdb is installed)

URIs
----
- "sqlite:///path/to/index.db"   → SQLite file (four slashes for absolute paths)
- "sqlite:///:memory:"           → in-memory SQLite (tests)
- "memory://"                    → alias of "sqlite:///:memory:"
- "rocksdb:///path/to/dir"       → RocksDB directory, if python-rocksdb is installed
- Bare path heuristics:
    * endswith(".db") → sqlite file path
    * otherwise       → rocksdb directory if available, else sqlite file

Example
-------
>>> from kvindex.db import Database
>>> db = Database.open("memory://")
>>> users = db.sublevel("users")
>>> await users.put("alice", {"age": 30})
"""

from typing import Tuple

from . import rocksdb as _rocks_backend
from . import sqlite as _sqlite_backend
from .kv import KV, Batch, ReadOnlyKV, prefix_hi


def prefer_rocks() -> bool:
    """Return True if the RocksDB backend is importable."""
    return _rocks_backend.rocks_available()


def _parse_uri(uri: str) -> Tuple[str, str]:
    """
    Parse a DB URI into (backend, path_or_spec).

    Returns:
        ("sqlite", path) or ("rocksdb", path) or ("memory", "")
    """
    u = uri.strip()
    if u.startswith("sqlite:///"):
        return ("sqlite", u[len("sqlite:///") :])
    if u.startswith("rocksdb:///"):
        return ("rocksdb", u[len("rocksdb:///") :])
    if u.startswith("memory://"):
        return ("memory", "")
    if "://" in u:
        raise ValueError(f"Unsupported DB backend in URI: {uri!r}")
    if u.endswith(".db"):
        return ("sqlite", u)
    if u and prefer_rocks():
        return ("rocksdb", u)
    return ("sqlite", u or ":memory:")


def open_kv(uri: str, create: bool = True) -> KV:
    """
    Open a KV database by URI. See module docstring for supported forms.

    Raises:
        RuntimeError if RocksDB is requested explicitly but unavailable.
        ValueError for unsupported URI schemes.
    """
    backend, spec = _parse_uri(uri)

    if backend == "memory":
        return _sqlite_backend.open_sqlite_kv(":memory:", create=True)

    if backend == "sqlite":
        return _sqlite_backend.open_sqlite_kv(spec or ":memory:", create=create)

    if not prefer_rocks():
        raise RuntimeError("RocksDB backend requested but python-rocksdb is not installed.")
    return _rocks_backend.open_rocksdb_kv(spec or "./kvindex.rocks", create=create, fallback_to_sqlite=False)


# Imported last: level depends on open_kv.
from .level import MISSING, ChainedBatch, Database, Sublevel  # noqa: E402

__all__ = [
    "KV",
    "ReadOnlyKV",
    "Batch",
    "prefix_hi",
    "open_kv",
    "prefer_rocks",
    "Database",
    "Sublevel",
    "ChainedBatch",
    "MISSING",
]
