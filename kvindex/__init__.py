"""
kvindex: secondary indexes over an ordered key-value store.

    from kvindex import Database, IndexSpec, SecondaryIndex

    db = Database.open("sqlite:///data/app.db")
    users = db.sublevel("users")
    idx = SecondaryIndex(users, {"age": IndexSpec(field="age")})
    await idx.put("alice", {"name": "alice", "age": 30})
    await idx.query("age", 30)

Only re-exports here; importing the package opens nothing.
"""

from __future__ import annotations

from .config import Config
from .config import load as load_config
from .db import ChainedBatch, Database, Sublevel, open_kv
from .encoding import HIGH
from .errors import (ConfigError, DatabaseClosed, DatabaseError, DecodingError,
                     EncodingError, ErrorCode, InvalidDefinition, KVIndexError,
                     NamespaceConflict, UnknownIndex)
from .index import IndexSpec, SecondaryIndex
from .version import __version__


def get_version() -> str:
    """Return the version string of this package."""
    return __version__


__all__ = [
    "__version__",
    "get_version",
    "SecondaryIndex",
    "IndexSpec",
    "Database",
    "Sublevel",
    "ChainedBatch",
    "open_kv",
    "HIGH",
    "Config",
    "load_config",
    "ErrorCode",
    "KVIndexError",
    "ConfigError",
    "EncodingError",
    "DecodingError",
    "InvalidDefinition",
    "UnknownIndex",
    "DatabaseError",
    "NamespaceConflict",
    "DatabaseClosed",
]
