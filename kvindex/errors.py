"""
kvindex.errors
--------------

A small, consistent error system for the index layer.

Design goals
------------
- One root `KVIndexError` with machine-friendly `code` and optional `data`.
- Concrete subclasses for the failure domains of this package (definitions,
  lookups, codecs, namespaces, configuration).
- Safe JSON representation (`to_dict`) suitable for logs.
- Clear separation of *retryable* vs *permanent* failures.

Errors raised by the storage backends themselves (``sqlite3.Error``, RocksDB
status errors, ``OSError``) are never wrapped here; they propagate unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Mapping, Optional


class ErrorCode(str, Enum):
    INTERNAL = "KVINDEX/INTERNAL"
    CONFIG = "KVINDEX/CONFIG"

    # Encoding / decoding
    ENCODING = "KVINDEX/ENCODING"
    DECODING = "KVINDEX/DECODING"

    # Index management
    INVALID_DEFINITION = "KVINDEX/INVALID_DEFINITION"
    UNKNOWN_INDEX = "KVINDEX/UNKNOWN_INDEX"

    # Namespaces / database
    DB = "KVINDEX/DB"
    DB_CONFLICT = "KVINDEX/DB_CONFLICT"
    DB_CLOSED = "KVINDEX/DB_CLOSED"


@dataclass(eq=False)
class KVIndexError(Exception):
    """
    Root error for kvindex.

    Attributes
    ----------
    code: str
        Machine-stable error code (see ErrorCode).
    message: str
        Human hint suitable for logs.
    data: dict
        Optional machine data (index names, namespace names). JSON-serializable.
    retryable: bool
        Whether the operation may succeed on retry without changing inputs.
    cause: Optional[BaseException]
        Wrapped original exception; not included in equality comparison.
    """

    code: str
    message: str
    data: Dict[str, Any] = field(default_factory=dict)
    retryable: bool = False
    cause: Optional[BaseException] = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        super().__init__(f"{self.code}: {self.message}")

    def with_context(self, **ctx: Any) -> "KVIndexError":
        """Return a copy of this error with extra context merged into `data`."""
        err = _clone(self)
        err.data = {**self.data, **_jsonmap(ctx)}
        return err

    def with_cause(self, exc: BaseException) -> "KVIndexError":
        err = _clone(self)
        err.cause = exc
        return err

    def to_dict(self, include_cause: bool = False) -> Dict[str, Any]:
        """JSON-safe shape suitable for logs."""
        out = {
            "code": str(getattr(self.code, "value", self.code)),
            "message": self.message,
            "data": _jsonmap(self.data),
            "retryable": self.retryable,
        }
        if include_cause and self.cause is not None:
            out["cause"] = {
                "type": type(self.cause).__name__,
                "message": str(self.cause),
            }
        return out

    def __str__(self) -> str:  # pragma: no cover - human formatting
        code = getattr(self.code, "value", self.code)
        parts = [f"{code}: {self.message}"]
        if self.data:
            preview = ", ".join(f"{k}={_preview(v)}" for k, v in self.data.items())
            parts.append(f"[{preview}]")
        return " ".join(parts)


class InternalError(KVIndexError):
    def __init__(self, message="internal error", **data: Any) -> None:
        super().__init__(code=ErrorCode.INTERNAL, message=message, data=_jsonmap(data))


class ConfigError(KVIndexError):
    def __init__(self, message="invalid configuration", **data: Any) -> None:
        super().__init__(code=ErrorCode.CONFIG, message=message, data=_jsonmap(data))


class EncodingError(KVIndexError):
    def __init__(self, message="encoding failed", **data: Any) -> None:
        super().__init__(code=ErrorCode.ENCODING, message=message, data=_jsonmap(data))


class DecodingError(KVIndexError):
    def __init__(self, message="decoding failed", **data: Any) -> None:
        super().__init__(code=ErrorCode.DECODING, message=message, data=_jsonmap(data))


class InvalidDefinition(KVIndexError):
    """An index definition cannot be turned into a getter + key encoding."""

    def __init__(self, index: Any, reason: str = "must be a function or an object") -> None:
        super().__init__(
            code=ErrorCode.INVALID_DEFINITION,
            message=f'invalid index definition for "{index}": {reason}',
            data={"index": _coerce_json(index), "reason": reason},
        )

    @property
    def index(self) -> Any:
        return self.data.get("index")


class UnknownIndex(KVIndexError):
    """A lookup named an index that was never registered."""

    def __init__(self, index: str, available: Iterable[str] = ()) -> None:
        super().__init__(
            code=ErrorCode.UNKNOWN_INDEX,
            message=f'index "{index}" not defined',
            data={"index": index, "available": sorted(available)},
        )

    @property
    def index(self) -> str:
        return self.data["index"]


class DatabaseError(KVIndexError):
    def __init__(self, message="database error", retryable: bool = False, **data: Any) -> None:
        super().__init__(
            code=ErrorCode.DB, message=message, data=_jsonmap(data), retryable=retryable
        )


class NamespaceConflict(DatabaseError):
    """A namespace was reopened with metadata that disagrees with the stored one."""

    def __init__(self, namespace: str, stored: Mapping[str, Any], requested: Mapping[str, Any]) -> None:
        super().__init__(
            message=f'namespace "{namespace}" already exists with different settings',
            namespace=namespace,
            stored=dict(stored),
            requested=dict(requested),
        )
        self.code = ErrorCode.DB_CONFLICT


class DatabaseClosed(DatabaseError):
    def __init__(self, message="database is closed", **data: Any) -> None:
        super().__init__(message=message, **data)
        self.code = ErrorCode.DB_CLOSED


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _clone(err: KVIndexError) -> KVIndexError:
    # Subclasses have bespoke __init__ signatures; copy without calling them.
    new = Exception.__new__(type(err))
    new.__dict__.update(err.__dict__)
    new.data = dict(err.data)
    new.args = err.args
    return new


def _jsonmap(data: Mapping[str, Any]) -> Dict[str, Any]:
    return {k: _coerce_json(v) for k, v in data.items()}


def _coerce_json(v: Any) -> Any:
    if v is None or isinstance(v, (bool, int, float, str)):
        return v
    if isinstance(v, (list, tuple)):
        return [_coerce_json(i) for i in v]
    if isinstance(v, dict):
        return {str(k): _coerce_json(i) for k, i in v.items()}
    if isinstance(v, (bytes, bytearray)):
        return bytes(v).hex()
    try:
        return str(v)
    except Exception:
        return "<unprintable>"


def _preview(v: Any, limit: int = 96) -> str:
    s = str(_coerce_json(v))
    return s if len(s) <= limit else s[:limit] + "…"


__all__ = [
    "ErrorCode",
    "KVIndexError",
    "InternalError",
    "ConfigError",
    "EncodingError",
    "DecodingError",
    "InvalidDefinition",
    "UnknownIndex",
    "DatabaseError",
    "NamespaceConflict",
    "DatabaseClosed",
]
