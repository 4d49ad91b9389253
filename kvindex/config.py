"""
kvindex configuration loader.

Layered config with clear precedence:
    1) Explicit overrides passed to `load()` (highest)
    2) Environment variables (KVINDEX_*)
    3) Config file (TOML or JSON)
    4) Built-in defaults (lowest)

Sections
--------
  db:    { uri, create, scan_page_size }
  index: { prune_stale, serialize_writes }
  log:   { level, format, file }

Environment
-----------
  KVINDEX_DB_URI, KVINDEX_DB_CREATE, KVINDEX_SCAN_PAGE_SIZE,
  KVINDEX_PRUNE_STALE, KVINDEX_SERIALIZE_WRITES,
  KVINDEX_LOG_LEVEL, KVINDEX_LOG_FORMAT, KVINDEX_LOG_FILE
"""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

try:  # py311+
    import tomllib as _toml
except ImportError:  # py310
    _toml = None  # type: ignore[assignment]

from .errors import ConfigError

DEFAULT_DB_URI = "memory://"
DEFAULT_SCAN_PAGE_SIZE = 256

_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG", "NOTSET"}
_LOG_FORMATS = {None, "json", "text"}


def _expand(p: str | Path) -> Path:
    return Path(p).expanduser().resolve()


def _parse_bool(v: str) -> bool:
    return v.strip().lower() in {"1", "true", "t", "yes", "y", "on"}


def _env_int(name: str) -> int:
    v = os.environ[name]
    try:
        return int(v, 0)
    except ValueError as e:
        raise ConfigError(f"{name} must be int", value=v) from e


# ------------------------------
# Typed configuration model
# ------------------------------


@dataclass
class DBConfig:
    uri: str = DEFAULT_DB_URI  # sqlite:///path.db | memory:// | rocksdb:///dir
    create: bool = True
    scan_page_size: int = DEFAULT_SCAN_PAGE_SIZE

    def validate(self) -> None:
        if not self.uri or not isinstance(self.uri, str):
            raise ConfigError("db.uri must be a non-empty string", uri=self.uri)
        if self.scan_page_size < 1:
            raise ConfigError("db.scan_page_size must be >= 1", scan_page_size=self.scan_page_size)


@dataclass
class IndexConfig:
    # Remove index entries whose value changed when a record is overwritten.
    prune_stale: bool = True
    # Serialize put/delete of the same primary key within this process.
    serialize_writes: bool = True


@dataclass
class LogConfig:
    level: str = "INFO"
    format: Optional[str] = None  # "json" | "text" | None (auto)
    file: Optional[Path] = None

    def validate(self) -> None:
        if self.level.upper() not in _LOG_LEVELS:
            raise ConfigError("log.level is not a logging level", level=self.level)
        if self.format not in _LOG_FORMATS:
            raise ConfigError("log.format must be 'json' or 'text'", format=self.format)


@dataclass
class Config:
    db: DBConfig = field(default_factory=DBConfig)
    index: IndexConfig = field(default_factory=IndexConfig)
    log: LogConfig = field(default_factory=LogConfig)

    def validate(self) -> None:
        self.db.validate()
        self.log.validate()

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        if d["log"]["file"] is not None:
            d["log"]["file"] = str(d["log"]["file"])
        return d


# ------------------------------
# File loader (TOML / JSON)
# ------------------------------


def _load_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(str(path))
    suffix = path.suffix.lower()
    with path.open("rb") as f:
        if suffix in {".toml", ".tml"}:
            if _toml is None:
                raise ConfigError("tomllib is unavailable (Python < 3.11); use a JSON config")
            return _toml.load(f)
        if suffix == ".json":
            return json.load(f)
    raise ConfigError(f"unsupported config format: {suffix}", path=str(path))


def _merge_dict(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
    """Nested dict merge: values in b override a."""
    out = dict(a)
    for k, v in b.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _merge_dict(out[k], v)
        else:
            out[k] = v
    return out


def _env_layer() -> Dict[str, Any]:
    env: Dict[str, Any] = {"db": {}, "index": {}, "log": {}}
    if "KVINDEX_DB_URI" in os.environ:
        env["db"]["uri"] = os.environ["KVINDEX_DB_URI"].strip()
    if "KVINDEX_DB_CREATE" in os.environ:
        env["db"]["create"] = _parse_bool(os.environ["KVINDEX_DB_CREATE"])
    if "KVINDEX_SCAN_PAGE_SIZE" in os.environ:
        env["db"]["scan_page_size"] = _env_int("KVINDEX_SCAN_PAGE_SIZE")
    if "KVINDEX_PRUNE_STALE" in os.environ:
        env["index"]["prune_stale"] = _parse_bool(os.environ["KVINDEX_PRUNE_STALE"])
    if "KVINDEX_SERIALIZE_WRITES" in os.environ:
        env["index"]["serialize_writes"] = _parse_bool(os.environ["KVINDEX_SERIALIZE_WRITES"])
    if "KVINDEX_LOG_LEVEL" in os.environ:
        env["log"]["level"] = os.environ["KVINDEX_LOG_LEVEL"].strip().upper()
    if "KVINDEX_LOG_FORMAT" in os.environ:
        env["log"]["format"] = os.environ["KVINDEX_LOG_FORMAT"].strip().lower() or None
    if "KVINDEX_LOG_FILE" in os.environ:
        env["log"]["file"] = os.environ["KVINDEX_LOG_FILE"]
    return env


# ------------------------------
# Main loader
# ------------------------------


def load(config_file: Optional[str | Path] = None, **overrides: Any) -> Config:
    """
    Load the configuration.

    Precedence: overrides > env > file > defaults.

    overrides are section dicts, e.g. ``load(db={"uri": "sqlite:///x.db"})``.
    """
    base = Config().to_dict()

    if config_file:
        base = _merge_dict(base, _load_file(_expand(config_file)))

    base = _merge_dict(base, _env_layer())

    if overrides:
        unknown = set(overrides) - set(base)
        if unknown:
            raise ConfigError("unknown config sections", sections=sorted(unknown))
        base = _merge_dict(base, overrides)

    try:
        cfg = Config(
            db=DBConfig(
                uri=str(base["db"]["uri"]),
                create=bool(base["db"]["create"]),
                scan_page_size=int(base["db"]["scan_page_size"]),
            ),
            index=IndexConfig(
                prune_stale=bool(base["index"]["prune_stale"]),
                serialize_writes=bool(base["index"]["serialize_writes"]),
            ),
            log=LogConfig(
                level=str(base["log"]["level"]).upper(),
                format=base["log"]["format"],
                file=_expand(base["log"]["file"]) if base["log"]["file"] else None,
            ),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ConfigError("malformed configuration", error=str(e)) from e

    cfg.validate()
    return cfg


__all__ = [
    "Config",
    "DBConfig",
    "IndexConfig",
    "LogConfig",
    "load",
    "DEFAULT_DB_URI",
    "DEFAULT_SCAN_PAGE_SIZE",
]
