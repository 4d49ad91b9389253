"""
Layered configuration: defaults < file < env < overrides.
"""

from __future__ import annotations

import json
import sys

import pytest

from kvindex.config import Config, load
from kvindex.errors import ConfigError


def test_defaults(clean_env):
    cfg = load()
    assert cfg.db.uri == "memory://"
    assert cfg.db.create is True
    assert cfg.db.scan_page_size == 256
    assert cfg.index.prune_stale is True
    assert cfg.index.serialize_writes is True
    assert cfg.log.level == "INFO"
    assert cfg.log.format is None
    assert cfg.to_dict() == Config().to_dict()


def test_json_file_layer(clean_env, tmp_path):
    path = tmp_path / "kvindex.json"
    path.write_text(json.dumps({"db": {"uri": "sqlite:///x.db", "scan_page_size": 64}}))
    cfg = load(path)
    assert cfg.db.uri == "sqlite:///x.db"
    assert cfg.db.scan_page_size == 64
    assert cfg.db.create is True


@pytest.mark.skipif(sys.version_info < (3, 11), reason="tomllib requires Python 3.11")
def test_toml_file_layer(clean_env, tmp_path):
    path = tmp_path / "kvindex.toml"
    path.write_text('[index]\nprune_stale = false\n\n[log]\nformat = "json"\n')
    cfg = load(path)
    assert cfg.index.prune_stale is False
    assert cfg.log.format == "json"


def test_env_overrides_file(clean_env, tmp_path):
    path = tmp_path / "kvindex.json"
    path.write_text(json.dumps({"db": {"uri": "sqlite:///file.db"}}))
    clean_env.setenv("KVINDEX_DB_URI", "sqlite:///env.db")
    clean_env.setenv("KVINDEX_SCAN_PAGE_SIZE", "0x20")
    clean_env.setenv("KVINDEX_SERIALIZE_WRITES", "no")
    clean_env.setenv("KVINDEX_LOG_LEVEL", "debug")
    cfg = load(path)
    assert cfg.db.uri == "sqlite:///env.db"
    assert cfg.db.scan_page_size == 32
    assert cfg.index.serialize_writes is False
    assert cfg.log.level == "DEBUG"


def test_overrides_win(clean_env):
    clean_env.setenv("KVINDEX_PRUNE_STALE", "1")
    cfg = load(index={"prune_stale": False}, db={"create": False})
    assert cfg.index.prune_stale is False
    assert cfg.db.create is False


def test_log_file_is_expanded(clean_env, tmp_path):
    cfg = load(log={"file": str(tmp_path / "a.log")})
    assert cfg.log.file == (tmp_path / "a.log").resolve()
    assert cfg.to_dict()["log"]["file"] == str((tmp_path / "a.log").resolve())


@pytest.mark.parametrize(
    "overrides",
    [
        {"db": {"scan_page_size": 0}},
        {"db": {"scan_page_size": "many"}},
        {"log": {"level": "LOUD"}},
        {"log": {"format": "xml"}},
        {"cache": {"size": 1}},
    ],
)
def test_invalid_values(clean_env, overrides):
    with pytest.raises(ConfigError):
        load(**overrides)


def test_bad_env_int(clean_env):
    clean_env.setenv("KVINDEX_SCAN_PAGE_SIZE", "lots")
    with pytest.raises(ConfigError):
        load()


def test_unsupported_file_format(clean_env, tmp_path):
    path = tmp_path / "kvindex.yaml"
    path.write_text("db: {}\n")
    with pytest.raises(ConfigError):
        load(path)


def test_missing_file(clean_env, tmp_path):
    with pytest.raises(FileNotFoundError):
        load(tmp_path / "absent.json")
