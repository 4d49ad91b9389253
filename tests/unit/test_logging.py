"""
Structured logging: context binding, formatters and configure().
"""

from __future__ import annotations

import io
import json
import logging

import pytest

from kvindex import logging as kvlog
from kvindex.config import load as load_config


@pytest.fixture
def root_logger():
    root = logging.getLogger()
    level = root.level
    yield root
    for h in list(root.handlers):
        if isinstance(h.formatter, (kvlog.JSONFormatter, kvlog.TextFormatter)):
            root.removeHandler(h)
            h.close()
    root.setLevel(level)
    kvlog.clear_context()


def _record(msg="hello", **extra):
    rec = logging.LogRecord("kvindex.test", logging.DEBUG, __file__, 1, msg, None, None)
    rec.__dict__.update(extra)
    return rec


def test_bind_and_bound_scope():
    kvlog.clear_context()
    kvlog.bind(namespace="users")
    with kvlog.bound_scope(index="age", op="put"):
        assert kvlog.context() == {"namespace": "users", "index": "age", "op": "put"}
    assert kvlog.context() == {"namespace": "users"}
    kvlog.unbind("namespace")
    assert kvlog.context() == {}


def test_json_formatter_merges_context_and_extras():
    kvlog.clear_context()
    with kvlog.bound_scope(namespace="users"):
        line = kvlog.JSONFormatter().format(_record(index="age", count=3))
    payload = json.loads(line)
    assert payload["msg"] == "hello"
    assert payload["level"] == "DEBUG"
    assert payload["logger"] == "kvindex.test"
    assert payload["namespace"] == "users"
    assert payload["index"] == "age"
    assert payload["count"] == 3


def test_text_formatter_layout():
    kvlog.clear_context()
    with kvlog.bound_scope(op="rebuild"):
        line = kvlog.TextFormatter().format(_record("done", namespace="users"))
    parts = line.split(" | ")
    assert parts[1].strip() == "DEBUG"
    assert parts[2] == "kvindex.test"
    assert parts[3] == "op=rebuild namespace=users"
    assert parts[4] == "done"


def test_get_logger_hierarchy():
    assert kvlog.get_logger().name == "kvindex"
    assert kvlog.get_logger("kvindex.db").name == "kvindex.db"
    assert kvlog.get_logger("app").name == "kvindex.app"


def test_with_fields_adds_extras():
    adapter = kvlog.with_fields(logging.getLogger("x"), namespace="users")
    _, kwargs = adapter.process("m", {"extra": {"index": "age"}})
    assert kwargs["extra"] == {"namespace": "users", "index": "age"}


def test_configure_json(root_logger):
    stream = io.StringIO()
    kvlog.configure(json=True, level="DEBUG", stream=stream, propagate_existing=True)
    kvlog.get_logger("db.level").debug("opened namespace", extra={"namespace": "users"})
    payload = json.loads(stream.getvalue().strip().splitlines()[-1])
    assert payload["logger"] == "kvindex.db.level"
    assert payload["namespace"] == "users"


def test_configure_respects_level_and_env(root_logger, monkeypatch):
    monkeypatch.setenv("KVINDEX_LOG_FORMAT", "text")
    stream = io.StringIO()
    kvlog.configure(level="WARNING", stream=stream, propagate_existing=True)
    log = kvlog.get_logger("t")
    log.info("hidden")
    log.warning("shown")
    out = stream.getvalue()
    assert "hidden" not in out
    assert out.rstrip().endswith("| shown")


def test_configure_from_config_writes_json_file(root_logger, tmp_path, clean_env):
    path = tmp_path / "logs" / "kvindex.log"
    cfg = load_config(log={"level": "debug", "format": "text", "file": str(path)})
    kvlog.configure_from_config(cfg, stream=io.StringIO())
    kvlog.get_logger("t").debug("to file")
    for h in root_logger.handlers:
        h.flush()
    assert json.loads(path.read_text().strip().splitlines()[-1])["msg"] == "to file"
