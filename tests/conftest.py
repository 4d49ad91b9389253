"""
Shared pytest fixtures:
- `db`: in-memory database with a small scan page so iteration spans pages
- `counted`: (Database, CountingKV) pair for write accounting
- `users`: primary namespace "users" with ordered keys
- `clean_env`: strips KVINDEX_* variables for config tests
"""

from __future__ import annotations

import os

import pytest
import pytest_asyncio

from kvindex.db import Database, open_kv
from tests import CountingKV

SMALL_PAGE = 3


@pytest_asyncio.fixture
async def db():
    database = Database.open("memory://", scan_page_size=SMALL_PAGE)
    try:
        yield database
    finally:
        await database.close()


@pytest_asyncio.fixture
async def counted():
    kv = CountingKV(open_kv("memory://"))
    database = Database(kv, scan_page_size=SMALL_PAGE)
    try:
        yield database, kv
    finally:
        await database.close()


@pytest.fixture
def users(db):
    return db.sublevel("users", key_encoding="ordered")


@pytest.fixture
def clean_env(monkeypatch):
    for name in list(os.environ):
        if name.startswith("KVINDEX_"):
            monkeypatch.delenv(name, raising=False)
    return monkeypatch
