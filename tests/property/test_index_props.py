"""
Property tests for SecondaryIndex: after any sequence of puts and deletes the
index holds exactly one entry per live record with a defined value.
"""

from __future__ import annotations

import asyncio

from hypothesis import given
from hypothesis import strategies as st

from kvindex import Database, IndexSpec, SecondaryIndex

keys = st.integers(min_value=0, max_value=6)
ages = st.one_of(st.none(), st.integers(min_value=0, max_value=3))
ops = st.lists(
    st.one_of(
        st.tuples(st.just("put"), keys, ages),
        st.tuples(st.just("del"), keys, st.none()),
    ),
    max_size=25,
)


async def _replay(operations):
    async with Database.open("memory://", scan_page_size=2) as db:
        users = db.sublevel("users", key_encoding="ordered")
        idx = SecondaryIndex(users, {"age": IndexSpec(field="age")})
        model = {}
        for op, key, age in operations:
            if op == "put":
                record = {"k": key} if age is None else {"k": key, "age": age}
                await idx.put(key, record)
                model[key] = record
            else:
                await idx.delete(key)
                model.pop(key, None)

        entries = await idx.indexes["age"].sublevel.keys()
        results = {age: await idx.query("age", age) for age in range(4)}
        return model, entries, results


@given(ops)
def test_index_matches_model(operations):
    model, entries, results = asyncio.run(_replay(operations))

    expected = sorted((r["age"], k) for k, r in model.items() if "age" in r)
    assert entries == expected

    for age, records in results.items():
        assert records == [model[k] for k in sorted(model) if model[k].get("age") == age]
