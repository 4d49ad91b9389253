from __future__ import annotations

"""
SecondaryIndex
==============

Keeps secondary indexes over a primary namespace consistent with the records
stored in it, and answers equality queries against those indexes.

Storage layout (per index ``age`` over primary namespace ``users``):

    !users!<key>                       -> record (primary namespace encoding)
    !idx_users_age!<(value, key)>      -> ""     (ordered composite key)

Every ``put`` / ``delete`` writes the primary record and all index entries in
one atomic batch, so a reader never sees a record without its index entries
or the reverse.

    users = db.sublevel("users")
    idx = SecondaryIndex(users, {"age": IndexSpec(field="age")})
    await idx.put("alice", {"name": "alice", "age": 30})
    await idx.query("age", 30)   # -> [{"name": "alice", "age": 30}]

Writes to the same primary key are serialized within the process
(``serialize_writes``). Nothing coordinates writers in other processes.
"""

import logging
from contextlib import AsyncExitStack, nullcontext
from dataclasses import dataclass
from types import MappingProxyType
from typing import (Any, AsyncContextManager, Dict, Iterable, List, Mapping,
                    Optional, Tuple)

from ..db.level import MISSING, Database, Sublevel
from ..encoding import HIGH, Encoding
from ..errors import UnknownIndex
from ..logging import get_logger, with_fields
from .definitions import IndexGetter, resolve_definitions
from .locks import KeyedLocks

log = get_logger(__name__)

_MARKER = ""


@dataclass(frozen=True)
class IndexHandle:
    name: str
    getter: IndexGetter
    sublevel: Sublevel
    key_encoding: Encoding


def index_namespace(main: Sublevel, index_name: str) -> str:
    """Namespace name of `index_name` over `main`, e.g. ``idx_users_age``."""
    return "idx" + main.prefix.replace("!", "_") + index_name


class SecondaryIndex:
    def __init__(
        self,
        main: Sublevel,
        indexes: Mapping[str, Any],
        *,
        prune_stale: bool = True,
        serialize_writes: bool = True,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        """
        Args:
            main: primary namespace holding the records.
            indexes: index name -> definition (callable, mapping or IndexSpec).
            prune_stale: on overwrite, delete index entries whose value changed.
                With False, puts never read and stale entries are left behind.
            serialize_writes: serialize put/delete per primary key in-process.
            logger: receives registration messages at DEBUG.

        Raises:
            InvalidDefinition before any namespace is opened.
            NamespaceConflict if an index namespace is owned by something else.
        """
        resolved = resolve_definitions(indexes)

        self.main = main
        self.db: Database = main.db
        self.prune_stale = prune_stale
        self.serialize_writes = serialize_writes
        self._log = with_fields(logger or log, namespace=main.name)
        self._locks: Optional[KeyedLocks] = KeyedLocks() if serialize_writes else None

        handles: Dict[str, IndexHandle] = {}
        for name, r in resolved.items():
            sub = self.db.sublevel(
                index_namespace(main, name),
                key_encoding=r.key_encoding,
                value_encoding="utf8",
                owner=f"{main.name}:{name}",
            )
            handles[name] = IndexHandle(name, r.getter, sub, r.key_encoding)
            self._log.debug(
                "registered index",
                extra={"namespace": sub.name, "index": name, "prefix": main.prefix},
            )
        self._indexes = MappingProxyType(handles)
        self._names = tuple(handles)

    @classmethod
    def from_config(cls, main: Sublevel, indexes: Mapping[str, Any], cfg: Any, **kwargs: Any) -> "SecondaryIndex":
        """Build with `prune_stale` / `serialize_writes` taken from `cfg.index`."""
        return cls(
            main,
            indexes,
            prune_stale=cfg.index.prune_stale,
            serialize_writes=cfg.index.serialize_writes,
            **kwargs,
        )

    def __repr__(self) -> str:
        return f"SecondaryIndex({self.main.name!r}, indexes={list(self._names)!r})"

    @property
    def indexes(self) -> Mapping[str, IndexHandle]:
        return self._indexes

    @property
    def names(self) -> Tuple[str, ...]:
        return self._names

    # --- helpers ---

    def _handle(self, name: str) -> IndexHandle:
        try:
            return self._indexes[name]
        except KeyError:
            raise UnknownIndex(name, self._names).with_context(namespace=self.main.name) from None

    def _values(self, record: Any) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for name, h in self._indexes.items():
            v = h.getter.compute(record)
            if v is not None:
                out[name] = v
        return out

    def _normalize(self, key: Any) -> Any:
        # One primary record per encoded key: "x" and b"x" are the same utf8 key.
        return self.main.decode_key(self.main.encode_key(key))

    def _serialized(self, key: Any) -> AsyncContextManager[Any]:
        if self._locks is None:
            return nullcontext()
        return self._locks.hold(self.main.encode_key(key))

    # --- writes ---

    async def put(self, key: Any, value: Any) -> None:
        """Store `value` at `key` and update every index in one atomic batch."""
        key = self._normalize(key)
        async with self._serialized(key):
            new = self._values(value)
            batch = self.db.batch()
            batch.put(key, value, sublevel=self.main)

            if self.prune_stale:
                previous = await self.main.get(key, MISSING)
                if previous is not MISSING:
                    for name, old in self._values(previous).items():
                        h = self._indexes[name]
                        if name in new and h.key_encoding.encode(new[name]) == h.key_encoding.encode(old):
                            continue
                        batch.delete((old, key), sublevel=h.sublevel)

            for name, v in new.items():
                batch.put((v, key), _MARKER, sublevel=self._indexes[name].sublevel)
            await batch.write()

    async def delete(self, key: Any) -> None:
        """
        Remove the record at `key` and its index entries in one atomic batch.
        Absent keys are a no-op that writes nothing.
        """
        key = self._normalize(key)
        async with self._serialized(key):
            previous = await self.main.get(key, MISSING)
            if previous is MISSING:
                return
            batch = self.db.batch()
            batch.delete(key, sublevel=self.main)
            for name, old in self._values(previous).items():
                batch.delete((old, key), sublevel=self._indexes[name].sublevel)
            await batch.write()

    # --- reads ---

    async def query_keys(self, index_name: str, value: Any) -> List[Any]:
        """Primary keys whose `index_name` value equals `value`, ascending."""
        h = self._handle(index_name)
        return [ck[1] async for ck, _ in h.sublevel.iterator(gt=(value,), lt=(value, HIGH))]

    async def query(self, index_name: str, value: Any) -> List[Any]:
        """
        Records whose `index_name` value equals `value`, in primary-key order.

        Index entries whose record has since disappeared are skipped.
        """
        keys = await self.query_keys(index_name, value)
        if not keys:
            return []
        records = await self.main.get_many(keys, MISSING)
        return [r for r in records if r is not MISSING]

    async def get(self, key: Any) -> Any:
        return await self.main.get(key)

    # --- maintenance ---

    async def rebuild(self, names: Optional[Iterable[str]] = None) -> int:
        """
        Recompute the given indexes (all by default) from the primary records.

        Clears each index namespace, then rescans the primary namespace one
        page of `db.scan_page_size` keys at a time. Each page is locked and its
        records re-read before its entries are written, so a put or delete
        racing the rebuild is never undone. With ``serialize_writes=False``
        there are no locks and a concurrent delete may leave a stale entry.
        Returns the number of index entries written.
        """
        targets = [self._handle(n) for n in (self._names if names is None else names)]
        if not targets:
            return 0

        for h in targets:
            removed = await h.sublevel.clear()
            self._log.debug("cleared index", extra={"index": h.name, "count": removed})

        written = 0
        page: List[Any] = []
        async for key, _ in self.main.iterator():
            page.append(key)
            if len(page) >= self.db.scan_page_size:
                written += await self._reindex_page(targets, page)
                page = []
        if page:
            written += await self._reindex_page(targets, page)

        self._log.debug(
            "rebuilt indexes",
            extra={"index": ",".join(h.name for h in targets), "count": written},
        )
        return written

    async def _reindex_page(self, targets: List[IndexHandle], keys: List[Any]) -> int:
        async with AsyncExitStack() as stack:
            if self._locks is not None:
                # Ascending, so concurrent rebuilds take page locks in the same order.
                for raw in sorted({self.main.encode_key(k) for k in keys}):
                    await stack.enter_async_context(self._locks.hold(raw))
            records = await self.main.get_many(keys, MISSING)
            batch = self.db.batch()
            for key, record in zip(keys, records):
                if record is MISSING:
                    continue
                for h in targets:
                    v = h.getter.compute(record)
                    if v is not None:
                        batch.put((v, key), _MARKER, sublevel=h.sublevel)
            n = batch.length
            if n:
                await batch.write()
            return n


__all__ = ["SecondaryIndex", "IndexHandle", "index_namespace"]
