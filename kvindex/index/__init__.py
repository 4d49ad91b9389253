"""
kvindex.index
=============

Secondary indexes over a primary namespace: definition resolution
(`definitions`), per-key write serialization (`locks`) and the index manager
(`manager.SecondaryIndex`).
"""

from __future__ import annotations

from .definitions import (FieldGetter, FunctionGetter, IndexGetter, IndexSpec,
                          ResolvedIndex, resolve_definitions)
from .locks import KeyedLocks
from .manager import IndexHandle, SecondaryIndex, index_namespace

__all__ = [
    "SecondaryIndex",
    "IndexHandle",
    "IndexSpec",
    "IndexGetter",
    "FunctionGetter",
    "FieldGetter",
    "ResolvedIndex",
    "resolve_definitions",
    "KeyedLocks",
    "index_namespace",
]
