from __future__ import annotations

"""
Index definitions
=================

Turns user-supplied index definitions into ``ResolvedIndex`` entries (a getter
plus the key encoding of the index namespace). Accepted shapes per index name:

- a callable ``record -> value``
- a mapping with any of ``getter``, ``field``, ``key_encoding``
- an ``IndexSpec`` with the same three attributes

    resolve_definitions({
        "age": IndexSpec(field="age"),
        "initial": lambda r: r["name"][:1],
        "city": {"field": "city", "key_encoding": "ordered"},
    })

A getter returning ``None`` means "no value": the record is left out of that
index.
"""

from dataclasses import dataclass
from typing import (Any, Callable, Dict, Mapping, Optional, Protocol,
                    runtime_checkable)

from ..encoding import DEFAULT_INDEX_ENCODING, Encoding, EncodingLike, get_encoding
from ..errors import EncodingError, InvalidDefinition

_MAPPING_KEYS = frozenset({"getter", "field", "key_encoding"})


@dataclass(frozen=True)
class IndexSpec:
    getter: Optional[Callable[[Any], Any]] = None
    field: Optional[str] = None
    key_encoding: Optional[EncodingLike] = None


@runtime_checkable
class IndexGetter(Protocol):
    def compute(self, record: Any) -> Any: ...


@dataclass(frozen=True)
class FunctionGetter:
    fn: Callable[[Any], Any]

    def compute(self, record: Any) -> Any:
        return self.fn(record)


@dataclass(frozen=True)
class FieldGetter:
    """Reads `field` from mapping records, or the attribute from other objects."""

    field: str

    def compute(self, record: Any) -> Any:
        if isinstance(record, Mapping):
            return record.get(self.field)
        return getattr(record, self.field, None)


@dataclass(frozen=True)
class ResolvedIndex:
    name: str
    getter: IndexGetter
    key_encoding: Encoding


def _check_name(name: Any) -> str:
    if not isinstance(name, str) or not name:
        raise InvalidDefinition(name, "index name must be a non-empty string")
    if "!" in name:
        raise InvalidDefinition(name, 'index name must not contain "!"')
    return name


def _resolve_encoding(name: str, enc: Optional[EncodingLike]) -> Encoding:
    try:
        resolved = get_encoding(DEFAULT_INDEX_ENCODING if enc is None else enc)
    except EncodingError as exc:
        raise InvalidDefinition(name, f"unknown key encoding {enc!r}") from exc
    if not resolved.tuple_keys:
        raise InvalidDefinition(
            name, f"key encoding {resolved.name!r} cannot encode composite keys"
        )
    return resolved


def resolve_one(name: str, definition: Any) -> ResolvedIndex:
    """Resolve a single named definition. Raises InvalidDefinition."""
    name = _check_name(name)

    if isinstance(definition, IndexSpec):
        getter_fn, field, enc = definition.getter, definition.field, definition.key_encoding
    elif isinstance(definition, Mapping):
        unknown = set(definition) - _MAPPING_KEYS
        if unknown:
            raise InvalidDefinition(name, f"unknown keys {sorted(map(str, unknown))}")
        getter_fn = definition.get("getter")
        field = definition.get("field")
        enc = definition.get("key_encoding")
    elif callable(definition):
        return ResolvedIndex(name, FunctionGetter(definition), _resolve_encoding(name, None))
    else:
        raise InvalidDefinition(name)

    getter: IndexGetter
    if getter_fn is not None:
        if not callable(getter_fn):
            raise InvalidDefinition(name, "getter must be callable")
        getter = FunctionGetter(getter_fn)
    elif field is not None:
        if not isinstance(field, str) or not field:
            raise InvalidDefinition(name, "field must be a non-empty string")
        getter = FieldGetter(field)
    else:
        raise InvalidDefinition(name, "needs a getter or a field")

    return ResolvedIndex(name, getter, _resolve_encoding(name, enc))


def resolve_definitions(defs: Mapping[str, Any]) -> Dict[str, ResolvedIndex]:
    """
    Resolve every definition in `defs`, keyed by index name.

    All definitions are validated before anything is returned, so a caller
    never acts on a partially valid set.
    """
    if not isinstance(defs, Mapping):
        raise TypeError(f"index definitions must be a mapping, got {type(defs).__name__}")
    return {name: resolve_one(name, d) for name, d in defs.items()}


__all__ = [
    "IndexSpec",
    "IndexGetter",
    "FunctionGetter",
    "FieldGetter",
    "ResolvedIndex",
    "resolve_one",
    "resolve_definitions",
]
