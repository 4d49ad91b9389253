"""
kvindex test helpers

- Hypothesis profiles ("local" default, "ci" when CI is set or via
  HYPOTHESIS_PROFILE).
- CountingKV: wraps a KV backend, counts write operations and can inject a
  failure at the N-th batched write.
"""

from __future__ import annotations

import os
from typing import Any, Optional

from hypothesis import settings

# Local: fewer examples for snappy feedback; no deadline since storage calls hop threads.
settings.register_profile("local", settings(max_examples=60, deadline=None))
settings.register_profile("ci", settings(max_examples=250, deadline=None))
settings.load_profile(os.environ.get("HYPOTHESIS_PROFILE") or ("ci" if os.environ.get("CI") else "local"))


class InjectedFailure(RuntimeError):
    pass


class _CountingBatch:
    def __init__(self, inner: Any, owner: "CountingKV") -> None:
        self._inner = inner
        self._owner = owner

    def __enter__(self) -> "_CountingBatch":
        self._inner.__enter__()
        return self

    def __exit__(self, et, ev, tb):
        return self._inner.__exit__(et, ev, tb)

    def put(self, key: bytes, value: bytes) -> None:
        self._owner._tick()
        self._inner.put(key, value)

    def delete(self, key: bytes) -> None:
        self._owner._tick()
        self._inner.delete(key)

    def commit(self) -> None:
        self._inner.commit()

    def rollback(self) -> None:
        self._inner.rollback()


class CountingKV:
    """KV proxy recording writes. `fail_at=n` raises on the n-th batched write (1-based)."""

    def __init__(self, inner: Any, fail_at: Optional[int] = None) -> None:
        self.inner = inner
        self.fail_at = fail_at
        self.writes = 0
        self.batches = 0

    def reset(self) -> None:
        self.writes = 0
        self.batches = 0

    def _tick(self) -> None:
        self.writes += 1
        if self.fail_at is not None and self.writes == self.fail_at:
            raise InjectedFailure(f"injected failure at write #{self.writes}")

    def __getattr__(self, name: str) -> Any:
        return getattr(self.inner, name)

    def put(self, key: bytes, value: bytes) -> None:
        self.writes += 1
        self.inner.put(key, value)

    def delete(self, key: bytes) -> None:
        self.writes += 1
        self.inner.delete(key)

    def batch(self) -> _CountingBatch:
        self.batches += 1
        return _CountingBatch(self.inner.batch(), self)
