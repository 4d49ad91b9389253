"""
Version helpers for kvindex.

Resolution order:
    1) KVINDEX_VERSION env var (authoritative override)
    2) installed distribution metadata
    3) DEFAULT_VERSION
"""

from __future__ import annotations

import os
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as _dist_version

DEFAULT_VERSION = "0.1.0"
DIST_NAME = "kvindex"


def detect_version() -> str:
    env = os.environ.get("KVINDEX_VERSION", "").strip()
    if env:
        return env
    try:
        return _dist_version(DIST_NAME)
    except PackageNotFoundError:
        return DEFAULT_VERSION


__version__ = detect_version()

__all__ = ["__version__", "detect_version", "DEFAULT_VERSION"]
