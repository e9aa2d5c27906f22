"""
Key-value cache for expensive fetches.

Universe snapshots are keyed by hour bucket; pool and swap snapshots are
keyed by fixed logical names. Values are JSON-compatible.

Two backing stores:
    - MemoryCacheStore: process-local, used in tests
    - FileCacheStore: one <key>.json file per key, readable at startup
"""

from __future__ import annotations

import json
import logging
import os
import time
from pathlib import Path
from typing import Any, Optional, Protocol

logger = logging.getLogger(__name__)

POOLS_KEY = "pools-cache"
SWAPS_KEY = "swaps-cache"
SWAPS_DATA_KEY = "swaps_data"


class CacheStore(Protocol):
    """Pluggable key-value store."""

    def get(self, key: str) -> Optional[Any]:
        """Return the stored value, or None if absent or unreadable."""
        ...

    def set(self, key: str, value: Any) -> None:
        """Store a value, overwriting any previous one."""
        ...

    def age_seconds(self, key: str) -> Optional[float]:
        """Seconds since the key was last written, or None if absent."""
        ...


class MemoryCacheStore:
    """In-memory cache store."""

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}
        self._written_at: dict[str, float] = {}

    def get(self, key: str) -> Optional[Any]:
        value = self._data.get(key)
        if value is None:
            return None
        # Round-trip through JSON so callers never share mutable state
        return json.loads(json.dumps(value))

    def set(self, key: str, value: Any) -> None:
        self._data[key] = json.loads(json.dumps(value))
        self._written_at[key] = time.time()

    def age_seconds(self, key: str) -> Optional[float]:
        written = self._written_at.get(key)
        if written is None:
            return None
        return time.time() - written

    def __contains__(self, key: str) -> bool:
        return key in self._data


class FileCacheStore:
    """
    File-backed cache store.

    Each key maps to <cache_dir>/<key>.json. Writes go to a temp file and
    are moved into place so a crash never leaves a half-written snapshot.
    """

    def __init__(self, cache_dir: str | Path):
        self._dir = Path(cache_dir)

    @property
    def directory(self) -> Path:
        return self._dir

    def _path(self, key: str) -> Path:
        return self._dir / f"{key}.json"

    def get(self, key: str) -> Optional[Any]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to read cache file {path}: {e}")
            return None

    def set(self, key: str, value: Any) -> None:
        self._dir.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        tmp_path = path.with_suffix(".json.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(value, f, indent=2)
        os.replace(tmp_path, path)
        logger.debug(f"Wrote cache file {path}")

    def age_seconds(self, key: str) -> Optional[float]:
        path = self._path(key)
        try:
            return time.time() - path.stat().st_mtime
        except FileNotFoundError:
            return None
