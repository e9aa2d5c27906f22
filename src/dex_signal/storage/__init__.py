"""
Storage Layer - JSON cache and the shared swap history store.

Public API:
    CacheStore - get / set / age_seconds protocol
    MemoryCacheStore - in-process backing (tests)
    FileCacheStore - one <key>.json file per key (production)
    SwapHistoryStore - pool_id -> swap records under a single lock
    RetentionPolicy, RAW_RETENTION, RECENT_RETENTION - named prune windows
"""

from .cache import (
    POOLS_KEY,
    SWAPS_DATA_KEY,
    SWAPS_KEY,
    CacheStore,
    FileCacheStore,
    MemoryCacheStore,
)
from .swap_store import (
    RAW_RETENTION,
    RECENT_RETENTION,
    RetentionPolicy,
    SwapHistoryStore,
)

__all__ = [
    "POOLS_KEY",
    "SWAPS_DATA_KEY",
    "SWAPS_KEY",
    "CacheStore",
    "FileCacheStore",
    "MemoryCacheStore",
    "RAW_RETENTION",
    "RECENT_RETENTION",
    "RetentionPolicy",
    "SwapHistoryStore",
]
