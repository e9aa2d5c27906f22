"""
Owned store for the rolling swap history.

The store is the single source of truth for swap records. It is shared by
the event watcher (append), the backfiller (extend), the pruning tasks
(prune) and scoring readers (snapshot). Every access goes through one
asyncio.Lock so an event arriving during a prune or a refresh is never lost.

Retention:
    Two named policies act on the same store and the caller picks which one
    to apply:
        - RAW: long retention applied on the periodic pool refresh (24h)
        - RECENT: short retention applied on summary recomputation (1h)
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from dex_signal.ingestion.models import SwapRecord

from .cache import SWAPS_KEY, CacheStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetentionPolicy:
    """A named age cutoff for retained swaps."""
    name: str
    max_age_seconds: float

    def cutoff(self, now: Optional[datetime] = None) -> datetime:
        now = now or datetime.now(timezone.utc)
        return now - timedelta(seconds=self.max_age_seconds)


RAW_RETENTION = RetentionPolicy("raw", 24 * 60 * 60)
RECENT_RETENTION = RetentionPolicy("recent", 60 * 60)


class SwapHistoryStore:
    """
    Rolling per-pool swap history.

    Usage:
        store = SwapHistoryStore()
        await store.append(pool_id, record)

        records = await store.snapshot()          # consistent copy
        removed = await store.prune(RAW_RETENTION)
    """

    def __init__(self) -> None:
        self._history: dict[str, list[SwapRecord]] = {}
        self._lock = asyncio.Lock()

    async def append(self, pool_id: str, record: SwapRecord) -> None:
        """Append a swap to a pool's history, creating the list lazily."""
        async with self._lock:
            self._history.setdefault(pool_id.lower(), []).append(record)

    async def extend(self, records: Iterable[tuple[str, SwapRecord]]) -> int:
        """Append many (pool_id, record) pairs under a single lock."""
        count = 0
        async with self._lock:
            for pool_id, record in records:
                self._history.setdefault(pool_id.lower(), []).append(record)
                count += 1
        return count

    async def prune(self, policy: RetentionPolicy, now: Optional[datetime] = None) -> int:
        """
        Drop records older than the policy's window.

        Returns:
            Number of records removed
        """
        cutoff = policy.cutoff(now)
        removed = 0
        async with self._lock:
            for pool_id, history in list(self._history.items()):
                kept = [r for r in history if r.timestamp > cutoff]
                removed += len(history) - len(kept)
                if kept:
                    self._history[pool_id] = kept
                else:
                    del self._history[pool_id]

        if removed:
            logger.info(f"Pruned {removed} swaps older than {policy.max_age_seconds:.0f}s ({policy.name})")
        return removed

    async def snapshot(self) -> list[SwapRecord]:
        """Point-in-time copy of every retained record."""
        async with self._lock:
            return [r for history in self._history.values() for r in history]

    async def pool_history(self, pool_id: str) -> list[SwapRecord]:
        async with self._lock:
            return list(self._history.get(pool_id.lower(), []))

    async def replace_all(self, history: dict[str, list[SwapRecord]]) -> None:
        async with self._lock:
            self._history = {k.lower(): list(v) for k, v in history.items()}

    async def count(self) -> int:
        async with self._lock:
            return sum(len(h) for h in self._history.values())

    async def latest_timestamp(self) -> Optional[datetime]:
        """Timestamp of the newest retained record, None when empty."""
        async with self._lock:
            return max(
                (r.timestamp for history in self._history.values() for r in history),
                default=None,
            )

    # =========================================================================
    # Persistence
    # =========================================================================

    async def save(self, cache: CacheStore) -> int:
        """Persist every retained record to the swap cache."""
        records = []
        async with self._lock:
            for pool_id, history in self._history.items():
                for record in history:
                    data = record.to_dict()
                    data["poolId"] = record.pool_id or pool_id
                    records.append(data)

        try:
            cache.set(SWAPS_KEY, records)
        except OSError as e:
            logger.error(f"Error writing swaps to cache: {e}")
            return 0

        logger.debug(f"Wrote {len(records)} swaps to cache")
        return len(records)

    async def load(self, cache: CacheStore) -> int:
        """Replace the history with the cached swap set, if any."""
        cached = cache.get(SWAPS_KEY)
        if not cached:
            return 0

        history: dict[str, list[SwapRecord]] = defaultdict(list)
        for item in cached:
            try:
                record = SwapRecord.from_dict(item)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping unreadable cached swap: {e}")
                continue
            pool_id = record.pool_id or record.sold.address
            history[pool_id.lower()].append(record)

        await self.replace_all(history)
        total = sum(len(h) for h in history.values())
        logger.info(f"Loaded {total} swaps from cache")
        return total
