"""
Swap backfill from the analytics index.

The live feed only sees swaps from the moment it subscribes. The backfiller
seeds the store with recent swaps from the index so aggregates are
meaningful right after startup.

Index rows carry human-unit decimal amounts; they are scaled back to raw
integer amounts with each token's `decimals` before sign normalization.
"""
from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Callable, Optional

from eth_utils import to_checksum_address

from dex_signal.storage.cache import SWAPS_DATA_KEY, CacheStore
from dex_signal.storage.swap_store import SwapHistoryStore

from .client import SubgraphClient, SubgraphError
from .models import PoolToken, SwapRecord

logger = logging.getLogger(__name__)


def parse_units(value: str, decimals: int) -> int:
    """Scale a decimal string to an integer amount of base units."""
    scaled = Decimal(value).scaleb(decimals)
    return int(scaled.to_integral_value(rounding=ROUND_HALF_UP))


def record_from_row(row: dict[str, Any]) -> tuple[str, SwapRecord]:
    """
    Convert one index swap row into (pool_id, SwapRecord).

    Raises:
        ValueError: If the row is malformed
    """
    try:
        token0 = row["token0"]
        token1 = row["token1"]
        amount0 = parse_units(row["amount0"], int(token0["decimals"]))
        amount1 = parse_units(row["amount1"], int(token1["decimals"]))
        timestamp = datetime.fromtimestamp(int(row["timestamp"]), tz=timezone.utc)
        sender = to_checksum_address(row["sender"])
        pair = (
            PoolToken(to_checksum_address(token0["id"]), token0.get("symbol", "")),
            PoolToken(to_checksum_address(token1["id"]), token1.get("symbol", "")),
        )
        pool = row.get("pool") or {}
        pool_id = (pool.get("id") or token0["id"]).lower()
    except (KeyError, TypeError, AttributeError, ValueError, InvalidOperation) as e:
        raise ValueError(f"Malformed swap row: {e}") from e

    record = SwapRecord.from_legs(
        timestamp=timestamp,
        sender=sender,
        token0=pair[0],
        token1=pair[1],
        amount0=amount0,
        amount1=amount1,
        pool_id=pool_id,
    )
    return pool_id, record


class SwapBackfiller:
    """
    Pages recent swaps from the index into the history store.

    Usage:
        backfiller = SwapBackfiller(client, store)
        added = await backfiller.backfill(window_seconds=1800)
    """

    def __init__(
        self,
        client: SubgraphClient,
        store: SwapHistoryStore,
        page_size: int = 1000,
        max_pages: int = 11,
        clock: Callable[[], float] = time.time,
    ):
        self.client = client
        self.store = store
        self.page_size = page_size
        self.max_pages = max_pages
        self._clock = clock

    async def backfill(
        self,
        window_seconds: int = 1800,
        not_before: Optional[datetime] = None,
    ) -> int:
        """
        Fetch swaps from the trailing window and append them to the store.

        Args:
            window_seconds: Length of the trailing window
            not_before: Newest swap already held; only later swaps are fetched

        Returns:
            Number of swaps added
        """
        since = int(self._clock()) - window_seconds
        if not_before is not None:
            since = max(since, int(not_before.timestamp()) + 1)
        logger.info(f"Backfilling swaps since {since}...")
        total = 0

        for page in range(self.max_pages):
            try:
                rows = await self.client.get_swaps(
                    since=since,
                    first=self.page_size,
                    skip=page * self.page_size,
                )
            except SubgraphError as e:
                logger.error(f"Error fetching swaps page {page}: {e}")
                break

            if not rows:
                break

            records = []
            for row in rows:
                try:
                    records.append(record_from_row(row))
                except ValueError as e:
                    logger.warning(f"Error processing historical swap: {e}")

            added = await self.store.extend(records)
            total += added
            logger.debug(f"Added {added} swaps from page {page}")
        else:
            logger.info("Reached maximum page limit for historical swaps")

        logger.info(f"Finished backfilling swaps. Total swaps added: {total}")
        return total


class RecentSwapsFetcher:
    """
    Raw index swap rows since the previous hour bucket.

    Results are served from the cache while the cached copy is younger than
    `max_age_seconds`.
    """

    def __init__(
        self,
        client: SubgraphClient,
        cache: CacheStore,
        page_size: int = 1000,
        max_pages: int = 11,
        max_age_seconds: float = 60.0,
        clock: Callable[[], float] = time.time,
    ):
        self.client = client
        self.cache = cache
        self.page_size = page_size
        self.max_pages = max_pages
        self.max_age_seconds = max_age_seconds
        self._clock = clock

    async def recent_swaps(self) -> list[dict[str, Any]]:
        age: Optional[float] = self.cache.age_seconds(SWAPS_DATA_KEY)
        if age is not None and age < self.max_age_seconds:
            cached = self.cache.get(SWAPS_DATA_KEY)
            if cached is not None:
                logger.debug("Using cached swaps data")
                return cached

        current_hour = int(self._clock() // 3600) * 3600
        since = current_hour - 3600

        swaps: list[dict[str, Any]] = []
        for page in range(self.max_pages):
            try:
                rows = await self.client.get_swaps(
                    since=since,
                    first=self.page_size,
                    skip=page * self.page_size,
                )
            except SubgraphError as e:
                logger.error(f"Error fetching swaps page {page}: {e}")
                break
            if not rows:
                break
            swaps.extend(rows)

        try:
            self.cache.set(SWAPS_DATA_KEY, swaps)
        except OSError as e:
            logger.error(f"Error writing swaps data to cache: {e}")
        logger.info(f"Fetched {len(swaps)} recent swaps")
        return swaps
