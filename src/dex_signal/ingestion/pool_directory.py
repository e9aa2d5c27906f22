"""
Pool Directory - the set of pools qualifying by volume.

Each refresh pages through the index for pools above a minimum volume,
ordered by volume descending and capped at a maximum page count. A
successful refresh replaces the pool set and its id -> token-pair index
wholesale and overwrites the cached snapshot.
"""
from __future__ import annotations

import logging
from typing import Optional

from eth_utils import to_checksum_address

from dex_signal.storage.cache import POOLS_KEY, CacheStore

from .client import SubgraphClient, SubgraphError
from .models import Pool, PoolToken

logger = logging.getLogger(__name__)


class PoolDirectory:
    """
    In-memory pool set with cache persistence.

    Usage:
        directory = PoolDirectory(client, cache)
        directory.load_from_cache()
        await directory.refresh()

        for pool in directory.current_pools():
            pair = directory.token_pair(pool.id)
    """

    def __init__(
        self,
        client: SubgraphClient,
        cache: CacheStore,
        page_size: int = 1000,
        max_pages: int = 11,
        min_volume_usd: float = 1000.0,
    ):
        self.client = client
        self.cache = cache
        self.page_size = page_size
        self.max_pages = max_pages
        self.min_volume_usd = min_volume_usd

        self._pools: list[Pool] = []
        self._pairs: dict[str, tuple[PoolToken, PoolToken]] = {}

    def current_pools(self) -> list[Pool]:
        return list(self._pools)

    def addresses(self) -> list[str]:
        """Checksummed pool addresses for log subscription."""
        return [to_checksum_address(pool.id) for pool in self._pools]

    def token_pair(self, pool_id: str) -> Optional[tuple[PoolToken, PoolToken]]:
        return self._pairs.get(pool_id.lower())

    def __len__(self) -> int:
        return len(self._pools)

    def _replace(self, pools: list[Pool]) -> None:
        self._pools = pools
        self._pairs = {pool.id.lower(): (pool.token0, pool.token1) for pool in pools}

    async def refresh(self) -> None:
        """
        Replace the pool set with a fresh listing.

        A page failure stops pagination; pages already fetched are kept.
        If nothing at all was fetched the previous set stays in place.
        """
        pools: list[Pool] = []

        for page in range(self.max_pages):
            try:
                rows = await self.client.get_pools(
                    first=self.page_size,
                    skip=page * self.page_size,
                    min_volume_usd=self.min_volume_usd,
                )
            except SubgraphError as e:
                logger.error(f"Error fetching pools page {page}: {e}")
                break

            if not rows:
                break

            for row in rows:
                try:
                    pools.append(Pool.from_dict(row))
                except (KeyError, TypeError, ValueError) as e:
                    logger.warning(f"Skipping malformed pool row: {e}")

            logger.debug(f"Fetched pools page {page + 1}, got {len(rows)} pools")
        else:
            logger.info("Reached maximum pool page limit")

        if not pools:
            logger.warning(f"Pool refresh returned nothing, keeping {len(self._pools)} existing pools")
            return

        self._replace(pools)
        logger.info(f"Total pools fetched: {len(pools)}")

        try:
            self.cache.set(POOLS_KEY, [pool.to_dict() for pool in pools])
        except OSError as e:
            logger.error(f"Error writing pools to cache: {e}")

    def load_from_cache(self) -> int:
        """Warm the directory from the cached pool snapshot."""
        cached = self.cache.get(POOLS_KEY)
        if not cached:
            return 0

        pools = []
        for row in cached:
            try:
                pools.append(Pool.from_dict(row))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed cached pool: {e}")

        self._replace(pools)
        logger.info(f"Loaded {len(pools)} pools from cache")
        return len(pools)
