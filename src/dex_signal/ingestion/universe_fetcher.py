"""
Token Universe Fetcher - hourly snapshot of candidate tokens.

Reads hourly token statistics from the analytics index for the current
hour bucket and caches the processed snapshot under that bucket. A bucket's
data is treated as immutable once fetched, so the bucket itself is the cache
key and there is no TTL.

Processing:
    1. Page through tokenHourDatas (fixed page size, bounded page count)
    2. Drop stablecoin/ETH-like tokens (name or symbol contains USD or ETH)
    3. Sort by TVL descending and assign size tertiles
    4. Order the final list by heat ratio (volume / TVL) descending
"""
from __future__ import annotations

import logging
import time
from dataclasses import replace
from typing import Any, Callable, Optional, Sequence

from dex_signal.storage.cache import CacheStore

from .client import NoDataError, SubgraphClient, SubgraphError
from .models import TokenSize, TokenSnapshot

logger = logging.getLogger(__name__)

HOUR_SECONDS = 3600
EXCLUDED_MARKERS = ("USD", "ETH")


def hour_bucket(timestamp: float) -> int:
    """Floor a unix timestamp to the start of its hour."""
    return int(timestamp // HOUR_SECONDS) * HOUR_SECONDS


def is_excluded(name: str, symbol: str) -> bool:
    """True for tokens whose name or symbol carries a stablecoin/ETH marker."""
    name = name.upper()
    symbol = symbol.upper()
    return any(marker in name or marker in symbol for marker in EXCLUDED_MARKERS)


def assign_sizes(tokens: Sequence[TokenSnapshot]) -> list[TokenSnapshot]:
    """
    Sort by TVL descending and assign size buckets by position.

    The first floor(N/3) tokens are large, the next floor(N/3) are medium,
    and the remainder are small.
    """
    ordered = sorted(tokens, key=lambda t: t.total_value_locked_usd, reverse=True)
    third = len(ordered) // 3
    two_thirds = third * 2

    sized = []
    for index, token in enumerate(ordered):
        if index < third:
            size = TokenSize.LARGE
        elif index < two_thirds:
            size = TokenSize.MEDIUM
        else:
            size = TokenSize.SMALL
        sized.append(replace(token, size=size))
    return sized


def parse_token_row(row: dict[str, Any]) -> Optional[TokenSnapshot]:
    """Parse one tokenHourDatas row, or None if it lacks identity."""
    token = row.get("token") or {}
    name = token.get("name")
    symbol = token.get("symbol")
    if not token.get("id") or not name or not symbol:
        return None

    created = None
    for pool in token.get("whitelistPools") or []:
        try:
            ts = int(pool.get("createdAtTimestamp"))
        except (TypeError, ValueError):
            continue
        if created is None or ts < created:
            created = ts

    try:
        tx_count = int(token.get("txCount") or 0)
    except (TypeError, ValueError):
        tx_count = 0

    return TokenSnapshot(
        contract_address=token["id"],
        name=name,
        symbol=symbol,
        price_usd=_to_float(row.get("priceUSD")),
        total_value_locked_usd=_to_float(row.get("totalValueLockedUSD")),
        volume_usd=_to_float(row.get("volumeUSD")),
        period_start_unix=int(row.get("periodStartUnix") or 0),
        created_at=created or 0,
        total_value_locked=str(row.get("totalValueLocked") or "0"),
        token_total_value_locked=str(token.get("totalValueLocked") or "0"),
        tx_count=tx_count,
    )


def _to_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


class TokenUniverseFetcher:
    """
    Fetches the current hourly token universe with bucket caching.

    Usage:
        fetcher = TokenUniverseFetcher(client, cache)
        tokens = await fetcher.fetch_current_universe()
    """

    def __init__(
        self,
        client: SubgraphClient,
        cache: CacheStore,
        page_size: int = 100,
        max_pages: int = 3,
        min_volume_usd: float = 100.0,
        clock: Callable[[], float] = time.time,
    ):
        self.client = client
        self.cache = cache
        self.page_size = page_size
        self.max_pages = max_pages
        self.min_volume_usd = min_volume_usd
        self._clock = clock

    async def fetch_current_universe(self) -> list[TokenSnapshot]:
        """
        Return the universe for the current hour, falling back one hour.

        Raises:
            NoDataError: If neither bucket yields any tokens
        """
        bucket = hour_bucket(self._clock())

        tokens = await self.fetch_for_bucket(bucket)
        if tokens:
            return tokens

        logger.info("No data found for current hour, trying previous hour")
        tokens = await self.fetch_for_bucket(bucket - HOUR_SECONDS)
        if tokens:
            return tokens

        raise NoDataError("No data found for current or previous hour")

    async def fetch_for_bucket(self, bucket: int) -> Optional[list[TokenSnapshot]]:
        """Return the processed snapshot for one bucket, cache first."""
        key = str(bucket)
        cached = self.cache.get(key)
        if cached:
            logger.debug(f"Using cached universe for bucket {bucket}")
            return [TokenSnapshot.from_dict(item) for item in cached]

        logger.info(f"Fetching token universe for bucket {bucket}")
        rows = await self._fetch_rows(bucket)
        if not rows:
            return None

        parsed = [parse_token_row(row) for row in rows]
        candidates = [
            t for t in parsed
            if t is not None and not is_excluded(t.name, t.symbol)
        ]

        sized = assign_sizes(candidates)
        final = sorted(sized, key=lambda t: t.heat_ratio, reverse=True)

        if final:
            try:
                self.cache.set(key, [t.to_dict() for t in final])
                logger.info(f"Cached {len(final)} tokens for bucket {bucket}")
            except OSError as e:
                logger.error(f"Error writing universe to cache: {e}")

        return final

    async def _fetch_rows(self, bucket: int) -> list[dict[str, Any]]:
        """Page through tokenHourDatas, keeping whatever pages succeed."""
        rows: list[dict[str, Any]] = []
        for page in range(self.max_pages):
            try:
                page_rows = await self.client.get_token_hour_datas(
                    period=bucket,
                    first=self.page_size,
                    skip=page * self.page_size,
                    min_volume_usd=self.min_volume_usd,
                )
            except SubgraphError as e:
                logger.error(f"Error fetching token page {page}: {e}")
                break

            if not page_rows:
                break
            rows.extend(page_rows)

        return rows
