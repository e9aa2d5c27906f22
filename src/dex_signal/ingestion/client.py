"""
GraphQL client for the upstream analytics index (subgraph).

Provides async, paginated access to the three row sets the pipeline needs:
    - tokenHourDatas: hourly token statistics for one period bucket
    - pools: liquidity pools above a volume threshold
    - swaps: raw swap rows since a timestamp

All queries are ordered descending and paginated with first/skip.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Optional

import aiohttp

logger = logging.getLogger(__name__)


class SubgraphError(Exception):
    """Base exception for analytics index errors."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitError(SubgraphError):
    """Rate limit exceeded."""
    pass


class NoDataError(SubgraphError):
    """Neither the current nor the previous hour bucket yielded any tokens."""
    pass


TOKEN_HOUR_DATAS_QUERY = """
query TokenHourDatas($first: Int!, $skip: Int!, $period: Int!, $minVolume: BigDecimal!) {
  tokenHourDatas(
    first: $first
    skip: $skip
    where: { periodStartUnix: $period, volumeUSD_gt: $minVolume }
    orderBy: volumeUSD
    orderDirection: desc
  ) {
    priceUSD
    totalValueLockedUSD
    volumeUSD
    periodStartUnix
    totalValueLocked
    token {
      id
      name
      symbol
      totalValueLocked
      txCount
      whitelistPools {
        createdAtTimestamp
        id
      }
    }
  }
}
"""

POOLS_QUERY = """
query Pools($first: Int!, $skip: Int!, $minVolume: BigDecimal!) {
  pools(
    first: $first
    skip: $skip
    where: { volumeUSD_gt: $minVolume }
    orderBy: volumeUSD
    orderDirection: desc
  ) {
    id
    liquidity
    token0 {
      id
      symbol
    }
    token1 {
      id
      symbol
    }
  }
}
"""

SWAPS_QUERY = """
query Swaps($first: Int!, $skip: Int!, $since: BigInt!) {
  swaps(
    first: $first
    skip: $skip
    where: { timestamp_gte: $since }
    orderBy: timestamp
    orderDirection: desc
  ) {
    amount0
    amount1
    timestamp
    sender
    pool {
      id
    }
    token0 {
      id
      symbol
      decimals
    }
    token1 {
      id
      symbol
      decimals
    }
  }
}
"""


class SubgraphClient:
    """
    Async GraphQL client for the analytics index.

    Features:
        - Rate limiting to avoid gateway throttling
        - Automatic retries with exponential backoff on 429/5xx/timeouts
        - GraphQL `errors` payloads surfaced as SubgraphError

    Usage:
        async with SubgraphClient(url) as client:
            rows = await client.get_token_hour_datas(period=1700000000)
            pools = await client.get_pools(first=1000, skip=0)
    """

    def __init__(
        self,
        url: str,
        session: Optional[aiohttp.ClientSession] = None,
        rate_limit: float = 5.0,  # requests per second
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ):
        """
        Initialize the client.

        Args:
            url: Subgraph query endpoint
            session: Shared aiohttp session; one is opened lazily when omitted
            rate_limit: Queries allowed per rolling second
            timeout: Total per-query timeout in seconds
            max_retries: Attempts per query before giving up
            retry_delay: Backoff base in seconds, doubled per attempt
        """
        self._url = url
        self._session = session
        self._owns_session = session is None
        self._rate_limit = rate_limit
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._max_retries = max_retries
        self._retry_delay = retry_delay

        self._request_times: list[float] = []
        self._rate_lock = asyncio.Lock()

    async def __aenter__(self) -> "SubgraphClient":
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the client session."""
        if self._owns_session and self._session:
            await self._session.close()
            self._session = None

    async def _rate_limit_wait(self) -> None:
        """Wait if necessary to respect rate limits."""
        async with self._rate_lock:
            now = time.time()
            self._request_times = [t for t in self._request_times if now - t < 1.0]

            if len(self._request_times) >= self._rate_limit:
                wait_time = 1.0 - (now - self._request_times[0])
                if wait_time > 0:
                    await asyncio.sleep(wait_time)

            self._request_times.append(time.time())

    async def query(self, query: str, variables: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        """
        Run a GraphQL query with rate limiting and retries.

        Returns:
            The `data` object of the response

        Raises:
            SubgraphError: On HTTP, transport, or GraphQL errors
            RateLimitError: When rate limited on every attempt
            asyncio.CancelledError: When task is cancelled (re-raised)
        """
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True

        payload = {"query": query, "variables": variables or {}}
        last_error: Optional[Exception] = None

        for attempt in range(self._max_retries):
            try:
                await self._rate_limit_wait()

                async with self._session.post(self._url, json=payload) as response:
                    if response.status == 429:
                        raise RateLimitError("Rate limit exceeded", status_code=429)

                    if 400 <= response.status < 500:
                        text = await response.text()
                        raise SubgraphError(
                            f"Subgraph error: {response.status} - {text}",
                            status_code=response.status,
                        )

                    if response.status >= 500:
                        text = await response.text()
                        raise SubgraphError(
                            f"Server error: {response.status} - {text}",
                            status_code=response.status,
                        )

                    body = await response.json()

                if body.get("errors"):
                    raise SubgraphError(f"GraphQL errors: {body['errors']}")

                return body.get("data") or {}

            except RateLimitError as e:
                delay = self._retry_delay * (2 ** attempt) * 2
                logger.warning(f"Rate limited, waiting {delay}s before retry")
                await asyncio.sleep(delay)
                last_error = e

            except SubgraphError as e:
                if e.status_code and e.status_code >= 500:
                    delay = self._retry_delay * (2 ** attempt)
                    logger.warning(
                        f"Server error {e.status_code}, retry {attempt + 1}/{self._max_retries}"
                    )
                    await asyncio.sleep(delay)
                    last_error = e
                else:
                    raise

            except asyncio.TimeoutError:
                delay = self._retry_delay * (2 ** attempt)
                logger.warning(f"Request timeout, retry {attempt + 1}/{self._max_retries}")
                await asyncio.sleep(delay)
                last_error = SubgraphError("Request timed out")

            except asyncio.CancelledError:
                logger.debug("Request cancelled")
                raise

            except aiohttp.ClientError as e:
                delay = self._retry_delay * (2 ** attempt)
                logger.warning(f"Request failed: {e}, retry {attempt + 1}/{self._max_retries}")
                await asyncio.sleep(delay)
                last_error = SubgraphError(str(e))

        raise last_error or SubgraphError("Request failed after retries")

    # =========================================================================
    # Row sets
    # =========================================================================

    async def get_token_hour_datas(
        self,
        period: int,
        first: int = 100,
        skip: int = 0,
        min_volume_usd: float = 100.0,
    ) -> list[dict[str, Any]]:
        """Fetch one page of hourly token statistics for a period bucket."""
        data = await self.query(
            TOKEN_HOUR_DATAS_QUERY,
            {
                "first": first,
                "skip": skip,
                "period": period,
                "minVolume": str(min_volume_usd),
            },
        )
        return data.get("tokenHourDatas") or []

    async def get_pools(
        self,
        first: int = 1000,
        skip: int = 0,
        min_volume_usd: float = 1000.0,
    ) -> list[dict[str, Any]]:
        """Fetch one page of pools above the volume threshold."""
        data = await self.query(
            POOLS_QUERY,
            {"first": first, "skip": skip, "minVolume": str(min_volume_usd)},
        )
        return data.get("pools") or []

    async def get_swaps(
        self,
        since: int,
        first: int = 1000,
        skip: int = 0,
    ) -> list[dict[str, Any]]:
        """Fetch one page of swaps with timestamp >= since (unix seconds)."""
        data = await self.query(
            SWAPS_QUERY,
            {"first": first, "skip": skip, "since": str(since)},
        )
        return data.get("swaps") or []
