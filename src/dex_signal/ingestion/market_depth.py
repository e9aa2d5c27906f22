"""
Market-depth provider client.

Looks up trading-pair data for a token contract address: transaction counts,
volume and price change per window, USD liquidity, and optional social
links. Absence of data (HTTP failure, no matching pair) is "no data", never
an error: lookups return None.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import aiohttp
from cachetools import TTLCache

logger = logging.getLogger(__name__)

WINDOWS = ("m5", "h1", "h6", "h24")


@dataclass(frozen=True)
class WindowTxns:
    """Buy and sell counts within one window."""
    buys: int = 0
    sells: int = 0

    @property
    def total(self) -> int:
        return self.buys + self.sells

    @property
    def buy_ratio(self) -> float:
        return self.buys / self.total if self.total > 0 else 0.0


@dataclass(frozen=True)
class PairInfo:
    """Metadata links attached to a pair."""
    websites: tuple[str, ...] = ()
    socials: tuple[str, ...] = ()
    image_url: Optional[str] = None


@dataclass
class DexPair:
    """One trading pair as reported by the market-depth provider."""
    pair_address: str
    base_token_address: str
    txns: dict[str, WindowTxns] = field(default_factory=dict)
    volume: dict[str, float] = field(default_factory=dict)
    price_change: dict[str, float] = field(default_factory=dict)
    liquidity_usd: float = 0.0
    price_usd: Optional[float] = None
    info: Optional[PairInfo] = None

    def txns_for(self, window: str) -> WindowTxns:
        return self.txns.get(window, WindowTxns())

    def volume_for(self, window: str) -> float:
        return self.volume.get(window, 0.0)

    def price_change_for(self, window: str) -> float:
        return self.price_change.get(window, 0.0)


@dataclass
class MarketDepth:
    """Provider response for one token."""
    token_address: str
    pairs: list[DexPair] = field(default_factory=list)

    @property
    def primary(self) -> Optional[DexPair]:
        """The first (most relevant) pair, if any."""
        return self.pairs[0] if self.pairs else None


def _num(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def parse_pair(data: dict[str, Any]) -> DexPair:
    txns = {}
    for window, counts in (data.get("txns") or {}).items():
        if isinstance(counts, dict):
            txns[window] = WindowTxns(
                buys=int(counts.get("buys") or 0),
                sells=int(counts.get("sells") or 0),
            )

    info = None
    raw_info = data.get("info")
    if isinstance(raw_info, dict):
        info = PairInfo(
            websites=tuple(w.get("url", "") for w in raw_info.get("websites") or []),
            socials=tuple(s.get("url", "") for s in raw_info.get("socials") or []),
            image_url=raw_info.get("imageUrl"),
        )

    price_usd = data.get("priceUsd")
    return DexPair(
        pair_address=data.get("pairAddress", ""),
        base_token_address=(data.get("baseToken") or {}).get("address", ""),
        txns=txns,
        volume={k: _num(v) for k, v in (data.get("volume") or {}).items()},
        price_change={k: _num(v) for k, v in (data.get("priceChange") or {}).items()},
        liquidity_usd=_num((data.get("liquidity") or {}).get("usd")),
        price_usd=_num(price_usd) if price_usd is not None else None,
        info=info,
    )


def parse_market_depth(token_address: str, payload: Any) -> Optional[MarketDepth]:
    """Parse a provider payload; None when it holds no pairs."""
    if not isinstance(payload, dict):
        return None
    pairs = [parse_pair(p) for p in payload.get("pairs") or [] if isinstance(p, dict)]
    if not pairs:
        return None
    return MarketDepth(token_address=token_address, pairs=pairs)


class MarketDepthClient:
    """
    Read-only market-depth lookups with a TTL cache.

    Usage:
        async with MarketDepthClient() as client:
            depth = await client.fetch(token_address)
            if depth and depth.primary:
                ...
    """

    BASE_URL = "https://api.dexscreener.com/latest/dex/tokens"

    def __init__(
        self,
        base_url: Optional[str] = None,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 10.0,
        cache_ttl: float = 300.0,
        cache_size: int = 1_000,
    ):
        self._base_url = (base_url or self.BASE_URL).rstrip("/")
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._cache: TTLCache = TTLCache(maxsize=cache_size, ttl=cache_ttl)

    async def __aenter__(self) -> "MarketDepthClient":
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self._session:
            await self._session.close()
            self._session = None

    async def fetch(self, token_address: str) -> Optional[MarketDepth]:
        """Return pair data for a token, or None when unavailable."""
        key = token_address.strip().lower()
        if not key:
            return None
        if key in self._cache:
            return self._cache[key]

        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True

        url = f"{self._base_url}/{token_address}"
        try:
            async with self._session.get(url) as resp:
                if resp.status != 200:
                    logger.debug(f"Market depth HTTP {resp.status} for {token_address}")
                    return None
                payload = await resp.json()
        except asyncio.CancelledError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.debug(f"Market depth request failed for {token_address}: {e}")
            return None

        depth = parse_market_depth(token_address, payload)
        if depth is not None:
            self._cache[key] = depth
        return depth
